import time
import traceback
from typing import Callable
from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware
from pydantic import ValidationError
from scimcore.api.v2.responses import SCIMResponse
from scimcore.utils import logger
from scimcore.schemas.error import ErrorResponse
from scimcore.exceptions import SCIMException


class ErrorHandlerMiddleware(BaseHTTPMiddleware):
    """Last line of defence: anything the exception handlers did not render becomes a SCIM error body."""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        start_time = time.time()

        try:
            response = await call_next(request)
            return response

        except SCIMException as e:
            # Handle SCIM errors raised outside route handlers
            logger.warning(f"SCIM error: {e.detail}")
            return SCIMResponse.from_exception(e)

        except ValidationError as e:
            # Handle Pydantic validation errors
            logger.warning(f"Validation error: {e}")
            error = ErrorResponse(
                status=400,
                detail="Invalid request body",
                scim_type="invalidValue"
            )
            return SCIMResponse(
                status_code=400,
                content=error.model_dump(by_alias=True, exclude_none=True)
            )

        except Exception as e:
            # Handle all other exceptions
            duration = time.time() - start_time
            logger.error(
                f"Unhandled exception in {request.method} {request.url.path} "
                f"(duration: {duration:.3f}s): {e}\n"
                f"{traceback.format_exc()}"
            )

            # Don't expose internal errors in production
            if hasattr(request.app.state, "settings") and request.app.state.settings.is_production:
                detail = "An internal error occurred"
            else:
                detail = str(e)

            error = ErrorResponse(
                status=500,
                detail=detail
            )
            return SCIMResponse(
                status_code=500,
                content=error.model_dump(by_alias=True, exclude_none=True)
            )
