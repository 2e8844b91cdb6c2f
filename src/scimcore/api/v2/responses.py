from starlette.responses import JSONResponse
from scimcore.exceptions import SCIMException

RETRY_AFTER_SECONDS = 1


class SCIMResponse(JSONResponse):
    """JSON response carrying the SCIM media type (RFC 7644 Section 3.1)."""
    media_type = "application/scim+json"

    @classmethod
    def from_exception(cls, exc: SCIMException) -> "SCIMResponse":
        headers = {"Retry-After": str(RETRY_AFTER_SECONDS)} if exc.retryable else None
        return cls(
            status_code=exc.status_code,
            content=exc.to_error_response().model_dump(by_alias=True, exclude_none=True),
            headers=headers,
        )
