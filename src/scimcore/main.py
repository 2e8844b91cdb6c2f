from contextlib import asynccontextmanager
from typing import Optional
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.exceptions import RequestValidationError
from tortoise import Tortoise
from scimcore.config import settings
from scimcore.exceptions import SCIMException
from scimcore.middleware import ErrorHandlerMiddleware, RequestLoggingMiddleware
from scimcore.api.v2.responses import SCIMResponse
from scimcore.api.v2.router import router as v2_router
from scimcore.services import ResourceStore, SchemaRegistry, TortoiseBackend, build_default_registry
from scimcore.utils import logger
from scimcore.schemas import ErrorResponse


def _error_response(status_code: int, detail: str, scim_type: Optional[str] = None) -> SCIMResponse:
    error = ErrorResponse(status=status_code, detail=detail, scim_type=scim_type)
    return SCIMResponse(status_code=status_code, content=error.model_dump(by_alias=True, exclude_none=True))


def create_app(registry: Optional[SchemaRegistry] = None, store: Optional[ResourceStore] = None) -> FastAPI:
    """
    Build the SCIM application.

    Args:
        registry: Schema registry to serve; defaults to the RFC 7643 User/Group schemas
        store: Resource store; defaults to one backed by the configured storage backend

    Returns:
        The FastAPI application
    """
    registry = registry or build_default_registry()
    use_database = store is None and settings.storage_backend == "database"
    if store is None:
        store = ResourceStore(registry, backend=TortoiseBackend() if use_database else None)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        # Startup
        logger.info(f"Starting {settings.app_name} ({settings.storage_backend} storage)...")

        if use_database:
            # Initialize Tortoise ORM
            await Tortoise.init(config=settings.tortoise_orm_config)
            await Tortoise.generate_schemas()
            logger.info("Database connection established")
            await store.load()

        yield

        # Shutdown
        logger.info(f"Shutting down {settings.app_name}...")
        if use_database:
            await Tortoise.close_connections()
            logger.info("Database connections closed")

    app = FastAPI(
        title=settings.app_name,
        description="SCIM 2.0 resource schema, validation and query engine",
        version="1.0.0",
        docs_url="/docs" if settings.debug else None,
        redoc_url="/redoc" if settings.debug else None,
        openapi_url="/openapi.json" if settings.debug else None,
        lifespan=lifespan,
    )

    # Add middlewares
    app.add_middleware(ErrorHandlerMiddleware)
    if settings.debug:
        app.add_middleware(RequestLoggingMiddleware)

    # Configure CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=["ETag", "Location"],
    )

    # Include routers
    app.include_router(v2_router)

    # Engine and settings in app state
    app.state.settings = settings
    app.state.registry = registry
    app.state.store = store

    @app.get("/health")
    async def health_check():
        return {
            "status": "healthy",
            "environment": settings.environment,
            "storage": settings.storage_backend,
            "version": "1.0.0"
        }

    @app.exception_handler(SCIMException)
    async def scim_exception_handler(request: Request, exc: SCIMException):
        return SCIMResponse.from_exception(exc)

    @app.exception_handler(404)
    async def not_found_handler(request: Request, exc):
        return _error_response(404, f"Path {request.url.path} not found")

    @app.exception_handler(405)
    async def method_not_allowed_handler(request: Request, exc):
        return _error_response(405, f"Method {request.method} not allowed for path {request.url.path}")

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        # Log the validation error with details
        logger.warning(f"Validation error for {request.method} {request.url.path}: {exc.errors()}")

        detail = "Invalid request"
        # In debug mode, include validation details
        if settings.debug:
            problems = [f"{'.'.join(str(part) for part in err['loc'])}: {err['msg']}" for err in exc.errors()]
            detail = f"Invalid request: {'; '.join(problems)}"
        return _error_response(400, detail, "invalidSyntax")

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "scimcore.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.reload,
        log_level=settings.log_level.lower(),
    )
