"""FastAPI application factory for the localmem backend."""

from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from localmem import __version__
from localmem.backend.config import BackendConfig, get_config
from localmem.backend.middleware import (
    AuthMiddleware,
    BodySizeLimitMiddleware,
    LoopbackCORSMiddleware,
    PrefixStripMiddleware,
    error_response,
)
from localmem.backend.services import build_memory_store, build_profile_extractor
from localmem.errors import LocalMemError, MalformedInputError, ValidationError
from localmem.log_config import get_logger
from localmem.memory import MemoryStore
from localmem.profile import ProfileExtractor
from localmem.security import load_or_create_token

log = get_logger("backend.app")


def _validation_error(exc: RequestValidationError) -> LocalMemError:
    """Map a pydantic request validation failure to the error taxonomy."""
    errors = exc.errors()
    for err in errors:
        err_type = str(err.get("type", ""))
        if err_type == "json_invalid" or "jsondecode" in err_type.replace("_", ""):
            return MalformedInputError()

    if not errors:
        return ValidationError("Invalid request")
    first = errors[0]
    # Drop the leading "body" segment: clients think in field names
    loc = [str(part) for part in first.get("loc", ()) if part != "body"]
    field = ".".join(loc) or "body"
    return ValidationError(f"{field}: {first.get('msg', 'invalid value')}")


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan handler for startup/shutdown."""
    config: BackendConfig = app.state.config
    store: MemoryStore = app.state.store
    log.info("=" * 70)
    log.info(f"  localmem backend v{__version__}")
    log.info("=" * 70)
    log.info(f"  - Listening:   http://{config.host}:{config.port}")
    log.info(f"  - Snapshot:    {store.path}")
    log.info(f"  - Token file:  {config.token_path}")
    log.info(f"  - Memories:    {store.count()}")
    log.info("=" * 70)

    yield

    log.info("localmem backend shutting down")


def create_app(
    config: BackendConfig | None = None,
    store: MemoryStore | None = None,
    profile_extractor: ProfileExtractor | None = None,
    token: str | None = None,
) -> FastAPI:
    """Create and configure the FastAPI application.

    Args:
        config: Backend configuration (default: global config)
        store: Memory store to serve (default: one built from config)
        profile_extractor: Profile strategy (default: regex extractor)
        token: Bearer token (default: loaded from or created in data_dir)

    Returns:
        Configured FastAPI application instance.
    """
    config = config or get_config()
    store = store if store is not None else build_memory_store(config)
    profile_extractor = profile_extractor or build_profile_extractor()
    token = token or load_or_create_token(config.data_dir)

    app = FastAPI(
        title="localmem Backend",
        description="Self-hosted memory backend with keyword search and profile extraction",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.config = config
    app.state.store = store
    app.state.profile_extractor = profile_extractor
    app.state.token = token

    # Last added runs first: CORS -> prefix strip -> auth -> body cap -> router
    app.add_middleware(BodySizeLimitMiddleware, max_bytes=config.max_body_bytes)
    app.add_middleware(AuthMiddleware, token=token)
    app.add_middleware(PrefixStripMiddleware)
    app.add_middleware(LoopbackCORSMiddleware)

    @app.exception_handler(LocalMemError)
    async def localmem_error_handler(request: Request, exc: LocalMemError) -> JSONResponse:
        if exc.status_code >= 500:
            log.error(f"{request.method} {request.url.path} failed: {exc.message}")
        return error_response(exc)

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
        error = _validation_error(exc)
        log.debug(f"Rejected {request.method} {request.url.path}: {error.message}")
        return error_response(error)

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
        message = "Not found" if exc.status_code == 404 else str(exc.detail)
        return JSONResponse(status_code=exc.status_code, content={"error": message}, headers=exc.headers)

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        log.exception(f"Unhandled exception on {request.method} {request.url.path}: {exc}")
        return JSONResponse(status_code=500, content={"error": str(exc)})

    from localmem.backend.api import router as api_router

    app.include_router(api_router)

    @app.get("/health")
    async def health_check(request: Request) -> dict:
        """Liveness check; the only unauthenticated route."""
        return {
            "status": "ok",
            "version": __version__,
            "storage": "json",
            "memories": request.app.state.store.count(),
        }

    return app
