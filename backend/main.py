import logging
from contextlib import asynccontextmanager
from typing import Any, Optional

from fastapi import APIRouter, FastAPI, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.requests import Request

from api.routes import auth, driverapp, management
from config import AppMode, AuthConfig, Settings, get_settings
from db.database import init_db
from middleware.gatekeeper import EdgeGatekeeperMiddleware
from services.background import BackgroundTasks
from services.errors import AuthError
from services.tokens import TokenCodecs

logger = logging.getLogger(__name__)


def configure_logging(settings: Settings) -> None:
    logging.basicConfig(
        level=getattr(logging, settings.LOG_LEVEL),
        format="%(asctime)s - %(levelname)s - %(message)s",
    )
    # Quiet noisy loggers
    logging.getLogger("aiosqlite").setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown"""
    settings: Settings = app.state.settings
    logger.info(f"Starting SDK admin portal auth service in {settings.APP_MODE.value} mode...")

    await init_db()
    logger.info("Database initialized")

    yield

    # Let detached last-seen writes finish before the engine goes away
    background: BackgroundTasks = app.state.background
    if background.pending:
        logger.info(f"Waiting for {background.pending} background task(s)")
    await background.drain()
    logger.info("Shutting down SDK admin portal auth service...")


MAX_ERROR_STRING_CHARS = 400
MAX_ERROR_CONTAINER_ITEMS = 50
MAX_ERROR_DEPTH = 8


def _truncate_string(value: str, max_chars: int = MAX_ERROR_STRING_CHARS) -> str:
    if len(value) <= max_chars:
        return value
    return f"{value[:max_chars]}…(truncated)"


def _sanitize_for_json(value: Any, *, _depth: int = 0) -> Any:
    """
    Make sure error payloads are always UTF-8 encodable.

    RequestValidationError details echo user input (including submitted
    passwords and PINs), so strings are truncated and containers capped.
    """
    if _depth > MAX_ERROR_DEPTH:
        return "<max depth reached>"
    if value is None:
        return None
    if isinstance(value, (int, float, bool)):
        return value
    if isinstance(value, str):
        safe = value.encode("utf-8", errors="replace").decode("utf-8", errors="replace")
        return _truncate_string(safe)
    if isinstance(value, bytes):
        return _truncate_string(value.decode("utf-8", errors="replace"))
    if isinstance(value, (list, tuple, set)):
        items = list(value)
        out = [_sanitize_for_json(v, _depth=_depth + 1) for v in items[:MAX_ERROR_CONTAINER_ITEMS]]
        if len(items) > MAX_ERROR_CONTAINER_ITEMS:
            out.append(f"... ({len(items) - MAX_ERROR_CONTAINER_ITEMS} more items truncated)")
        return out
    if isinstance(value, dict):
        items = list(value.items())
        out: dict[str, Any] = {}
        for k, v in items[:MAX_ERROR_CONTAINER_ITEMS]:
            out[str(_sanitize_for_json(k, _depth=_depth + 1))] = _sanitize_for_json(v, _depth=_depth + 1)
        if len(items) > MAX_ERROR_CONTAINER_ITEMS:
            out["__truncated__"] = f"{len(items) - MAX_ERROR_CONTAINER_ITEMS} more keys truncated"
        return out
    return _sanitize_for_json(str(value), _depth=_depth + 1)


_SECRET_FIELDS = frozenset({"password", "pin", "refreshToken", "refresh_token"})


def _redact_validation_errors(errors: list) -> list:
    """Drop the echoed input of errors raised on secret fields."""
    redacted = []
    for error in errors:
        error = dict(error)
        if any(part in _SECRET_FIELDS for part in error.get("loc", ())):
            error.pop("input", None)
            error.pop("ctx", None)
        redacted.append(error)
    return redacted


async def auth_error_handler(request: Request, exc: AuthError) -> JSONResponse:
    headers = {"WWW-Authenticate": "Bearer"} if exc.status_code == status.HTTP_401_UNAUTHORIZED else None
    return JSONResponse(
        status_code=exc.status_code,
        content={"success": False, "message": exc.message},
        headers=headers,
    )


async def request_validation_exception_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    safe_errors = _sanitize_for_json(_redact_validation_errors(list(exc.errors())))
    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content={"success": False, "message": "Invalid request", "detail": safe_errors},
    )


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    """
    Build the application.

    Auth configuration is resolved here, once; a missing signing secret
    raises ConfigurationError and the process does not start.
    """
    settings = settings or get_settings()
    configure_logging(settings)

    auth_config = AuthConfig.from_settings(settings)
    codecs = TokenCodecs.from_config(auth_config)

    app = FastAPI(
        title="SDK Admin Portal Auth",
        description="Session, authentication and role guard layer for the SDK admin portal",
        version="1.0.0",
        lifespan=lifespan,
        debug=(settings.APP_MODE == AppMode.DEV and settings.DEBUG),
    )
    app.state.settings = settings
    app.state.auth_config = auth_config
    app.state.codecs = codecs
    app.state.background = BackgroundTasks(log=logging.getLogger("services.background"))

    app.add_exception_handler(AuthError, auth_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_exception_handler)

    # Middlewares (order matters - first added = last executed)
    # 1. Edge gatekeeper - redirects page requests without a valid cookie
    app.add_middleware(
        EdgeGatekeeperMiddleware,
        codec=codecs.portal,
        protected_prefixes=auth_config.protected_path_prefixes,
        cookie_name=auth_config.cookie_name,
        sign_in_path=auth_config.sign_in_path,
    )

    # 2. Request logging (development only)
    if settings.APP_MODE == AppMode.DEV:
        from middleware.logging import RequestLoggingMiddleware, configure_request_logging
        configure_request_logging(settings.LOG_LEVEL)
        app.add_middleware(RequestLoggingMiddleware, cookie_name=auth_config.cookie_name)

    # 3. CORS middleware - must be last (first to process incoming requests)
    origins = settings.CORS_ORIGINS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=origins,
        allow_credentials="*" not in origins,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    api_router = APIRouter(prefix="/api")
    api_router.include_router(auth.router)
    api_router.include_router(management.router)
    api_router.include_router(driverapp.router)
    app.include_router(api_router)

    @app.get("/health")
    async def health_check():
        """Health check endpoint"""
        return {
            "status": "healthy",
            "mode": settings.APP_MODE.value,
        }

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    _settings = get_settings()
    uvicorn.run(
        "main:app",
        host=_settings.HOST,
        port=_settings.PORT,
        reload=(_settings.APP_MODE == AppMode.DEV),
    )
