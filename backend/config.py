import logging
import warnings
from dataclasses import dataclass
from enum import Enum
from functools import lru_cache
from typing import List, Optional

from pydantic_settings import BaseSettings


logger = logging.getLogger(__name__)


DEFAULT_PROTECTED_PATH_PREFIXES = (
    "/dashboard",
    "/calendar",
    "/funerals",
    "/transactions",
    "/policies",
    "/prepaid-societies",
    "/daily-activity",
    "/claims",
    "/users",
    "/account",
)


class AppMode(str, Enum):
    DEV = "dev"
    PROD = "prod"


class ConfigurationError(RuntimeError):
    """Raised at process start when required auth configuration is missing."""


class Settings(BaseSettings):
    # Application mode - defaults to DEV for safety
    # SECURITY: In production, explicitly set APP_MODE=prod
    APP_MODE: AppMode = AppMode.DEV

    # Debug mode - MUST be False in production
    DEBUG: bool = False

    # Database (SQLite default for dev, use PostgreSQL in production)
    DATABASE_URL: str = "sqlite+aiosqlite:///./sdk_admin_portal.db"

    # Server configuration
    HOST: str = "0.0.0.0"
    PORT: int = 8000

    # Portal JWT (cookie credential)
    # SECURITY: no defaults - the process refuses to start without these.
    # Generate with: python -c "import secrets; print(secrets.token_urlsafe(64))"
    JWT_SECRET: str = ""
    ALGORITHM: str = "HS256"
    JWT_ISSUER: str = "sdk-admin-portal"
    JWT_AUDIENCE: str = "sdk-admin-portal-web"
    PORTAL_TOKEN_TTL_SECONDS: int = 60 * 60 * 8  # 8 hours

    # Driver app JWT (bearer credentials)
    DRIVERAPP_JWT_SECRET: str = ""
    DRIVERAPP_JWT_REFRESH_SECRET: str = ""
    DRIVERAPP_ACCESS_TTL_SECONDS: int = 900  # 15 minutes
    DRIVERAPP_REFRESH_TTL_DAYS: int = 30

    # Driver PIN lockout
    DRIVER_PIN_MAX_FAILED_ATTEMPTS: int = 5
    DRIVER_PIN_LOCK_MINUTES: int = 10

    # Session bookkeeping
    SESSION_LAST_SEEN_THROTTLE_SECONDS: int = 60

    # Cookie + edge gatekeeper
    AUTH_COOKIE_NAME: str = "auth-token"
    SIGN_IN_PATH: str = "/auth/signin"
    # Comma-separated list; empty means the built-in defaults
    PROTECTED_PATH_PREFIXES: str = ""

    # Roles allowed to use management endpoints (comma-separated)
    MANAGEMENT_ROLES: str = "admin,manager"

    # CORS - comma-separated list of allowed origins
    CORS_ALLOWED_ORIGINS: str = ""

    @property
    def protected_path_prefixes(self) -> tuple[str, ...]:
        prefixes = _split_csv(self.PROTECTED_PATH_PREFIXES)
        return tuple(prefixes) if prefixes else DEFAULT_PROTECTED_PATH_PREFIXES

    @property
    def management_roles(self) -> frozenset[str]:
        return frozenset(_split_csv(self.MANAGEMENT_ROLES))

    @property
    def CORS_ORIGINS(self) -> List[str]:
        """
        Get allowed CORS origins.

        SECURITY: In production, never return ["*"]. Cookie credentials are
        sent cross-origin only to explicitly configured origins.
        """
        origins = []

        if self.APP_MODE == AppMode.DEV:
            origins = [
                "http://localhost:3000",
                "http://127.0.0.1:3000",
            ]

        origins.extend(_split_csv(self.CORS_ALLOWED_ORIGINS))

        if not origins and self.APP_MODE == AppMode.PROD:
            logger.warning(
                "SECURITY WARNING: No CORS_ALLOWED_ORIGINS configured in production. "
                "Cross-origin requests will be blocked."
            )

        return origins

    @property
    def LOG_LEVEL(self) -> str:
        return "DEBUG" if self.DEBUG else "INFO"

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        extra = "ignore"  # Ignore extra env variables


def _split_csv(value: Optional[str]) -> list[str]:
    if not value:
        return []
    return [item.strip() for item in value.split(",") if item.strip()]


@dataclass(frozen=True)
class AuthConfig:
    """
    Immutable auth configuration, built once at process start.

    Token codecs, authenticators and the edge gatekeeper receive this value
    explicitly; nothing in the auth path reads environment variables.
    """

    portal_secret: str
    driver_access_secret: str
    driver_refresh_secret: str
    issuer: str
    audience: str
    algorithm: str = "HS256"
    portal_ttl_seconds: int = 60 * 60 * 8
    driver_access_ttl_seconds: int = 900
    driver_refresh_ttl_days: int = 30
    last_seen_throttle_seconds: int = 60
    cookie_name: str = "auth-token"
    cookie_secure: bool = False
    sign_in_path: str = "/auth/signin"
    protected_path_prefixes: tuple[str, ...] = DEFAULT_PROTECTED_PATH_PREFIXES
    management_roles: frozenset[str] = frozenset({"admin", "manager"})
    pin_max_failed_attempts: int = 5
    pin_lock_minutes: int = 10

    @classmethod
    def from_settings(cls, settings: Settings) -> "AuthConfig":
        """
        Build the auth configuration, failing fast on missing secrets.

        Raises:
            ConfigurationError: if any signing secret is absent.
        """
        required = {
            "JWT_SECRET": settings.JWT_SECRET,
            "DRIVERAPP_JWT_SECRET": settings.DRIVERAPP_JWT_SECRET,
            "DRIVERAPP_JWT_REFRESH_SECRET": settings.DRIVERAPP_JWT_REFRESH_SECRET,
        }
        missing = [name for name, value in required.items() if not value]
        if missing:
            error_msg = f"Missing required auth secret(s): {', '.join(missing)}"
            logger.critical(error_msg)
            raise ConfigurationError(error_msg)

        if settings.DRIVERAPP_JWT_SECRET == settings.DRIVERAPP_JWT_REFRESH_SECRET:
            # Same secret would let an access token pass refresh verification.
            error_msg = "DRIVERAPP_JWT_SECRET and DRIVERAPP_JWT_REFRESH_SECRET must differ"
            logger.critical(error_msg)
            raise ConfigurationError(error_msg)

        return cls(
            portal_secret=settings.JWT_SECRET,
            driver_access_secret=settings.DRIVERAPP_JWT_SECRET,
            driver_refresh_secret=settings.DRIVERAPP_JWT_REFRESH_SECRET,
            issuer=settings.JWT_ISSUER,
            audience=settings.JWT_AUDIENCE,
            algorithm=settings.ALGORITHM,
            portal_ttl_seconds=settings.PORTAL_TOKEN_TTL_SECONDS,
            driver_access_ttl_seconds=settings.DRIVERAPP_ACCESS_TTL_SECONDS,
            driver_refresh_ttl_days=settings.DRIVERAPP_REFRESH_TTL_DAYS,
            last_seen_throttle_seconds=settings.SESSION_LAST_SEEN_THROTTLE_SECONDS,
            cookie_name=settings.AUTH_COOKIE_NAME,
            cookie_secure=settings.APP_MODE == AppMode.PROD,
            sign_in_path=settings.SIGN_IN_PATH,
            protected_path_prefixes=settings.protected_path_prefixes,
            management_roles=settings.management_roles,
            pin_max_failed_attempts=settings.DRIVER_PIN_MAX_FAILED_ATTEMPTS,
            pin_lock_minutes=settings.DRIVER_PIN_LOCK_MINUTES,
        )


def _validate_settings(settings: Settings) -> Settings:
    """
    Validate settings and warn/error on security issues.

    Missing secrets are not checked here; AuthConfig.from_settings owns that
    so the CLI can run maintenance commands without signing keys.
    """
    if settings.APP_MODE == AppMode.PROD:
        # CRITICAL: Fail fast if DEBUG is enabled in production
        if settings.DEBUG:
            error_msg = (
                "CRITICAL SECURITY ERROR: DEBUG=True in production! "
                "Debug mode exposes sensitive information in error responses. "
                "Set DEBUG=False or remove the DEBUG environment variable."
            )
            logger.critical(error_msg)
            raise ValueError(error_msg)

        for name in ("JWT_SECRET", "DRIVERAPP_JWT_SECRET", "DRIVERAPP_JWT_REFRESH_SECRET"):
            value = getattr(settings, name)
            if value and len(value) < 32:
                warnings.warn(
                    f"{name} appears to be weak (less than 32 characters). "
                    "Consider using a longer, more random key for production.",
                    SecurityWarning,
                    stacklevel=2,
                )

    return settings


class SecurityWarning(UserWarning):
    """Warning for security-related configuration issues."""
    pass


@lru_cache()
def get_settings() -> Settings:
    """
    Get application settings (cached).

    This function validates settings on first access and raises errors
    for critical security misconfigurations in production.
    """
    settings = Settings()
    return _validate_settings(settings)
