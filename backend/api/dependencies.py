"""FastAPI dependencies wiring the auth services into route handlers."""

from datetime import timedelta
from typing import Callable, Optional

from fastapi import Depends, Header, Request
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from config import AuthConfig
from db.database import get_db, get_session_factory
from services.authenticator import DriverAuthenticator, PortalAuthenticator
from services.background import BackgroundTasks
from services.errors import Unauthenticated
from services.guards import require_role
from services.principals import DriverPrincipal, PortalPrincipal
from services.sessions import SessionStore
from services.tokens import TokenCodecs


def get_auth_config(request: Request) -> AuthConfig:
    return request.app.state.auth_config


def get_codecs(request: Request) -> TokenCodecs:
    return request.app.state.codecs


def get_background(request: Request) -> BackgroundTasks:
    return request.app.state.background


def get_session_store(
    db: AsyncSession = Depends(get_db),
    config: AuthConfig = Depends(get_auth_config),
    background: BackgroundTasks = Depends(get_background),
    session_factory: async_sessionmaker = Depends(get_session_factory),
) -> SessionStore:
    return SessionStore(
        db,
        throttle=timedelta(seconds=config.last_seen_throttle_seconds),
        background=background,
        session_factory=session_factory,
    )


def get_auth_cookie(request: Request) -> Optional[str]:
    config: AuthConfig = request.app.state.auth_config
    return request.cookies.get(config.cookie_name)


async def get_portal_principal(
    token: Optional[str] = Depends(get_auth_cookie),
    db: AsyncSession = Depends(get_db),
    codecs: TokenCodecs = Depends(get_codecs),
    sessions: SessionStore = Depends(get_session_store),
) -> PortalPrincipal:
    """Required portal authentication - raises Unauthenticated (401)."""
    authenticator = PortalAuthenticator(codecs.portal, db, sessions)
    return await authenticator.authenticate(token)


async def get_optional_portal_principal(
    token: Optional[str] = Depends(get_auth_cookie),
    db: AsyncSession = Depends(get_db),
    codecs: TokenCodecs = Depends(get_codecs),
    sessions: SessionStore = Depends(get_session_store),
) -> Optional[PortalPrincipal]:
    """Optional portal authentication - returns None instead of raising."""
    if not token:
        return None
    try:
        return await PortalAuthenticator(codecs.portal, db, sessions).authenticate(token)
    except Unauthenticated:
        return None


def get_driver_principal(
    authorization: Optional[str] = Header(None),
    codecs: TokenCodecs = Depends(get_codecs),
) -> DriverPrincipal:
    """Driver-app bearer authentication - 401 without/invalid token, 403 for non-drivers."""
    return DriverAuthenticator(codecs.driver_access).authenticate(authorization)


def require_roles(*roles: str) -> Callable:
    """
    Build a dependency that admits portal principals holding any of `roles`.

    Usage:
        @router.get("/x", dependencies=[Depends(require_roles("admin"))])
    """

    async def _require(
        principal: PortalPrincipal = Depends(get_portal_principal),
    ) -> PortalPrincipal:
        return require_role(principal, roles)

    return _require


async def require_management(
    principal: PortalPrincipal = Depends(get_portal_principal),
    config: AuthConfig = Depends(get_auth_config),
) -> PortalPrincipal:
    return require_role(principal, config.management_roles)
