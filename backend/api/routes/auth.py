"""Portal authentication routes: cookie login, logout and current user."""

import logging
from datetime import timedelta
from typing import Optional

from fastapi import APIRouter, Depends, Request, Response
from sqlalchemy.ext.asyncio import AsyncSession

from api.dependencies import (
    get_auth_config,
    get_auth_cookie,
    get_codecs,
    get_portal_principal,
    get_session_store,
)
from config import AuthConfig
from db.database import get_db
from schemas.auth import CurrentUserResponse, LoginRequest, LoginResponse, SuccessResponse, UserResponse
from services.audit import get_client_info
from services.errors import AuthError
from services.guards import is_management, render_permissions
from services.portal import PortalAuthService
from services.principals import PortalPrincipal
from services.sessions import SessionStore
from services.tokens import TokenCodecs

router = APIRouter(prefix="/auth", tags=["auth"])
logger = logging.getLogger(__name__)


def permission_checks(config: AuthConfig) -> dict:
    """Named checks the portal UI uses to decide what to render."""
    return {
        "viewSessions": config.management_roles,
        "revokeSessions": config.management_roles,
        "revokeDevices": config.management_roles,
        "manageUsers": ("admin",),
    }


def _portal_service(
    db: AsyncSession, codecs: TokenCodecs, sessions: SessionStore, config: AuthConfig
) -> PortalAuthService:
    return PortalAuthService(
        db,
        codecs.portal,
        sessions,
        ttl=timedelta(seconds=config.portal_ttl_seconds),
    )


def _clear_auth_cookie(response: Response, config: AuthConfig) -> None:
    response.delete_cookie(
        key=config.cookie_name,
        path="/",
        secure=config.cookie_secure,
        httponly=True,
        samesite="lax",
    )


@router.post("/login", response_model=LoginResponse)
async def login(
    login_data: LoginRequest,
    request: Request,
    response: Response,
    db: AsyncSession = Depends(get_db),
    codecs: TokenCodecs = Depends(get_codecs),
    config: AuthConfig = Depends(get_auth_config),
    sessions: SessionStore = Depends(get_session_store),
):
    """
    Login with email and password.

    Sets the HttpOnly auth cookie and records a session; the credential
    itself is never returned in the body.
    """
    ip_address, user_agent = get_client_info(request)
    service = _portal_service(db, codecs, sessions, config)

    try:
        result = await service.login(
            login_data.email,
            login_data.password,
            ip_address=ip_address,
            user_agent=user_agent,
        )
    except AuthError:
        # Keep the failed-login audit row
        await db.commit()
        raise

    await db.commit()

    # Only set the cookie after a successful commit so a rolled-back
    # session is never handed out.
    response.set_cookie(
        key=config.cookie_name,
        value=result.token,
        httponly=True,
        secure=config.cookie_secure,
        samesite="lax",
        max_age=config.portal_ttl_seconds,
        path="/",
    )

    return LoginResponse(
        user=UserResponse.model_validate(result.user),
        expires_at=result.expires_at,
    )


@router.post("/logout", response_model=SuccessResponse)
async def logout(
    request: Request,
    response: Response,
    token: Optional[str] = Depends(get_auth_cookie),
    db: AsyncSession = Depends(get_db),
    codecs: TokenCodecs = Depends(get_codecs),
    config: AuthConfig = Depends(get_auth_config),
    sessions: SessionStore = Depends(get_session_store),
):
    """Revoke the caller's session and clear the cookie. Always succeeds."""
    ip_address, user_agent = get_client_info(request)
    service = _portal_service(db, codecs, sessions, config)

    revoked = await service.logout(token, ip_address=ip_address, user_agent=user_agent)
    await db.commit()

    _clear_auth_cookie(response, config)
    if not revoked:
        logger.debug("Logout without an active session")
    return SuccessResponse(message="Logged out")


@router.get("/user", response_model=CurrentUserResponse)
async def get_user(
    principal: PortalPrincipal = Depends(get_portal_principal),
    config: AuthConfig = Depends(get_auth_config),
):
    """Get current user with the flags the UI needs to gate management views."""
    return CurrentUserResponse(
        user=UserResponse.model_validate(principal.user),
        is_management=is_management(principal, config.management_roles),
        permissions=render_permissions(principal, permission_checks(config)),
    )
