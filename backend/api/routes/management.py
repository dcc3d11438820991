"""Management routes: active portal sessions and forced revocation."""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from api.dependencies import get_auth_cookie, get_session_store, require_management
from db.database import get_db
from models.auth_audit import AuthAuditLog
from models.driver import Driver
from models.user_session import UserSession
from schemas.auth import (
    RevokeSessionRequest,
    SessionListResponse,
    SessionSummary,
    SessionUserSummary,
    SuccessResponse,
    TrustedDeviceListResponse,
    TrustedDeviceSummary,
)
from services.audit import AuditService, get_client_info
from services.driverapp import list_trusted_devices
from services.errors import BadRequest, NotFound
from services.principals import PortalPrincipal
from services.sessions import SessionStore, hash_session_token

router = APIRouter(prefix="/management", tags=["management"])
logger = logging.getLogger(__name__)

DEFAULT_REVOKE_REASON = "revoked_by_admin"


def _summarize(session: UserSession, current_hash: Optional[str]) -> SessionSummary:
    user = session.user
    return SessionSummary(
        id=session.id,
        user_id=session.user_id,
        platform=session.platform,
        mode=session.mode,
        ip_address=session.ip_address,
        user_agent=session.user_agent,
        created_at=session.created_at,
        last_seen_at=session.last_seen_at,
        expires_at=session.expires_at,
        user=SessionUserSummary(id=user.id, email=user.email, name=user.name, role=user.role)
        if user is not None
        else None,
        is_current=session.token_hash == current_hash,
    )


@router.get("/sessions", response_model=SessionListResponse)
async def list_sessions(
    principal: PortalPrincipal = Depends(require_management),
    token: Optional[str] = Depends(get_auth_cookie),
    sessions: SessionStore = Depends(get_session_store),
):
    """List all active portal sessions (management only)."""
    current_hash = hash_session_token(token) if token else None
    active = await sessions.list_active()
    summaries = [_summarize(s, current_hash) for s in active]
    return SessionListResponse(sessions=summaries, total=len(summaries))


@router.post("/sessions/revoke", response_model=SuccessResponse)
async def revoke_session(
    body: RevokeSessionRequest,
    request: Request,
    principal: PortalPrincipal = Depends(require_management),
    db: AsyncSession = Depends(get_db),
    sessions: SessionStore = Depends(get_session_store),
):
    """
    Force-revoke a portal session (management only).

    The holder is rejected on their next request even though their cookie
    credential has not expired.
    """
    if body.session_id is None:
        raise BadRequest("sessionId is required")

    target = await db.get(UserSession, body.session_id)
    if target is None:
        raise NotFound("Session not found")

    reason = (body.reason or "").strip() or DEFAULT_REVOKE_REASON
    revoked = await sessions.revoke(body.session_id, reason)

    if revoked:
        ip_address, user_agent = get_client_info(request)
        await AuditService(db).log(
            action=AuthAuditLog.ACTION_SESSION_REVOKE,
            user_id=target.user_id,
            ip_address=ip_address,
            user_agent=user_agent,
            metadata={"session_id": body.session_id, "revoked_by": principal.id, "reason": reason},
        )
        logger.info("Session %s revoked by user %s (%s)", body.session_id, principal.id, reason)

    await db.commit()
    return SuccessResponse(message=None if revoked else "Session already revoked")


@router.get("/drivers/{driver_id}/devices", response_model=TrustedDeviceListResponse)
async def list_driver_devices(
    driver_id: int,
    principal: PortalPrincipal = Depends(require_management),
    db: AsyncSession = Depends(get_db),
):
    """List a driver's trusted devices, revoked ones included (management only)."""
    if await db.get(Driver, driver_id) is None:
        raise NotFound("Driver not found")

    devices = await list_trusted_devices(db, driver_id)
    return TrustedDeviceListResponse(
        driver_id=driver_id,
        devices=[TrustedDeviceSummary.model_validate(d) for d in devices],
    )
