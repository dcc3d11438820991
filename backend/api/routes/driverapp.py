"""Driver-app routes: PIN login, refresh rotation, device revocation, profile."""

import logging

from fastapi import APIRouter, Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from api.dependencies import get_auth_config, get_codecs, get_driver_principal, require_management
from config import AuthConfig
from db.database import get_db
from models.auth_audit import AuthAuditLog
from schemas.auth import (
    DriverMeResponse,
    DriverPinLoginRequest,
    DriverProfile,
    DriverRefreshRequest,
    DriverTokenResponse,
    RevokeDeviceRequest,
    SuccessResponse,
)
from services.audit import AuditService, get_client_info
from services.driverapp import DeviceMeta, DriverAuthService, DriverTokens
from services.errors import AuthError, BadRequest, Unauthenticated
from services.principals import DriverPrincipal, PortalPrincipal
from services.tokens import TokenCodecs

router = APIRouter(prefix="/driverapp", tags=["driverapp"])
logger = logging.getLogger(__name__)

DEFAULT_DEVICE_REVOKE_REASON = "revoked_by_admin"


def get_driver_auth_service(
    db: AsyncSession = Depends(get_db),
    codecs: TokenCodecs = Depends(get_codecs),
    config: AuthConfig = Depends(get_auth_config),
) -> DriverAuthService:
    return DriverAuthService(db, codecs, config)


def _token_response(tokens: DriverTokens) -> DriverTokenResponse:
    return DriverTokenResponse(
        access_token=tokens.access_token,
        refresh_token=tokens.refresh_token,
        device_id=tokens.device_id,
        expires_in=tokens.expires_in,
    )


@router.post("/auth/pin-login", response_model=DriverTokenResponse)
async def pin_login(
    body: DriverPinLoginRequest,
    request: Request,
    db: AsyncSession = Depends(get_db),
    service: DriverAuthService = Depends(get_driver_auth_service),
):
    """
    Authenticate a driver by code and PIN.

    Enrolls a new trusted device and returns its access/refresh pair.
    """
    ip_address, _ = get_client_info(request)
    device = DeviceMeta(
        platform=body.device.platform,
        model=body.device.model,
        app_version=body.device.app_version,
    )
    try:
        tokens = await service.pin_login(
            body.driver_identifier, body.pin, device, ip_address=ip_address
        )
    except AuthError:
        # Failed-attempt counters and lockout must survive the rejection
        await db.commit()
        raise

    await db.commit()
    return _token_response(tokens)


@router.post("/auth/refresh", response_model=DriverTokenResponse)
async def refresh(
    body: DriverRefreshRequest,
    request: Request,
    db: AsyncSession = Depends(get_db),
    service: DriverAuthService = Depends(get_driver_auth_service),
):
    """Rotate the refresh credential of a trusted device."""
    ip_address, _ = get_client_info(request)
    try:
        tokens = await service.refresh(body.refresh_token, body.device_id, ip_address=ip_address)
    except AuthError:
        # A detected reuse revokes the device; keep that revocation
        await db.commit()
        raise

    await db.commit()
    return _token_response(tokens)


@router.post("/auth/revoke-device", response_model=SuccessResponse)
async def revoke_device(
    body: RevokeDeviceRequest,
    request: Request,
    principal: PortalPrincipal = Depends(require_management),
    db: AsyncSession = Depends(get_db),
    service: DriverAuthService = Depends(get_driver_auth_service),
):
    """Revoke a driver's trusted device (management only)."""
    device_id = (body.device_id or "").strip()
    if not device_id:
        raise BadRequest("deviceId is required")

    reason = (body.reason or "").strip() or DEFAULT_DEVICE_REVOKE_REASON
    revoked = await service.revoke_device(device_id, reason)

    if revoked:
        ip_address, user_agent = get_client_info(request)
        await AuditService(db).log(
            action=AuthAuditLog.ACTION_DEVICE_REVOKE,
            user_id=principal.id,
            ip_address=ip_address,
            user_agent=user_agent,
            metadata={"device_id": device_id, "reason": reason},
        )
        logger.info("Device %s revoked by user %s (%s)", device_id, principal.id, reason)

    await db.commit()
    return SuccessResponse(message=None if revoked else "Device not found or already revoked")


@router.get("/me", response_model=DriverMeResponse)
async def get_me(
    principal: DriverPrincipal = Depends(get_driver_principal),
    service: DriverAuthService = Depends(get_driver_auth_service),
):
    """Get the authenticated driver's profile."""
    try:
        driver_id = int(principal.id)
    except ValueError:
        raise Unauthenticated("Invalid token")

    driver = await service.get_driver(driver_id)
    if driver is None or not driver.active:
        raise Unauthenticated("Invalid token")

    return DriverMeResponse(
        driver=DriverProfile.model_validate(driver),
        device_id=principal.device_id,
    )
