"""Driver-app PIN login, refresh rotation and trusted device revocation."""

import hashlib
import hmac
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional
from uuid import uuid4

from sqlalchemy import and_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from config import AuthConfig
from models.auth_audit import AuthAuditLog
from models.driver import Driver
from models.driver_trusted_device import DriverTrustedDevice
from models.user_session import as_utc
from services.audit import AuditService
from services.errors import InvalidCredentials, PinLocked, TokenVerificationError, Unauthenticated
from services.passwords import verify_secret
from services.tokens import DRIVER_ROLE, REFRESH_TOKEN_TYPE, TokenCodecs

logger = logging.getLogger(__name__)


@dataclass
class DriverTokens:
    """Credentials returned to the driver app."""
    access_token: str
    refresh_token: str
    device_id: str
    expires_in: int


@dataclass
class DeviceMeta:
    platform: str = "unknown"
    model: str = "unknown"
    app_version: str = "unknown"


def hash_refresh_token(token: str) -> str:
    """Create SHA-256 hash of a refresh credential for storage."""
    return hashlib.sha256(token.encode()).hexdigest()


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


async def revoke_trusted_device(
    db: AsyncSession,
    device_id: str,
    reason: str,
    *,
    now: Optional[datetime] = None,
) -> bool:
    """
    Revoke a trusted device immediately.

    Returns:
        True if this call revoked it, False if unknown or already revoked
    """
    result = await db.execute(
        update(DriverTrustedDevice)
        .where(
            and_(
                DriverTrustedDevice.device_id == device_id,
                DriverTrustedDevice.revoked_at.is_(None),
            )
        )
        .values(revoked_at=now or _utcnow(), revoke_reason=reason)
        .execution_options(synchronize_session=False)
    )
    await db.flush()
    return result.rowcount == 1


async def list_trusted_devices(db: AsyncSession, driver_id: int) -> list[DriverTrustedDevice]:
    """All devices a driver has enrolled, most recently seen first."""
    result = await db.execute(
        select(DriverTrustedDevice)
        .where(DriverTrustedDevice.driver_id == driver_id)
        .order_by(DriverTrustedDevice.last_seen_at.desc())
        .execution_options(populate_existing=True)
    )
    return list(result.scalars().all())


class DriverAuthService:
    """
    Driver credential lifecycle.

    State changes are flushed, never committed; routes commit on success and
    also on rejection, so lockout counters and device revocations persist.
    """

    def __init__(self, db: AsyncSession, codecs: TokenCodecs, config: AuthConfig):
        self.db = db
        self.codecs = codecs
        self.config = config
        self.audit = AuditService(db)

    def _issue(self, driver_id: int, device_id: str, now: datetime) -> DriverTokens:
        access_token = self.codecs.driver_access.sign(
            str(driver_id),
            role=DRIVER_ROLE,
            extra={"deviceId": device_id},
            now=now,
        )
        refresh_token = self.codecs.driver_refresh.sign(
            str(driver_id),
            extra={"deviceId": device_id, "typ": REFRESH_TOKEN_TYPE},
            now=now,
        )
        return DriverTokens(
            access_token=access_token,
            refresh_token=refresh_token,
            device_id=device_id,
            expires_in=self.config.driver_access_ttl_seconds,
        )

    async def pin_login(
        self,
        driver_identifier: str,
        pin: str,
        device: Optional[DeviceMeta] = None,
        *,
        ip_address: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> DriverTokens:
        """
        Authenticate a driver by code and PIN and enroll a trusted device.

        Raises:
            InvalidCredentials: unknown/inactive driver, wrong or expired PIN
            PinLocked: too many failed attempts within the lock window
        """
        now = now or _utcnow()
        device = device or DeviceMeta()

        result = await self.db.execute(
            select(Driver).where(
                and_(Driver.driver_code == driver_identifier, Driver.active.is_(True))
            )
        )
        driver = result.scalar_one_or_none()
        if driver is None or not driver.pin_hash:
            raise InvalidCredentials()

        locked_until = as_utc(driver.pin_locked_until)
        if locked_until is not None and locked_until > now:
            raise PinLocked()

        pin_expires_at = as_utc(driver.pin_expires_at)
        if pin_expires_at is not None and pin_expires_at < now:
            raise InvalidCredentials("PIN expired. Contact office.")

        if not verify_secret(driver.pin_hash, pin):
            attempts = (driver.pin_failed_attempts or 0) + 1
            driver.pin_failed_attempts = attempts
            action = AuthAuditLog.ACTION_DRIVER_PIN_FAILED
            if attempts >= self.config.pin_max_failed_attempts:
                driver.pin_locked_until = now + timedelta(minutes=self.config.pin_lock_minutes)
                action = AuthAuditLog.ACTION_DRIVER_PIN_LOCKED
                logger.warning("Driver %s PIN locked after %s failed attempts", driver.id, attempts)
            await self.audit.log(
                action=action,
                driver_id=driver.id,
                ip_address=ip_address,
                success=False,
                metadata={"attempts": attempts},
            )
            raise InvalidCredentials()

        driver.pin_failed_attempts = 0
        driver.pin_locked_until = None

        device_id = str(uuid4())
        tokens = self._issue(driver.id, device_id, now)

        self.db.add(
            DriverTrustedDevice(
                driver_id=driver.id,
                device_id=device_id,
                refresh_token_hash=hash_refresh_token(tokens.refresh_token),
                platform=device.platform[:50],
                model=device.model[:100],
                app_version=device.app_version[:50],
                first_seen_at=now,
                last_seen_at=now,
            )
        )
        await self.audit.log(
            action=AuthAuditLog.ACTION_DRIVER_PIN_LOGIN,
            driver_id=driver.id,
            ip_address=ip_address,
            user_agent=f"{device.platform}/{device.model}/{device.app_version}",
            metadata={"device_id": device_id},
        )
        await self.db.flush()
        return tokens

    async def refresh(
        self,
        refresh_token: str,
        device_id: str,
        *,
        ip_address: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> DriverTokens:
        """
        Rotate the refresh credential of a trusted device.

        A refresh credential that verifies but does not match the stored hash
        has been replaced already, so it was copied: the device is revoked.

        Raises:
            Unauthenticated: invalid credential, revoked device or reuse
        """
        now = now or _utcnow()

        try:
            claims = self.codecs.driver_refresh.verify(refresh_token, now=now)
        except TokenVerificationError as e:
            logger.warning("Driver refresh rejected: %s (%s)", type(e).__name__, e)
            raise Unauthenticated("Invalid refresh token") from e

        if claims.extra.get("deviceId") != device_id or claims.extra.get("typ") != REFRESH_TOKEN_TYPE:
            raise Unauthenticated("Invalid refresh token")

        # Rotation and revocation are bulk UPDATEs; always read the stored row
        result = await self.db.execute(
            select(DriverTrustedDevice)
            .where(DriverTrustedDevice.device_id == device_id)
            .execution_options(populate_existing=True)
        )
        device = result.scalar_one_or_none()
        if device is None or device.revoked_at is not None:
            raise Unauthenticated("Device revoked")

        if str(device.driver_id) != claims.subject:
            logger.warning("Refresh subject %s does not own device %s", claims.subject, device_id)
            raise Unauthenticated("Invalid refresh token")

        presented_hash = hash_refresh_token(refresh_token)
        if not hmac.compare_digest(presented_hash, device.refresh_token_hash):
            await self.revoke_device(device_id, "refresh_token_mismatch", now=now)
            await self.audit.log(
                action=AuthAuditLog.ACTION_DRIVER_REFRESH_REUSE,
                driver_id=device.driver_id,
                ip_address=ip_address,
                success=False,
                error_message="Refresh token mismatch - device revoked",
                metadata={"device_id": device_id},
            )
            raise Unauthenticated("Invalid refresh token")

        driver = await self.db.get(Driver, device.driver_id)
        if driver is None or not driver.active:
            raise Unauthenticated("Invalid refresh token")

        tokens = self._issue(device.driver_id, device_id, now)

        # The old hash in the WHERE clause lets only one concurrent refresh win.
        rotated = await self.db.execute(
            update(DriverTrustedDevice)
            .where(
                and_(
                    DriverTrustedDevice.device_id == device_id,
                    DriverTrustedDevice.refresh_token_hash == presented_hash,
                    DriverTrustedDevice.revoked_at.is_(None),
                )
            )
            .values(
                refresh_token_hash=hash_refresh_token(tokens.refresh_token),
                last_seen_at=now,
            )
            .execution_options(synchronize_session=False)
        )
        if rotated.rowcount != 1:
            raise Unauthenticated("Invalid refresh token")

        await self.audit.log(
            action=AuthAuditLog.ACTION_DRIVER_REFRESH,
            driver_id=device.driver_id,
            ip_address=ip_address,
            metadata={"device_id": device_id},
        )
        await self.db.flush()
        return tokens

    async def revoke_device(
        self,
        device_id: str,
        reason: str,
        *,
        now: Optional[datetime] = None,
    ) -> bool:
        return await revoke_trusted_device(self.db, device_id, reason, now=now)

    async def get_driver(self, driver_id: int) -> Optional[Driver]:
        return await self.db.get(Driver, driver_id)

    async def list_devices(self, driver_id: int) -> list[DriverTrustedDevice]:
        return await list_trusted_devices(self.db, driver_id)
