"""Portal sign-in and sign-out on top of the token codec and session ledger."""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from models.auth_audit import AuthAuditLog
from models.user import User
from models.user_session import UserSession
from services.audit import AuditService
from services.errors import InvalidCredentials
from services.passwords import verify_secret
from services.sessions import SessionStore, hash_session_token
from services.tokens import TokenCodec

logger = logging.getLogger(__name__)


@dataclass
class PortalLogin:
    """Outcome of a successful portal login."""
    token: str
    user: User
    session: UserSession
    expires_at: datetime


class PortalAuthService:
    """Issues portal credentials and records their sessions. Callers commit."""

    def __init__(
        self,
        db: AsyncSession,
        codec: TokenCodec,
        sessions: SessionStore,
        *,
        ttl: timedelta = timedelta(hours=8),
    ):
        self.db = db
        self.codec = codec
        self.sessions = sessions
        self.ttl = ttl
        self.audit = AuditService(db)

    async def login(
        self,
        email: str,
        password: str,
        *,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> PortalLogin:
        """
        Verify email/password, sign a cookie credential and open a session.

        Raises:
            InvalidCredentials: unknown email, wrong password or disabled account
        """
        now = now or datetime.now(timezone.utc)
        normalized_email = email.strip().lower()

        result = await self.db.execute(
            select(User).where(func.lower(User.email) == normalized_email)
        )
        user = result.scalar_one_or_none()

        if user is None or not user.is_active or not verify_secret(user.password_hash, password):
            await self.audit.log(
                action=AuthAuditLog.ACTION_FAILED_LOGIN,
                user_id=user.id if user is not None else None,
                ip_address=ip_address,
                user_agent=user_agent,
                success=False,
                error_message="Invalid email or password",
            )
            logger.info("Failed portal login for %s", normalized_email)
            raise InvalidCredentials("Invalid email or password")

        token = self.codec.sign(str(user.id), role=user.role, ttl=self.ttl, now=now)
        session = await self.sessions.create(
            user.id,
            token,
            self.ttl,
            ip_address=ip_address,
            user_agent=user_agent,
            now=now,
        )

        user.last_login = now
        await self.audit.log(
            action=AuthAuditLog.ACTION_LOGIN,
            user_id=user.id,
            ip_address=ip_address,
            user_agent=user_agent,
            metadata={"session_id": session.id},
        )

        return PortalLogin(token=token, user=user, session=session, expires_at=now + self.ttl)

    async def logout(
        self,
        token: Optional[str],
        *,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None,
    ) -> bool:
        """Revoke the session behind `token`. Returns False if none was active."""
        if not token:
            return False

        session = await self.sessions.find_active_by_token_hash(hash_session_token(token))
        if session is None:
            return False

        revoked = await self.sessions.revoke(session.id, "logout")
        if revoked:
            await self.audit.log(
                action=AuthAuditLog.ACTION_LOGOUT,
                user_id=session.user_id,
                ip_address=ip_address,
                user_agent=user_agent,
                metadata={"session_id": session.id},
            )
        return revoked
