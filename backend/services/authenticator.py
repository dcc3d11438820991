"""Request authentication for portal (cookie) and driver-app (bearer) callers."""

import logging
import re
from datetime import datetime
from typing import Optional

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from models.user import User
from services.errors import (
    Forbidden,
    TokenVerificationError,
    TransientStoreError,
    Unauthenticated,
)
from services.principals import DriverPrincipal, PortalPrincipal
from services.sessions import SessionStore, hash_session_token
from services.tokens import DRIVER_ROLE, TokenCodec

logger = logging.getLogger(__name__)

_BEARER_RE = re.compile(r"^Bearer\s+(.+)$", re.IGNORECASE)


def extract_bearer_token(authorization: Optional[str]) -> Optional[str]:
    """Return the token from an `Authorization: Bearer <token>` header value."""
    if not authorization:
        return None
    match = _BEARER_RE.match(authorization.strip())
    if match is None:
        return None
    token = match.group(1).strip()
    return token or None


class PortalAuthenticator:
    """
    Resolves a portal cookie credential to a PortalPrincipal.

    Every request consults the session table, so a revoked session is
    rejected even while its signed credential is still within its lifetime.
    """

    def __init__(self, codec: TokenCodec, db: AsyncSession, sessions: SessionStore):
        self.codec = codec
        self.db = db
        self.sessions = sessions

    async def authenticate(
        self, token: Optional[str], *, now: Optional[datetime] = None
    ) -> PortalPrincipal:
        """
        Raises:
            Unauthenticated: for every failure; the cause is only logged
        """
        if not token:
            raise Unauthenticated()

        try:
            claims = self.codec.verify(token, now=now)
        except TokenVerificationError as e:
            logger.warning("Portal credential rejected: %s (%s)", type(e).__name__, e)
            raise Unauthenticated() from e

        try:
            user_id = int(claims.subject)
        except (TypeError, ValueError):
            logger.warning("Portal credential has non-numeric subject")
            raise Unauthenticated()

        try:
            session = await self.sessions.find_active_by_token_hash(
                hash_session_token(token), user_id=user_id, now=now
            )
        except TransientStoreError as e:
            logger.error("Session lookup failed, rejecting request: %s", e)
            raise Unauthenticated() from e

        if session is None:
            logger.info("No active session for user %s", user_id)
            raise Unauthenticated()

        try:
            result = await self.db.execute(select(User).where(User.id == user_id))
            user = result.scalar_one_or_none()
        except SQLAlchemyError as e:
            logger.error("User lookup failed, rejecting request: %s", e)
            raise Unauthenticated() from e

        # Deleted and disabled accounts look the same as a bad token to the caller
        if user is None or not user.is_active:
            raise Unauthenticated()

        self.sessions.schedule_touch(session, now=now)

        return PortalPrincipal.from_user(user, session=session)


class DriverAuthenticator:
    """
    Resolves a driver-app bearer credential to a DriverPrincipal.

    Access credentials are short-lived and self-contained: no database
    lookup happens here. Device revocation is enforced at refresh.
    """

    def __init__(self, codec: TokenCodec):
        self.codec = codec

    def authenticate(
        self, authorization: Optional[str], *, now: Optional[datetime] = None
    ) -> DriverPrincipal:
        """
        Raises:
            Unauthenticated: missing or invalid credential (401)
            Forbidden: valid credential without the driver role (403)
        """
        token = extract_bearer_token(authorization)
        if token is None:
            raise Unauthenticated("Missing token")

        try:
            claims = self.codec.verify(token, now=now)
        except TokenVerificationError as e:
            logger.warning("Driver credential rejected: %s (%s)", type(e).__name__, e)
            raise Unauthenticated("Invalid token") from e

        if claims.role != DRIVER_ROLE:
            logger.warning("Driver endpoint called with role %r", claims.role)
            raise Forbidden()

        device_id = claims.extra.get("deviceId")
        return DriverPrincipal(
            id=claims.subject,
            device_id=device_id if isinstance(device_id, str) else None,
            claims=dict(claims.extra),
        )
