"""Portal session ledger: creation, active lookup, throttled touch, revocation."""

import asyncio
import hashlib
import logging
from datetime import datetime, timedelta, timezone
from typing import Optional

from sqlalchemy import and_, or_, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.orm import selectinload

from models.user_session import UserSession, as_utc
from services.background import BackgroundTasks
from services.errors import TransientStoreError

logger = logging.getLogger(__name__)

DEFAULT_LAST_SEEN_THROTTLE = timedelta(seconds=60)


def hash_session_token(token: str) -> str:
    """
    Hash a session credential for storage and lookup.

    SHA-256 without salt is sufficient: the input is a signed, high-entropy
    token and lookups need a deterministic key.
    """
    return hashlib.sha256(token.encode()).hexdigest()


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class SessionStore:
    """
    Adapter over the user_sessions table.

    Mutations are single-row UPDATEs with WHERE-clause preconditions, so
    concurrent touches and revokes need no locking. Callers own the
    transaction and commit.
    """

    def __init__(
        self,
        db: AsyncSession,
        *,
        throttle: timedelta = DEFAULT_LAST_SEEN_THROTTLE,
        background: Optional[BackgroundTasks] = None,
        session_factory: Optional[async_sessionmaker] = None,
    ):
        self.db = db
        self.throttle = throttle
        self._background = background
        self._session_factory = session_factory

    async def create(
        self,
        user_id: int,
        raw_token: str,
        ttl: timedelta,
        *,
        platform: str = UserSession.PLATFORM_WEB,
        mode: str = UserSession.MODE_ONSITE,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> UserSession:
        """
        Record a new session keyed by the hash of `raw_token`.

        Raises:
            ValueError: unknown platform or mode
        """
        if platform not in UserSession.PLATFORMS:
            raise ValueError(f"Unknown session platform: {platform!r}")
        if mode not in UserSession.MODES:
            raise ValueError(f"Unknown session mode: {mode!r}")

        now = now or _utcnow()
        token_hash = hash_session_token(raw_token)

        # populate_existing: revoke() writes without synchronizing loaded objects
        result = await self.db.execute(
            select(UserSession)
            .where(UserSession.token_hash == token_hash)
            .execution_options(populate_existing=True)
        )
        session = result.scalar_one_or_none()
        if session is None:
            session = UserSession(token_hash=token_hash)
            self.db.add(session)

        session.user_id = user_id
        session.platform = platform
        session.mode = mode
        session.ip_address = ip_address[:45] if ip_address else None
        session.user_agent = user_agent[:500] if user_agent else None
        session.last_seen_at = now
        session.expires_at = now + ttl
        session.revoked_at = None
        session.revoke_reason = None

        await self.db.flush()
        return session

    async def find_active_by_token_hash(
        self,
        token_hash: str,
        *,
        user_id: Optional[int] = None,
        now: Optional[datetime] = None,
    ) -> Optional[UserSession]:
        """
        Return the session only if it is neither revoked nor expired.

        Raises:
            TransientStoreError: the database could not be queried
        """
        now = now or _utcnow()
        conditions = [
            UserSession.token_hash == token_hash,
            UserSession.revoked_at.is_(None),
            UserSession.expires_at > now,
        ]
        if user_id is not None:
            conditions.append(UserSession.user_id == user_id)

        try:
            result = await self.db.execute(select(UserSession).where(and_(*conditions)))
        except SQLAlchemyError as e:
            raise TransientStoreError(str(e)) from e
        return result.scalar_one_or_none()

    def should_touch(self, session: UserSession, now: Optional[datetime] = None) -> bool:
        last_seen = as_utc(session.last_seen_at)
        if last_seen is None:
            return True
        return (now or _utcnow()) - last_seen > self.throttle

    async def touch_last_seen(self, session_id: int, *, now: Optional[datetime] = None) -> bool:
        """
        Set last_seen_at unless it was written within the throttle window.

        The window is enforced in the UPDATE itself, so two touches racing
        inside the window persist at most one write.

        Returns:
            True if a row was written
        """
        now = now or _utcnow()
        cutoff = now - self.throttle
        result = await self.db.execute(
            update(UserSession)
            .where(
                and_(
                    UserSession.id == session_id,
                    or_(
                        UserSession.last_seen_at.is_(None),
                        UserSession.last_seen_at < cutoff,
                    ),
                )
            )
            .values(last_seen_at=now)
            .execution_options(synchronize_session=False)
        )
        await self.db.flush()
        return result.rowcount == 1

    def schedule_touch(
        self, session: UserSession, *, now: Optional[datetime] = None
    ) -> Optional[asyncio.Task]:
        """
        Submit a detached last-seen update if the throttle window has passed.

        The write runs in its own database session after the caller moves on;
        errors are logged by the background runner and never reach the caller.
        """
        if not self.should_touch(session, now):
            return None
        if self._background is None or self._session_factory is None:
            logger.debug("No background runner configured; skipping touch for session %s", session.id)
            return None

        session_id = session.id
        session_factory = self._session_factory
        throttle = self.throttle

        async def _touch() -> None:
            async with session_factory() as db:
                store = SessionStore(db, throttle=throttle)
                written = await store.touch_last_seen(session_id)
                await db.commit()
                if written:
                    logger.debug("Touched last_seen_at for session %s", session_id)

        return self._background.submit(_touch, name=f"touch-session-{session_id}")

    async def revoke(
        self,
        session_id: int,
        reason: str,
        *,
        now: Optional[datetime] = None,
    ) -> bool:
        """
        Revoke a session once.

        The `revoked_at IS NULL` precondition keeps the first revocation's
        time and reason; a repeated call changes nothing.

        Returns:
            True if this call revoked the session
        """
        result = await self.db.execute(
            update(UserSession)
            .where(
                and_(
                    UserSession.id == session_id,
                    UserSession.revoked_at.is_(None),
                )
            )
            .values(revoked_at=now or _utcnow(), revoke_reason=reason)
            .execution_options(synchronize_session=False)
        )
        await self.db.flush()
        return result.rowcount == 1

    async def list_active(self, *, now: Optional[datetime] = None) -> list[UserSession]:
        """All active sessions, most recently seen first."""
        now = now or _utcnow()
        result = await self.db.execute(
            select(UserSession)
            .options(selectinload(UserSession.user))
            .execution_options(populate_existing=True)
            .where(
                and_(
                    UserSession.revoked_at.is_(None),
                    UserSession.expires_at > now,
                )
            )
            .order_by(UserSession.last_seen_at.desc())
        )
        return list(result.scalars().all())
