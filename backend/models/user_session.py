"""Portal session ledger keyed by the hash of the issued cookie credential."""

from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import Column, DateTime, ForeignKey, Index, Integer, String
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from db.database import Base


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """SQLite hands back naive datetimes; treat them as UTC."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class UserSession(Base):
    """
    One row per portal login.

    Only the SHA-256 hash of the cookie credential is stored. Rows are never
    deleted: revoked and expired sessions stay for auditing. A session is
    active while revoked_at is NULL and expires_at is in the future.
    """

    __tablename__ = "user_sessions"

    PLATFORM_WEB = "WEB"
    PLATFORM_STAFF_APP = "STAFF_APP"
    MODE_ONSITE = "ONSITE"
    MODE_REMOTE = "REMOTE"
    PLATFORMS = (PLATFORM_WEB, PLATFORM_STAFF_APP)
    MODES = (MODE_ONSITE, MODE_REMOTE)

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(
        Integer,
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    token_hash = Column(String(64), unique=True, nullable=False, index=True)  # SHA-256 hash
    platform = Column(String(20), nullable=False, default=PLATFORM_WEB)
    mode = Column(String(20), nullable=False, default=MODE_ONSITE)
    ip_address = Column(String(45), nullable=True)  # IPv4 or IPv6 address
    user_agent = Column(String(500), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    last_seen_at = Column(DateTime(timezone=True), nullable=True)
    expires_at = Column(DateTime(timezone=True), nullable=False, index=True)
    revoked_at = Column(DateTime(timezone=True), nullable=True)
    revoke_reason = Column(String(200), nullable=True)

    user = relationship("User", back_populates="sessions")

    __table_args__ = (
        Index("ix_user_sessions_user_expires", "user_id", "expires_at"),
        Index("ix_user_sessions_revoked_expires", "revoked_at", "expires_at"),
    )

    def is_active(self, now: Optional[datetime] = None) -> bool:
        now = now or datetime.now(timezone.utc)
        return self.revoked_at is None and as_utc(self.expires_at) > now

    def __repr__(self):
        return (
            f"<UserSession(id={self.id}, user_id={self.user_id}, "
            f"revoked={self.revoked_at is not None})>"
        )
