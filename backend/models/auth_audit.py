"""Auth audit log model for security event tracking."""

from sqlalchemy import Column, DateTime, ForeignKey, Index, Integer, String, Text, Boolean
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from db.database import Base


class AuthAuditLog(Base):
    """
    Stores authentication-related events for security auditing.

    Portal events reference user_id, driver-app events reference driver_id.
    Both are optional so failed logins for unknown accounts are still recorded.
    """

    __tablename__ = "auth_audit_logs"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(
        Integer,
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    driver_id = Column(
        Integer,
        ForeignKey("drivers.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    action = Column(String(50), nullable=False, index=True)
    ip_address = Column(String(45), nullable=True)  # IPv4 or IPv6
    user_agent = Column(String(500), nullable=True)
    success = Column(Boolean, default=True, nullable=False)
    error_message = Column(Text, nullable=True)
    metadata_json = Column(Text, nullable=True)  # Additional context as JSON
    created_at = Column(DateTime(timezone=True), server_default=func.now(), index=True)

    user = relationship("User", back_populates="auth_audit_logs")

    __table_args__ = (
        Index("ix_auth_audit_user_action", "user_id", "action"),
        Index("ix_auth_audit_created_success", "created_at", "success"),
    )

    # Action constants
    ACTION_LOGIN = "login"
    ACTION_FAILED_LOGIN = "failed_login"
    ACTION_LOGOUT = "logout"
    ACTION_SESSION_REVOKE = "session_revoke"
    ACTION_DRIVER_PIN_LOGIN = "driver_pin_login"
    ACTION_DRIVER_PIN_FAILED = "driver_pin_failed"
    ACTION_DRIVER_PIN_LOCKED = "driver_pin_locked"
    ACTION_DRIVER_REFRESH = "driver_refresh"
    ACTION_DRIVER_REFRESH_REUSE = "driver_refresh_reuse"
    ACTION_DEVICE_REVOKE = "device_revoke"

    def __repr__(self):
        return f"<AuthAuditLog(id={self.id}, user_id={self.user_id}, action='{self.action}', success={self.success})>"
