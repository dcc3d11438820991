"""Trusted driver-app devices holding the current refresh credential hash."""

from sqlalchemy import Column, DateTime, ForeignKey, Index, Integer, String
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from db.database import Base


class DriverTrustedDevice(Base):
    """
    A device enrolled by a successful PIN login.

    Each refresh rotates refresh_token_hash. A device can refresh only while
    revoked_at is NULL; revocation takes effect on the next refresh.
    """

    __tablename__ = "driver_trusted_devices"

    id = Column(Integer, primary_key=True, index=True)
    driver_id = Column(
        Integer,
        ForeignKey("drivers.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    device_id = Column(String(36), unique=True, nullable=False, index=True)  # UUID
    refresh_token_hash = Column(String(64), nullable=False)  # SHA-256 hash

    platform = Column(String(50), nullable=True)  # ios | android
    model = Column(String(100), nullable=True)
    app_version = Column(String(50), nullable=True)

    first_seen_at = Column(DateTime(timezone=True), server_default=func.now())
    last_seen_at = Column(DateTime(timezone=True), server_default=func.now())
    revoked_at = Column(DateTime(timezone=True), nullable=True)
    revoke_reason = Column(String(200), nullable=True)

    driver = relationship("Driver", back_populates="trusted_devices")

    __table_args__ = (
        Index("ix_driver_trusted_devices_driver_revoked", "driver_id", "revoked_at"),
    )

    def __repr__(self):
        return (
            f"<DriverTrustedDevice(id={self.id}, driver_id={self.driver_id}, "
            f"device_id='{self.device_id}', revoked={self.revoked_at is not None})>"
        )
