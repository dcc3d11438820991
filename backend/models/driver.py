from sqlalchemy import Boolean, Column, DateTime, Integer, String
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from db.database import Base


class Driver(Base):
    """Fleet driver who signs in to the driver app with a driver code and PIN."""

    __tablename__ = "drivers"

    id = Column(Integer, primary_key=True, index=True)
    driver_code = Column(String(50), unique=True, nullable=False, index=True)
    name = Column(String(200), nullable=True)
    active = Column(Boolean, default=True, nullable=False)
    status = Column(String(30), nullable=True)
    vehicle = Column(String(100), nullable=True)

    # PIN credentials (argon2 hash), lockout and optional expiry
    pin_hash = Column(String(255), nullable=True)
    pin_failed_attempts = Column(Integer, default=0, nullable=False)
    pin_locked_until = Column(DateTime(timezone=True), nullable=True)
    pin_expires_at = Column(DateTime(timezone=True), nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    trusted_devices = relationship(
        "DriverTrustedDevice", back_populates="driver", cascade="all, delete-orphan"
    )

    def __repr__(self):
        return f"<Driver(id={self.id}, driver_code='{self.driver_code}', active={self.active})>"
