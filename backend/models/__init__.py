from .auth_audit import AuthAuditLog
from .driver import Driver
from .driver_trusted_device import DriverTrustedDevice
from .user import User
from .user_session import UserSession

__all__ = [
    "AuthAuditLog",
    "Driver",
    "DriverTrustedDevice",
    "User",
    "UserSession",
]
