from .auth import (
    CurrentUserResponse,
    DeviceInfo,
    DriverMeResponse,
    DriverPinLoginRequest,
    DriverProfile,
    DriverRefreshRequest,
    DriverTokenResponse,
    LoginRequest,
    LoginResponse,
    RevokeDeviceRequest,
    RevokeSessionRequest,
    SessionListResponse,
    SessionSummary,
    SessionUserSummary,
    SuccessResponse,
    TrustedDeviceListResponse,
    TrustedDeviceSummary,
    UserResponse,
)

__all__ = [
    # Portal
    "LoginRequest",
    "LoginResponse",
    "UserResponse",
    "CurrentUserResponse",
    "SuccessResponse",
    # Management
    "SessionUserSummary",
    "SessionSummary",
    "SessionListResponse",
    "RevokeSessionRequest",
    "RevokeDeviceRequest",
    "TrustedDeviceSummary",
    "TrustedDeviceListResponse",
    # Driver app
    "DeviceInfo",
    "DriverPinLoginRequest",
    "DriverRefreshRequest",
    "DriverTokenResponse",
    "DriverProfile",
    "DriverMeResponse",
]
