"""Request/response models for portal, management and driver-app auth routes.

The portal and driver app speak camelCase JSON; models accept either the
camelCase alias or the Python field name.
"""

from datetime import datetime
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class LoginRequest(CamelModel):
    """Portal email/password login"""

    email: str = Field(..., min_length=3, max_length=254)
    password: str = Field(..., min_length=1, max_length=256)

    @field_validator("email", mode="before")
    @classmethod
    def normalize_email(cls, value: str) -> str:
        if isinstance(value, str):
            return value.strip().lower()
        return value


class UserResponse(CamelModel):
    """Portal user info"""

    id: int
    email: str
    name: Optional[str] = None
    role: Optional[str] = None
    roles: List[str] = Field(default_factory=list)
    last_login: Optional[datetime] = None

    model_config = ConfigDict(
        alias_generator=to_camel, populate_by_name=True, from_attributes=True
    )


class LoginResponse(CamelModel):
    success: bool = True
    user: UserResponse
    expires_at: datetime


class CurrentUserResponse(CamelModel):
    """Current principal plus render-gating flags for the portal UI"""

    success: bool = True
    user: UserResponse
    is_management: bool
    permissions: Dict[str, bool] = Field(default_factory=dict)


class SuccessResponse(CamelModel):
    success: bool = True
    message: Optional[str] = None


class SessionUserSummary(CamelModel):
    id: int
    email: str
    name: Optional[str] = None
    role: Optional[str] = None


class SessionSummary(CamelModel):
    """Active portal session as shown to management"""

    id: int
    user_id: int
    platform: str
    mode: str
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None
    created_at: Optional[datetime] = None
    last_seen_at: Optional[datetime] = None
    expires_at: datetime
    user: Optional[SessionUserSummary] = None
    is_current: bool = False


class SessionListResponse(CamelModel):
    success: bool = True
    sessions: List[SessionSummary]
    total: int


class RevokeSessionRequest(CamelModel):
    # Optional so a missing id is reported as 400, not a validation 422
    session_id: Optional[int] = None
    reason: Optional[str] = Field(default=None, max_length=100)


class DeviceInfo(CamelModel):
    platform: str = Field(default="unknown", max_length=50)
    model: str = Field(default="unknown", max_length=100)
    app_version: str = Field(default="unknown", max_length=50)


class DriverPinLoginRequest(CamelModel):
    driver_identifier: str = Field(..., min_length=1, max_length=50)
    pin: str = Field(..., min_length=4, max_length=12)
    device: DeviceInfo = Field(default_factory=DeviceInfo)

    @field_validator("driver_identifier", mode="before")
    @classmethod
    def normalize_identifier(cls, value: str) -> str:
        if isinstance(value, str):
            return value.strip()
        return value


class DriverTokenResponse(CamelModel):
    access_token: str
    refresh_token: str
    device_id: str
    expires_in: int = Field(description="Access token lifetime in seconds")


class DriverRefreshRequest(CamelModel):
    refresh_token: str = Field(..., min_length=1)
    device_id: str = Field(..., min_length=1, max_length=36)


class RevokeDeviceRequest(CamelModel):
    device_id: Optional[str] = Field(default=None, max_length=36)
    reason: Optional[str] = Field(default=None, max_length=100)


class DriverProfile(CamelModel):
    id: int
    driver_code: str
    name: Optional[str] = None
    status: Optional[str] = None
    vehicle: Optional[str] = None

    model_config = ConfigDict(
        alias_generator=to_camel, populate_by_name=True, from_attributes=True
    )


class DriverMeResponse(CamelModel):
    success: bool = True
    driver: DriverProfile
    device_id: Optional[str] = None


class TrustedDeviceSummary(CamelModel):
    """Driver-app device as shown to management; never exposes the refresh hash"""

    device_id: str
    platform: Optional[str] = None
    model: Optional[str] = None
    app_version: Optional[str] = None
    first_seen_at: Optional[datetime] = None
    last_seen_at: Optional[datetime] = None
    revoked_at: Optional[datetime] = None
    revoke_reason: Optional[str] = None

    model_config = ConfigDict(
        alias_generator=to_camel, populate_by_name=True, from_attributes=True
    )


class TrustedDeviceListResponse(CamelModel):
    success: bool = True
    driver_id: int
    devices: List[TrustedDeviceSummary]
