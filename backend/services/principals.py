"""Resolved identities handed to route handlers."""

from dataclasses import dataclass, field
from typing import Any, Optional, Union

from models.user import User
from models.user_session import UserSession


@dataclass(frozen=True)
class PortalPrincipal:
    """A portal user authenticated by cookie credential and active session."""

    id: int
    role: Optional[str]
    roles: tuple[str, ...] = ()
    user: Optional[User] = field(default=None, compare=False, repr=False)
    session: Optional[UserSession] = field(default=None, compare=False, repr=False)

    kind = "portal"

    @property
    def all_roles(self) -> tuple[str, ...]:
        combined = [self.role, *self.roles]
        return tuple(dict.fromkeys(r for r in combined if isinstance(r, str) and r))

    @classmethod
    def from_user(cls, user: User, session: Optional[UserSession] = None) -> "PortalPrincipal":
        extra = tuple(r for r in (user.roles or []) if isinstance(r, str))
        return cls(id=user.id, role=user.role, roles=extra, user=user, session=session)


@dataclass(frozen=True)
class DriverPrincipal:
    """A driver authenticated by a driver-app access credential. No portal roles."""

    id: str
    device_id: Optional[str] = None
    claims: dict[str, Any] = field(default_factory=dict, compare=False, repr=False)

    kind = "driver"


Principal = Union[PortalPrincipal, DriverPrincipal]
