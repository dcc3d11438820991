"""Role/scope decisions shared by route dependencies and render-gating payloads."""

import logging
from typing import Iterable, Optional, Union

from services.errors import Forbidden
from services.principals import DriverPrincipal, PortalPrincipal, Principal

logger = logging.getLogger(__name__)

DEFAULT_MANAGEMENT_ROLES = frozenset({"admin", "manager"})

RoleSpec = Union[str, Iterable[str]]


def _normalize_allowed(allowed: RoleSpec) -> frozenset[str]:
    if isinstance(allowed, str):
        allowed = [allowed]
    return frozenset(r for r in allowed if isinstance(r, str) and r)


def has_role(principal: Optional[Principal], allowed: RoleSpec) -> bool:
    """
    True if the principal holds at least one of the allowed roles.

    A missing principal, a principal without roles, an empty allow-list and
    any driver principal are all denied.
    """
    if principal is None or isinstance(principal, DriverPrincipal):
        return False
    if not isinstance(principal, PortalPrincipal):
        return False

    allowed_roles = _normalize_allowed(allowed)
    if not allowed_roles:
        return False

    return any(role in allowed_roles for role in principal.all_roles)


def require_role(principal: Optional[Principal], allowed: RoleSpec) -> Principal:
    """Return the principal when authorized, otherwise raise Forbidden."""
    if not has_role(principal, allowed):
        logger.info(
            "Access denied for principal %s (required one of %s)",
            getattr(principal, "id", None),
            sorted(_normalize_allowed(allowed)),
        )
        raise Forbidden()
    return principal


def is_management(
    principal: Optional[Principal],
    management_roles: Iterable[str] = DEFAULT_MANAGEMENT_ROLES,
) -> bool:
    return has_role(principal, management_roles)


def render_permissions(
    principal: Optional[Principal],
    checks: dict[str, RoleSpec],
) -> dict[str, bool]:
    """Evaluate named role checks for the client to gate what it renders."""
    return {name: has_role(principal, allowed) for name, allowed in checks.items()}
