"""
Roles, the per-request principal, and the authorization checks built on them
"""

from dataclasses import dataclass
from enum import Enum
from typing import Iterable, Optional

from ..errors import AuthorizationError, ErrorContext


class Role(str, Enum):
    REVIEWER = "REVIEWER"
    ADMIN = "ADMIN"


def parse_role(value: object) -> Optional[Role]:
    """Map a stored or claimed role value onto Role; unknown values give None."""
    if isinstance(value, Role):
        return value
    if not isinstance(value, str):
        return None
    candidate = value.strip().upper()
    if candidate.startswith("ROLE_"):
        candidate = candidate[5:]
    try:
        return Role(candidate)
    except ValueError:
        return None


@dataclass(frozen=True)
class Principal:
    """Authenticated identity attached to a single request."""

    username: str
    role: Optional[Role]
    user_id: Optional[int]


def is_admin(role: Optional[Role]) -> bool:
    if role is None:
        return False
    if role is Role.ADMIN:
        return True
    if role is Role.REVIEWER:
        return False
    raise ValueError(f"Unhandled role: {role!r}")


def has_any_role(principal: Optional[Principal], roles: Iterable[Role]) -> bool:
    if principal is None or principal.role is None:
        return False
    return principal.role in set(roles)


def ensure_owner_or_admin(
    principal: Principal, owner_username: Optional[str], resource: str, resource_id: object
) -> None:
    """Allow the owner of a resource, or any admin; raise AuthorizationError otherwise."""
    if is_admin(principal.role):
        return
    if owner_username is not None and owner_username == principal.username:
        return
    raise AuthorizationError(
        f"User {principal.username} may not modify {resource} {resource_id}",
        ErrorContext(username=principal.username, resource=resource, resource_id=resource_id),
    )


def ensure_owner(
    principal: Principal, owner_username: Optional[str], resource: str, resource_id: object
) -> None:
    """Allow only the owner of a resource."""
    if owner_username is not None and owner_username == principal.username:
        return
    raise AuthorizationError(
        f"User {principal.username} may not modify {resource} {resource_id}",
        ErrorContext(username=principal.username, resource=resource, resource_id=resource_id),
    )
