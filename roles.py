"""
Role gate: decides whether a profile may perform an action.

The server-side check here is the only enforcement point; clients may mirror
it to hide controls but that carries no guarantee.
"""
from typing import Any, Dict, List, Optional

from errors import PERMISSION_DENIED, UNAUTHENTICATED, ServiceError
from schemas import ADMIN_ROLE, USER_ROLE

REQUIRE_ADMIN = "ADMIN"
REQUIRE_OWNER_OR_ADMIN = "OWNER_OR_ADMIN"


def normalize_roles(doc: Dict[str, Any]) -> List[str]:
    """Role list for a stored profile, folding in the legacy `role: "admin"` field."""
    roles = [r for r in (doc.get("roles") or []) if r in (USER_ROLE, ADMIN_ROLE)]
    if doc.get("role") == "admin" and ADMIN_ROLE not in roles:
        roles.append(ADMIN_ROLE)
    if USER_ROLE not in roles:
        roles.insert(0, USER_ROLE)
    return roles


def is_admin(profile: Optional[Dict[str, Any]]) -> bool:
    if not profile:
        return False
    return ADMIN_ROLE in (profile.get("roles") or [])


def is_authorized(
    profile: Optional[Dict[str, Any]],
    requirement: str,
    owner_id: Optional[str] = None,
    requester_id: Optional[str] = None,
) -> bool:
    if profile is None:
        return False
    if requirement == REQUIRE_ADMIN:
        return is_admin(profile)
    if requirement == REQUIRE_OWNER_OR_ADMIN:
        if is_admin(profile):
            return True
        if owner_id is None or requester_id is None:
            return False
        return str(owner_id) == str(requester_id)
    raise ValueError(f"Unknown requirement: {requirement}")


def ensure_authorized(
    profile: Optional[Dict[str, Any]],
    requirement: str,
    owner_id: Optional[str] = None,
    message: str = "You are not allowed to perform this action",
) -> None:
    if profile is None:
        raise ServiceError(UNAUTHENTICATED, "User must be authenticated")
    if not is_authorized(profile, requirement, owner_id=owner_id, requester_id=profile.get("id")):
        raise ServiceError(PERMISSION_DENIED, message)
