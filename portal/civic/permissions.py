# Role capabilities: one table instead of per-dashboard role checks

from enum import Enum
from typing import Optional

from .errors import PermissionDenied
from .models import UserRole


class Capability(str, Enum):
    VIEW = "view"
    COMMENT = "comment"
    CHANGE_STATUS = "change_status"
    CHANGE_PRIORITY = "change_priority"
    EDIT = "edit"
    ASSIGN = "assign"
    REASSIGN_DEPARTMENT = "reassign_department"
    DELETE = "delete"
    REOPEN = "reopen"
    VERIFY_FIX = "verify_fix"


C = Capability
ROLE_CAPABILITIES = {
    UserRole.CITIZEN: frozenset({C.VIEW, C.COMMENT, C.REOPEN, C.VERIFY_FIX, C.DELETE}),
    UserRole.FIELD_STAFF: frozenset({C.VIEW, C.COMMENT, C.CHANGE_STATUS}),
    UserRole.DEPARTMENT_HEAD: frozenset({C.VIEW, C.COMMENT, C.CHANGE_STATUS,
                                         C.CHANGE_PRIORITY, C.EDIT, C.ASSIGN}),
    UserRole.SUPER_ADMIN: frozenset(Capability),
}

# Citizens only act on complaints they submitted
OWNER_SCOPED_ROLES = frozenset({UserRole.CITIZEN})


def capabilities_for(role) -> frozenset:
    try:
        return ROLE_CAPABILITIES[UserRole(role)]
    except ValueError:
        return frozenset()


def can(user: Optional[dict], capability: Capability, complaint: Optional[dict] = None) -> bool:
    if not user:
        return False
    role = user.get("role")
    if Capability(capability) not in capabilities_for(role):
        return False
    if complaint is not None and UserRole(role) in OWNER_SCOPED_ROLES:
        return complaint.get("citizen_id") == str(user.get("_id"))
    return True


def require(user: Optional[dict], capability: Capability, complaint: Optional[dict] = None) -> None:
    if not can(user, capability, complaint):
        raise PermissionDenied(f"Not allowed to {Capability(capability).value.replace('_', ' ')}")


def patch_capabilities(fields) -> set:
    """Capabilities a partial update needs, from the field names it sets."""
    needed = set()
    for field in fields:
        if field == "status":
            needed.add(Capability.CHANGE_STATUS)
        elif field == "priority":
            needed.add(Capability.CHANGE_PRIORITY)
        elif field == "assigned_to":
            needed.add(Capability.ASSIGN)
        elif field == "assigned_department":
            needed.add(Capability.REASSIGN_DEPARTMENT)
        elif field not in ("note", "revision"):
            needed.add(Capability.EDIT)
    return needed
