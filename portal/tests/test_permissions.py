"""Role capabilities and owner scoping."""

import pytest

from civic.errors import PermissionDenied
from civic.permissions import Capability as C, can, capabilities_for, patch_capabilities, require

ADMIN = {"_id": "super_admin_001", "role": "super_admin"}
HEAD = {"_id": "dept_head_001", "role": "department_head"}
FIELD = {"_id": "field_staff_001", "role": "field_staff"}
CITIZEN = {"_id": "citizen_abc", "role": "citizen"}
OWN = {"_id": "FMT000001", "citizen_id": "citizen_abc"}
OTHERS = {"_id": "FMT000002", "citizen_id": "citizen_xyz"}


@pytest.mark.parametrize("user,capability,expected", [
    (ADMIN, C.REASSIGN_DEPARTMENT, True),
    (ADMIN, C.DELETE, True),
    (HEAD, C.ASSIGN, True),
    (HEAD, C.CHANGE_PRIORITY, True),
    (HEAD, C.REASSIGN_DEPARTMENT, False),
    (HEAD, C.DELETE, False),
    (FIELD, C.CHANGE_STATUS, True),
    (FIELD, C.CHANGE_PRIORITY, False),
    (FIELD, C.ASSIGN, False),
    (CITIZEN, C.CHANGE_STATUS, False),
    (CITIZEN, C.REOPEN, True),
])
def test_role_table(user, capability, expected):
    assert can(user, capability) is expected


def test_citizens_are_scoped_to_their_complaints():
    assert can(CITIZEN, C.REOPEN, OWN)
    assert not can(CITIZEN, C.REOPEN, OTHERS)
    assert can(CITIZEN, C.DELETE, OWN)
    assert not can(CITIZEN, C.COMMENT, OTHERS)
    # staff are not owner-scoped
    assert can(FIELD, C.COMMENT, OTHERS)


def test_anonymous_and_unknown_roles():
    assert not can(None, C.VIEW)
    assert capabilities_for("mayor") == frozenset()
    assert not can({"_id": "x", "role": "mayor"}, C.VIEW)


def test_require_raises():
    require(ADMIN, C.ASSIGN)
    with pytest.raises(PermissionDenied) as exc:
        require(FIELD, C.ASSIGN)
    assert exc.value.message == "Not allowed to assign"


def test_patch_capabilities():
    assert patch_capabilities({"status", "note"}) == {C.CHANGE_STATUS}
    assert patch_capabilities({"priority", "revision"}) == {C.CHANGE_PRIORITY}
    assert patch_capabilities({"title", "location"}) == {C.EDIT}
    assert patch_capabilities({"assigned_to", "assigned_department"}) == {C.ASSIGN, C.REASSIGN_DEPARTMENT}
    assert patch_capabilities(set()) == set()
