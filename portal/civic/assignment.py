# Assignment of complaints to staff members and departments

import logging
from typing import Optional

from . import lifecycle
from .errors import ValidationError
from .store import ComplaintStore

logger = logging.getLogger(__name__)


def assignment_note(staff_label: Optional[str], department: Optional[str]) -> str:
    if staff_label and department:
        return f"Assigned to {staff_label} ({department})"
    return f"Assigned to {staff_label or department}"


class AssignmentResolver:
    """Sets ``assigned_to`` / ``assigned_department`` without touching status.

    Either field may be given alone; the other keeps its value. The assignment
    is recorded on the timeline under the complaint's current status. Whether
    the staff member works in the named department is the caller's concern.
    """

    def __init__(self, store: ComplaintStore, users=None):
        self.store = store
        self.users = users

    def _staff_label(self, staff_id: Optional[str]) -> Optional[str]:
        if not staff_id:
            return None
        if self.users is not None:
            staff = self.users.find(staff_id)
            if staff:
                return staff.get("name") or staff_id
        return staff_id

    def assign(self, complaint_id: str, staff_id: Optional[str] = None,
               department: Optional[str] = None, note: Optional[str] = None,
               actor: Optional[dict] = None) -> dict:
        if not staff_id and not department:
            raise ValidationError("assigned_to or assigned_department is required")

        fields = {}
        if staff_id:
            fields["assigned_to"] = staff_id
        if department:
            fields["assigned_department"] = department
        note = note or assignment_note(self._staff_label(staff_id), department)

        def change(current, stamp):
            entry = lifecycle.build_entry(current["status"], stamp, note, actor)
            return fields, {"timeline": entry}

        doc = self.store.mutate(complaint_id, change)
        logger.info("Complaint %s assigned: staff=%s department=%s",
                    complaint_id, staff_id, department)
        return doc

    def reassign(self, complaint_id: str, department: str, staff_id: Optional[str] = None,
                 note: Optional[str] = None, actor: Optional[dict] = None) -> dict:
        if not department:
            raise ValidationError("department is required")
        return self.assign(complaint_id, staff_id, department,
                           note or f"Reassigned to {department}", actor)
