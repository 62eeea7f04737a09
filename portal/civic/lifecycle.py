"""
Lifecycle rules for complaints: timeline entries, update stamps and the
status transition policy.

The default policy lets any status follow any other (a resolved complaint can
be reopened to pending). The strict policy is an opt-in table for deployments
that want the workflow enforced.
"""

import logging
from datetime import datetime, timedelta, timezone
from typing import Dict, FrozenSet, Optional

from .errors import ValidationError
from .models import ComplaintStatus

logger = logging.getLogger(__name__)

SUBMITTED_NOTE = "Complaint submitted"
REOPENED_NOTE = "Issue reopened by citizen"
FIX_VERIFIED_NOTE = "Fix verified by citizen"

TERMINAL_STATUSES = frozenset({ComplaintStatus.RESOLVED, ComplaintStatus.CLOSED, ComplaintStatus.REJECTED})

_S = ComplaintStatus
STRICT_TRANSITIONS: Dict[ComplaintStatus, FrozenSet[ComplaintStatus]] = {
    _S.OPEN: frozenset({_S.PENDING, _S.IN_PROGRESS, _S.ESCALATED, _S.REJECTED}),
    _S.PENDING: frozenset({_S.OPEN, _S.IN_PROGRESS, _S.ESCALATED, _S.REJECTED, _S.RESOLVED}),
    _S.IN_PROGRESS: frozenset({_S.PENDING, _S.RESOLVED, _S.ESCALATED, _S.REJECTED}),
    _S.ESCALATED: frozenset({_S.IN_PROGRESS, _S.RESOLVED, _S.REJECTED}),
    _S.RESOLVED: frozenset({_S.CLOSED, _S.PENDING}),
    _S.CLOSED: frozenset({_S.PENDING}),
    _S.REJECTED: frozenset({_S.PENDING}),
}


def now_utc() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """MongoDB hands back naive datetimes unless the client is tz-aware."""
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=timezone.utc)


def next_stamp(previous: Optional[datetime], now: Optional[datetime] = None) -> datetime:
    """Timestamp for a mutation: never earlier than, nor equal to, ``previous``.

    BSON keeps millisecond precision, so stamps are cut to whole milliseconds
    and the floor is ``previous + 1ms``.
    """
    now = now or now_utc()
    now = now.replace(microsecond=now.microsecond // 1000 * 1000)
    previous = as_utc(previous)
    if previous is not None and now <= previous:
        return previous + timedelta(milliseconds=1)
    return now


def default_status_note(status: ComplaintStatus) -> str:
    return f"Status changed to {ComplaintStatus(status).value}"


def build_entry(status, timestamp: datetime, note: Optional[str] = None,
                actor: Optional[dict] = None) -> dict:
    entry = {"status": ComplaintStatus(status).value, "timestamp": timestamp}
    if note:
        entry["note"] = note
    if actor:
        entry["user_id"] = str(actor.get("_id") or actor.get("id"))
        entry["user_name"] = actor.get("name")
    return entry


class TransitionPolicy:
    """Decides which status changes are legal."""

    def __init__(self, table: Optional[Dict[ComplaintStatus, FrozenSet[ComplaintStatus]]] = None):
        self.table = table

    @classmethod
    def from_name(cls, name: str) -> "TransitionPolicy":
        if name == "strict":
            return cls(STRICT_TRANSITIONS)
        if name != "permissive":
            logger.warning("Unknown STATUS_TRANSITIONS=%r, falling back to permissive", name)
        return cls()

    @property
    def strict(self) -> bool:
        return self.table is not None

    def allows(self, current, new) -> bool:
        if self.table is None:
            return True
        current, new = ComplaintStatus(current), ComplaintStatus(new)
        return current == new or new in self.table.get(current, frozenset())

    def check(self, current, new) -> None:
        if not self.allows(current, new):
            raise ValidationError(
                f"Status cannot change from {ComplaintStatus(current).value} "
                f"to {ComplaintStatus(new).value}")


def status_change_entry(current_status, new_status, timestamp: datetime,
                        note: Optional[str] = None, actor: Optional[dict] = None,
                        policy: Optional[TransitionPolicy] = None) -> Optional[dict]:
    """Timeline entry for a status update, or None when the status is unchanged."""
    if new_status is None:
        return None
    new_status = ComplaintStatus(new_status)
    if new_status == ComplaintStatus(current_status):
        return None
    if policy is not None:
        policy.check(current_status, new_status)
    return build_entry(new_status, timestamp, note or default_status_note(new_status), actor)
