"""
Complaint store backed by the MongoDB ``complaints`` collection.

Every mutation is a single conditional ``find_one_and_update`` keyed on the
complaint id and the revision that was read, so two writers racing on the
same complaint end with one success and one ``Conflict`` instead of a lost
timeline entry.
"""

import logging
import uuid
from typing import Callable, Dict, List, Optional, Tuple

from pymongo import ReturnDocument

from . import lifecycle
from .errors import Conflict, NotFound, ValidationError
from .lifecycle import TransitionPolicy, as_utc
from .models import (
    CATEGORY_DEPARTMENTS, CommentType, ComplaintCreate, ComplaintFilter,
    ComplaintStatus, ComplaintUpdate, Priority, UserRole,
)

logger = logging.getLogger(__name__)

TITLE_PREVIEW_CHARS = 50

# Fields a patch may never touch
IMMUTABLE_FIELDS = {"_id", "id", "citizen_id", "submitted_at", "timeline", "comments", "revision"}
# Fields a patch may clear by sending null
NULLABLE_FIELDS = {"assigned_to", "assigned_department"}

Mutation = Callable[[dict, object], Tuple[Dict, Dict]]


def derive_title(description: str) -> str:
    description = description.strip()
    if len(description) > TITLE_PREVIEW_CHARS:
        return description[:TITLE_PREVIEW_CHARS] + "..."
    return description


def guess_priority(description: str) -> Priority:
    return Priority.HIGH if "urgent" in description.lower() else Priority.MEDIUM


def actor_id(actor: Optional[dict]) -> Optional[str]:
    if not actor:
        return None
    return str(actor.get("_id") or actor.get("id"))


def to_public(doc: dict) -> dict:
    """Stored document -> API shape (``id`` instead of ``_id``, UTC datetimes)."""
    out = {k: v for k, v in doc.items() if k != "_id"}
    out["id"] = doc["_id"]
    out["submitted_at"] = as_utc(doc.get("submitted_at"))
    out["updated_at"] = as_utc(doc.get("updated_at"))
    out["timeline"] = [dict(e, timestamp=as_utc(e.get("timestamp"))) for e in doc.get("timeline", [])]
    out["comments"] = [dict(c, timestamp=as_utc(c.get("timestamp"))) for c in doc.get("comments", [])]
    return out


def build_query(filters: Optional[ComplaintFilter]) -> dict:
    query: dict = {}
    if filters is None:
        return query
    if filters.citizen_id:
        query["citizen_id"] = filters.citizen_id
    if filters.assigned_to:
        query["assigned_to"] = filters.assigned_to
    if filters.status:
        query["status"] = filters.status.value
    if filters.category:
        query["category"] = filters.category.value
    if filters.priority:
        query["priority"] = filters.priority.value
    if filters.department:
        categories = [c for c, d in CATEGORY_DEPARTMENTS.items() if d == filters.department]
        # an explicit assignment overrides the category default
        query["$or"] = [{"assigned_department": filters.department},
                        {"category": {"$in": categories},
                         "assigned_department": {"$in": [None, ""]}}]
    return query


class ComplaintStore:
    def __init__(self, db, initial_status=ComplaintStatus.PENDING,
                 policy: Optional[TransitionPolicy] = None):
        self.collection = db.complaints
        self.counters = db.counters
        self.initial_status = ComplaintStatus(initial_status)
        self.policy = policy or TransitionPolicy()

    # -- ids -----------------------------------------------------------------
    def next_id(self) -> str:
        counter = self.counters.find_one_and_update(
            {"_id": "complaint"}, {"$inc": {"seq": 1}},
            upsert=True, return_document=ReturnDocument.AFTER)
        return f"FMT{counter['seq']:06d}"

    # -- create / read -------------------------------------------------------
    def create(self, draft: ComplaintCreate, actor: Optional[dict] = None) -> dict:
        citizen_id = draft.citizen_id
        if actor and actor.get("role") == UserRole.CITIZEN.value:
            citizen_id = actor_id(actor)
        citizen_id = citizen_id or actor_id(actor)
        if not citizen_id:
            raise ValidationError("citizen_id is required")
        submitter = {"_id": citizen_id,
                     "name": draft.citizen_name or (actor or {}).get("name") or "Citizen"}

        now = lifecycle.next_stamp(None)
        doc = {
            "_id": self.next_id(),
            "title": draft.title or derive_title(draft.description),
            "description": draft.description,
            "category": draft.category.value,
            "status": self.initial_status.value,
            "priority": (draft.priority or guess_priority(draft.description)).value,
            "location": draft.location.model_dump(),
            "images": list(draft.images),
            "citizen_id": citizen_id,
            "assigned_to": None,
            "assigned_department": draft.assigned_department,
            "submitted_at": now,
            "updated_at": now,
            "timeline": [lifecycle.build_entry(self.initial_status, now,
                                               lifecycle.SUBMITTED_NOTE, submitter)],
            "comments": [],
            "revision": 1,
        }
        self.collection.insert_one(doc)
        logger.info("Complaint %s submitted by %s (%s)", doc["_id"], citizen_id, doc["category"])
        return doc

    def get(self, complaint_id: str) -> dict:
        doc = self.collection.find_one({"_id": complaint_id})
        if doc is None:
            raise NotFound(f"Complaint {complaint_id} not found")
        return doc

    def list(self, filters: Optional[ComplaintFilter] = None) -> List[dict]:
        return list(self.collection.find(build_query(filters)))

    # -- mutations -----------------------------------------------------------
    def mutate(self, complaint_id: str, change: Mutation,
               expected_revision: Optional[int] = None) -> dict:
        """Run ``change(current, stamp)`` -> ($set fields, $push fields) as one write."""
        current = self.get(complaint_id)
        revision = current.get("revision")
        if expected_revision is not None and expected_revision != revision:
            raise Conflict(f"Complaint {complaint_id} is at revision {revision}, "
                           f"not {expected_revision}")
        stamp = lifecycle.next_stamp(current.get("updated_at"))
        set_fields, push = change(current, stamp)
        update = {"$set": dict(set_fields, updated_at=stamp), "$inc": {"revision": 1}}
        if push:
            update["$push"] = push
        doc = self.collection.find_one_and_update(
            {"_id": complaint_id, "revision": revision}, update,
            return_document=ReturnDocument.AFTER)
        if doc is None:
            if self.collection.find_one({"_id": complaint_id}, {"_id": 1}) is not None:
                logger.warning("Revision conflict on complaint %s", complaint_id)
                raise Conflict()
            raise NotFound(f"Complaint {complaint_id} not found")
        return doc

    def update(self, complaint_id: str, patch: ComplaintUpdate,
               actor: Optional[dict] = None) -> dict:
        fields = patch.model_dump(exclude_unset=True, exclude={"note", "revision"}, mode="json")
        fields = {k: v for k, v in fields.items()
                  if k not in IMMUTABLE_FIELDS and (v is not None or k in NULLABLE_FIELDS)}

        def change(current, stamp):
            entry = lifecycle.status_change_entry(
                current["status"], fields.get("status"), stamp,
                note=patch.note, actor=actor, policy=self.policy)
            return fields, ({"timeline": entry} if entry else {})

        doc = self.mutate(complaint_id, change, expected_revision=patch.revision)
        if "status" in fields:
            logger.info("Complaint %s status -> %s", complaint_id, doc["status"])
        return doc

    def set_status(self, complaint_id: str, status: ComplaintStatus, note: Optional[str] = None,
                   actor: Optional[dict] = None) -> dict:
        return self.update(complaint_id, ComplaintUpdate(status=status, note=note), actor)

    def reopen(self, complaint_id: str, actor: Optional[dict] = None,
               note: Optional[str] = None) -> dict:
        return self.set_status(complaint_id, ComplaintStatus.PENDING,
                               note or lifecycle.REOPENED_NOTE, actor)

    def verify_fix(self, complaint_id: str, actor: Optional[dict] = None,
                   note: Optional[str] = None) -> dict:
        return self.set_status(complaint_id, ComplaintStatus.RESOLVED,
                               note or lifecycle.FIX_VERIFIED_NOTE, actor)

    def add_comment(self, complaint_id: str, content: str, actor: Optional[dict] = None,
                    comment_type: CommentType = CommentType.COMMENT) -> dict:
        def change(current, stamp):
            comment = {
                "id": str(uuid.uuid4()),
                "content": content,
                "type": CommentType(comment_type).value,
                "user_id": actor_id(actor),
                "user_name": (actor or {}).get("name"),
                "user_role": (actor or {}).get("role"),
                "timestamp": stamp,
            }
            return {}, {"comments": comment}
        return self.mutate(complaint_id, change)

    def comments(self, complaint_id: str) -> List[dict]:
        return self.get(complaint_id).get("comments", [])

    def delete(self, complaint_id: str) -> dict:
        doc = self.collection.find_one_and_delete({"_id": complaint_id})
        if doc is None:
            raise NotFound(f"Complaint {complaint_id} not found")
        logger.info("Complaint %s deleted", complaint_id)
        return doc

    def ensure_indexes(self) -> None:
        for field in ("status", "category", "priority", "citizen_id",
                      "assigned_to", "assigned_department", "submitted_at"):
            self.collection.create_index(field)
