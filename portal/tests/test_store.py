"""Complaint store: creation defaults, partial updates, filters and revisions."""

import pytest

from civic.errors import Conflict, NotFound, ValidationError
from civic.lifecycle import TransitionPolicy, as_utc
from civic.models import (
    Category, CommentType, ComplaintCreate, ComplaintFilter, ComplaintStatus,
    ComplaintUpdate, Location, Priority,
)
from civic.store import ComplaintStore, build_query, derive_title, to_public

CITIZEN = {"_id": "citizen_abc", "name": "Asha Rao", "role": "citizen"}
HEAD = {"_id": "dept_head_001", "name": "Smt. Priya Sharma", "role": "department_head"}


def draft(**overrides) -> ComplaintCreate:
    data = {
        "description": "Water pipe leaking on 3rd Cross Street since morning",
        "category": Category.WATER,
        "location": {"address": "3rd Cross Street", "lat": 17.68, "lng": 82.61},
    }
    data.update(overrides)
    return ComplaintCreate(**data)


@pytest.fixture
def store(empty_db):
    return ComplaintStore(empty_db)


class TestCreate:
    def test_defaults(self, store):
        doc = store.create(draft(), CITIZEN)
        assert doc["_id"] == "FMT000001"
        assert doc["status"] == "pending"
        assert doc["priority"] == "medium"
        assert doc["citizen_id"] == "citizen_abc"
        assert doc["revision"] == 1
        assert doc["comments"] == []
        assert doc["location"]["coordinates"] == {"lat": 17.68, "lng": 82.61}
        assert doc["submitted_at"] == doc["updated_at"]

    def test_first_timeline_entry_matches_status(self, store):
        doc = store.create(draft(), CITIZEN)
        assert len(doc["timeline"]) == 1
        entry = doc["timeline"][0]
        assert entry["status"] == doc["status"]
        assert entry["note"] == "Complaint submitted"
        assert entry["user_id"] == "citizen_abc"

    def test_ids_are_sequential(self, store):
        first = store.create(draft(), CITIZEN)
        second = store.create(draft(), CITIZEN)
        assert (first["_id"], second["_id"]) == ("FMT000001", "FMT000002")

    def test_title_derived_from_description(self, store):
        long_text = "Garbage has not been collected from the market area for over two weeks now"
        doc = store.create(draft(description=long_text, category=Category.GARBAGE), CITIZEN)
        assert doc["title"] == long_text[:50] + "..."
        assert derive_title("  Short one  ") == "Short one"

    def test_explicit_title_and_priority_kept(self, store):
        doc = store.create(draft(title="Leak", priority=Priority.LOW), CITIZEN)
        assert doc["title"] == "Leak"
        assert doc["priority"] == "low"

    def test_urgent_description_raises_priority(self, store):
        doc = store.create(draft(description="URGENT: transformer sparking"), CITIZEN)
        assert doc["priority"] == "high"

    def test_citizen_actor_owns_complaint(self, store):
        doc = store.create(draft(citizen_id="someone_else"), CITIZEN)
        assert doc["citizen_id"] == "citizen_abc"

    def test_anonymous_needs_citizen_id(self, store):
        with pytest.raises(ValidationError):
            store.create(draft())
        doc = store.create(draft(citizen_id="citizen_xyz", citizen_name="Kiran"))
        assert doc["citizen_id"] == "citizen_xyz"
        assert doc["timeline"][0]["user_name"] == "Kiran"

    def test_configured_initial_status(self, empty_db):
        store = ComplaintStore(empty_db, initial_status="open")
        doc = store.create(draft(), CITIZEN)
        assert doc["status"] == "open"
        assert doc["timeline"][0]["status"] == "open"


class TestUpdate:
    def test_status_change_appends_one_entry(self, store):
        doc = store.create(draft(), CITIZEN)
        updated = store.update(doc["_id"], ComplaintUpdate(status=ComplaintStatus.IN_PROGRESS), HEAD)
        assert len(updated["timeline"]) == 2
        last = updated["timeline"][-1]
        assert last["status"] == "in_progress"
        assert last["user_name"] == "Smt. Priya Sharma"
        assert updated["revision"] == 2

    def test_same_status_keeps_timeline_and_advances_updated_at(self, store):
        doc = store.create(draft(), CITIZEN)
        updated = store.update(doc["_id"], ComplaintUpdate(status=ComplaintStatus.PENDING), HEAD)
        assert len(updated["timeline"]) == 1
        assert as_utc(updated["updated_at"]) > as_utc(doc["updated_at"])

    def test_pending_in_progress_resolved(self, store):
        doc = store.create(draft(), CITIZEN)
        store.set_status(doc["_id"], ComplaintStatus.IN_PROGRESS, actor=HEAD)
        final = store.set_status(doc["_id"], ComplaintStatus.RESOLVED, "Fixed", HEAD)
        assert [e["status"] for e in final["timeline"]] == ["pending", "in_progress", "resolved"]
        stamps = [as_utc(e["timestamp"]) for e in final["timeline"]]
        assert stamps == sorted(stamps)
        assert as_utc(final["updated_at"]) == stamps[-1]

    def test_partial_fields_merge(self, store):
        doc = store.create(draft(), CITIZEN)
        updated = store.update(doc["_id"], ComplaintUpdate(priority=Priority.CRITICAL,
                                                          title="Main line burst"))
        assert updated["priority"] == "critical"
        assert updated["title"] == "Main line burst"
        assert updated["description"] == doc["description"]
        assert len(updated["timeline"]) == 1

    def test_immutable_fields_ignored(self, store):
        doc = store.create(draft(), CITIZEN)
        patch = ComplaintUpdate.model_validate({"citizen_id": "intruder", "timeline": [],
                                                "description": "Updated"})
        updated = store.update(doc["_id"], patch)
        assert updated["citizen_id"] == "citizen_abc"
        assert len(updated["timeline"]) == 1
        assert updated["description"] == "Updated"

    def test_null_clears_assignment_only(self, store):
        doc = store.create(draft(assigned_department="Water Supply"), CITIZEN)
        patch = ComplaintUpdate.model_validate({"assigned_department": None, "title": None})
        updated = store.update(doc["_id"], patch)
        assert updated["assigned_department"] is None
        assert updated["title"] == doc["title"]

    def test_location_replaced_whole(self, store):
        doc = store.create(draft(), CITIZEN)
        updated = store.update(doc["_id"], ComplaintUpdate(location=Location(address="Gandhi Nagar")))
        assert updated["location"] == {"address": "Gandhi Nagar", "coordinates": None}

    def test_stale_revision_conflicts(self, store):
        doc = store.create(draft(), CITIZEN)
        store.update(doc["_id"], ComplaintUpdate(status=ComplaintStatus.IN_PROGRESS, revision=1))
        with pytest.raises(Conflict):
            store.update(doc["_id"], ComplaintUpdate(status=ComplaintStatus.RESOLVED, revision=1))
        assert len(store.get(doc["_id"])["timeline"]) == 2

    def test_concurrent_write_conflicts(self, store):
        doc = store.create(draft(), CITIZEN)

        def racing_change(current, stamp):
            # another writer lands between the read and the conditional write
            store.collection.update_one({"_id": current["_id"]}, {"$inc": {"revision": 1}})
            return {"status": "resolved"}, {"timeline": {"status": "resolved", "timestamp": stamp}}

        with pytest.raises(Conflict):
            store.mutate(doc["_id"], racing_change)
        stored = store.get(doc["_id"])
        assert stored["status"] == "pending"
        assert len(stored["timeline"]) == 1
        assert stored["revision"] == 2

    def test_strict_policy_rejects_illegal_change(self, empty_db):
        store = ComplaintStore(empty_db, policy=TransitionPolicy.from_name("strict"))
        doc = store.create(draft(), CITIZEN)
        store.set_status(doc["_id"], ComplaintStatus.REJECTED)
        with pytest.raises(ValidationError):
            store.set_status(doc["_id"], ComplaintStatus.CLOSED)
        assert store.get(doc["_id"])["status"] == "rejected"

    def test_update_missing_complaint(self, store):
        with pytest.raises(NotFound):
            store.update("FMT999999", ComplaintUpdate(status=ComplaintStatus.RESOLVED))


class TestCitizenActions:
    def test_reopen_and_verify(self, store):
        doc = store.create(draft(), CITIZEN)
        store.set_status(doc["_id"], ComplaintStatus.RESOLVED)
        reopened = store.reopen(doc["_id"], CITIZEN)
        assert reopened["status"] == "pending"
        assert reopened["timeline"][-1]["note"] == "Issue reopened by citizen"
        store.set_status(doc["_id"], ComplaintStatus.RESOLVED)
        verified = store.verify_fix(doc["_id"], CITIZEN)
        # verifying an already resolved complaint adds no entry
        assert verified["status"] == "resolved"
        assert len(verified["timeline"]) == 4

    def test_verify_fix_from_in_progress(self, store):
        doc = store.create(draft(), CITIZEN)
        store.set_status(doc["_id"], ComplaintStatus.IN_PROGRESS)
        verified = store.verify_fix(doc["_id"], CITIZEN)
        assert verified["timeline"][-1]["note"] == "Fix verified by citizen"


class TestReadAndDelete:
    def test_get_missing(self, store):
        with pytest.raises(NotFound):
            store.get("FMT000404")

    def test_delete_then_get(self, store):
        doc = store.create(draft(), CITIZEN)
        removed = store.delete(doc["_id"])
        assert removed["_id"] == doc["_id"]
        with pytest.raises(NotFound):
            store.get(doc["_id"])
        with pytest.raises(NotFound):
            store.delete(doc["_id"])

    def test_list_filters(self, store):
        a = store.create(draft(), CITIZEN)
        b = store.create(draft(category=Category.ROADS), CITIZEN)
        store.create(draft(citizen_id="citizen_other"))
        store.set_status(b["_id"], ComplaintStatus.RESOLVED)

        resolved = store.list(ComplaintFilter(status=ComplaintStatus.RESOLVED))
        assert [d["_id"] for d in resolved] == [b["_id"]]
        mine = store.list(ComplaintFilter(citizen_id="citizen_abc"))
        assert {d["_id"] for d in mine} == {a["_id"], b["_id"]}
        assert len(store.list()) == 3
        assert store.list(ComplaintFilter(status=ComplaintStatus.ESCALATED)) == []

    def test_department_filter_uses_assignment_or_category(self, store):
        water = store.create(draft(), CITIZEN)
        moved = store.create(draft(category=Category.ROADS, assigned_department="Water Supply"), CITIZEN)
        store.create(draft(category=Category.GARBAGE), CITIZEN)
        found = store.list(ComplaintFilter(department="Water Supply"))
        assert {d["_id"] for d in found} == {water["_id"], moved["_id"]}
        # moved out of Public Works, so only the explicit assignment counts
        public_works = store.list(ComplaintFilter(department="Public Works"))
        assert moved["_id"] not in {d["_id"] for d in public_works}

    def test_build_query_empty(self):
        assert build_query(None) == {}
        assert build_query(ComplaintFilter()) == {}

    def test_to_public_renames_id(self, store):
        doc = store.create(draft(), CITIZEN)
        public = to_public(store.get(doc["_id"]))
        assert public["id"] == doc["_id"]
        assert "_id" not in public
        assert public["submitted_at"].tzinfo is not None


class TestComments:
    def test_add_comment(self, store):
        doc = store.create(draft(), CITIZEN)
        updated = store.add_comment(doc["_id"], "Inspection scheduled", HEAD, CommentType.UPDATE)
        comment = updated["comments"][0]
        assert comment["content"] == "Inspection scheduled"
        assert comment["type"] == "update"
        assert comment["user_role"] == "department_head"
        assert len(updated["timeline"]) == 1
        assert store.comments(doc["_id"]) == updated["comments"]

    def test_comment_on_missing_complaint(self, store):
        with pytest.raises(NotFound):
            store.add_comment("FMT000404", "hello", HEAD)
