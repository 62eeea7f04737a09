# Seed data: a sample complaint that is already being worked on

from datetime import timedelta

from civic.lifecycle import SUBMITTED_NOTE, build_entry, now_utc
from civic.models import Category, ComplaintStatus, Priority
from civic.store import ComplaintStore

SAMPLE_CITIZEN = {"_id": "citizen_9876543210", "name": "Rajesh Kumar"}
SAMPLE_HANDLER = {"_id": "field_staff_001", "name": "Ravi Kumar"}

COMPLAINTS = [
    {
        "title": "Streetlight not working near Clock Tower",
        "description": ("The streetlight near Clock Tower Road has been non-functional for the "
                        "past week. The area becomes very dark at night making it unsafe for "
                        "pedestrians and vehicles."),
        "category": Category.STREETLIGHT,
        "priority": Priority.HIGH,
        "location": {"address": "Clock Tower Road, Narsipatnam",
                     "coordinates": {"lat": 17.6868, "lng": 82.6109}},
        "assigned_to": SAMPLE_HANDLER["_id"],
        "assigned_department": "Electrical",
        "age_days": 3,
        "progress_note": "Assigned to field staff for inspection",
    },
]


def import_complaints(db, verbose: bool = False) -> list:
    """Insert the sample complaints; ids come from the shared complaint counter."""
    store = ComplaintStore(db)
    now = now_utc()
    inserted = []
    for c in COMPLAINTS:
        submitted = now - timedelta(days=c["age_days"])
        progressed = submitted + timedelta(days=1, hours=4)
        doc = {
            "_id": store.next_id(),
            "title": c["title"],
            "description": c["description"],
            "category": c["category"].value,
            "status": ComplaintStatus.IN_PROGRESS.value,
            "priority": c["priority"].value,
            "location": c["location"],
            "images": [],
            "citizen_id": SAMPLE_CITIZEN["_id"],
            "assigned_to": c["assigned_to"],
            "assigned_department": c["assigned_department"],
            "submitted_at": submitted,
            "updated_at": progressed,
            "timeline": [
                build_entry(ComplaintStatus.PENDING, submitted, SUBMITTED_NOTE, SAMPLE_CITIZEN),
                build_entry(ComplaintStatus.IN_PROGRESS, progressed, c["progress_note"],
                            SAMPLE_HANDLER),
            ],
            "comments": [],
            "revision": 2,
        }
        db.complaints.insert_one(doc)
        inserted.append(doc)
        if verbose:
            print(f"    {doc['_id']}  {doc['title'][:48]}")
    if verbose:
        print(f"  => {len(inserted)} complaints created")
    return inserted
