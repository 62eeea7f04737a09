# FixMyTown: Seed Data Importer
# Resets the tracker collections and loads the demo staff and sample complaint
#
# Usage:  python portal/importer.py      (from repo root)
#     or: python importer.py             (from portal/)

import sys
from pathlib import Path

from pymongo import MongoClient

# Ensure the portal packages are importable when running from repo root
_portal_dir = Path(__file__).resolve().parent
if str(_portal_dir) not in sys.path:
    sys.path.insert(0, str(_portal_dir))

from civic.config import MONGODB_DB, MONGODB_URL
from civic.identity import UserDirectory
from civic.store import ComplaintStore
from seed.complaints import COMPLAINTS, import_complaints
from seed.users import STAFF_USERS, import_users

COLLECTIONS = ["complaints", "users", "counters", "otps"]


def main():
    print("=" * 64)
    print("  FixMyTown: Data Importer")
    print("=" * 64)

    # ------------------------------------------------------------------
    # 1. Connect MongoDB
    # ------------------------------------------------------------------
    print("\n[1/4] Connecting to MongoDB...")
    mongo_client = MongoClient(MONGODB_URL, tz_aware=True)
    db = mongo_client[MONGODB_DB]
    print(f"  Connected: {MONGODB_URL} (db: {MONGODB_DB})")

    # ------------------------------------------------------------------
    # 2. Reset collections
    # ------------------------------------------------------------------
    print("\n[2/4] Resetting collections...")
    for name in COLLECTIONS:
        db[name].drop()
    ComplaintStore(db).ensure_indexes()
    UserDirectory(db).ensure_indexes()
    print(f"  MongoDB: {', '.join(COLLECTIONS)}")

    # ------------------------------------------------------------------
    # 3. Seed users
    # ------------------------------------------------------------------
    print("\n[3/4] Users")
    import_users(db, verbose=True)

    # ------------------------------------------------------------------
    # 4. Seed complaints
    # ------------------------------------------------------------------
    print("\n[4/4] Complaints")
    import_complaints(db, verbose=True)

    print("\n" + "=" * 64)
    print("  IMPORT COMPLETE")
    print("=" * 64)
    print(f"  Users:       {len(STAFF_USERS)}")
    print(f"  Complaints:  {len(COMPLAINTS)}")
    print()
    print("  Test credentials:")
    print("    Admin       : admin      / admin123")
    print("    Dept head   : depthead   / dept123")
    print("    Field staff : fieldstaff / field123")
    print("    Citizens    : any mobile number, OTP 123456 in demo mode")
    print("=" * 64)
    mongo_client.close()


if __name__ == "__main__":
    main()
