# Seed data: municipal staff accounts (one per staff role)

from civic.identity import UserDirectory
from civic.models import UserRole

# ---------------------------------------------------------------------------
# Raw user definitions
# ---------------------------------------------------------------------------
STAFF_USERS = [
    {"_id": "super_admin_001", "username": "admin", "password": "admin123",
     "name": "Dr. Ramesh Kumar", "mobile": "9876543200",
     "role": UserRole.SUPER_ADMIN, "department": "Administration"},

    {"_id": "dept_head_001", "username": "depthead", "password": "dept123",
     "name": "Smt. Priya Sharma", "mobile": "9876543201",
     "role": UserRole.DEPARTMENT_HEAD, "department": "Public Works"},

    {"_id": "field_staff_001", "username": "fieldstaff", "password": "field123",
     "name": "Ravi Kumar", "mobile": "9876543203",
     "role": UserRole.FIELD_STAFF, "department": "Electrical"},
]


def import_users(db, verbose: bool = False) -> dict:
    """Insert the staff accounts with hashed passwords. Returns {username: _id}."""
    directory = UserDirectory(db)
    user_ids = {}
    for u in STAFF_USERS:
        user = directory.create_staff(u["username"], u["password"], u["name"], u["role"],
                                      department=u["department"], mobile=u["mobile"],
                                      user_id=u["_id"])
        user_ids[u["username"]] = user["_id"]
        if verbose:
            print(f"    {u['username']:12s}  ({u['role'].value})")
    if verbose:
        print(f"  => {len(STAFF_USERS)} users created")
    return user_ids
