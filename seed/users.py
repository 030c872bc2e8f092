# Seed data: one portal user per role

from civic.config import new_id, now_utc
from civic.security import hash_password
from civic.store import PORTAL_USERS

# ---------------------------------------------------------------------------
# Raw user definitions
# ---------------------------------------------------------------------------
USERS = [
    {"email": "admin@civicintel.example", "password": "Admin@12345",
     "name": "System Administrator", "role": "super_admin"},

    {"email": "dispatch@civicintel.example", "password": "Dispatch@123",
     "name": "Kavya Menon", "role": "dispatcher"},

    {"email": "ward4@civicintel.example", "password": "Ward4@12345",
     "name": "Officer Sharma", "role": "ward_officer", "ward_assignment": "Ward 4 - Central"},

    {"email": "analyst@civicintel.example", "password": "Analyst@123",
     "name": "Neha Kulkarni", "role": "analyst"},

    {"email": "roads.hq@civicintel.example", "password": "RoadsHQ@123",
     "name": "Er. Suresh Iyer", "role": "department_hq", "department": "roads_infrastructure"},

    {"email": "water.hq@civicintel.example", "password": "WaterHQ@123",
     "name": "Er. Meera Pillai", "role": "department_hq", "department": "water_supply"},
]

# ---------------------------------------------------------------------------
# Import function
# ---------------------------------------------------------------------------
async def import_users(store) -> dict[str, str]:
    """Insert seed portal users. Returns {email: _id} mapping."""
    print("\n  Importing portal users...")
    user_ids: dict[str, str] = {}
    for u in USERS:
        uid = new_id()
        store.insert(PORTAL_USERS, {
            "_id": uid,
            "name": u["name"],
            "email": u["email"],
            "hashed_password": hash_password(u["password"]),
            "role": u["role"],
            "department": u.get("department"),
            "ward_assignment": u.get("ward_assignment"),
            "is_active": True,
            "created_at": now_utc(),
            "last_login": None,
        })
        user_ids[u["email"]] = uid
        print(f"    {u['email']:32s}  ({u['role']})")
    print(f"  => {len(USERS)} users created")
    return user_ids
