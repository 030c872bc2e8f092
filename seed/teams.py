# Seed data: field teams, two per department

from datetime import timedelta

from civic.config import new_id, now_utc
from civic.departments import DEPARTMENT_LABELS
from civic.store import TEAMS

# (name, department key, status, max capacity, lat, lng)
TEAMS_RAW = [
    ("Road Team A",        "roads_infrastructure", "available", 10, 12.9720, 77.5950),
    ("Road Team B",        "roads_infrastructure", "available", 6,  12.9650, 77.6010),
    ("Sanitation Team A",  "sanitation",           "available", 10, 12.9780, 77.5890),
    ("Sanitation Team B",  "sanitation",           "offline",   8,  12.9590, 77.5800),
    ("Electrical Team A",  "electrical",           "available", 10, 12.9700, 77.6100),
    ("Electrical Team B",  "electrical",           "available", 4,  12.9810, 77.6050),
    ("Parks Team C",       "parks_gardens",        "available", 8,  12.9760, 77.5920),
    ("Parks Team D",       "parks_gardens",        "offline",   6,  12.9630, 77.5970),
    ("Water Team A",       "water_supply",         "available", 10, 12.9690, 77.5850),
    ("Water Team B",       "water_supply",         "available", 2,  12.9740, 77.6080),
    ("Drainage Team A",    "drainage",             "available", 10, 12.9600, 77.5900),
    ("Drainage Team B",    "drainage",             "available", 5,  12.9830, 77.5940),
]

MEMBER_ROLES = ["Team Lead", "Senior Operator", "Technician", "Helper"]

# ---------------------------------------------------------------------------
# Import function
# ---------------------------------------------------------------------------
async def import_teams(store) -> dict[str, str]:
    """Insert seed teams. Returns {team name: _id} mapping."""
    print("\n  Importing field teams...")
    team_ids: dict[str, str] = {}
    now = now_utc()
    for i, (name, dept, status, max_cap, lat, lng) in enumerate(TEAMS_RAW):
        tid = new_id()
        members = [{"id": f"M{i * 10 + j + 1:03d}", "name": f"{name} Member {j + 1}",
                    "role": role, "phone": f"+91 98765 4{i:02d}{j:02d}"}
                   for j, role in enumerate(MEMBER_ROLES)]
        store.insert(TEAMS, {
            "_id": tid,
            "name": name,
            "department": DEPARTMENT_LABELS[dept],
            "status": status,
            "current_task": None,
            "current_task_location": None,
            "shift_end": now + timedelta(hours=3 + i % 5),
            "capacity": {"current": 0, "max": max_cap},
            "location": {"lat": lat, "lng": lng},
            "members": members,
        })
        team_ids[name] = tid
        print(f"    {name:20s}  {DEPARTMENT_LABELS[dept]}")
    print(f"  => {len(TEAMS_RAW)} teams created")
    return team_ids
