# Civic Intel Dispatch: seed data importer
# Populates the configured store with demo users, teams and tickets
#
# Usage:  python -m seed          (from the repo root)

import asyncio

from civic.config import STORE_BACKEND, MONGODB_URL, MONGODB_DB
from civic.store import create_store, TICKETS, TEAMS, PORTAL_USERS, AUDIT_LOGS, SYSTEM_FEED, COUNTERS

from .users import import_users, USERS
from .teams import import_teams, TEAMS_RAW
from .tickets import import_tickets


async def seed_all(store) -> dict:
    """Reset the store and load every seed collection. Returns per-collection counts."""
    print("\n[1/4] Resetting collections...")
    for name in (TICKETS, TEAMS, PORTAL_USERS, AUDIT_LOGS, SYSTEM_FEED, COUNTERS):
        store.delete_all(name)
        print(f"  {name}")

    print("\n[2/4] Portal users")
    await import_users(store)

    print("\n[3/4] Field teams")
    team_ids = await import_teams(store)

    print("\n[4/4] Tickets")
    tickets = await import_tickets(store, team_ids)

    return {"users": len(USERS), "teams": len(TEAMS_RAW), "tickets": len(tickets)}


async def main():
    print("=" * 64)
    print("  Civic Intel Dispatch - Data Importer")
    print("=" * 64)
    if STORE_BACKEND == "memory":
        print("\n  STORE_BACKEND=memory: seeded data disappears when this process exits")
    store = create_store(STORE_BACKEND, MONGODB_URL, MONGODB_DB)
    try:
        counts = await seed_all(store)
    finally:
        store.close()

    print("\n" + "=" * 64)
    print("  IMPORT COMPLETE")
    print("=" * 64)
    print(f"  Portal users:  {counts['users']}")
    print(f"  Teams:         {counts['teams']}")
    print(f"  Tickets:       {counts['tickets']}")
    print()
    print("  Test credentials:")
    for u in USERS:
        print(f"    {u['role']:14s}: {u['email']} / {u['password']}")
    print("=" * 64)


if __name__ == "__main__":
    asyncio.run(main())
