"""Seed importer against the memory store."""

import pytest

from civic.models import TERMINAL_STATUSES
from civic.security import verify_password
from civic.store import MemoryStore, PORTAL_USERS, SYSTEM_FEED, TEAMS, TICKETS
from seed.__main__ import seed_all
from seed.users import USERS

pytestmark = pytest.mark.asyncio


@pytest.fixture
def seeded_store():
    return MemoryStore()


async def test_counts(seeded_store):
    counts = await seed_all(seeded_store)
    assert counts == {"users": len(USERS), "teams": 12, "tickets": 12}
    assert seeded_store.count(TICKETS) == 12
    assert seeded_store.count(SYSTEM_FEED) > 0


async def test_every_role_can_log_in(seeded_store):
    await seed_all(seeded_store)
    roles = set()
    for u in USERS:
        doc = seeded_store.find_one(PORTAL_USERS, {"email": u["email"]})
        assert verify_password(u["password"], doc["hashed_password"])
        roles.add(doc["role"])
    assert roles == {"super_admin", "dispatcher", "ward_officer", "analyst", "department_hq"}


async def test_team_capacity_matches_open_dispatches(seeded_store):
    await seed_all(seeded_store)
    tickets = seeded_store.find(TICKETS)
    for team in seeded_store.find(TEAMS):
        holding = [t for t in tickets if t.get("capacity_team_id") == team["_id"]]
        assert all(t["status"] not in TERMINAL_STATUSES for t in holding)
        assert team["capacity"]["current"] == len(holding), team["name"]


async def test_resolved_tickets_are_stamped(seeded_store):
    await seed_all(seeded_store)
    for ticket in seeded_store.find(TICKETS):
        if ticket["status"] in TERMINAL_STATUSES:
            assert ticket["resolved_at"] is not None
        else:
            assert ticket["resolved_at"] is None


async def test_reseeding_resets(seeded_store):
    await seed_all(seeded_store)
    await seed_all(seeded_store)
    assert seeded_store.count(TICKETS) == 12
    numbers = sorted(t["ticket_number"] for t in seeded_store.find(TICKETS))
    assert numbers[0] == 1001


async def test_bootstrap_admin_created_once(monkeypatch):
    import portal

    store = MemoryStore()
    monkeypatch.setattr(portal, "DEFAULT_ADMIN_EMAIL", "root@civicintel.example")
    monkeypatch.setattr(portal, "DEFAULT_ADMIN_PASSWORD", "Root@123456")
    portal.ensure_default_admin(store)
    portal.ensure_default_admin(store)
    admins = store.find(PORTAL_USERS, {"role": "super_admin"})
    assert [a["email"] for a in admins] == ["root@civicintel.example"]
    assert verify_password("Root@123456", admins[0]["hashed_password"])
