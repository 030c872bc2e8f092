"""
Shared pytest fixtures for the Civic Intel Dispatch test suite.

Runs the API in-process against the memory store with rate limiting
disabled. No database, network access or API key is needed: the LLM is
monkeypatched in the tests that exercise it.
"""

import os

# Must be set before civic.config is imported
os.environ["JWT_SECRET"] = "test-secret-for-the-civic-intel-suite-0123456789"
os.environ["STORE_BACKEND"] = "memory"
os.environ["OPENAI_API_KEY"] = ""
os.environ["DEFAULT_ADMIN_EMAIL"] = ""
os.environ["DEFAULT_ADMIN_PASSWORD"] = ""

import pytest
import pytest_asyncio
import httpx

from portal import app, get_store, limiter
from civic.config import new_id, now_utc
from civic.departments import DEPARTMENT_LABELS
from civic.security import hash_password, create_access_token
from civic.store import MemoryStore, PORTAL_USERS, TEAMS

TEST_PASSWORD = "Passw0rd!123"
# bcrypt is slow on purpose; hash once for the whole run
_PASSWORD_HASH = hash_password(TEST_PASSWORD)


@pytest.fixture
def store():
    return MemoryStore()


@pytest_asyncio.fixture
async def client(store):
    """In-process httpx AsyncClient wired to a fresh memory store."""
    # Disable rate limiting so repeated calls aren't throttled
    limiter.enabled = False

    async def _store():
        return store

    app.dependency_overrides[get_store] = _store
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://testserver") as c:
        yield c
    app.dependency_overrides.clear()


def auth_headers(user: dict) -> dict:
    token = create_access_token({"sub": user["_id"], "role": user["role"]})
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def password():
    return TEST_PASSWORD

@pytest.fixture
def headers_for():
    """Bearer headers for any user dict."""
    return auth_headers


@pytest.fixture
def make_user(store):
    """Insert a portal user with the shared test password."""
    def _make(role: str, email: str = None, **extra) -> dict:
        uid = new_id()
        user = {
            "_id": uid, "name": f"Test {role}", "email": email or f"{role}.{uid[:8]}@civicintel.example",
            "hashed_password": _PASSWORD_HASH, "role": role, "department": None,
            "ward_assignment": None, "is_active": True, "created_at": now_utc(), "last_login": None,
        }
        user.update(extra)
        store.insert(PORTAL_USERS, user)
        return user
    return _make


@pytest.fixture
def admin(make_user):
    return make_user("super_admin", email="admin@civicintel.example")

@pytest.fixture
def admin_headers(admin):
    return auth_headers(admin)

@pytest.fixture
def dispatcher_headers(make_user):
    return auth_headers(make_user("dispatcher"))

@pytest.fixture
def analyst_headers(make_user):
    return auth_headers(make_user("analyst"))

@pytest.fixture
def ward_officer_headers(make_user):
    return auth_headers(make_user("ward_officer", ward_assignment="Ward 4 - Central"))

@pytest.fixture
def roads_hq_headers(make_user):
    return auth_headers(make_user("department_hq", department="roads_infrastructure"))


@pytest.fixture
def make_team(store):
    """Insert a field team straight into the store."""
    def _make(department: str = "roads_infrastructure", status: str = "available",
              current: int = 0, max_capacity: int = 5, name: str = None) -> dict:
        team = {
            "_id": new_id(), "name": name or f"{DEPARTMENT_LABELS[department]} Crew",
            "department": DEPARTMENT_LABELS[department], "status": status,
            "current_task": None, "current_task_location": None, "shift_end": None,
            "capacity": {"current": current, "max": max_capacity},
            "location": {"lat": 12.97, "lng": 77.59}, "members": [],
        }
        store.insert(TEAMS, team)
        return team
    return _make


@pytest.fixture
def ticket_payload():
    return {
        "type": "Pothole",
        "category": "Roads & Infrastructure",
        "description": "Large pothole near the school entrance",
        "priority": "high",
        "priority_score": 70,
        "location": {"ward": "Ward 4 - Central", "address": "123 Main Street",
                     "lat": 12.9716, "lng": 77.5946},
    }
