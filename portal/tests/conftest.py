"""
Shared pytest fixtures for the FixMyTown test suite.

Every test gets a fresh in-memory MongoDB (mongomock) seeded the same way the
app seeds on startup, an in-process httpx AsyncClient bound to it, and
pre-authenticated headers for each role.
"""

import sys
from pathlib import Path

import httpx
import mongomock
import pytest
import pytest_asyncio
from passlib.context import CryptContext

# Ensure the portal packages are importable
sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from civic import identity
from fixmytown import app, get_db, init_db, limiter

CITIZEN_MOBILE = "9876500001"
OTHER_CITIZEN_MOBILE = "9876500002"


@pytest.fixture(autouse=True)
def fast_hashing(monkeypatch):
    """Minimum bcrypt cost so seeding every test stays quick."""
    monkeypatch.setattr(identity, "pwd_context",
                        CryptContext(schemes=["bcrypt"], bcrypt__rounds=4))


@pytest.fixture
def empty_db():
    return mongomock.MongoClient(tz_aware=True)["civic_tracker_test"]


@pytest.fixture
def db(empty_db):
    init_db(empty_db, seed=True)
    return empty_db


@pytest_asyncio.fixture
async def client(db):
    """In-process httpx AsyncClient over the seeded in-memory database."""
    # Disable rate limiting during tests so login fixtures aren't throttled
    limiter.enabled = False

    async def _test_db():
        return db

    app.dependency_overrides[get_db] = _test_db
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://testserver") as c:
        yield c
    app.dependency_overrides.clear()


async def _login(client: httpx.AsyncClient, username: str, password: str) -> dict:
    """Log in a staff member and return Authorization headers dict."""
    resp = await client.post("/auth/staff", json={"username": username, "password": password})
    assert resp.status_code == 200, f"Login failed for {username}: {resp.text}"
    token = resp.json()["access_token"]
    return {"Authorization": f"Bearer {token}"}


async def citizen_login(client: httpx.AsyncClient, mobile: str):
    """OTP login for a citizen. Returns (headers, user)."""
    resp = await client.post("/auth/send-otp", json={"mobile": mobile})
    assert resp.status_code == 200, resp.text
    resp = await client.post("/auth/verify-otp", json={"mobile": mobile, "otp": "123456"})
    assert resp.status_code == 200, resp.text
    data = resp.json()
    return {"Authorization": f"Bearer {data['access_token']}"}, data["user"]


@pytest_asyncio.fixture
async def admin_headers(client):
    return await _login(client, "admin", "admin123")


@pytest_asyncio.fixture
async def depthead_headers(client):
    return await _login(client, "depthead", "dept123")


@pytest_asyncio.fixture
async def fieldstaff_headers(client):
    return await _login(client, "fieldstaff", "field123")


@pytest_asyncio.fixture
async def citizen(client):
    """(headers, user) for a citizen logged in by OTP."""
    return await citizen_login(client, CITIZEN_MOBILE)


@pytest_asyncio.fixture
async def citizen_headers(citizen):
    return citizen[0]
