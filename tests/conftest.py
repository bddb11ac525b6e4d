"""Pytest configuration and fixtures for API tests."""
import os
import tempfile

# Set test env BEFORE any imports that use config
_tmpdir = tempfile.mkdtemp(prefix="teamy-tests-")
os.environ["DATABASE_URL"] = f"sqlite+aiosqlite:///{os.path.join(_tmpdir, 'test.db')}"
os.environ["JWT_SECRET"] = "test-secret"
os.environ["INITIAL_STAFF_EMAIL"] = "staff@example.com"
os.environ["INITIAL_STAFF_PASSWORD"] = "staffpass123"
os.environ["DEV_PANEL_PASSWORD"] = "letmein"
os.environ["RESEND_API_KEY"] = ""
os.environ["ALLOW_SIGNUP"] = "true"

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy import select

from teamy.models import Event
from teamy.models.base import Base, async_session_factory, engine
from teamy.services.events import seed_events
from web.api.main import app


@pytest.fixture
def anyio_backend():
    return "asyncio"


@pytest.fixture(autouse=True)
async def _init_db():
    """Fresh tables for every test (ASGI lifespan doesn't run with httpx)."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
        await conn.run_sync(Base.metadata.create_all)
    yield
    await engine.dispose()


@pytest.fixture
async def client():
    """Async HTTP client for testing the API."""
    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as ac:
        yield ac


@pytest.fixture
async def events():
    """Seed the built-in event catalog. Returns {(division, name): event_id}."""
    async with async_session_factory() as session:
        await seed_events(session)
    async with async_session_factory() as session:
        result = await session.execute(select(Event))
        return {(e.division, e.name): e.id for e in result.scalars().all()}


@pytest.fixture
def register(client):
    """Register a user and return Authorization headers."""

    async def _register(email: str, name: str = None, password: str = "password123"):
        r = await client.post("/api/auth/register", json={"email": email, "password": password, "name": name})
        assert r.status_code == 200, f"Register failed: {r.text}"
        return {"Authorization": f"Bearer {r.json()['access_token']}"}

    return _register


@pytest.fixture
async def staff_headers(client):
    """Login as the bootstrap staff account."""
    r = await client.post(
        "/api/auth/login",
        json={"email": "staff@example.com", "password": "staffpass123"},
    )
    assert r.status_code == 200, f"Login failed: {r.text}"
    return {"Authorization": f"Bearer {r.json()['access_token']}"}


@pytest.fixture
def create_team(client):
    """Create a team as the given user. Returns the response JSON (team + invite_codes)."""

    async def _create(headers, name: str = "Lincoln High", division: str = "C"):
        r = await client.post("/api/teams", json={"name": name, "division": division}, headers=headers)
        assert r.status_code == 200, f"Create team failed: {r.text}"
        return r.json()

    return _create


@pytest.fixture
async def team_setup(client, register, create_team):
    """A C team with an admin, one member and a subteam the member is placed on."""
    admin = await register("admin@example.com", "Ada Admin")
    member = await register("member@example.com", "Max Member")
    created = await create_team(admin)
    team_id = created["team"]["id"]
    r = await client.post("/api/teams/join", json={"code": created["invite_codes"]["member"]}, headers=member)
    assert r.status_code == 200, r.text
    member_membership_id = r.json()["membership"]["id"]
    r = await client.post(f"/api/teams/{team_id}/subteams", json={"name": "Team A"}, headers=admin)
    assert r.status_code == 200, r.text
    subteam_id = r.json()["subteam"]["id"]
    r = await client.patch(
        f"/api/memberships/{member_membership_id}", json={"subteam_id": subteam_id}, headers=admin
    )
    assert r.status_code == 200, r.text
    r = await client.get("/api/memberships", params={"team_id": team_id}, headers=admin)
    admin_membership_id = next(m["id"] for m in r.json()["memberships"] if m["role"] == "ADMIN")
    return {
        "admin": admin,
        "member": member,
        "team_id": team_id,
        "subteam_id": subteam_id,
        "member_membership_id": member_membership_id,
        "admin_membership_id": admin_membership_id,
        "invite_codes": created["invite_codes"],
    }
