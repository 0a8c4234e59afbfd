"""
Shared test fixtures for the Carelog test suite.

Each test gets a fresh app wired to its own in-memory aiosqlite database.
"""

import os
import sys
from datetime import datetime, timedelta, timezone
from typing import AsyncGenerator

import pytest

# Ensure project root is importable
ROOT_DIR = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
if ROOT_DIR not in sys.path:
    sys.path.insert(0, ROOT_DIR)

# Override environment BEFORE importing application modules
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ["CORS_ORIGINS"] = '["*"]'
os.environ["SECRET_KEY"] = "test-secret-key-not-for-production"
os.environ["RATE_LIMIT_ENABLED"] = "false"

from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from carelog.core.config import Settings
from carelog.core.security import create_access_token
from carelog.db.base import Base
from carelog.main import create_app
from carelog.models.location import Location
from carelog.models.user import Role, User

# Location used by most tests: center (40, -75), 200 m perimeter
CENTER_LAT = 40.0
CENTER_LON = -75.0
RADIUS_M = 200.0


class FakeClock:
    """Deterministic clock for the ledger; advance it between calls."""

    def __init__(self, start: datetime | None = None) -> None:
        self.now = start or datetime(2024, 1, 1, 8, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now += timedelta(**kwargs)
        return self.now


@pytest.fixture
async def app() -> AsyncGenerator[FastAPI, None]:
    application = create_app(Settings())
    engine = application.state.engine
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield application

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest.fixture
def session_factory(app: FastAPI) -> async_sessionmaker[AsyncSession]:
    return app.state.session_factory


@pytest.fixture
async def async_client(app: FastAPI) -> AsyncGenerator[AsyncClient, None]:
    """Return a httpx AsyncClient wired to the app."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client


@pytest.fixture
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    """Return a raw database session for direct queries in tests."""
    async with session_factory() as session:
        yield session


# ── Seed data ───────────────────────────────────────────────────────
async def _add(session_factory, obj):
    async with session_factory() as session:
        session.add(obj)
        await session.commit()
        await session.refresh(obj)
    return obj


@pytest.fixture
async def location(session_factory) -> Location:
    return await _add(
        session_factory,
        Location(
            name="Riverside Care Home",
            latitude=CENTER_LAT,
            longitude=CENTER_LON,
            radius_meters=RADIUS_M,
        ),
    )


@pytest.fixture
async def other_location(session_factory) -> Location:
    return await _add(
        session_factory,
        Location(name="Hilltop Clinic", latitude=41.0, longitude=-74.0, radius_meters=500),
    )


@pytest.fixture
def make_user(session_factory):
    async def _make(email: str, role: Role = Role.CARE_WORKER, location_id=None, **kw) -> User:
        return await _add(
            session_factory,
            User(
                email=email,
                full_name=kw.pop("full_name", email.split("@")[0].title()),
                role=role.value,
                location_id=location_id,
                **kw,
            ),
        )

    return _make


@pytest.fixture
async def care_worker(make_user, location) -> User:
    return await make_user("alice@care.test", Role.CARE_WORKER, location.id, full_name="Alice")


@pytest.fixture
async def manager(make_user, location) -> User:
    return await make_user("mona@care.test", Role.MANAGER, location.id, full_name="Mona")


@pytest.fixture
async def admin(make_user) -> User:
    return await make_user("root@care.test", Role.ADMIN)


def auth_headers(user: User) -> dict[str, str]:
    return {"Authorization": f"Bearer {create_access_token(user.id)}"}


def north_of(meters: float, lat: float = CENTER_LAT, lon: float = CENTER_LON) -> tuple[float, float]:
    """A point ``meters`` due north of (lat, lon) along the meridian."""
    deg = meters / 6_371_000 * 180 / 3.141592653589793
    return lat + deg, lon


@pytest.fixture
def headers_for():
    return auth_headers


@pytest.fixture
def point_north():
    return north_of
