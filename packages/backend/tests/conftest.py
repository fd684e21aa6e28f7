"""Test fixtures — a fresh in-memory SQLite database per test.

Testing pattern for async SQLAlchemy + FastAPI:

1. Each test gets its own engine on sqlite+aiosqlite (StaticPool, so the
   single in-memory connection is shared by every session of that test)
2. Tables are created from the ORM metadata, no migrations needed
3. The app's get_db dependency is overridden to hand out that session

Auth is NOT mocked: tests register and log in through the real pipeline,
since the session lifecycle is what most of them are checking.
"""

import os

# Must be set before vidstream.config is imported anywhere.
os.environ["VIDSTREAM_DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ["VIDSTREAM_ENVIRONMENT"] = "development"

import uuid

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine
from sqlalchemy.pool import StaticPool

from vidstream.auth import password as password_module
from vidstream.db.engine import get_db
from vidstream.db.models import Base
from vidstream.main import app

DEFAULT_PASSWORD = "password_123"


@pytest.fixture(autouse=True)
def fast_bcrypt(monkeypatch):
    """Minimum bcrypt work factor for the suite."""
    monkeypatch.setattr(password_module, "BCRYPT_ROUNDS", 4)


@pytest_asyncio.fixture()
async def engine():
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest_asyncio.fixture()
async def db_session(engine):
    session = AsyncSession(bind=engine, expire_on_commit=False)
    try:
        yield session
    finally:
        await session.close()


@pytest_asyncio.fixture()
async def client(db_session):
    """HTTP client with the app's get_db pointed at the test database."""

    async def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


def unique(prefix: str) -> str:
    return f"{prefix}{uuid.uuid4().hex[:8]}"


@pytest.fixture()
def register(client):
    """Register an account through the API; returns the account JSON."""

    async def _register(username: str | None = None, password: str = DEFAULT_PASSWORD):
        username = username or unique("user")
        r = await client.post(
            "/api/v1/users/register",
            json={
                "full_name": f"{username.title()} Example",
                "email": f"{username}@example.com",
                "username": username,
                "password": password,
                "avatar_url": f"https://cdn.example.com/{username}/avatar.png",
            },
        )
        assert r.status_code == 201, r.text
        return r.json()["data"]

    return _register


@pytest.fixture()
def login(client):
    """Log in through the API; returns the session data (tokens + account)."""

    async def _login(username: str, password: str = DEFAULT_PASSWORD):
        r = await client.post(
            "/api/v1/users/login",
            json={"username": username, "password": password},
        )
        assert r.status_code == 200, r.text
        return r.json()["data"]

    return _login


@pytest.fixture()
def signed_in(register, login):
    """Register + log in; returns (account, tokens, auth headers)."""

    async def _signed_in(username: str | None = None):
        account = await register(username)
        tokens = await login(account["username"])
        headers = {"Authorization": f"Bearer {tokens['access_token']}"}
        return account, tokens, headers

    return _signed_in
