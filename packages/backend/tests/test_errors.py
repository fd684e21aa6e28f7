"""Error envelope tests for server-side failures.

A 500 must never leak the underlying exception: the body carries only
the generic code and message.
"""

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.exc import OperationalError

from vidstream.auth.dependencies import get_session_manager
from vidstream.db.engine import get_db
from vidstream.main import app

GENERIC_500 = {
    "status_code": 500,
    "code": "internal_error",
    "message": "Something went wrong",
    "success": False,
    "errors": [],
}


class BrokenSession:
    """Stands in for an AsyncSession whose connection has gone away."""

    async def execute(self, *args, **kwargs):
        raise OperationalError("SELECT", {}, Exception("connection refused to 10.0.0.5"))

    async def commit(self):
        pass

    async def rollback(self):
        pass


@pytest_asyncio.fixture()
async def lenient_client(db_session):
    """Client that returns the 500 response instead of re-raising."""

    async def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    transport = ASGITransport(app=app, raise_app_exceptions=False)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()


@pytest.mark.asyncio
async def test_database_failure_is_generic_500(client):
    async def broken_db():
        yield BrokenSession()

    app.dependency_overrides[get_db] = broken_db

    r = await client.post(
        "/api/v1/users/login",
        json={"username": "alice", "password": "password_123"},
    )
    assert r.status_code == 500
    assert r.json() == GENERIC_500
    assert "10.0.0.5" not in r.text


@pytest.mark.asyncio
async def test_unhandled_exception_is_generic_500(lenient_client):
    def exploding_manager():
        raise RuntimeError("secret internals: refresh_token=abc123")

    app.dependency_overrides[get_session_manager] = exploding_manager

    r = await lenient_client.post(
        "/api/v1/users/login",
        json={"username": "alice", "password": "password_123"},
    )
    assert r.status_code == 500
    assert r.json() == GENERIC_500
    assert "abc123" not in r.text
