"""SessionManager + CredentialStore tests.

Drives the session state machine directly (no HTTP):
Anonymous → Active(R) → Active(R') → Anonymous, plus the failure paths
and the concurrent-refresh race.
"""

import asyncio
import uuid
from datetime import datetime, timedelta, timezone

import pytest
import pytest_asyncio
from sqlalchemy.exc import OperationalError
from sqlalchemy.sql.dml import Update
from sqlalchemy.sql.selectable import Select

from vidstream.auth.dependencies import RequestAuthenticator
from vidstream.auth.password import hash_password
from vidstream.auth.session import SessionManager, TokenPair
from vidstream.auth.store import CredentialStore
from vidstream.auth.tokens import ACCESS, TokenCodec
from vidstream.db.models import Account
from vidstream.errors import (
    AccountNotFound,
    AuthenticationError,
    CredentialExpired,
    InternalFailure,
    InvalidCredential,
    SessionRevoked,
    StaleCredential,
)

PASSWORD = "correct horse battery"


class FakeClock:
    def __init__(self):
        self.now = datetime.now(timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


@pytest.fixture()
def clock():
    return FakeClock()


@pytest.fixture()
def codec(clock):
    return TokenCodec(
        access_secret="session-test-access-secret-0123456789",
        refresh_secret="session-test-refresh-secret-0123456789",
        access_ttl=timedelta(minutes=15),
        refresh_ttl=timedelta(days=10),
        clock=clock,
    )


@pytest_asyncio.fixture()
async def account(db_session):
    account = Account(
        username="alice",
        email="alice@example.com",
        full_name="Alice Example",
        avatar_url="https://cdn.example.com/alice.png",
        password_hash=hash_password(PASSWORD),
    )
    db_session.add(account)
    await db_session.commit()
    return account


@pytest.fixture()
def store(db_session):
    return CredentialStore(db_session)


@pytest.fixture()
def sessions(store, codec):
    return SessionManager(store, codec)


async def stored_token(store: CredentialStore, account_id) -> str | None:
    account = await store.get_by_id(account_id)
    return account.refresh_token


# ═══════════════════════════════════════════════════════════
# Login
# ═══════════════════════════════════════════════════════════


@pytest.mark.asyncio
async def test_login_persists_refresh_token(sessions, store, codec, account):
    result = await sessions.login("alice", PASSWORD)

    assert result.account.id == account.id
    assert await stored_token(store, account.id) == result.tokens.refresh.token
    claims = codec.verify(result.tokens.access.token, ACCESS)
    assert claims.subject_id == str(account.id)


@pytest.mark.asyncio
async def test_login_then_resolve_subject(sessions, store, codec, account):
    result = await sessions.login("alice", PASSWORD)
    current = await RequestAuthenticator(store, codec).resolve_subject(
        result.tokens.access.token
    )
    assert current.id == account.id
    assert not hasattr(current, "password_hash")


@pytest.mark.asyncio
async def test_login_by_email_and_mixed_case_username(sessions, account):
    by_email = await sessions.login("alice@example.com", PASSWORD)
    by_name = await sessions.login("ALICE", PASSWORD)
    assert by_email.account.id == by_name.account.id == account.id


@pytest.mark.asyncio
async def test_login_wrong_password(sessions, store, account):
    with pytest.raises(AuthenticationError):
        await sessions.login("alice", "wrong password")
    assert await stored_token(store, account.id) is None


@pytest.mark.asyncio
async def test_login_unknown_account_same_error(sessions, account):
    with pytest.raises(AuthenticationError) as unknown:
        await sessions.login("nobody", PASSWORD)
    with pytest.raises(AuthenticationError) as wrong:
        await sessions.login("alice", "wrong password")
    assert unknown.value.message == wrong.value.message


@pytest.mark.asyncio
async def test_second_login_supersedes_first(sessions, account):
    first = await sessions.login("alice", PASSWORD)
    await sessions.login("alice", PASSWORD)
    with pytest.raises(StaleCredential):
        await sessions.refresh(first.tokens.refresh.token)


# ═══════════════════════════════════════════════════════════
# Refresh rotation
# ═══════════════════════════════════════════════════════════


@pytest.mark.asyncio
async def test_rotation_is_exactly_once(sessions, store, account):
    r1 = (await sessions.login("alice", PASSWORD)).tokens.refresh.token

    pair = await sessions.refresh(r1)
    r2 = pair.refresh.token
    assert r2 != r1
    assert await stored_token(store, account.id) == r2

    with pytest.raises(StaleCredential):
        await sessions.refresh(r1)
    # The failed replay didn't disturb the live session.
    assert await stored_token(store, account.id) == r2

    pair3 = await sessions.refresh(r2)
    assert await stored_token(store, account.id) == pair3.refresh.token


@pytest.mark.asyncio
async def test_refresh_rejects_access_token(sessions, account):
    access = (await sessions.login("alice", PASSWORD)).tokens.access.token
    with pytest.raises(InvalidCredential):
        await sessions.refresh(access)


@pytest.mark.asyncio
async def test_refresh_rejects_garbage(sessions):
    with pytest.raises(InvalidCredential):
        await sessions.refresh("definitely.not.ajwt")


@pytest.mark.asyncio
async def test_refresh_after_expiry(sessions, clock, store, account):
    r1 = (await sessions.login("alice", PASSWORD)).tokens.refresh.token
    clock.advance(days=10, seconds=1)

    with pytest.raises(CredentialExpired):
        await sessions.refresh(r1)
    # Expired, not rotated: stored value untouched.
    assert await stored_token(store, account.id) == r1


@pytest.mark.asyncio
async def test_refresh_for_deleted_account(sessions, codec):
    orphan = codec.issue_refresh(str(uuid.uuid4()))
    with pytest.raises(AccountNotFound):
        await sessions.refresh(orphan.token)


# ═══════════════════════════════════════════════════════════
# Logout
# ═══════════════════════════════════════════════════════════


@pytest.mark.asyncio
async def test_logout_is_idempotent_and_revokes(sessions, store, account):
    r1 = (await sessions.login("alice", PASSWORD)).tokens.refresh.token

    await sessions.logout(account.id)
    await sessions.logout(account.id)
    assert await stored_token(store, account.id) is None

    with pytest.raises(SessionRevoked):
        await sessions.refresh(r1)


@pytest.mark.asyncio
async def test_logout_without_session(sessions, store, account):
    await sessions.logout(account.id)
    assert await stored_token(store, account.id) is None


# ═══════════════════════════════════════════════════════════
# Compare-and-set
# ═══════════════════════════════════════════════════════════


@pytest.mark.asyncio
async def test_swap_only_matches_expected_value(store, account):
    await store.set_refresh_token(account.id, "token-a")

    assert await store.swap_refresh_token(account.id, "token-a", "token-b") is True
    assert await store.swap_refresh_token(account.id, "token-a", "token-c") is False
    assert await stored_token(store, account.id) == "token-b"


@pytest.mark.asyncio
async def test_swap_fails_after_clear(store, account):
    await store.set_refresh_token(account.id, "token-a")
    await store.clear_refresh_token(account.id)
    assert await store.swap_refresh_token(account.id, "token-a", "token-b") is False
    assert await stored_token(store, account.id) is None


# ═══════════════════════════════════════════════════════════
# Internal failures
# ═══════════════════════════════════════════════════════════


def fail_statements(monkeypatch, db, statement_type):
    """Make db.execute raise a driver error for one kind of statement."""
    original = db.execute

    async def execute(statement, *args, **kwargs):
        if isinstance(statement, statement_type):
            raise OperationalError(str(statement), {}, Exception("database is locked"))
        return await original(statement, *args, **kwargs)

    monkeypatch.setattr(db, "execute", execute)
    return lambda: monkeypatch.setattr(db, "execute", original)


@pytest.mark.asyncio
async def test_refresh_write_failure_keeps_stored_token(
    monkeypatch, db_session, sessions, store, account
):
    r1 = (await sessions.login("alice", PASSWORD)).tokens.refresh.token

    restore = fail_statements(monkeypatch, db_session, Update)
    with pytest.raises(InternalFailure) as exc:
        await sessions.refresh(r1)
    restore()

    assert exc.value.status_code == 500
    assert await stored_token(store, account.id) == r1
    # The session is usable again after the rollback.
    assert (await sessions.refresh(r1)).refresh.token != r1


@pytest.mark.asyncio
async def test_login_read_failure(monkeypatch, db_session, sessions, account):
    fail_statements(monkeypatch, db_session, Select)
    with pytest.raises(InternalFailure):
        await sessions.login("alice", PASSWORD)


@pytest.mark.asyncio
async def test_login_with_missing_signing_key(store, clock, account):
    codec = TokenCodec(
        access_secret="",
        refresh_secret="session-test-refresh-secret-0123456789",
        access_ttl=timedelta(minutes=15),
        refresh_ttl=timedelta(days=10),
        clock=clock,
    )
    with pytest.raises(InternalFailure):
        await SessionManager(store, codec).login("alice", PASSWORD)
    assert await stored_token(store, account.id) is None


class InterleavingStore(CredentialStore):
    """Holds every refresh at its first read until both have read.

    That forces the worst interleaving: both callers see the same stored
    token and pass the in-memory check, so only the conditional UPDATE
    can tell them apart. The lock just keeps the two tasks from using
    the shared AsyncSession at the same instant.
    """

    def __init__(self, db, readers: int = 2):
        super().__init__(db)
        self.readers = readers
        self.reads = 0
        self.all_read = asyncio.Event()
        self.lock = asyncio.Lock()

    async def get_by_id(self, account_id):
        async with self.lock:
            account = await super().get_by_id(account_id)
        self.reads += 1
        if self.reads <= self.readers:
            if self.reads == self.readers:
                self.all_read.set()
            await self.all_read.wait()
        return account

    async def swap_refresh_token(self, account_id, expected, new):
        async with self.lock:
            return await super().swap_refresh_token(account_id, expected, new)


@pytest.mark.asyncio
async def test_concurrent_refresh_has_one_winner(db_session, codec, account):
    store = InterleavingStore(db_session)
    sessions = SessionManager(store, codec)
    r1 = (await sessions.login("alice", PASSWORD)).tokens.refresh.token

    results = await asyncio.gather(
        sessions.refresh(r1),
        sessions.refresh(r1),
        return_exceptions=True,
    )

    winners = [r for r in results if isinstance(r, TokenPair)]
    losers = [r for r in results if isinstance(r, Exception)]
    assert len(winners) == 1
    assert len(losers) == 1
    assert isinstance(losers[0], StaleCredential)

    # The store holds the winner's token.
    assert await stored_token(CredentialStore(db_session), account.id) == (
        winners[0].refresh.token
    )
