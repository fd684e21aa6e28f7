"""Credential store — account lookups and refresh-token writes.

Every write here is a single-row UPDATE committed on its own, so a
request that dies halfway can never leave a half-applied session change.

swap_refresh_token() is the compare-and-set that serializes concurrent
refreshes: the UPDATE only matches while the stored token still equals
the one the caller presented, so of two racing rotations exactly one
changes a row.
"""

import uuid
from typing import Optional, Union

import structlog
from sqlalchemy import or_, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from vidstream.db.models import Account
from vidstream.errors import InternalFailure

logger = structlog.get_logger()

AccountId = Union[uuid.UUID, str]


def as_uuid(value: AccountId) -> Optional[uuid.UUID]:
    """Parse an id coming from a token or URL; None if it isn't a UUID."""
    if isinstance(value, uuid.UUID):
        return value
    try:
        return uuid.UUID(str(value))
    except (ValueError, TypeError):
        return None


class CredentialStore:
    """Read/write access to Account records for the session layer."""

    def __init__(self, db: AsyncSession):
        self.db = db

    # ─── Reads ──────────────────────────────────────────

    async def get_by_id(self, account_id: AccountId) -> Optional[Account]:
        """Load an account, always re-reading the row from the database."""
        account_uuid = as_uuid(account_id)
        if account_uuid is None:
            return None
        return await self._first(
            select(Account)
            .where(Account.id == account_uuid)
            .execution_options(populate_existing=True)
        )

    async def find_by_username(self, identifier: str) -> Optional[Account]:
        """Look up by username (case-insensitive) or by email."""
        return await self._first(
            select(Account).where(
                or_(
                    Account.username == identifier.strip().lower(),
                    Account.email == identifier.strip().lower(),
                )
            )
        )

    async def find_by_username_or_email(
        self, username: str, email: str
    ) -> Optional[Account]:
        """Used by registration for the uniqueness check."""
        return await self._first(
            select(Account).where(
                or_(
                    Account.username == username.strip().lower(),
                    Account.email == email.strip().lower(),
                )
            )
        )

    # ─── Writes ─────────────────────────────────────────

    async def set_refresh_token(self, account_id: AccountId, value: str) -> None:
        await self._write(
            update(Account)
            .where(Account.id == as_uuid(account_id))
            .values(refresh_token=value)
        )

    async def clear_refresh_token(self, account_id: AccountId) -> None:
        """Unconditional; clearing an already-empty field is a no-op."""
        await self._write(
            update(Account)
            .where(Account.id == as_uuid(account_id))
            .values(refresh_token=None)
        )

    async def swap_refresh_token(
        self, account_id: AccountId, expected: str, new: str
    ) -> bool:
        """Install `new` only if the stored token still equals `expected`.

        Returns True if this call won the swap.
        """
        result = await self._write(
            update(Account)
            .where(
                Account.id == as_uuid(account_id),
                Account.refresh_token == expected,
            )
            .values(refresh_token=new)
        )
        return result.rowcount == 1

    # ─── Internals ──────────────────────────────────────

    async def _first(self, stmt) -> Optional[Account]:
        try:
            result = await self.db.execute(stmt)
        except SQLAlchemyError:
            logger.exception("credential_store.read_failed")
            raise InternalFailure()
        return result.scalars().first()

    async def _write(self, stmt):
        try:
            result = await self.db.execute(
                stmt.execution_options(synchronize_session=False)
            )
            await self.db.commit()
        except SQLAlchemyError:
            await self.db.rollback()
            logger.exception("credential_store.write_failed")
            raise InternalFailure()
        return result
