"""FastAPI auth dependencies.

These are used as Depends() in route handlers. They wire the session
components together per request (store → codec → manager) and resolve
the current account from the access token.

The access token may arrive either way:
1. Authorization: Bearer <token> header (API clients, the CLI)
2. access_token cookie (browsers, set by login/refresh)
The header wins when both are present.
"""

import uuid
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from fastapi import Cookie, Depends, Header
from sqlalchemy.ext.asyncio import AsyncSession

from vidstream.auth.ownership import OwnershipGuard
from vidstream.auth.session import SessionManager
from vidstream.auth.store import CredentialStore
from vidstream.auth.tokens import ACCESS, TokenCodec, TokenError, TokenExpired
from vidstream.db.engine import get_db
from vidstream.db.models import Account
from vidstream.errors import AccountNotFound, Unauthenticated

ACCESS_COOKIE = "access_token"
REFRESH_COOKIE = "refresh_token"


@dataclass(frozen=True)
class CurrentAccount:
    """The authenticated account, without password hash or refresh token.

    This is what handlers receive; the secret columns never leave the
    auth layer.
    """

    id: uuid.UUID
    username: str
    email: str
    full_name: str
    avatar_url: str
    cover_image_url: Optional[str]
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_account(cls, account: Account) -> "CurrentAccount":
        return cls(
            id=account.id,
            username=account.username,
            email=account.email,
            full_name=account.full_name,
            avatar_url=account.avatar_url,
            cover_image_url=account.cover_image_url,
            created_at=account.created_at,
            updated_at=account.updated_at,
        )


class RequestAuthenticator:
    """Resolves a presented access token into the current account."""

    def __init__(self, store: CredentialStore, codec: TokenCodec):
        self.store = store
        self.codec = codec

    async def resolve_subject(self, raw: Optional[str]) -> CurrentAccount:
        if not raw:
            raise Unauthenticated()
        try:
            claims = self.codec.verify(raw, ACCESS)
        except TokenExpired:
            raise Unauthenticated("Access token has expired")
        except TokenError:
            raise Unauthenticated("Invalid access token")

        account = await self.store.get_by_id(claims.subject_id)
        if account is None:
            # Token outlived the account.
            raise AccountNotFound()
        return CurrentAccount.from_account(account)


def extract_access_token(
    authorization: Optional[str], cookie_token: Optional[str]
) -> Optional[str]:
    """Pick the access token from the bearer header or the cookie."""
    if authorization:
        scheme, _, token = authorization.partition(" ")
        # Auth scheme names are case-insensitive (RFC 6750).
        if scheme.lower() == "bearer" and token.strip():
            return token.strip()
    return cookie_token or None


# ─── Component wiring ───────────────────────────────────


def get_token_codec() -> TokenCodec:
    return TokenCodec.from_settings()


def get_credential_store(db: AsyncSession = Depends(get_db)) -> CredentialStore:
    return CredentialStore(db)


def get_session_manager(
    store: CredentialStore = Depends(get_credential_store),
    codec: TokenCodec = Depends(get_token_codec),
) -> SessionManager:
    return SessionManager(store, codec)


def get_ownership_guard() -> OwnershipGuard:
    return OwnershipGuard()


def get_authenticator(
    store: CredentialStore = Depends(get_credential_store),
    codec: TokenCodec = Depends(get_token_codec),
) -> RequestAuthenticator:
    return RequestAuthenticator(store, codec)


# ─── Current account ────────────────────────────────────


async def get_current_account(
    authorization: Optional[str] = Header(None),
    access_token: Optional[str] = Cookie(None),
    authenticator: RequestAuthenticator = Depends(get_authenticator),
) -> CurrentAccount:
    """Resolve the current account (401 if no valid token)."""
    token = extract_access_token(authorization, access_token)
    return await authenticator.resolve_subject(token)
