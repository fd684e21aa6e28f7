"""Session manager — login, logout, and refresh-token rotation.

Per account the session is a tiny state machine over one column:

    Anonymous (refresh_token NULL)
        ──login──▶ Active(R)
        ──refresh(R)──▶ Active(R')      R is now rejected as stale
        ──logout──▶ Anonymous           any old R is rejected as revoked

Only the most recently issued refresh token is ever accepted. There is
no revocation list: overwriting (or clearing) the stored value is what
invalidates the previous token.
"""

from dataclasses import dataclass

import structlog

from vidstream.auth.password import verify_password
from vidstream.auth.store import AccountId, CredentialStore
from vidstream.auth.tokens import (
    REFRESH,
    Credential,
    MalformedToken,
    SignatureInvalid,
    SigningError,
    TokenCodec,
    TokenExpired,
)
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

logger = structlog.get_logger()


@dataclass(frozen=True)
class TokenPair:
    access: Credential
    refresh: Credential


@dataclass(frozen=True)
class LoginResult:
    account: Account
    tokens: TokenPair


class SessionManager:
    """Orchestrates the session lifecycle over a CredentialStore."""

    def __init__(self, store: CredentialStore, codec: TokenCodec):
        self.store = store
        self.codec = codec

    async def login(self, identifier: str, password: str) -> LoginResult:
        """Verify credentials and start (or replace) the account's session."""
        account = await self.store.find_by_username(identifier)
        if account is None:
            logger.info("session.login_failed", reason="unknown_account")
            raise AuthenticationError()

        if not verify_password(password, account.password_hash):
            logger.info(
                "session.login_failed",
                reason="bad_password",
                account_id=str(account.id),
            )
            raise AuthenticationError()

        tokens = self._issue_pair(str(account.id))
        await self.store.set_refresh_token(account.id, tokens.refresh.token)

        logger.info("session.login", account_id=str(account.id))
        return LoginResult(account=account, tokens=tokens)

    async def logout(self, subject_id: AccountId) -> None:
        """End the session. Idempotent."""
        await self.store.clear_refresh_token(subject_id)
        logger.info("session.logout", account_id=str(subject_id))

    async def refresh(self, presented: str) -> TokenPair:
        """Exchange the current refresh token for a new pair.

        The new refresh token is installed with a compare-and-set against
        the presented one, so concurrent refreshes of the same token
        produce exactly one winner. A rejected refresh writes nothing.
        """
        try:
            claims = self.codec.verify(presented, REFRESH)
        except TokenExpired:
            logger.info("session.refresh_rejected", reason="expired")
            raise CredentialExpired()
        except (MalformedToken, SignatureInvalid):
            logger.info("session.refresh_rejected", reason="invalid")
            raise InvalidCredential()

        account = await self.store.get_by_id(claims.subject_id)
        if account is None:
            logger.info(
                "session.refresh_rejected",
                reason="account_not_found",
                account_id=claims.subject_id,
            )
            raise AccountNotFound()

        self._check_current(account.refresh_token, presented, claims.subject_id)

        tokens = self._issue_pair(claims.subject_id)
        swapped = await self.store.swap_refresh_token(
            account.id, expected=presented, new=tokens.refresh.token
        )
        if not swapped:
            # Lost a race with another rotation (or a logout); report what
            # the store holds now.
            current = await self.store.get_by_id(account.id)
            self._check_current(
                current.refresh_token if current else None,
                presented,
                claims.subject_id,
            )
            # Stored value still equals ours but the write didn't land.
            raise StaleCredential()

        logger.info("session.refreshed", account_id=claims.subject_id)
        return tokens

    def _check_current(self, stored: str | None, presented: str, subject_id: str) -> None:
        if stored is None:
            logger.info(
                "session.refresh_rejected", reason="revoked", account_id=subject_id
            )
            raise SessionRevoked()
        if stored != presented:
            logger.warning(
                "session.refresh_rejected", reason="stale", account_id=subject_id
            )
            raise StaleCredential()

    def _issue_pair(self, subject_id: str) -> TokenPair:
        try:
            return TokenPair(
                access=self.codec.issue_access(subject_id),
                refresh=self.codec.issue_refresh(subject_id),
            )
        except SigningError:
            logger.exception("session.signing_failed", account_id=subject_id)
            raise InternalFailure()
