"""JWT token creation and verification.

Two kinds of token, each signed with its own secret:
- Access token: short-lived (15 min default), sent on every API call
- Refresh token: long-lived (10 days default), exchanged for a new pair

Payload: sub (account id), kind, iat, exp, and a random jti so two
tokens minted in the same second for the same account never collide.
That matters for rotation: the stored refresh token is compared
byte-for-byte, so a re-issued token must always differ from the old one.

Verification is pure computation with no DB or I/O. Expiry is checked
against an injectable clock instead of PyJWT's wall clock so it can be
tested deterministically.
"""

import secrets
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

import jwt

from vidstream.config import Settings, settings as default_settings

ACCESS = "access"
REFRESH = "refresh"


class TokenError(Exception):
    """Base class for token creation/verification failures."""


class SigningError(TokenError):
    """Key material missing or the token could not be encoded."""


class MalformedToken(TokenError):
    """Token can't be parsed, lacks required claims, or is the wrong kind."""


class SignatureInvalid(TokenError):
    """Token was tampered with or signed with a different key."""


class TokenExpired(TokenError):
    """Token is past its expiry instant."""


@dataclass(frozen=True)
class Credential:
    """An issued token. Rotation mints a new one."""

    token: str
    subject_id: str
    kind: str
    issued_at: datetime
    expires_at: datetime


@dataclass(frozen=True)
class VerifiedClaims:
    subject_id: str
    expires_at: datetime


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class TokenCodec:
    """Signs and verifies access/refresh JWTs."""

    def __init__(
        self,
        access_secret: str,
        refresh_secret: str,
        access_ttl: timedelta,
        refresh_ttl: timedelta,
        algorithm: str = "HS256",
        clock: Optional[Callable[[], datetime]] = None,
    ):
        if access_ttl >= refresh_ttl:
            raise ValueError("access token lifetime must be shorter than refresh")
        self._secrets = {ACCESS: access_secret, REFRESH: refresh_secret}
        self._ttls = {ACCESS: access_ttl, REFRESH: refresh_ttl}
        self.algorithm = algorithm
        self._clock = clock or _utcnow

    @classmethod
    def from_settings(
        cls,
        config: Optional[Settings] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> "TokenCodec":
        config = config or default_settings
        return cls(
            access_secret=config.access_token_secret,
            refresh_secret=config.refresh_token_secret,
            access_ttl=timedelta(minutes=config.access_token_expire_minutes),
            refresh_ttl=timedelta(days=config.refresh_token_expire_days),
            algorithm=config.jwt_algorithm,
            clock=clock,
        )

    @property
    def access_ttl(self) -> timedelta:
        return self._ttls[ACCESS]

    @property
    def refresh_ttl(self) -> timedelta:
        return self._ttls[REFRESH]

    def issue_access(self, subject_id: str) -> Credential:
        return self._issue(subject_id, ACCESS)

    def issue_refresh(self, subject_id: str) -> Credential:
        return self._issue(subject_id, REFRESH)

    def _issue(self, subject_id: str, kind: str) -> Credential:
        secret = self._secrets[kind]
        if not secret:
            raise SigningError(f"No signing key configured for {kind} tokens")

        # JWT timestamps are whole seconds; keep the Credential consistent.
        issued_at = self._clock().replace(microsecond=0)
        expires_at = issued_at + self._ttls[kind]
        payload = {
            "sub": subject_id,
            "kind": kind,
            "iat": issued_at,
            "exp": expires_at,
            "jti": secrets.token_hex(16),
        }
        try:
            token = jwt.encode(payload, secret, algorithm=self.algorithm)
        except (jwt.PyJWTError, TypeError, ValueError) as e:
            raise SigningError(f"Could not sign {kind} token: {e}") from e

        return Credential(
            token=token,
            subject_id=subject_id,
            kind=kind,
            issued_at=issued_at,
            expires_at=expires_at,
        )

    def verify(self, raw: str, expected_kind: str) -> VerifiedClaims:
        """Verify signature, kind and expiry of a token.

        Raises MalformedToken, SignatureInvalid or TokenExpired.
        """
        if expected_kind not in self._secrets:
            raise ValueError(f"unknown token kind: {expected_kind}")
        if not raw:
            raise MalformedToken("Token is empty")

        try:
            payload = jwt.decode(
                raw,
                self._secrets[expected_kind],
                algorithms=[self.algorithm],
                options={
                    "verify_exp": False,
                    "verify_iat": False,
                    "require": ["sub", "exp", "kind"],
                },
            )
        except jwt.InvalidSignatureError as e:
            raise SignatureInvalid("Token signature is invalid") from e
        except jwt.InvalidTokenError as e:
            raise MalformedToken(f"Malformed token: {e}") from e

        if payload.get("kind") != expected_kind:
            raise MalformedToken(f"Not a {expected_kind} token")

        try:
            expires_at = datetime.fromtimestamp(int(payload["exp"]), tz=timezone.utc)
        except (TypeError, ValueError, OverflowError) as e:
            raise MalformedToken("Token has an invalid expiry") from e

        if self._clock() >= expires_at:
            raise TokenExpired(f"{expected_kind.capitalize()} token has expired")

        return VerifiedClaims(subject_id=str(payload["sub"]), expires_at=expires_at)
