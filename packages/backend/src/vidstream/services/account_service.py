"""Account service — registration, profile, channels, watch history.

Service layer separates business logic from HTTP routing. API routes
call services, services call the database. Session state (the refresh
token column) is never touched here; that belongs to SessionManager.
"""

import uuid

import structlog
from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from vidstream.auth.password import hash_password, verify_password
from vidstream.auth.store import CredentialStore
from vidstream.db.models import Account, Subscription, Video, WatchHistoryEntry
from vidstream.errors import Conflict, NotFound, Unauthenticated, ValidationError
from vidstream.schemas.account import RegisterRequest

logger = structlog.get_logger()

MIN_PASSWORD_LENGTH = 8


def _blank(value: str | None) -> bool:
    return value is None or value.strip() == ""


def _normalize_email(email: str) -> str:
    # Format is checked by EmailStr; addresses compare case-insensitively.
    return email.strip().lower()


def _check_password(password: str) -> None:
    if len(password) < MIN_PASSWORD_LENGTH:
        raise ValidationError(
            f"Password must be at least {MIN_PASSWORD_LENGTH} characters"
        )


class AccountService:
    """Business logic for accounts and channels."""

    def __init__(self, db: AsyncSession):
        self.db = db
        self.store = CredentialStore(db)

    # ─── Registration ───────────────────────────────────

    async def register(self, body: RegisterRequest) -> Account:
        if any(
            _blank(v) for v in (body.full_name, body.email, body.username, body.password)
        ):
            raise ValidationError("All fields are required")
        if _blank(body.avatar_url):
            raise ValidationError("Avatar is required")
        email = _normalize_email(body.email)
        _check_password(body.password)

        if await self.store.find_by_username_or_email(body.username, email):
            raise Conflict("User with email or username already exists")

        account = Account(
            username=body.username.strip().lower(),
            email=email,
            full_name=body.full_name.strip(),
            avatar_url=body.avatar_url.strip(),
            cover_image_url=(body.cover_image_url or "").strip() or None,
            password_hash=hash_password(body.password),
        )
        self.db.add(account)
        try:
            await self.db.commit()
        except IntegrityError:
            # Lost a race with a concurrent registration.
            await self.db.rollback()
            raise Conflict("User with email or username already exists")

        logger.info("account.registered", account_id=str(account.id))
        return account

    # ─── Profile ────────────────────────────────────────

    async def _load(self, account_id: uuid.UUID) -> Account:
        account = await self.store.get_by_id(account_id)
        if account is None:
            raise Unauthenticated("Account no longer exists")
        return account

    async def update_profile(
        self,
        account_id: uuid.UUID,
        full_name: str | None = None,
        email: str | None = None,
    ) -> Account:
        if _blank(full_name) and _blank(email):
            raise ValidationError("Provide full_name or email to update")
        if full_name is not None and _blank(full_name):
            raise ValidationError("Full name cannot be blank")
        if email is not None and _blank(email):
            raise ValidationError("Email cannot be blank")

        account = await self._load(account_id)

        if email is not None:
            email = _normalize_email(email)
            taken = await self.db.execute(
                select(Account.id).where(Account.email == email, Account.id != account.id)
            )
            if taken.first() is not None:
                raise Conflict("Email already in use")
            account.email = email
        if full_name is not None:
            account.full_name = full_name.strip()

        await self.db.commit()
        logger.info("account.profile_updated", account_id=str(account.id))
        return account

    async def change_password(
        self, account_id: uuid.UUID, old_password: str, new_password: str
    ) -> None:
        account = await self._load(account_id)
        if not verify_password(old_password, account.password_hash):
            raise ValidationError("Invalid old password")
        _check_password(new_password)

        account.password_hash = hash_password(new_password)
        await self.db.commit()
        logger.info("account.password_changed", account_id=str(account.id))

    async def update_avatar(self, account_id: uuid.UUID, url: str) -> Account:
        if _blank(url):
            raise ValidationError("Avatar is required")
        account = await self._load(account_id)
        account.avatar_url = url.strip()
        await self.db.commit()
        return account

    async def update_cover_image(self, account_id: uuid.UUID, url: str) -> Account:
        if _blank(url):
            raise ValidationError("Cover image is required")
        account = await self._load(account_id)
        account.cover_image_url = url.strip()
        await self.db.commit()
        return account

    # ─── Channels ───────────────────────────────────────

    async def channel_profile(self, username: str, viewer_id: uuid.UUID) -> dict:
        """Public channel view with subscription counts."""
        if _blank(username):
            raise ValidationError("Username is missing")

        result = await self.db.execute(
            select(Account).where(Account.username == username.strip().lower())
        )
        channel = result.scalars().first()
        if channel is None:
            raise NotFound("Channel does not exist")

        subscribers = await self.db.scalar(
            select(func.count(Subscription.id)).where(
                Subscription.channel_id == channel.id
            )
        )
        subscribed_to = await self.db.scalar(
            select(func.count(Subscription.id)).where(
                Subscription.subscriber_id == channel.id
            )
        )
        is_subscribed = await self.db.scalar(
            select(func.count(Subscription.id)).where(
                Subscription.channel_id == channel.id,
                Subscription.subscriber_id == viewer_id,
            )
        )

        return {
            "id": channel.id,
            "username": channel.username,
            "full_name": channel.full_name,
            "avatar_url": channel.avatar_url,
            "cover_image_url": channel.cover_image_url,
            "subscribers_count": subscribers or 0,
            "subscribed_to_count": subscribed_to or 0,
            "is_subscribed": bool(is_subscribed),
            "created_at": channel.created_at,
        }

    async def watch_history(self, account_id: uuid.UUID, limit: int = 100) -> list[Video]:
        """Most recently watched first."""
        result = await self.db.execute(
            select(Video)
            .join(WatchHistoryEntry, WatchHistoryEntry.video_id == Video.id)
            .where(WatchHistoryEntry.account_id == account_id)
            .order_by(WatchHistoryEntry.watched_at.desc(), WatchHistoryEntry.id.desc())
            .limit(limit)
        )
        return list(result.scalars().all())
