"""Users API — registration, session lifecycle, profile, channels.

Routes:
- POST  /users/register          → create an account
- POST  /users/login             → username/email + password → token pair
- POST  /users/refresh-token     → rotate refresh token → new token pair
- POST  /users/logout            → clear the stored refresh token
- GET   /users/me                → current account
- PATCH /users/me                → update full name / email
- POST  /users/change-password
- PATCH /users/avatar, /users/cover-image
- GET   /users/channels/{username}
- GET   /users/watch-history

Tokens go out twice: in the JSON body and as http-only, secure cookies.
"""

from typing import Optional

from fastapi import APIRouter, Cookie, Depends, Response
from sqlalchemy.ext.asyncio import AsyncSession

from vidstream.auth.dependencies import (
    ACCESS_COOKIE,
    REFRESH_COOKIE,
    CurrentAccount,
    get_current_account,
    get_session_manager,
)
from vidstream.auth.session import SessionManager, TokenPair
from vidstream.config import settings
from vidstream.db.engine import get_db
from vidstream.errors import ValidationError
from vidstream.schemas.account import (
    AccountRead,
    ChangePasswordRequest,
    ChannelProfile,
    ImageUpdateRequest,
    LoginRequest,
    RefreshRequest,
    RegisterRequest,
    SessionTokens,
    UpdateProfileRequest,
)
from vidstream.schemas.response import ApiResponse, ok
from vidstream.schemas.video import VideoRead
from vidstream.services.account_service import AccountService

router = APIRouter(prefix="/users")


def _svc(db: AsyncSession = Depends(get_db)) -> AccountService:
    return AccountService(db)


# ─── Cookie helpers ─────────────────────────────────────


def _set_session_cookies(response: Response, tokens: TokenPair) -> None:
    for name, credential in (
        (ACCESS_COOKIE, tokens.access),
        (REFRESH_COOKIE, tokens.refresh),
    ):
        max_age = int((credential.expires_at - credential.issued_at).total_seconds())
        response.set_cookie(
            name,
            credential.token,
            max_age=max_age,
            path="/",
            httponly=True,
            secure=settings.cookie_secure,
            samesite=settings.cookie_samesite,
        )


def _clear_session_cookies(response: Response) -> None:
    for name in (ACCESS_COOKIE, REFRESH_COOKIE):
        response.delete_cookie(
            name,
            path="/",
            httponly=True,
            secure=settings.cookie_secure,
            samesite=settings.cookie_samesite,
        )


def _session_body(tokens: TokenPair, account=None) -> dict:
    expires_in = int((tokens.access.expires_at - tokens.access.issued_at).total_seconds())
    return SessionTokens(
        access_token=tokens.access.token,
        refresh_token=tokens.refresh.token,
        expires_in=expires_in,
        account=AccountRead.model_validate(account) if account is not None else None,
    ).model_dump(mode="json")


# ─── Registration ───────────────────────────────────────


@router.post("/register", response_model=ApiResponse[AccountRead], status_code=201)
async def register(body: RegisterRequest, svc: AccountService = Depends(_svc)):
    account = await svc.register(body)
    return ok(
        AccountRead.model_validate(account),
        "User registered successfully",
        status_code=201,
    )


# ─── Session lifecycle ──────────────────────────────────


@router.post("/login", response_model=ApiResponse[SessionTokens])
async def login(
    body: LoginRequest,
    response: Response,
    sessions: SessionManager = Depends(get_session_manager),
):
    """Username (or email) + password → access/refresh token pair."""
    identifier = (body.username or "").strip() or (body.email or "").strip()
    if not identifier:
        raise ValidationError("Username or email is required")
    if not body.password:
        raise ValidationError("Password is required")

    result = await sessions.login(identifier, body.password)
    _set_session_cookies(response, result.tokens)
    return ok(_session_body(result.tokens, result.account), "User logged in successfully")


@router.post("/refresh-token", response_model=ApiResponse[SessionTokens])
async def refresh_token(
    response: Response,
    body: Optional[RefreshRequest] = None,
    refresh_cookie: Optional[str] = Cookie(None, alias=REFRESH_COOKIE),
    sessions: SessionManager = Depends(get_session_manager),
):
    """Exchange the current refresh token for a new pair (rotation).

    The presented token is taken from the body first, then the cookie.
    """
    presented = (body.refresh_token if body else None) or refresh_cookie
    if not presented:
        raise ValidationError("Refresh token is required")

    tokens = await sessions.refresh(presented)
    _set_session_cookies(response, tokens)
    return ok(_session_body(tokens), "Access token refreshed")


@router.post("/logout", response_model=ApiResponse[None])
async def logout(
    response: Response,
    current: CurrentAccount = Depends(get_current_account),
    sessions: SessionManager = Depends(get_session_manager),
):
    await sessions.logout(current.id)
    _clear_session_cookies(response)
    return ok(None, "User logged out")


# ─── Current account ────────────────────────────────────


@router.get("/me", response_model=ApiResponse[AccountRead])
async def get_me(current: CurrentAccount = Depends(get_current_account)):
    return ok(AccountRead.model_validate(current), "Current user fetched")


@router.patch("/me", response_model=ApiResponse[AccountRead])
async def update_me(
    body: UpdateProfileRequest,
    current: CurrentAccount = Depends(get_current_account),
    svc: AccountService = Depends(_svc),
):
    account = await svc.update_profile(
        current.id, full_name=body.full_name, email=body.email
    )
    return ok(AccountRead.model_validate(account), "Account details updated")


@router.post("/change-password", response_model=ApiResponse[None])
async def change_password(
    body: ChangePasswordRequest,
    current: CurrentAccount = Depends(get_current_account),
    svc: AccountService = Depends(_svc),
):
    await svc.change_password(current.id, body.old_password, body.new_password)
    return ok(None, "Password changed successfully")


@router.patch("/avatar", response_model=ApiResponse[AccountRead])
async def update_avatar(
    body: ImageUpdateRequest,
    current: CurrentAccount = Depends(get_current_account),
    svc: AccountService = Depends(_svc),
):
    account = await svc.update_avatar(current.id, body.url)
    return ok(AccountRead.model_validate(account), "Avatar updated")


@router.patch("/cover-image", response_model=ApiResponse[AccountRead])
async def update_cover_image(
    body: ImageUpdateRequest,
    current: CurrentAccount = Depends(get_current_account),
    svc: AccountService = Depends(_svc),
):
    account = await svc.update_cover_image(current.id, body.url)
    return ok(AccountRead.model_validate(account), "Cover image updated")


# ─── Channels & history ─────────────────────────────────


@router.get("/channels/{username}", response_model=ApiResponse[ChannelProfile])
async def get_channel(
    username: str,
    current: CurrentAccount = Depends(get_current_account),
    svc: AccountService = Depends(_svc),
):
    profile = await svc.channel_profile(username, current.id)
    return ok(ChannelProfile(**profile), "Channel fetched")


@router.get("/watch-history", response_model=ApiResponse[list[VideoRead]])
async def get_watch_history(
    current: CurrentAccount = Depends(get_current_account),
    svc: AccountService = Depends(_svc),
):
    videos = await svc.watch_history(current.id)
    return ok([VideoRead.model_validate(v) for v in videos], "Watch history fetched")
