"""API route aggregation.

All routers registered here get mounted in main.py under /api/v1.

Auth is applied at the include_router level for the videos router, so
every video route requires a valid access token. The users router mixes
open routes (register, login, refresh-token) with protected ones, so it
declares get_current_account per route instead.
"""

from fastapi import APIRouter, Depends

from vidstream.api.health import router as health_router
from vidstream.api.users import router as users_router
from vidstream.api.videos import router as videos_router
from vidstream.auth.dependencies import get_current_account

_auth = [Depends(get_current_account)]

api_router = APIRouter(prefix="/api/v1")

# Open (or per-route protected)
api_router.include_router(health_router, tags=["health"])
api_router.include_router(users_router, tags=["users"])

# Protected
api_router.include_router(videos_router, tags=["videos"], dependencies=_auth)
