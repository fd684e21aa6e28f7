"""Videos API.

Routes:
- GET    /videos                       → search / filter / paginate
- POST   /videos                       → publish a video (media already hosted)
- GET    /videos/{video_id}            → fetch, counts a view
- PATCH  /videos/{video_id}            → owner only
- DELETE /videos/{video_id}            → owner only
- PATCH  /videos/toggle/publish/{id}   → owner only

The whole router sits behind get_current_account (see api/__init__.py).
Ids are taken as plain strings so a malformed id is a 400 from the
service rather than FastAPI's 422.
"""

from typing import Literal, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from vidstream.auth.dependencies import (
    CurrentAccount,
    get_current_account,
    get_ownership_guard,
)
from vidstream.auth.ownership import OwnershipGuard
from vidstream.db.engine import get_db
from vidstream.schemas.response import ApiResponse, ok
from vidstream.schemas.video import VideoCreate, VideoPage, VideoRead, VideoUpdate
from vidstream.services.video_service import VideoService

router = APIRouter(prefix="/videos")


def _svc(
    db: AsyncSession = Depends(get_db),
    guard: OwnershipGuard = Depends(get_ownership_guard),
) -> VideoService:
    return VideoService(db, guard)


@router.get("", response_model=ApiResponse[VideoPage])
async def list_videos(
    page: int = Query(1),
    limit: int = Query(10),
    query: Optional[str] = None,
    sort_by: str = "created_at",
    sort_type: Literal["asc", "desc"] = "desc",
    user_id: Optional[str] = None,
    current: CurrentAccount = Depends(get_current_account),
    svc: VideoService = Depends(_svc),
):
    result = await svc.list_videos(
        viewer_id=current.id,
        page=page,
        limit=limit,
        query=query,
        sort_by=sort_by,
        sort_type=sort_type,
        user_id=user_id,
    )
    result["items"] = [VideoRead.model_validate(v) for v in result["items"]]
    return ok(VideoPage(**result), "Videos fetched successfully")


@router.post("", response_model=ApiResponse[VideoRead], status_code=201)
async def publish_video(
    body: VideoCreate,
    current: CurrentAccount = Depends(get_current_account),
    svc: VideoService = Depends(_svc),
):
    video = await svc.publish(current.id, body)
    return ok(VideoRead.model_validate(video), "Video uploaded successfully", 201)


@router.get("/{video_id}", response_model=ApiResponse[VideoRead])
async def get_video(
    video_id: str,
    current: CurrentAccount = Depends(get_current_account),
    svc: VideoService = Depends(_svc),
):
    video = await svc.get_video(video_id, current.id)
    return ok(VideoRead.model_validate(video), "Video fetched successfully")


@router.patch("/{video_id}", response_model=ApiResponse[VideoRead])
async def update_video(
    video_id: str,
    body: VideoUpdate,
    current: CurrentAccount = Depends(get_current_account),
    svc: VideoService = Depends(_svc),
):
    video = await svc.update_video(current, video_id, body)
    return ok(VideoRead.model_validate(video), "Video updated successfully")


@router.delete("/{video_id}", response_model=ApiResponse[None])
async def delete_video(
    video_id: str,
    current: CurrentAccount = Depends(get_current_account),
    svc: VideoService = Depends(_svc),
):
    await svc.delete_video(current, video_id)
    return ok(None, "Video deleted successfully")


@router.patch("/toggle/publish/{video_id}", response_model=ApiResponse[VideoRead])
async def toggle_publish(
    video_id: str,
    current: CurrentAccount = Depends(get_current_account),
    svc: VideoService = Depends(_svc),
):
    video = await svc.toggle_publish(current, video_id)
    return ok(VideoRead.model_validate(video), "Video status updated successfully")
