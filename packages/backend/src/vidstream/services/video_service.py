"""Video service — publish, browse, and owner-only mutations.

Every mutating operation follows the same order:
1. parse the id (400 on garbage)
2. load the video (404)
3. OwnershipGuard.authorize_mutation (403)
4. validate fields (400) and write

so a non-owner always gets 403 no matter what they sent.
"""

import math
import uuid

import structlog
from sqlalchemy import asc, desc, func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from vidstream.auth.ownership import OwnershipGuard, Subject
from vidstream.auth.store import as_uuid
from vidstream.db.models import Account, Video, WatchHistoryEntry
from vidstream.errors import NotFound, ValidationError
from vidstream.schemas.video import VideoCreate, VideoUpdate

logger = structlog.get_logger()

SORTABLE_FIELDS = {
    "created_at": Video.created_at,
    "views": Video.views,
    "duration": Video.duration,
    "title": Video.title,
}
MAX_PAGE_SIZE = 100


def _blank(value: str | None) -> bool:
    return value is None or value.strip() == ""


def parse_video_id(raw: str) -> uuid.UUID:
    video_id = as_uuid(raw)
    if video_id is None:
        raise ValidationError("Invalid video id")
    return video_id


class VideoService:
    """Business logic for videos."""

    def __init__(self, db: AsyncSession, guard: OwnershipGuard | None = None):
        self.db = db
        self.guard = guard or OwnershipGuard()

    async def _get(self, raw_id: str) -> Video:
        video = await self.db.get(Video, parse_video_id(raw_id))
        if video is None:
            raise NotFound("Video not found")
        return video

    # ─── Reads ──────────────────────────────────────────

    async def list_videos(
        self,
        viewer_id: uuid.UUID,
        page: int = 1,
        limit: int = 10,
        query: str | None = None,
        sort_by: str = "created_at",
        sort_type: str = "desc",
        user_id: str | None = None,
    ) -> dict:
        """Published videos (plus the viewer's own drafts), paginated."""
        if page < 1:
            raise ValidationError("page must be >= 1")
        if not 1 <= limit <= MAX_PAGE_SIZE:
            raise ValidationError(f"limit must be between 1 and {MAX_PAGE_SIZE}")
        if sort_by not in SORTABLE_FIELDS:
            raise ValidationError(
                f"sort_by must be one of: {', '.join(sorted(SORTABLE_FIELDS))}"
            )
        if sort_type not in ("asc", "desc"):
            raise ValidationError("sort_type must be 'asc' or 'desc'")

        conditions = [or_(Video.is_published.is_(True), Video.owner_id == viewer_id)]

        if user_id:
            owner_id = as_uuid(user_id)
            if owner_id is None:
                raise ValidationError("Invalid user id")
            if await self.db.get(Account, owner_id) is None:
                raise NotFound("User not found")
            conditions.append(Video.owner_id == owner_id)

        if query and query.strip():
            pattern = f"%{query.strip()}%"
            conditions.append(
                or_(Video.title.ilike(pattern), Video.description.ilike(pattern))
            )

        total = await self.db.scalar(
            select(func.count(Video.id)).where(*conditions)
        ) or 0

        order = asc if sort_type == "asc" else desc
        result = await self.db.execute(
            select(Video)
            .where(*conditions)
            .order_by(order(SORTABLE_FIELDS[sort_by]), Video.id)
            .offset((page - 1) * limit)
            .limit(limit)
        )
        return {
            "items": list(result.scalars().all()),
            "total": total,
            "page": page,
            "limit": limit,
            "pages": math.ceil(total / limit) if total else 0,
        }

    async def get_video(self, raw_id: str, viewer_id: uuid.UUID) -> Video:
        """Fetch a video, counting the view and recording watch history."""
        video = await self._get(raw_id)
        if not video.is_published and video.owner_id != viewer_id:
            raise NotFound("Video not found")

        video.views = video.views + 1
        self.db.add(WatchHistoryEntry(account_id=viewer_id, video_id=video.id))
        await self.db.commit()
        return video

    # ─── Writes ─────────────────────────────────────────

    async def publish(self, owner_id: uuid.UUID, body: VideoCreate) -> Video:
        if _blank(body.title) or _blank(body.description):
            raise ValidationError("All fields are required")
        if _blank(body.video_url) or _blank(body.thumbnail_url):
            raise ValidationError("Video file and thumbnail are required")

        video = Video(
            owner_id=owner_id,
            title=body.title.strip(),
            description=body.description.strip(),
            video_url=body.video_url.strip(),
            thumbnail_url=body.thumbnail_url.strip(),
            duration=body.duration,
        )
        self.db.add(video)
        await self.db.commit()
        logger.info("video.published", video_id=str(video.id), owner_id=str(owner_id))
        return video

    async def update_video(
        self, subject: Subject, raw_id: str, body: VideoUpdate
    ) -> Video:
        video = await self._get(raw_id)
        self.guard.authorize_mutation(
            subject, video, "You are not authorized to update this video"
        )

        fields = body.model_dump(exclude_unset=True, exclude_none=True)
        if not fields:
            raise ValidationError("All fields are required")
        for name, value in fields.items():
            if _blank(value):
                raise ValidationError(f"{name} cannot be blank")
            setattr(video, name, value.strip())

        await self.db.commit()
        logger.info("video.updated", video_id=str(video.id), fields=sorted(fields))
        return video

    async def delete_video(self, subject: Subject, raw_id: str) -> None:
        video = await self._get(raw_id)
        self.guard.authorize_mutation(
            subject, video, "You are not authorized to delete this video"
        )
        await self.db.delete(video)
        await self.db.commit()
        logger.info("video.deleted", video_id=str(video.id))

    async def toggle_publish(self, subject: Subject, raw_id: str) -> Video:
        video = await self._get(raw_id)
        self.guard.authorize_mutation(
            subject, video, "You are not authorized to update status"
        )
        video.is_published = not video.is_published
        await self.db.commit()
        logger.info(
            "video.publish_toggled",
            video_id=str(video.id),
            is_published=video.is_published,
        )
        return video
