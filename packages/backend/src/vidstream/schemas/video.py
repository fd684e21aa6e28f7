"""Pydantic schemas for videos."""

import uuid
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field


class VideoCreate(BaseModel):
    title: str = Field(max_length=300)
    description: str
    video_url: str
    thumbnail_url: str
    duration: float = Field(0.0, ge=0, description="Length in seconds")


class VideoUpdate(BaseModel):
    title: Optional[str] = Field(default=None, max_length=300)
    description: Optional[str] = None
    thumbnail_url: Optional[str] = None


class VideoRead(BaseModel):
    id: uuid.UUID
    owner_id: uuid.UUID
    title: str
    description: str
    video_url: str
    thumbnail_url: str
    duration: float
    views: int
    is_published: bool
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class VideoPage(BaseModel):
    items: list[VideoRead]
    total: int
    page: int
    limit: int
    pages: int
