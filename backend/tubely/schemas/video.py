from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field


class VideoCreate(BaseModel):
    title: str = Field(..., min_length=1, max_length=255)
    description: str = Field(default="", max_length=5000)


class VideoRead(BaseModel):
    """Outward view of a video; URL fields hold signed URLs, never stored references."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    user_id: str
    title: str
    description: str
    thumbnail_url: str | None = None
    video_url: str | None = None
    created_at: datetime
    updated_at: datetime
