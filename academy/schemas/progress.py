from pydantic import Field
from datetime import datetime
from typing import Optional

from academy.schemas.common import CamelModel


class ProgressResponse(CamelModel):
    id: int
    user_id: int
    course_id: int
    chapter_id: int
    is_completed: bool
    watched_duration: float
    total_duration: float
    watched_percent: int
    last_watched_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class ProgressReport(CamelModel):
    """Playback position observed by the player, in seconds"""
    watched_duration: float = Field(..., ge=0)
    total_duration: float = Field(..., ge=0)


class ProgressComplete(CamelModel):
    total_duration: float = Field(..., ge=0)
