from __future__ import annotations

from datetime import datetime
from typing import List, Literal, Optional

from pydantic import BaseModel, Field


class CreateConversionRequest(BaseModel):
    """Request body for converting a YouTube link to a downloadable MP3."""

    link: str = Field(..., min_length=1, description="YouTube watch or share link")


class ConversionResponse(BaseModel):
    status: Literal["served", "converted"]
    video_id: str
    url: str
    expires_at: datetime
    title: Optional[str] = None
    message: str
    progress: List[str] = Field(default_factory=list)


class ConversionErrorResponse(BaseModel):
    status: Literal["failed"] = "failed"
    error: str
    message: str
    retryable: bool = False
    progress: List[str] = Field(default_factory=list)


class PoolStatusResponse(BaseModel):
    capacity: int
    available: int
    in_use: int


class HealthResponse(BaseModel):
    status: Literal["ok"]
