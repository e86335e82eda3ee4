from __future__ import annotations
"""Pydantic v2 schemas for final reel assembly."""

from datetime import datetime
from typing import Any

from pydantic import BaseModel


class SegmentRead(BaseModel):
    scene_id: str
    url: str | None = None
    shot_id: str | None = None
    video_id: str | None = None
    shot_number: int
    duration: float

    model_config = {"from_attributes": True}


class ReelRead(BaseModel):
    id: str
    project_id: str
    status: str
    video_url: str | None = None
    published_url: str | None = None
    published_id: str | None = None
    assembly_progress: dict[str, Any] | None = None
    error_message: str | None = None
    approved_at: datetime | None = None

    model_config = {"from_attributes": True}
