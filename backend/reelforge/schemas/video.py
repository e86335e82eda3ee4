from __future__ import annotations
"""Pydantic v2 schemas for scene videos."""

from datetime import datetime

from pydantic import BaseModel


class VideoRequest(BaseModel):
    """Defaults to the scene's approved image when ``variant_id`` is omitted."""

    variant_id: str | None = None


class VideoRead(BaseModel):
    id: str
    scene_id: str
    source_variant_id: str | None = None
    video_url: str | None = None
    duration_seconds: float | None = None
    status: str
    error_message: str | None = None
    approved_at: datetime | None = None

    model_config = {"from_attributes": True}
