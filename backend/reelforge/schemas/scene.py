from __future__ import annotations
"""Pydantic v2 schemas for scenes and their shot plans."""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field


class SceneRead(BaseModel):
    id: str
    project_id: str
    scene_number: int
    slugline: str
    production_data: dict[str, Any] | None = None
    validation_status: str
    approved_at: datetime | None = None
    approved_image_id: str | None = None
    approved_image_url: str | None = None

    model_config = {"from_attributes": True}


class ShotPlan(BaseModel):
    shot_number: int | None = None
    prompt: str | None = None
    duration_seconds: int | None = Field(None, ge=1, le=60)


class ShotPlanRequest(BaseModel):
    """Explicit shots; when omitted the shots in the scene's production data are used."""

    shots: list[ShotPlan] | None = None


class ShotRead(BaseModel):
    id: str
    scene_id: str
    shot_number: int
    duration_seconds: int
    prompt: str | None = None
    video_status: str
    video_url: str | None = None
    error_message: str | None = None

    model_config = {"from_attributes": True}
