from __future__ import annotations
"""Pydantic v2 schemas for Project model."""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field


class ProjectCreate(BaseModel):
    """Schema for creating a new project; it starts in parsing."""

    title: str = Field(..., min_length=1, max_length=255)
    description: str | None = Field(None, max_length=5000)
    visual_style: str | None = Field(None, max_length=255)
    auto_mode: bool = False


class SceneOrderUpdate(BaseModel):
    """Ordered scene ids; ids from other projects are dropped."""

    scene_ids: list[str]


class ProjectRead(BaseModel):
    id: str
    title: str
    description: str | None = None
    visual_style: str | None = None
    auto_mode: bool = False
    status: str
    scene_order: list[Any] | None = None
    parse_job_id: str | None = None
    generation_task_id: str | None = None
    error_message: str | None = None
    created_at: datetime | None = None

    model_config = {"from_attributes": True}
