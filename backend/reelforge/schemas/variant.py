from __future__ import annotations
"""Pydantic v2 schemas for image variants."""

from typing import Any

from pydantic import BaseModel, Field


class VariantRead(BaseModel):
    id: str
    parent_type: str
    parent_id: str
    shot_type: str | None = None
    model: str
    prompt: str | None = None
    status: str
    is_selected: bool
    generation_order: int
    image_url: str | None = None
    error_message: str | None = None
    parent_variant_id: str | None = None
    injected_refs: dict[str, Any] | None = None

    model_config = {"from_attributes": True}


class RefineRequest(BaseModel):
    model: str
    refinement_prompt: str = Field(..., min_length=1)


class ResetStuckRequest(BaseModel):
    max_age_minutes: int | None = Field(None, ge=0)
    project_id: str | None = None
