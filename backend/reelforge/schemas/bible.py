from __future__ import annotations
"""Pydantic v2 schemas for bible assets (characters, locations, props)."""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field

from reelforge.models.bible_asset import ShotType


class BibleAssetRead(BaseModel):
    id: str
    project_id: str
    asset_type: str
    name: str
    visual_dna: list[str] | None = None
    portrait_prompt: str | None = None
    visual_description: str | None = None
    image_status: str
    approved_image_url: str | None = None
    selected_model: str | None = None
    shot_images: dict[str, Any] | None = None
    error_message: str | None = None
    approved_at: datetime | None = None

    model_config = {"from_attributes": True}


class GenerateVariantsRequest(BaseModel):
    """Fan-out request. Omitting ``models`` uses the default model set."""

    models: list[str] | None = Field(None, min_length=1)
    shot_type: ShotType | None = None


class AddVariantRequest(BaseModel):
    model: str
    shot_type: ShotType | None = None
