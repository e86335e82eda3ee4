from __future__ import annotations
"""Callback bodies from the generation and parsing workflows.

Workflows send snake_case or camelCase keys depending on the node that
produced them; every field accepts both.
"""

from typing import Any

from pydantic import AliasChoices, BaseModel, ConfigDict, Field

from reelforge.services.results import Completion

FAILURE_STATUSES = frozenset({"failed", "error"})


class _Callback(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    status: str | None = None
    error_message: str | None = Field(None, validation_alias=AliasChoices("error_message", "errorMessage", "error"))
    storage_path: str | None = Field(None, validation_alias=AliasChoices("storage_path", "storagePath"))

    @property
    def result_url(self) -> str | None:
        return None

    @property
    def failed(self) -> bool:
        return (self.status or "").lower() in FAILURE_STATUSES

    def to_completion(self, duration_seconds: float | None = None) -> Completion:
        if self.failed:
            return Completion.failed(self.error_message)
        return Completion.ready(
            self.result_url,
            storage_path=self.storage_path,
            duration_seconds=duration_seconds,
        )


class ImageCallback(_Callback):
    """image-variant, scene-image-variant and the per-asset image routes."""

    variant_id: str | None = Field(
        None,
        validation_alias=AliasChoices("variant_id", "variantId", "scene_image_variant_id", "sceneImageVariantId"),
    )
    character_id: str | None = Field(None, validation_alias=AliasChoices("character_id", "characterId"))
    prop_id: str | None = Field(None, validation_alias=AliasChoices("prop_id", "propId"))
    location_id: str | None = Field(None, validation_alias=AliasChoices("location_id", "locationId"))
    shot_type: str | None = Field(None, validation_alias=AliasChoices("shot_type", "shotType"))
    image_url: str | None = Field(None, validation_alias=AliasChoices("image_url", "imageUrl"))

    @property
    def result_url(self) -> str | None:
        return self.image_url


class VideoCallback(_Callback):
    """video and shot-video."""

    scene_video_id: str | None = Field(None, validation_alias=AliasChoices("scene_video_id", "sceneVideoId"))
    shot_id: str | None = Field(None, validation_alias=AliasChoices("shot_id", "shotId"))
    video_url: str | None = Field(None, validation_alias=AliasChoices("video_url", "videoUrl"))
    duration_seconds: float | None = Field(None, validation_alias=AliasChoices("duration_seconds", "durationSeconds"))

    @property
    def result_url(self) -> str | None:
        return self.video_url

    def to_completion(self, duration_seconds: float | None = None) -> Completion:
        return super().to_completion(self.duration_seconds)


class BibleParsedCallback(BaseModel):
    """Result of screenplay decomposition."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    project_id: str | None = Field(None, validation_alias=AliasChoices("project_id", "projectId"))
    status: str | None = None
    bible: dict[str, Any] = Field(default_factory=dict)
    scenes: list[dict[str, Any]] = Field(default_factory=list)
    error_message: str | None = Field(None, validation_alias=AliasChoices("error_message", "errorMessage", "error"))

    @property
    def failed(self) -> bool:
        return (self.status or "").lower() in FAILURE_STATUSES

    def parsed(self) -> dict[str, Any]:
        return {"bible": self.bible, "scenes": self.scenes}
