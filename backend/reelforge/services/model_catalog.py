"""Declarative image model catalogue.

Maps the short model keys used by the studio (``seedream``, ``nano-banana``)
to the workflow model names and their request defaults.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

logger = logging.getLogger(__name__)

DEFAULT_QUALITY = "medium"


@dataclass(frozen=True)
class ImageModel:
    """Descriptor for a single image model."""
    key: str                # short key stored on variants
    workflow_name: str      # name the generation workflow expects
    quality: str
    supports_reference: bool = True


class ImageModelCatalog:
    """In-memory catalogue of all supported image models."""

    def __init__(self) -> None:
        self._models: dict[str, ImageModel] = {}

    def register(self, model: ImageModel) -> None:
        self._models[model.key] = model

    def get(self, key: str) -> ImageModel | None:
        return self._models.get(key)

    def keys(self) -> list[str]:
        return list(self._models)

    def is_known(self, key: str) -> bool:
        return key in self._models

    def workflow_name(self, key: str) -> str:
        """Workflow model name; unknown keys pass through unchanged."""
        model = self._models.get(key)
        return model.workflow_name if model else key

    def quality_for(self, key: str) -> str:
        model = self._models.get(key)
        if model:
            return model.quality
        # Stored variants may carry the workflow name rather than the short key
        for candidate in self._models.values():
            if candidate.workflow_name == key:
                return candidate.quality
        return DEFAULT_QUALITY

    def key_for(self, model_name: str) -> str:
        """Short key for either a key or a workflow name."""
        if model_name in self._models:
            return model_name
        for candidate in self._models.values():
            if candidate.workflow_name == model_name or candidate.key in model_name:
                return candidate.key
        return model_name

    def to_dict_list(self) -> list[dict[str, Any]]:
        return [
            {
                "key": m.key,
                "workflow_name": m.workflow_name,
                "quality": m.quality,
                "supports_reference": m.supports_reference,
            }
            for m in self._models.values()
        ]


IMAGE_MODELS = ImageModelCatalog()
IMAGE_MODELS.register(ImageModel("seedream", "seedream-4.5-text-to-image", quality="basic"))
IMAGE_MODELS.register(ImageModel("nano-banana", "nano-banana-pro-text-to-image", quality="low"))

DEFAULT_MODEL_SET: tuple[str, ...] = ("seedream", "nano-banana")


def aspect_ratio_for(parent_type: str) -> str:
    """Locations and scenes are widescreen; characters and props are square."""
    if parent_type in ("location", "scene"):
        return "16:9"
    return "1:1"
