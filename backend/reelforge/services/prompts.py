from __future__ import annotations
"""Prompt assembly for image and video generation requests."""

from typing import Any, Iterable

from reelforge.models.bible_asset import BibleAsset, BibleAssetType
from reelforge.models.scene import Scene

VEO3_COMPONENTS = ("subject", "action", "scene", "style", "dialogue", "sounds", "technical")


def bible_prompt(asset: BibleAsset) -> str | None:
    """Characters: visual DNA + portrait prompt. Locations/props: visual description."""
    if asset.asset_type == BibleAssetType.CHARACTER.value:
        if not asset.portrait_prompt:
            return None
        dna = ", ".join(asset.visual_dna or [])
        return f"{dna}. {asset.portrait_prompt}" if dna else asset.portrait_prompt
    return asset.visual_description or None


def scene_image_prompt(
    scene: Scene,
    visual_style: str | None,
    references: Iterable[BibleAsset] = (),
) -> str:
    """Short action/composition prompt; bible reference images carry the look."""
    data = scene.production_data or {}
    parts: list[str] = []
    if scene.slugline:
        parts.append(scene.slugline)
    action = data.get("action_description") or data.get("action_summary")
    if action:
        parts.append(action)
    names = [asset.name for asset in references if asset.asset_type == BibleAssetType.CHARACTER.value]
    if names:
        parts.append("Featuring " + " and ".join(names))
    mood = data.get("visual_mood") or {}
    if isinstance(mood, dict) and mood.get("composition"):
        parts.append(mood["composition"])
    if visual_style:
        parts.append(f"Style: {visual_style}")
    return ". ".join(parts)


def joined_components(value: Any) -> str:
    if isinstance(value, dict):
        return ". ".join(str(value[key]) for key in VEO3_COMPONENTS if value.get(key))
    if isinstance(value, str):
        return value
    return ""


def video_prompt(scene: Scene) -> str:
    """Pick the richest video prompt available for a scene.

    Order: structured veo3 prompt, first planned shot (veo3 then action),
    legacy action fields, slugline.
    """
    data = scene.production_data or {}

    prompt = joined_components(data.get("video_prompt_veo3"))
    if prompt:
        return prompt

    shots = data.get("shots") or []
    if shots and isinstance(shots[0], dict):
        first = shots[0]
        prompt = joined_components(first.get("veo3_prompt"))
        if prompt:
            return prompt
        if first.get("action_prompt"):
            parts = [first["action_prompt"]]
            if first.get("dialogue"):
                parts.append(f"Dialogue: {first['dialogue']}")
            if first.get("composition"):
                parts.append(first["composition"])
            return ". ".join(parts)

    action = data.get("action_description") or data.get("action_summary")
    if action:
        mood = data.get("visual_mood") or {}
        atmosphere = mood.get("atmosphere") if isinstance(mood, dict) else None
        return f"{action}. {atmosphere}" if atmosphere else action

    return scene.slugline
