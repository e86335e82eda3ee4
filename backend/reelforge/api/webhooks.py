from __future__ import annotations
"""Callback endpoints for the generation and parsing workflows.

Callbacks are applied by record id and are safe to repeat. Video and
shot completions free a slot, so each one triggers a sweep of the
owning project.
"""

import logging

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from reelforge.api.deps import get_admission_queue, get_lifecycle, get_variant_engine, unwrap
from reelforge.database import get_db
from reelforge.models.bible_asset import BibleAsset, BibleAssetType, ShotType
from reelforge.models.project import Project
from reelforge.models.scene import Scene
from reelforge.models.variant import Variant, VariantParentType
from reelforge.schemas.webhook import BibleParsedCallback, ImageCallback, VideoCallback
from reelforge.services import pubsub
from reelforge.services.admission import AdmissionQueue
from reelforge.services.lifecycle import ProjectLifecycle
from reelforge.services.variant_engine import VariantEngine
from reelforge.tasks.generation_tasks import BIBLE_GENERATION, schedule_auto_generation

logger = logging.getLogger(__name__)
router = APIRouter()

_SHOT_TYPES = {s.value for s in ShotType}


async def _project_of_variant(db: AsyncSession, variant_id: str) -> str | None:
    variant = await db.get(Variant, variant_id)
    if variant is None:
        return None
    model = Scene if variant.parent_type == VariantParentType.SCENE.value else BibleAsset
    parent = await db.get(model, variant.parent_id)
    return parent.project_id if parent else None


def _require_result(body: ImageCallback | VideoCallback, field: str) -> None:
    if not body.failed and not body.result_url:
        raise HTTPException(status_code=400, detail=f"{field} is required")


async def _apply_variant(db: AsyncSession, engine: VariantEngine, body: ImageCallback) -> dict:
    _require_result(body, "image_url")
    result = unwrap(await engine.apply_completion(body.variant_id, body.to_completion()))
    project_id = await _project_of_variant(db, body.variant_id)
    variant = await db.get(Variant, body.variant_id)
    if project_id and variant:
        await pubsub.publish_variant_update(
            project_id, variant.id, variant.status, variant.parent_type, variant.parent_id
        )
    return result


async def _apply_asset(
    engine: VariantEngine,
    body: ImageCallback,
    asset_type: BibleAssetType,
    asset_id: str | None,
    shot_type: str | None = None,
) -> dict:
    if not asset_id:
        raise HTTPException(status_code=400, detail=f"{asset_type.value}_id or variant_id is required")
    _require_result(body, "image_url")
    result = unwrap(await engine.apply_asset_result(asset_type.value, asset_id, body.to_completion(), shot_type))
    asset = await engine.session.get(BibleAsset, asset_id)
    if asset:
        await pubsub.publish(asset.project_id, {
            "type": "asset_update", "asset_id": asset.id, "image_status": asset.image_status,
        })
    return result


@router.post("/image-variant")
async def image_variant_callback(
    body: ImageCallback,
    db: AsyncSession = Depends(get_db),
    engine: VariantEngine = Depends(get_variant_engine),
):
    if not body.variant_id:
        raise HTTPException(status_code=400, detail="variant_id is required")
    return await _apply_variant(db, engine, body)


@router.post("/scene-image-variant")
async def scene_image_variant_callback(
    body: ImageCallback,
    db: AsyncSession = Depends(get_db),
    engine: VariantEngine = Depends(get_variant_engine),
):
    if not body.variant_id:
        raise HTTPException(status_code=400, detail="scene_image_variant_id is required")
    return await _apply_variant(db, engine, body)


@router.post("/character-image")
async def character_image_callback(
    body: ImageCallback,
    db: AsyncSession = Depends(get_db),
    engine: VariantEngine = Depends(get_variant_engine),
):
    """Variant result when ``variant_id`` is present, else a direct result for one shot."""
    if body.variant_id:
        return await _apply_variant(db, engine, body)
    if body.shot_type not in _SHOT_TYPES:
        raise HTTPException(
            status_code=400, detail="shot_type must be portrait, three_quarter, or full_body"
        )
    return await _apply_asset(engine, body, BibleAssetType.CHARACTER, body.character_id, body.shot_type)


@router.post("/location-image")
async def location_image_callback(
    body: ImageCallback,
    db: AsyncSession = Depends(get_db),
    engine: VariantEngine = Depends(get_variant_engine),
):
    if body.variant_id:
        return await _apply_variant(db, engine, body)
    return await _apply_asset(engine, body, BibleAssetType.LOCATION, body.location_id)


@router.post("/prop-image")
async def prop_image_callback(
    body: ImageCallback,
    db: AsyncSession = Depends(get_db),
    engine: VariantEngine = Depends(get_variant_engine),
):
    if body.variant_id:
        return await _apply_variant(db, engine, body)
    return await _apply_asset(engine, body, BibleAssetType.PROP, body.prop_id)


async def _after_video(queue: AdmissionQueue, result: dict, record_id: str, kind: str) -> dict:
    project_id = result.get("project_id")
    if project_id:
        await pubsub.publish_video_update(project_id, record_id, result["status"], kind=kind)
        swept = await queue.sweep(project_id)
        result["triggered"] = swept.data["triggered"]
    return result


@router.post("/video")
async def video_callback(body: VideoCallback, queue: AdmissionQueue = Depends(get_admission_queue)):
    if not body.scene_video_id:
        raise HTTPException(status_code=400, detail="scene_video_id is required")
    _require_result(body, "video_url")
    result = unwrap(await queue.apply_video_completion(body.scene_video_id, body.to_completion()))
    return await _after_video(queue, result, body.scene_video_id, "video")


@router.post("/shot-video")
async def shot_video_callback(body: VideoCallback, queue: AdmissionQueue = Depends(get_admission_queue)):
    if not body.shot_id:
        raise HTTPException(status_code=400, detail="shot_id is required")
    _require_result(body, "video_url")
    result = unwrap(await queue.apply_shot_completion(body.shot_id, body.to_completion()))
    return await _after_video(queue, result, body.shot_id, "shot")


@router.post("/bible-parsed")
async def bible_parsed_callback(
    body: BibleParsedCallback,
    lifecycle: ProjectLifecycle = Depends(get_lifecycle),
):
    """Screenplay decomposition finished (or failed)."""
    if not body.project_id:
        raise HTTPException(status_code=400, detail="project_id is required")

    if body.failed:
        result = unwrap(await lifecycle.fail_parsing(body.project_id, body.error_message))
        pubsub_status = "failed"
    else:
        result = unwrap(await lifecycle.complete_parsing(body.project_id, body.parsed()))
        pubsub_status = result["status"]
        if result.get("auto_mode"):
            task_id = schedule_auto_generation(BIBLE_GENERATION, body.project_id)
            project = await lifecycle.session.get(Project, body.project_id)
            project.generation_task_id = task_id
            result["task_id"] = task_id

    await pubsub.publish(body.project_id, {"type": "project_update", "status": pubsub_status})
    logger.info("Parsing callback applied for project %s: %s", body.project_id, pubsub_status)
    return result
