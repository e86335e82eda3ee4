from __future__ import annotations
"""Scene endpoints: validation, scene image variants and shot plans."""

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from reelforge.api.deps import get_admission_queue, get_lifecycle, get_variant_engine, unwrap
from reelforge.database import get_db
from reelforge.models.scene import Scene
from reelforge.models.variant import VariantParentType
from reelforge.models.video import SceneShot
from reelforge.schemas.bible import AddVariantRequest, GenerateVariantsRequest
from reelforge.schemas.scene import SceneRead, ShotPlanRequest, ShotRead
from reelforge.services.admission import AdmissionQueue
from reelforge.services.lifecycle import ProjectLifecycle
from reelforge.services.variant_engine import VariantEngine

router = APIRouter()


async def _get_scene(db: AsyncSession, project_id: str, scene_id: str) -> Scene:
    scene = await db.get(Scene, scene_id)
    if not scene or scene.project_id != project_id:
        raise HTTPException(status_code=404, detail="Scene not found")
    return scene


@router.get("/", response_model=list[SceneRead])
async def list_scenes(project_id: str, db: AsyncSession = Depends(get_db)):
    result = await db.execute(
        select(Scene).where(Scene.project_id == project_id).order_by(Scene.scene_number)
    )
    return result.scalars().all()


@router.post("/approve-all")
async def approve_all_scenes(project_id: str, lifecycle: ProjectLifecycle = Depends(get_lifecycle)):
    return unwrap(await lifecycle.approve_all_scenes(project_id))


@router.post("/{scene_id}/approve")
async def approve_scene(
    project_id: str,
    scene_id: str,
    db: AsyncSession = Depends(get_db),
    lifecycle: ProjectLifecycle = Depends(get_lifecycle),
):
    await _get_scene(db, project_id, scene_id)
    return unwrap(await lifecycle.approve_scene(scene_id))


@router.post("/{scene_id}/reject")
async def reject_scene(
    project_id: str,
    scene_id: str,
    db: AsyncSession = Depends(get_db),
    lifecycle: ProjectLifecycle = Depends(get_lifecycle),
):
    """Send a scene back to validation; the project follows it."""
    await _get_scene(db, project_id, scene_id)
    return unwrap(await lifecycle.reject_scene(scene_id))


@router.post("/{scene_id}/variants", status_code=202)
async def generate_scene_variants(
    project_id: str,
    scene_id: str,
    data: GenerateVariantsRequest,
    db: AsyncSession = Depends(get_db),
    engine: VariantEngine = Depends(get_variant_engine),
):
    await _get_scene(db, project_id, scene_id)
    return unwrap(await engine.generate_variants(VariantParentType.SCENE.value, scene_id, data.models))


@router.post("/{scene_id}/variants/add", status_code=202)
async def add_scene_variant(
    project_id: str,
    scene_id: str,
    data: AddVariantRequest,
    db: AsyncSession = Depends(get_db),
    engine: VariantEngine = Depends(get_variant_engine),
):
    await _get_scene(db, project_id, scene_id)
    return unwrap(await engine.add_variant(VariantParentType.SCENE.value, scene_id, data.model))


@router.get("/{scene_id}/shots", response_model=list[ShotRead])
async def list_shots(project_id: str, scene_id: str, db: AsyncSession = Depends(get_db)):
    await _get_scene(db, project_id, scene_id)
    result = await db.execute(
        select(SceneShot).where(SceneShot.scene_id == scene_id).order_by(SceneShot.shot_number)
    )
    return result.scalars().all()


@router.post("/{scene_id}/shots", status_code=201)
async def create_shots(
    project_id: str,
    scene_id: str,
    data: ShotPlanRequest,
    db: AsyncSession = Depends(get_db),
    queue: AdmissionQueue = Depends(get_admission_queue),
):
    """Replace the scene's shot plan."""
    await _get_scene(db, project_id, scene_id)
    shots = [s.model_dump(exclude_none=True) for s in data.shots] if data.shots is not None else None
    return unwrap(await queue.create_shots(scene_id, shots))
