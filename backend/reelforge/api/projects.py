from __future__ import annotations
"""Project endpoints: CRUD, scene order and bible-wide actions."""

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from reelforge.api.deps import fresh, get_lifecycle, get_variant_engine, unwrap
from reelforge.database import get_db
from reelforge.models.project import Project, ProjectStatus
from reelforge.schemas.project import ProjectCreate, ProjectRead, SceneOrderUpdate
from reelforge.services.lifecycle import ProjectLifecycle
from reelforge.services.variant_engine import VariantEngine

router = APIRouter()


async def _read(lifecycle: ProjectLifecycle, project: Project) -> ProjectRead:
    """Serialise with the effective (derived) status."""
    read = ProjectRead.model_validate(project)
    return read.model_copy(update={"status": await lifecycle.effective_status(project)})


@router.get("/", response_model=list[ProjectRead])
async def list_projects(lifecycle: ProjectLifecycle = Depends(get_lifecycle)):
    """List projects, newest first. Failed projects are hidden."""
    return [await _read(lifecycle, p) for p in await lifecycle.list_projects()]


@router.post("/", response_model=ProjectRead, status_code=201)
async def create_project(data: ProjectCreate, db: AsyncSession = Depends(get_db)):
    """Create a project awaiting its screenplay decomposition."""
    project = Project(
        title=data.title,
        description=data.description,
        visual_style=data.visual_style,
        auto_mode=data.auto_mode,
        status=ProjectStatus.PARSING.value,
    )
    db.add(project)
    await db.flush()
    return await fresh(db, project)


@router.get("/{project_id}", response_model=ProjectRead)
async def get_project(
    project_id: str,
    db: AsyncSession = Depends(get_db),
    lifecycle: ProjectLifecycle = Depends(get_lifecycle),
):
    project = await db.get(Project, project_id)
    if not project:
        raise HTTPException(status_code=404, detail="Project not found")
    return await _read(lifecycle, await fresh(db, project))


@router.delete("/{project_id}")
async def delete_project(project_id: str, lifecycle: ProjectLifecycle = Depends(get_lifecycle)):
    """Delete a project with its bible, scenes, variants, videos and reel."""
    return unwrap(await lifecycle.delete_project(project_id))


@router.put("/{project_id}/scene-order")
async def update_scene_order(
    project_id: str,
    data: SceneOrderUpdate,
    lifecycle: ProjectLifecycle = Depends(get_lifecycle),
):
    return unwrap(await lifecycle.update_scene_order(project_id, data.scene_ids))


@router.get("/{project_id}/bible-status")
async def bible_status(
    project_id: str,
    db: AsyncSession = Depends(get_db),
    lifecycle: ProjectLifecycle = Depends(get_lifecycle),
):
    if not await db.get(Project, project_id):
        raise HTTPException(status_code=404, detail="Project not found")
    return await lifecycle.bible_approval_status(project_id)


@router.post("/{project_id}/bible/skip")
async def skip_bible_review(project_id: str, lifecycle: ProjectLifecycle = Depends(get_lifecycle)):
    return unwrap(await lifecycle.skip_bible_review(project_id))


@router.post("/{project_id}/bible/approve-all")
async def approve_all_bible_assets(
    project_id: str, lifecycle: ProjectLifecycle = Depends(get_lifecycle)
):
    """Approve every asset whose selected image is waiting for review."""
    return unwrap(await lifecycle.approve_all_bible_assets(project_id))


@router.post("/{project_id}/bible/bulk-approve-images")
async def bulk_approve_bible_images(
    project_id: str, engine: VariantEngine = Depends(get_variant_engine)
):
    """Select the first ready candidate where needed, then approve."""
    return unwrap(await engine.bulk_approve_bible_images(project_id))


@router.post("/{project_id}/scenes/bulk-approve-images")
async def bulk_approve_scene_images(
    project_id: str, engine: VariantEngine = Depends(get_variant_engine)
):
    return unwrap(await engine.bulk_approve_scene_images(project_id))
