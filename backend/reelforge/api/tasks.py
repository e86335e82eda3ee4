from __future__ import annotations
"""Auto-mode task endpoints. The Celery task id is the handle callers poll."""

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from reelforge.database import get_db
from reelforge.models.project import Project
from reelforge.tasks.generation_tasks import (
    BIBLE_GENERATION,
    SCENE_GENERATION,
    schedule_auto_generation,
    task_state,
)

router = APIRouter()


async def _schedule(db: AsyncSession, project_id: str, kind: str) -> dict:
    project = await db.get(Project, project_id)
    if not project:
        raise HTTPException(status_code=404, detail="Project not found")
    task_id = schedule_auto_generation(kind, project_id)
    project.generation_task_id = task_id
    project.error_message = None
    return {"success": True, "task_id": task_id}


@router.post("/projects/{project_id}/bible", status_code=202)
async def auto_generate_bible(project_id: str, db: AsyncSession = Depends(get_db)):
    """Generate candidates for every bible asset in the background."""
    return await _schedule(db, project_id, BIBLE_GENERATION)


@router.post("/projects/{project_id}/scenes", status_code=202)
async def auto_generate_scenes(project_id: str, db: AsyncSession = Depends(get_db)):
    return await _schedule(db, project_id, SCENE_GENERATION)


@router.get("/{task_id}")
async def get_task(task_id: str):
    return task_state(task_id)
