from __future__ import annotations
"""Video endpoints: admission-controlled generation, review and stats."""

from fastapi import APIRouter, Depends
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from reelforge.api.deps import get_admission_queue, unwrap
from reelforge.database import get_db
from reelforge.models.scene import Scene
from reelforge.models.video import SceneVideo
from reelforge.schemas.video import VideoRead, VideoRequest
from reelforge.services.admission import AdmissionQueue

router = APIRouter()


@router.get("/projects/{project_id}", response_model=list[VideoRead])
async def list_videos(project_id: str, db: AsyncSession = Depends(get_db)):
    result = await db.execute(
        select(SceneVideo)
        .join(Scene, Scene.id == SceneVideo.scene_id)
        .where(Scene.project_id == project_id)
        .order_by(Scene.scene_number)
    )
    return result.scalars().all()


@router.get("/projects/{project_id}/stats")
async def video_stats(project_id: str, queue: AdmissionQueue = Depends(get_admission_queue)):
    return await queue.video_stats(project_id)


@router.post("/projects/{project_id}/sweep")
async def sweep(project_id: str, queue: AdmissionQueue = Depends(get_admission_queue)):
    """Admit waiting shots and scene videos up to the concurrency cap."""
    return unwrap(await queue.sweep(project_id))


@router.post("/projects/{project_id}/cancel")
async def cancel_project(project_id: str, queue: AdmissionQueue = Depends(get_admission_queue)):
    """Cancel every generating shot and scene video of the project."""
    return unwrap(await queue.cancel_project(project_id))


@router.post("/projects/{project_id}/reset-shots")
async def reset_shots(project_id: str, queue: AdmissionQueue = Depends(get_admission_queue)):
    return unwrap(await queue.reset_shots_for_project(project_id))


@router.post("/scenes/{scene_id}", status_code=202)
async def request_generation(
    scene_id: str,
    data: VideoRequest,
    queue: AdmissionQueue = Depends(get_admission_queue),
):
    """Start a scene video; ``queued: true`` means the cap was reached."""
    return unwrap(await queue.request_generation(scene_id, data.variant_id))


@router.post("/shots/{shot_id}", status_code=202)
async def request_shot_generation(shot_id: str, queue: AdmissionQueue = Depends(get_admission_queue)):
    return unwrap(await queue.request_shot_generation(shot_id))


@router.delete("/shots/{shot_id}")
async def cancel_shot(shot_id: str, queue: AdmissionQueue = Depends(get_admission_queue)):
    return unwrap(await queue.cancel_shot(shot_id))


@router.post("/{video_id}/regenerate", status_code=202)
async def regenerate(video_id: str, queue: AdmissionQueue = Depends(get_admission_queue)):
    return unwrap(await queue.regenerate(video_id))


@router.post("/{video_id}/approve")
async def approve_video(video_id: str, queue: AdmissionQueue = Depends(get_admission_queue)):
    return unwrap(await queue.approve_video(video_id))


@router.delete("/{video_id}")
async def cancel(video_id: str, queue: AdmissionQueue = Depends(get_admission_queue)):
    return unwrap(await queue.cancel(video_id))
