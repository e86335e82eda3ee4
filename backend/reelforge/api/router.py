from __future__ import annotations
"""Master API router: mounts all sub-routers."""

from fastapi import APIRouter

from reelforge.api.assembly import router as assembly_router
from reelforge.api.bible import router as bible_router
from reelforge.api.projects import router as projects_router
from reelforge.api.scenes import router as scenes_router
from reelforge.api.tasks import router as tasks_router
from reelforge.api.variants import router as variants_router
from reelforge.api.videos import router as videos_router
from reelforge.api.webhooks import router as webhooks_router

api_router = APIRouter(prefix="/api", redirect_slashes=False)

api_router.include_router(projects_router, prefix="/projects", tags=["Projects"])
api_router.include_router(bible_router, prefix="/projects/{project_id}/bible", tags=["Bible"])
api_router.include_router(scenes_router, prefix="/projects/{project_id}/scenes", tags=["Scenes"])
api_router.include_router(assembly_router, prefix="/projects/{project_id}/assembly", tags=["Assembly"])
api_router.include_router(variants_router, prefix="/variants", tags=["Variants"])
api_router.include_router(videos_router, prefix="/videos", tags=["Videos"])
api_router.include_router(tasks_router, prefix="/tasks", tags=["Tasks"])
api_router.include_router(webhooks_router, prefix="/webhooks", tags=["Webhooks"])
