from __future__ import annotations
"""Celery tasks for auto-mode generation, video admission and assembly.

Each task body is a thin wrapper around an async helper that takes a
session factory and the adapters explicitly. The API keeps the Celery
task id as the handle for auto-mode runs; failures reach the project
through the ``record_generation_failure`` errback.
"""

import logging
from dataclasses import dataclass
from typing import Any

from celery import shared_task
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from reelforge.config import PipelineConfig, get_settings
from reelforge.models.bible_asset import BibleAsset, BibleAssetStatus
from reelforge.models.project import Project
from reelforge.models.scene import Scene
from reelforge.models.variant import Variant, VariantParentType, VariantStatus
from reelforge.services.admission import AdmissionQueue
from reelforge.services.assembly import AssemblyOrderer
from reelforge.services.blob_store import BlobStore
from reelforge.services.gateway import CompositionGateway, GenerationGateway
from reelforge.services.pubsub import publish_project_update
from reelforge.services.results import truncate_error
from reelforge.services.variant_engine import VariantEngine
from reelforge.tasks import celery_app, run_async

logger = logging.getLogger(__name__)

BIBLE_GENERATION = "bible"
SCENE_GENERATION = "scenes"


@dataclass
class Adapters:
    """Everything a task needs besides a session."""
    config: PipelineConfig
    gateway: GenerationGateway
    composer: CompositionGateway
    blob_store: BlobStore

    @classmethod
    def from_settings(cls) -> Adapters:
        settings = get_settings()
        return cls(
            config=PipelineConfig.from_settings(settings),
            gateway=GenerationGateway.from_settings(settings),
            composer=CompositionGateway.from_settings(settings),
            blob_store=BlobStore.from_settings(settings),
        )


def task_session_factory() -> async_sessionmaker[AsyncSession]:
    from reelforge.database import async_session_factory

    return async_session_factory


async def _has_live_variants(session: AsyncSession, parent_type: str, parent_id: str) -> bool:
    count = await session.scalar(
        select(func.count(Variant.id)).where(
            Variant.parent_type == parent_type,
            Variant.parent_id == parent_id,
            Variant.status != VariantStatus.FAILED.value,
        )
    )
    return bool(count)


# ──────── Async helpers (exercised directly by tests) ────────

async def generate_bible_assets(
    session_factory: async_sessionmaker[AsyncSession], adapters: Adapters, project_id: str
) -> dict[str, Any]:
    """Fan out variants for every bible asset that still needs an image."""
    async with session_factory() as session:
        engine = VariantEngine(session, adapters.config, adapters.gateway, adapters.blob_store)
        result = await session.execute(
            select(BibleAsset)
            .where(
                BibleAsset.project_id == project_id,
                BibleAsset.image_status.in_([BibleAssetStatus.PENDING.value, BibleAssetStatus.FAILED.value]),
                BibleAsset.approved_image_url.is_(None),
            )
            .order_by(BibleAsset.asset_type, BibleAsset.name)
        )
        assets = list(result.scalars().all())

        started, errors = 0, []
        for asset in assets:
            if await _has_live_variants(session, asset.asset_type, asset.id):
                continue
            outcome = await engine.generate_variants(asset.asset_type, asset.id)
            if outcome.success:
                started += len(outcome.data["variant_ids"])
            else:
                errors.append(f"{asset.name}: {outcome.error}")

    logger.info("Auto-generated %d bible variant(s) for project %s", started, project_id)
    return {"project_id": project_id, "variants": started, "errors": errors}


async def generate_scene_images(
    session_factory: async_sessionmaker[AsyncSession], adapters: Adapters, project_id: str
) -> dict[str, Any]:
    """Fan out variants for scenes without an approved image or pending candidates."""
    async with session_factory() as session:
        engine = VariantEngine(session, adapters.config, adapters.gateway, adapters.blob_store)
        result = await session.execute(
            select(Scene)
            .where(Scene.project_id == project_id, Scene.approved_image_id.is_(None))
            .order_by(Scene.scene_number)
        )
        scenes = list(result.scalars().all())

        started, errors = 0, []
        for scene in scenes:
            if await _has_live_variants(session, VariantParentType.SCENE.value, scene.id):
                continue
            outcome = await engine.generate_variants(VariantParentType.SCENE.value, scene.id)
            if outcome.success:
                started += len(outcome.data["variant_ids"])
            else:
                errors.append(f"scene {scene.scene_number}: {outcome.error}")

    logger.info("Auto-generated %d scene variant(s) for project %s", started, project_id)
    return {"project_id": project_id, "variants": started, "errors": errors}


async def record_failure(
    session_factory: async_sessionmaker[AsyncSession], project_id: str, error: str
) -> None:
    async with session_factory() as session:
        project = await session.get(Project, project_id)
        if project is None:
            return
        project.error_message = truncate_error(error)
        project.generation_task_id = None
        await session.commit()


async def sweep_project(
    session_factory: async_sessionmaker[AsyncSession], adapters: Adapters, project_id: str
) -> dict[str, Any]:
    async with session_factory() as session:
        queue = AdmissionQueue(session, adapters.config, adapters.gateway, adapters.blob_store)
        return (await queue.sweep(project_id)).to_dict()


async def assemble(
    session_factory: async_sessionmaker[AsyncSession], adapters: Adapters, project_id: str
) -> dict[str, Any]:
    async with session_factory() as session:
        orderer = AssemblyOrderer(session, adapters.config, adapters.composer, adapters.blob_store)
        return (await orderer.assemble(project_id)).to_dict()


# ──────── Celery tasks ────────

@shared_task(bind=True)
def auto_generate_bible_assets(self, project_id: str):
    """Auto mode, stage one: candidates for every character, location and prop."""
    summary = run_async(generate_bible_assets(task_session_factory(), Adapters.from_settings(), project_id))
    publish_project_update(project_id, "bible_generation_started", task_id=self.request.id, variants=summary["variants"])
    return summary


@shared_task(bind=True)
def auto_generate_scene_images(self, project_id: str):
    """Auto mode, stage two: candidates for every scene image."""
    summary = run_async(generate_scene_images(task_session_factory(), Adapters.from_settings(), project_id))
    publish_project_update(project_id, "scene_generation_started", task_id=self.request.id, variants=summary["variants"])
    return summary


@shared_task
def record_generation_failure(request, exc, traceback, project_id: str):
    """Errback linked to the auto-mode tasks."""
    logger.error("Auto generation task %s failed for project %s: %s", request.id, project_id, exc)
    run_async(record_failure(task_session_factory(), project_id, f"Auto generation failed: {exc}"))
    publish_project_update(project_id, "generation_failed", task_id=request.id, error=str(exc))


@shared_task
def sweep_video_queue(project_id: str):
    return run_async(sweep_project(task_session_factory(), Adapters.from_settings(), project_id))


@shared_task
def assemble_project(project_id: str):
    result = run_async(assemble(task_session_factory(), Adapters.from_settings(), project_id))
    publish_project_update(project_id, "assembly_finished", success=result["success"])
    return result


_TASKS = {
    BIBLE_GENERATION: auto_generate_bible_assets,
    SCENE_GENERATION: auto_generate_scene_images,
}


def schedule_auto_generation(kind: str, project_id: str) -> str:
    """Enqueue an auto-mode stage and return its task id."""
    task = _TASKS[kind]
    async_result = task.apply_async(
        args=[project_id],
        link_error=record_generation_failure.s(project_id),
    )
    logger.info("Scheduled %s generation for project %s (task %s)", kind, project_id, async_result.id)
    return async_result.id


def task_state(task_id: str) -> dict[str, Any]:
    result = celery_app.AsyncResult(task_id)
    state: dict[str, Any] = {"task_id": task_id, "status": result.status}
    if result.successful():
        state["result"] = result.result
    elif result.failed():
        state["error"] = str(result.result)
    return state
