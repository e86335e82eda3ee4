from __future__ import annotations
"""Generation admission queue for video jobs.

Video generation is expensive, so at most ``max_concurrent_video_jobs``
jobs (scene videos plus shots) may be generating at once, system-wide.
Requests over the cap are dropped with a ``queued`` signal; ``sweep``
picks them up again whenever a job finishes.
"""

import logging
from datetime import datetime
from typing import Any

from sqlalchemy import delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from reelforge.config import PipelineConfig
from reelforge.models.project import Project
from reelforge.models.scene import Scene
from reelforge.models.variant import Variant
from reelforge.models.video import SceneShot, SceneVideo, VideoStatus
from reelforge.services import prompts
from reelforge.services.blob_store import BlobStore
from reelforge.services.gateway import GatewayResponse, GenerationGateway
from reelforge.services.results import ActionResult, Completion, truncate_error

logger = logging.getLogger(__name__)

VIDEO_ASPECT_RATIO = "16:9"
_ACTIVE_SHOT_STATUSES = (
    VideoStatus.GENERATING.value,
    VideoStatus.READY.value,
    VideoStatus.APPROVED.value,
)
_FINISHED_STATUSES = (VideoStatus.READY.value, VideoStatus.APPROVED.value)


class AdmissionQueue:
    """Admits, completes and cancels video generation jobs under a global cap."""

    def __init__(
        self,
        session: AsyncSession,
        config: PipelineConfig,
        gateway: GenerationGateway,
        blob_store: BlobStore,
    ) -> None:
        self.session = session
        self.config = config
        self.gateway = gateway
        self.blob_store = blob_store

    # ------------------------------------------------------------------
    # Capacity
    # ------------------------------------------------------------------

    async def running_job_count(self) -> int:
        videos = await self.session.scalar(
            select(func.count(SceneVideo.id)).where(SceneVideo.status == VideoStatus.GENERATING.value)
        )
        shots = await self.session.scalar(
            select(func.count(SceneShot.id)).where(SceneShot.video_status == VideoStatus.GENERATING.value)
        )
        return (videos or 0) + (shots or 0)

    async def can_admit(self) -> bool:
        return await self.running_job_count() < self.config.max_concurrent_video_jobs

    # ------------------------------------------------------------------
    # Admission
    # ------------------------------------------------------------------

    async def _latest_video(self, scene_id: str) -> SceneVideo | None:
        return await self.session.scalar(
            select(SceneVideo)
            .where(SceneVideo.scene_id == scene_id)
            .order_by(SceneVideo.created_at.desc())
            .limit(1)
        )

    async def request_generation(self, scene_id: str, variant_id: str | None = None) -> ActionResult:
        """Start the scene's video from a variant (default: the approved scene image)."""
        scene = await self.session.get(Scene, scene_id)
        if not scene:
            return ActionResult.not_found("Scene not found")

        source_id = variant_id or scene.approved_image_id
        variant = await self.session.get(Variant, source_id) if source_id else None
        if not variant:
            return ActionResult.not_found("Variant not found")
        if not variant.image_url:
            return ActionResult.precondition("Variant has no image URL")

        existing = await self._latest_video(scene_id)
        if existing:
            return ActionResult.ok(video_id=existing.id, status=existing.status, queued=False, existing=True)

        if not await self.can_admit():
            logger.info("Video for scene %s not admitted: cap of %d reached", scene_id, self.config.max_concurrent_video_jobs)
            return ActionResult.ok(scene_id=scene_id, queued=True)

        video = SceneVideo(
            scene_id=scene.id,
            source_variant_id=variant.id,
            status=VideoStatus.GENERATING.value,
        )
        self.session.add(video)
        await self.session.commit()
        logger.info("Admitted video %s for scene %s", video.id, scene_id)

        await self._submit_video(video, scene, variant.image_url)
        return ActionResult.ok(video_id=video.id, status=video.status, queued=False)

    async def request_shot_generation(self, shot_id: str) -> ActionResult:
        shot = await self.session.get(SceneShot, shot_id)
        if not shot:
            return ActionResult.not_found("Shot not found")
        if shot.video_status in _ACTIVE_SHOT_STATUSES:
            return ActionResult.ok(shot_id=shot.id, status=shot.video_status, queued=False, existing=True)

        scene = await self.session.get(Scene, shot.scene_id)
        if not scene:
            return ActionResult.not_found("Scene not found")
        if not scene.approved_image_url:
            return ActionResult.precondition("Scene has no approved image")

        if not await self.can_admit():
            logger.info("Shot %s not admitted: cap reached", shot_id)
            return ActionResult.ok(shot_id=shot.id, queued=True)

        shot.video_status = VideoStatus.GENERATING.value
        shot.error_message = None
        await self.session.commit()
        logger.info("Admitted shot %s (scene %s, #%d)", shot.id, scene.id, shot.shot_number)

        payload = {
            "prompt": shot.prompt or prompts.video_prompt(scene),
            "image_url": scene.approved_image_url,
            "duration": shot.duration_seconds,
            "model": self.config.video_model,
            "aspect_ratio": VIDEO_ASPECT_RATIO,
            "shot_id": shot.id,
            "callback_url": self.config.callback_url("shot-video"),
        }
        response = await self.gateway.submit_video(payload)
        await self._record_shot_submission(shot, response)
        return ActionResult.ok(shot_id=shot.id, status=shot.video_status, queued=False)

    async def _submit_video(self, video: SceneVideo, scene: Scene, image_url: str) -> None:
        payload = {
            "prompt": prompts.video_prompt(scene),
            "image_url": image_url,
            "duration": self.config.video_duration_seconds,
            "model": self.config.video_model,
            "aspect_ratio": VIDEO_ASPECT_RATIO,
            "scene_video_id": video.id,
            "callback_url": self.config.callback_url("video"),
        }
        response = await self.gateway.submit_video(payload)
        if not response.success:
            logger.error("Video submission failed for %s: %s", video.id, response.error)
            video.status = VideoStatus.FAILED.value
            video.error_message = truncate_error(response.error or "Video generation failed")
        else:
            video.job_id = response.task_id
            if response.result_url:
                await self._store_video(video, Completion.ready(response.result_url))
        await self.session.commit()

    async def _record_shot_submission(self, shot: SceneShot, response: GatewayResponse) -> None:
        if not response.success:
            logger.error("Shot submission failed for %s: %s", shot.id, response.error)
            shot.video_status = VideoStatus.FAILED.value
            shot.error_message = truncate_error(response.error or "Video generation failed")
        else:
            shot.job_id = response.task_id
            if response.result_url:
                await self._store_shot(shot, Completion.ready(response.result_url))
        await self.session.commit()

    async def sweep(self, project_id: str) -> ActionResult:
        """Admit waiting work for a project until the cap is reached.

        Scenes go in scene_number order. Scenes with shots admit their
        pending shots; scenes without shots admit one scene video once an
        image is approved.
        """
        scenes = (
            await self.session.execute(
                select(Scene).where(Scene.project_id == project_id).order_by(Scene.scene_number)
            )
        ).scalars().all()

        admitted: list[str] = []
        for scene in scenes:
            shots = (
                await self.session.execute(
                    select(SceneShot).where(SceneShot.scene_id == scene.id).order_by(SceneShot.shot_number)
                )
            ).scalars().all()

            if shots:
                for shot in shots:
                    if shot.video_status != VideoStatus.PENDING.value:
                        continue
                    if not await self.can_admit():
                        return self._swept(project_id, admitted)
                    result = await self.request_shot_generation(shot.id)
                    if result.success and not result.data.get("queued"):
                        admitted.append(shot.id)
                continue

            if not scene.approved_image_id or await self._latest_video(scene.id):
                continue
            if not await self.can_admit():
                return self._swept(project_id, admitted)
            result = await self.request_generation(scene.id)
            if result.success and not result.data.get("queued") and result.data.get("video_id"):
                admitted.append(result.data["video_id"])

        return self._swept(project_id, admitted)

    def _swept(self, project_id: str, admitted: list[str]) -> ActionResult:
        if admitted:
            logger.info("Sweep for project %s admitted %d job(s)", project_id, len(admitted))
        return ActionResult.ok(triggered=len(admitted), admitted=admitted)

    # ------------------------------------------------------------------
    # Shot planning
    # ------------------------------------------------------------------

    async def create_shots(self, scene_id: str, shots: list[dict[str, Any]] | None = None) -> ActionResult:
        """Replace a scene's shot plan; defaults to the shots in its production data."""
        scene = await self.session.get(Scene, scene_id)
        if not scene:
            return ActionResult.not_found("Scene not found")
        busy = await self.session.scalar(
            select(func.count(SceneShot.id)).where(
                SceneShot.scene_id == scene_id,
                SceneShot.video_status == VideoStatus.GENERATING.value,
            )
        )
        if busy:
            return ActionResult.precondition("Scene has shots still generating")

        planned = shots if shots is not None else (scene.production_data or {}).get("shots") or []
        if not planned:
            return ActionResult.precondition("No shots to create")

        await self.session.execute(delete(SceneShot).where(SceneShot.scene_id == scene_id))
        created = []
        for number, raw in enumerate(planned, start=1):
            prompt = raw.get("prompt") or prompts.joined_components(raw.get("veo3_prompt")) or raw.get("action_prompt")
            shot = SceneShot(
                scene_id=scene_id,
                shot_number=int(raw.get("shot_number") or number),
                duration_seconds=int(raw.get("duration_seconds") or raw.get("duration") or self.config.video_duration_seconds),
                prompt=prompt or None,
                video_status=VideoStatus.PENDING.value,
            )
            self.session.add(shot)
            created.append(shot)
        await self.session.commit()
        return ActionResult.ok(shot_ids=[s.id for s in created])

    async def reset_shots_for_project(self, project_id: str) -> ActionResult:
        """Rebuild every scene's shot plan from its production data."""
        project = await self.session.get(Project, project_id)
        if not project:
            return ActionResult.not_found("Project not found")
        busy = await self.session.scalar(
            select(func.count(SceneShot.id)).where(
                SceneShot.scene_id.in_(select(Scene.id).where(Scene.project_id == project_id)),
                SceneShot.video_status == VideoStatus.GENERATING.value,
            )
        )
        if busy:
            return ActionResult.precondition("Project has shots still generating")

        scenes = (
            await self.session.execute(
                select(Scene).where(Scene.project_id == project_id).order_by(Scene.scene_number)
            )
        ).scalars().all()
        shot_ids: list[str] = []
        skipped: list[str] = []
        for scene in scenes:
            result = await self.create_shots(scene.id)
            if result.success:
                shot_ids.extend(result.data["shot_ids"])
            else:
                await self.session.execute(delete(SceneShot).where(SceneShot.scene_id == scene.id))
                await self.session.commit()
                skipped.append(scene.id)
        logger.info("Reset shots for project %s: %d created", project_id, len(shot_ids))
        return ActionResult.ok(shot_ids=shot_ids, scenes_without_shots=skipped)

    # ------------------------------------------------------------------
    # Cancel / regenerate
    # ------------------------------------------------------------------

    async def cancel(self, video_id: str) -> ActionResult:
        """Drop a generating scene video outright; the scene can be requested again."""
        video = await self.session.get(SceneVideo, video_id)
        if not video:
            return ActionResult.not_found("Video not found")
        if video.status != VideoStatus.GENERATING.value:
            return ActionResult.precondition("Video is not currently generating")
        scene_id = video.scene_id
        await self.session.delete(video)
        await self.session.commit()
        logger.info("Cancelled video %s (scene %s)", video_id, scene_id)
        return ActionResult.ok(video_id=video_id, scene_id=scene_id)

    async def cancel_shot(self, shot_id: str) -> ActionResult:
        """Shots belong to the scene's plan, so they go back to pending instead."""
        shot = await self.session.get(SceneShot, shot_id)
        if not shot:
            return ActionResult.not_found("Shot not found")
        if shot.video_status != VideoStatus.GENERATING.value:
            return ActionResult.precondition("Shot is not currently generating")
        self._reset_cancelled_shot(shot)
        await self.session.commit()
        logger.info("Cancelled shot %s", shot_id)
        return ActionResult.ok(shot_id=shot_id, status=shot.video_status)

    async def cancel_project(self, project_id: str) -> ActionResult:
        """Cancel every generating job of one project.

        Generating shots return to pending and generating scene videos are
        dropped. Jobs of other projects are left alone.
        """
        project = await self.session.get(Project, project_id)
        if not project:
            return ActionResult.not_found("Project not found")
        scene_ids = select(Scene.id).where(Scene.project_id == project_id)

        shots = (
            await self.session.execute(
                select(SceneShot).where(
                    SceneShot.scene_id.in_(scene_ids),
                    SceneShot.video_status == VideoStatus.GENERATING.value,
                )
            )
        ).scalars().all()
        for shot in shots:
            self._reset_cancelled_shot(shot)

        videos = (
            await self.session.execute(
                select(SceneVideo).where(
                    SceneVideo.scene_id.in_(scene_ids),
                    SceneVideo.status == VideoStatus.GENERATING.value,
                )
            )
        ).scalars().all()
        shot_ids = [s.id for s in shots]
        video_ids = [v.id for v in videos]
        for video in videos:
            await self.session.delete(video)

        await self.session.commit()
        logger.info(
            "Cancelled %d shot(s) and %d video(s) for project %s", len(shot_ids), len(video_ids), project_id
        )
        return ActionResult.ok(shot_ids=shot_ids, video_ids=video_ids)

    @staticmethod
    def _reset_cancelled_shot(shot: SceneShot) -> None:
        shot.video_status = VideoStatus.PENDING.value
        shot.job_id = None
        shot.error_message = "Cancelled by user"
        shot.video_url = None
        shot.video_storage_path = None

    async def regenerate(self, video_id: str) -> ActionResult:
        video = await self.session.get(SceneVideo, video_id)
        if not video:
            return ActionResult.not_found("Video not found")
        scene = await self.session.get(Scene, video.scene_id)
        if not scene:
            return ActionResult.not_found("Scene not found")
        source_id = video.source_variant_id or scene.approved_image_id
        variant = await self.session.get(Variant, source_id) if source_id else None
        if not variant or not variant.image_url:
            return ActionResult.not_found("Source image not found")
        if not await self.can_admit():
            return ActionResult.precondition(
                f"Batch limit reached ({self.config.max_concurrent_video_jobs} concurrent jobs). Please wait."
            )

        video.status = VideoStatus.GENERATING.value
        video.source_variant_id = variant.id
        video.video_url = None
        video.video_storage_path = None
        video.duration_seconds = None
        video.job_id = None
        video.error_message = None
        video.approved_at = None
        await self.session.commit()
        logger.info("Regenerating video %s for scene %s", video.id, scene.id)

        await self._submit_video(video, scene, variant.image_url)
        return ActionResult.ok(video_id=video.id, status=video.status)

    # ------------------------------------------------------------------
    # Callbacks
    # ------------------------------------------------------------------

    async def _project_id(self, scene_id: str) -> str | None:
        return await self.session.scalar(select(Scene.project_id).where(Scene.id == scene_id))

    async def apply_video_completion(self, video_id: str, completion: Completion) -> ActionResult:
        """Idempotent by id. The caller sweeps the returned project afterwards."""
        video = await self.session.get(SceneVideo, video_id)
        if not video:
            return ActionResult.not_found("Video not found")

        if not completion.success:
            if video.status in _FINISHED_STATUSES and video.video_url:
                logger.warning("Ignoring failure callback for finished video %s", video.id)
            else:
                video.status = VideoStatus.FAILED.value
                video.error_message = truncate_error(completion.error or "Video generation failed")
                video.job_id = None
                logger.info("Video %s failed: %s", video.id, video.error_message)
        elif not completion.result_url:
            return ActionResult.precondition("Missing video URL for completed video")
        else:
            await self._store_video(video, completion)

        await self.session.commit()
        return ActionResult.ok(
            video_id=video.id,
            status=video.status,
            project_id=await self._project_id(video.scene_id),
        )

    async def apply_shot_completion(self, shot_id: str, completion: Completion) -> ActionResult:
        shot = await self.session.get(SceneShot, shot_id)
        if not shot:
            return ActionResult.not_found("Shot not found")

        if not completion.success:
            if shot.video_status in _FINISHED_STATUSES and shot.video_url:
                logger.warning("Ignoring failure callback for finished shot %s", shot.id)
            else:
                shot.video_status = VideoStatus.FAILED.value
                shot.error_message = truncate_error(completion.error or "Video generation failed")
                shot.job_id = None
                logger.info("Shot %s failed: %s", shot.id, shot.error_message)
        elif not completion.result_url:
            return ActionResult.precondition("Missing video URL for completed shot")
        else:
            await self._store_shot(shot, completion)

        await self.session.commit()
        return ActionResult.ok(
            shot_id=shot.id,
            status=shot.video_status,
            project_id=await self._project_id(shot.scene_id),
        )

    async def _rehost(self, completion: Completion, path: str) -> tuple[str, str | None]:
        if completion.storage_path:
            return completion.result_url, completion.storage_path
        stored = await self.blob_store.rehost(
            completion.result_url, self.config.video_bucket, path, "video/mp4"
        )
        if stored is None:
            return completion.result_url, None
        return stored.url, stored.path

    async def _store_video(self, video: SceneVideo, completion: Completion) -> None:
        video.video_url, video.video_storage_path = await self._rehost(
            completion, f"scenes/{video.scene_id}/{video.id}.mp4"
        )
        if video.status != VideoStatus.APPROVED.value:
            video.status = VideoStatus.READY.value
        if completion.duration_seconds is not None:
            video.duration_seconds = completion.duration_seconds
        elif video.duration_seconds is None:
            video.duration_seconds = float(self.config.video_duration_seconds)
        video.error_message = None
        logger.info("Video %s ready", video.id)

    async def _store_shot(self, shot: SceneShot, completion: Completion) -> None:
        shot.video_url, shot.video_storage_path = await self._rehost(
            completion, f"scenes/{shot.scene_id}/shots/{shot.id}.mp4"
        )
        if shot.video_status != VideoStatus.APPROVED.value:
            shot.video_status = VideoStatus.READY.value
        if completion.duration_seconds is not None:
            shot.duration_seconds = int(round(completion.duration_seconds))
        shot.error_message = None
        logger.info("Shot %s ready", shot.id)

    # ------------------------------------------------------------------
    # Review
    # ------------------------------------------------------------------

    async def approve_video(self, video_id: str) -> ActionResult:
        video = await self.session.get(SceneVideo, video_id)
        if not video:
            return ActionResult.not_found("Video not found")
        if video.status != VideoStatus.READY.value:
            return ActionResult.precondition(f"Video is {video.status}, not ready to approve")
        video.status = VideoStatus.APPROVED.value
        video.approved_at = datetime.utcnow()
        await self.session.commit()
        return ActionResult.ok(video_id=video.id, status=video.status)

    async def video_stats(self, project_id: str) -> dict[str, int]:
        """Scene video counters; ``pending`` counts approved images still waiting for a video."""
        scenes = (
            await self.session.execute(select(Scene).where(Scene.project_id == project_id))
        ).scalars().all()
        scene_ids = [s.id for s in scenes]
        videos = []
        if scene_ids:
            videos = (
                await self.session.execute(select(SceneVideo).where(SceneVideo.scene_id.in_(scene_ids)))
            ).scalars().all()
        with_video = {v.scene_id for v in videos}
        return {
            "total": len(videos),
            "generating": sum(1 for v in videos if v.status == VideoStatus.GENERATING.value),
            "ready": sum(1 for v in videos if v.status in _FINISHED_STATUSES),
            "failed": sum(1 for v in videos if v.status == VideoStatus.FAILED.value),
            "pending": sum(1 for s in scenes if s.approved_image_id and s.id not in with_video),
        }
