from __future__ import annotations
"""Final reel assembly.

Ready segments are ordered by the project's scene order (ids or legacy
scene numbers) and handed to the composition workflow. The result is
copied into the reels bucket and recorded on the project's single
FinalReel row.
"""

import logging
from collections import defaultdict
from dataclasses import asdict, dataclass
from datetime import datetime

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from reelforge.config import PipelineConfig
from reelforge.models.final_reel import FinalReel, ReelStatus
from reelforge.models.project import Project
from reelforge.models.scene import Scene
from reelforge.models.video import SceneShot, SceneVideo, VideoStatus
from reelforge.services.blob_store import BlobStore
from reelforge.services.gateway import CompositionGateway
from reelforge.services.lifecycle import MIN_ASSEMBLY_SEGMENTS
from reelforge.services.results import ActionResult, truncate_error
from reelforge.services.scene_order import ordered_scene_ids

logger = logging.getLogger(__name__)

_TERMINAL_REEL_STATUSES = (ReelStatus.READY.value, ReelStatus.FAILED.value)
_FINISHED_SHOT_STATUSES = (VideoStatus.READY.value, VideoStatus.APPROVED.value)


@dataclass
class Segment:
    """One clip of the final reel."""
    scene_id: str
    url: str | None
    shot_id: str | None = None
    video_id: str | None = None
    shot_number: int = 1
    duration: float = 0

    def to_dict(self) -> dict:
        return asdict(self)


class AssemblyOrderer:
    """Orders ready segments and drives the composition workflow."""

    def __init__(
        self,
        session: AsyncSession,
        config: PipelineConfig,
        composer: CompositionGateway,
        blob_store: BlobStore,
    ) -> None:
        self.session = session
        self.config = config
        self.composer = composer
        self.blob_store = blob_store

    async def _scenes(self, project_id: str) -> list[Scene]:
        result = await self.session.execute(
            select(Scene).where(Scene.project_id == project_id).order_by(Scene.scene_number)
        )
        return list(result.scalars().all())

    async def _ready_segments(self, scenes: list[Scene]) -> dict[str, list[Segment]]:
        """Ready segments per scene: shots when a scene has any, else its scene video."""
        scene_ids = [s.id for s in scenes]
        if not scene_ids:
            return {}

        shots = (
            await self.session.execute(select(SceneShot).where(SceneShot.scene_id.in_(scene_ids)))
        ).scalars().all()
        with_shots = {shot.scene_id for shot in shots}

        grouped: dict[str, list[Segment]] = defaultdict(list)
        for shot in sorted(shots, key=lambda s: s.shot_number):
            if shot.video_status == VideoStatus.READY.value and shot.video_url:
                grouped[shot.scene_id].append(Segment(
                    scene_id=shot.scene_id,
                    url=shot.video_url,
                    shot_id=shot.id,
                    shot_number=shot.shot_number,
                    duration=float(shot.duration_seconds or 0),
                ))

        videos = (
            await self.session.execute(
                select(SceneVideo)
                .where(
                    SceneVideo.scene_id.in_(scene_ids),
                    SceneVideo.status.in_([VideoStatus.READY.value, VideoStatus.APPROVED.value]),
                    SceneVideo.video_url.is_not(None),
                )
                .order_by(SceneVideo.created_at.desc())
            )
        ).scalars().all()
        for video in videos:
            # Simple flow: one clip for scenes that were never split into shots
            if video.scene_id in with_shots or grouped.get(video.scene_id):
                continue
            grouped[video.scene_id].append(Segment(
                scene_id=video.scene_id,
                url=video.video_url,
                video_id=video.id,
                duration=float(video.duration_seconds or 0),
            ))
        return grouped

    async def resolve_order(self, project_id: str) -> list[Segment]:
        """Ready segments in playback order.

        Scenes follow the project's scene order (ascending scene_number when
        none is stored); shots within a scene follow shot_number. Scenes
        without ready segments are skipped.
        """
        project = await self.session.get(Project, project_id)
        if not project:
            return []
        scenes = await self._scenes(project_id)
        grouped = await self._ready_segments(scenes)
        ordered: list[Segment] = []
        for scene_id in ordered_scene_ids(project.scene_order, scenes):
            ordered.extend(grouped.get(scene_id, []))
        return ordered

    async def timeline(self, project_id: str) -> ActionResult:
        """Every scene with its shots, in playback order, for the timeline view.

        Unlike assembly, scenes missing from a custom order are shown after it.
        """
        project = await self.session.get(Project, project_id)
        if not project:
            return ActionResult.not_found("Project not found")
        scenes = await self._scenes(project_id)
        by_id = {scene.id: scene for scene in scenes}

        shots_by_scene: dict[str, list[SceneShot]] = defaultdict(list)
        if scenes:
            shots = (
                await self.session.execute(
                    select(SceneShot)
                    .where(SceneShot.scene_id.in_(list(by_id)))
                    .order_by(SceneShot.shot_number)
                )
            ).scalars().all()
            for shot in shots:
                shots_by_scene[shot.scene_id].append(shot)

        entries = []
        total_duration = 0
        all_ready = any(shots_by_scene.values())
        for scene_id in ordered_scene_ids(project.scene_order, scenes, append_missing=True):
            scene = by_id[scene_id]
            scene_shots = shots_by_scene.get(scene_id, [])
            total_duration += sum(shot.duration_seconds or 0 for shot in scene_shots)
            if any(shot.video_status not in _FINISHED_SHOT_STATUSES for shot in scene_shots):
                all_ready = False
            entries.append({
                "id": scene.id,
                "scene_number": scene.scene_number,
                "slugline": scene.slugline,
                "approved_image_url": scene.approved_image_url,
                "shots": [
                    {
                        "id": shot.id,
                        "shot_number": shot.shot_number,
                        "duration_seconds": shot.duration_seconds,
                        "video_url": shot.video_url,
                        "video_status": shot.video_status,
                    }
                    for shot in scene_shots
                ],
            })

        return ActionResult.ok(
            project_id=project.id,
            project_title=project.title,
            scenes=entries,
            total_duration_seconds=total_duration,
            all_videos_ready=all_ready,
        )

    async def status(self, project_id: str) -> FinalReel | None:
        return await self.session.scalar(select(FinalReel).where(FinalReel.project_id == project_id))

    async def assemble(self, project_id: str) -> ActionResult:
        project = await self.session.get(Project, project_id)
        if not project:
            return ActionResult.not_found("Project not found")
        scenes = await self._scenes(project_id)
        if not scenes:
            return ActionResult.not_found("No scenes found for project")

        ready_count = sum(len(group) for group in (await self._ready_segments(scenes)).values())
        if ready_count < MIN_ASSEMBLY_SEGMENTS:
            return ActionResult.precondition(
                f"Need at least {MIN_ASSEMBLY_SEGMENTS} ready video shots for assembly. Found: {ready_count}"
            )

        segments = [s for s in await self.resolve_order(project_id) if s.url]
        if len(segments) < MIN_ASSEMBLY_SEGMENTS:
            return ActionResult.precondition(
                f"Need at least {MIN_ASSEMBLY_SEGMENTS} video shots with URLs. Found: {len(segments)}"
            )

        reel = await self.status(project_id)
        if reel is None:
            reel = FinalReel(project_id=project_id)
            self.session.add(reel)
        reel.status = ReelStatus.ASSEMBLING.value
        reel.video_url = None
        reel.video_storage_path = None
        reel.temp_video_url = None
        reel.published_url = None
        reel.published_id = None
        reel.error_message = None
        reel.approved_at = None
        reel.assembly_progress = {
            "started_at": datetime.utcnow().isoformat(),
            "video_count": len(segments),
        }
        await self.session.commit()
        logger.info("Assembling reel for project %s from %d segments", project_id, len(segments))

        if not self.composer.is_configured():
            return await self._fail(reel, "Assembly webhook URL not configured")

        response = await self.composer.compose({
            "projectId": project_id,
            "title": f"{project.title} - Film Reel",
            "description": project.description or "",
            "videos": [{"url": s.url, "duration": 0} for s in segments],
        })
        if not response.success:
            return await self._fail(reel, response.error or "Assembly failed")
        if not response.video_url:
            return await self._fail(reel, "Assembly returned no video URL")

        reel.status = ReelStatus.UPLOADING.value
        reel.temp_video_url = response.video_url
        reel.assembly_progress = {**(reel.assembly_progress or {}), "step": "uploading_to_storage"}
        await self.session.commit()

        timestamp = datetime.utcnow().strftime("%Y%m%d%H%M%S")
        stored = await self.blob_store.rehost(
            response.video_url,
            self.config.reel_bucket,
            f"{project_id}/final-reel-{timestamp}.mp4",
            "video/mp4",
        )

        reel.status = ReelStatus.READY.value
        reel.video_url = stored.url if stored else response.video_url
        reel.video_storage_path = stored.path if stored else None
        reel.published_url = response.published_url
        reel.published_id = response.published_id
        reel.assembly_progress = {
            "completed_at": datetime.utcnow().isoformat(),
            "video_count": len(segments),
            "uploaded_to_storage": stored is not None,
        }
        await self.session.commit()
        logger.info("Reel %s ready for project %s", reel.id, project_id)
        return ActionResult.ok(
            reel_id=reel.id,
            status=reel.status,
            video_url=reel.video_url,
            published_url=reel.published_url,
            video_count=len(segments),
        )

    async def _fail(self, reel: FinalReel, error: str) -> ActionResult:
        logger.error("Assembly failed for project %s: %s", reel.project_id, error)
        reel.status = ReelStatus.FAILED.value
        reel.error_message = truncate_error(error)
        await self.session.commit()
        return ActionResult.external(error)

    async def retry(self, project_id: str) -> ActionResult:
        reel = await self.status(project_id)
        if reel is not None and reel.status not in _TERMINAL_REEL_STATUSES:
            return ActionResult.precondition(f"Reel is {reel.status}, assembly already running")
        return await self.assemble(project_id)

    async def approve_reel(self, project_id: str) -> ActionResult:
        reel = await self.status(project_id)
        if not reel:
            return ActionResult.not_found("Reel not found")
        if reel.status != ReelStatus.READY.value:
            return ActionResult.precondition(f"Reel is {reel.status}, not ready to approve")
        reel.approved_at = datetime.utcnow()
        await self.session.commit()
        return ActionResult.ok(reel_id=reel.id, approved_at=reel.approved_at.isoformat())
