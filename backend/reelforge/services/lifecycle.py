from __future__ import annotations
"""Project lifecycle state machine.

parsing -> bible_review -> scene_validation -> asset_generation (-> exporting)

Stages advance when an aggregate approval predicate over the project's
children holds. ``exporting`` is derived from downstream readiness and is
reported by ``effective_status`` rather than written.
"""

import logging
from datetime import datetime
from typing import Any

from sqlalchemy import delete, func, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from reelforge.models.bible_asset import BibleAsset, BibleAssetStatus, BibleAssetType
from reelforge.models.final_reel import FinalReel
from reelforge.models.project import Project, ProjectStatus
from reelforge.models.scene import Scene, SceneValidationStatus
from reelforge.models.variant import Variant, VariantParentType
from reelforge.models.video import SceneShot, VideoStatus
from reelforge.services.results import ActionResult, truncate_error

logger = logging.getLogger(__name__)

MIN_ASSEMBLY_SEGMENTS = 2


class ProjectLifecycle:
    """Owns project status; every write to Project.status goes through here."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    def _transition(self, project: Project, target: ProjectStatus) -> bool:
        if project.status == target.value:
            return False
        if not project.can_transition_to(target.value):
            logger.info(
                "Project %s: transition %s -> %s not allowed, keeping status",
                project.id, project.status, target.value,
            )
            return False
        direction = "rollback" if project.is_rollback(target.value) else "advance"
        logger.info("Project %s: %s %s -> %s", project.id, direction, project.status, target.value)
        project.status = target.value
        return True

    async def complete_parsing(self, project_id: str, parsed: dict[str, Any]) -> ActionResult:
        """Store the decomposition (bible + scenes) and open bible review."""
        project = await self.session.get(Project, project_id)
        if not project:
            return ActionResult.not_found("Project not found")
        if project.status != ProjectStatus.PARSING.value:
            return ActionResult.precondition(f"Project is {project.status}, not parsing")

        bible = parsed.get("bible") or {}
        assets: list[BibleAsset] = []
        skipped: list[int] = []
        for raw in self._named(bible.get("characters"), "character", skipped):
            dna = raw.get("visual_dna") or raw.get("visual_dna_reference") or []
            assets.append(BibleAsset(
                project_id=project.id,
                asset_type=BibleAssetType.CHARACTER.value,
                name=raw["name"].strip(),
                visual_dna=[dna] if isinstance(dna, str) else list(dna),
                portrait_prompt=raw.get("portrait_prompt"),
                raw_data=raw,
            ))
        for raw in self._named(bible.get("locations"), "location", skipped):
            assets.append(BibleAsset(
                project_id=project.id,
                asset_type=BibleAssetType.LOCATION.value,
                name=raw["name"].strip(),
                visual_description=raw.get("visual_description") or raw.get("visual_dna"),
                raw_data=raw,
            ))
        for raw in self._named(bible.get("props"), "prop", skipped):
            describe_only = raw.get("generation_method") == "DESCRIBE"
            assets.append(BibleAsset(
                project_id=project.id,
                asset_type=BibleAssetType.PROP.value,
                name=raw["name"].strip(),
                visual_description=raw.get("visual_description") or raw.get("visual_dna"),
                raw_data=raw,
                # Described-only props never get an image
                image_status=(
                    BibleAssetStatus.APPROVED.value if describe_only
                    else BibleAssetStatus.PENDING.value
                ),
                approved_at=datetime.utcnow() if describe_only else None,
            ))
        self.session.add_all(assets)

        scenes: list[Scene] = []
        for index, raw in enumerate(parsed.get("scenes") or [], start=1):
            production_data = {k: v for k, v in raw.items() if k not in ("scene_number", "slugline")}
            scenes.append(Scene(
                project_id=project.id,
                scene_number=int(raw.get("scene_number") or index),
                slugline=raw.get("slugline") or "",
                production_data=production_data,
            ))
        self.session.add_all(scenes)
        await self.session.flush()

        project.scene_order = [s.id for s in sorted(scenes, key=lambda s: s.scene_number)]
        project.error_message = None
        self._transition(project, ProjectStatus.BIBLE_REVIEW)
        await self.session.commit()
        logger.info(
            "Project %s parsed: %d bible assets, %d scenes",
            project.id, len(assets), len(scenes),
        )
        return ActionResult.ok(
            project_id=project.id,
            status=project.status,
            bible_assets=len(assets),
            skipped_assets=len(skipped),
            scenes=len(scenes),
            auto_mode=project.auto_mode,
        )

    @staticmethod
    def _named(entries: Any, kind: str, skipped: list[int]) -> list[dict[str, Any]]:
        """Parsed bible entries that carry a usable name; the rest are logged and counted."""
        named = []
        for index, raw in enumerate(entries or []):
            name = raw.get("name") if isinstance(raw, dict) else None
            if isinstance(name, str) and name.strip():
                named.append(raw)
                continue
            logger.warning("Skipping parsed %s #%d without a name", kind, index)
            skipped.append(index)
        return named

    async def fail_parsing(self, project_id: str, error: str | None) -> ActionResult:
        project = await self.session.get(Project, project_id)
        if not project:
            return ActionResult.not_found("Project not found")
        if not self._transition(project, ProjectStatus.FAILED):
            return ActionResult.precondition(f"Project is {project.status}, not parsing")
        project.error_message = truncate_error(error or "Parsing failed")
        await self.session.commit()
        return ActionResult.ok(project_id=project.id, status=project.status)

    # ------------------------------------------------------------------
    # Bible review
    # ------------------------------------------------------------------

    async def _assets(self, project_id: str) -> list[BibleAsset]:
        result = await self.session.execute(
            select(BibleAsset)
            .where(BibleAsset.project_id == project_id)
            .order_by(BibleAsset.created_at, BibleAsset.name)
        )
        return list(result.scalars().all())

    async def bible_approval_status(self, project_id: str) -> dict[str, Any]:
        """Counts per asset type plus the aggregate predicate.

        Characters and locations must each exist and be fully approved;
        props never block.
        """
        assets = await self._assets(project_id)
        status: dict[str, Any] = {}
        for asset_type in BibleAssetType:
            of_type = [a for a in assets if a.asset_type == asset_type.value]
            status[f"{asset_type.value}s"] = {
                "total": len(of_type),
                "approved": sum(1 for a in of_type if a.is_approved),
            }
        characters, locations = status["characters"], status["locations"]
        status["all_approved"] = (
            characters["total"] > 0
            and characters["approved"] == characters["total"]
            and locations["total"] > 0
            and locations["approved"] == locations["total"]
        )
        return status

    async def check_and_advance(self, project_id: str) -> ActionResult:
        """Move bible_review -> scene_validation once the bible is approved."""
        project = await self.session.get(Project, project_id)
        if not project:
            return ActionResult.not_found("Project not found")
        approval = await self.bible_approval_status(project_id)
        advanced = False
        if approval["all_approved"] and project.status == ProjectStatus.BIBLE_REVIEW.value:
            advanced = self._transition(project, ProjectStatus.SCENE_VALIDATION)
        await self.session.commit()
        return ActionResult.ok(advanced=advanced, status=project.status, approval=approval)

    async def approve_asset(self, asset_id: str) -> ActionResult:
        asset = await self.session.get(BibleAsset, asset_id)
        if not asset:
            return ActionResult.not_found("Asset not found")
        if not asset.approved_image_url:
            return ActionResult.precondition("Asset has no selected image to approve")
        asset.image_status = BibleAssetStatus.APPROVED.value
        asset.approved_at = datetime.utcnow()
        await self.session.flush()
        check = await self.check_and_advance(asset.project_id)
        return ActionResult.ok(asset_id=asset.id, project_status=check.data.get("status"))

    async def unapprove_asset(self, asset_id: str) -> ActionResult:
        asset = await self.session.get(BibleAsset, asset_id)
        if not asset:
            return ActionResult.not_found("Asset not found")
        if not asset.is_approved:
            return ActionResult.precondition(f"Asset is {asset.image_status}, not approved")
        asset.image_status = BibleAssetStatus.READY.value
        asset.approved_at = None
        await self.session.commit()
        return ActionResult.ok(asset_id=asset.id, image_status=asset.image_status)

    async def approve_all_bible_assets(self, project_id: str) -> ActionResult:
        """Approve every asset that has a selected image waiting for review."""
        project = await self.session.get(Project, project_id)
        if not project:
            return ActionResult.not_found("Project not found")
        result = await self.session.execute(
            update(BibleAsset)
            .where(
                BibleAsset.project_id == project_id,
                BibleAsset.image_status == BibleAssetStatus.READY.value,
            )
            .values(image_status=BibleAssetStatus.APPROVED.value, approved_at=datetime.utcnow())
        )
        await self.session.flush()
        check = await self.check_and_advance(project_id)
        return ActionResult.ok(approved_count=result.rowcount, status=check.data["status"])

    async def skip_bible_review(self, project_id: str) -> ActionResult:
        """Force-approve the whole bible, images or not, and move on."""
        project = await self.session.get(Project, project_id)
        if not project:
            return ActionResult.not_found("Project not found")
        if not project.can_transition_to(ProjectStatus.SCENE_VALIDATION.value):
            return ActionResult.precondition(
                f"Project is {project.status}, cannot skip bible review"
            )
        now = datetime.utcnow()
        await self.session.execute(
            update(BibleAsset)
            .where(
                BibleAsset.project_id == project_id,
                BibleAsset.image_status != BibleAssetStatus.APPROVED.value,
            )
            .values(image_status=BibleAssetStatus.APPROVED.value, approved_at=now)
        )
        self._transition(project, ProjectStatus.SCENE_VALIDATION)
        await self.session.commit()
        return ActionResult.ok(status=project.status)

    # ------------------------------------------------------------------
    # Scene validation
    # ------------------------------------------------------------------

    async def approve_scene(self, scene_id: str) -> ActionResult:
        scene = await self.session.get(Scene, scene_id)
        if not scene:
            return ActionResult.not_found("Scene not found")
        scene.validation_status = SceneValidationStatus.APPROVED.value
        scene.approved_at = datetime.utcnow()
        await self.session.flush()

        project = await self.session.get(Project, scene.project_id)
        pending = await self.session.scalar(
            select(func.count(Scene.id)).where(
                Scene.project_id == scene.project_id,
                Scene.validation_status != SceneValidationStatus.APPROVED.value,
            )
        )
        if project and pending == 0:
            self._transition(project, ProjectStatus.ASSET_GENERATION)
        await self.session.commit()
        return ActionResult.ok(
            scene_id=scene.id,
            all_approved=pending == 0,
            project_status=project.status if project else None,
        )

    async def reject_scene(self, scene_id: str) -> ActionResult:
        """Un-approve a scene; a project already generating assets goes back to validation."""
        scene = await self.session.get(Scene, scene_id)
        if not scene:
            return ActionResult.not_found("Scene not found")
        scene.validation_status = SceneValidationStatus.PENDING.value
        scene.approved_at = None

        project = await self.session.get(Project, scene.project_id)
        if project and project.status in (
            ProjectStatus.ASSET_GENERATION.value,
            ProjectStatus.EXPORTING.value,
        ):
            self._transition(project, ProjectStatus.SCENE_VALIDATION)
        await self.session.commit()
        return ActionResult.ok(scene_id=scene.id, project_status=project.status if project else None)

    async def approve_all_scenes(self, project_id: str) -> ActionResult:
        project = await self.session.get(Project, project_id)
        if not project:
            return ActionResult.not_found("Project not found")
        result = await self.session.execute(
            update(Scene)
            .where(
                Scene.project_id == project_id,
                Scene.validation_status == SceneValidationStatus.PENDING.value,
            )
            .values(validation_status=SceneValidationStatus.APPROVED.value, approved_at=datetime.utcnow())
        )
        self._transition(project, ProjectStatus.ASSET_GENERATION)
        await self.session.commit()
        return ActionResult.ok(approved_count=result.rowcount, status=project.status)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    async def effective_status(self, project: Project) -> str:
        """Stored status, or ``exporting`` once assembly has enough material."""
        if project.status != ProjectStatus.ASSET_GENERATION.value:
            return project.status
        reel = await self.session.scalar(
            select(FinalReel.id).where(FinalReel.project_id == project.id)
        )
        if reel:
            return ProjectStatus.EXPORTING.value
        ready_shots = await self.session.scalar(
            select(func.count(SceneShot.id))
            .join(Scene, Scene.id == SceneShot.scene_id)
            .where(
                Scene.project_id == project.id,
                SceneShot.video_status == VideoStatus.READY.value,
                SceneShot.video_url.is_not(None),
            )
        )
        if (ready_shots or 0) >= MIN_ASSEMBLY_SEGMENTS:
            return ProjectStatus.EXPORTING.value
        return project.status

    async def list_projects(self) -> list[Project]:
        """Visible projects, newest first. Failed projects are hidden."""
        result = await self.session.execute(
            select(Project)
            .where(Project.status != ProjectStatus.FAILED.value)
            .order_by(Project.created_at.desc())
        )
        return list(result.scalars().all())

    async def update_scene_order(self, project_id: str, ordered_scene_ids: list[str]) -> ActionResult:
        project = await self.session.get(Project, project_id)
        if not project:
            return ActionResult.not_found("Project not found")
        result = await self.session.execute(select(Scene.id).where(Scene.project_id == project_id))
        known = set(result.scalars().all())
        valid = [sid for sid in ordered_scene_ids if sid in known]
        if len(valid) != len(ordered_scene_ids):
            logger.warning(
                "Project %s: dropped %d scene ids not belonging to the project",
                project_id, len(ordered_scene_ids) - len(valid),
            )
        project.scene_order = valid
        await self.session.commit()
        return ActionResult.ok(scene_order=valid)

    async def delete_project(self, project_id: str) -> ActionResult:
        """Remove a project with everything it owns, variants included."""
        project = await self.session.get(Project, project_id)
        if not project:
            return ActionResult.not_found("Project not found")
        asset_ids = select(BibleAsset.id).where(BibleAsset.project_id == project_id)
        scene_ids = select(Scene.id).where(Scene.project_id == project_id)
        # Variants reference their parent polymorphically, so no FK cascade reaches them
        await self.session.execute(
            delete(Variant).where(
                or_(
                    Variant.parent_type.in_([
                        VariantParentType.CHARACTER.value,
                        VariantParentType.LOCATION.value,
                        VariantParentType.PROP.value,
                    ]) & Variant.parent_id.in_(asset_ids),
                    (Variant.parent_type == VariantParentType.SCENE.value)
                    & Variant.parent_id.in_(scene_ids),
                )
            ).execution_options(synchronize_session=False)
        )
        await self.session.delete(project)
        await self.session.commit()
        logger.info("Project %s deleted", project_id)
        return ActionResult.ok(project_id=project_id)
