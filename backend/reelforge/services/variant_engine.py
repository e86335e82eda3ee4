from __future__ import annotations
"""Variant engine: multi-model candidate images for bible assets and scenes.

Every generation request fans out to one Variant per model. Callbacks from
the generation workflow land on ``apply_completion``; the user then picks
exactly one candidate per (parent, shot type) with ``select_variant``.

Selection is the correctness-critical path: clearing the siblings and
marking the winner happen in one transaction, and ``fix_duplicates``
repairs data that arrived with more than one selected sibling anyway.
"""

import asyncio
import logging
from datetime import datetime, timedelta
from typing import Any

import httpx
from sqlalchemy import delete, func, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from reelforge.config import PipelineConfig
from reelforge.models.bible_asset import BibleAsset, BibleAssetStatus, ShotType
from reelforge.models.project import Project
from reelforge.models.scene import Scene
from reelforge.models.variant import Variant, VariantParentType, VariantStatus
from reelforge.services import prompts
from reelforge.services.blob_store import BlobStore
from reelforge.services.gateway import GatewayResponse, GenerationGateway
from reelforge.services.lifecycle import ProjectLifecycle
from reelforge.services.model_catalog import DEFAULT_MODEL_SET, IMAGE_MODELS, aspect_ratio_for
from reelforge.services.results import ActionResult, Completion, truncate_error

logger = logging.getLogger(__name__)

BIBLE_PARENT_TYPES = frozenset({
    VariantParentType.CHARACTER.value,
    VariantParentType.LOCATION.value,
    VariantParentType.PROP.value,
})
STUCK_VARIANT_ERROR = "Generation timed out - automatically reset"


def _sibling_clause(parent_type: str, parent_id: str, shot_type: str | None) -> tuple[Any, ...]:
    """Filter for one (parent, shot type) group; a null shot type matches null only."""
    return (
        Variant.parent_type == parent_type,
        Variant.parent_id == parent_id,
        Variant.shot_type == shot_type if shot_type is not None else Variant.shot_type.is_(None),
    )


class VariantEngine:
    """Creates, completes, selects and prunes image variants."""

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
    # Parents
    # ------------------------------------------------------------------

    async def _load_parent(self, parent_type: str, parent_id: str) -> BibleAsset | Scene | None:
        if parent_type == VariantParentType.SCENE.value:
            return await self.session.get(Scene, parent_id)
        if parent_type in BIBLE_PARENT_TYPES:
            asset = await self.session.get(BibleAsset, parent_id)
            if asset and asset.asset_type == parent_type:
                return asset
        return None

    async def _scene_references(self, scene: Scene) -> list[BibleAsset]:
        """Bible assets a scene mentions by id or by name."""
        data = scene.production_data or {}
        wanted_ids = set(data.get("bible_character_ids") or []) | set(data.get("bible_prop_ids") or [])
        if data.get("bible_location_id"):
            wanted_ids.add(data["bible_location_id"])
        names = list(data.get("characters_present") or []) + list(data.get("props_used") or [])
        if data.get("location"):
            names.append(data["location"])
        wanted_names = {n.lower() for n in names if isinstance(n, str)}

        result = await self.session.execute(
            select(BibleAsset).where(BibleAsset.project_id == scene.project_id)
        )
        return [
            asset for asset in result.scalars().all()
            if asset.id in wanted_ids or asset.name.lower() in wanted_names
        ]

    async def _generation_context(
        self, parent_type: str, parent: BibleAsset | Scene
    ) -> tuple[str | None, list[str], dict[str, Any] | None]:
        """Prompt, reference image URLs and injected bible ids for a parent."""
        if isinstance(parent, BibleAsset):
            return prompts.bible_prompt(parent), [], None

        project = await self.session.get(Project, parent.project_id)
        references = await self._scene_references(parent)
        prompt = prompts.scene_image_prompt(
            parent, project.visual_style if project else None, references
        )
        reference_images = [a.approved_image_url for a in references if a.approved_image_url]
        injected = {
            f"{kind}s": [a.id for a in references if a.asset_type == kind]
            for kind in ("character", "location", "prop")
        }
        return prompt, reference_images, injected

    async def _next_order(self, parent_type: str, parent_id: str, shot_type: str | None) -> int:
        current = await self.session.scalar(
            select(func.max(Variant.generation_order)).where(
                *_sibling_clause(parent_type, parent_id, shot_type)
            )
        )
        return 0 if current is None else current + 1

    def _storage_path(self, variant: Variant) -> str:
        # Deterministic so repeated callbacks overwrite the same object
        if variant.parent_type == VariantParentType.SCENE.value:
            return f"scenes/{variant.parent_id}/{variant.id}.png"
        return f"{variant.parent_type}s/{variant.parent_id}/{variant.id}.png"

    # ------------------------------------------------------------------
    # Generation
    # ------------------------------------------------------------------

    async def generate_variants(
        self,
        parent_type: str,
        parent_id: str,
        models: list[str] | None = None,
        shot_type: str | None = None,
    ) -> ActionResult:
        """Fan out one generation per model; each model succeeds or fails on its own."""
        models = list(models or DEFAULT_MODEL_SET)
        unknown = [m for m in models if not IMAGE_MODELS.is_known(m)]
        if unknown:
            return ActionResult.precondition(f"Unknown model: {', '.join(unknown)}")
        if shot_type is not None and shot_type not in {s.value for s in ShotType}:
            return ActionResult.precondition(f"Invalid shot type: {shot_type}")

        parent = await self._load_parent(parent_type, parent_id)
        if parent is None:
            return ActionResult.not_found(f"{parent_type.capitalize()} not found")

        prompt, reference_images, injected = await self._generation_context(parent_type, parent)
        if not prompt:
            return ActionResult.precondition(f"No prompt available for {parent_type}")

        start = await self._next_order(parent_type, parent_id, shot_type)
        variant_ids = await self._create_and_submit(
            parent,
            parent_type,
            parent_id,
            models,
            shot_type=shot_type,
            prompt=prompt,
            start_order=start,
            reference_images=reference_images,
            injected_refs=injected,
        )
        return ActionResult.ok(variant_ids=variant_ids)

    async def add_variant(
        self,
        parent_type: str,
        parent_id: str,
        model: str,
        shot_type: str | None = None,
    ) -> ActionResult:
        """One more candidate from a single model, appended after the existing ones."""
        result = await self.generate_variants(parent_type, parent_id, [model], shot_type)
        if result.success:
            result.data["variant_id"] = result.data["variant_ids"][0]
        return result

    async def refine_variant(self, variant_id: str, model: str, refinement_prompt: str) -> ActionResult:
        """Image-to-image iteration on an existing candidate; keeps lineage."""
        source = await self.session.get(Variant, variant_id)
        if not source:
            return ActionResult.not_found("Variant not found")
        if not source.image_url:
            return ActionResult.precondition("Source variant has no image to refine")
        if not IMAGE_MODELS.is_known(model):
            return ActionResult.precondition(f"Unknown model: {model}")
        parent = await self._load_parent(source.parent_type, source.parent_id)
        if parent is None:
            return ActionResult.not_found(f"{source.parent_type.capitalize()} not found")

        start = await self._next_order(source.parent_type, source.parent_id, source.shot_type)
        variant_ids = await self._create_and_submit(
            parent,
            source.parent_type,
            source.parent_id,
            [model],
            shot_type=source.shot_type,
            prompt=refinement_prompt,
            start_order=start,
            reference_images=[source.image_url],
            injected_refs=source.injected_refs,
            parent_variant_id=source.id,
        )
        return ActionResult.ok(variant_id=variant_ids[0], parent_variant_id=source.id)

    async def retry_variant(self, variant_id: str) -> ActionResult:
        """Replace a failed candidate with a fresh one from the same model."""
        variant = await self.session.get(Variant, variant_id)
        if not variant:
            return ActionResult.not_found("Variant not found")
        if variant.status != VariantStatus.FAILED.value:
            return ActionResult.precondition("Can only retry failed variants")
        parent_type, parent_id, shot_type = variant.parent_type, variant.parent_id, variant.shot_type
        model = IMAGE_MODELS.key_for(variant.model)
        await self.session.delete(variant)
        await self.session.commit()
        logger.info("Deleted failed variant %s, regenerating with %s", variant_id, model)
        return await self.add_variant(parent_type, parent_id, model, shot_type)

    async def _create_and_submit(
        self,
        parent: BibleAsset | Scene,
        parent_type: str,
        parent_id: str,
        models: list[str],
        *,
        shot_type: str | None,
        prompt: str,
        start_order: int,
        reference_images: list[str],
        injected_refs: dict[str, Any] | None,
        parent_variant_id: str | None = None,
    ) -> list[str]:
        variants = [
            Variant(
                parent_type=parent_type,
                parent_id=parent_id,
                shot_type=shot_type,
                model=model,
                prompt=prompt,
                status=VariantStatus.GENERATING.value,
                is_selected=False,
                generation_order=start_order + i,
                injected_refs=injected_refs,
                parent_variant_id=parent_variant_id,
            )
            for i, model in enumerate(models)
        ]
        self.session.add_all(variants)
        if isinstance(parent, BibleAsset) and not parent.is_approved and not parent.approved_image_url:
            parent.image_status = BibleAssetStatus.GENERATING.value
        # Commit before submitting so an early callback finds its variant
        await self.session.commit()

        route = "scene-image-variant" if parent_type == VariantParentType.SCENE.value else "image-variant"
        payloads = []
        for variant in variants:
            payload: dict[str, Any] = {
                "prompt": prompt,
                "model": IMAGE_MODELS.workflow_name(variant.model),
                "aspect_ratio": aspect_ratio_for(parent_type),
                "quality": IMAGE_MODELS.quality_for(variant.model),
                "variant_id": variant.id,
                "callback_url": self.config.callback_url(route),
            }
            if shot_type:
                payload["shot_type"] = shot_type
            if reference_images:
                payload["reference_images"] = reference_images
            payloads.append(payload)

        logger.info(
            "Submitting %d %s variant(s) for %s %s", len(variants), parent_type, parent_type, parent_id,
        )
        responses = await asyncio.gather(
            *(self.gateway.submit_image(p) for p in payloads), return_exceptions=True
        )

        for variant, response in zip(variants, responses):
            if isinstance(response, BaseException):
                response = GatewayResponse(success=False, error=str(response))
            await self._record_submission(variant, response)

        await self._refresh_parent_status(parent_type, parent_id)
        await self.session.commit()
        return [v.id for v in variants]

    async def _record_submission(self, variant: Variant, response: GatewayResponse) -> None:
        if not response.success:
            logger.error("[%s] submission failed for variant %s: %s", variant.model, variant.id, response.error)
            variant.status = VariantStatus.FAILED.value
            variant.error_message = truncate_error(response.error or "Generation failed")
            return
        variant.job_id = response.task_id
        if response.result_url:
            # Synchronous answer: treat it exactly like a callback
            await self._apply_success(variant, Completion.ready(response.result_url))

    # ------------------------------------------------------------------
    # Callbacks
    # ------------------------------------------------------------------

    async def apply_completion(self, variant_id: str, completion: Completion) -> ActionResult:
        """Apply a generation callback by id. Safe to repeat and to receive out of order."""
        variant = await self.session.get(Variant, variant_id)
        if not variant:
            return ActionResult.not_found("Variant not found")

        if not completion.success:
            if variant.image_url and variant.is_selectable:
                logger.warning(
                    "Ignoring failure callback for variant %s which already holds a result", variant.id,
                )
                return ActionResult.ok(variant_id=variant.id, status=variant.status, ignored=True)
            variant.status = VariantStatus.FAILED.value
            variant.error_message = truncate_error(completion.error or "Generation failed")
            variant.job_id = None
            logger.info("Variant %s failed: %s", variant.id, variant.error_message)
        else:
            if not completion.result_url:
                return ActionResult.precondition("Missing image URL for completed variant")
            await self._apply_success(variant, completion)

        await self._refresh_parent_status(variant.parent_type, variant.parent_id)
        await self.session.commit()
        return ActionResult.ok(variant_id=variant.id, status=variant.status, image_url=variant.image_url)

    async def _apply_success(self, variant: Variant, completion: Completion) -> None:
        if completion.storage_path:
            # Already in permanent storage
            image_url, storage_path = completion.result_url, completion.storage_path
        else:
            stored = await self.blob_store.rehost(
                completion.result_url,
                self.config.image_bucket,
                self._storage_path(variant),
                "image/png",
                min_bytes=self.config.min_image_bytes,
            )
            image_url = stored.url if stored else completion.result_url
            storage_path = stored.path if stored else None

        variant.image_url = image_url
        variant.storage_path = storage_path
        if variant.status != VariantStatus.SELECTED.value:
            variant.status = VariantStatus.READY.value
        variant.error_message = None
        variant.job_id = None
        variant.updated_at = datetime.utcnow()
        if variant.is_selected:
            await self._copy_to_parent(variant, reset_approval=False)
        logger.info("Variant %s ready (%s)", variant.id, variant.model)

    async def _refresh_parent_status(self, parent_type: str, parent_id: str) -> None:
        """Bible assets without a chosen image mirror their candidates' progress."""
        if parent_type not in BIBLE_PARENT_TYPES:
            return
        asset = await self.session.get(BibleAsset, parent_id)
        if asset is None or asset.is_approved or asset.approved_image_url:
            return
        await self.session.flush()
        result = await self.session.execute(
            select(Variant.status).where(
                Variant.parent_type == parent_type, Variant.parent_id == parent_id
            )
        )
        statuses = set(result.scalars().all())
        if statuses & {VariantStatus.READY.value, VariantStatus.SELECTED.value}:
            asset.image_status = BibleAssetStatus.READY.value
        elif VariantStatus.GENERATING.value in statuses:
            asset.image_status = BibleAssetStatus.GENERATING.value
        elif statuses == {VariantStatus.FAILED.value}:
            asset.image_status = BibleAssetStatus.FAILED.value
        else:
            asset.image_status = BibleAssetStatus.PENDING.value

    async def apply_asset_result(
        self,
        asset_type: str,
        asset_id: str,
        completion: Completion,
        shot_type: str | None = None,
    ) -> ActionResult:
        """Single-image callbacks that carry no variant id write straight to the asset."""
        asset = await self.session.get(BibleAsset, asset_id)
        if asset is None or asset.asset_type != asset_type:
            return ActionResult.not_found(f"{asset_type.capitalize()} not found")

        shot = shot_type or ShotType.PORTRAIT.value
        if not completion.success:
            error = truncate_error(completion.error or "Generation failed")
            if shot != ShotType.PORTRAIT.value:
                # A missing extra angle leaves the portrait and its status alone
                logger.warning("%s shot failed for %s %s: %s", shot, asset_type, asset.id, error)
                return ActionResult.ok(asset_id=asset.id, image_status=asset.image_status, ignored=True)
            if asset.is_approved or asset.approved_image_url:
                logger.warning(
                    "Ignoring failure callback for %s %s which already holds an image", asset_type, asset.id,
                )
                return ActionResult.ok(asset_id=asset.id, image_status=asset.image_status, ignored=True)
            asset.image_status = BibleAssetStatus.FAILED.value
            asset.error_message = error
            await self.session.commit()
            return ActionResult.ok(asset_id=asset.id, image_status=asset.image_status)

        if completion.storage_path:
            image_url, storage_path = completion.result_url, completion.storage_path
        else:
            stored = await self.blob_store.rehost(
                completion.result_url,
                self.config.image_bucket,
                f"{asset_type}s/{asset.id}/{shot}.png",
                "image/png",
                min_bytes=self.config.min_image_bytes,
            )
            image_url = stored.url if stored else completion.result_url
            storage_path = stored.path if stored else None

        if shot != ShotType.PORTRAIT.value:
            asset.shot_images = {
                **(asset.shot_images or {}),
                shot: {"url": image_url, "storage_path": storage_path, "model": None},
            }
        else:
            asset.approved_image_url = image_url
            asset.approved_image_storage_path = storage_path
            if not asset.is_approved:
                asset.image_status = BibleAssetStatus.READY.value
        asset.error_message = None
        await self.session.commit()
        return ActionResult.ok(asset_id=asset.id, image_status=asset.image_status, image_url=image_url)

    # ------------------------------------------------------------------
    # Selection
    # ------------------------------------------------------------------

    async def _copy_to_parent(self, variant: Variant, *, reset_approval: bool = True) -> None:
        """Write the variant's image onto its parent.

        Only a new selection resets bible approval; a redelivered
        completion for the current selection refreshes the image fields.
        """
        if variant.parent_type == VariantParentType.SCENE.value:
            scene = await self.session.get(Scene, variant.parent_id)
            if scene:
                scene.approved_image_id = variant.id
                scene.approved_image_url = variant.image_url
                if reset_approval or scene.approved_image_at is None:
                    scene.approved_image_at = datetime.utcnow()
            return

        asset = await self.session.get(BibleAsset, variant.parent_id)
        if asset is None:
            return
        if variant.shot_type not in (None, ShotType.PORTRAIT.value):
            asset.shot_images = {
                **(asset.shot_images or {}),
                variant.shot_type: {
                    "url": variant.image_url,
                    "storage_path": variant.storage_path,
                    "model": variant.model,
                },
            }
            return
        asset.approved_image_url = variant.image_url
        asset.approved_image_storage_path = variant.storage_path
        asset.selected_model = variant.model
        if reset_approval:
            # A new image needs a fresh approval
            asset.image_status = BibleAssetStatus.READY.value
            asset.approved_at = None

    async def _clear_parent_image(self, variant: Variant, *, reset_status: str) -> None:
        if variant.parent_type == VariantParentType.SCENE.value:
            scene = await self.session.get(Scene, variant.parent_id)
            if scene and scene.approved_image_id == variant.id:
                scene.approved_image_id = None
                scene.approved_image_url = None
                scene.approved_image_at = None
            return

        asset = await self.session.get(BibleAsset, variant.parent_id)
        if asset is None:
            return
        if variant.shot_type not in (None, ShotType.PORTRAIT.value):
            shots = dict(asset.shot_images or {})
            shots.pop(variant.shot_type, None)
            asset.shot_images = shots
            return
        asset.approved_image_url = None
        asset.approved_image_storage_path = None
        asset.approved_at = None
        asset.image_status = reset_status

    async def select_variant(self, variant_id: str) -> ActionResult:
        """Make one variant the selected image of its (parent, shot type), atomically."""
        variant = await self.session.get(Variant, variant_id)
        if not variant:
            return ActionResult.not_found("Variant not found")
        if not variant.is_selectable:
            return ActionResult.precondition(f"Variant is {variant.status}, not ready to select")

        now = datetime.utcnow()
        try:
            await self.session.execute(
                update(Variant)
                .where(
                    *_sibling_clause(variant.parent_type, variant.parent_id, variant.shot_type),
                    Variant.id != variant.id,
                    or_(Variant.is_selected.is_(True), Variant.status == VariantStatus.SELECTED.value),
                )
                .values(is_selected=False, status=VariantStatus.READY.value, updated_at=now)
            )
            variant.is_selected = True
            variant.status = VariantStatus.SELECTED.value
            variant.updated_at = now
            await self._copy_to_parent(variant)
            await self.session.commit()
        except Exception:
            await self.session.rollback()
            raise

        logger.info(
            "Selected variant %s for %s %s (shot=%s)",
            variant.id, variant.parent_type, variant.parent_id, variant.shot_type,
        )
        return ActionResult.ok(variant_id=variant.id, image_url=variant.image_url)

    async def unselect_variant(self, variant_id: str) -> ActionResult:
        variant = await self.session.get(Variant, variant_id)
        if not variant:
            return ActionResult.not_found("Variant not found")
        if not variant.is_selected:
            return ActionResult.precondition("Variant is not currently selected")
        variant.is_selected = False
        variant.status = VariantStatus.READY.value
        if variant.parent_type == VariantParentType.SCENE.value:
            await self._clear_parent_image(variant, reset_status=BibleAssetStatus.PENDING.value)
        else:
            # Bible assets keep the image but lose their approval
            asset = await self.session.get(BibleAsset, variant.parent_id)
            if asset is not None:
                asset.image_status = BibleAssetStatus.READY.value
                asset.approved_at = None
        await self.session.commit()
        return ActionResult.ok(variant_id=variant.id)

    async def fix_duplicates(
        self, parent_type: str, parent_id: str, shot_type: str | None = None
    ) -> ActionResult:
        """Keep the most recently updated selected sibling, clear the others."""
        result = await self.session.execute(
            select(Variant)
            .where(
                *_sibling_clause(parent_type, parent_id, shot_type),
                Variant.is_selected.is_(True),
            )
            .order_by(Variant.updated_at, Variant.id)
        )
        selected = list(result.scalars().all())
        if not selected:
            return ActionResult.ok(fixed_count=0, kept_variant_id=None)

        keep, extras = selected[-1], selected[:-1]
        for extra in extras:
            extra.is_selected = False
            extra.status = VariantStatus.READY.value
        keep.status = VariantStatus.SELECTED.value
        if extras:
            await self._copy_to_parent(keep)
            logger.warning(
                "Repaired %d duplicate selection(s) for %s %s (shot=%s), kept %s",
                len(extras), parent_type, parent_id, shot_type, keep.id,
            )
        await self.session.commit()
        return ActionResult.ok(fixed_count=len(extras), kept_variant_id=keep.id)

    # ------------------------------------------------------------------
    # Deletion and maintenance
    # ------------------------------------------------------------------

    async def _selected_count(self, variant: Variant) -> int:
        return await self.session.scalar(
            select(func.count(Variant.id)).where(
                *_sibling_clause(variant.parent_type, variant.parent_id, variant.shot_type),
                Variant.is_selected.is_(True),
            )
        ) or 0

    async def _delete_blob(self, variant: Variant) -> None:
        if not variant.storage_path:
            return
        try:
            await self.blob_store.delete(self.config.image_bucket, variant.storage_path)
        except (httpx.HTTPError, ValueError) as e:
            logger.warning("Could not delete blob %s: %s", variant.storage_path, e)

    async def delete_variant(self, variant_id: str) -> ActionResult:
        """Delete a candidate. The selected one is protected unless selection is already duplicated."""
        variant = await self.session.get(Variant, variant_id)
        if not variant:
            return ActionResult.not_found("Variant not found")
        if variant.is_selected and await self._selected_count(variant) <= 1:
            return ActionResult.precondition(
                "Cannot delete the selected variant. Select a different variant first."
            )
        await self._delete_blob(variant)
        await self.session.delete(variant)
        await self.session.commit()
        logger.info("Deleted variant %s", variant_id)
        return ActionResult.ok(variant_id=variant_id)

    async def force_delete_variant(self, variant_id: str) -> ActionResult:
        """Delete even the selected variant; its parent loses the image."""
        variant = await self.session.get(Variant, variant_id)
        if not variant:
            return ActionResult.not_found("Variant not found")
        was_selected = variant.is_selected
        if was_selected:
            await self._clear_parent_image(variant, reset_status=BibleAssetStatus.PENDING.value)
        await self._delete_blob(variant)
        await self.session.delete(variant)
        await self.session.commit()
        logger.info("Force-deleted variant %s (was_selected=%s)", variant_id, was_selected)
        return ActionResult.ok(variant_id=variant_id, was_selected=was_selected)

    async def delete_failed_variants(self, parent_type: str, parent_id: str) -> ActionResult:
        result = await self.session.execute(
            delete(Variant).where(
                Variant.parent_type == parent_type,
                Variant.parent_id == parent_id,
                Variant.status == VariantStatus.FAILED.value,
            )
        )
        await self._refresh_parent_status(parent_type, parent_id)
        await self.session.commit()
        return ActionResult.ok(deleted_count=result.rowcount)

    async def reset_stuck_variants(
        self, max_age_minutes: int | None = None, project_id: str | None = None
    ) -> ActionResult:
        """Fail variants that have been generating for longer than the cutoff."""
        minutes = max_age_minutes if max_age_minutes is not None else self.config.stuck_variant_max_age_minutes
        cutoff = datetime.utcnow() - timedelta(minutes=minutes)
        query = select(Variant).where(
            Variant.status == VariantStatus.GENERATING.value,
            Variant.created_at < cutoff,
        )
        if project_id is not None:
            asset_ids = select(BibleAsset.id).where(BibleAsset.project_id == project_id)
            scene_ids = select(Scene.id).where(Scene.project_id == project_id)
            query = query.where(or_(Variant.parent_id.in_(asset_ids), Variant.parent_id.in_(scene_ids)))

        stuck = list((await self.session.execute(query)).scalars().all())
        for variant in stuck:
            variant.status = VariantStatus.FAILED.value
            variant.error_message = STUCK_VARIANT_ERROR
            variant.job_id = None
        for parent_type, parent_id in {(v.parent_type, v.parent_id) for v in stuck}:
            await self._refresh_parent_status(parent_type, parent_id)
        await self.session.commit()
        if stuck:
            logger.warning("Reset %d stuck variant(s) older than %d min", len(stuck), minutes)
        return ActionResult.ok(reset_count=len(stuck))

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    async def list_variants(
        self, parent_type: str, parent_id: str, shot_type: str | None = None
    ) -> list[Variant]:
        query = select(Variant).where(
            Variant.parent_type == parent_type, Variant.parent_id == parent_id
        )
        if shot_type is not None:
            query = query.where(Variant.shot_type == shot_type)
        result = await self.session.execute(query.order_by(Variant.generation_order, Variant.created_at))
        return list(result.scalars().all())

    async def variant_lineage(self, variant_id: str) -> ActionResult:
        """The refinement chain ending at this variant, oldest first."""
        chain: list[Variant] = []
        seen: set[str] = set()
        current = await self.session.get(Variant, variant_id)
        if not current:
            return ActionResult.not_found("Variant not found")
        while current is not None and current.id not in seen:
            seen.add(current.id)
            chain.append(current)
            if not current.parent_variant_id:
                break
            current = await self.session.get(Variant, current.parent_variant_id)
        chain.reverse()
        return ActionResult.ok(variants=chain)

    # ------------------------------------------------------------------
    # Bulk approval
    # ------------------------------------------------------------------

    async def _first_ready(self, parent_type: str, parent_id: str) -> Variant | None:
        return await self.session.scalar(
            select(Variant)
            .where(
                *_sibling_clause(parent_type, parent_id, None),
                Variant.status == VariantStatus.READY.value,
                Variant.image_url.is_not(None),
            )
            .order_by(Variant.generation_order, Variant.created_at)
            .limit(1)
        )

    async def _has_selection(self, parent_type: str, parent_id: str) -> bool:
        count = await self.session.scalar(
            select(func.count(Variant.id)).where(
                *_sibling_clause(parent_type, parent_id, None),
                Variant.is_selected.is_(True),
            )
        )
        return bool(count)

    async def bulk_approve_bible_images(self, project_id: str) -> ActionResult:
        """Select the first ready candidate where nothing is selected, then approve."""
        project = await self.session.get(Project, project_id)
        if not project:
            return ActionResult.not_found("Project not found")
        result = await self.session.execute(
            select(BibleAsset).where(
                BibleAsset.project_id == project_id,
                BibleAsset.image_status != BibleAssetStatus.APPROVED.value,
            )
        )
        approved = 0
        for asset in result.scalars().all():
            if not await self._has_selection(asset.asset_type, asset.id):
                candidate = await self._first_ready(asset.asset_type, asset.id)
                if candidate is None:
                    continue
                selection = await self.select_variant(candidate.id)
                if not selection.success:
                    continue
            if not asset.approved_image_url:
                continue
            asset.image_status = BibleAssetStatus.APPROVED.value
            asset.approved_at = datetime.utcnow()
            approved += 1
        await self.session.flush()
        check = await ProjectLifecycle(self.session).check_and_advance(project_id)
        logger.info("Bulk-approved %d bible asset(s) for project %s", approved, project_id)
        return ActionResult.ok(approved_count=approved, status=check.data.get("status"))

    async def bulk_approve_scene_images(self, project_id: str) -> ActionResult:
        """Give every scene without a selection its first ready candidate."""
        result = await self.session.execute(
            select(Scene).where(Scene.project_id == project_id).order_by(Scene.scene_number)
        )
        scenes = list(result.scalars().all())
        if not scenes:
            return ActionResult.not_found("No scenes found for project")
        approved = 0
        for scene in scenes:
            if await self._has_selection(VariantParentType.SCENE.value, scene.id):
                continue
            candidate = await self._first_ready(VariantParentType.SCENE.value, scene.id)
            if candidate is None:
                continue
            selection = await self.select_variant(candidate.id)
            if selection.success:
                approved += 1
        return ActionResult.ok(approved_count=approved)
