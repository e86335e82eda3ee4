from __future__ import annotations
"""Variant endpoints: listing, selection, deletion and maintenance."""

from fastapi import APIRouter, Depends

from reelforge.api.deps import get_variant_engine, unwrap
from reelforge.models.variant import VariantParentType
from reelforge.schemas.variant import RefineRequest, ResetStuckRequest, VariantRead
from reelforge.services.variant_engine import VariantEngine

router = APIRouter()


@router.get("/parents/{parent_type}/{parent_id}", response_model=list[VariantRead])
async def list_variants(
    parent_type: VariantParentType,
    parent_id: str,
    shot_type: str | None = None,
    engine: VariantEngine = Depends(get_variant_engine),
):
    """Candidates for a parent in generation order."""
    return await engine.list_variants(parent_type.value, parent_id, shot_type)


@router.delete("/parents/{parent_type}/{parent_id}/failed")
async def delete_failed_variants(
    parent_type: VariantParentType,
    parent_id: str,
    engine: VariantEngine = Depends(get_variant_engine),
):
    return unwrap(await engine.delete_failed_variants(parent_type.value, parent_id))


@router.post("/parents/{parent_type}/{parent_id}/fix-duplicates")
async def fix_duplicates(
    parent_type: VariantParentType,
    parent_id: str,
    shot_type: str | None = None,
    engine: VariantEngine = Depends(get_variant_engine),
):
    """Repair a parent that ended up with more than one selected variant."""
    return unwrap(await engine.fix_duplicates(parent_type.value, parent_id, shot_type))


@router.post("/reset-stuck")
async def reset_stuck_variants(
    data: ResetStuckRequest,
    engine: VariantEngine = Depends(get_variant_engine),
):
    return unwrap(await engine.reset_stuck_variants(data.max_age_minutes, data.project_id))


@router.post("/{variant_id}/select")
async def select_variant(variant_id: str, engine: VariantEngine = Depends(get_variant_engine)):
    return unwrap(await engine.select_variant(variant_id))


@router.post("/{variant_id}/unselect")
async def unselect_variant(variant_id: str, engine: VariantEngine = Depends(get_variant_engine)):
    return unwrap(await engine.unselect_variant(variant_id))


@router.delete("/{variant_id}")
async def delete_variant(variant_id: str, engine: VariantEngine = Depends(get_variant_engine)):
    return unwrap(await engine.delete_variant(variant_id))


@router.delete("/{variant_id}/force")
async def force_delete_variant(variant_id: str, engine: VariantEngine = Depends(get_variant_engine)):
    """Delete even the selected variant; its parent loses the image."""
    return unwrap(await engine.force_delete_variant(variant_id))


@router.post("/{variant_id}/refine", status_code=202)
async def refine_variant(
    variant_id: str,
    data: RefineRequest,
    engine: VariantEngine = Depends(get_variant_engine),
):
    return unwrap(await engine.refine_variant(variant_id, data.model, data.refinement_prompt))


@router.post("/{variant_id}/retry", status_code=202)
async def retry_variant(variant_id: str, engine: VariantEngine = Depends(get_variant_engine)):
    return unwrap(await engine.retry_variant(variant_id))


@router.get("/{variant_id}/lineage", response_model=list[VariantRead])
async def variant_lineage(variant_id: str, engine: VariantEngine = Depends(get_variant_engine)):
    """Refinement chain ending at this variant, oldest first."""
    return unwrap(await engine.variant_lineage(variant_id))["variants"]
