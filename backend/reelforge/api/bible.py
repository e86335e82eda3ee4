from __future__ import annotations
"""Bible asset endpoints: review and variant generation per asset."""

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from reelforge.api.deps import get_lifecycle, get_variant_engine, unwrap
from reelforge.database import get_db
from reelforge.models.bible_asset import BibleAsset, BibleAssetType
from reelforge.schemas.bible import AddVariantRequest, BibleAssetRead, GenerateVariantsRequest
from reelforge.services.lifecycle import ProjectLifecycle
from reelforge.services.variant_engine import VariantEngine

router = APIRouter()


async def _get_asset(db: AsyncSession, project_id: str, asset_id: str) -> BibleAsset:
    asset = await db.get(BibleAsset, asset_id)
    if not asset or asset.project_id != project_id:
        raise HTTPException(status_code=404, detail="Asset not found")
    return asset


@router.get("/", response_model=list[BibleAssetRead])
async def list_assets(
    project_id: str,
    asset_type: BibleAssetType | None = None,
    db: AsyncSession = Depends(get_db),
):
    query = select(BibleAsset).where(BibleAsset.project_id == project_id)
    if asset_type is not None:
        query = query.where(BibleAsset.asset_type == asset_type.value)
    result = await db.execute(query.order_by(BibleAsset.asset_type, BibleAsset.name))
    return result.scalars().all()


@router.post("/{asset_id}/approve")
async def approve_asset(
    project_id: str,
    asset_id: str,
    db: AsyncSession = Depends(get_db),
    lifecycle: ProjectLifecycle = Depends(get_lifecycle),
):
    """Approve the selected image; may advance the project past bible review."""
    await _get_asset(db, project_id, asset_id)
    return unwrap(await lifecycle.approve_asset(asset_id))


@router.post("/{asset_id}/unapprove")
async def unapprove_asset(
    project_id: str,
    asset_id: str,
    db: AsyncSession = Depends(get_db),
    lifecycle: ProjectLifecycle = Depends(get_lifecycle),
):
    await _get_asset(db, project_id, asset_id)
    return unwrap(await lifecycle.unapprove_asset(asset_id))


@router.post("/{asset_id}/variants", status_code=202)
async def generate_variants(
    project_id: str,
    asset_id: str,
    data: GenerateVariantsRequest,
    db: AsyncSession = Depends(get_db),
    engine: VariantEngine = Depends(get_variant_engine),
):
    """Fan out one candidate per model."""
    asset = await _get_asset(db, project_id, asset_id)
    shot_type = data.shot_type.value if data.shot_type else None
    return unwrap(await engine.generate_variants(asset.asset_type, asset.id, data.models, shot_type))


@router.post("/{asset_id}/variants/add", status_code=202)
async def add_variant(
    project_id: str,
    asset_id: str,
    data: AddVariantRequest,
    db: AsyncSession = Depends(get_db),
    engine: VariantEngine = Depends(get_variant_engine),
):
    asset = await _get_asset(db, project_id, asset_id)
    shot_type = data.shot_type.value if data.shot_type else None
    return unwrap(await engine.add_variant(asset.asset_type, asset.id, data.model, shot_type))
