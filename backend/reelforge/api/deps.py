from __future__ import annotations
"""FastAPI dependencies: configuration, adapters and per-request services.

Tests swap the adapters through ``app.dependency_overrides``.
"""

from functools import lru_cache
from typing import Any

from fastapi import Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from reelforge.config import PipelineConfig, get_settings
from reelforge.database import get_db
from reelforge.services.admission import AdmissionQueue
from reelforge.services.assembly import AssemblyOrderer
from reelforge.services.blob_store import BlobStore
from reelforge.services.gateway import CompositionGateway, GenerationGateway
from reelforge.services.lifecycle import ProjectLifecycle
from reelforge.services.results import ActionResult, ErrorKind
from reelforge.services.variant_engine import VariantEngine

_STATUS_FOR_KIND = {
    ErrorKind.NOT_FOUND: 404,
    ErrorKind.PRECONDITION_FAILED: 409,
    ErrorKind.EXTERNAL_FAILURE: 502,
}


def get_pipeline_config() -> PipelineConfig:
    return PipelineConfig.from_settings(get_settings())


@lru_cache
def get_generation_gateway() -> GenerationGateway:
    return GenerationGateway.from_settings(get_settings())


@lru_cache
def get_composition_gateway() -> CompositionGateway:
    return CompositionGateway.from_settings(get_settings())


@lru_cache
def get_blob_store() -> BlobStore:
    return BlobStore.from_settings(get_settings())


def get_lifecycle(db: AsyncSession = Depends(get_db)) -> ProjectLifecycle:
    return ProjectLifecycle(db)


def get_variant_engine(
    db: AsyncSession = Depends(get_db),
    config: PipelineConfig = Depends(get_pipeline_config),
    gateway: GenerationGateway = Depends(get_generation_gateway),
    blob_store: BlobStore = Depends(get_blob_store),
) -> VariantEngine:
    return VariantEngine(db, config, gateway, blob_store)


def get_admission_queue(
    db: AsyncSession = Depends(get_db),
    config: PipelineConfig = Depends(get_pipeline_config),
    gateway: GenerationGateway = Depends(get_generation_gateway),
    blob_store: BlobStore = Depends(get_blob_store),
) -> AdmissionQueue:
    return AdmissionQueue(db, config, gateway, blob_store)


def get_assembly_orderer(
    db: AsyncSession = Depends(get_db),
    config: PipelineConfig = Depends(get_pipeline_config),
    composer: CompositionGateway = Depends(get_composition_gateway),
    blob_store: BlobStore = Depends(get_blob_store),
) -> AssemblyOrderer:
    return AssemblyOrderer(db, config, composer, blob_store)


def unwrap(result: ActionResult) -> dict[str, Any]:
    """Successful results become the response body; failures become HTTP errors."""
    if not result.success:
        raise HTTPException(status_code=_STATUS_FOR_KIND.get(result.kind, 400), detail=result.error)
    return result.to_dict()


async def fresh(db: AsyncSession, obj: Any) -> Any:
    """Reload server-side columns before serialising an object written in this request."""
    await db.refresh(obj)
    return obj
