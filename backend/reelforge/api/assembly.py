from __future__ import annotations
"""Final reel endpoints."""

from fastapi import APIRouter, Depends

from reelforge.api.deps import get_assembly_orderer, unwrap
from reelforge.schemas.assembly import ReelRead, SegmentRead
from reelforge.services.assembly import AssemblyOrderer

router = APIRouter()


@router.get("/order", response_model=list[SegmentRead])
async def resolve_order(project_id: str, orderer: AssemblyOrderer = Depends(get_assembly_orderer)):
    """Preview of the segments the next assembly would use, in order."""
    return await orderer.resolve_order(project_id)


@router.post("/")
async def assemble(project_id: str, orderer: AssemblyOrderer = Depends(get_assembly_orderer)):
    return unwrap(await orderer.assemble(project_id))


@router.post("/retry")
async def retry(project_id: str, orderer: AssemblyOrderer = Depends(get_assembly_orderer)):
    return unwrap(await orderer.retry(project_id))


@router.get("/status", response_model=ReelRead | None)
async def status(project_id: str, orderer: AssemblyOrderer = Depends(get_assembly_orderer)):
    return await orderer.status(project_id)


@router.post("/approve")
async def approve_reel(project_id: str, orderer: AssemblyOrderer = Depends(get_assembly_orderer)):
    return unwrap(await orderer.approve_reel(project_id))


@router.get("/timeline")
async def timeline(project_id: str, orderer: AssemblyOrderer = Depends(get_assembly_orderer)):
    """Every scene and shot in playback order with the total runtime."""
    return unwrap(await orderer.timeline(project_id))
