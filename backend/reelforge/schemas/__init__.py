"""Pydantic v2 schemas package."""

from reelforge.schemas.assembly import ReelRead, SegmentRead
from reelforge.schemas.bible import AddVariantRequest, BibleAssetRead, GenerateVariantsRequest
from reelforge.schemas.project import ProjectCreate, ProjectRead, SceneOrderUpdate
from reelforge.schemas.scene import SceneRead, ShotPlan, ShotPlanRequest, ShotRead
from reelforge.schemas.variant import RefineRequest, ResetStuckRequest, VariantRead
from reelforge.schemas.video import VideoRead, VideoRequest

__all__ = [
    "ReelRead",
    "SegmentRead",
    "AddVariantRequest",
    "BibleAssetRead",
    "GenerateVariantsRequest",
    "ProjectCreate",
    "ProjectRead",
    "SceneOrderUpdate",
    "SceneRead",
    "ShotPlan",
    "ShotPlanRequest",
    "ShotRead",
    "RefineRequest",
    "ResetStuckRequest",
    "VariantRead",
    "VideoRead",
    "VideoRequest",
]
