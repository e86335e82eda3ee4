"""ORM model package: registers all models with Base.metadata."""

from reelforge.models.project import Project, ProjectStatus, VALID_TRANSITIONS
from reelforge.models.bible_asset import BibleAsset, BibleAssetStatus, BibleAssetType, ShotType
from reelforge.models.variant import Variant, VariantParentType, VariantStatus
from reelforge.models.scene import Scene, SceneValidationStatus
from reelforge.models.video import SceneShot, SceneVideo, VideoStatus
from reelforge.models.final_reel import FinalReel, ReelStatus

__all__ = [
    "Project",
    "ProjectStatus",
    "VALID_TRANSITIONS",
    "BibleAsset",
    "BibleAssetStatus",
    "BibleAssetType",
    "ShotType",
    "Variant",
    "VariantParentType",
    "VariantStatus",
    "Scene",
    "SceneValidationStatus",
    "SceneShot",
    "SceneVideo",
    "VideoStatus",
    "FinalReel",
    "ReelStatus",
]
