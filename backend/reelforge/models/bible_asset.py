from __future__ import annotations
"""BibleAsset ORM model: reusable character / location / prop references."""

import enum
import uuid
from datetime import datetime
from typing import Any, Optional

from sqlalchemy import JSON, DateTime, ForeignKey, String, Text, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from reelforge.database import Base


class BibleAssetType(str, enum.Enum):
    CHARACTER = "character"
    LOCATION = "location"
    PROP = "prop"


class BibleAssetStatus(str, enum.Enum):
    """Image status of a bible asset. APPROVED holds until explicitly un-approved."""

    PENDING = "pending"
    GENERATING = "generating"
    READY = "ready"
    APPROVED = "approved"
    FAILED = "failed"


class ShotType(str, enum.Enum):
    """Character reference framings; locations and props have none."""

    PORTRAIT = "portrait"
    THREE_QUARTER = "three_quarter"
    FULL_BODY = "full_body"


class BibleAsset(Base):
    """A character, location or prop approved once and reused across scenes."""

    __tablename__ = "bible_assets"
    __table_args__ = {
        "mysql_charset": "utf8mb4",
        "mysql_collate": "utf8mb4_unicode_ci",
    }

    id: Mapped[str] = mapped_column(
        String(36),
        primary_key=True,
        default=lambda: uuid.uuid4().hex[:36],
    )
    project_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("projects.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    asset_type: Mapped[str] = mapped_column(String(20), nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)

    # Prompt material
    visual_dna: Mapped[Optional[list[str]]] = mapped_column(JSON, nullable=True)
    portrait_prompt: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    visual_description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    raw_data: Mapped[Optional[dict[str, Any]]] = mapped_column(JSON, nullable=True)

    # Approved image
    image_status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=BibleAssetStatus.PENDING.value
    )
    approved_image_url: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    approved_image_storage_path: Mapped[Optional[str]] = mapped_column(
        String(1024), nullable=True
    )
    selected_model: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    # shot_type -> {"url", "storage_path", "model"} for non-portrait character shots
    shot_images: Mapped[Optional[dict[str, Any]]] = mapped_column(JSON, nullable=True)
    error_message: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    approved_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime, server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, server_default=func.now(), onupdate=func.now()
    )

    # Relationships
    project = relationship("Project", back_populates="bible_assets")

    @property
    def is_approved(self) -> bool:
        return self.image_status == BibleAssetStatus.APPROVED.value
