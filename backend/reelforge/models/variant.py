from __future__ import annotations
"""Variant ORM model: one candidate image per model for a bible asset or scene."""

import enum
import uuid
from datetime import datetime
from typing import Any, Optional

from sqlalchemy import JSON, Boolean, DateTime, ForeignKey, Index, Integer, String, Text
from sqlalchemy.dialects.mysql import DATETIME
from sqlalchemy.orm import Mapped, mapped_column

from reelforge.database import Base


def _utcnow() -> datetime:
    return datetime.utcnow()


_PreciseDateTime = DateTime().with_variant(DATETIME(fsp=6), "mysql")


class VariantParentType(str, enum.Enum):
    CHARACTER = "character"
    LOCATION = "location"
    PROP = "prop"
    SCENE = "scene"


class VariantStatus(str, enum.Enum):
    PENDING = "pending"
    GENERATING = "generating"
    READY = "ready"
    SELECTED = "selected"
    FAILED = "failed"


SELECTABLE_STATUSES = frozenset({VariantStatus.READY.value, VariantStatus.SELECTED.value})


class Variant(Base):
    """A single generation attempt, tagged with the model that produced it.

    At most one variant per (parent_type, parent_id, shot_type) is selected.
    """

    __tablename__ = "image_variants"
    __table_args__ = (
        Index("ix_image_variants_parent", "parent_type", "parent_id", "shot_type"),
        Index("ix_image_variants_status", "status"),
        {
            "mysql_charset": "utf8mb4",
            "mysql_collate": "utf8mb4_unicode_ci",
        },
    )

    id: Mapped[str] = mapped_column(
        String(36),
        primary_key=True,
        default=lambda: uuid.uuid4().hex[:36],
    )
    parent_type: Mapped[str] = mapped_column(String(20), nullable=False)
    parent_id: Mapped[str] = mapped_column(String(36), nullable=False)
    shot_type: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)

    model: Mapped[str] = mapped_column(String(100), nullable=False)
    prompt: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=VariantStatus.PENDING.value
    )
    is_selected: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    generation_order: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    image_url: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    storage_path: Mapped[Optional[str]] = mapped_column(String(1024), nullable=True)
    job_id: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    error_message: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    # Refinement lineage: the variant whose image this one was derived from
    parent_variant_id: Mapped[Optional[str]] = mapped_column(
        String(36),
        ForeignKey("image_variants.id", ondelete="SET NULL"),
        nullable=True,
    )
    injected_refs: Mapped[Optional[dict[str, Any]]] = mapped_column(JSON, nullable=True)

    # Python-side timestamps keep microseconds; duplicate repair orders by updated_at
    created_at: Mapped[datetime] = mapped_column(_PreciseDateTime, default=_utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        _PreciseDateTime, default=_utcnow, onupdate=_utcnow
    )

    @property
    def is_selectable(self) -> bool:
        return self.status in SELECTABLE_STATUSES
