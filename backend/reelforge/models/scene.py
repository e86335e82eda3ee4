from __future__ import annotations
"""Scene ORM model: one decomposed scene of the source document."""

import enum
import uuid
from datetime import datetime
from typing import Any, Optional

from sqlalchemy import JSON, DateTime, ForeignKey, Integer, String, Text, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from reelforge.database import Base


class SceneValidationStatus(str, enum.Enum):
    PENDING = "pending"
    APPROVED = "approved"


class Scene(Base):
    """A scene with its approval state, approved image and opaque production data."""

    __tablename__ = "scenes"
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
    scene_number: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    slugline: Mapped[str] = mapped_column(String(512), nullable=False, default="")

    # Characters present, props, mood, audio cues, video prompt components
    production_data: Mapped[Optional[dict[str, Any]]] = mapped_column(JSON, nullable=True)

    # Scene validation
    validation_status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=SceneValidationStatus.PENDING.value
    )
    approved_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)

    # Approved scene image (copied from the selected variant)
    approved_image_id: Mapped[Optional[str]] = mapped_column(String(36), nullable=True)
    approved_image_url: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    approved_image_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime, server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, server_default=func.now(), onupdate=func.now()
    )

    # Relationships
    project = relationship("Project", back_populates="scenes")
    videos = relationship(
        "SceneVideo",
        back_populates="scene",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )
    shots = relationship(
        "SceneShot",
        back_populates="scene",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="SceneShot.shot_number",
    )

    @property
    def is_approved(self) -> bool:
        return self.validation_status == SceneValidationStatus.APPROVED.value
