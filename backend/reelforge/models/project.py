from __future__ import annotations
"""Project ORM model: the root of the production pipeline and its stage machine."""

import enum
import uuid
from datetime import datetime
from typing import Any, Optional

from sqlalchemy import JSON, Boolean, DateTime, String, Text, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from reelforge.database import Base


class ProjectStatus(str, enum.Enum):
    """Project lifecycle statuses."""

    PARSING = "parsing"
    BIBLE_REVIEW = "bible_review"
    SCENE_VALIDATION = "scene_validation"
    ASSET_GENERATION = "asset_generation"
    EXPORTING = "exporting"
    FAILED = "failed"


# Ordered list for index-based navigation (FAILED sits outside the linear path)
_STATUS_ORDER: list[ProjectStatus] = [
    ProjectStatus.PARSING,
    ProjectStatus.BIBLE_REVIEW,
    ProjectStatus.SCENE_VALIDATION,
    ProjectStatus.ASSET_GENERATION,
    ProjectStatus.EXPORTING,
]

# Explicit valid transitions: status -> set of reachable statuses
VALID_TRANSITIONS: dict[ProjectStatus, set[ProjectStatus]] = {
    ProjectStatus.PARSING: {ProjectStatus.BIBLE_REVIEW, ProjectStatus.FAILED},
    ProjectStatus.BIBLE_REVIEW: {ProjectStatus.SCENE_VALIDATION},
    ProjectStatus.SCENE_VALIDATION: {ProjectStatus.ASSET_GENERATION},
    ProjectStatus.ASSET_GENERATION: {ProjectStatus.SCENE_VALIDATION, ProjectStatus.EXPORTING},
    ProjectStatus.EXPORTING: {ProjectStatus.ASSET_GENERATION, ProjectStatus.SCENE_VALIDATION},
    ProjectStatus.FAILED: set(),  # terminal state
}


class Project(Base):
    """A film project decomposed from one source document."""

    __tablename__ = "projects"
    __table_args__ = {
        "mysql_charset": "utf8mb4",
        "mysql_collate": "utf8mb4_unicode_ci",
    }

    id: Mapped[str] = mapped_column(
        String(36),
        primary_key=True,
        default=lambda: uuid.uuid4().hex[:36],
    )
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    visual_style: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    auto_mode: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    status: Mapped[str] = mapped_column(
        String(50), nullable=False, default=ProjectStatus.PARSING.value
    )
    # Scene ids, or legacy scene numbers on projects imported before ids were stored
    scene_order: Mapped[Optional[list[Any]]] = mapped_column(JSON, nullable=True)
    parse_job_id: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    generation_task_id: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    error_message: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime, server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, server_default=func.now(), onupdate=func.now()
    )

    # Relationships
    bible_assets = relationship(
        "BibleAsset",
        back_populates="project",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )
    scenes = relationship(
        "Scene",
        back_populates="project",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="Scene.scene_number",
    )
    final_reel = relationship(
        "FinalReel",
        back_populates="project",
        cascade="all, delete-orphan",
        passive_deletes=True,
        uselist=False,
    )

    def can_transition_to(self, target_status: str) -> bool:
        """Check if the project can transition to the target status."""
        try:
            current = ProjectStatus(self.status)
            target = ProjectStatus(target_status)
        except ValueError:
            return False
        return target in VALID_TRANSITIONS.get(current, set())

    def is_rollback(self, target_status: str) -> bool:
        """Check if the target status is a rollback (moving backward)."""
        try:
            current_idx = _STATUS_ORDER.index(ProjectStatus(self.status))
            target_idx = _STATUS_ORDER.index(ProjectStatus(target_status))
        except ValueError:
            return False
        return target_idx < current_idx
