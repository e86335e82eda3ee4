from __future__ import annotations
"""FinalReel ORM model: the single assembled output of a project."""

import enum
import uuid
from datetime import datetime
from typing import Any, Optional

from sqlalchemy import JSON, DateTime, ForeignKey, String, Text, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from reelforge.database import Base


class ReelStatus(str, enum.Enum):
    ASSEMBLING = "assembling"
    UPLOADING = "uploading"
    READY = "ready"
    FAILED = "failed"


class FinalReel(Base):
    """At most one per project; re-assembly updates the same row."""

    __tablename__ = "final_reels"
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
        unique=True,
    )
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=ReelStatus.ASSEMBLING.value
    )
    temp_video_url: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    video_url: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    video_storage_path: Mapped[Optional[str]] = mapped_column(String(1024), nullable=True)
    published_url: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    published_id: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    assembly_progress: Mapped[Optional[dict[str, Any]]] = mapped_column(JSON, nullable=True)
    error_message: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    approved_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime, server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, server_default=func.now(), onupdate=func.now()
    )

    project = relationship("Project", back_populates="final_reel")
