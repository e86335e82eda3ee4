"""Initial schema: projects, bible assets, variants, scenes, videos, shots, final reels

Revision ID: 0001
Revises: None
Create Date: 2026-10-17 09:00:00
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import mysql

# revision identifiers, used by Alembic.
revision: str = "0001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

_UTF8 = {"mysql_charset": "utf8mb4", "mysql_collate": "utf8mb4_unicode_ci"}
_PRECISE = sa.DateTime().with_variant(mysql.DATETIME(fsp=6), "mysql")


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.DateTime, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime, server_default=sa.func.now()),
    ]


def upgrade() -> None:
    op.create_table(
        "projects",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("title", sa.String(255), nullable=False),
        sa.Column("description", sa.Text, nullable=True),
        sa.Column("visual_style", sa.String(255), nullable=True),
        sa.Column("auto_mode", sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column("status", sa.String(50), nullable=False, server_default="parsing"),
        sa.Column("scene_order", sa.JSON, nullable=True),
        sa.Column("parse_job_id", sa.String(255), nullable=True),
        sa.Column("generation_task_id", sa.String(255), nullable=True),
        sa.Column("error_message", sa.Text, nullable=True),
        *_timestamps(),
        **_UTF8,
    )

    op.create_table(
        "bible_assets",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("project_id", sa.String(36), sa.ForeignKey("projects.id", ondelete="CASCADE"), nullable=False),
        sa.Column("asset_type", sa.String(20), nullable=False),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("visual_dna", sa.JSON, nullable=True),
        sa.Column("portrait_prompt", sa.Text, nullable=True),
        sa.Column("visual_description", sa.Text, nullable=True),
        sa.Column("raw_data", sa.JSON, nullable=True),
        sa.Column("image_status", sa.String(20), nullable=False, server_default="pending"),
        sa.Column("approved_image_url", sa.Text, nullable=True),
        sa.Column("approved_image_storage_path", sa.String(1024), nullable=True),
        sa.Column("selected_model", sa.String(100), nullable=True),
        sa.Column("shot_images", sa.JSON, nullable=True),
        sa.Column("error_message", sa.Text, nullable=True),
        sa.Column("approved_at", sa.DateTime, nullable=True),
        *_timestamps(),
        **_UTF8,
    )
    op.create_index("ix_bible_assets_project_id", "bible_assets", ["project_id"])
    op.create_index("ix_bible_assets_asset_type", "bible_assets", ["asset_type"])

    op.create_table(
        "scenes",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("project_id", sa.String(36), sa.ForeignKey("projects.id", ondelete="CASCADE"), nullable=False),
        sa.Column("scene_number", sa.Integer, nullable=False, server_default="0"),
        sa.Column("slugline", sa.String(512), nullable=False, server_default=""),
        sa.Column("production_data", sa.JSON, nullable=True),
        sa.Column("validation_status", sa.String(20), nullable=False, server_default="pending"),
        sa.Column("approved_at", sa.DateTime, nullable=True),
        sa.Column("approved_image_id", sa.String(36), nullable=True),
        sa.Column("approved_image_url", sa.Text, nullable=True),
        sa.Column("approved_image_at", sa.DateTime, nullable=True),
        *_timestamps(),
        **_UTF8,
    )
    op.create_index("ix_scenes_project_id", "scenes", ["project_id"])

    op.create_table(
        "image_variants",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("parent_type", sa.String(20), nullable=False),
        sa.Column("parent_id", sa.String(36), nullable=False),
        sa.Column("shot_type", sa.String(20), nullable=True),
        sa.Column("model", sa.String(100), nullable=False),
        sa.Column("prompt", sa.Text, nullable=True),
        sa.Column("status", sa.String(20), nullable=False, server_default="pending"),
        sa.Column("is_selected", sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column("generation_order", sa.Integer, nullable=False, server_default="0"),
        sa.Column("image_url", sa.Text, nullable=True),
        sa.Column("storage_path", sa.String(1024), nullable=True),
        sa.Column("job_id", sa.String(255), nullable=True),
        sa.Column("error_message", sa.Text, nullable=True),
        sa.Column(
            "parent_variant_id", sa.String(36),
            sa.ForeignKey("image_variants.id", ondelete="SET NULL"), nullable=True,
        ),
        sa.Column("injected_refs", sa.JSON, nullable=True),
        sa.Column("created_at", _PRECISE, nullable=True),
        sa.Column("updated_at", _PRECISE, nullable=True),
        **_UTF8,
    )
    op.create_index("ix_image_variants_parent", "image_variants", ["parent_type", "parent_id", "shot_type"])
    op.create_index("ix_image_variants_status", "image_variants", ["status"])

    op.create_table(
        "scene_videos",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("scene_id", sa.String(36), sa.ForeignKey("scenes.id", ondelete="CASCADE"), nullable=False),
        sa.Column("source_variant_id", sa.String(36), nullable=True),
        sa.Column("video_url", sa.Text, nullable=True),
        sa.Column("video_storage_path", sa.String(1024), nullable=True),
        sa.Column("duration_seconds", sa.Float, nullable=True),
        sa.Column("status", sa.String(20), nullable=False, server_default="generating"),
        sa.Column("job_id", sa.String(255), nullable=True),
        sa.Column("error_message", sa.Text, nullable=True),
        sa.Column("approved_at", sa.DateTime, nullable=True),
        *_timestamps(),
        **_UTF8,
    )
    op.create_index("ix_scene_videos_scene_id", "scene_videos", ["scene_id"])
    op.create_index("ix_scene_videos_status", "scene_videos", ["status"])

    op.create_table(
        "scene_shots",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("scene_id", sa.String(36), sa.ForeignKey("scenes.id", ondelete="CASCADE"), nullable=False),
        sa.Column("shot_number", sa.Integer, nullable=False, server_default="1"),
        sa.Column("duration_seconds", sa.Integer, nullable=False, server_default="8"),
        sa.Column("prompt", sa.Text, nullable=True),
        sa.Column("video_status", sa.String(20), nullable=False, server_default="pending"),
        sa.Column("video_url", sa.Text, nullable=True),
        sa.Column("video_storage_path", sa.String(1024), nullable=True),
        sa.Column("job_id", sa.String(255), nullable=True),
        sa.Column("error_message", sa.Text, nullable=True),
        *_timestamps(),
        **_UTF8,
    )
    op.create_index("ix_scene_shots_scene_id", "scene_shots", ["scene_id"])
    op.create_index("ix_scene_shots_video_status", "scene_shots", ["video_status"])

    op.create_table(
        "final_reels",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column(
            "project_id", sa.String(36),
            sa.ForeignKey("projects.id", ondelete="CASCADE"), nullable=False, unique=True,
        ),
        sa.Column("status", sa.String(20), nullable=False, server_default="assembling"),
        sa.Column("temp_video_url", sa.Text, nullable=True),
        sa.Column("video_url", sa.Text, nullable=True),
        sa.Column("video_storage_path", sa.String(1024), nullable=True),
        sa.Column("published_url", sa.Text, nullable=True),
        sa.Column("published_id", sa.String(255), nullable=True),
        sa.Column("assembly_progress", sa.JSON, nullable=True),
        sa.Column("error_message", sa.Text, nullable=True),
        sa.Column("approved_at", sa.DateTime, nullable=True),
        *_timestamps(),
        **_UTF8,
    )


def downgrade() -> None:
    op.drop_table("final_reels")

    op.drop_index("ix_scene_shots_video_status", table_name="scene_shots")
    op.drop_index("ix_scene_shots_scene_id", table_name="scene_shots")
    op.drop_table("scene_shots")

    op.drop_index("ix_scene_videos_status", table_name="scene_videos")
    op.drop_index("ix_scene_videos_scene_id", table_name="scene_videos")
    op.drop_table("scene_videos")

    op.drop_index("ix_image_variants_status", table_name="image_variants")
    op.drop_index("ix_image_variants_parent", table_name="image_variants")
    op.drop_table("image_variants")

    op.drop_index("ix_scenes_project_id", table_name="scenes")
    op.drop_table("scenes")

    op.drop_index("ix_bible_assets_asset_type", table_name="bible_assets")
    op.drop_index("ix_bible_assets_project_id", table_name="bible_assets")
    op.drop_table("bible_assets")

    op.drop_table("projects")
