"""Initial catalog schema

Revision ID: 0001_initial_catalog
Revises:
Create Date: 2026-10-17 09:00:00.000000

"""

from collections.abc import Sequence

import sqlalchemy as sa

from alembic import op

# revision identifiers, used by Alembic.
revision: str = "0001_initial_catalog"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None

video_kind = sa.Enum("STANDARD", "SHORT", name="videokind")
acquisition_status = sa.Enum("PENDING", "PARTIAL", "COMPLETE", "FAILED", name="acquisitionstatus")
asset_kind = sa.Enum(
    "VIDEO_FORMAT", "THUMBNAIL", "SUBTITLE_TRACK", "DESCRIPTION", name="assetkind"
)


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column(
            "created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False
        ),
        sa.Column(
            "updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False
        ),
    ]


def upgrade() -> None:
    """Create channels, videos, assets, comments and catalog_state."""
    op.create_table(
        "channels",
        sa.Column("url", sa.String(length=500), nullable=False),
        sa.Column("name", sa.String(length=300), nullable=True),
        sa.Column("external_id", sa.String(length=100), nullable=True),
        sa.Column("last_swept_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint("url", name=op.f("pk_channels")),
    )

    op.create_table(
        "videos",
        sa.Column("id", sa.String(length=64), nullable=False),
        sa.Column("kind", video_kind, nullable=False),
        sa.Column("channel_url", sa.String(length=500), nullable=True),
        sa.Column("title", sa.String(length=500), nullable=False),
        sa.Column("description", sa.Text(), nullable=False),
        sa.Column("upload_date", sa.Date(), nullable=True),
        sa.Column("duration", sa.Integer(), nullable=True),
        sa.Column("view_count", sa.BigInteger(), nullable=True),
        sa.Column("like_count", sa.BigInteger(), nullable=True),
        sa.Column("author", sa.String(length=300), nullable=True),
        sa.Column("tags", sa.JSON(), nullable=False),
        sa.Column("thumbnail_url", sa.String(length=1000), nullable=True),
        sa.Column("extras", sa.JSON(), nullable=False),
        sa.Column("status", acquisition_status, nullable=False),
        sa.Column("failure_reason", sa.Text(), nullable=True),
        sa.Column("acquired_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(
            ["channel_url"],
            ["channels.url"],
            name=op.f("fk_videos_channel_url_channels"),
            ondelete="SET NULL",
        ),
        sa.PrimaryKeyConstraint("id", name=op.f("pk_videos")),
    )
    op.create_index(op.f("ix_videos_channel_url"), "videos", ["channel_url"])
    op.create_index(op.f("ix_videos_status"), "videos", ["status"])
    op.create_index("idx_video_channel_kind", "videos", ["channel_url", "kind"])
    op.create_index("idx_video_kind_upload_date", "videos", ["kind", "upload_date"])

    op.create_table(
        "assets",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("video_id", sa.String(length=64), nullable=False),
        sa.Column("kind", asset_kind, nullable=False),
        sa.Column("key", sa.String(length=100), nullable=False),
        sa.Column("location", sa.String(length=1000), nullable=True),
        sa.Column("present", sa.Boolean(), nullable=False),
        sa.Column("size_bytes", sa.BigInteger(), nullable=True),
        sa.Column("mime_type", sa.String(length=100), nullable=True),
        sa.Column("label", sa.String(length=200), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(
            ["video_id"],
            ["videos.id"],
            name=op.f("fk_assets_video_id_videos"),
            ondelete="CASCADE",
        ),
        sa.PrimaryKeyConstraint("id", name=op.f("pk_assets")),
        sa.UniqueConstraint("video_id", "kind", "key", name="uq_assets_video_kind_key"),
    )
    op.create_index(op.f("ix_assets_video_id"), "assets", ["video_id"])

    op.create_table(
        "comments",
        sa.Column("id", sa.String(length=200), nullable=False),
        sa.Column("video_id", sa.String(length=64), nullable=False),
        sa.Column("parent_id", sa.String(length=200), nullable=True),
        sa.Column("author", sa.String(length=300), nullable=False),
        sa.Column("text", sa.Text(), nullable=False),
        sa.Column("like_count", sa.BigInteger(), nullable=True),
        sa.Column("posted_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("liked_by_creator", sa.Boolean(), nullable=False),
        sa.Column("reply_count", sa.Integer(), nullable=False),
        sa.ForeignKeyConstraint(
            ["video_id"],
            ["videos.id"],
            name=op.f("fk_comments_video_id_videos"),
            ondelete="CASCADE",
        ),
        sa.PrimaryKeyConstraint("id", name=op.f("pk_comments")),
    )
    op.create_index(op.f("ix_comments_video_id"), "comments", ["video_id"])
    op.create_index(op.f("ix_comments_parent_id"), "comments", ["parent_id"])

    op.create_table(
        "catalog_state",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("generation", sa.BigInteger(), nullable=False),
        sa.PrimaryKeyConstraint("id", name=op.f("pk_catalog_state")),
    )
    op.execute("INSERT INTO catalog_state (id, generation) VALUES (1, 0)")


def downgrade() -> None:
    """Drop the catalog schema."""
    op.drop_table("catalog_state")
    op.drop_index(op.f("ix_comments_parent_id"), table_name="comments")
    op.drop_index(op.f("ix_comments_video_id"), table_name="comments")
    op.drop_table("comments")
    op.drop_index(op.f("ix_assets_video_id"), table_name="assets")
    op.drop_table("assets")
    op.drop_index("idx_video_kind_upload_date", table_name="videos")
    op.drop_index("idx_video_channel_kind", table_name="videos")
    op.drop_index(op.f("ix_videos_status"), table_name="videos")
    op.drop_index(op.f("ix_videos_channel_url"), table_name="videos")
    op.drop_table("videos")
    op.drop_table("channels")
    asset_kind.drop(op.get_bind(), checkfirst=True)
    acquisition_status.drop(op.get_bind(), checkfirst=True)
    video_kind.drop(op.get_bind(), checkfirst=True)
