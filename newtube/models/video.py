"""Video ORM model.

This module defines the Video model shared by regular uploads and shorts,
with acquisition status tracking.
"""

import enum
from datetime import date, datetime
from typing import TYPE_CHECKING, Any

from sqlalchemy import (
    JSON,
    BigInteger,
    Date,
    DateTime,
    Enum,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from newtube.models.base import Base, TimestampMixin

if TYPE_CHECKING:
    from newtube.models.asset import Asset
    from newtube.models.channel import Channel
    from newtube.models.comment import Comment


class VideoKind(str, enum.Enum):
    """Kind of upload."""

    STANDARD = "standard"
    SHORT = "short"


class AcquisitionStatus(str, enum.Enum):
    """How much of a video has been acquired."""

    PENDING = "pending"  # Known, nothing stored yet
    PARTIAL = "partial"  # Metadata stored, some assets missing
    COMPLETE = "complete"  # Metadata and every listed asset stored
    FAILED = "failed"  # Last attempt failed; eligible for retry


class Video(Base, TimestampMixin):
    """Acquired video or short.

    Attributes:
        id: Upstream video id
        kind: standard or short
        channel_url: Owning channel
        title: Video title
        description: Full description text
        upload_date: Upload date reported upstream
        duration: Duration in seconds
        view_count: View count at acquisition time
        like_count: Like count at acquisition time
        author: Uploader display name
        tags: Upstream tags
        thumbnail_url: Remote thumbnail URL
        status: Acquisition status
        failure_reason: Reason of the last failed attempt
        acquired_at: Last successful catalog write
        assets: Stored assets
        comments: Stored comments
    """

    __tablename__ = "videos"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    kind: Mapped[VideoKind] = mapped_column(
        Enum(VideoKind), nullable=False, default=VideoKind.STANDARD
    )
    channel_url: Mapped[str | None] = mapped_column(
        ForeignKey("channels.url", ondelete="SET NULL"), index=True
    )

    # Metadata
    title: Mapped[str] = mapped_column(String(500), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False, default="")
    upload_date: Mapped[date | None] = mapped_column(Date)
    duration: Mapped[int | None] = mapped_column(Integer)
    view_count: Mapped[int | None] = mapped_column(BigInteger)
    like_count: Mapped[int | None] = mapped_column(BigInteger)
    author: Mapped[str | None] = mapped_column(String(300))
    tags: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)
    thumbnail_url: Mapped[str | None] = mapped_column(String(1000))
    extras: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)

    # Acquisition
    status: Mapped[AcquisitionStatus] = mapped_column(
        Enum(AcquisitionStatus),
        nullable=False,
        default=AcquisitionStatus.PENDING,
        index=True,
    )
    failure_reason: Mapped[str | None] = mapped_column(Text)
    acquired_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))

    # Relationships
    channel: Mapped["Channel | None"] = relationship("Channel", back_populates="videos")
    assets: Mapped[list["Asset"]] = relationship(
        "Asset", back_populates="video", cascade="all, delete-orphan"
    )
    comments: Mapped[list["Comment"]] = relationship(
        "Comment", back_populates="video", cascade="all, delete-orphan"
    )

    __table_args__ = (
        Index("idx_video_channel_kind", "channel_url", "kind"),
        Index("idx_video_kind_upload_date", "kind", "upload_date"),
    )

    def __repr__(self) -> str:
        """String representation."""
        return f"<Video(id={self.id}, kind={self.kind}, status={self.status})>"


__all__ = [
    "AcquisitionStatus",
    "Video",
    "VideoKind",
]
