"""Asset ORM model.

One downloadable artifact of a video: a media format, a thumbnail, a
subtitle track or the description file.
"""

import enum
from typing import TYPE_CHECKING

from sqlalchemy import BigInteger, Boolean, Enum, ForeignKey, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from newtube.models.base import Base, TimestampMixin

if TYPE_CHECKING:
    from newtube.models.video import Video


class AssetKind(str, enum.Enum):
    """Kind of stored artifact."""

    VIDEO_FORMAT = "video_format"
    THUMBNAIL = "thumbnail"
    SUBTITLE_TRACK = "subtitle_track"
    DESCRIPTION = "description"


class Asset(Base, TimestampMixin):
    """Stored (or known but missing) artifact of a video.

    Attributes:
        video_id: Owning video
        kind: Asset kind
        key: Distinguishes assets of the same kind (format id, language code)
        location: Path on disk, relative to the media root
        present: Whether the file was acquired
        size_bytes: File size
        mime_type: MIME type used when streaming
        label: Human readable label (quality, language name)
    """

    __tablename__ = "assets"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    video_id: Mapped[str] = mapped_column(
        ForeignKey("videos.id", ondelete="CASCADE"), nullable=False, index=True
    )
    kind: Mapped[AssetKind] = mapped_column(Enum(AssetKind), nullable=False)
    key: Mapped[str] = mapped_column(String(100), nullable=False, default="")
    location: Mapped[str | None] = mapped_column(String(1000))
    present: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    size_bytes: Mapped[int | None] = mapped_column(BigInteger)
    mime_type: Mapped[str | None] = mapped_column(String(100))
    label: Mapped[str | None] = mapped_column(String(200))

    video: Mapped["Video"] = relationship("Video", back_populates="assets")

    __table_args__ = (UniqueConstraint("video_id", "kind", "key", name="uq_assets_video_kind_key"),)

    def __repr__(self) -> str:
        """String representation."""
        return f"<Asset(video_id={self.video_id}, kind={self.kind}, key={self.key!r}, present={self.present})>"


__all__ = ["Asset", "AssetKind"]
