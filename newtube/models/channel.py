"""Channel ORM model.

Channels are never created on their own: a row appears the first time a
video belonging to it is written to the catalog.
"""

from datetime import datetime
from typing import TYPE_CHECKING

from sqlalchemy import DateTime, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from newtube.models.base import Base, TimestampMixin

if TYPE_CHECKING:
    from newtube.models.video import Video


class Channel(Base, TimestampMixin):
    """Creator channel, keyed by its canonical URL.

    Attributes:
        url: Canonical channel URL
        name: Display name
        external_id: Upstream channel id (UC...)
        last_swept_at: When the freshness sweep last finished this channel
        videos: Videos and shorts of this channel
    """

    __tablename__ = "channels"

    url: Mapped[str] = mapped_column(String(500), primary_key=True)
    name: Mapped[str | None] = mapped_column(String(300))
    external_id: Mapped[str | None] = mapped_column(String(100))
    last_swept_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))

    videos: Mapped[list["Video"]] = relationship("Video", back_populates="channel")

    def __repr__(self) -> str:
        """String representation."""
        return f"<Channel(url={self.url}, name={self.name})>"


__all__ = ["Channel"]
