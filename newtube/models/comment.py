"""Comment ORM model.

Comments form a two-level tree: top-level comments and their replies.
Text is immutable once stored; only reply_count is maintained.
"""

from datetime import datetime
from typing import TYPE_CHECKING

from sqlalchemy import BigInteger, Boolean, DateTime, ForeignKey, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from newtube.models.base import Base

if TYPE_CHECKING:
    from newtube.models.video import Video


class Comment(Base):
    """Stored comment.

    Attributes:
        id: Upstream comment id
        video_id: Owning video
        parent_id: Top-level comment this replies to (None for top-level)
        author: Author display name
        text: Comment body
        like_count: Likes at acquisition time
        posted_at: When the comment was posted
        liked_by_creator: Whether the channel owner hearted it
        reply_count: Number of stored replies (top-level comments only)
    """

    __tablename__ = "comments"

    id: Mapped[str] = mapped_column(String(200), primary_key=True)
    video_id: Mapped[str] = mapped_column(
        ForeignKey("videos.id", ondelete="CASCADE"), nullable=False, index=True
    )
    parent_id: Mapped[str | None] = mapped_column(String(200), index=True)
    author: Mapped[str] = mapped_column(String(300), nullable=False, default="")
    text: Mapped[str] = mapped_column(Text, nullable=False, default="")
    like_count: Mapped[int | None] = mapped_column(BigInteger)
    posted_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    liked_by_creator: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    reply_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    video: Mapped["Video"] = relationship("Video", back_populates="comments")

    def __repr__(self) -> str:
        """String representation."""
        return f"<Comment(id={self.id}, video_id={self.video_id}, parent_id={self.parent_id})>"


__all__ = ["Comment"]
