"""Fetch tool interface.

The orchestrator never talks to the network itself. It goes through a
FetchTool, which lists a channel's uploads, reads a video's metadata and
downloads individual assets. Every call is fallible and may be retried;
implementations raise TransientFetchError or StructuralFetchError.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any

from newtube.models.asset import AssetKind
from newtube.models.video import VideoKind


@dataclass(frozen=True)
class AssetRequest:
    """Identifies one asset to download.

    Attributes:
        kind: Asset kind
        key: Format id or language code ("" for single-instance kinds)
    """

    kind: AssetKind
    key: str = ""


@dataclass(frozen=True)
class AssetDescriptor:
    """An asset listed in a video's metadata.

    Attributes:
        request: What to ask the fetch tool for
        label: Display label (quality label, language name)
        mime_type: Expected MIME type
    """

    request: AssetRequest
    label: str | None = None
    mime_type: str | None = None


@dataclass
class VideoMetadata:
    """Metadata returned by fetch_metadata.

    Attributes:
        video_id: Upstream id
        kind: standard or short
        title: Title
        description: Description text
        upload_date: Upload date
        channel_url: Canonical channel URL
        channel_name: Channel display name
        channel_id: Upstream channel id
        author: Uploader name
        duration: Duration in seconds
        view_count: Views
        like_count: Likes
        tags: Tags
        thumbnail_url: Remote thumbnail URL
        assets: Assets available for download
        extras: Anything else worth keeping
    """

    video_id: str
    kind: VideoKind
    title: str
    description: str = ""
    upload_date: date | None = None
    channel_url: str | None = None
    channel_name: str | None = None
    channel_id: str | None = None
    author: str | None = None
    duration: int | None = None
    view_count: int | None = None
    like_count: int | None = None
    tags: list[str] = field(default_factory=list)
    thumbnail_url: str | None = None
    assets: list[AssetDescriptor] = field(default_factory=list)
    extras: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class AssetBlob:
    """A successfully stored asset.

    Attributes:
        request: The asset that was fetched
        location: Path relative to the media root
        size_bytes: Stored size
        mime_type: MIME type
    """

    request: AssetRequest
    location: str
    size_bytes: int | None = None
    mime_type: str | None = None


@dataclass(frozen=True)
class NotAvailable:
    """The fetch tool could not produce the asset.

    Attributes:
        request: The asset that was asked for
        reason: Why it is missing
    """

    request: AssetRequest
    reason: str = "not available"


@dataclass(frozen=True)
class CommentData:
    """A comment returned by fetch_comments.

    Attributes:
        comment_id: Upstream id
        parent_id: Parent comment id (None for top-level)
        author: Author name
        text: Body
        like_count: Likes
        posted_at: Post time
        liked_by_creator: Hearted by the channel owner
    """

    comment_id: str
    parent_id: str | None = None
    author: str = ""
    text: str = ""
    like_count: int | None = None
    posted_at: datetime | None = None
    liked_by_creator: bool = False


class FetchTool(ABC):
    """Capability interface to the external fetch tool."""

    @abstractmethod
    async def list_items(self, channel_url: str, kind: VideoKind) -> list[str]:
        """List the ids of a channel's uploads of one kind, without downloading.

        Args:
            channel_url: Canonical channel URL
            kind: Which tab to list

        Returns:
            Video ids, newest first
        """

    @abstractmethod
    async def fetch_metadata(self, video_id: str, kind: VideoKind) -> VideoMetadata:
        """Fetch a video's metadata and the list of available assets.

        Args:
            video_id: Upstream id
            kind: standard or short

        Returns:
            VideoMetadata
        """

    @abstractmethod
    async def fetch_asset(
        self, metadata: VideoMetadata, request: AssetRequest
    ) -> AssetBlob | NotAvailable:
        """Download one asset into the media root.

        Args:
            metadata: Metadata of the owning video
            request: Asset to download

        Returns:
            AssetBlob on success, NotAvailable when upstream has no such asset
        """

    @abstractmethod
    async def fetch_comments(self, video_id: str, kind: VideoKind, limit: int) -> list[CommentData]:
        """Fetch at most ``limit`` comments (top-level and replies).

        Args:
            video_id: Upstream id
            kind: standard or short
            limit: Maximum number of comments

        Returns:
            Comments in upstream order
        """


__all__ = [
    "AssetBlob",
    "AssetDescriptor",
    "AssetRequest",
    "CommentData",
    "FetchTool",
    "NotAvailable",
    "VideoMetadata",
]
