"""Library read service.

The serving layer's only way into the catalog. Reads go through the
read-through cache; a requested item that is absent (or has no playable
media) is handed to the acquisition gate, which applies the configured
missing-media behavior.
"""

from pathlib import Path

from pydantic import BaseModel, Field

from newtube.core.exceptions import MediaNotFoundError
from newtube.core.logging import get_logger
from newtube.models import AssetKind, VideoKind
from newtube.services.acquisition.cache import (
    ReadThroughCache,
    collection_key,
    comments_key,
    video_key,
)
from newtube.services.acquisition.catalog import (
    AssetSnapshot,
    Catalog,
    CommentSnapshot,
    VideoSnapshot,
)
from newtube.services.acquisition.gate import AcquisitionGate, Found, Pending

logger = get_logger(__name__)

BOOTSTRAP_KEY = collection_key("bootstrap")


class LibrarySnapshot(BaseModel):
    """Everything a client needs to render the library without follow-up calls.

    Attributes:
        videos: Standard videos, newest first
        shorts: Shorts, newest first
        comments: Comment trees keyed by video id
    """

    videos: list[VideoSnapshot] = Field(default_factory=list)
    shorts: list[VideoSnapshot] = Field(default_factory=list)
    comments: dict[str, list[CommentSnapshot]] = Field(default_factory=dict)


class LibraryService:
    """Cached catalog reads with on-demand acquisition on miss.

    Example:
        >>> library = LibraryService(catalog, cache, gate, media_root=Path("./media"))
        >>> videos = await library.list_videos(VideoKind.STANDARD)
        >>> video = await library.get_video("dQw4w9WgXcQ", VideoKind.STANDARD)
    """

    def __init__(
        self,
        catalog: Catalog,
        cache: ReadThroughCache,
        gate: AcquisitionGate,
        media_root: Path,
        wait_seconds: float | None = 5.0,
    ) -> None:
        """Initialize LibraryService.

        Args:
            catalog: Catalog
            cache: Read-through cache over the catalog
            gate: Acquisition gate used on miss
            media_root: Root directory of stored media
            wait_seconds: How long a request waits for an on-demand
                acquisition before it is answered with Pending
        """
        self.catalog = catalog
        self.cache = cache
        self.gate = gate
        self.media_root = media_root
        self.wait_seconds = wait_seconds

    async def _cached_video(self, video_id: str) -> VideoSnapshot | None:
        await self.catalog.sync_generation()
        return await self.cache.get(
            video_key(video_id), lambda: self.catalog.get_video(video_id), entities=[video_id]
        )

    async def list_videos(
        self,
        kind: VideoKind,
        limit: int | None = None,
        offset: int = 0,
    ) -> list[VideoSnapshot]:
        """List videos or shorts, newest first."""
        await self.catalog.sync_generation()
        return await self.cache.get(
            collection_key("videos", kind.value, limit, offset),
            lambda: self.catalog.list_videos(kind, limit=limit, offset=offset),
        )

    async def _load_snapshot(self) -> LibrarySnapshot:
        return LibrarySnapshot(
            videos=await self.catalog.list_videos(VideoKind.STANDARD),
            shorts=await self.catalog.list_videos(VideoKind.SHORT),
            comments=await self.catalog.list_comment_trees(),
        )

    async def bootstrap(self) -> LibrarySnapshot:
        """Whole library in one payload, served from the cache until the next write."""
        await self.catalog.sync_generation()
        return await self.cache.get(BOOTSTRAP_KEY, self._load_snapshot)

    async def get_video(
        self,
        video_id: str,
        kind: VideoKind,
        require_media: bool = False,
    ) -> VideoSnapshot | Pending:
        """Get one video, acquiring it on demand when absent.

        Args:
            video_id: Requested id
            kind: Expected kind (a short is not served as a video)
            require_media: Also treat a stored video without any playable
                format as missing

        Returns:
            VideoSnapshot, or Pending while an acquisition is running

        Raises:
            MediaNotFoundError: If the item is absent and will not be served
        """
        video = await self._cached_video(video_id)
        if video is not None and not (
            require_media and not video.present_assets(AssetKind.VIDEO_FORMAT)
        ):
            if video.kind != kind:
                raise MediaNotFoundError(video_id)
            return video

        logger.debug("Catalog miss, consulting gate", video_id=video_id, kind=kind.value)
        resolution = await self.gate.resolve(video_id, kind, wait_timeout=self.wait_seconds)
        if isinstance(resolution, Pending):
            return resolution
        if isinstance(resolution, Found):
            if resolution.video.kind != kind:
                raise MediaNotFoundError(video_id)
            return resolution.video
        if video is not None and not require_media:
            return video
        raise MediaNotFoundError(video_id)

    async def get_comments(self, video_id: str, kind: VideoKind) -> list[CommentSnapshot]:
        """Comment tree of a stored video.

        Raises:
            MediaNotFoundError: If the video is not in the catalog
        """
        video = await self._cached_video(video_id)
        if video is None or video.kind != kind:
            raise MediaNotFoundError(video_id)
        return await self.cache.get(
            comments_key(video_id), lambda: self.catalog.get_comments(video_id), entities=[video_id]
        )

    async def list_subtitles(self, video_id: str, kind: VideoKind) -> list[AssetSnapshot]:
        """Present subtitle tracks of a stored video.

        Raises:
            MediaNotFoundError: If the video is not in the catalog
        """
        video = await self._cached_video(video_id)
        if video is None or video.kind != kind:
            raise MediaNotFoundError(video_id)
        return video.present_assets(AssetKind.SUBTITLE_TRACK)

    def _file_path(
        self, video_id: str, asset: AssetSnapshot | None
    ) -> tuple[Path, AssetSnapshot]:
        if asset is None or not asset.present or not asset.location:
            raise MediaNotFoundError(video_id)
        root = self.media_root.resolve()
        path = (root / asset.location).resolve()
        if not path.is_relative_to(root) or not path.is_file():
            raise MediaNotFoundError(video_id, context={"location": asset.location})
        return path, asset

    async def asset_file(
        self, video_id: str, kind: VideoKind, asset_kind: AssetKind, key: str = ""
    ) -> tuple[Path, AssetSnapshot]:
        """Resolve a stored asset to a file on disk.

        Raises:
            MediaNotFoundError: If the video, the asset or its file is missing
        """
        video = await self._cached_video(video_id)
        if video is None or video.kind != kind:
            raise MediaNotFoundError(video_id)
        if asset_kind == AssetKind.THUMBNAIL and not key:
            candidates = video.present_assets(AssetKind.THUMBNAIL)
            asset = candidates[0] if candidates else None
        else:
            asset = video.find_asset(asset_kind, key)
        return self._file_path(video_id, asset)

    async def stream_file(
        self, video_id: str, kind: VideoKind, format_id: str
    ) -> tuple[Path, AssetSnapshot] | Pending:
        """Resolve a media format for streaming, acquiring the video on demand.

        Raises:
            MediaNotFoundError: If the format is not available
        """
        video = await self.get_video(video_id, kind, require_media=True)
        if isinstance(video, Pending):
            return video
        asset = video.find_asset(AssetKind.VIDEO_FORMAT, format_id)
        return self._file_path(video_id, asset)


__all__ = ["BOOTSTRAP_KEY", "LibraryService", "LibrarySnapshot"]
