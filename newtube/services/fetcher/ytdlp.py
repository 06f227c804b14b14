"""Fetch tool backed by the yt-dlp Python library.

yt-dlp is blocking, so every call runs on a small dedicated thread pool
with a timeout. A call that times out is told to stop through a progress
hook and is awaited before the error is raised, and a new call for the
same item never starts while an earlier one is still running. Download
errors are classified into transient (retry) and structural (give up)
failures from the error text.

Media layout under the media root:
    videos/<id>/<id>_<format>.<ext>
    shorts/<id>/<id>_<format>.<ext>
    videos/<id>/<id>.description
    subtitles/<id>/<id>.<lang>.vtt
    thumbnails/<id>/<id>.<ext>
"""

import asyncio
import re
import threading
from concurrent.futures import ThreadPoolExecutor
from datetime import UTC, date, datetime
from pathlib import Path
from typing import Any, Callable, TypeVar

import yt_dlp

from newtube.core.exceptions import FetchError, StructuralFetchError, TransientFetchError
from newtube.core.logging import get_logger
from newtube.models.asset import AssetKind
from newtube.models.video import VideoKind
from newtube.services.fetcher.base import (
    AssetBlob,
    AssetDescriptor,
    AssetRequest,
    CommentData,
    FetchTool,
    NotAvailable,
    VideoMetadata,
)

logger = get_logger(__name__)

T = TypeVar("T")

_FORMAT_UNAVAILABLE = "requested format is not available"

_STRUCTURAL_TOKENS = (
    _FORMAT_UNAVAILABLE,
    "http error 404",
    "http error 410",
    "private video",
    "video unavailable",
    "this video is not available",
    "has been removed",
    "been terminated",
    "members-only",
    "join this channel",
    "copyright",
    "does not exist",
    "sign in to confirm your age",
)

_UNSAFE_FORMAT_CHARS = re.compile(r"[^A-Za-z0-9_-]")

_MIME_BY_EXT = {
    "mp4": "video/mp4",
    "mkv": "video/x-matroska",
    "webm": "video/webm",
    "jpg": "image/jpeg",
    "jpeg": "image/jpeg",
    "png": "image/png",
    "webp": "image/webp",
    "vtt": "text/vtt",
}


def classify_fetch_error(message: str | None) -> type[FetchError]:
    """Pick the error class for a yt-dlp failure message.

    Args:
        message: Error text from yt-dlp

    Returns:
        StructuralFetchError for permanently unavailable items,
        TransientFetchError otherwise
    """
    if not message:
        return TransientFetchError
    lowered = message.lower()
    for token in _STRUCTURAL_TOKENS:
        if token in lowered:
            return StructuralFetchError
    return TransientFetchError


def cancel_hook(cancel: threading.Event) -> Callable[[dict[str, Any]], None]:
    """Progress hook that aborts a running download once ``cancel`` is set."""

    def hook(status: dict[str, Any]) -> None:
        if cancel.is_set():
            raise yt_dlp.utils.DownloadCancelled("cancelled after timeout")

    return hook


def video_url(video_id: str, kind: VideoKind) -> str:
    """Build the watch URL for a video or short."""
    if kind == VideoKind.SHORT:
        return f"https://www.youtube.com/shorts/{video_id}"
    return f"https://www.youtube.com/watch?v={video_id}"


def channel_list_url(channel_url: str, kind: VideoKind) -> str:
    """Append the uploads tab for ``kind`` to a channel URL.

    Query string and fragment are preserved, and a URL that already ends
    with the tab is left alone.

    Args:
        channel_url: Channel URL as given by the user or the catalog
        kind: Which tab to list

    Returns:
        URL of the channel's videos or shorts tab
    """
    base, _, fragment = channel_url.partition("#")
    base, _, query = base.partition("?")
    base = base.rstrip("/")
    suffix = "/shorts" if kind == VideoKind.SHORT else "/videos"
    if not base.endswith(suffix):
        base = f"{base}{suffix}"
    if query:
        base = f"{base}?{query}"
    if fragment:
        base = f"{base}#{fragment}"
    return base


def sanitize_format_id(format_id: str) -> str:
    """Make a format id safe for use in a file name."""
    return _UNSAFE_FORMAT_CHARS.sub("_", format_id)


def mime_from_extension(ext: str) -> str:
    """Guess a MIME type from a file extension."""
    return _MIME_BY_EXT.get(ext.lower(), f"video/{ext.lower()}")


def parse_upload_date(info: dict[str, Any]) -> date | None:
    """Read the upload date from yt-dlp's YYYYMMDD field or release timestamp."""
    raw = info.get("upload_date")
    if isinstance(raw, str) and len(raw) == 8 and raw.isdigit():
        try:
            return date(int(raw[:4]), int(raw[4:6]), int(raw[6:]))
        except ValueError:
            pass
    timestamp = info.get("release_timestamp") or info.get("timestamp")
    if isinstance(timestamp, int | float):
        return datetime.fromtimestamp(timestamp, tz=UTC).date()
    return None


def quality_label(fmt: dict[str, Any]) -> str | None:
    """Human-friendly label such as ``1080p HDR`` for a format entry."""
    if fmt.get("format_note"):
        return str(fmt["format_note"])
    parts = []
    if fmt.get("height"):
        parts.append(f"{fmt['height']}p")
    if fmt.get("dynamic_range"):
        parts.append(str(fmt["dynamic_range"]))
    return " ".join(parts) or None


def _is_muxed(fmt: dict[str, Any]) -> bool:
    vcodec = (fmt.get("vcodec") or "").lower()
    acodec = (fmt.get("acodec") or "").lower()
    return vcodec not in ("", "none") and acodec not in ("", "none")


def _collect_entries(info: dict[str, Any]) -> list[dict[str, Any]]:
    """Flatten nested playlist entries (channel tabs can nest one level)."""
    entries: list[dict[str, Any]] = []
    for entry in info.get("entries") or []:
        if not entry:
            continue
        if entry.get("_type") == "playlist" and entry.get("entries"):
            entries.extend(_collect_entries(entry))
        else:
            entries.append(entry)
    return entries


def _is_listed(entry: dict[str, Any], kind: VideoKind) -> bool:
    if entry.get("live_status") == "is_live":
        return False
    if kind == VideoKind.STANDARD:
        url = entry.get("url") or entry.get("original_url") or ""
        return "/shorts/" not in url
    return True


class YtDlpFetchTool(FetchTool):
    """FetchTool implementation using the yt-dlp library.

    Example:
        >>> tool = YtDlpFetchTool(media_root=Path("./media"), timeout_seconds=600)
        >>> ids = await tool.list_items("https://www.youtube.com/@chan", VideoKind.STANDARD)
        >>> meta = await tool.fetch_metadata(ids[0], VideoKind.STANDARD)
    """

    def __init__(
        self,
        media_root: Path,
        timeout_seconds: float = 600,
        cookies_file: Path | None = None,
        max_workers: int = 4,
        socket_timeout_seconds: float = 30,
        cancel_grace_seconds: float = 60,
    ) -> None:
        """Initialize YtDlpFetchTool.

        Args:
            media_root: Root directory for stored media
            timeout_seconds: Timeout for a single yt-dlp call
            cookies_file: Optional Netscape cookies file
            max_workers: yt-dlp calls running at the same time
            socket_timeout_seconds: yt-dlp network read timeout
            cancel_grace_seconds: How long a timed-out call is given to stop
        """
        self.media_root = media_root
        self.timeout_seconds = timeout_seconds
        self.cookies_file = cookies_file
        self.socket_timeout_seconds = socket_timeout_seconds
        self.cancel_grace_seconds = cancel_grace_seconds
        self._executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="yt-dlp")
        self._running: dict[str, asyncio.Future[Any]] = {}

    # ============================================
    # Helpers
    # ============================================

    def _base_opts(self) -> dict[str, Any]:
        opts: dict[str, Any] = {
            "quiet": True,
            "no_warnings": True,
            "noprogress": True,
            "noplaylist": True,
            "socket_timeout": self.socket_timeout_seconds,
        }
        if self.cookies_file and self.cookies_file.exists():
            opts["cookiefile"] = str(self.cookies_file)
        return opts

    def _extract_sync(self, url: str, opts: dict[str, Any]) -> dict[str, Any]:
        with yt_dlp.YoutubeDL(opts) as ydl:
            info = ydl.extract_info(url, download=False)
        return ydl.sanitize_info(info) if info else {}

    def _download_sync(self, url: str, opts: dict[str, Any]) -> None:
        with yt_dlp.YoutubeDL(opts) as ydl:
            ydl.download([url])

    def _forget(self, key: str, future: asyncio.Future[Any]) -> None:
        if self._running.get(key) is future:
            del self._running[key]
        if not future.cancelled():
            # Mark the outcome retrieved; callers that timed out never read it.
            future.exception()

    def running(self, key: str) -> bool:
        """Whether a yt-dlp call for ``key`` is still executing."""
        future = self._running.get(key)
        return future is not None and not future.done()

    async def _run(
        self,
        func: Callable[[str, dict[str, Any]], T],
        url: str,
        opts: dict[str, Any],
        *,
        item_id: str,
        operation: str,
        key: str | None = None,
    ) -> T:
        """Run a blocking yt-dlp call on the pool and classify failures.

        ``key`` names what the call writes (defaults to operation and item).
        Only one call per key runs at a time.

        Raises:
            TransientFetchError: On timeout or a retryable yt-dlp error
            StructuralFetchError: When the item is permanently unavailable
        """
        key = key or f"{operation}:{item_id}"
        previous = self._running.get(key)
        if previous is not None and not previous.done():
            await asyncio.wait([previous], timeout=self.timeout_seconds)
            if not previous.done():
                raise TransientFetchError(
                    "an earlier yt-dlp call for this item is still running",
                    item_id=item_id,
                    operation=operation,
                )

        cancel = threading.Event()
        opts = opts | {"progress_hooks": [*opts.get("progress_hooks", []), cancel_hook(cancel)]}
        loop = asyncio.get_running_loop()
        future = loop.run_in_executor(self._executor, func, url, opts)
        self._running[key] = future
        future.add_done_callback(lambda f: self._forget(key, f))

        try:
            return await asyncio.wait_for(asyncio.shield(future), timeout=self.timeout_seconds)
        except TimeoutError:
            cancel.set()
            await asyncio.wait([future], timeout=self.cancel_grace_seconds)
            if not future.done():
                logger.warning(
                    "yt-dlp call still running after cancel",
                    item_id=item_id,
                    operation=operation,
                    grace=self.cancel_grace_seconds,
                )
            raise TransientFetchError(
                f"yt-dlp timed out after {self.timeout_seconds}s",
                item_id=item_id,
                operation=operation,
            ) from None
        except asyncio.CancelledError:
            cancel.set()
            raise
        except yt_dlp.utils.DownloadError as e:
            error_cls = classify_fetch_error(str(e))
            raise error_cls(str(e), item_id=item_id, operation=operation) from e
        except OSError as e:
            raise TransientFetchError(
                f"I/O failure: {e}", item_id=item_id, operation=operation
            ) from e

    def _kind_dir(self, kind: VideoKind) -> Path:
        return self.media_root / ("shorts" if kind == VideoKind.SHORT else "videos")

    def _relative(self, path: Path) -> str:
        return path.relative_to(self.media_root).as_posix()

    @staticmethod
    def _find_output(directory: Path, stem: str) -> Path | None:
        if not directory.exists():
            return None
        for candidate in sorted(directory.glob(f"{stem}.*")):
            if candidate.is_file() and candidate.suffix not in (".part", ".ytdl", ".json"):
                return candidate
        return None

    def _blob(self, request: AssetRequest, path: Path) -> AssetBlob:
        return AssetBlob(
            request=request,
            location=self._relative(path),
            size_bytes=path.stat().st_size,
            mime_type=mime_from_extension(path.suffix.lstrip(".")),
        )

    # ============================================
    # FetchTool
    # ============================================

    async def list_items(self, channel_url: str, kind: VideoKind) -> list[str]:
        url = channel_list_url(channel_url, kind)
        opts = self._base_opts() | {
            "extract_flat": "in_playlist",
            "ignoreerrors": True,
            "noplaylist": False,
        }
        info = await self._run(
            self._extract_sync, url, opts, item_id=channel_url, operation="list_items"
        )
        ids = [
            str(entry["id"])
            for entry in _collect_entries(info)
            if entry.get("id") and _is_listed(entry, kind)
        ]
        logger.debug("Listed channel tab", channel_url=channel_url, kind=kind.value, count=len(ids))
        return ids

    async def fetch_metadata(self, video_id: str, kind: VideoKind) -> VideoMetadata:
        info = await self._run(
            self._extract_sync,
            video_url(video_id, kind),
            self._base_opts(),
            item_id=video_id,
            operation="fetch_metadata",
        )
        if not info:
            raise StructuralFetchError(
                "yt-dlp returned no metadata", item_id=video_id, operation="fetch_metadata"
            )
        return self._build_metadata(video_id, kind, info)

    def _build_metadata(self, video_id: str, kind: VideoKind, info: dict[str, Any]) -> VideoMetadata:
        assets: list[AssetDescriptor] = []
        seen_formats: set[str] = set()
        for fmt in info.get("formats") or []:
            format_id = fmt.get("format_id")
            if not format_id or format_id in seen_formats or not _is_muxed(fmt):
                continue
            seen_formats.add(format_id)
            assets.append(
                AssetDescriptor(
                    request=AssetRequest(AssetKind.VIDEO_FORMAT, str(format_id)),
                    label=quality_label(fmt),
                    mime_type=mime_from_extension(fmt.get("ext") or "mp4"),
                )
            )

        if info.get("thumbnail") or info.get("thumbnails"):
            assets.append(
                AssetDescriptor(request=AssetRequest(AssetKind.THUMBNAIL), mime_type="image/jpeg")
            )

        subtitle_names: dict[str, str | None] = {}
        for code, tracks in (info.get("subtitles") or {}).items():
            if code == "live_chat":
                continue
            subtitle_names[code] = tracks[0].get("name") if tracks else None
        language = info.get("language")
        auto = info.get("automatic_captions") or {}
        for code, tracks in auto.items():
            if code in subtitle_names:
                continue
            if code == language or code.endswith("-orig"):
                subtitle_names[code] = tracks[0].get("name") if tracks else None
        for code, name in sorted(subtitle_names.items()):
            assets.append(
                AssetDescriptor(
                    request=AssetRequest(AssetKind.SUBTITLE_TRACK, code),
                    label=name or code.upper(),
                    mime_type="text/vtt",
                )
            )

        assets.append(
            AssetDescriptor(request=AssetRequest(AssetKind.DESCRIPTION), mime_type="text/plain")
        )

        channel_name = info.get("channel") or info.get("uploader")
        return VideoMetadata(
            video_id=video_id,
            kind=kind,
            title=info.get("fulltitle") or info.get("title") or video_id,
            description=info.get("description") or "",
            upload_date=parse_upload_date(info),
            channel_url=info.get("channel_url") or info.get("uploader_url"),
            channel_name=channel_name,
            channel_id=info.get("channel_id"),
            author=info.get("uploader") or channel_name,
            duration=int(info["duration"]) if info.get("duration") else None,
            view_count=info.get("view_count"),
            like_count=info.get("like_count"),
            tags=list(info.get("tags") or []),
            thumbnail_url=info.get("thumbnail"),
            assets=assets,
            extras={
                "duration_string": info.get("duration_string"),
                "comment_count": info.get("comment_count"),
                "subscriber_count": info.get("channel_follower_count"),
                "dislike_count": info.get("dislike_count"),
                "categories": info.get("categories") or [],
            },
        )

    async def fetch_asset(
        self, metadata: VideoMetadata, request: AssetRequest
    ) -> AssetBlob | NotAvailable:
        if request.kind == AssetKind.VIDEO_FORMAT:
            return await self._fetch_format(metadata, request)
        if request.kind == AssetKind.SUBTITLE_TRACK:
            return await self._fetch_subtitle(metadata, request)
        if request.kind == AssetKind.THUMBNAIL:
            return await self._fetch_thumbnail(metadata, request)
        if request.kind == AssetKind.DESCRIPTION:
            return await self._write_description(metadata, request)
        return NotAvailable(request, reason=f"unsupported asset kind {request.kind}")

    async def _fetch_format(
        self, metadata: VideoMetadata, request: AssetRequest
    ) -> AssetBlob | NotAvailable:
        video_dir = self._kind_dir(metadata.kind) / metadata.video_id
        stem = f"{metadata.video_id}_{sanitize_format_id(request.key)}"
        existing = self._find_output(video_dir, stem)
        if existing is not None:
            return self._blob(request, existing)

        video_dir.mkdir(parents=True, exist_ok=True)
        opts = self._base_opts() | {
            "format": request.key,
            "outtmpl": str(video_dir / f"{stem}.%(ext)s"),
            "nooverwrites": True,
            "continuedl": True,
        }
        try:
            await self._run(
                self._download_sync,
                video_url(metadata.video_id, metadata.kind),
                opts,
                item_id=metadata.video_id,
                operation="fetch_asset",
                key=f"format:{metadata.video_id}:{request.key}",
            )
        except StructuralFetchError as e:
            if _FORMAT_UNAVAILABLE in str(e).lower():
                return NotAvailable(request, reason=_FORMAT_UNAVAILABLE)
            raise

        path = self._find_output(video_dir, stem)
        if path is None:
            return NotAvailable(request, reason="downloaded file not found")
        return self._blob(request, path)

    async def _fetch_subtitle(
        self, metadata: VideoMetadata, request: AssetRequest
    ) -> AssetBlob | NotAvailable:
        target_dir = self.media_root / "subtitles" / metadata.video_id
        target_dir.mkdir(parents=True, exist_ok=True)
        opts = self._base_opts() | {
            "skip_download": True,
            "writesubtitles": True,
            "writeautomaticsub": True,
            "subtitleslangs": [request.key],
            "subtitlesformat": "vtt",
            "outtmpl": str(target_dir / metadata.video_id),
        }
        await self._run(
            self._download_sync,
            video_url(metadata.video_id, metadata.kind),
            opts,
            item_id=metadata.video_id,
            operation="fetch_asset",
            key=f"subtitle:{metadata.video_id}:{request.key}",
        )
        path = target_dir / f"{metadata.video_id}.{request.key}.vtt"
        if not path.exists():
            return NotAvailable(request, reason="subtitle track not produced")
        return self._blob(request, path)

    async def _fetch_thumbnail(
        self, metadata: VideoMetadata, request: AssetRequest
    ) -> AssetBlob | NotAvailable:
        target_dir = self.media_root / "thumbnails" / metadata.video_id
        existing = self._find_output(target_dir, metadata.video_id)
        if existing is not None:
            return self._blob(request, existing)

        target_dir.mkdir(parents=True, exist_ok=True)
        opts = self._base_opts() | {
            "skip_download": True,
            "writethumbnail": True,
            "outtmpl": str(target_dir / metadata.video_id),
        }
        await self._run(
            self._download_sync,
            video_url(metadata.video_id, metadata.kind),
            opts,
            item_id=metadata.video_id,
            operation="fetch_asset",
            key=f"thumbnail:{metadata.video_id}",
        )
        path = self._find_output(target_dir, metadata.video_id)
        if path is None:
            return NotAvailable(request, reason="thumbnail not produced")
        return self._blob(request, path)

    async def _write_description(
        self, metadata: VideoMetadata, request: AssetRequest
    ) -> AssetBlob:
        path = self._kind_dir(metadata.kind) / metadata.video_id / f"{metadata.video_id}.description"

        def write() -> None:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(metadata.description, encoding="utf-8")

        try:
            await asyncio.get_running_loop().run_in_executor(None, write)
        except OSError as e:
            raise TransientFetchError(
                f"I/O failure: {e}", item_id=metadata.video_id, operation="fetch_asset"
            ) from e
        return AssetBlob(
            request=request,
            location=self._relative(path),
            size_bytes=path.stat().st_size,
            mime_type="text/plain",
        )

    async def fetch_comments(self, video_id: str, kind: VideoKind, limit: int) -> list[CommentData]:
        opts = self._base_opts() | {
            "skip_download": True,
            "getcomments": True,
            "extractor_args": {"youtube": {"max_comments": [str(limit)]}},
        }
        info = await self._run(
            self._extract_sync,
            video_url(video_id, kind),
            opts,
            item_id=video_id,
            operation="fetch_comments",
        )
        comments: list[CommentData] = []
        seen: set[str] = set()
        for raw in info.get("comments") or []:
            comment_id = raw.get("id")
            if not comment_id or comment_id in seen:
                continue
            seen.add(comment_id)
            parent = raw.get("parent")
            timestamp = raw.get("timestamp")
            comments.append(
                CommentData(
                    comment_id=str(comment_id),
                    parent_id=None if parent in (None, "root") else str(parent),
                    author=raw.get("author") or "",
                    text=raw.get("text") or "",
                    like_count=raw.get("like_count"),
                    posted_at=(
                        datetime.fromtimestamp(timestamp, tz=UTC)
                        if isinstance(timestamp, int | float)
                        else None
                    ),
                    liked_by_creator=bool(raw.get("is_favorited")),
                )
            )
            if len(comments) >= limit:
                break
        return comments


__all__ = [
    "YtDlpFetchTool",
    "channel_list_url",
    "classify_fetch_error",
    "video_url",
]
