"""Pytest configuration and fixtures.

This module provides common fixtures used across all tests: a temporary
media root, a SQLite catalog, the archive ledger, and an in-memory fetch
tool that stands in for yt-dlp.
"""

import asyncio
import dataclasses
from collections.abc import AsyncGenerator, Callable
from datetime import date
from pathlib import Path

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncEngine

from newtube.core.database import close_db, create_engine, create_session_factory, init_db
from newtube.core.exceptions import StructuralFetchError
from newtube.core.locks import LocalKeyedLock
from newtube.core.logging import setup_logging
from newtube.models import AssetKind, VideoKind
from newtube.services.acquisition.catalog import Catalog
from newtube.services.acquisition.ledger import ArchiveLedger
from newtube.services.acquisition.orchestrator import AcquisitionOrchestrator
from newtube.services.fetcher.base import (
    AssetBlob,
    AssetDescriptor,
    AssetRequest,
    CommentData,
    FetchTool,
    NotAvailable,
    VideoMetadata,
)

# Setup logging for tests
setup_logging()

CHANNEL_URL = "https://www.youtube.com/@example"


class FakeFetchTool(FetchTool):
    """In-memory FetchTool writing small files into the media root.

    Failures are scripted per call: ``metadata_errors[id]`` is a queue of
    exceptions raised before the call succeeds, the other error maps raise
    on every call.
    """

    def __init__(self, media_root: Path) -> None:
        self.media_root = media_root
        self.channels: dict[tuple[str, VideoKind], list[str]] = {}
        self.videos: dict[str, VideoMetadata] = {}
        self.comments: dict[str, list[CommentData]] = {}
        self.metadata_errors: dict[str, list[Exception]] = {}
        self.list_errors: dict[tuple[str, VideoKind], Exception] = {}
        self.asset_errors: dict[tuple[str, AssetKind, str], Exception] = {}
        self.comment_errors: dict[str, Exception] = {}
        self.unavailable: set[tuple[str, AssetKind, str]] = set()
        self.metadata_delay = 0.0
        self.calls: list[tuple[str, str]] = []

    def add_video(
        self,
        video_id: str,
        kind: VideoKind = VideoKind.STANDARD,
        channel_url: str | None = CHANNEL_URL,
        formats: tuple[str, ...] = ("18",),
        subtitles: tuple[str, ...] = ("en",),
        thumbnail: bool = True,
        upload_date: date | None = None,
        listed: bool = True,
    ) -> VideoMetadata:
        assets = [
            AssetDescriptor(AssetRequest(AssetKind.VIDEO_FORMAT, f), label="360p", mime_type="video/mp4")
            for f in formats
        ]
        assets += [
            AssetDescriptor(AssetRequest(AssetKind.SUBTITLE_TRACK, lang), label=lang.upper())
            for lang in subtitles
        ]
        if thumbnail:
            assets.append(AssetDescriptor(AssetRequest(AssetKind.THUMBNAIL), mime_type="image/jpeg"))
        metadata = VideoMetadata(
            video_id=video_id,
            kind=kind,
            title=f"Video {video_id}",
            description=f"About {video_id}",
            upload_date=upload_date or date(2024, 1, 1),
            channel_url=channel_url,
            channel_name="Example",
            channel_id="UCexample",
            author="Example",
            duration=120,
            view_count=1000,
            like_count=10,
            tags=["test"],
            assets=assets,
        )
        self.videos[video_id] = metadata
        if listed and channel_url:
            self.channels.setdefault((channel_url, kind), []).append(video_id)
        return metadata

    def count(self, operation: str, target: str | None = None) -> int:
        return sum(
            1 for op, t in self.calls if op == operation and (target is None or t == target)
        )

    async def list_items(self, channel_url: str, kind: VideoKind) -> list[str]:
        self.calls.append(("list_items", channel_url))
        error = self.list_errors.get((channel_url, kind))
        if error is not None:
            raise error
        return list(self.channels.get((channel_url, kind), []))

    async def fetch_metadata(self, video_id: str, kind: VideoKind) -> VideoMetadata:
        self.calls.append(("fetch_metadata", video_id))
        if self.metadata_delay:
            await asyncio.sleep(self.metadata_delay)
        queued = self.metadata_errors.get(video_id)
        if queued:
            raise queued.pop(0)
        metadata = self.videos.get(video_id)
        if metadata is None:
            raise StructuralFetchError(
                "Video unavailable", item_id=video_id, operation="fetch_metadata"
            )
        return dataclasses.replace(metadata, assets=list(metadata.assets), tags=list(metadata.tags))

    async def fetch_asset(
        self, metadata: VideoMetadata, request: AssetRequest
    ) -> AssetBlob | NotAvailable:
        key = (metadata.video_id, request.kind, request.key)
        self.calls.append(("fetch_asset", f"{metadata.video_id}:{request.kind.value}:{request.key}"))
        error = self.asset_errors.get(key)
        if error is not None:
            raise error
        if key in self.unavailable:
            return NotAvailable(request, reason="not offered upstream")

        vid = metadata.video_id
        if request.kind == AssetKind.VIDEO_FORMAT:
            folder = "shorts" if metadata.kind == VideoKind.SHORT else "videos"
            location, mime = f"{folder}/{vid}/{vid}_{request.key}.mp4", "video/mp4"
        elif request.kind == AssetKind.SUBTITLE_TRACK:
            location, mime = f"subtitles/{vid}/{vid}.{request.key}.vtt", "text/vtt"
        elif request.kind == AssetKind.THUMBNAIL:
            location, mime = f"thumbnails/{vid}/{vid}.jpg", "image/jpeg"
        else:
            location, mime = f"videos/{vid}/{vid}.description", "text/plain"
        path = self.media_root / location
        path.parent.mkdir(parents=True, exist_ok=True)
        payload = f"{vid} {request.kind.value} {request.key}".encode()
        path.write_bytes(payload)
        return AssetBlob(request, location=location, size_bytes=len(payload), mime_type=mime)

    async def fetch_comments(self, video_id: str, kind: VideoKind, limit: int) -> list[CommentData]:
        self.calls.append(("fetch_comments", video_id))
        error = self.comment_errors.get(video_id)
        if error is not None:
            raise error
        return list(self.comments.get(video_id, []))[:limit]


@pytest.fixture
def media_root(tmp_path: Path) -> Path:
    """Empty media root."""
    root = tmp_path / "media"
    root.mkdir()
    return root


@pytest_asyncio.fixture
async def engine(media_root: Path) -> AsyncGenerator[AsyncEngine, None]:
    """SQLite catalog database with all tables created.

    Yields:
        Async engine bound to a temporary database file
    """
    db_engine = create_engine(f"sqlite+aiosqlite:///{media_root / 'metadata.db'}")
    await init_db(db_engine)
    yield db_engine
    await close_db(db_engine)


@pytest.fixture
def session_factory(engine: AsyncEngine):  # type: ignore[no-untyped-def]
    return create_session_factory(engine)


@pytest.fixture
def catalog(session_factory) -> Catalog:  # type: ignore[no-untyped-def]
    return Catalog(session_factory)


@pytest.fixture
def ledger(media_root: Path) -> ArchiveLedger:
    return ArchiveLedger(media_root / "download-archive.txt")


@pytest.fixture
def fetcher(media_root: Path) -> FakeFetchTool:
    return FakeFetchTool(media_root)


@pytest.fixture
def locks() -> LocalKeyedLock:
    return LocalKeyedLock()


@pytest.fixture
def orchestrator_factory(
    fetcher: FakeFetchTool,
    catalog: Catalog,
    ledger: ArchiveLedger,
    locks: LocalKeyedLock,
) -> Callable[..., AcquisitionOrchestrator]:
    """Build orchestrators over the shared fixtures with overridable settings."""

    def build(**overrides: object) -> AcquisitionOrchestrator:
        options: dict[str, object] = {
            "max_attempts": 3,
            "backoff_seconds": 0,
            "backoff_max_seconds": 0,
            "comment_limit": 50,
            "video_timeout_seconds": 10,
        }
        options.update(overrides)
        return AcquisitionOrchestrator(fetcher, catalog, ledger, locks, **options)  # type: ignore[arg-type]

    return build


@pytest.fixture
def orchestrator(orchestrator_factory) -> AcquisitionOrchestrator:  # type: ignore[no-untyped-def]
    return orchestrator_factory()


@pytest.fixture
def anyio_backend() -> str:
    """Specify backend for anyio.

    Returns:
        Backend name
    """
    return "asyncio"
