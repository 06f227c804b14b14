"""Unit tests for the yt-dlp fetch tool.

yt-dlp itself is never invoked: the blocking extract/download calls are
replaced with canned info dicts.
"""

import threading
import time
from datetime import date
from unittest.mock import MagicMock

import pytest
import yt_dlp

from newtube.core.exceptions import (
    AcquisitionFailedError,
    StructuralFetchError,
    TransientFetchError,
)
from newtube.core.locks import LocalKeyedLock
from newtube.models import AssetKind, VideoKind
from newtube.services.acquisition.orchestrator import AcquisitionOrchestrator
from newtube.services.fetcher.base import AssetBlob, AssetRequest, NotAvailable
from newtube.services.fetcher.ytdlp import (
    YtDlpFetchTool,
    channel_list_url,
    classify_fetch_error,
    parse_upload_date,
    quality_label,
    sanitize_format_id,
    video_url,
)

VIDEO_INFO = {
    "id": "abc",
    "title": "A title",
    "description": "Words",
    "upload_date": "20240315",
    "channel": "Example",
    "channel_id": "UCexample",
    "channel_url": "https://www.youtube.com/channel/UCexample",
    "uploader": "Example",
    "duration": 212.0,
    "view_count": 1000,
    "like_count": 50,
    "tags": ["music"],
    "thumbnail": "https://i.ytimg.com/vi/abc/hq.jpg",
    "language": "en",
    "formats": [
        {"format_id": "18", "ext": "mp4", "vcodec": "avc1", "acodec": "mp4a", "height": 360},
        {"format_id": "137", "ext": "mp4", "vcodec": "avc1", "acodec": "none", "height": 1080},
        {"format_id": "140", "ext": "m4a", "vcodec": "none", "acodec": "mp4a"},
        {"format_id": "22", "ext": "mp4", "vcodec": "avc1", "acodec": "mp4a", "format_note": "720p"},
    ],
    "subtitles": {"de": [{"name": "German"}], "live_chat": [{}]},
    "automatic_captions": {"en": [{"name": "English (auto)"}], "fr": [{"name": "French"}]},
}


@pytest.fixture
def tool(tmp_path) -> YtDlpFetchTool:
    return YtDlpFetchTool(media_root=tmp_path, timeout_seconds=5)


class TestHelpers:
    """Tests for URL building and parsing helpers."""

    @pytest.mark.parametrize(
        ("message", "expected"),
        [
            ("ERROR: [youtube] abc: Private video. Sign in", StructuralFetchError),
            ("ERROR: [youtube] abc: Video unavailable", StructuralFetchError),
            ("HTTP Error 404: Not Found", StructuralFetchError),
            ("Unable to download webpage: HTTP Error 410: Gone", StructuralFetchError),
            ("ERROR: Postprocessing: ffmpeg not found. Please install", TransientFetchError),
            ("Unable to extract 404 page marker", TransientFetchError),
            ("HTTP Error 429: Too Many Requests", TransientFetchError),
            ("Read timed out", TransientFetchError),
            (None, TransientFetchError),
        ],
    )
    def test_classify_fetch_error(self, message, expected):
        assert classify_fetch_error(message) is expected

    def test_video_url(self):
        assert video_url("abc", VideoKind.STANDARD) == "https://www.youtube.com/watch?v=abc"
        assert video_url("abc", VideoKind.SHORT) == "https://www.youtube.com/shorts/abc"

    @pytest.mark.parametrize(
        ("url", "kind", "expected"),
        [
            ("https://www.youtube.com/@chan", VideoKind.STANDARD, "https://www.youtube.com/@chan/videos"),
            ("https://www.youtube.com/@chan/", VideoKind.SHORT, "https://www.youtube.com/@chan/shorts"),
            (
                "https://www.youtube.com/@chan/videos",
                VideoKind.STANDARD,
                "https://www.youtube.com/@chan/videos",
            ),
            (
                "https://www.youtube.com/@chan?hl=en#top",
                VideoKind.STANDARD,
                "https://www.youtube.com/@chan/videos?hl=en#top",
            ),
        ],
    )
    def test_channel_list_url(self, url, kind, expected):
        assert channel_list_url(url, kind) == expected

    def test_sanitize_format_id(self):
        assert sanitize_format_id("137+140") == "137_140"
        assert sanitize_format_id("hls-720p") == "hls-720p"

    def test_parse_upload_date(self):
        assert parse_upload_date({"upload_date": "20240315"}) == date(2024, 3, 15)
        assert parse_upload_date({"upload_date": "2024"}) is None
        assert parse_upload_date({"timestamp": 0}) == date(1970, 1, 1)
        assert parse_upload_date({}) is None

    def test_quality_label(self):
        assert quality_label({"format_note": "720p60"}) == "720p60"
        assert quality_label({"height": 1080, "dynamic_range": "HDR"}) == "1080p HDR"
        assert quality_label({}) is None


class TestBuildMetadata:
    """Tests for mapping an info dict to VideoMetadata."""

    def test_fields(self, tool):
        metadata = tool._build_metadata("abc", VideoKind.STANDARD, VIDEO_INFO)

        assert metadata.title == "A title"
        assert metadata.upload_date == date(2024, 3, 15)
        assert metadata.channel_url == "https://www.youtube.com/channel/UCexample"
        assert metadata.channel_name == "Example"
        assert metadata.duration == 212
        assert metadata.tags == ["music"]

    def test_assets(self, tool):
        metadata = tool._build_metadata("abc", VideoKind.STANDARD, VIDEO_INFO)
        requests = [d.request for d in metadata.assets]

        # Only muxed formats are offered
        formats = [r.key for r in requests if r.kind == AssetKind.VIDEO_FORMAT]
        assert formats == ["18", "22"]
        subtitles = [r.key for r in requests if r.kind == AssetKind.SUBTITLE_TRACK]
        assert subtitles == ["de", "en"]
        assert AssetRequest(AssetKind.THUMBNAIL) in requests
        assert AssetRequest(AssetKind.DESCRIPTION) in requests


class TestFetchTool:
    """Tests for FetchTool operations with yt-dlp stubbed out."""

    @pytest.mark.asyncio
    async def test_list_items(self, tool, monkeypatch):
        seen = {}

        def extract(url, opts):
            seen["url"] = url
            return {
                "entries": [
                    {"id": "a", "url": "https://www.youtube.com/watch?v=a"},
                    {"id": "live", "live_status": "is_live"},
                    {"_type": "playlist", "entries": [{"id": "b"}, None]},
                    {"id": "s", "url": "https://www.youtube.com/shorts/s"},
                    {},
                ]
            }

        monkeypatch.setattr(tool, "_extract_sync", extract)

        ids = await tool.list_items("https://www.youtube.com/@chan", VideoKind.STANDARD)

        assert ids == ["a", "b"]
        assert seen["url"] == "https://www.youtube.com/@chan/videos"

    @pytest.mark.asyncio
    async def test_download_error_is_classified(self, tool, monkeypatch):
        def extract(url, opts):
            raise yt_dlp.utils.DownloadError("ERROR: [youtube] abc: Private video")

        monkeypatch.setattr(tool, "_extract_sync", extract)

        with pytest.raises(StructuralFetchError) as exc_info:
            await tool.fetch_metadata("abc", VideoKind.STANDARD)

        assert exc_info.value.item_id == "abc"
        assert exc_info.value.operation == "fetch_metadata"

    @pytest.mark.asyncio
    async def test_io_error_is_transient(self, tool, monkeypatch):
        def extract(url, opts):
            raise ConnectionResetError("reset by peer")

        monkeypatch.setattr(tool, "_extract_sync", extract)

        with pytest.raises(TransientFetchError):
            await tool.list_items("https://www.youtube.com/@chan", VideoKind.SHORT)

    @pytest.mark.asyncio
    async def test_empty_metadata_is_structural(self, tool, monkeypatch):
        monkeypatch.setattr(tool, "_extract_sync", lambda url, opts: {})

        with pytest.raises(StructuralFetchError):
            await tool.fetch_metadata("abc", VideoKind.STANDARD)

    @pytest.mark.asyncio
    async def test_fetch_comments(self, tool, monkeypatch):
        info = {
            "comments": [
                {"id": "c1", "parent": "root", "author": "x", "text": "hi", "timestamp": 0},
                {"id": "r1", "parent": "c1", "text": "reply", "is_favorited": True},
                {"id": "c1", "parent": "root"},
                {"id": "c2", "parent": "root"},
            ]
        }
        monkeypatch.setattr(tool, "_extract_sync", lambda url, opts: info)

        comments = await tool.fetch_comments("abc", VideoKind.STANDARD, limit=2)

        assert [c.comment_id for c in comments] == ["c1", "r1"]
        assert comments[0].parent_id is None
        assert comments[0].posted_at is not None
        assert comments[1].parent_id == "c1"
        assert comments[1].liked_by_creator is True

    @pytest.mark.asyncio
    async def test_description_asset(self, tool, tmp_path):
        metadata = tool._build_metadata("abc", VideoKind.SHORT, VIDEO_INFO)

        blob = await tool.fetch_asset(metadata, AssetRequest(AssetKind.DESCRIPTION))

        assert isinstance(blob, AssetBlob)
        assert blob.location == "shorts/abc/abc.description"
        assert (tmp_path / blob.location).read_text() == "Words"

    @pytest.mark.asyncio
    async def test_existing_format_is_reused(self, tool, tmp_path, monkeypatch):
        target = tmp_path / "videos" / "abc" / "abc_18.mp4"
        target.parent.mkdir(parents=True)
        target.write_bytes(b"data")

        def download(url, opts):
            raise AssertionError("should not download again")

        monkeypatch.setattr(tool, "_download_sync", download)
        metadata = tool._build_metadata("abc", VideoKind.STANDARD, VIDEO_INFO)

        blob = await tool.fetch_asset(metadata, AssetRequest(AssetKind.VIDEO_FORMAT, "18"))

        assert blob.location == "videos/abc/abc_18.mp4"
        assert blob.size_bytes == 4
        assert blob.mime_type == "video/mp4"

    @pytest.mark.asyncio
    async def test_unavailable_format(self, tool, monkeypatch):
        def download(url, opts):
            raise yt_dlp.utils.DownloadError(
                "ERROR: [youtube] abc: Requested format is not available"
            )

        monkeypatch.setattr(tool, "_download_sync", download)
        metadata = tool._build_metadata("abc", VideoKind.STANDARD, VIDEO_INFO)

        result = await tool.fetch_asset(metadata, AssetRequest(AssetKind.VIDEO_FORMAT, "22"))

        assert isinstance(result, NotAvailable)


class TestTimeouts:
    """Tests for yt-dlp calls that outlive their timeout."""

    @pytest.fixture
    def slow_tool(self, tmp_path) -> YtDlpFetchTool:
        return YtDlpFetchTool(media_root=tmp_path, timeout_seconds=0.1, cancel_grace_seconds=2)

    def test_socket_timeout_is_set(self, tool):
        assert tool._base_opts()["socket_timeout"] == 30

    @pytest.mark.asyncio
    async def test_retries_never_overlap_a_timed_out_download(self, slow_tool, monkeypatch):
        guard = threading.Lock()
        state = {"calls": 0, "active": 0, "peak": 0}

        def download(url, opts):
            with guard:
                state["calls"] += 1
                state["active"] += 1
                state["peak"] = max(state["peak"], state["active"])
            try:
                time.sleep(0.3)
            finally:
                with guard:
                    state["active"] -= 1

        monkeypatch.setattr(slow_tool, "_download_sync", download)
        metadata = slow_tool._build_metadata("abc", VideoKind.STANDARD, VIDEO_INFO)
        orchestrator = AcquisitionOrchestrator(
            slow_tool,
            MagicMock(),
            MagicMock(),
            LocalKeyedLock(),
            max_attempts=3,
            backoff_seconds=0,
            backoff_max_seconds=0,
        )

        with pytest.raises(AcquisitionFailedError) as exc_info:
            await orchestrator._with_retry(
                slow_tool.fetch_asset,
                metadata,
                AssetRequest(AssetKind.VIDEO_FORMAT, "18"),
                item_id="abc",
            )

        assert exc_info.value.attempts == 3
        assert state == {"calls": 3, "active": 0, "peak": 1}

    @pytest.mark.asyncio
    async def test_timed_out_download_is_cancelled(self, slow_tool, monkeypatch):
        finished = threading.Event()

        def download(url, opts):
            try:
                deadline = time.monotonic() + 5
                while time.monotonic() < deadline:
                    for hook in opts["progress_hooks"]:
                        hook({"status": "downloading"})
                    time.sleep(0.01)
            finally:
                finished.set()

        monkeypatch.setattr(slow_tool, "_download_sync", download)
        metadata = slow_tool._build_metadata("abc", VideoKind.STANDARD, VIDEO_INFO)
        started = time.monotonic()

        with pytest.raises(TransientFetchError, match="timed out"):
            await slow_tool.fetch_asset(metadata, AssetRequest(AssetKind.VIDEO_FORMAT, "18"))

        assert finished.is_set()
        assert time.monotonic() - started < 2
        assert not slow_tool.running("format:abc:18")

    @pytest.mark.asyncio
    async def test_no_new_call_while_previous_still_runs(self, tmp_path, monkeypatch):
        tool = YtDlpFetchTool(media_root=tmp_path, timeout_seconds=0.1, cancel_grace_seconds=0.05)
        release = threading.Event()
        calls = []

        def download(url, opts):
            calls.append(url)
            release.wait(5)

        monkeypatch.setattr(tool, "_download_sync", download)
        metadata = tool._build_metadata("abc", VideoKind.STANDARD, VIDEO_INFO)
        request = AssetRequest(AssetKind.VIDEO_FORMAT, "18")

        try:
            with pytest.raises(TransientFetchError, match="timed out"):
                await tool.fetch_asset(metadata, request)
            assert tool.running("format:abc:18")

            with pytest.raises(TransientFetchError, match="still running"):
                await tool.fetch_asset(metadata, request)

            assert len(calls) == 1
        finally:
            release.set()

    @pytest.mark.asyncio
    async def test_other_formats_are_not_blocked(self, tmp_path, monkeypatch):
        tool = YtDlpFetchTool(media_root=tmp_path, timeout_seconds=0.1, cancel_grace_seconds=0.05)
        release = threading.Event()

        def download(url, opts):
            if "_18." in opts["outtmpl"]:
                release.wait(5)
                return
            target = opts["outtmpl"].replace("%(ext)s", "mp4")
            with open(target, "wb") as fh:
                fh.write(b"data")

        monkeypatch.setattr(tool, "_download_sync", download)
        metadata = tool._build_metadata("abc", VideoKind.STANDARD, VIDEO_INFO)

        try:
            with pytest.raises(TransientFetchError):
                await tool.fetch_asset(metadata, AssetRequest(AssetKind.VIDEO_FORMAT, "18"))

            blob = await tool.fetch_asset(metadata, AssetRequest(AssetKind.VIDEO_FORMAT, "22"))

            assert blob.location == "videos/abc/abc_22.mp4"
        finally:
            release.set()
