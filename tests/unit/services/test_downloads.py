"""Tests for operator-triggered download jobs."""

import pytest

from newtube.core.exceptions import StructuralFetchError
from newtube.models import VideoKind
from newtube.services.acquisition.gate import AcquisitionGate
from newtube.services.downloads import DownloadJobManager, DownloadStatus

CHANNEL = "https://www.youtube.com/@example"


@pytest.fixture
def manager(catalog, orchestrator, fetcher) -> DownloadJobManager:
    # Manual downloads ignore the missing-media policy of the gate's resolve path.
    gate = AcquisitionGate(catalog, orchestrator, lambda: "not_found")
    return DownloadJobManager(catalog, gate, orchestrator, fetcher)


@pytest.mark.integration
class TestVideoJobs:
    """Tests for single-video jobs."""

    @pytest.mark.asyncio
    async def test_video_job_completes(self, manager, fetcher, catalog):
        fetcher.add_video("A")

        job = manager.start_video("A", VideoKind.STANDARD)
        assert job.id == "download-1"
        assert manager.get(job.id).status == DownloadStatus.QUEUED
        await manager.wait_all()

        finished = manager.get(job.id)
        assert finished.status == DownloadStatus.COMPLETED
        assert finished.progress == 100
        assert finished.finished_at is not None
        assert await catalog.get_video("A") is not None

    @pytest.mark.asyncio
    async def test_video_job_fails_for_unavailable_video(self, manager):
        job = manager.start_video("gone", VideoKind.STANDARD)
        await manager.wait_all()

        assert manager.get(job.id).status == DownloadStatus.FAILED

    @pytest.mark.asyncio
    async def test_unknown_job(self, manager):
        assert manager.get("download-99") is None

    @pytest.mark.asyncio
    async def test_job_ids_increase(self, manager, fetcher):
        fetcher.add_video("A")
        fetcher.add_video("B")

        first = manager.start_video("A", VideoKind.STANDARD)
        second = manager.start_video("B", VideoKind.STANDARD)
        await manager.wait_all()

        assert (first.id, second.id) == ("download-1", "download-2")


@pytest.mark.integration
class TestChannelJobs:
    """Tests for whole-channel jobs."""

    @pytest.mark.asyncio
    async def test_channel_job_acquires_every_upload(self, manager, fetcher, ledger):
        fetcher.add_video("A")
        fetcher.add_video("B")
        fetcher.add_video("S", kind=VideoKind.SHORT)

        job = manager.start_channel("A", VideoKind.STANDARD)
        await manager.wait_all()

        finished = manager.get(job.id)
        assert finished.status == DownloadStatus.COMPLETED
        assert "3 acquired" in finished.message
        assert ledger.ids() == frozenset({"A", "B", "S"})

    @pytest.mark.asyncio
    async def test_channel_resolved_from_catalog(self, manager, orchestrator, fetcher):
        fetcher.add_video("A")
        await orchestrator.acquire_video("A")
        fetcher.calls.clear()

        assert await manager.resolve_channel_url("A", VideoKind.STANDARD) == CHANNEL
        assert fetcher.count("fetch_metadata") == 0

    @pytest.mark.asyncio
    async def test_unresolvable_channel_fails(self, manager, fetcher):
        fetcher.add_video("A", channel_url=None)

        job = manager.start_channel("A", VideoKind.STANDARD)
        await manager.wait_all()

        assert manager.get(job.id).status == DownloadStatus.FAILED
        assert "channel could not be resolved" in manager.get(job.id).message

    @pytest.mark.asyncio
    async def test_fetch_error_fails_job(self, manager, fetcher):
        fetcher.metadata_errors["A"] = [StructuralFetchError("Private video")]

        job = manager.start_channel("A", VideoKind.STANDARD)
        await manager.wait_all()

        assert manager.get(job.id).message == "Failed: Private video"
