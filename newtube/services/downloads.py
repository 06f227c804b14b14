"""Operator-triggered download jobs.

Jobs are tracked in memory and run as background tasks in the API
process. A video job joins the gate's single-flight acquisition for that
id; a channel job resolves the owning channel from a video id and runs a
full channel acquisition.
"""

import asyncio
import itertools
from datetime import UTC, datetime
from enum import Enum

from pydantic import BaseModel

from newtube.core.exceptions import FetchError
from newtube.core.logging import get_logger
from newtube.models import VideoKind
from newtube.services.acquisition.catalog import Catalog
from newtube.services.acquisition.gate import AcquisitionGate, Found
from newtube.services.acquisition.orchestrator import AcquisitionOrchestrator
from newtube.services.fetcher.base import FetchTool

logger = get_logger(__name__)


class DownloadStatus(str, Enum):
    """Lifecycle of a download job."""

    QUEUED = "queued"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


class DownloadJob(BaseModel):
    """State of one download job.

    Attributes:
        id: Job id ("download-<n>")
        target: Video id the job was started for
        kind: standard or short
        channel: Whether the whole channel is acquired
        status: queued, running, completed or failed
        progress: 0 to 100
        message: Human readable status
        created_at: When the job was queued
        finished_at: When the job finished
    """

    id: str
    target: str
    kind: VideoKind
    channel: bool = False
    status: DownloadStatus = DownloadStatus.QUEUED
    progress: int = 0
    message: str = "Queued"
    created_at: datetime
    finished_at: datetime | None = None


class DownloadJobManager:
    """Starts and tracks manual download jobs.

    Example:
        >>> job = manager.start_video("dQw4w9WgXcQ", VideoKind.STANDARD)
        >>> manager.get(job.id).status
        <DownloadStatus.QUEUED: 'queued'>
    """

    def __init__(
        self,
        catalog: Catalog,
        gate: AcquisitionGate,
        orchestrator: AcquisitionOrchestrator,
        fetcher: FetchTool,
    ) -> None:
        self.catalog = catalog
        self.gate = gate
        self.orchestrator = orchestrator
        self.fetcher = fetcher
        self._jobs: dict[str, DownloadJob] = {}
        self._counter = itertools.count(1)
        self._tasks: set[asyncio.Task[None]] = set()

    def get(self, job_id: str) -> DownloadJob | None:
        """Look up a job."""
        return self._jobs.get(job_id)

    def _new_job(self, video_id: str, kind: VideoKind, channel: bool) -> DownloadJob:
        job = DownloadJob(
            id=f"download-{next(self._counter)}",
            target=video_id,
            kind=kind,
            channel=channel,
            created_at=datetime.now(UTC),
        )
        self._jobs[job.id] = job
        return job

    def _spawn(self, job: DownloadJob, runner: "asyncio.Task[None]") -> None:
        self._tasks.add(runner)
        runner.add_done_callback(self._tasks.discard)
        logger.info("Download job queued", job_id=job.id, target=job.target, channel=job.channel)

    def _update(
        self, job: DownloadJob, status: DownloadStatus, message: str, progress: int | None = None
    ) -> None:
        job.status = status
        job.message = message
        if progress is not None:
            job.progress = progress
        if status in (DownloadStatus.COMPLETED, DownloadStatus.FAILED):
            job.progress = 100
            job.finished_at = datetime.now(UTC)
            logger.info("Download job finished", job_id=job.id, status=status.value, message=message)

    def start_video(self, video_id: str, kind: VideoKind) -> DownloadJob:
        """Queue acquisition of one video."""
        job = self._new_job(video_id, kind, channel=False)
        self._spawn(job, asyncio.create_task(self._run_video(job)))
        return job

    def start_channel(self, video_id: str, kind: VideoKind) -> DownloadJob:
        """Queue acquisition of the channel that owns ``video_id``."""
        job = self._new_job(video_id, kind, channel=True)
        self._spawn(job, asyncio.create_task(self._run_channel(job)))
        return job

    async def _run_video(self, job: DownloadJob) -> None:
        self._update(job, DownloadStatus.RUNNING, "Running")
        try:
            result = await asyncio.shield(self.gate.start(job.target, job.kind))
        except Exception as e:
            logger.error("Download job crashed", job_id=job.id, error=str(e), exc_info=True)
            self._update(job, DownloadStatus.FAILED, f"Failed: {e}")
            return
        if isinstance(result, Found):
            self._update(job, DownloadStatus.COMPLETED, "Done")
        else:
            self._update(job, DownloadStatus.FAILED, "Failed: video could not be acquired")

    async def resolve_channel_url(self, video_id: str, kind: VideoKind) -> str | None:
        """Find the channel of a video, from the catalog or the fetch tool."""
        video = await self.catalog.get_video(video_id)
        if video is not None and video.channel_url:
            return video.channel_url
        metadata = await self.fetcher.fetch_metadata(video_id, kind)
        return metadata.channel_url

    async def _run_channel(self, job: DownloadJob) -> None:
        self._update(job, DownloadStatus.RUNNING, "Resolving channel")
        try:
            channel_url = await self.resolve_channel_url(job.target, job.kind)
        except FetchError as e:
            self._update(job, DownloadStatus.FAILED, f"Failed: {e}")
            return
        if not channel_url:
            self._update(job, DownloadStatus.FAILED, "Failed: channel could not be resolved")
            return

        self._update(job, DownloadStatus.RUNNING, f"Acquiring {channel_url}", progress=10)
        try:
            report = await self.orchestrator.acquire_channel(channel_url)
        except Exception as e:
            logger.error("Download job crashed", job_id=job.id, error=str(e), exc_info=True)
            self._update(job, DownloadStatus.FAILED, f"Failed: {e}")
            return
        self._update(
            job,
            DownloadStatus.COMPLETED,
            f"Done: {report.acquired} acquired, {report.skipped} skipped, {report.failed} failed",
        )

    async def wait_all(self) -> None:
        """Wait for every running job (used at shutdown and in tests)."""
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)


__all__ = ["DownloadJob", "DownloadJobManager", "DownloadStatus"]
