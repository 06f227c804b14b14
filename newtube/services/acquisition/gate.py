"""On-demand acquisition gate.

Sits between the serving layer and the orchestrator. For a requested item
the gate either answers from the catalog, refuses (``not_found`` policy),
or acquires it (``prompt`` policy) with single-flight semantics: concurrent
requests for the same id share one acquisition and its outcome. Distinct
ids are acquired concurrently up to a ceiling.

Internal failures never reach the caller; they resolve to NotFound.
"""

import asyncio
from collections.abc import Callable
from dataclasses import dataclass

from newtube.core.config import MissingMediaBehaviorName
from newtube.core.logging import get_logger
from newtube.models import AssetKind, VideoKind
from newtube.services.acquisition.catalog import Catalog, VideoSnapshot
from newtube.services.acquisition.orchestrator import AcquisitionOrchestrator, ChannelContext

logger = get_logger(__name__)


@dataclass(frozen=True)
class Found:
    """The item is in the catalog with its media present.

    Attributes:
        video: Catalog snapshot
        locations: Locations of the present media formats
    """

    video: VideoSnapshot
    locations: tuple[str, ...]

    @property
    def video_id(self) -> str:
        return self.video.id


@dataclass(frozen=True)
class NotFound:
    """The item is absent and will not be served."""

    video_id: str


@dataclass(frozen=True)
class Pending:
    """An acquisition is in flight; retry later.

    Attributes:
        video_id: Requested id
        retry_after_seconds: Suggested wait before asking again
    """

    video_id: str
    retry_after_seconds: int


MediaResolution = Found | NotFound | Pending


def _found(video: VideoSnapshot | None) -> Found | None:
    if video is None:
        return None
    locations = tuple(
        a.location for a in video.present_assets(AssetKind.VIDEO_FORMAT) if a.location
    )
    if not locations:
        return None
    return Found(video=video, locations=locations)


class AcquisitionGate:
    """Single-flight, concurrency-bounded on-demand acquisition.

    Example:
        >>> gate = AcquisitionGate(catalog, orchestrator, policy=lambda: "prompt")
        >>> resolution = await gate.resolve("dQw4w9WgXcQ", VideoKind.STANDARD)
    """

    def __init__(
        self,
        catalog: Catalog,
        orchestrator: AcquisitionOrchestrator,
        policy: Callable[[], MissingMediaBehaviorName],
        *,
        max_concurrency: int = 2,
        acquisition_timeout_seconds: float = 1800.0,
        retry_after_seconds: int = 10,
    ) -> None:
        """Initialize AcquisitionGate.

        Args:
            catalog: Catalog for the fast path
            orchestrator: Orchestrator performing acquisitions
            policy: Returns the current missing-media behavior
            max_concurrency: Concurrent acquisitions across all ids
            acquisition_timeout_seconds: Timeout for one acquisition
            retry_after_seconds: Hint returned with Pending
        """
        self.catalog = catalog
        self.orchestrator = orchestrator
        self.policy = policy
        self.max_concurrency = max_concurrency
        self.acquisition_timeout_seconds = acquisition_timeout_seconds
        self.retry_after_seconds = retry_after_seconds
        self._semaphore = asyncio.Semaphore(max_concurrency)
        self._inflight: dict[str, asyncio.Task[Found | NotFound]] = {}

    def in_flight(self, video_id: str) -> bool:
        """Whether an acquisition for ``video_id`` is running."""
        return video_id in self._inflight

    @property
    def in_flight_count(self) -> int:
        return len(self._inflight)

    async def resolve(
        self,
        video_id: str,
        kind: VideoKind = VideoKind.STANDARD,
        wait_timeout: float | None = None,
    ) -> MediaResolution:
        """Resolve a requested item.

        Args:
            video_id: Requested id
            kind: standard or short
            wait_timeout: How long to wait for an acquisition; None waits
                for its outcome

        Returns:
            Found, NotFound or Pending (only when wait_timeout expires)
        """
        found = _found(await self.catalog.get_video(video_id))
        if found is not None:
            return found

        if self.policy() != "prompt":
            return NotFound(video_id)

        task = self.start(video_id, kind)
        try:
            if wait_timeout is None:
                return await asyncio.shield(task)
            return await asyncio.wait_for(asyncio.shield(task), timeout=wait_timeout)
        except TimeoutError:
            return Pending(video_id, retry_after_seconds=self.retry_after_seconds)

    def start(
        self, video_id: str, kind: VideoKind = VideoKind.STANDARD
    ) -> "asyncio.Task[Found | NotFound]":
        """Start an acquisition for ``video_id`` or join the one in flight.

        Returns:
            Task resolving to Found or NotFound
        """
        task = self._inflight.get(video_id)
        if task is None:
            task = asyncio.create_task(self._acquire(video_id, kind))
            self._inflight[video_id] = task
            task.add_done_callback(lambda t, vid=video_id: self._clear(vid, t))
            logger.info("On-demand acquisition started", video_id=video_id, kind=kind.value)
        return task

    def _clear(self, video_id: str, task: "asyncio.Task[Found | NotFound]") -> None:
        if self._inflight.get(video_id) is task:
            del self._inflight[video_id]

    async def _acquire(self, video_id: str, kind: VideoKind) -> Found | NotFound:
        async with self._semaphore:
            try:
                report = await asyncio.wait_for(
                    self.orchestrator.acquire_video(video_id, ChannelContext(kind=kind)),
                    timeout=self.acquisition_timeout_seconds,
                )
            except TimeoutError:
                logger.warning(
                    "On-demand acquisition timed out",
                    video_id=video_id,
                    timeout=self.acquisition_timeout_seconds,
                )
                return NotFound(video_id)
            except Exception as e:
                logger.error(
                    "On-demand acquisition failed", video_id=video_id, error=str(e), exc_info=True
                )
                return NotFound(video_id)

            if report.error:
                logger.info("On-demand acquisition failed", video_id=video_id, error=report.error)

            try:
                video = await self.catalog.get_video(video_id)
            except Exception as e:
                logger.error("Catalog lookup failed", video_id=video_id, error=str(e))
                return NotFound(video_id)
        return _found(video) or NotFound(video_id)


__all__ = [
    "AcquisitionGate",
    "Found",
    "MediaResolution",
    "NotFound",
    "Pending",
]
