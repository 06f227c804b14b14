"""Acquisition Celery tasks.

This module defines Celery tasks for background acquisition:
- sweep_all_channels: Freshness sweep over every known channel (beat)
- acquire_channel: Manually triggered acquisition of one channel

Each task runs its coroutine with ``asyncio.run`` on a container of its
own, so engine pools and asyncio primitives never outlive their loop.
Worker containers always use the Redis keyed lock, so a worker run and an
API-triggered acquisition of the same item exclude each other.
"""

import asyncio
from datetime import UTC, datetime
from typing import Any

from celery import shared_task
from celery.utils.log import get_task_logger
from pydantic import BaseModel

from newtube.core.config import get_config
from newtube.core.container import ApplicationContainer, create_container
from newtube.core.database import close_db
from newtube.models import VideoKind
from newtube.services.acquisition.orchestrator import ALL_KINDS

logger = get_task_logger(__name__)


class SweepTaskResult(BaseModel):
    """Result of a sweep task.

    Attributes:
        started_at: Task start time
        completed_at: Task completion time
        skipped: Another sweep held the sweep lock
        channels: Channels found in the catalog
        succeeded: Channels whose run completed
        acquired: Videos acquired across all channels
        failed_channels: Channel URL -> reason
    """

    started_at: datetime
    completed_at: datetime | None = None
    skipped: bool = False
    channels: int = 0
    succeeded: int = 0
    acquired: int = 0
    failed_channels: dict[str, str] = {}


class ChannelTaskResult(BaseModel):
    """Result of a channel acquisition task.

    Attributes:
        channel_url: Channel URL
        discovered: Distinct ids listed
        skipped: Ids already recorded
        acquired: Ids acquired in this run
        failed: Ids that failed
        errors: Listing errors and per-video failure reasons
        started_at: Task start time
        completed_at: Task completion time
    """

    channel_url: str
    discovered: int = 0
    skipped: int = 0
    acquired: int = 0
    failed: int = 0
    errors: list[str] = []
    started_at: datetime
    completed_at: datetime | None = None


def worker_container() -> ApplicationContainer:
    """Fresh container for one task run, locking through Redis."""
    config = get_config()
    if config.lock_backend != "redis":
        config = config.model_copy(update={"lock_backend": "redis"})
    return create_container(config)


async def _shutdown(container: ApplicationContainer) -> None:
    await close_db(container.infrastructure.db_engine())
    if container.config().lock_backend == "redis":
        await container.infrastructure.redis_async_client().aclose()


async def _sweep_all_channels_async(container: ApplicationContainer) -> SweepTaskResult:
    started_at = datetime.now(tz=UTC)
    try:
        sweeper = container.services.sweeper()
        report = await sweeper.sweep_exclusive(container.infrastructure.keyed_lock())
    finally:
        await _shutdown(container)

    if report is None:
        return SweepTaskResult(
            started_at=started_at, completed_at=datetime.now(tz=UTC), skipped=True
        )
    return SweepTaskResult(
        started_at=started_at,
        completed_at=report.finished_at,
        channels=report.channels,
        succeeded=report.succeeded,
        acquired=report.acquired,
        failed_channels=report.failed,
    )


async def _acquire_channel_async(
    container: ApplicationContainer,
    channel_url: str,
    kinds: list[VideoKind],
) -> ChannelTaskResult:
    started_at = datetime.now(tz=UTC)
    try:
        report = await container.services.orchestrator().acquire_channel(channel_url, kinds)
    finally:
        await _shutdown(container)

    return ChannelTaskResult(
        channel_url=channel_url,
        discovered=report.discovered,
        skipped=report.skipped,
        acquired=report.acquired,
        failed=report.failed,
        errors=report.errors + [f"{vid}: {reason}" for vid, reason in report.failures.items()],
        started_at=started_at,
        completed_at=datetime.now(tz=UTC),
    )


# =============================================================================
# Celery Tasks
# =============================================================================


@shared_task(
    bind=True,
    name="newtube.workers.sweep.sweep_all_channels",
    max_retries=1,
    default_retry_delay=600,
)
def sweep_all_channels(self) -> dict[str, Any]:  # type: ignore[no-untyped-def]
    """Re-acquire every channel known to the catalog.

    Runs on the beat schedule. Concurrent sweeps are prevented by the
    keyed lock; a sweep that finds the lock held returns ``skipped``.

    Args:
        self: Celery task instance

    Returns:
        SweepTaskResult as dict
    """
    logger.info("Starting freshness sweep")

    try:
        result = asyncio.run(_sweep_all_channels_async(worker_container()))
    except Exception as exc:
        logger.error(f"Sweep task failed: {exc}", exc_info=True)
        raise self.retry(exc=exc) from exc

    if result.skipped:
        logger.info("Sweep skipped: another sweep is running")
    else:
        logger.info(
            f"Sweep finished: {result.succeeded}/{result.channels} channels, "
            f"{result.acquired} videos acquired, {len(result.failed_channels)} channels failed"
        )
    return result.model_dump(mode="json")


@shared_task(
    bind=True,
    name="newtube.workers.sweep.acquire_channel",
    max_retries=2,
    default_retry_delay=300,
)
def acquire_channel(  # type: ignore[no-untyped-def]
    self,
    channel_url: str,
    kinds: list[str] | None = None,
) -> dict[str, Any]:
    """Acquire every unrecorded upload of one channel.

    Args:
        self: Celery task instance
        channel_url: Canonical channel URL
        kinds: Kind values to list ("standard", "short"); both by default

    Returns:
        ChannelTaskResult as dict
    """
    logger.info(f"Acquiring channel: {channel_url}")
    selected = [VideoKind(k) for k in kinds] if kinds else list(ALL_KINDS)

    try:
        result = asyncio.run(_acquire_channel_async(worker_container(), channel_url, selected))
    except Exception as exc:
        logger.error(f"Channel acquisition task failed: {exc}", exc_info=True)
        raise self.retry(exc=exc) from exc

    logger.info(
        f"Channel {channel_url}: {result.acquired} acquired, "
        f"{result.skipped} skipped, {result.failed} failed"
    )
    return result.model_dump(mode="json")


__all__ = [
    "ChannelTaskResult",
    "SweepTaskResult",
    "acquire_channel",
    "sweep_all_channels",
    "worker_container",
]
