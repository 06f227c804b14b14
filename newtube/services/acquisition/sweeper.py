"""Freshness sweeper.

Discovers every channel referenced by the catalog and re-runs channel
acquisition for each, one channel at a time. One failing or stuck channel
is reported and the sweep moves on.

``sweep_all`` does not prevent concurrent sweeps; ``sweep_exclusive``
holds the ``sweep`` key of the keyed lock and skips when another sweep
already holds it.
"""

import asyncio
from datetime import UTC, datetime

from pydantic import BaseModel

from newtube.core.exceptions import CatalogWriteError, LockTimeoutError
from newtube.core.locks import KeyedLock
from newtube.core.logging import get_logger
from newtube.services.acquisition.catalog import Catalog
from newtube.services.acquisition.orchestrator import (
    AcquisitionOrchestrator,
    ChannelAcquisitionReport,
)

logger = get_logger(__name__)

SWEEP_LOCK_KEY = "sweep"


class SweepReport(BaseModel):
    """Outcome of one sweep.

    Attributes:
        started_at: Sweep start
        finished_at: Sweep end
        channels: Distinct channels found in the catalog
        succeeded: Channels whose run completed
        failed: Channel URL -> reason for runs that crashed or timed out
        reports: Per-channel reports of completed runs
    """

    started_at: datetime
    finished_at: datetime | None = None
    channels: int = 0
    succeeded: int = 0
    failed: dict[str, str] = {}
    reports: list[ChannelAcquisitionReport] = []

    @property
    def acquired(self) -> int:
        """Videos acquired across all channels."""
        return sum(r.acquired for r in self.reports)


class FreshnessSweeper:
    """Re-acquires every known channel.

    Example:
        >>> sweeper = FreshnessSweeper(catalog, orchestrator, channel_timeout_seconds=3600)
        >>> report = await sweeper.sweep_all()
    """

    def __init__(
        self,
        catalog: Catalog,
        orchestrator: AcquisitionOrchestrator,
        channel_timeout_seconds: float | None = None,
    ) -> None:
        """Initialize FreshnessSweeper.

        Args:
            catalog: Catalog providing the channel list
            orchestrator: Orchestrator running channel acquisitions
            channel_timeout_seconds: Abandon a channel after this long
        """
        self.catalog = catalog
        self.orchestrator = orchestrator
        self.channel_timeout_seconds = channel_timeout_seconds

    async def sweep_all(self) -> SweepReport:
        """Run channel acquisition for every distinct channel in the catalog."""
        report = SweepReport(started_at=datetime.now(UTC))
        channel_urls = await self.catalog.distinct_channel_urls()
        report.channels = len(channel_urls)
        logger.info("Sweep started", channels=len(channel_urls))

        for channel_url in channel_urls:
            try:
                channel_report = await asyncio.wait_for(
                    self.orchestrator.acquire_channel(channel_url),
                    timeout=self.channel_timeout_seconds,
                )
            except TimeoutError:
                logger.warning(
                    "Channel abandoned after timeout",
                    channel_url=channel_url,
                    timeout=self.channel_timeout_seconds,
                )
                report.failed[channel_url] = f"timed out after {self.channel_timeout_seconds}s"
                continue
            except Exception as e:
                logger.error(
                    "Channel sweep failed", channel_url=channel_url, error=str(e), exc_info=True
                )
                report.failed[channel_url] = str(e)
                continue

            if channel_report.listing_failed:
                logger.warning(
                    "Channel could not be listed", channel_url=channel_url, errors=channel_report.errors
                )
                report.failed[channel_url] = "listing failed: " + "; ".join(channel_report.errors)
                continue

            report.succeeded += 1
            report.reports.append(channel_report)
            try:
                await self.catalog.mark_channel_swept(channel_url)
            except CatalogWriteError as e:
                logger.warning("Could not mark channel swept", channel_url=channel_url, error=str(e))

        report.finished_at = datetime.now(UTC)
        logger.info(
            "Sweep finished",
            channels=report.channels,
            succeeded=report.succeeded,
            failed=len(report.failed),
            acquired=report.acquired,
        )
        return report

    async def sweep_exclusive(
        self, locks: KeyedLock, wait_seconds: float | None = 1.0
    ) -> SweepReport | None:
        """Sweep while holding the sweep lock.

        Returns:
            SweepReport, or None when another sweep is already running
        """
        try:
            async with locks.hold(SWEEP_LOCK_KEY, timeout=wait_seconds):
                return await self.sweep_all()
        except LockTimeoutError:
            logger.info("Sweep already running, skipping")
            return None


__all__ = ["FreshnessSweeper", "SWEEP_LOCK_KEY", "SweepReport"]
