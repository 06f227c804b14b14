"""Acquisition orchestrator.

The only writer of the catalog and the archive ledger. Drives the fetch
tool for whole channels and single videos:

1. List a channel's uploads and shorts (pure listing, nothing downloaded)
2. Skip ids already in the ledger
3. For every other id: fetch metadata, fetch each asset independently,
   fetch a bounded comment page, upsert the catalog in one transaction,
   then record the id in the ledger

Catalog upsert strictly precedes the ledger record: a crash between the
two leaves a catalog row without a ledger entry, which only causes a
harmless re-fetch on the next run.

Usage:
    orchestrator = AcquisitionOrchestrator(fetcher, catalog, ledger, locks)
    report = await orchestrator.acquire_channel("https://www.youtube.com/@chan")
"""

import asyncio
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass
from enum import Enum
from typing import Any, TypeVar

from pydantic import BaseModel
from tenacity import AsyncRetrying, retry_if_exception, stop_after_attempt, wait_exponential

from newtube.core.exceptions import (
    AcquisitionError,
    AcquisitionFailedError,
    CatalogWriteError,
    FetchError,
    LedgerError,
)
from newtube.core.locks import KeyedLock
from newtube.core.logging import get_logger, log_context
from newtube.models import AcquisitionStatus, VideoKind
from newtube.services.acquisition.catalog import Catalog
from newtube.services.acquisition.ledger import ArchiveLedger
from newtube.services.fetcher.base import (
    AssetBlob,
    AssetRequest,
    CommentData,
    FetchTool,
    NotAvailable,
    VideoMetadata,
)

logger = get_logger(__name__)

T = TypeVar("T")

ALL_KINDS: tuple[VideoKind, ...] = (VideoKind.STANDARD, VideoKind.SHORT)


@dataclass(frozen=True)
class ChannelContext:
    """Where a video acquisition comes from.

    Attributes:
        channel_url: Channel being acquired (None for single-video requests)
        kind: standard or short
    """

    channel_url: str | None = None
    kind: VideoKind = VideoKind.STANDARD


class VideoOutcome(str, Enum):
    """Result of one acquire_video call."""

    ACQUIRED = "acquired"
    SKIPPED = "skipped"
    FAILED = "failed"


class VideoAcquisitionReport(BaseModel):
    """Outcome of acquiring one video.

    Attributes:
        video_id: Video id
        outcome: acquired, skipped or failed
        status: Stored acquisition status (None when no row was written)
        fetched_assets: Assets stored in this run
        missing_assets: Assets that could not be fetched ("kind:key")
        comments: Comments returned by the fetch tool
        ledger_recorded: Whether the id is now in the archive ledger
        error: Failure reason
    """

    video_id: str
    outcome: VideoOutcome
    status: AcquisitionStatus | None = None
    fetched_assets: int = 0
    missing_assets: list[str] = []
    comments: int = 0
    ledger_recorded: bool = False
    error: str | None = None

    @property
    def partial(self) -> bool:
        """Metadata stored but some assets are missing."""
        return self.status == AcquisitionStatus.PARTIAL


class ChannelAcquisitionReport(BaseModel):
    """Outcome of acquiring a channel.

    Attributes:
        channel_url: Channel URL
        discovered: Distinct ids listed
        skipped: Ids already in the ledger
        acquired: Ids written to the catalog in this run
        failed: Ids whose acquisition failed
        partial: Acquired ids with missing assets
        failures: Failed id -> reason
        errors: Listing errors
        listing_failed: Every requested tab failed to list, so nothing was checked
    """

    channel_url: str
    discovered: int = 0
    skipped: int = 0
    acquired: int = 0
    failed: int = 0
    partial: int = 0
    failures: dict[str, str] = {}
    errors: list[str] = []
    listing_failed: bool = False

    @property
    def failed_ids(self) -> list[str]:
        """Ids that failed, in listing order."""
        return list(self.failures)


def _is_retryable(exc: BaseException) -> bool:
    return isinstance(exc, FetchError) and exc.retryable


def _asset_label(request: AssetRequest) -> str:
    return f"{request.kind.value}:{request.key}" if request.key else request.kind.value


class AcquisitionOrchestrator:
    """Drives the fetch tool and writes the catalog and the ledger.

    Acquisitions of the same video id are serialized through a keyed lock,
    whether they come from the freshness sweep, the on-demand gate or an
    operator.
    """

    def __init__(
        self,
        fetcher: FetchTool,
        catalog: Catalog,
        ledger: ArchiveLedger,
        locks: KeyedLock,
        *,
        max_attempts: int = 3,
        backoff_seconds: float = 2.0,
        backoff_max_seconds: float = 60.0,
        comment_limit: int = 200,
        video_timeout_seconds: float | None = 3600.0,
        record_partial: bool = True,
        lock_timeout_seconds: float | None = None,
    ) -> None:
        """Initialize AcquisitionOrchestrator.

        Args:
            fetcher: External fetch tool
            catalog: Media catalog
            ledger: Archive ledger
            locks: Per-id lock
            max_attempts: Attempts for transient fetch failures
            backoff_seconds: Exponential backoff multiplier
            backoff_max_seconds: Maximum wait between attempts
            comment_limit: Comments fetched per video (0 disables)
            video_timeout_seconds: Timeout for one video within a channel run
            record_partial: Record videos with missing assets in the ledger
            lock_timeout_seconds: How long to wait for the per-id lock
        """
        self.fetcher = fetcher
        self.catalog = catalog
        self.ledger = ledger
        self.locks = locks
        self.max_attempts = max_attempts
        self.backoff_seconds = backoff_seconds
        self.backoff_max_seconds = backoff_max_seconds
        self.comment_limit = comment_limit
        self.video_timeout_seconds = video_timeout_seconds
        self.record_partial = record_partial
        self.lock_timeout_seconds = lock_timeout_seconds

    async def _with_retry(
        self,
        func: Callable[..., Awaitable[T]],
        *args: Any,
        item_id: str,
    ) -> T:
        """Call the fetch tool, retrying transient failures with backoff.

        Raises:
            StructuralFetchError: Immediately, without retry
            AcquisitionFailedError: When transient failures exhausted the attempts
        """
        attempts = 0
        try:
            async for attempt in AsyncRetrying(
                retry=retry_if_exception(_is_retryable),
                stop=stop_after_attempt(self.max_attempts),
                wait=wait_exponential(
                    multiplier=self.backoff_seconds, max=self.backoff_max_seconds
                ),
                reraise=True,
            ):
                with attempt:
                    attempts = attempt.retry_state.attempt_number
                    if attempts > 1:
                        logger.info(
                            "Retrying fetch",
                            item_id=item_id,
                            operation=getattr(func, "__name__", str(func)),
                            attempt=attempts,
                        )
                    result = await func(*args)
        except FetchError as e:
            if not e.retryable:
                raise
            raise AcquisitionFailedError(
                f"Gave up after {attempts} attempts: {e}",
                video_id=item_id,
                attempts=attempts,
            ) from e
        return result

    # ============================================
    # Channel
    # ============================================

    async def _list_candidates(
        self,
        channel_url: str,
        kinds: Sequence[VideoKind],
        report: ChannelAcquisitionReport,
    ) -> list[tuple[str, VideoKind]]:
        candidates: list[tuple[str, VideoKind]] = []
        seen: set[str] = set()
        failed_kinds = 0
        for kind in kinds:
            try:
                ids = await self._with_retry(
                    self.fetcher.list_items, channel_url, kind, item_id=channel_url
                )
            except (FetchError, AcquisitionError) as e:
                logger.warning(
                    "Channel listing failed",
                    channel_url=channel_url,
                    kind=kind.value,
                    error=str(e),
                )
                report.errors.append(f"{kind.value}: {e}")
                failed_kinds += 1
                continue
            for video_id in ids:
                if video_id not in seen:
                    seen.add(video_id)
                    candidates.append((video_id, kind))
        report.listing_failed = bool(kinds) and failed_kinds == len(kinds)
        return candidates

    async def acquire_channel(
        self,
        channel_url: str,
        kinds: Sequence[VideoKind] = ALL_KINDS,
    ) -> ChannelAcquisitionReport:
        """Acquire every upload of a channel that is not in the ledger yet.

        A failure for one video is recorded in the report and the run
        continues.

        Args:
            channel_url: Canonical channel URL
            kinds: Tabs to list

        Returns:
            ChannelAcquisitionReport
        """
        report = ChannelAcquisitionReport(channel_url=channel_url)
        with log_context(channel_url=channel_url):
            logger.info("Acquiring channel", kinds=[k.value for k in kinds])

            candidates = await self._list_candidates(channel_url, kinds, report)
            report.discovered = len(candidates)

            for video_id, kind in candidates:
                if self.ledger.contains(video_id):
                    report.skipped += 1
                    continue

                try:
                    result = await asyncio.wait_for(
                        self.acquire_video(
                            video_id, ChannelContext(channel_url, kind), skip_recorded=True
                        ),
                        timeout=self.video_timeout_seconds,
                    )
                except TimeoutError:
                    logger.warning(
                        "Video acquisition timed out",
                        video_id=video_id,
                        channel_url=channel_url,
                        timeout=self.video_timeout_seconds,
                    )
                    result = VideoAcquisitionReport(
                        video_id=video_id,
                        outcome=VideoOutcome.FAILED,
                        error=f"timed out after {self.video_timeout_seconds}s",
                    )
                except Exception as e:
                    logger.error(
                        "Video acquisition crashed",
                        video_id=video_id,
                        channel_url=channel_url,
                        error=str(e),
                        exc_info=True,
                    )
                    result = VideoAcquisitionReport(
                        video_id=video_id, outcome=VideoOutcome.FAILED, error=str(e)
                    )

                if result.outcome == VideoOutcome.ACQUIRED:
                    report.acquired += 1
                    if result.partial:
                        report.partial += 1
                elif result.outcome == VideoOutcome.SKIPPED:
                    report.skipped += 1
                else:
                    report.failed += 1
                    report.failures[video_id] = result.error or "unknown error"

            logger.info(
                "Channel acquisition finished",
                discovered=report.discovered,
                skipped=report.skipped,
                acquired=report.acquired,
                failed=report.failed,
                partial=report.partial,
            )
            return report

    # ============================================
    # Video
    # ============================================

    async def acquire_video(
        self,
        video_id: str,
        context: ChannelContext | None = None,
        *,
        skip_recorded: bool = False,
    ) -> VideoAcquisitionReport:
        """Acquire one video under its per-id lock.

        Args:
            video_id: Video id
            context: Channel and kind of the video
            skip_recorded: Skip if the ledger already has the id once the
                lock is held (another run may have finished it meanwhile)

        Returns:
            VideoAcquisitionReport

        Raises:
            LockTimeoutError: If the per-id lock could not be obtained
        """
        context = context or ChannelContext()
        with log_context(video_id=video_id, channel_url=context.channel_url):
            async with self.locks.hold(video_id, timeout=self.lock_timeout_seconds):
                if skip_recorded and self.ledger.contains(video_id):
                    return VideoAcquisitionReport(
                        video_id=video_id, outcome=VideoOutcome.SKIPPED, ledger_recorded=True
                    )
                return await self._acquire_locked(video_id, context)

    async def _record_failure(self, video_id: str, reason: str) -> None:
        # A ledger entry implies a partial or complete row; leave those alone.
        if self.ledger.contains(video_id):
            return
        try:
            await self.catalog.mark_failed(video_id, reason)
        except CatalogWriteError as e:
            logger.warning("Could not mark video failed", video_id=video_id, error=str(e))

    async def _fetch_assets(
        self, metadata: VideoMetadata
    ) -> tuple[list[AssetBlob], list[AssetRequest]]:
        blobs: list[AssetBlob] = []
        missing: list[AssetRequest] = []
        for descriptor in metadata.assets:
            request = descriptor.request
            try:
                result = await self._with_retry(
                    self.fetcher.fetch_asset, metadata, request, item_id=metadata.video_id
                )
            except (FetchError, AcquisitionError) as e:
                logger.warning(
                    "Asset fetch failed",
                    video_id=metadata.video_id,
                    asset=_asset_label(request),
                    error=str(e),
                )
                missing.append(request)
                continue
            if isinstance(result, NotAvailable):
                logger.debug(
                    "Asset not available",
                    video_id=metadata.video_id,
                    asset=_asset_label(request),
                    reason=result.reason,
                )
                missing.append(request)
            else:
                blobs.append(result)
        return blobs, missing

    async def _fetch_comments(self, video_id: str, kind: VideoKind) -> list[CommentData] | None:
        if self.comment_limit <= 0:
            return []
        try:
            comments = await self._with_retry(
                self.fetcher.fetch_comments, video_id, kind, self.comment_limit, item_id=video_id
            )
        except (FetchError, AcquisitionError) as e:
            logger.warning("Comment fetch failed", video_id=video_id, error=str(e))
            return None
        return comments[: self.comment_limit]

    async def _acquire_locked(
        self, video_id: str, context: ChannelContext
    ) -> VideoAcquisitionReport:
        log = logger.bind(video_id=video_id, kind=context.kind.value)

        try:
            metadata = await self._with_retry(
                self.fetcher.fetch_metadata, video_id, context.kind, item_id=video_id
            )
        except (FetchError, AcquisitionError) as e:
            log.warning("Metadata fetch failed", error=str(e))
            await self._record_failure(video_id, str(e))
            return VideoAcquisitionReport(
                video_id=video_id, outcome=VideoOutcome.FAILED, error=str(e)
            )

        if metadata.channel_url is None and context.channel_url:
            metadata.channel_url = context.channel_url

        blobs, missing = await self._fetch_assets(metadata)
        comments = await self._fetch_comments(video_id, metadata.kind)

        complete = not missing and comments is not None
        target = AcquisitionStatus.COMPLETE if complete else AcquisitionStatus.PARTIAL

        try:
            snapshot = await self.catalog.upsert_video(
                metadata,
                blobs,
                [(r.kind, r.key) for r in missing],
                comments or [],
                target,
            )
        except CatalogWriteError as e:
            log.error("Catalog write failed", error=str(e))
            return VideoAcquisitionReport(
                video_id=video_id, outcome=VideoOutcome.FAILED, error=str(e)
            )

        recorded = self.ledger.contains(video_id)
        if not recorded and (
            snapshot.status == AcquisitionStatus.COMPLETE or self.record_partial
        ):
            try:
                await self.ledger.record(video_id)
                recorded = True
            except LedgerError as e:
                # Catalog is ahead of the ledger; the next run re-fetches.
                log.warning("Ledger write failed after catalog write", error=str(e))

        missing_labels = [_asset_label(r) for r in missing]
        if comments is None:
            missing_labels.append("comments")
        log.info(
            "Video acquired",
            status=snapshot.status.value,
            fetched_assets=len(blobs),
            missing_assets=len(missing_labels),
            ledger_recorded=recorded,
        )
        return VideoAcquisitionReport(
            video_id=video_id,
            outcome=VideoOutcome.ACQUIRED,
            status=snapshot.status,
            fetched_assets=len(blobs),
            missing_assets=missing_labels,
            comments=len(comments or []),
            ledger_recorded=recorded,
        )


__all__ = [
    "ALL_KINDS",
    "AcquisitionOrchestrator",
    "ChannelAcquisitionReport",
    "ChannelContext",
    "VideoAcquisitionReport",
    "VideoOutcome",
]
