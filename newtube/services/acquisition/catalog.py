"""Media catalog.

Structured metadata store backing every query. A video is written
together with its assets and comments in one transaction; assets are
merged so a poorer re-fetch never erases files acquired earlier.

Every write bumps a generation counter. The counter exists twice:
in memory (global plus per entity, consulted by the read-through cache)
and persisted in ``catalog_state`` inside the write transaction, so a
process can detect writes made by another process and flush its cache.
"""

from collections.abc import Iterable, Sequence
from datetime import UTC, date, datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy import func, select, update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from newtube.core.exceptions import CatalogWriteError
from newtube.core.logging import get_logger
from newtube.core.state_machine import advance_acquisition_status, create_acquisition_state_machine
from newtube.core.types import InvalidationListener, SessionFactory
from newtube.models import (
    CATALOG_STATE_ID,
    AcquisitionStatus,
    Asset,
    AssetKind,
    CatalogState,
    Channel,
    Comment,
    Video,
    VideoKind,
)
from newtube.services.fetcher.base import AssetBlob, AssetDescriptor, CommentData, VideoMetadata

logger = get_logger(__name__)


# ============================================
# Snapshots
# ============================================


class AssetSnapshot(BaseModel):
    """Read-only view of an asset row."""

    model_config = ConfigDict(from_attributes=True, frozen=True)

    kind: AssetKind
    key: str = ""
    location: str | None = None
    present: bool = False
    size_bytes: int | None = None
    mime_type: str | None = None
    label: str | None = None


class VideoSnapshot(BaseModel):
    """Read-only view of a video and its assets."""

    model_config = ConfigDict(from_attributes=True, frozen=True)

    id: str
    kind: VideoKind
    channel_url: str | None = None
    title: str
    description: str = ""
    upload_date: date | None = None
    duration: int | None = None
    view_count: int | None = None
    like_count: int | None = None
    author: str | None = None
    tags: list[str] = Field(default_factory=list)
    thumbnail_url: str | None = None
    extras: dict[str, Any] = Field(default_factory=dict)
    status: AcquisitionStatus
    failure_reason: str | None = None
    acquired_at: datetime | None = None
    assets: list[AssetSnapshot] = Field(default_factory=list)

    def present_assets(self, kind: AssetKind) -> list[AssetSnapshot]:
        """Present assets of one kind."""
        return [a for a in self.assets if a.kind == kind and a.present]

    def find_asset(self, kind: AssetKind, key: str = "") -> AssetSnapshot | None:
        """Look up one asset by kind and key."""
        for asset in self.assets:
            if asset.kind == kind and asset.key == key:
                return asset
        return None


class CommentSnapshot(BaseModel):
    """Read-only view of a comment with its replies."""

    model_config = ConfigDict(from_attributes=True, frozen=True)

    id: str
    parent_id: str | None = None
    author: str = ""
    text: str = ""
    like_count: int | None = None
    posted_at: datetime | None = None
    liked_by_creator: bool = False
    reply_count: int = 0
    replies: list["CommentSnapshot"] = Field(default_factory=list)


CommentSnapshot.model_rebuild()


def _video_snapshot(video: Video) -> VideoSnapshot:
    return VideoSnapshot(
        id=video.id,
        kind=VideoKind(video.kind),
        channel_url=video.channel_url,
        title=video.title,
        description=video.description,
        upload_date=video.upload_date,
        duration=video.duration,
        view_count=video.view_count,
        like_count=video.like_count,
        author=video.author,
        tags=list(video.tags or []),
        thumbnail_url=video.thumbnail_url,
        extras=dict(video.extras or {}),
        status=AcquisitionStatus(video.status),
        failure_reason=video.failure_reason,
        acquired_at=video.acquired_at,
        assets=sorted(
            (AssetSnapshot.model_validate(a) for a in video.assets),
            key=lambda a: (a.kind.value, a.key),
        ),
    )


def _comment_tree(rows: Sequence[Comment]) -> list[CommentSnapshot]:
    """Build a two-level tree; replies whose parent is unknown are listed at top level."""
    ids = {row.id for row in rows}
    replies: dict[str, list[CommentSnapshot]] = {}
    for row in rows:
        if row.parent_id is not None and row.parent_id in ids:
            replies.setdefault(row.parent_id, []).append(CommentSnapshot.model_validate(row))

    tree: list[CommentSnapshot] = []
    for row in rows:
        if row.parent_id is not None and row.parent_id in ids:
            continue
        snapshot = CommentSnapshot.model_validate(row)
        tree.append(snapshot.model_copy(update={"replies": replies.get(row.id, [])}))
    return tree


def _root_of(comment_id: str, parents: dict[str, str | None]) -> str | None:
    """Follow parent links up to the top-level comment."""
    parent = parents.get(comment_id)
    seen = {comment_id}
    while parent is not None and parents.get(parent) is not None and parent not in seen:
        seen.add(parent)
        parent = parents[parent]
    return parent


# ============================================
# Catalog
# ============================================


class Catalog:
    """Catalog of channels, videos, assets and comments.

    The acquisition orchestrator is the only writer. Readers go through
    the read-through cache.

    Example:
        >>> catalog = Catalog(session_factory)
        >>> await catalog.upsert_video(metadata, blobs, missing, comments, status)
        >>> snapshot = await catalog.get_video("dQw4w9WgXcQ")
    """

    def __init__(self, session_factory: SessionFactory) -> None:
        """Initialize Catalog.

        Args:
            session_factory: Factory for async database sessions
        """
        self.session_factory = session_factory
        self._generation = 0
        self._entity_generation: dict[str, int] = {}
        # Entries stamped below this predate a write made by another process.
        self._floor = 0
        self._listeners: list[InvalidationListener] = []

    # ============================================
    # Generation tracking
    # ============================================

    @property
    def generation(self) -> int:
        """Current global generation."""
        return self._generation

    def entity_generation(self, entity_id: str) -> int:
        """Generation of the last write touching ``entity_id``."""
        return self._entity_generation.get(entity_id, 0)

    def is_current(self, stamp: int, entity_ids: Iterable[str] | None = None) -> bool:
        """Whether data read at generation ``stamp`` is still valid.

        Args:
            stamp: Generation observed before the read started
            entity_ids: Entities the data depends on; None for collection
                reads, which are stale after any write

        Returns:
            True if no relevant write happened since ``stamp``
        """
        if stamp < self._floor:
            return False
        if entity_ids is None:
            return stamp >= self._generation
        return all(self.entity_generation(e) <= stamp for e in entity_ids)

    def add_listener(self, listener: InvalidationListener) -> None:
        """Register a callback invoked after every committed write."""
        self._listeners.append(listener)

    def _notify(self, entity_id: str | None) -> None:
        for listener in self._listeners:
            listener(entity_id)

    def _adopt_external(self, persisted: int) -> None:
        self._generation = persisted
        self._floor = persisted
        self._entity_generation.clear()
        self._notify(None)

    def _after_write(self, persisted: int, entity_ids: Iterable[str]) -> None:
        if persisted > self._generation + 1:
            # Another process wrote since we last looked.
            self._adopt_external(persisted)
        else:
            self._generation = max(self._generation + 1, persisted)
        for entity_id in entity_ids:
            self._entity_generation[entity_id] = self._generation
            self._notify(entity_id)

    async def read_generation(self) -> int:
        """Read the persisted generation."""
        async with self.session_factory() as session:
            result = await session.execute(
                select(CatalogState.generation).where(CatalogState.id == CATALOG_STATE_ID)
            )
            return result.scalar_one_or_none() or 0

    async def sync_generation(self) -> bool:
        """Adopt the persisted generation if another process moved it ahead.

        Returns:
            True if the cache had to be flushed
        """
        persisted = await self.read_generation()
        if persisted <= self._generation:
            return False
        logger.debug(
            "Catalog changed by another process",
            local_generation=self._generation,
            persisted_generation=persisted,
        )
        self._adopt_external(persisted)
        return True

    @staticmethod
    async def _bump_generation(session: AsyncSession) -> int:
        result = await session.execute(
            update(CatalogState)
            .where(CatalogState.id == CATALOG_STATE_ID)
            .values(generation=CatalogState.generation + 1)
            .returning(CatalogState.generation)
            .execution_options(synchronize_session=False)
        )
        generation = result.scalar_one_or_none()
        if generation is None:
            session.add(CatalogState(id=CATALOG_STATE_ID, generation=1))
            await session.flush()
            generation = 1
        return generation

    # ============================================
    # Writes
    # ============================================

    @staticmethod
    async def _ensure_channel(session: AsyncSession, metadata: VideoMetadata) -> None:
        if not metadata.channel_url:
            return
        values = {
            "url": metadata.channel_url,
            "name": metadata.channel_name,
            "external_id": metadata.channel_id,
        }
        dialect = session.get_bind().dialect.name
        if dialect in ("sqlite", "postgresql"):
            insert = sqlite_insert if dialect == "sqlite" else pg_insert
            await session.execute(
                insert(Channel).values(**values).on_conflict_do_nothing(index_elements=["url"])
            )
        elif await session.get(Channel, metadata.channel_url) is None:
            session.add(Channel(**values))
            await session.flush()

        if metadata.channel_name or metadata.channel_id:
            changes = {k: v for k, v in values.items() if k != "url" and v}
            await session.execute(
                update(Channel)
                .where(Channel.url == metadata.channel_url)
                .values(**changes)
                .execution_options(synchronize_session=False)
            )

    @staticmethod
    def _merge_assets(
        video: Video,
        descriptors: dict[tuple[AssetKind, str], AssetDescriptor],
        blobs: Sequence[AssetBlob],
        missing: Iterable[tuple[AssetKind, str]],
    ) -> None:
        existing = {(AssetKind(a.kind), a.key): a for a in video.assets}

        for blob in blobs:
            key = (blob.request.kind, blob.request.key)
            descriptor = descriptors.get(key)
            row = existing.get(key)
            if row is None:
                row = Asset(kind=blob.request.kind, key=blob.request.key)
                video.assets.append(row)
                existing[key] = row
            row.location = blob.location
            row.present = True
            row.size_bytes = blob.size_bytes
            row.mime_type = blob.mime_type or (descriptor.mime_type if descriptor else None)
            if descriptor and descriptor.label:
                row.label = descriptor.label

        for key in missing:
            if key in existing:
                continue
            descriptor = descriptors.get(key)
            row = Asset(
                kind=key[0],
                key=key[1],
                present=False,
                mime_type=descriptor.mime_type if descriptor else None,
                label=descriptor.label if descriptor else None,
            )
            video.assets.append(row)
            existing[key] = row

    @staticmethod
    async def _merge_comments(
        session: AsyncSession, video_id: str, comments: Sequence[CommentData]
    ) -> int:
        rows = await session.execute(
            select(Comment.id, Comment.parent_id).where(Comment.video_id == video_id)
        )
        parents: dict[str, str | None] = {row.id: row.parent_id for row in rows}
        stored = set(parents)
        for comment in comments:
            parents.setdefault(comment.comment_id, comment.parent_id)

        added = 0
        for comment in comments:
            if comment.comment_id in stored:
                continue
            stored.add(comment.comment_id)
            parent_id = None
            if comment.parent_id is not None:
                parent_id = _root_of(comment.comment_id, parents)
            session.add(
                Comment(
                    id=comment.comment_id,
                    video_id=video_id,
                    parent_id=parent_id,
                    author=comment.author,
                    text=comment.text,
                    like_count=comment.like_count,
                    posted_at=comment.posted_at,
                    liked_by_creator=comment.liked_by_creator,
                )
            )
            added += 1

        if added:
            await session.flush()
            counts_result = await session.execute(
                select(Comment.parent_id, func.count())
                .where(Comment.video_id == video_id, Comment.parent_id.is_not(None))
                .group_by(Comment.parent_id)
            )
            counts = dict(counts_result.tuples().all())
            top_level = await session.scalars(
                select(Comment).where(Comment.video_id == video_id, Comment.parent_id.is_(None))
            )
            for row in top_level:
                row.reply_count = counts.get(row.id, 0)
        return added

    async def upsert_video(
        self,
        metadata: VideoMetadata,
        blobs: Sequence[AssetBlob],
        missing: Iterable[tuple[AssetKind, str]],
        comments: Sequence[CommentData],
        status: AcquisitionStatus,
    ) -> VideoSnapshot:
        """Write a video with its assets and comments as one transaction.

        Existing assets are merged, never removed: a present asset stays
        present even if this fetch could not produce it. Existing comments
        are left unchanged; only reply counts are recomputed. The stored
        status never moves backwards.

        Args:
            metadata: Fetched metadata
            blobs: Assets fetched in this run
            missing: (kind, key) of listed assets that could not be fetched
            comments: Fetched comments
            status: Status computed from this run

        Returns:
            Snapshot of the stored video

        Raises:
            CatalogWriteError: If the transaction failed (nothing is written)
        """
        descriptors = {(d.request.kind, d.request.key): d for d in metadata.assets}
        try:
            async with self.session_factory() as session, session.begin():
                await self._ensure_channel(session, metadata)

                result = await session.execute(
                    select(Video)
                    .where(Video.id == metadata.video_id)
                    .options(selectinload(Video.assets))
                )
                video = result.scalar_one_or_none()
                if video is None:
                    video = Video(id=metadata.video_id, status=AcquisitionStatus.PENDING, assets=[])
                    session.add(video)

                video.kind = metadata.kind
                video.channel_url = metadata.channel_url or video.channel_url
                video.title = metadata.title
                video.description = metadata.description
                video.upload_date = metadata.upload_date
                video.duration = metadata.duration
                video.view_count = metadata.view_count
                video.like_count = metadata.like_count
                video.author = metadata.author
                video.tags = list(metadata.tags)
                video.thumbnail_url = metadata.thumbnail_url
                video.extras = dict(metadata.extras)
                video.status = advance_acquisition_status(video.status, status)
                video.failure_reason = None
                video.acquired_at = datetime.now(UTC)

                self._merge_assets(video, descriptors, blobs, missing)
                await session.flush()
                added_comments = await self._merge_comments(session, metadata.video_id, comments)

                persisted = await self._bump_generation(session)
                snapshot = _video_snapshot(video)
        except SQLAlchemyError as e:
            raise CatalogWriteError(
                f"Catalog write failed for {metadata.video_id}: {e}", video_id=metadata.video_id
            ) from e

        touched = [metadata.video_id]
        if metadata.channel_url:
            touched.append(metadata.channel_url)
        self._after_write(persisted, touched)
        logger.debug(
            "Catalog upserted video",
            video_id=metadata.video_id,
            status=snapshot.status.value,
            assets=len(snapshot.assets),
            new_comments=added_comments,
            generation=self._generation,
        )
        return snapshot

    async def mark_failed(self, video_id: str, reason: str) -> bool:
        """Mark an existing video as failed.

        Does nothing when the row does not exist or has completed.

        Returns:
            True if the row was updated

        Raises:
            CatalogWriteError: If the transaction failed
        """
        try:
            async with self.session_factory() as session, session.begin():
                video = await session.get(Video, video_id)
                if video is None:
                    return False
                sm = create_acquisition_state_machine(video.status)
                if not sm.can_transition(AcquisitionStatus.FAILED):
                    return False
                video.status = sm.transition_to(AcquisitionStatus.FAILED)
                video.failure_reason = reason
                persisted = await self._bump_generation(session)
        except SQLAlchemyError as e:
            raise CatalogWriteError(
                f"Could not mark {video_id} failed: {e}", video_id=video_id
            ) from e

        self._after_write(persisted, [video_id])
        return True

    async def mark_channel_swept(self, channel_url: str) -> None:
        """Record that the freshness sweep finished a channel.

        Raises:
            CatalogWriteError: If the transaction failed
        """
        try:
            async with self.session_factory() as session, session.begin():
                await session.execute(
                    update(Channel)
                    .where(Channel.url == channel_url)
                    .values(last_swept_at=datetime.now(UTC))
                    .execution_options(synchronize_session=False)
                )
                persisted = await self._bump_generation(session)
        except SQLAlchemyError as e:
            raise CatalogWriteError(f"Could not update channel {channel_url}: {e}") from e
        self._after_write(persisted, [channel_url])

    # ============================================
    # Reads
    # ============================================

    async def get_video(self, video_id: str) -> VideoSnapshot | None:
        """Point lookup by id."""
        async with self.session_factory() as session:
            result = await session.execute(
                select(Video).where(Video.id == video_id).options(selectinload(Video.assets))
            )
            video = result.scalar_one_or_none()
            return _video_snapshot(video) if video else None

    async def list_videos(
        self,
        kind: VideoKind | None = None,
        limit: int | None = None,
        offset: int = 0,
    ) -> list[VideoSnapshot]:
        """List videos newest first, optionally filtered by kind."""
        stmt = select(Video).options(selectinload(Video.assets))
        if kind is not None:
            stmt = stmt.where(Video.kind == kind)
        stmt = stmt.order_by(Video.upload_date.desc().nulls_last(), Video.id).offset(offset)
        if limit is not None:
            stmt = stmt.limit(limit)
        async with self.session_factory() as session:
            result = await session.scalars(stmt)
            return [_video_snapshot(v) for v in result]

    async def list_channel_videos(
        self, channel_url: str, kind: VideoKind | None = None
    ) -> list[VideoSnapshot]:
        """All videos of one channel, newest first."""
        stmt = (
            select(Video)
            .where(Video.channel_url == channel_url)
            .options(selectinload(Video.assets))
            .order_by(Video.upload_date.desc().nulls_last(), Video.id)
        )
        if kind is not None:
            stmt = stmt.where(Video.kind == kind)
        async with self.session_factory() as session:
            result = await session.scalars(stmt)
            return [_video_snapshot(v) for v in result]

    async def distinct_channel_urls(self) -> list[str]:
        """Distinct channel references across all videos."""
        stmt = (
            select(Video.channel_url)
            .where(Video.channel_url.is_not(None))
            .distinct()
            .order_by(Video.channel_url)
        )
        async with self.session_factory() as session:
            result = await session.scalars(stmt)
            return [url for url in result if url]

    async def get_comments(self, video_id: str) -> list[CommentSnapshot]:
        """Comments of a video as a two-level tree, most liked first."""
        stmt = (
            select(Comment)
            .where(Comment.video_id == video_id)
            .order_by(Comment.like_count.desc().nulls_last(), Comment.posted_at, Comment.id)
        )
        async with self.session_factory() as session:
            result = await session.scalars(stmt)
            return _comment_tree(list(result))

    async def list_comment_trees(self) -> dict[str, list[CommentSnapshot]]:
        """Comment trees of every video that has comments, keyed by video id."""
        stmt = select(Comment).order_by(
            Comment.video_id,
            Comment.like_count.desc().nulls_last(),
            Comment.posted_at,
            Comment.id,
        )
        by_video: dict[str, list[Comment]] = {}
        async with self.session_factory() as session:
            for row in await session.scalars(stmt):
                by_video.setdefault(row.video_id, []).append(row)
        return {video_id: _comment_tree(rows) for video_id, rows in by_video.items()}

    async def get_asset(
        self, video_id: str, kind: AssetKind, key: str = ""
    ) -> AssetSnapshot | None:
        """Look up one asset row."""
        stmt = select(Asset).where(Asset.video_id == video_id, Asset.kind == kind, Asset.key == key)
        async with self.session_factory() as session:
            asset = (await session.execute(stmt)).scalar_one_or_none()
            return AssetSnapshot.model_validate(asset) if asset else None


__all__ = [
    "AssetSnapshot",
    "Catalog",
    "CommentSnapshot",
    "InvalidationListener",
    "VideoSnapshot",
]
