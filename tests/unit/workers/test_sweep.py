"""Unit tests for acquisition Celery tasks."""

from datetime import UTC, datetime
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from newtube.core.config import Config
from newtube.core.locks import RedisKeyedLock
from newtube.models import VideoKind
from newtube.services.acquisition.orchestrator import ChannelAcquisitionReport
from newtube.services.acquisition.sweeper import SweepReport
from newtube.workers.celery_app import celery_app
from newtube.workers.sweep import (
    ChannelTaskResult,
    SweepTaskResult,
    _acquire_channel_async,
    _sweep_all_channels_async,
    acquire_channel,
    sweep_all_channels,
    worker_container,
)

CHANNEL = "https://www.youtube.com/@example"


@pytest.fixture
def mock_container():
    """Container double with local locks."""
    container = MagicMock()
    container.config.return_value.lock_backend = "local"
    return container


class TestResultModels:
    """Tests for task result models."""

    def test_sweep_result_defaults(self):
        result = SweepTaskResult(started_at=datetime.now(UTC))
        assert result.skipped is False
        assert result.failed_channels == {}

    def test_channel_result_serializes(self):
        result = ChannelTaskResult(channel_url=CHANNEL, started_at=datetime(2026, 1, 1, tzinfo=UTC))
        dumped = result.model_dump(mode="json")
        assert dumped["channel_url"] == CHANNEL
        assert dumped["started_at"].startswith("2026-01-01")


class TestBeatSchedule:
    def test_sweep_is_scheduled(self):
        schedule = celery_app.conf.beat_schedule["sweep-all-channels"]
        assert schedule["task"] == "newtube.workers.sweep.sweep_all_channels"


class TestWorkerContainer:
    """Tests for the container each task builds."""

    def test_uses_redis_lock_when_configured_local(self, tmp_path):
        config = Config(_env_file=None, media_root=tmp_path, lock_backend="local")

        with patch("newtube.workers.sweep.get_config", return_value=config):
            container = worker_container()

        assert container.config().lock_backend == "redis"
        assert isinstance(container.infrastructure.keyed_lock(), RedisKeyedLock)
        assert config.lock_backend == "local"

    def test_keeps_other_settings(self, tmp_path):
        config = Config(_env_file=None, media_root=tmp_path, lock_timeout_seconds=120)

        with patch("newtube.workers.sweep.get_config", return_value=config):
            container = worker_container()

        assert container.config().media_root == tmp_path
        assert container.infrastructure.keyed_lock().lease_seconds == 120


class TestAsyncBodies:
    """Tests for the coroutines run by the tasks."""

    @pytest.mark.asyncio
    async def test_sweep_report_is_converted(self, mock_container):
        report = SweepReport(
            started_at=datetime.now(UTC),
            finished_at=datetime.now(UTC),
            channels=2,
            succeeded=1,
            failed={CHANNEL: "timed out"},
            reports=[ChannelAcquisitionReport(channel_url="https://www.youtube.com/@y", acquired=4)],
        )
        sweeper = MagicMock()
        sweeper.sweep_exclusive = AsyncMock(return_value=report)
        mock_container.services.sweeper.return_value = sweeper

        with patch("newtube.workers.sweep.close_db", new=AsyncMock()) as close_db:
            result = await _sweep_all_channels_async(mock_container)

        assert result.skipped is False
        assert result.channels == 2
        assert result.acquired == 4
        assert result.failed_channels == {CHANNEL: "timed out"}
        close_db.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_overlapping_sweep_is_skipped(self, mock_container):
        sweeper = MagicMock()
        sweeper.sweep_exclusive = AsyncMock(return_value=None)
        mock_container.services.sweeper.return_value = sweeper

        with patch("newtube.workers.sweep.close_db", new=AsyncMock()):
            result = await _sweep_all_channels_async(mock_container)

        assert result.skipped is True

    @pytest.mark.asyncio
    async def test_engine_is_closed_on_error(self, mock_container):
        sweeper = MagicMock()
        sweeper.sweep_exclusive = AsyncMock(side_effect=RuntimeError("db down"))
        mock_container.services.sweeper.return_value = sweeper

        with patch("newtube.workers.sweep.close_db", new=AsyncMock()) as close_db:
            with pytest.raises(RuntimeError):
                await _sweep_all_channels_async(mock_container)

        close_db.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_channel_report_is_converted(self, mock_container):
        orchestrator = MagicMock()
        orchestrator.acquire_channel = AsyncMock(
            return_value=ChannelAcquisitionReport(
                channel_url=CHANNEL,
                discovered=3,
                skipped=1,
                acquired=1,
                failed=1,
                failures={"B": "Private video"},
                errors=["short: no tab"],
            )
        )
        mock_container.services.orchestrator.return_value = orchestrator

        with patch("newtube.workers.sweep.close_db", new=AsyncMock()):
            result = await _acquire_channel_async(mock_container, CHANNEL, [VideoKind.STANDARD])

        orchestrator.acquire_channel.assert_awaited_once_with(CHANNEL, [VideoKind.STANDARD])
        assert result.discovered == 3
        assert result.errors == ["short: no tab", "B: Private video"]

    @pytest.mark.asyncio
    async def test_redis_client_is_closed(self, mock_container):
        mock_container.config.return_value.lock_backend = "redis"
        redis = MagicMock()
        redis.aclose = AsyncMock()
        mock_container.infrastructure.redis_async_client.return_value = redis
        sweeper = MagicMock()
        sweeper.sweep_exclusive = AsyncMock(return_value=None)
        mock_container.services.sweeper.return_value = sweeper

        with patch("newtube.workers.sweep.close_db", new=AsyncMock()):
            await _sweep_all_channels_async(mock_container)

        redis.aclose.assert_awaited_once()


class TestTasks:
    """Tests for the Celery task wrappers, executed eagerly."""

    def test_sweep_task_returns_dict(self):
        result = SweepTaskResult(started_at=datetime.now(UTC), channels=1, succeeded=1)

        with (
            patch("newtube.workers.sweep.worker_container"),
            patch(
                "newtube.workers.sweep._sweep_all_channels_async",
                new=AsyncMock(return_value=result),
            ),
        ):
            output = sweep_all_channels()

        assert output["channels"] == 1
        assert output["skipped"] is False

    def test_channel_task_parses_kinds(self):
        body = AsyncMock(
            return_value=ChannelTaskResult(channel_url=CHANNEL, started_at=datetime.now(UTC))
        )

        with (
            patch("newtube.workers.sweep.worker_container"),
            patch("newtube.workers.sweep._acquire_channel_async", new=body),
        ):
            output = acquire_channel(CHANNEL, ["short"])

        assert body.await_args.args[1:] == (CHANNEL, [VideoKind.SHORT])
        assert output["channel_url"] == CHANNEL

    def test_channel_task_defaults_to_all_kinds(self):
        body = AsyncMock(
            return_value=ChannelTaskResult(channel_url=CHANNEL, started_at=datetime.now(UTC))
        )

        with (
            patch("newtube.workers.sweep.worker_container"),
            patch("newtube.workers.sweep._acquire_channel_async", new=body),
        ):
            acquire_channel(CHANNEL)

        assert body.await_args.args[2] == [VideoKind.STANDARD, VideoKind.SHORT]
