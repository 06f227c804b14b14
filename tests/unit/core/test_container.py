"""Unit tests for the Dependency Injection Container.

Tests cover:
- Container creation and config override
- Singleton wiring of the acquisition engine
- Lock backend selection
- Provider overrides for tests
"""

import pytest

from newtube.core.config import Config
from newtube.core.container import container, create_container, get_container
from newtube.core.locks import LocalKeyedLock, RedisKeyedLock
from newtube.services.acquisition.cache import ReadThroughCache
from newtube.services.acquisition.gate import AcquisitionGate
from newtube.services.acquisition.orchestrator import AcquisitionOrchestrator
from newtube.services.fetcher.ytdlp import YtDlpFetchTool


@pytest.fixture
def config(tmp_path) -> Config:
    return Config(_env_file=None, media_root=tmp_path, gate_max_concurrency=3)


class TestContainerCreation:
    """Tests for container creation and configuration."""

    def test_create_container_returns_container_with_providers(self) -> None:
        new_container = create_container()
        assert hasattr(new_container, "config")
        assert hasattr(new_container, "infrastructure")
        assert hasattr(new_container, "services")

    def test_global_container_exists(self) -> None:
        assert get_container() is container

    def test_config_override(self, config: Config) -> None:
        new_container = create_container(config)
        assert new_container.config() is config


class TestServiceWiring:
    """Tests for the wiring of engine components."""

    def test_engine_components_are_singletons(self, config: Config) -> None:
        new_container = create_container(config)
        services = new_container.services

        assert services.catalog() is services.catalog()
        assert services.orchestrator() is services.orchestrator()
        assert services.gate() is services.gate()
        assert new_container.orchestrator() is services.orchestrator()

    def test_orchestrator_shares_catalog_and_ledger(self, config: Config) -> None:
        new_container = create_container(config)
        orchestrator = new_container.services.orchestrator()

        assert isinstance(orchestrator, AcquisitionOrchestrator)
        assert orchestrator.catalog is new_container.services.catalog()
        assert orchestrator.ledger is new_container.infrastructure.archive_ledger()
        assert orchestrator.ledger.path == config.archive_path
        assert isinstance(orchestrator.fetcher, YtDlpFetchTool)

    def test_cache_subscribes_to_catalog(self, config: Config) -> None:
        new_container = create_container(config)
        cache = new_container.services.read_cache()

        assert isinstance(cache, ReadThroughCache)
        assert cache.catalog is new_container.services.catalog()
        assert cache.capacity == config.cache_capacity

    def test_gate_uses_settings_policy(self, config: Config) -> None:
        new_container = create_container(config)
        gate = new_container.services.gate()

        assert isinstance(gate, AcquisitionGate)
        assert gate.max_concurrency == 3
        assert gate.policy() == "not_found"

    def test_settings_store_is_seeded_from_config(self, tmp_path) -> None:
        config = Config(_env_file=None, media_root=tmp_path, missing_media_behavior="prompt")
        store = create_container(config).services.settings_store()
        assert store.missing_media_behavior() == "prompt"


class TestLockSelection:
    """Tests for the keyed lock backend selector."""

    def test_local_backend(self, config: Config) -> None:
        lock = create_container(config).infrastructure.keyed_lock()
        assert isinstance(lock, LocalKeyedLock)

    def test_redis_backend(self, tmp_path) -> None:
        config = Config(_env_file=None, media_root=tmp_path, lock_backend="redis")
        lock = create_container(config).infrastructure.keyed_lock()
        assert isinstance(lock, RedisKeyedLock)
        assert lock.lease_seconds == config.lock_timeout_seconds


class TestOverrides:
    """Tests for provider overrides used by tests."""

    def test_fetch_tool_override(self, config: Config, fetcher) -> None:
        new_container = create_container(config)
        new_container.infrastructure.fetch_tool.override(fetcher)

        assert new_container.services.orchestrator().fetcher is fetcher
