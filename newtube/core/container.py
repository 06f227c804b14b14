"""Dependency Injection Container.

This module provides a centralized DI container using dependency-injector.
Every engine component is a Singleton: the catalog's generation counter,
the cache, the gate's in-flight registry and the keyed lock hold
process-wide state and must be shared.

Usage:
    # In FastAPI
    from newtube.core.container import get_container

    library = get_container().services.library()

    # In Celery / scripts
    container = create_container()
    orchestrator = container.services.orchestrator()

    # In tests
    with container.infrastructure.fetch_tool.override(fake_fetcher):
        ...
"""

from dependency_injector import containers, providers
from redis.asyncio import Redis as AsyncRedis

from newtube.core.config import Config, get_config
from newtube.core.database import create_engine, create_session_factory


def _load_settings(path, defaults):  # type: ignore[no-untyped-def]
    from newtube.services.settings_store import SettingsStore

    return SettingsStore.load(path, defaults)


class InfrastructureContainer(containers.DeclarativeContainer):
    """Infrastructure layer dependencies (database, Redis, ledger, fetch tool).

    These are Singleton or have special lifecycle management.
    """

    global_config = providers.Dependency(instance_of=Config)

    # ============================================
    # Redis
    # ============================================

    redis_async_client = providers.Singleton(
        AsyncRedis.from_url,
        url=global_config.provided.redis_url,
        encoding="utf-8",
        decode_responses=True,
        socket_connect_timeout=5,
        socket_keepalive=True,
    )

    # ============================================
    # Database
    # ============================================

    db_engine = providers.Singleton(
        create_engine,
        database_url=global_config.provided.database_url,
        echo=global_config.provided.database_echo,
    )

    db_session_factory = providers.Singleton(
        create_session_factory,
        engine=db_engine,
    )

    # ============================================
    # Per-id locks
    # ============================================

    keyed_lock = providers.Selector(
        global_config.provided.lock_backend,
        local=providers.Singleton("newtube.core.locks.LocalKeyedLock"),
        redis=providers.Singleton(
            "newtube.core.locks.RedisKeyedLock",
            redis=redis_async_client,
            lease_seconds=global_config.provided.lock_timeout_seconds,
        ),
    )

    # ============================================
    # Archive ledger and fetch tool
    # ============================================

    archive_ledger = providers.Singleton(
        "newtube.services.acquisition.ledger.ArchiveLedger",
        path=global_config.provided.archive_path,
    )

    fetch_tool = providers.Singleton(
        "newtube.services.fetcher.ytdlp.YtDlpFetchTool",
        media_root=global_config.provided.media_root,
        timeout_seconds=global_config.provided.fetch_timeout_seconds,
        cookies_file=global_config.provided.cookies_file,
        max_workers=global_config.provided.fetch_max_workers,
    )


class ServiceContainer(containers.DeclarativeContainer):
    """Service layer dependencies.

    Services receive infrastructure dependencies via injection.
    """

    global_config = providers.Dependency(instance_of=Config)
    infrastructure = providers.DependenciesContainer()

    # ============================================
    # Acquisition engine
    # ============================================

    catalog = providers.Singleton(
        "newtube.services.acquisition.catalog.Catalog",
        session_factory=infrastructure.db_session_factory,
    )

    read_cache = providers.Singleton(
        "newtube.services.acquisition.cache.ReadThroughCache",
        catalog=catalog,
        capacity=global_config.provided.cache_capacity,
    )

    orchestrator = providers.Singleton(
        "newtube.services.acquisition.orchestrator.AcquisitionOrchestrator",
        fetcher=infrastructure.fetch_tool,
        catalog=catalog,
        ledger=infrastructure.archive_ledger,
        locks=infrastructure.keyed_lock,
        max_attempts=global_config.provided.fetch_max_attempts,
        backoff_seconds=global_config.provided.fetch_backoff_seconds,
        backoff_max_seconds=global_config.provided.fetch_backoff_max_seconds,
        comment_limit=global_config.provided.comment_page_size,
        video_timeout_seconds=global_config.provided.video_timeout_seconds,
        record_partial=global_config.provided.ledger_record_partial,
    )

    sweeper = providers.Singleton(
        "newtube.services.acquisition.sweeper.FreshnessSweeper",
        catalog=catalog,
        orchestrator=orchestrator,
        channel_timeout_seconds=global_config.provided.sweep_channel_timeout_seconds,
    )

    # ============================================
    # Runtime settings
    # ============================================

    default_settings = providers.Factory(
        "newtube.services.settings_store.InstanceSettings",
        missing_media_behavior=global_config.provided.missing_media_behavior,
    )

    settings_store = providers.Singleton(
        _load_settings,
        path=global_config.provided.settings_path,
        defaults=default_settings,
    )

    # ============================================
    # Serving
    # ============================================

    gate = providers.Singleton(
        "newtube.services.acquisition.gate.AcquisitionGate",
        catalog=catalog,
        orchestrator=orchestrator,
        policy=settings_store.provided.missing_media_behavior,
        max_concurrency=global_config.provided.gate_max_concurrency,
        acquisition_timeout_seconds=global_config.provided.gate_acquisition_timeout_seconds,
    )

    library = providers.Singleton(
        "newtube.services.library.LibraryService",
        catalog=catalog,
        cache=read_cache,
        gate=gate,
        media_root=global_config.provided.media_root,
        wait_seconds=global_config.provided.gate_wait_seconds,
    )

    downloads = providers.Singleton(
        "newtube.services.downloads.DownloadJobManager",
        catalog=catalog,
        gate=gate,
        orchestrator=orchestrator,
        fetcher=infrastructure.fetch_tool,
    )


class ApplicationContainer(containers.DeclarativeContainer):
    """Root application container.

    Composes all sub-containers and provides the main entry point.
    """

    # Global Config singleton (environment variables)
    # Uses get_config() to ensure same instance across the app
    config = providers.Singleton(get_config)

    # Sub-containers
    infrastructure = providers.Container(
        InfrastructureContainer,
        global_config=config,
    )

    services = providers.Container(
        ServiceContainer,
        global_config=config,
        infrastructure=infrastructure,
    )

    # ============================================
    # Convenience accessors (shortcuts)
    # ============================================

    db_engine = providers.Singleton(
        lambda engine: engine,
        engine=infrastructure.db_engine,
    )

    library = providers.Singleton(
        lambda svc: svc,
        svc=services.library,
    )

    orchestrator = providers.Singleton(
        lambda svc: svc,
        svc=services.orchestrator,
    )

    sweeper = providers.Singleton(
        lambda svc: svc,
        svc=services.sweeper,
    )


def create_container(config: Config | None = None) -> ApplicationContainer:
    """Create and configure the application container.

    Args:
        config: Config to use instead of the global one (scripts, tests)

    Returns:
        Configured ApplicationContainer instance
    """
    container = ApplicationContainer()
    if config is not None:
        container.config.override(config)
    return container


# Global container instance
container = create_container()


def get_container() -> ApplicationContainer:
    """Get the global container (for FastAPI Depends)."""
    return container


__all__ = [
    "ApplicationContainer",
    "InfrastructureContainer",
    "ServiceContainer",
    "container",
    "create_container",
    "get_container",
]
