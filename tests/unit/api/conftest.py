"""Fixtures for API tests.

The application is built around its own container whose fetch tool is
replaced by the in-memory fake, so acquisitions never touch the network.
"""

from collections.abc import Iterator

import pytest
from fastapi.testclient import TestClient

from newtube.core.config import Config
from newtube.core.container import ApplicationContainer, create_container
from newtube.main import create_app


@pytest.fixture
def config_overrides() -> dict:
    """Per-test Config overrides."""
    return {}


@pytest.fixture
def app_container(media_root, fetcher, config_overrides) -> ApplicationContainer:
    values = {
        "media_root": media_root,
        "fetch_backoff_seconds": 0,
        "fetch_backoff_max_seconds": 0,
        "gate_wait_seconds": 5,
        "cors_origins": ["http://testserver"],
    }
    values.update(config_overrides)
    container = create_container(Config(_env_file=None, **values))
    container.infrastructure.fetch_tool.override(fetcher)
    return container


@pytest.fixture
def client(app_container) -> Iterator[TestClient]:
    """Test client running the application lifespan."""
    with TestClient(create_app(app_container)) as test_client:
        yield test_client


@pytest.fixture
def seed(client, app_container):
    """Acquire videos on the application's event loop."""

    def acquire(*video_ids: str) -> None:
        orchestrator = app_container.services.orchestrator()
        for video_id in video_ids:
            client.portal.call(orchestrator.acquire_video, video_id)

    return acquire


@pytest.fixture
def run_in_app(client):
    """Run a coroutine function on the application's event loop."""

    def run(func, *args):
        return client.portal.call(func, *args)

    return run
