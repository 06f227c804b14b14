"""FastAPI dependencies resolving services from the application's container."""

from fastapi import Request

from newtube.core.container import ApplicationContainer
from newtube.services.downloads import DownloadJobManager
from newtube.services.library import LibraryService
from newtube.services.settings_store import SettingsStore


def get_app_container(request: Request) -> ApplicationContainer:
    return request.app.state.container  # type: ignore[no-any-return]


def get_library(request: Request) -> LibraryService:
    return get_app_container(request).services.library()


def get_settings_store(request: Request) -> SettingsStore:
    return get_app_container(request).services.settings_store()


def get_downloads(request: Request) -> DownloadJobManager:
    return get_app_container(request).services.downloads()
