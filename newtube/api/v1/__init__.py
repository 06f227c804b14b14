"""Version 1 routes, mounted under ``/api``."""

from fastapi import APIRouter

from newtube.api.v1 import bootstrap, downloads, settings
from newtube.api.v1.media import shorts_router, videos_router

api_router = APIRouter(prefix="/api")
api_router.include_router(bootstrap.router)
api_router.include_router(settings.router)
api_router.include_router(downloads.router)
api_router.include_router(videos_router)
api_router.include_router(shorts_router)

__all__ = ["api_router"]
