"""Celery workers for background acquisition."""

from newtube.workers.celery_app import celery_app

__all__ = ["celery_app"]
