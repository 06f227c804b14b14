"""SQLAlchemy ORM models for the media catalog."""

from newtube.models.asset import Asset, AssetKind
from newtube.models.base import Base, TimestampMixin
from newtube.models.catalog_state import CATALOG_STATE_ID, CatalogState
from newtube.models.channel import Channel
from newtube.models.comment import Comment
from newtube.models.video import AcquisitionStatus, Video, VideoKind

__all__ = [
    "Base",
    "TimestampMixin",
    "Asset",
    "AssetKind",
    "CATALOG_STATE_ID",
    "CatalogState",
    "Channel",
    "Comment",
    "AcquisitionStatus",
    "Video",
    "VideoKind",
]
