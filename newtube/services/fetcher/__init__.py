"""External fetch tool interface and implementations."""

from newtube.services.fetcher.base import (
    AssetBlob,
    AssetDescriptor,
    AssetRequest,
    CommentData,
    FetchTool,
    NotAvailable,
    VideoMetadata,
)

__all__ = [
    "AssetBlob",
    "AssetDescriptor",
    "AssetRequest",
    "CommentData",
    "FetchTool",
    "NotAvailable",
    "VideoMetadata",
]
