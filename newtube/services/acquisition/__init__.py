"""Acquisition and synchronization engine.

Ledger and catalog at the bottom, the orchestrator as their only writer,
the gate and the sweeper as its two callers, and the read-through cache
in front of the catalog for the serving layer.
"""

from newtube.services.acquisition.cache import ReadThroughCache
from newtube.services.acquisition.catalog import (
    AssetSnapshot,
    Catalog,
    CommentSnapshot,
    VideoSnapshot,
)
from newtube.services.acquisition.gate import (
    AcquisitionGate,
    Found,
    MediaResolution,
    NotFound,
    Pending,
)
from newtube.services.acquisition.ledger import ArchiveLedger
from newtube.services.acquisition.orchestrator import (
    AcquisitionOrchestrator,
    ChannelAcquisitionReport,
    ChannelContext,
    VideoAcquisitionReport,
    VideoOutcome,
)
from newtube.services.acquisition.sweeper import FreshnessSweeper, SweepReport

__all__ = [
    "AcquisitionGate",
    "AcquisitionOrchestrator",
    "ArchiveLedger",
    "AssetSnapshot",
    "Catalog",
    "ChannelAcquisitionReport",
    "ChannelContext",
    "CommentSnapshot",
    "Found",
    "FreshnessSweeper",
    "MediaResolution",
    "NotFound",
    "Pending",
    "ReadThroughCache",
    "SweepReport",
    "VideoAcquisitionReport",
    "VideoOutcome",
    "VideoSnapshot",
]
