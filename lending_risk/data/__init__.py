"""Data layer: snapshot sources, parsing, caching and the poll pipeline."""

from .pipeline import RiskPipeline
from .poller import SnapshotPoller
from .parser import SnapshotParser
from .cache.disk_cache import SnapshotCache, CacheKeys

from .clients.base import SnapshotSource
from .clients.http import HttpSnapshotClient

__all__ = [
    # Core
    "RiskPipeline",
    "SnapshotPoller",
    "SnapshotParser",
    "SnapshotCache",
    "CacheKeys",
    # Clients
    "SnapshotSource",
    "HttpSnapshotClient",
]
