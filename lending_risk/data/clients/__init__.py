"""Snapshot source clients."""

from lending_risk.data.clients.base import SnapshotSource
from lending_risk.data.clients.http import HttpSnapshotClient

__all__ = [
    "SnapshotSource",
    "HttpSnapshotClient",
]
