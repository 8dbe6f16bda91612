"""Base snapshot source interface.

Defines what the poller needs from any upstream: the raw market document
and, on a slower cadence, asset metadata. Sources return raw JSON-like
dicts; turning them into models is the parser's job.
"""

from abc import ABC, abstractmethod
from typing import Any, Dict


class SnapshotSource(ABC):
    """Abstract base class for raw market snapshot sources."""

    @property
    @abstractmethod
    def source_name(self) -> str:
        """Return a human-readable source name."""
        ...

    # ========== SNAPSHOT METHODS ==========

    @abstractmethod
    async def fetch_market_snapshot(self) -> Dict[str, Any]:
        """Fetch the raw market snapshot document.

        Returns:
            Decoded JSON document (reserves, obligations, rate limiter)
        """
        ...

    async def fetch_asset_metadata(self) -> Dict[str, Dict[str, Any]]:
        """Fetch slow-changing asset metadata.

        Override this method if the source serves metadata separately.

        Returns:
            Dict mapping coin type to ``{"symbol": ..., "decimals": ...}``
        """
        return {}

    # ========== LIFECYCLE ==========

    @abstractmethod
    async def close(self) -> None:
        """Close any open connections and clean up resources."""
        ...
