"""HTTP snapshot client implementing the SnapshotSource interface."""

import logging
from typing import Any, Dict, Optional

import aiohttp
from aiolimiter import AsyncLimiter

from config.settings import Settings, get_settings
from lending_risk.data.clients.base import SnapshotSource

logger = logging.getLogger(__name__)


class HttpSnapshotClient(SnapshotSource):
    """JSON-over-HTTP client for the market snapshot API."""

    def __init__(self, settings: Optional[Settings] = None):
        self.settings = settings or get_settings()
        self._rate_limiter = AsyncLimiter(
            self.settings.api_rate_limit, self.settings.api_rate_window_seconds
        )
        self._session: Optional[aiohttp.ClientSession] = None

    @property
    def source_name(self) -> str:
        return f"HTTP ({self.settings.snapshot_api_url})"

    async def _get_session(self) -> aiohttp.ClientSession:
        """Get or create aiohttp session."""
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=self.settings.fetch_timeout_seconds)
            )
        return self._session

    async def _get_json(self, url: str) -> Any:
        """GET a JSON document with rate limiting."""
        async with self._rate_limiter:
            session = await self._get_session()
            async with session.get(url) as resp:
                resp.raise_for_status()
                return await resp.json()

    # ========== SNAPSHOT METHODS ==========

    async def fetch_market_snapshot(self) -> Dict[str, Any]:
        """Fetch the raw market snapshot document."""
        try:
            data = await self._get_json(self.settings.snapshot_api_url)
        except Exception as e:
            logger.error(f"Failed to fetch market snapshot: {e}")
            raise

        if not isinstance(data, dict):
            raise ValueError(f"Snapshot API returned {type(data).__name__}, expected an object")
        return data

    async def fetch_asset_metadata(self) -> Dict[str, Dict[str, Any]]:
        """Fetch asset metadata; empty when no metadata URL is configured."""
        if not self.settings.metadata_api_url:
            return {}

        try:
            data = await self._get_json(self.settings.metadata_api_url)
        except Exception as e:
            logger.error(f"Failed to fetch asset metadata: {e}")
            raise

        return {str(coin_type): dict(meta) for coin_type, meta in (data or {}).items()}

    # ========== LIFECYCLE ==========

    async def close(self) -> None:
        """Close the session."""
        if self._session and not self._session.closed:
            await self._session.close()
        self._session = None
