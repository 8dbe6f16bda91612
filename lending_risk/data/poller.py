"""Poll loop publishing read models.

Each tick fetches the raw snapshot (with a timeout), parses it, runs the
pipeline off the event loop and publishes the new read model by replacing
the reference. Any failure skips the tick and keeps the last good model.
Asset metadata is refetched on its own, slower cadence.
"""

import asyncio
import logging
import time
from typing import Any, Callable, Dict, Optional

from config.settings import Settings, get_settings
from lending_risk.core.models import ReadModel
from lending_risk.data.cache.disk_cache import SnapshotCache
from lending_risk.data.clients.base import SnapshotSource
from lending_risk.data.parser import SnapshotParser
from lending_risk.data.pipeline import RiskPipeline

logger = logging.getLogger(__name__)


class SnapshotPoller:
    """Drives a ``RiskPipeline`` from a ``SnapshotSource`` on a fixed interval."""

    def __init__(
        self,
        source: SnapshotSource,
        pipeline: RiskPipeline,
        settings: Optional[Settings] = None,
        cache: Optional[SnapshotCache] = None,
        clock: Callable[[], float] = time.time,
        on_update: Optional[Callable[[ReadModel], None]] = None,
    ):
        self.source = source
        self.pipeline = pipeline
        self.settings = settings or get_settings()
        self.cache = cache
        self._clock = clock
        self._on_update = on_update

        self._model: Optional[ReadModel] = None
        self._metadata: Dict[str, Any] = {}
        self._metadata_fetched_at: Optional[float] = None
        self._stop = asyncio.Event()
        self.consecutive_failures = 0

    @property
    def model(self) -> Optional[ReadModel]:
        """The last successfully built read model."""
        return self._model

    @property
    def metadata(self) -> Dict[str, Any]:
        return self._metadata

    # ========== METADATA ==========

    def _metadata_due(self) -> bool:
        if self._metadata_fetched_at is None:
            return True
        age = self._clock() - self._metadata_fetched_at
        return age >= self.settings.metadata_refresh_interval_seconds

    async def refresh_metadata(self, force: bool = False) -> bool:
        """Refetch asset metadata if due; keeps the old metadata on failure."""
        if not force and not self._metadata_due():
            return False

        try:
            metadata = await asyncio.wait_for(
                self.source.fetch_asset_metadata(),
                timeout=self.settings.fetch_timeout_seconds,
            )
        except Exception as e:
            logger.warning(f"Metadata refresh from {self.source.source_name} failed: {e}")
            return False

        self._metadata = metadata or {}
        self._metadata_fetched_at = self._clock()
        logger.info(f"Refreshed metadata for {len(self._metadata)} assets")
        return True

    # ========== TICKS ==========

    async def tick(self) -> bool:
        """Run one poll cycle.

        Returns:
            True if a new read model was published
        """
        await self.refresh_metadata()

        try:
            raw = await asyncio.wait_for(
                self.source.fetch_market_snapshot(),
                timeout=self.settings.fetch_timeout_seconds,
            )
            snapshot = SnapshotParser.parse_market(raw, self._metadata)
        except Exception as e:
            self.consecutive_failures += 1
            logger.warning(
                f"Skipping tick ({self.consecutive_failures} in a row): "
                f"fetch/parse from {self.source.source_name} failed: {e}"
            )
            return False

        now_s = int(self._clock())
        loop = asyncio.get_running_loop()
        try:
            model = await loop.run_in_executor(None, self.pipeline.build, snapshot, now_s)
        except Exception as e:
            self.consecutive_failures += 1
            logger.error(f"Skipping tick: pipeline failed for {snapshot.market_id}: {e}")
            return False

        self._model = model
        self.consecutive_failures = 0

        if self.cache is not None:
            self.cache.store_snapshot(raw, self._metadata)

        if self._on_update is not None:
            self._on_update(model)

        return True

    def warm_start(self) -> bool:
        """Rebuild the last cached snapshot so readers have a model before the first fetch."""
        if self.cache is None:
            return False

        raw = self.cache.load_snapshot()
        if raw is None:
            logger.debug("No cached snapshot to warm start from")
            return False

        self._metadata = self.cache.load_metadata()
        try:
            snapshot = SnapshotParser.parse_market(raw, self._metadata)
            self._model = self.pipeline.build(snapshot, int(self._clock()))
        except Exception as e:
            logger.warning(f"Cached snapshot unusable: {e}")
            return False

        if self._on_update is not None:
            self._on_update(self._model)
        logger.info(f"Warm started from cached snapshot of {snapshot.market_id}")
        return True

    # ========== LOOP ==========

    async def run(self, max_ticks: Optional[int] = None) -> None:
        """Poll until ``stop()`` is called (or ``max_ticks`` ticks have run)."""
        self._stop.clear()
        ticks = 0
        logger.info(
            f"Polling {self.source.source_name} every {self.settings.user_poll_interval_seconds}s"
        )

        while not self._stop.is_set():
            await self.tick()
            ticks += 1
            if max_ticks is not None and ticks >= max_ticks:
                break

            try:
                await asyncio.wait_for(
                    self._stop.wait(), timeout=self.settings.user_poll_interval_seconds
                )
            except asyncio.TimeoutError:
                pass

    def stop(self) -> None:
        self._stop.set()
