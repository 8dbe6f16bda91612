"""Market snapshot data model."""

from dataclasses import dataclass, field
from typing import Dict, Optional, Tuple

from ..errors import InvalidConfiguration
from .asset import AssetId
from .obligation import Obligation
from .rate_limiter import RateLimiterConfig, RateLimiterState
from .reserve import Reserve


@dataclass(frozen=True)
class MarketSnapshot:
    """Everything the pipeline needs from one poll of a lending market."""

    market_id: str
    reserves: Dict[AssetId, Reserve]
    obligations: Tuple[Obligation, ...] = field(default_factory=tuple)
    rate_limiter_config: RateLimiterConfig = field(default_factory=RateLimiterConfig)
    rate_limiter_state: RateLimiterState = field(default_factory=RateLimiterState)
    fetched_at_s: int = 0

    def __post_init__(self):
        object.__setattr__(self, "obligations", tuple(self.obligations))
        object.__setattr__(self, "reserves", dict(self.reserves))

        for key, reserve in self.reserves.items():
            if key != reserve.asset_id:
                raise InvalidConfiguration(
                    f"Reserve keyed as {key} carries asset id {reserve.asset_id}"
                )

        ids = [o.id for o in self.obligations]
        if len(ids) != len(set(ids)):
            raise InvalidConfiguration(f"Market {self.market_id}: duplicate obligation ids")

    def reserve(self, asset_id: AssetId) -> Optional[Reserve]:
        return self.reserves.get(asset_id)

