"""Read model published after each pipeline run."""

from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Tuple

from ..errors import LendingRiskError
from ..fixed_point import Wad
from ..result import Outcome
from .asset import AssetId
from .obligation import ObligationSummary
from .rate_limiter import RateLimiterState
from .reserve import Reserve


def _str(value: Optional[Wad]) -> Optional[str]:
    return None if value is None else str(value)


@dataclass(frozen=True)
class ObligationReport:
    """Risk summary (or the reason there is none) plus reward eligibility."""

    obligation_id: str
    valuation: Outcome[ObligationSummary]
    is_looping: bool = False
    was_looping: bool = False
    looped_pairs: Tuple[Tuple[AssetId, AssetId], ...] = field(default_factory=tuple)

    @property
    def eligible_for_rewards(self) -> bool:
        return not (self.is_looping or self.was_looping)

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "obligation_id": self.obligation_id,
            "status": self.valuation.status,
            "is_looping": self.is_looping,
            "was_looping": self.was_looping,
            "looped_pairs": [list(pair) for pair in self.looped_pairs],
        }
        summary = self.valuation.value
        if summary is not None:
            data["summary"] = {
                "deposited_amount_usd": _str(summary.deposited_amount_usd),
                "borrowed_amount_usd": _str(summary.borrowed_amount_usd),
                "net_value_usd": _str(summary.net_value_usd),
                "weighted_borrowed_amount_usd": _str(summary.weighted_borrowed_amount_usd),
                "borrow_limit_usd": _str(summary.borrow_limit_usd),
                "min_price_borrow_limit_usd": _str(summary.min_price_borrow_limit_usd),
                "max_price_borrow_limit_usd": _str(summary.max_price_borrow_limit_usd),
                "unhealthy_borrow_value_usd": _str(summary.unhealthy_borrow_value_usd),
                "weighted_conservative_borrow_utilization_percent": _str(
                    summary.weighted_conservative_borrow_utilization_percent
                ),
                "is_liquidatable": summary.is_liquidatable,
            }
        if self.valuation.error is not None:
            data["error"] = self.valuation.error.to_dict()
        return data


@dataclass(frozen=True)
class ReadModel:
    """Immutable snapshot of every figure derived from one market poll."""

    market_id: str
    built_at_s: int
    reserves: Dict[AssetId, Reserve]
    obligations: Dict[str, ObligationReport]
    claimable_rewards: Dict[Tuple[str, AssetId], int] = field(default_factory=dict)
    reserve_errors: Dict[AssetId, LendingRiskError] = field(default_factory=dict)
    rate_limiter_state: RateLimiterState = field(default_factory=RateLimiterState)
    rate_limiter_remaining: Optional[Wad] = None

    def report(self, obligation_id: str) -> Optional[ObligationReport]:
        return self.obligations.get(obligation_id)

    @property
    def total_deposited_usd(self) -> Wad:
        return sum((r.deposited_amount_usd for r in self.reserves.values()), Wad.ZERO)

    @property
    def total_borrowed_usd(self) -> Wad:
        return sum((r.borrowed_amount_usd for r in self.reserves.values()), Wad.ZERO)

    @property
    def failed_obligations(self) -> Dict[str, LendingRiskError]:
        return {
            oid: r.valuation.error for oid, r in self.obligations.items() if r.valuation.error is not None
        }

    def to_dict(self) -> Dict[str, Any]:
        """JSON-friendly view; decimals are rendered as strings."""
        return {
            "market_id": self.market_id,
            "built_at_s": self.built_at_s,
            "reserves": {
                asset_id: {
                    "symbol": r.symbol,
                    "price": str(r.price),
                    "utilization_percent": str(r.utilization_percent),
                    "cumulative_borrow_rate": str(r.cumulative_borrow_rate),
                    "borrowed_amount": str(r.borrowed_amount),
                    "available_amount": r.available_amount,
                }
                for asset_id, r in self.reserves.items()
            },
            "total_deposited_usd": str(self.total_deposited_usd),
            "total_borrowed_usd": str(self.total_borrowed_usd),
            "reserve_errors": {asset_id: e.to_dict() for asset_id, e in self.reserve_errors.items()},
            "obligations": {oid: r.to_dict() for oid, r in self.obligations.items()},
            "claimable_rewards": [
                {"obligation_id": oid, "reward_asset_id": asset_id, "amount": amount}
                for (oid, asset_id), amount in sorted(self.claimable_rewards.items())
            ],
            "rate_limiter_remaining": _str(self.rate_limiter_remaining),
        }
