"""Pure risk engines: functions of (snapshot, now) returning new snapshots."""

from .interest import apr_to_apy, borrow_apr, compound_interest, compound_reserves, deposit_apr
from .looping import CorrelatedAssetGroups, is_looping, looped_asset_pairs, was_looping, would_loop
from .max_action import ActionCap, ActionLimit, ActionLimitCalculator
from .rate_limiter import MarketRateLimiter, process_outflow, remaining_outflow
from .rewards import claim, claimable_amount, claimable_rewards, refresh_pool
from .solver import BisectionConfig, BisectionSolution, bisect_max
from .valuation import ObligationValuator, StalenessBounds

__all__ = [
    "apr_to_apy",
    "borrow_apr",
    "compound_interest",
    "compound_reserves",
    "deposit_apr",
    "CorrelatedAssetGroups",
    "is_looping",
    "looped_asset_pairs",
    "was_looping",
    "would_loop",
    "ActionCap",
    "ActionLimit",
    "ActionLimitCalculator",
    "MarketRateLimiter",
    "process_outflow",
    "remaining_outflow",
    "claim",
    "claimable_amount",
    "claimable_rewards",
    "refresh_pool",
    "BisectionConfig",
    "BisectionSolution",
    "bisect_max",
    "ObligationValuator",
    "StalenessBounds",
]
