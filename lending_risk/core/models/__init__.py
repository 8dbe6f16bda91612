"""Immutable data models for lending market snapshots."""

from .asset import Action, AssetId, Side, normalize_asset_id
from .market import MarketSnapshot
from .obligation import Borrow, Deposit, Obligation, ObligationSummary, PositionValuation
from .rate_limiter import RateLimiterConfig, RateLimiterState
from .read_model import ObligationReport, ReadModel
from .reserve import InterestRateCurve, Reserve, ReserveConfig
from .rewards import RewardCampaign, RewardPool, UserRewardSnapshot

__all__ = [
    "Action",
    "AssetId",
    "Side",
    "normalize_asset_id",
    "MarketSnapshot",
    "Borrow",
    "Deposit",
    "Obligation",
    "ObligationSummary",
    "PositionValuation",
    "RateLimiterConfig",
    "RateLimiterState",
    "ObligationReport",
    "ReadModel",
    "InterestRateCurve",
    "Reserve",
    "ReserveConfig",
    "RewardCampaign",
    "RewardPool",
    "UserRewardSnapshot",
]
