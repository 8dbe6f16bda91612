"""Reward campaign data models."""

from dataclasses import dataclass, field
from typing import Tuple

from ..errors import InvalidConfiguration
from ..fixed_point import Wad
from .asset import AssetId, Side


@dataclass(frozen=True)
class RewardCampaign:
    """A reward stream emitted linearly between two timestamps.

    ``total_allocated`` and ``distributed_amount`` are raw reward-token units.
    ``cumulative_reward_per_share`` is the emission index users snapshot.
    """

    id: str
    reserve_asset_id: AssetId
    side: Side
    reward_asset_id: AssetId
    start_time_s: int
    end_time_s: int
    total_allocated: int
    cumulative_reward_per_share: Wad = Wad.ZERO
    distributed_amount: int = 0
    last_update_time_s: int = -1  # -1 means "not yet refreshed", resolved to start_time_s
    reward_mint_decimals: int = 9

    def __post_init__(self):
        if self.end_time_s <= self.start_time_s:
            raise InvalidConfiguration(
                f"Campaign {self.id}: end_time_s must be after start_time_s"
            )
        if self.total_allocated < 0:
            raise InvalidConfiguration(f"Campaign {self.id}: negative total_allocated")
        if not 0 <= self.distributed_amount <= self.total_allocated:
            raise InvalidConfiguration(
                f"Campaign {self.id}: distributed_amount outside [0, total_allocated]"
            )
        if self.last_update_time_s < 0:
            object.__setattr__(self, "last_update_time_s", self.start_time_s)

    @property
    def duration_s(self) -> int:
        return self.end_time_s - self.start_time_s

    @property
    def undistributed_amount(self) -> int:
        return self.total_allocated - self.distributed_amount


@dataclass(frozen=True)
class RewardPool:
    """All campaigns for one (reserve, side) and the side's total share."""

    reserve_asset_id: AssetId
    side: Side
    total_shares: Wad = Wad.ZERO
    campaigns: Tuple[RewardCampaign, ...] = field(default_factory=tuple)

    def __post_init__(self):
        object.__setattr__(self, "campaigns", tuple(self.campaigns))
        ids = [c.id for c in self.campaigns]
        if len(ids) != len(set(ids)):
            raise InvalidConfiguration(
                f"Duplicate campaign ids in pool {self.reserve_asset_id}/{self.side.value}"
            )
        for campaign in self.campaigns:
            if campaign.reserve_asset_id != self.reserve_asset_id or campaign.side != self.side:
                raise InvalidConfiguration(
                    f"Campaign {campaign.id} does not belong to pool "
                    f"{self.reserve_asset_id}/{self.side.value}"
                )

    def campaign(self, campaign_id: str) -> RewardCampaign:
        for campaign in self.campaigns:
            if campaign.id == campaign_id:
                return campaign
        raise KeyError(campaign_id)


@dataclass(frozen=True)
class UserRewardSnapshot:
    """One user's position in one campaign."""

    campaign_id: str
    share: Wad = Wad.ZERO
    reward_per_share_snapshot: Wad = Wad.ZERO
    earned_amount: Wad = Wad.ZERO  # Settled but unclaimed, raw reward units
    claimed_amount: int = 0
