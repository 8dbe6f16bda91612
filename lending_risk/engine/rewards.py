"""Per-share reward accrual.

Each campaign emits ``total_allocated`` linearly over ``[start, end]``. A
refresh credits the emission since the last update to every share of the
side by raising ``cumulative_reward_per_share``; users earn
``share * (cumulative - snapshot)``. All divisions round down, so the sum of
what users can claim never exceeds what the campaign emitted.
"""

import logging
from dataclasses import replace
from typing import Dict, Iterable, Mapping, Optional, Tuple

from ..core.constants import SECONDS_PER_DAY, SECONDS_PER_YEAR
from ..core.errors import InvalidConfiguration
from ..core.fixed_point import Rounding, Wad
from ..core.models.asset import AssetId, Side
from ..core.models.obligation import Obligation
from ..core.models.reserve import Reserve
from ..core.models.rewards import RewardCampaign, RewardPool, UserRewardSnapshot

logger = logging.getLogger(__name__)

ClaimKey = Tuple[str, AssetId]


# ========== POOL REFRESH ==========


def refresh_campaign(campaign: RewardCampaign, total_shares: Wad, now_s: int) -> RewardCampaign:
    """Bring one campaign's reward index up to ``now_s``.

    With no shares outstanding the campaign is returned untouched, so the
    emission for that period is paid out once someone joins.
    """
    upto = min(max(now_s, campaign.start_time_s), campaign.end_time_s)
    if upto <= campaign.last_update_time_s:
        return campaign
    if total_shares <= 0:
        return campaign

    # Emission is measured cumulatively from the start so per-refresh
    # flooring never loses more than one raw unit in total.
    due = campaign.total_allocated * (upto - campaign.start_time_s) // campaign.duration_s
    emitted = min(max(due - campaign.distributed_amount, 0), campaign.undistributed_amount)
    if emitted == 0:
        return replace(campaign, last_update_time_s=upto)

    increment = Wad(emitted).div(total_shares, Rounding.DOWN)
    return replace(
        campaign,
        cumulative_reward_per_share=campaign.cumulative_reward_per_share + increment,
        distributed_amount=campaign.distributed_amount + emitted,
        last_update_time_s=upto,
    )


def refresh_pool(pool: RewardPool, now_s: int) -> RewardPool:
    """Refresh every campaign of a pool; campaigns never share state."""
    campaigns = tuple(refresh_campaign(c, pool.total_shares, now_s) for c in pool.campaigns)
    return replace(pool, campaigns=campaigns)


def refresh_reserve_rewards(reserve: Reserve, now_s: int) -> Reserve:
    """Refresh both reward pools of a reserve."""
    updates = {}
    if reserve.deposits_reward_pool is not None:
        updates["deposits_reward_pool"] = refresh_pool(reserve.deposits_reward_pool, now_s)
    if reserve.borrows_reward_pool is not None:
        updates["borrows_reward_pool"] = refresh_pool(reserve.borrows_reward_pool, now_s)
    return replace(reserve, **updates) if updates else reserve


def is_active(campaign: RewardCampaign, now_s: int) -> bool:
    return campaign.start_time_s <= now_s < campaign.end_time_s


# ========== USER ACCOUNTING ==========


def new_user_snapshot(campaign: RewardCampaign, share: Wad = Wad.ZERO) -> UserRewardSnapshot:
    """Snapshot for a user joining at the campaign's current index."""
    return UserRewardSnapshot(
        campaign_id=campaign.id,
        share=Wad(share),
        reward_per_share_snapshot=campaign.cumulative_reward_per_share,
    )


def _check_snapshot(campaign: RewardCampaign, snapshot: UserRewardSnapshot) -> None:
    if snapshot.campaign_id != campaign.id:
        raise InvalidConfiguration(
            f"Snapshot for campaign {snapshot.campaign_id} used with campaign {campaign.id}"
        )


def _accrued(campaign: RewardCampaign, snapshot: UserRewardSnapshot) -> Wad:
    delta = campaign.cumulative_reward_per_share - snapshot.reward_per_share_snapshot
    if delta <= 0:
        return Wad.ZERO
    return snapshot.share.mul(delta, Rounding.DOWN)


def claimable_amount(campaign: RewardCampaign, snapshot: UserRewardSnapshot) -> int:
    """Raw reward units the user could claim now."""
    _check_snapshot(campaign, snapshot)
    return (snapshot.earned_amount + _accrued(campaign, snapshot)).floor()


def settle_user(campaign: RewardCampaign, snapshot: UserRewardSnapshot) -> UserRewardSnapshot:
    """Move accrued rewards into ``earned_amount`` and re-base the snapshot."""
    _check_snapshot(campaign, snapshot)
    return replace(
        snapshot,
        earned_amount=snapshot.earned_amount + _accrued(campaign, snapshot),
        reward_per_share_snapshot=campaign.cumulative_reward_per_share,
    )


def change_share(campaign: RewardCampaign, snapshot: UserRewardSnapshot, new_share: Wad) -> UserRewardSnapshot:
    """Settle at the old share, then switch to ``new_share``.

    The pool's ``total_shares`` must be adjusted by the caller.
    """
    new_share = Wad(new_share)
    if new_share < 0:
        raise InvalidConfiguration(f"Negative reward share {new_share}")
    return replace(settle_user(campaign, snapshot), share=new_share)


def claim(campaign: RewardCampaign, snapshot: UserRewardSnapshot) -> Tuple[int, UserRewardSnapshot]:
    """Claim all whole raw units; the campaign itself is never modified.

    Returns:
        ``(amount, new_snapshot)``. Sub-unit dust stays in ``earned_amount``.
    """
    settled = settle_user(campaign, snapshot)
    amount = settled.earned_amount.floor()
    return amount, replace(
        settled,
        earned_amount=settled.earned_amount - amount,
        claimed_amount=settled.claimed_amount + amount,
    )


def claimable_rewards(
    obligations: Iterable[Obligation], pools: Iterable[RewardPool]
) -> Dict[ClaimKey, int]:
    """Claimable raw amounts keyed by ``(obligation_id, reward_asset_id)``.

    Campaigns paying the same reward asset are summed; zero entries are
    omitted.
    """
    campaigns = [c for pool in pools for c in pool.campaigns]
    result: Dict[ClaimKey, int] = {}

    for obligation in obligations:
        for campaign in campaigns:
            snapshot = obligation.user_reward_snapshots.get(campaign.id)
            if snapshot is None:
                continue
            amount = claimable_amount(campaign, snapshot)
            if amount:
                key = (obligation.id, campaign.reward_asset_id)
                result[key] = result.get(key, 0) + amount

    return result


# ========== YIELD ==========


def _side_share_tokens(reserve: Reserve, side: Side, total_shares: Wad) -> Wad:
    """Total side shares in underlying tokens.

    Deposit shares are receipt tokens; borrow shares are debt normalised by
    the cumulative borrow rate.
    """
    tokens = reserve.to_tokens(total_shares)
    if side == Side.DEPOSIT:
        return tokens.mul(reserve.share_exchange_rate)
    return tokens.mul(reserve.cumulative_borrow_rate)


def reward_apr_percent(
    campaign: RewardCampaign,
    reserve: Reserve,
    reward_price: Wad,
    total_shares: Wad,
) -> Optional[Wad]:
    """Annualised reward yield on the side's value, in percent.

    ``None`` when the side holds no value.
    """
    shares_usd = _side_share_tokens(reserve, campaign.side, total_shares).mul(reserve.price)
    if shares_usd <= 0:
        return None

    total_tokens = Wad(campaign.total_allocated) / 10**campaign.reward_mint_decimals
    yearly_usd = total_tokens.mul(reward_price) * SECONDS_PER_YEAR / campaign.duration_s
    return (yearly_usd * 100).div(shares_usd)


def rewards_per_day(campaign: RewardCampaign, reserve: Reserve, total_shares: Wad) -> Optional[Wad]:
    """Reward tokens per day per underlying token, for unpriced rewards (points)."""
    share_tokens = _side_share_tokens(reserve, campaign.side, total_shares)
    if share_tokens <= 0:
        return None

    total_tokens = Wad(campaign.total_allocated) / 10**campaign.reward_mint_decimals
    daily = total_tokens * SECONDS_PER_DAY / campaign.duration_s
    return daily.div(share_tokens)


def reserve_reward_aprs(
    reserve: Reserve,
    side: Side,
    reward_prices: Mapping[AssetId, Wad],
    now_s: int,
) -> Dict[AssetId, Wad]:
    """Reward APR percent of the active priced campaigns, summed per reward asset."""
    pool = reserve.reward_pool(side)
    if pool is None:
        return {}

    aprs: Dict[AssetId, Wad] = {}
    for campaign in pool.campaigns:
        price = reward_prices.get(campaign.reward_asset_id)
        if price is None or not is_active(campaign, now_s):
            continue
        apr = reward_apr_percent(campaign, reserve, price, pool.total_shares)
        if apr is not None:
            aprs[campaign.reward_asset_id] = aprs.get(campaign.reward_asset_id, Wad.ZERO) + apr
    return aprs
