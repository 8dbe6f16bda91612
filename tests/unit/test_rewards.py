"""Unit tests for reward accrual."""

from dataclasses import replace

import pytest
from hypothesis import given, settings, strategies as st

from conftest import NOW, SUI, USDC, TestFixtures
from lending_risk.core.constants import SECONDS_PER_YEAR
from lending_risk.core.errors import InvalidConfiguration
from lending_risk.core.fixed_point import Wad
from lending_risk.core.models import Obligation, RewardCampaign, RewardPool, Side
from lending_risk.engine.rewards import (
    change_share,
    claim,
    claimable_amount,
    claimable_rewards,
    is_active,
    new_user_snapshot,
    refresh_campaign,
    refresh_pool,
    refresh_reserve_rewards,
    reserve_reward_aprs,
    reward_apr_percent,
    rewards_per_day,
    settle_user,
)


def make_campaign(campaign_id="c1", start=0, end=1000, total=1_000_000, reward=SUI, **kwargs):
    return RewardCampaign(
        id=campaign_id,
        reserve_asset_id=USDC,
        side=Side.DEPOSIT,
        reward_asset_id=reward,
        start_time_s=start,
        end_time_s=end,
        total_allocated=total,
        **kwargs,
    )


class TestRefreshCampaign:
    """Tests for refresh_campaign."""

    def test_linear_emission(self):
        campaign = refresh_campaign(make_campaign(), Wad(100), 500)

        assert campaign.distributed_amount == 500_000
        assert campaign.cumulative_reward_per_share == Wad(5000)
        assert campaign.last_update_time_s == 500

    def test_clamped_to_end(self):
        campaign = refresh_campaign(make_campaign(), Wad(100), 5000)

        assert campaign.distributed_amount == 1_000_000
        assert campaign.undistributed_amount == 0
        assert campaign.last_update_time_s == 1000

    def test_before_start_is_noop(self):
        campaign = make_campaign(start=100, end=200)

        assert refresh_campaign(campaign, Wad(100), 50) is campaign

    def test_no_shares_defers_emission(self):
        campaign = make_campaign()

        assert refresh_campaign(campaign, Wad.ZERO, 500) is campaign
        later = refresh_campaign(campaign, Wad(10), 600)
        assert later.distributed_amount == 600_000

    def test_idempotent(self):
        once = refresh_campaign(make_campaign(), Wad(3), 333)

        assert refresh_campaign(once, Wad(3), 333) is once

    def test_rounds_down(self):
        campaign = refresh_campaign(make_campaign(total=10), Wad(3), 1000)

        assert campaign.cumulative_reward_per_share.mul(Wad(3)) <= Wad(10)

    def test_validation(self):
        with pytest.raises(InvalidConfiguration):
            make_campaign(start=10, end=10)
        with pytest.raises(InvalidConfiguration):
            make_campaign(total=10, distributed_amount=11)

    def test_is_active(self):
        campaign = make_campaign(start=10, end=20)

        assert not is_active(campaign, 9)
        assert is_active(campaign, 10)
        assert not is_active(campaign, 20)


class TestUserAccounting:
    """Tests for user snapshots, settlement and claims."""

    def test_claimable_after_refresh(self):
        campaign = make_campaign()
        snapshot = new_user_snapshot(campaign, Wad(40))

        campaign = refresh_campaign(campaign, Wad(100), 500)

        assert claimable_amount(campaign, snapshot) == 200_000

    def test_late_joiner_only_earns_new_emission(self):
        campaign = refresh_campaign(make_campaign(), Wad(100), 500)
        snapshot = new_user_snapshot(campaign, Wad(100))

        campaign = refresh_campaign(campaign, Wad(100), 600)

        assert claimable_amount(campaign, snapshot) == 100_000

    def test_claim_moves_to_claimed(self):
        campaign = make_campaign()
        snapshot = new_user_snapshot(campaign, Wad(40))
        campaign = refresh_campaign(campaign, Wad(100), 500)

        amount, after = claim(campaign, snapshot)

        assert amount == 200_000
        assert after.claimed_amount == 200_000
        assert claimable_amount(campaign, after) == 0
        assert campaign.distributed_amount == 500_000

    def test_dust_stays_earned(self):
        campaign = make_campaign(total=10)
        snapshot = new_user_snapshot(campaign, Wad(1))
        campaign = refresh_campaign(campaign, Wad(3), 1000)

        amount, after = claim(campaign, snapshot)

        assert amount == 3
        assert Wad.ZERO < after.earned_amount < Wad.ONE

    def test_change_share_settles_first(self):
        campaign = make_campaign()
        snapshot = new_user_snapshot(campaign, Wad(50))
        campaign = refresh_campaign(campaign, Wad(100), 500)

        snapshot = change_share(campaign, snapshot, Wad(100))
        assert snapshot.earned_amount == Wad(250_000)
        assert snapshot.share == Wad(100)

        campaign = refresh_campaign(campaign, Wad(150), 1000)
        assert claimable_amount(campaign, snapshot) == 250_000 + 333_333

    def test_negative_share_rejected(self):
        campaign = make_campaign()

        with pytest.raises(InvalidConfiguration):
            change_share(campaign, new_user_snapshot(campaign), Wad(-1))

    def test_snapshot_for_other_campaign_rejected(self):
        with pytest.raises(InvalidConfiguration):
            settle_user(make_campaign("a"), new_user_snapshot(make_campaign("b")))


class TestClaimableRewards:
    """Tests for the read-model claimable map."""

    def test_summed_per_reward_asset(self):
        c1 = refresh_campaign(make_campaign("c1"), Wad(100), 1000)
        c2 = refresh_campaign(make_campaign("c2", total=500), Wad(100), 1000)
        c3 = refresh_campaign(make_campaign("c3", reward=USDC), Wad(100), 1000)
        pool = RewardPool(USDC, Side.DEPOSIT, Wad(100), (c1, c2, c3))
        obligation = Obligation(
            id="o1",
            user_reward_snapshots={
                "c1": new_user_snapshot(make_campaign("c1"), Wad(10)),
                "c2": new_user_snapshot(make_campaign("c2", total=500), Wad(10)),
            },
        )
        idle = Obligation(id="o2", user_reward_snapshots={"c3": new_user_snapshot(make_campaign("c3"))})

        claims = claimable_rewards([obligation, idle], [pool])

        assert claims == {("o1", SUI): 100_000 + 50}

    def test_pool_validation(self):
        with pytest.raises(InvalidConfiguration):
            RewardPool(USDC, Side.DEPOSIT, Wad(1), (make_campaign("x"), make_campaign("x")))
        with pytest.raises(InvalidConfiguration):
            RewardPool(USDC, Side.BORROW, Wad(1), (make_campaign("x"),))


class TestRewardYield:
    """Tests for reward APR figures."""

    @pytest.fixture
    def reserve(self):
        year_campaign = make_campaign(
            "year", start=NOW - 10, end=NOW - 10 + SECONDS_PER_YEAR, total=365_000 * 10**9
        )
        ended = make_campaign("ended", start=NOW - 100, end=NOW - 50, total=10**9)
        pool = RewardPool(USDC, Side.DEPOSIT, Wad(1_000_000 * 10**6), (year_campaign, ended))
        return replace(TestFixtures.create_reserve(), deposits_reward_pool=pool)

    def test_reward_apr_percent(self, reserve):
        campaign = reserve.deposits_reward_pool.campaign("year")

        apr = reward_apr_percent(campaign, reserve, Wad(2), reserve.deposits_reward_pool.total_shares)

        assert apr == Wad(73)

    def test_rewards_per_day(self, reserve):
        campaign = reserve.deposits_reward_pool.campaign("year")

        per_day = rewards_per_day(campaign, reserve, reserve.deposits_reward_pool.total_shares)

        assert Wad("0.00099") < per_day < Wad("0.001")

    def test_empty_side_has_no_apr(self, reserve):
        campaign = reserve.deposits_reward_pool.campaign("year")

        assert reward_apr_percent(campaign, reserve, Wad(2), Wad.ZERO) is None

    def test_only_active_priced_campaigns(self, reserve):
        assert reserve_reward_aprs(reserve, Side.DEPOSIT, {SUI: Wad(2)}, NOW) == {SUI: Wad(73)}
        assert reserve_reward_aprs(reserve, Side.DEPOSIT, {}, NOW) == {}
        assert reserve_reward_aprs(reserve, Side.BORROW, {SUI: Wad(2)}, NOW) == {}

    def test_refresh_reserve_rewards(self, reserve):
        refreshed = refresh_reserve_rewards(reserve, NOW)

        assert refreshed.deposits_reward_pool.campaign("year").distributed_amount > 0
        assert refreshed.deposits_reward_pool.campaign("ended").undistributed_amount == 0
        assert refresh_pool(refreshed.deposits_reward_pool, NOW) == refreshed.deposits_reward_pool


class TestConservation:
    """Users can never claim more than a campaign allocated."""

    operations = st.lists(
        st.one_of(
            st.tuples(st.just("refresh"), st.integers(min_value=0, max_value=300)),
            st.tuples(st.just("claim"), st.integers(min_value=0, max_value=3)),
            st.tuples(st.just("share"), st.integers(min_value=0, max_value=3), st.integers(min_value=0, max_value=10**6)),
        ),
        max_size=40,
    )

    @settings(max_examples=200)
    @given(
        total=st.integers(min_value=0, max_value=10**12),
        shares=st.lists(st.integers(min_value=0, max_value=10**6), min_size=4, max_size=4),
        operations=operations,
    )
    def test_claimed_plus_claimable_within_allocation(self, total, shares, operations):
        campaign = make_campaign(total=total)
        snapshots = [new_user_snapshot(campaign, Wad(s)) for s in shares]
        now = 0

        def total_shares():
            return sum((s.share for s in snapshots), Wad.ZERO)

        for op in operations:
            if op[0] == "refresh":
                now += op[1]
                campaign = refresh_campaign(campaign, total_shares(), now)
            elif op[0] == "claim":
                _, snapshots[op[1]] = claim(campaign, snapshots[op[1]])
            else:
                campaign = refresh_campaign(campaign, total_shares(), now)
                snapshots[op[1]] = change_share(campaign, snapshots[op[1]], Wad(op[2]))

            paid = sum(s.claimed_amount + claimable_amount(campaign, s) for s in snapshots)
            assert paid <= campaign.distributed_amount <= total
