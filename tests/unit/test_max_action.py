"""Unit tests for the max-action query."""

from dataclasses import replace

import pytest

from conftest import NOW, TestFixtures
from lending_risk.core.errors import InvalidConfiguration, SolverDidNotConverge, StaleDataError
from lending_risk.core.fixed_point import Wad
from lending_risk.core.models import Action, RateLimiterConfig, RateLimiterState
from lending_risk.engine.max_action import ActionLimitCalculator
from lending_risk.engine.solver import BisectionConfig


def reserves_of(*reserves):
    return {r.asset_id: r for r in reserves}


@pytest.fixture
def calculator(valuator):
    return ActionLimitCalculator(valuator)


class TestBorrow:
    """Tests for max borrow."""

    def test_bounded_by_borrow_limit(self, calculator, usdc_reserve):
        obligation = TestFixtures.create_obligation(deposits=[(usdc_reserve, 100)])

        limit = calculator.max_action_amount(
            obligation, reserves_of(usdc_reserve), usdc_reserve.asset_id, Action.BORROW, NOW
        ).unwrap()

        assert Wad("79.999999") <= limit.value <= Wad(80)
        assert limit.binding_reason == "Borrows cannot exceed borrow limit"
        assert 0 < limit.solver_iterations <= 50

    def test_borrow_fee_reduces_limit(self, calculator):
        reserve = TestFixtures.create_reserve(borrow_fee_bps=100)
        obligation = TestFixtures.create_obligation(deposits=[(reserve, 101)])

        limit = calculator.max_action_amount(
            obligation, reserves_of(reserve), reserve.asset_id, Action.BORROW, NOW
        ).unwrap()

        # 101 * 0.8 = 80.8 of debt capacity, 1 % of each borrow goes to fees
        assert Wad("79.999998") <= limit.value <= Wad(80)

    def test_bounded_by_liquidity(self, calculator):
        reserve = TestFixtures.create_reserve(available_tokens=10)
        obligation = TestFixtures.create_obligation(deposits=[(reserve, 100)])

        limit = calculator.max_action_amount(
            obligation, reserves_of(reserve), reserve.asset_id, Action.BORROW, NOW
        ).unwrap()

        assert limit.value == Wad("9.9999")
        assert limit.binding_reason == "Insufficient liquidity to borrow"

    def test_bounded_by_reserve_borrow_limit(self, calculator):
        reserve = TestFixtures.create_reserve(borrowed_tokens=1_000, borrow_limit=1_010 * 10**6)
        obligation = TestFixtures.create_obligation(deposits=[(reserve, 100)])

        limit = calculator.max_action_amount(
            obligation, reserves_of(reserve), reserve.asset_id, Action.BORROW, NOW
        ).unwrap()

        assert limit.value == Wad(10)
        assert limit.binding_reason == "Over reserve borrow limit"

    def test_bounded_by_outflow_limiter(self, calculator, usdc_reserve):
        obligation = TestFixtures.create_obligation(deposits=[(usdc_reserve, 100)])
        config = RateLimiterConfig(max_outflow=25, window_duration_s=3600)
        state = RateLimiterState(window_start=NOW, cur_qty=Wad(20))

        limit = calculator.max_action_amount(
            obligation,
            reserves_of(usdc_reserve),
            usdc_reserve.asset_id,
            Action.BORROW,
            NOW,
            rate_limiter_config=config,
            rate_limiter_state=state,
        ).unwrap()

        assert limit.value == Wad(5)
        assert limit.binding_reason == "Pool outflow rate limit surpassed"

    def test_rejects_reports_first_violated_cap(self, calculator, usdc_reserve):
        obligation = TestFixtures.create_obligation(deposits=[(usdc_reserve, 100)])

        limit = calculator.max_action_amount(
            obligation, reserves_of(usdc_reserve), usdc_reserve.asset_id, Action.BORROW, NOW
        ).unwrap()

        assert limit.rejects(Wad(50)) is None
        assert limit.rejects(Wad(81)) == "Borrows cannot exceed borrow limit"


class TestWithdraw:
    """Tests for max withdraw."""

    def test_bounded_by_health(self, calculator, usdc_reserve):
        obligation = TestFixtures.create_obligation(
            deposits=[(usdc_reserve, 100)], borrows=[(usdc_reserve, 40)]
        )

        limit = calculator.max_action_amount(
            obligation, reserves_of(usdc_reserve), usdc_reserve.asset_id, Action.WITHDRAW, NOW
        ).unwrap()

        assert Wad("49.999999") <= limit.value <= Wad(50)
        assert limit.binding_reason == "Withdraw is unhealthy"

    def test_without_debt_everything_can_leave(self, calculator, usdc_reserve):
        obligation = TestFixtures.create_obligation(deposits=[(usdc_reserve, 100)])

        limit = calculator.max_action_amount(
            obligation, reserves_of(usdc_reserve), usdc_reserve.asset_id, Action.WITHDRAW, NOW
        ).unwrap()

        assert limit.value == Wad(100)
        assert limit.binding_reason == "Withdraws cannot exceed deposits"

    def test_nothing_deposited(self, calculator, usdc_reserve, sui_reserve):
        obligation = TestFixtures.create_obligation(deposits=[(usdc_reserve, 100)])

        limit = calculator.max_action_amount(
            obligation, reserves_of(usdc_reserve, sui_reserve), sui_reserve.asset_id, Action.WITHDRAW, NOW
        ).unwrap()

        assert limit.value == Wad.ZERO


class TestDepositAndRepay:
    """Tests for max deposit and repay."""

    def test_deposit_unbounded_without_limits(self, calculator, usdc_reserve):
        obligation = TestFixtures.create_obligation()

        limit = calculator.max_action_amount(
            obligation, reserves_of(usdc_reserve), usdc_reserve.asset_id, Action.DEPOSIT, NOW
        ).unwrap()

        assert limit.value is None
        assert limit.caps == ()

    def test_deposit_limit(self, calculator):
        reserve = TestFixtures.create_reserve(deposit_limit=1_000_100 * 10**6)

        limit = calculator.max_action_amount(
            TestFixtures.create_obligation(), reserves_of(reserve), reserve.asset_id, Action.DEPOSIT, NOW
        ).unwrap()

        assert limit.value == Wad(100)
        assert limit.binding_reason == "Exceeds reserve deposit limit"

    def test_deposit_usd_limit(self, calculator):
        reserve = TestFixtures.create_reserve(price="2", deposit_limit_usd=2_000_050)

        limit = calculator.max_action_amount(
            TestFixtures.create_obligation(), reserves_of(reserve), reserve.asset_id, Action.DEPOSIT, NOW
        ).unwrap()

        assert limit.value == Wad(25)
        assert limit.binding_reason == "Exceeds reserve USD deposit limit"

    def test_deposit_bounded_by_balance(self, calculator, usdc_reserve):
        limit = calculator.max_action_amount(
            TestFixtures.create_obligation(),
            reserves_of(usdc_reserve),
            usdc_reserve.asset_id,
            Action.DEPOSIT,
            NOW,
            balance=Wad("12.5"),
        ).unwrap()

        assert limit.value == Wad("12.5")
        assert limit.binding_reason == "Insufficient USDC"

    def test_repay_bounded_by_debt_and_balance(self, calculator, usdc_reserve):
        obligation = TestFixtures.create_obligation(
            deposits=[(usdc_reserve, 100)], borrows=[(usdc_reserve, 40)]
        )
        reserves = reserves_of(usdc_reserve)

        by_debt = calculator.max_action_amount(
            obligation, reserves, usdc_reserve.asset_id, Action.REPAY, NOW
        ).unwrap()
        by_balance = calculator.max_action_amount(
            obligation, reserves, usdc_reserve.asset_id, Action.REPAY, NOW, balance=Wad(10)
        ).unwrap()

        assert by_debt.value == Wad(40)
        assert by_debt.binding_reason == "Repay amount exceeds borrowed amount"
        assert by_balance.value == Wad(10)


class TestFailures:
    """Failure outcomes of the max-action query."""

    def test_unknown_reserve(self, calculator, usdc_reserve):
        outcome = calculator.max_action_amount(
            TestFixtures.create_obligation(), reserves_of(usdc_reserve), "0x99::none::NONE", Action.BORROW, NOW
        )

        assert isinstance(outcome.error, InvalidConfiguration)

    def test_stale_reserve(self, calculator, usdc_reserve):
        stale = replace(usdc_reserve, price_last_update_timestamp_s=NOW - 1000)

        outcome = calculator.max_action_amount(
            TestFixtures.create_obligation(), reserves_of(stale), stale.asset_id, Action.DEPOSIT, NOW
        )

        assert isinstance(outcome.error, StaleDataError)
        assert outcome.value is None

    def test_small_budget_returns_lower_bound(self, valuator, usdc_reserve):
        calculator = ActionLimitCalculator(valuator, BisectionConfig(max_iterations=5))
        obligation = TestFixtures.create_obligation(deposits=[(usdc_reserve, 100)])

        outcome = calculator.max_action_amount(
            obligation, reserves_of(usdc_reserve), usdc_reserve.asset_id, Action.BORROW, NOW
        )

        assert isinstance(outcome.error, SolverDidNotConverge)
        assert outcome.value is not None
        assert outcome.value.value <= Wad(80)
        assert outcome.value.solver_iterations == 5
