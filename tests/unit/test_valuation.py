"""Unit tests for obligation valuation."""

from dataclasses import replace

import pytest

from conftest import NOW, SUI, TestFixtures
from lending_risk.core.errors import InvalidConfiguration, StaleDataError
from lending_risk.core.fixed_point import Wad
from lending_risk.core.models import Action, Obligation, Side
from lending_risk.engine.valuation import ObligationValuator, StalenessBounds, utilization_percent


def reserves_of(*reserves):
    return {r.asset_id: r for r in reserves}


class TestEndToEnd:
    """The reference borrow-limit scenario."""

    def test_eighty_dollar_borrow_is_full_utilization(self, valuator, usdc_reserve):
        obligation = TestFixtures.create_obligation(
            deposits=[(usdc_reserve, 100)], borrows=[(usdc_reserve, 80)]
        )

        summary = valuator.value(obligation, reserves_of(usdc_reserve), NOW).unwrap()

        assert summary.min_price_borrow_limit_usd == Wad(80)
        assert summary.weighted_borrowed_amount_usd == Wad(80)
        assert summary.weighted_conservative_borrow_utilization_percent == Wad(100)
        assert summary.display_utilization == "100.00%"
        assert summary.net_value_usd == Wad(20)


class TestPriceBounds:
    """Collateral is valued at min price, debt at max price."""

    def test_deposit_uses_min_price(self, valuator, sui_reserve):
        obligation = TestFixtures.create_obligation(deposits=[(sui_reserve, 10)])

        summary = valuator.summarize(obligation, reserves_of(sui_reserve), NOW)

        assert summary.deposited_amount_usd == Wad(20)
        assert summary.borrow_limit_usd == Wad(14)
        assert summary.min_price_borrow_limit_usd == Wad("13.3")
        assert summary.max_price_borrow_limit_usd == Wad("14.25")
        assert summary.unhealthy_borrow_value_usd == Wad(15)

    def test_borrow_uses_max_price_and_weight(self, valuator, usdc_reserve, sui_reserve):
        obligation = TestFixtures.create_obligation(
            deposits=[(usdc_reserve, 100)], borrows=[(sui_reserve, 5)]
        )

        summary = valuator.summarize(obligation, reserves_of(usdc_reserve, sui_reserve), NOW)

        assert summary.borrowed_amount_usd == Wad(10)
        assert summary.weighted_borrowed_amount_usd == Wad("15.75")
        assert summary.spot_weighted_borrowed_amount_usd == Wad(15)
        position = summary.position(SUI, Side.BORROW)
        assert position.conservative_price == Wad("2.1")
        assert position.weighted_usd == Wad("15.75")

    def test_accrued_interest_included(self, valuator, usdc_reserve):
        obligation = TestFixtures.create_obligation(
            deposits=[(usdc_reserve, 1000)], borrows=[(usdc_reserve, 80)]
        )
        accrued = replace(usdc_reserve, cumulative_borrow_rate=Wad("1.1"))

        summary = valuator.summarize(obligation, reserves_of(accrued), NOW)

        assert summary.borrowed_amount_usd == Wad(88)

    def test_liquidatable_on_spot_values(self, valuator, sui_reserve, usdc_reserve):
        obligation = TestFixtures.create_obligation(
            deposits=[(sui_reserve, 10)], borrows=[(usdc_reserve, 16)]
        )

        summary = valuator.summarize(obligation, reserves_of(sui_reserve, usdc_reserve), NOW)

        assert summary.unhealthy_borrow_value_usd == Wad(15)
        assert summary.is_liquidatable


class TestUtilization:
    """Tests for utilization edge cases."""

    def test_no_debt_is_zero(self):
        assert utilization_percent(Wad.ZERO, Wad.ZERO) == Wad.ZERO
        assert utilization_percent(Wad.ZERO, Wad(100)) == Wad.ZERO

    def test_debt_without_limit_is_not_available(self, valuator, usdc_reserve):
        obligation = TestFixtures.create_obligation(borrows=[(usdc_reserve, 10)])

        summary = valuator.summarize(obligation, reserves_of(usdc_reserve), NOW)

        assert summary.weighted_conservative_borrow_utilization_percent is None
        assert summary.display_utilization == "N/A"

    def test_account_limit_caps_borrow_limit(self, usdc_reserve):
        valuator = ObligationValuator(StalenessBounds(300, 300), account_borrow_limit_usd=50)
        obligation = TestFixtures.create_obligation(deposits=[(usdc_reserve, 100)])

        summary = valuator.summarize(obligation, reserves_of(usdc_reserve), NOW)

        assert summary.min_price_borrow_limit_usd == Wad(50)
        assert summary.uncapped_min_price_borrow_limit_usd == Wad(80)

    def test_empty_obligation(self, valuator, usdc_reserve):
        summary = valuator.summarize(Obligation(id="empty"), reserves_of(usdc_reserve), NOW)

        assert summary.deposited_amount_usd == Wad.ZERO
        assert summary.display_utilization == "0.00%"


class TestFailures:
    """Valuation failures come back as outcomes."""

    def test_stale_price(self, valuator, usdc_reserve):
        stale = replace(usdc_reserve, price_last_update_timestamp_s=NOW - 301)
        obligation = TestFixtures.create_obligation(deposits=[(stale, 100)])

        outcome = valuator.value(obligation, reserves_of(stale), NOW)

        assert isinstance(outcome.error, StaleDataError)
        assert outcome.status == "stale_data"

    def test_stale_interest(self, valuator, usdc_reserve):
        stale = replace(usdc_reserve, interest_last_update_timestamp_s=NOW - 400)
        obligation = TestFixtures.create_obligation(deposits=[(stale, 100)])

        assert isinstance(valuator.value(obligation, reserves_of(stale), NOW).error, StaleDataError)

    def test_interest_check_ignores_price_age(self, valuator, usdc_reserve):
        reserve = replace(usdc_reserve, price_last_update_timestamp_s=NOW - 10_000)
        valuator.check_interest_fresh(reserve, NOW)

        with pytest.raises(StaleDataError) as exc_info:
            valuator.check_interest_fresh(replace(reserve, interest_last_update_timestamp_s=NOW - 301), NOW)
        assert exc_info.value.max_age_s == 300

    def test_unknown_reserve(self, valuator, usdc_reserve, sui_reserve):
        obligation = TestFixtures.create_obligation(deposits=[(sui_reserve, 1)])

        outcome = valuator.value(obligation, reserves_of(usdc_reserve), NOW)

        assert isinstance(outcome.error, InvalidConfiguration)

    def test_value_obligations_keyed_by_id(self, valuator, usdc_reserve):
        obligations = [
            TestFixtures.create_obligation("a", deposits=[(usdc_reserve, 1)]),
            TestFixtures.create_obligation("b", borrows=[(usdc_reserve, 1)]),
        ]

        results = valuator.value_obligations(obligations, reserves_of(usdc_reserve), NOW)

        assert set(results) == {"a", "b"}
        assert all(r.is_ok for r in results.values())


class TestSimulateAction:
    """Tests for simulate_action."""

    @pytest.fixture
    def summary(self, valuator, usdc_reserve):
        obligation = TestFixtures.create_obligation(
            deposits=[(usdc_reserve, 100)], borrows=[(usdc_reserve, 40)]
        )
        return valuator.summarize(obligation, reserves_of(usdc_reserve), NOW)

    def test_borrow_increases_utilization(self, valuator, summary, usdc_reserve):
        after = valuator.simulate_action(summary, usdc_reserve, Action.BORROW, Wad(40))

        assert summary.weighted_conservative_borrow_utilization_percent == Wad(50)
        assert after.weighted_conservative_borrow_utilization_percent == Wad(100)

    def test_deposit_new_asset(self, valuator, summary, sui_reserve):
        after = valuator.simulate_action(summary, sui_reserve, Action.DEPOSIT, Wad(10))

        assert after.min_price_borrow_limit_usd == Wad("93.3")

    def test_withdraw_clamps_at_zero(self, valuator, summary, usdc_reserve):
        after = valuator.simulate_action(summary, usdc_reserve, Action.WITHDRAW, Wad(1000))

        assert after.deposits == ()
        assert after.weighted_conservative_borrow_utilization_percent is None

    def test_repay_clears_debt(self, valuator, summary, usdc_reserve):
        after = valuator.simulate_action(summary, usdc_reserve, Action.REPAY, Wad(40))

        assert after.borrowed_amount_usd == Wad.ZERO

    def test_negative_amount_rejected(self, valuator, summary, usdc_reserve):
        with pytest.raises(InvalidConfiguration):
            valuator.simulate_action(summary, usdc_reserve, Action.DEPOSIT, Wad(-1))
