"""Obligation valuation.

Folds an obligation's deposits and borrows into account-level risk figures.
Every figure uses the price bound least favourable to the position holder:

- collateral at ``min_price`` for both the open-LTV borrow limit and the
  liquidation-threshold limit
- debt at ``max_price``, scaled by the reserve's borrow weight

Spot-price figures are reported alongside for parity with the on-chain
liquidation check. Positions are summed independently; nothing is netted
across assets.
"""

import logging
from dataclasses import dataclass, replace
from typing import Dict, Iterable, List, Mapping, Optional

from ..core.constants import ACCOUNT_BORROW_LIMIT_USD
from ..core.errors import InvalidConfiguration, StaleDataError
from ..core.fixed_point import Rounding, Wad
from ..core.models.asset import Action, AssetId, Side
from ..core.models.obligation import Obligation, ObligationSummary, PositionValuation
from ..core.models.reserve import Reserve
from ..core.result import Outcome

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StalenessBounds:
    """Maximum accepted age, in seconds, of reserve inputs."""

    max_price_age_s: int
    max_interest_age_s: int


def _sum(values: Iterable[Wad]) -> Wad:
    return sum(values, Wad.ZERO)


def deposit_valuation(reserve: Reserve, shares) -> PositionValuation:
    """Value ``shares`` receipt tokens of ``reserve`` collateral."""
    amount = reserve.to_tokens(reserve.shares_to_amount(shares))
    return PositionValuation(
        asset_id=reserve.asset_id,
        side=Side.DEPOSIT,
        amount=amount,
        price=reserve.price,
        conservative_price=reserve.min_price,
        open_ltv=reserve.config.open_ltv,
        close_ltv=reserve.config.close_ltv,
    )


def borrow_valuation(reserve: Reserve, borrowed_amount: Wad, rate_snapshot: Wad) -> PositionValuation:
    """Value debt, including interest accrued since ``rate_snapshot``.

    Debt rounds up so an obligation is never shown owing less than it does.
    """
    current = borrowed_amount.mul(reserve.cumulative_borrow_rate, Rounding.UP).div(
        rate_snapshot, Rounding.UP
    )
    amount = current.div(Wad(reserve.decimals_factor), Rounding.UP)
    return PositionValuation(
        asset_id=reserve.asset_id,
        side=Side.BORROW,
        amount=amount,
        price=reserve.price,
        conservative_price=reserve.max_price,
        borrow_weight=reserve.config.borrow_weight,
    )


def utilization_percent(weighted_borrowed_usd: Wad, borrow_limit_usd: Wad) -> Optional[Wad]:
    """Weighted debt as a percentage of the conservative borrow limit.

    ``None`` when the limit is zero but there is weighted debt.
    """
    if not borrow_limit_usd:
        return None if weighted_borrowed_usd > 0 else Wad.ZERO
    return (weighted_borrowed_usd * 100).div(borrow_limit_usd, Rounding.HALF_UP)


def summarize(
    obligation_id: str,
    deposits: Iterable[PositionValuation],
    borrows: Iterable[PositionValuation],
    account_borrow_limit_usd: Wad,
) -> ObligationSummary:
    """Aggregate position valuations into an ``ObligationSummary``."""
    deposits = tuple(d for d in deposits if d.amount > 0)
    borrows = tuple(b for b in borrows if b.amount > 0)

    weighted_borrowed = _sum(b.weighted_usd for b in borrows)
    uncapped_limit = _sum(d.weighted_usd for d in deposits)
    min_price_limit = min(uncapped_limit, account_borrow_limit_usd)

    return ObligationSummary(
        obligation_id=obligation_id,
        deposited_amount_usd=_sum(d.amount_usd for d in deposits),
        borrowed_amount_usd=_sum(b.amount_usd for b in borrows),
        weighted_borrowed_amount_usd=weighted_borrowed,
        spot_weighted_borrowed_amount_usd=_sum(
            b.amount_usd.mul(b.borrow_weight, Rounding.HALF_UP) for b in borrows
        ),
        borrow_limit_usd=_sum(d.amount_usd.mul(d.open_ltv, Rounding.HALF_UP) for d in deposits),
        min_price_borrow_limit_usd=min_price_limit,
        uncapped_min_price_borrow_limit_usd=uncapped_limit,
        max_price_borrow_limit_usd=_sum(
            d.conservative_usd.mul(d.close_ltv, Rounding.HALF_UP) for d in deposits
        ),
        unhealthy_borrow_value_usd=_sum(
            d.amount_usd.mul(d.close_ltv, Rounding.HALF_UP) for d in deposits
        ),
        weighted_conservative_borrow_utilization_percent=utilization_percent(
            weighted_borrowed, min_price_limit
        ),
        deposits=deposits,
        borrows=borrows,
    )


class ObligationValuator:
    """Values obligations against a set of refreshed reserves.

    Stateless apart from its configuration, so one instance can be shared
    across threads or pickled into worker processes.
    """

    def __init__(
        self,
        staleness: StalenessBounds,
        account_borrow_limit_usd=ACCOUNT_BORROW_LIMIT_USD,
    ):
        self.staleness = staleness
        self.account_borrow_limit_usd = Wad(account_borrow_limit_usd)

    def check_fresh(self, reserve: Reserve, now_s: int) -> None:
        """Raise ``StaleDataError`` if the reserve's price or interest is too old."""
        price_age = now_s - reserve.price_last_update_timestamp_s
        if price_age > self.staleness.max_price_age_s:
            raise StaleDataError(
                f"Price of {reserve} is {price_age}s old "
                f"(max {self.staleness.max_price_age_s}s)",
                asset_id=reserve.asset_id,
                age_s=price_age,
                max_age_s=self.staleness.max_price_age_s,
            )
        self.check_interest_fresh(reserve, now_s)

    def check_interest_fresh(self, reserve: Reserve, now_s: int) -> None:
        """Raise ``StaleDataError`` if the interest index is too old.

        The pipeline applies this to reserves as fetched, before accrual
        moves their timestamp to the build time.
        """
        interest_age = now_s - reserve.interest_last_update_timestamp_s
        if interest_age > self.staleness.max_interest_age_s:
            raise StaleDataError(
                f"Interest index of {reserve} is {interest_age}s old "
                f"(max {self.staleness.max_interest_age_s}s)",
                asset_id=reserve.asset_id,
                age_s=interest_age,
                max_age_s=self.staleness.max_interest_age_s,
            )

    def involved_reserves(
        self, obligation: Obligation, reserves: Mapping[AssetId, Reserve]
    ) -> Dict[AssetId, Reserve]:
        """The reserves an obligation references.

        Raises:
            InvalidConfiguration: If a referenced reserve is missing.
        """
        involved = {}
        for asset_id in obligation.asset_ids:
            reserve = reserves.get(asset_id)
            if reserve is None:
                raise InvalidConfiguration(
                    f"Obligation {obligation.id} references unknown reserve {asset_id}"
                )
            involved[asset_id] = reserve
        return involved

    def summarize(self, obligation: Obligation, reserves: Mapping[AssetId, Reserve], now_s: int) -> ObligationSummary:
        """Raising form of ``value``."""
        involved = self.involved_reserves(obligation, reserves)
        for reserve in involved.values():
            self.check_fresh(reserve, now_s)

        deposits = [
            deposit_valuation(involved[d.asset_id], d.deposited_share_amount)
            for d in obligation.deposits
        ]
        borrows = [
            borrow_valuation(
                involved[b.asset_id], b.borrowed_amount, b.cumulative_borrow_rate_snapshot
            )
            for b in obligation.borrows
        ]
        return summarize(obligation.id, deposits, borrows, self.account_borrow_limit_usd)

    def value(
        self, obligation: Obligation, reserves: Mapping[AssetId, Reserve], now_s: int
    ) -> Outcome[ObligationSummary]:
        """Value one obligation.

        Args:
            obligation: The position to value.
            reserves: Refreshed reserves, keyed by asset id.
            now_s: Current time, used for the staleness checks.

        Returns:
            Outcome with the summary, or a ``StaleDataError`` /
            ``InvalidConfiguration`` / ``ArithmeticOverflow`` failure.
        """
        outcome = Outcome.capture(self.summarize, obligation, reserves, now_s)
        if not outcome.is_ok:
            logger.debug(f"Obligation {obligation.id} not valued: {outcome.error}")
        return outcome

    def value_obligations(
        self,
        obligations: Iterable[Obligation],
        reserves: Mapping[AssetId, Reserve],
        now_s: int,
    ) -> Dict[str, Outcome[ObligationSummary]]:
        return {o.id: self.value(o, reserves, now_s) for o in obligations}

    def simulate_action(
        self,
        summary: ObligationSummary,
        reserve: Reserve,
        action: Action,
        amount: Wad,
    ) -> ObligationSummary:
        """Summary after applying ``action`` for ``amount`` whole tokens.

        Withdrawals and repayments larger than the position clear it.
        """
        amount = Wad(amount)
        if amount < 0:
            raise InvalidConfiguration(f"Negative {action.value} amount {amount}")

        side = action.side
        existing = summary.position(reserve.asset_id, side)
        if existing is None:
            if side == Side.DEPOSIT:
                existing = deposit_valuation(reserve, 0)
            else:
                existing = borrow_valuation(reserve, Wad.ZERO, reserve.cumulative_borrow_rate)

        if action in (Action.DEPOSIT, Action.BORROW):
            new_amount = existing.amount + amount
        else:
            new_amount = max(existing.amount - amount, Wad.ZERO)
        updated = replace(existing, amount=new_amount)

        positions: List[PositionValuation] = list(
            summary.deposits if side == Side.DEPOSIT else summary.borrows
        )
        positions = [p for p in positions if p.asset_id != reserve.asset_id] + [updated]

        if side == Side.DEPOSIT:
            return summarize(summary.obligation_id, positions, summary.borrows, self.account_borrow_limit_usd)
        return summarize(summary.obligation_id, summary.deposits, positions, self.account_borrow_limit_usd)
