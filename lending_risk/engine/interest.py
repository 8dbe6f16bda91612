"""Reserve interest accrual.

Interest compounds per refresh: the borrow index grows by
``1 + APR * elapsed / SECONDS_PER_YEAR`` and outstanding debt grows with it.
All accrual rounds down so rounding never credits borrowers or lenders with
value the reserve does not hold.
"""

import logging
from dataclasses import replace
from typing import Dict, Mapping, Tuple

from ..core.constants import BPS_DENOMINATOR, SECONDS_PER_YEAR
from ..core.errors import LendingRiskError
from ..core.fixed_point import Rounding, Wad
from ..core.models.asset import AssetId
from ..core.models.reserve import InterestRateCurve, Reserve
from ..core.result import Outcome

logger = logging.getLogger(__name__)


def interpolate_apr(curve: InterestRateCurve, utilization_percent: Wad) -> Wad:
    """Borrow APR (as a fraction) at the given utilization.

    Utilization outside 0..100 % is clamped to the curve's ends.
    """
    points = curve.points
    if utilization_percent <= points[0][0]:
        return Wad.from_bps(points[0][1])
    if utilization_percent >= points[-1][0]:
        return Wad.from_bps(points[-1][1])

    for (u0, a0), (u1, a1) in zip(points, points[1:]):
        if utilization_percent <= u1:
            # a0 + (a1 - a0) * (u - u0) / (u1 - u0), in bps
            fraction = (utilization_percent - u0) / (u1 - u0)
            apr_bps = Wad(a0) + fraction.mul(Wad(a1 - a0))
            return apr_bps / BPS_DENOMINATOR

    return Wad.from_bps(points[-1][1])


def borrow_apr(reserve: Reserve) -> Wad:
    return interpolate_apr(reserve.config.interest_rate_curve, reserve.utilization_percent)


def deposit_apr(reserve: Reserve) -> Wad:
    """Lender APR: borrow APR scaled by utilization, net of the spread fee."""
    return (
        borrow_apr(reserve)
        .mul(reserve.utilization)
        .mul(Wad.ONE - reserve.config.spread_fee)
    )


def apr_to_apy(apr: Wad, periods_per_year: int = 365) -> Wad:
    """Compound an APR over ``periods_per_year`` periods: (1 + apr/n)^n - 1."""
    if periods_per_year <= 0:
        return apr
    per_period = apr / periods_per_year
    return (Wad.ONE + per_period).pow(periods_per_year) - Wad.ONE


def compound_interest(reserve: Reserve, now_s: int) -> Outcome[Reserve]:
    """Accrue interest on a reserve up to ``now_s``.

    Returns the input unchanged when no time has elapsed. An arithmetic
    overflow comes back as a failed outcome and the reserve must be treated
    as unusable until upstream data is corrected.
    """
    elapsed = now_s - reserve.interest_last_update_timestamp_s
    if elapsed <= 0:
        return Outcome.ok(reserve)

    try:
        apr = borrow_apr(reserve)
        rate_delta = apr.mul(Wad(elapsed)) / SECONDS_PER_YEAR
        growth = Wad.ONE + rate_delta

        new_cumulative_rate = reserve.cumulative_borrow_rate.mul(growth, Rounding.DOWN)
        new_debt = reserve.borrowed_amount.mul(rate_delta, Rounding.DOWN)
        spread_fees = new_debt.mul(reserve.config.spread_fee, Rounding.DOWN)

        refreshed = replace(
            reserve,
            cumulative_borrow_rate=new_cumulative_rate,
            borrowed_amount=reserve.borrowed_amount + new_debt,
            unclaimed_spread_fees=reserve.unclaimed_spread_fees + spread_fees,
            interest_last_update_timestamp_s=now_s,
        )
    except LendingRiskError as e:
        logger.error(f"Interest accrual failed for {reserve}: {e}")
        return Outcome.failure(e)

    logger.debug(
        f"Compounded {reserve} over {elapsed}s at APR {apr}: index "
        f"{reserve.cumulative_borrow_rate} -> {new_cumulative_rate}"
    )
    return Outcome.ok(refreshed)


def compound_reserves(
    reserves: Mapping[AssetId, Reserve], now_s: int
) -> Tuple[Dict[AssetId, Reserve], Dict[AssetId, LendingRiskError]]:
    """Refresh every reserve, collecting failures instead of stopping.

    Failed reserves are left out of the returned map.
    """
    refreshed: Dict[AssetId, Reserve] = {}
    errors: Dict[AssetId, LendingRiskError] = {}

    for asset_id, reserve in reserves.items():
        outcome = compound_interest(reserve, now_s)
        if outcome.is_ok:
            refreshed[asset_id] = outcome.value
        else:
            errors[asset_id] = outcome.error

    if errors:
        logger.warning(f"{len(errors)} of {len(reserves)} reserves failed to compound")

    return refreshed, errors
