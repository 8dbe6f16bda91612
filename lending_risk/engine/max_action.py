"""Largest safe amount for a deposit, withdraw, borrow or repay.

Each action is bounded by several independent caps (liquidity, reserve
limits, the market's outflow limiter, account health). The health cap for
borrows and withdrawals has no closed form once several assets and weights
interact, so it is found by bisection over the token amount. The result is
the smallest cap, reported with the reason that binds.
"""

import logging
from dataclasses import dataclass, field
from typing import List, Mapping, Optional, Tuple

from ..core.constants import (
    DEPOSIT_LIMIT_INTEREST_BUFFER_SECONDS,
    MIN_AVAILABLE_AMOUNT,
    SECONDS_PER_YEAR,
    U64_MAX,
)
from ..core.errors import InvalidConfiguration, LendingRiskError, SolverDidNotConverge
from ..core.fixed_point import Rounding, Wad
from ..core.models.asset import Action, AssetId
from ..core.models.obligation import Obligation, ObligationSummary
from ..core.models.rate_limiter import RateLimiterConfig, RateLimiterState
from ..core.models.reserve import Reserve
from ..core.result import Outcome
from .interest import deposit_apr
from .rate_limiter import remaining_outflow
from .solver import BisectionConfig, bisect_max
from .valuation import ObligationValuator

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ActionCap:
    reason: str
    value: Wad  # Whole tokens


@dataclass(frozen=True)
class ActionLimit:
    """Largest permitted amount for one action.

    ``value`` is ``None`` when nothing bounds the action.
    """

    action: Action
    asset_id: AssetId
    value: Optional[Wad]
    binding_reason: Optional[str] = None
    caps: Tuple[ActionCap, ...] = field(default_factory=tuple)
    solver_iterations: int = 0

    def rejects(self, amount: Wad) -> Optional[str]:
        """Reason the first violated cap gives for refusing ``amount``, if any."""
        for cap in self.caps:
            if amount > cap.value:
                return cap.reason
        return None


def _is_healthy(summary: ObligationSummary) -> bool:
    utilization = summary.weighted_conservative_borrow_utilization_percent
    return utilization is not None and utilization <= 100


class ActionLimitCalculator:
    """Computes ``ActionLimit``s for obligations in one market."""

    def __init__(self, valuator: ObligationValuator, bisection: BisectionConfig = BisectionConfig()):
        self.valuator = valuator
        self.bisection = bisection

    # ========== PUBLIC API ==========

    def max_action_amount(
        self,
        obligation: Obligation,
        reserves: Mapping[AssetId, Reserve],
        asset_id: AssetId,
        action: Action,
        now_s: int,
        rate_limiter_config: Optional[RateLimiterConfig] = None,
        rate_limiter_state: Optional[RateLimiterState] = None,
        balance: Optional[Wad] = None,
    ) -> Outcome[ActionLimit]:
        """Largest amount of ``asset_id`` the obligation can ``action``.

        Args:
            obligation: The user's current position.
            reserves: Refreshed reserves, keyed by asset id.
            asset_id: Reserve the action targets.
            action: Deposit, withdraw, borrow or repay.
            now_s: Current time, for staleness and rate limiting.
            rate_limiter_config: Market outflow limiter, if any.
            rate_limiter_state: Current limiter state.
            balance: Wallet balance in whole tokens, caps deposits and repays.

        Returns:
            Outcome with an ``ActionLimit``. When the health search does not
            converge the outcome is a ``SolverDidNotConverge`` failure still
            carrying a limit built from the best feasible lower bound.
        """
        try:
            reserve = reserves.get(asset_id)
            if reserve is None:
                raise InvalidConfiguration(f"Unknown reserve {asset_id}")
            self.valuator.check_fresh(reserve, now_s)
            summary = self.valuator.summarize(obligation, reserves, now_s)

            caps: List[ActionCap] = []
            if balance is not None and action in (Action.DEPOSIT, Action.REPAY):
                caps.append(ActionCap(f"Insufficient {reserve}", Wad(balance)))

            solver_error = None
            iterations = 0
            if action == Action.DEPOSIT:
                caps.extend(self._deposit_caps(reserve))
            elif action == Action.REPAY:
                caps.extend(self._repay_caps(summary, reserve))
            else:
                caps.extend(
                    self._outflow_caps(summary, reserve, action, rate_limiter_config, rate_limiter_state, now_s)
                )
                health = self._health_cap(summary, reserve, action)
                if health.error is not None and health.value is None:
                    raise health.error
                solution = health.value
                iterations = solution.iterations
                solver_error = health.error
                caps.append(
                    ActionCap(
                        "Borrows cannot exceed borrow limit"
                        if action == Action.BORROW
                        else "Withdraw is unhealthy",
                        solution.value if solution.feasible else Wad.ZERO,
                    )
                )
        except LendingRiskError as e:
            return Outcome.failure(e)

        limit = self._combine(action, reserve, caps, iterations)
        if solver_error is not None:
            logger.warning(f"Max {action.value} for {obligation.id} is a lower bound: {solver_error}")
            return Outcome.failure(solver_error, value=limit)
        return Outcome.ok(limit)

    # ========== CAPS ==========

    def _deposit_caps(self, reserve: Reserve) -> List[ActionCap]:
        """Reserve deposit limits, leaving headroom for a few minutes of interest."""
        caps = []
        deposited = reserve.deposited_tokens
        buffer_rate = deposit_apr(reserve).mul(Wad(DEPOSIT_LIMIT_INTEREST_BUFFER_SECONDS)) / SECONDS_PER_YEAR

        if reserve.config.deposit_limit != U64_MAX:
            safe_limit = reserve.to_tokens(reserve.config.deposit_limit) - deposited.mul(buffer_rate, Rounding.UP)
            caps.append(ActionCap("Exceeds reserve deposit limit", max(safe_limit - deposited, Wad.ZERO)))

        if reserve.config.deposit_limit_usd != U64_MAX and reserve.max_price > 0:
            deposited_usd = deposited.mul(reserve.max_price, Rounding.UP)
            safe_limit_usd = Wad(reserve.config.deposit_limit_usd) - deposited_usd.mul(buffer_rate, Rounding.UP)
            caps.append(
                ActionCap(
                    "Exceeds reserve USD deposit limit",
                    max((safe_limit_usd - deposited_usd).div(reserve.max_price), Wad.ZERO),
                )
            )
        return caps

    def _repay_caps(self, summary: ObligationSummary, reserve: Reserve) -> List[ActionCap]:
        position = summary.position(reserve.asset_id, Action.REPAY.side)
        owed = position.amount if position else Wad.ZERO
        return [ActionCap("Repay amount exceeds borrowed amount", owed)]

    def _outflow_caps(
        self,
        summary: ObligationSummary,
        reserve: Reserve,
        action: Action,
        rate_limiter_config: Optional[RateLimiterConfig],
        rate_limiter_state: Optional[RateLimiterState],
        now_s: int,
    ) -> List[ActionCap]:
        caps = []
        fee_factor = Wad.ONE + reserve.config.borrow_fee if action == Action.BORROW else Wad.ONE
        liquidity = reserve.to_tokens(max(reserve.available_amount - MIN_AVAILABLE_AMOUNT, 0))

        if action == Action.WITHDRAW:
            position = summary.position(reserve.asset_id, action.side)
            deposited = position.amount if position else Wad.ZERO
            caps.append(ActionCap("Withdraws cannot exceed deposits", deposited))
            caps.append(ActionCap("Insufficient liquidity to withdraw", liquidity))
        else:
            caps.append(ActionCap("Insufficient liquidity to borrow", liquidity.div(fee_factor)))
            if reserve.config.borrow_limit != U64_MAX:
                headroom = reserve.to_tokens(reserve.config.borrow_limit) - reserve.borrowed_tokens
                caps.append(ActionCap("Over reserve borrow limit", max(headroom.div(fee_factor), Wad.ZERO)))
            if reserve.config.borrow_limit_usd != U64_MAX and reserve.price > 0:
                headroom_usd = Wad(reserve.config.borrow_limit_usd) - reserve.borrowed_tokens.mul(reserve.price, Rounding.UP)
                caps.append(
                    ActionCap(
                        "Exceeds reserve USD borrow limit",
                        max(headroom_usd.div(reserve.price).div(fee_factor), Wad.ZERO),
                    )
                )

        if rate_limiter_config is not None:
            remaining = remaining_outflow(rate_limiter_config, rate_limiter_state or RateLimiterState(), now_s)
            if remaining is not None:
                # Outflow is valued at the conservative (max) price, borrow-weighted for borrows
                price = reserve.max_price
                if action == Action.BORROW:
                    price = price.mul(reserve.config.borrow_weight, Rounding.UP)
                value = remaining.div(price).div(fee_factor) if price > 0 else Wad.ZERO
                caps.append(ActionCap("Pool outflow rate limit surpassed", value))

        return caps

    def _health_cap(self, summary: ObligationSummary, reserve: Reserve, action: Action):
        """Bisect for the largest amount keeping utilization at or below 100 %."""
        if action == Action.BORROW:
            fee_factor = Wad.ONE + reserve.config.borrow_fee
            upper = reserve.available_tokens

            def predicate(amount: Wad) -> bool:
                simulated = self.valuator.simulate_action(
                    summary, reserve, Action.BORROW, amount.mul(fee_factor, Rounding.UP)
                )
                return _is_healthy(simulated)

        else:
            position = summary.position(reserve.asset_id, action.side)
            upper = position.amount if position else Wad.ZERO

            def predicate(amount: Wad) -> bool:
                simulated = self.valuator.simulate_action(summary, reserve, Action.WITHDRAW, amount)
                return _is_healthy(simulated)

        outcome = bisect_max(predicate, Wad.ZERO, upper, self.bisection)
        if not outcome.is_ok and not isinstance(outcome.error, SolverDidNotConverge):
            return Outcome.failure(outcome.error)
        return outcome

    def _combine(self, action: Action, reserve: Reserve, caps: List[ActionCap], iterations: int) -> ActionLimit:
        binding = min(caps, key=lambda c: c.value) if caps else None
        value = None
        if binding is not None:
            # Round down to what the token can represent
            value = max(binding.value, Wad.ZERO).round_to(min(reserve.mint_decimals, 18), Rounding.DOWN)
        return ActionLimit(
            action=action,
            asset_id=reserve.asset_id,
            value=value,
            binding_reason=binding.reason if binding else None,
            caps=tuple(caps),
            solver_iterations=iterations,
        )
