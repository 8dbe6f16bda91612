"""Risk pipeline orchestration.

Turns one parsed market snapshot into an immutable ``ReadModel``:
interest accrual, reward index refresh, obligation valuation, looping
classification and claimable rewards. Valuation is the only expensive step
and fans out across a worker pool; every other step is a cheap pass over the
reserves.
"""

import logging
import os
from concurrent.futures import Executor, ProcessPoolExecutor
from typing import Dict, Mapping, Optional, Sequence

from config.settings import Settings, get_settings
from lending_risk.core.errors import LendingRiskError
from lending_risk.core.fixed_point import Wad
from lending_risk.core.models import (
    AssetId,
    MarketSnapshot,
    Obligation,
    ObligationReport,
    ObligationSummary,
    ReadModel,
    Reserve,
)
from lending_risk.core.result import Outcome
from lending_risk.engine.interest import compound_reserves
from lending_risk.engine.looping import CorrelatedAssetGroups, is_looping, looped_asset_pairs, was_looping
from lending_risk.engine.max_action import ActionLimitCalculator
from lending_risk.engine.rate_limiter import remaining_outflow
from lending_risk.engine.rewards import claimable_rewards, refresh_reserve_rewards
from lending_risk.engine.solver import BisectionConfig
from lending_risk.engine.valuation import ObligationValuator, StalenessBounds

logger = logging.getLogger(__name__)


def _value_obligation_task(
    valuator: ObligationValuator,
    obligation: Obligation,
    reserves: Mapping[AssetId, Reserve],
    now_s: int,
) -> Outcome[ObligationSummary]:
    """Worker entry point; module level so process pools can pickle it."""
    return valuator.value(obligation, reserves, now_s)


class RiskPipeline:
    """Builds read models from market snapshots.

    Engines receive their parameters explicitly; settings are only read here.
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        executor: Optional[Executor] = None,
        groups: Optional[CorrelatedAssetGroups] = None,
    ):
        """Initialize the pipeline.

        Args:
            settings: Application settings
            executor: Optional executor for batch valuation (a process pool
                bounded by the CPU count is created on first use if None)
            groups: Correlated asset groups (built from settings if None)
        """
        self.settings = settings or get_settings()
        self.valuator = ObligationValuator(
            StalenessBounds(
                max_price_age_s=self.settings.max_price_age_seconds,
                max_interest_age_s=self.settings.max_interest_age_seconds,
            ),
            account_borrow_limit_usd=self.settings.account_borrow_limit_usd,
        )
        self.groups = groups or CorrelatedAssetGroups.from_lists(
            self.settings.stablecoin_asset_ids, self.settings.eth_asset_ids
        )
        self._executor = executor
        self._owns_executor = executor is None

    @property
    def bisection_config(self) -> BisectionConfig:
        return BisectionConfig(
            max_iterations=self.settings.bisection_max_iterations,
            tolerance=Wad(self.settings.bisection_tolerance),
        )

    def action_calculator(self) -> ActionLimitCalculator:
        """Max-action calculator sharing this pipeline's valuation settings."""
        return ActionLimitCalculator(self.valuator, self.bisection_config)

    def _get_executor(self) -> Executor:
        """Get or create the worker pool."""
        if self._executor is None:
            workers = self.settings.max_workers or os.cpu_count() or 1
            logger.info(f"Starting valuation pool with {workers} workers")
            self._executor = ProcessPoolExecutor(max_workers=workers)
        return self._executor

    # ========== VALUATION ==========

    def value_obligations(
        self,
        obligations: Sequence[Obligation],
        reserves: Mapping[AssetId, Reserve],
        now_s: int,
        reserve_errors: Optional[Mapping[AssetId, LendingRiskError]] = None,
    ) -> Dict[str, Outcome[ObligationSummary]]:
        """Value obligations, in parallel once there are enough of them.

        Obligations touching an unusable reserve fail with that reserve's
        error. Each task only receives the reserves its obligation references.
        """
        reserve_errors = reserve_errors or {}
        results: Dict[str, Outcome[ObligationSummary]] = {}
        pending = []
        for obligation in obligations:
            broken = [a for a in obligation.asset_ids if a in reserve_errors]
            if broken:
                results[obligation.id] = Outcome.failure(reserve_errors[broken[0]])
            else:
                pending.append(obligation)

        if len(pending) < self.settings.parallel_min_obligations:
            results.update(self.valuator.value_obligations(pending, reserves, now_s))
            return results

        executor = self._get_executor()
        futures = {
            obligation.id: executor.submit(
                _value_obligation_task,
                self.valuator,
                obligation,
                {a: reserves[a] for a in obligation.asset_ids if a in reserves},
                now_s,
            )
            for obligation in pending
        }
        logger.debug(f"Submitted {len(futures)} valuation tasks")
        results.update({obligation_id: future.result() for obligation_id, future in futures.items()})
        return results

    def check_interest_ages(
        self, reserves: Mapping[AssetId, Reserve], now_s: int
    ) -> Dict[AssetId, LendingRiskError]:
        """Errors for reserves whose fetched interest index is too old to accrue from."""
        errors = {}
        for asset_id, reserve in reserves.items():
            outcome = Outcome.capture(self.valuator.check_interest_fresh, reserve, now_s)
            if not outcome.is_ok:
                errors[asset_id] = outcome.error
        return errors

    # ========== BUILD ==========

    def build(self, snapshot: MarketSnapshot, now_s: int) -> ReadModel:
        """Run every engine over ``snapshot`` and return a new read model."""
        logger.info(
            f"Building read model for {snapshot.market_id}: "
            f"{len(snapshot.reserves)} reserves, {len(snapshot.obligations)} obligations"
        )

        reserve_errors = self.check_interest_ages(snapshot.reserves, now_s)
        fresh = {a: r for a, r in snapshot.reserves.items() if a not in reserve_errors}
        reserves, accrual_errors = compound_reserves(fresh, now_s)
        reserve_errors.update(accrual_errors)
        for asset_id, error in reserve_errors.items():
            logger.error(f"Reserve {asset_id} unusable: {error}")
        reserves = {asset_id: refresh_reserve_rewards(r, now_s) for asset_id, r in reserves.items()}

        valuations = self.value_obligations(snapshot.obligations, reserves, now_s, reserve_errors)

        reports: Dict[str, ObligationReport] = {}
        for obligation in snapshot.obligations:
            reports[obligation.id] = ObligationReport(
                obligation_id=obligation.id,
                valuation=valuations[obligation.id],
                is_looping=is_looping(obligation, self.groups),
                was_looping=was_looping(obligation, self.groups),
                looped_pairs=tuple(looped_asset_pairs(obligation, self.groups)),
            )

        pools = [
            pool
            for r in reserves.values()
            for pool in (r.deposits_reward_pool, r.borrows_reward_pool)
            if pool is not None
        ]
        claims = claimable_rewards(snapshot.obligations, pools)

        remaining = Outcome.capture(
            remaining_outflow, snapshot.rate_limiter_config, snapshot.rate_limiter_state, now_s
        )
        if not remaining.is_ok:
            logger.warning(f"Rate limiter capacity unavailable: {remaining.error}")

        failed = [oid for oid, r in reports.items() if not r.valuation.is_ok]
        if failed:
            logger.warning(f"{len(failed)} of {len(reports)} obligations could not be valued")

        logger.info(f"Read model for {snapshot.market_id} built at {now_s}")
        return ReadModel(
            market_id=snapshot.market_id,
            built_at_s=now_s,
            reserves=reserves,
            obligations=reports,
            claimable_rewards=claims,
            reserve_errors=reserve_errors,
            rate_limiter_state=snapshot.rate_limiter_state,
            rate_limiter_remaining=remaining.value,
        )

    def close(self) -> None:
        """Shut down the worker pool if this pipeline created it."""
        if self._owns_executor and self._executor is not None:
            self._executor.shutdown(wait=True)
        self._executor = None
