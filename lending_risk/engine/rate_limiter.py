"""Sliding-window outflow rate limiter.

Outflow (withdrawals and borrows, in USD) is tracked in aligned windows of
``window_duration_s``. The trailing-window estimate blends the previous
window linearly into the current one:

    effective = prev_qty * (window - elapsed_in_window) / window + cur_qty

so a burst right after a window boundary still counts most of the previous
window's outflow.
"""

import logging
import threading
from typing import Optional

from ..core.errors import InvalidConfiguration, LendingRiskError, RateLimitExceeded
from ..core.fixed_point import Rounding, Wad
from ..core.models.rate_limiter import RateLimiterConfig, RateLimiterState
from ..core.result import Outcome

logger = logging.getLogger(__name__)


def roll_window(config: RateLimiterConfig, state: RateLimiterState, now_s: int) -> RateLimiterState:
    """Advance the window bookkeeping to ``now_s``.

    Raises:
        InvalidConfiguration: If ``now_s`` is before the current window start.
    """
    if now_s < state.window_start:
        raise InvalidConfiguration(
            f"Clock went backwards: now {now_s} < window start {state.window_start}"
        )

    window = config.window_duration_s
    if window == 0:
        return state

    elapsed = now_s - state.window_start
    if elapsed < window:
        return state

    # Exactly one window later the old current window becomes the previous
    # one; after a longer gap the previous aligned window saw no outflow.
    prev_qty = state.cur_qty if elapsed // window == 1 else Wad.ZERO
    return RateLimiterState(
        window_start=now_s - elapsed % window,
        cur_qty=Wad.ZERO,
        prev_qty=prev_qty,
    )


def current_outflow(config: RateLimiterConfig, state: RateLimiterState, now_s: int) -> Wad:
    """Blended outflow over the trailing window, rounded up."""
    state = roll_window(config, state, now_s)
    window = config.window_duration_s
    if window == 0:
        return state.cur_qty

    remaining_s = max(0, window - (now_s - state.window_start))
    carried = (state.prev_qty * remaining_s).div(Wad(window), Rounding.UP)
    return carried + state.cur_qty


def remaining_outflow(config: RateLimiterConfig, state: RateLimiterState, now_s: int) -> Optional[Wad]:
    """Outflow still allowed at ``now_s``; ``None`` when the limiter is unlimited."""
    if config.is_unlimited:
        return None
    return max(Wad(config.max_outflow) - current_outflow(config, state, now_s), Wad.ZERO)


def process_outflow(
    config: RateLimiterConfig,
    state: RateLimiterState,
    qty,
    now_s: int,
) -> Outcome[RateLimiterState]:
    """Apply an outflow request of ``qty`` USD at ``now_s``.

    Returns:
        Outcome with the new state, or a ``RateLimitExceeded`` failure when
        the request would push the trailing-window outflow over
        ``max_outflow``. The input state is never modified.
    """
    try:
        qty = Wad(qty)
        if qty < 0:
            raise InvalidConfiguration(f"Negative outflow {qty}")

        rolled = roll_window(config, state, now_s)
        if not config.is_unlimited:
            effective = current_outflow(config, rolled, now_s)
            if effective + qty > config.max_outflow:
                remaining = max(Wad(config.max_outflow) - effective, Wad.ZERO)
                raise RateLimitExceeded(
                    f"Outflow of {qty} exceeds remaining capacity {remaining}",
                    requested=qty,
                    remaining=remaining,
                )
    except LendingRiskError as e:
        return Outcome.failure(e)

    return Outcome.ok(
        RateLimiterState(
            window_start=rolled.window_start,
            cur_qty=rolled.cur_qty + qty,
            prev_qty=rolled.prev_qty,
        )
    )


class MarketRateLimiter:
    """Single-writer holder of one market's limiter state.

    Requests are serialised by a lock; each accepted request publishes a new
    immutable ``RateLimiterState``.
    """

    def __init__(self, config: RateLimiterConfig, state: Optional[RateLimiterState] = None):
        self.config = config
        self._state = state or RateLimiterState()
        self._lock = threading.Lock()

    @property
    def state(self) -> RateLimiterState:
        return self._state

    def request(self, qty, now_s: int) -> Outcome[RateLimiterState]:
        with self._lock:
            outcome = process_outflow(self.config, self._state, qty, now_s)
            if outcome.is_ok:
                self._state = outcome.value
            else:
                logger.info(f"Outflow request rejected: {outcome.error}")
            return outcome

    def remaining(self, now_s: int) -> Optional[Wad]:
        with self._lock:
            return remaining_outflow(self.config, self._state, now_s)
