"""Bisection search for the largest value satisfying a monotonic predicate."""

import logging
from dataclasses import dataclass
from typing import Callable

from ..core.constants import BISECTION_MAX_ITERATIONS, BISECTION_TOLERANCE
from ..core.errors import InvalidConfiguration, LendingRiskError, SolverDidNotConverge
from ..core.fixed_point import Wad
from ..core.result import Outcome

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BisectionConfig:
    """Search budget.

    Each iteration halves the interval, so ``max_iterations`` halvings reach
    ``tolerance`` only when ``(right - left) / 2**max_iterations <= tolerance``.
    Raising ``max_iterations`` buys precision on wide intervals at the cost of
    one predicate evaluation per step.
    """

    max_iterations: int = BISECTION_MAX_ITERATIONS
    tolerance: Wad = Wad(BISECTION_TOLERANCE)


@dataclass(frozen=True)
class BisectionSolution:
    value: Wad
    iterations: int
    width: Wad
    feasible: bool = True


def bisect_max(
    predicate: Callable[[Wad], bool],
    left: Wad,
    right: Wad,
    config: BisectionConfig = BisectionConfig(),
) -> Outcome[BisectionSolution]:
    """Find the largest ``x`` in ``[left, right]`` with ``predicate(x)`` true.

    ``predicate`` must be true-then-false over the interval. The solver evaluates
    both endpoints, then spends at most ``config.max_iterations`` further
    evaluations.

    Args:
        predicate: Monotonic feasibility test.
        left: Lower bound of the search.
        right: Upper bound of the search.
        config: Iteration budget and tolerance.

    Returns:
        Outcome carrying a ``BisectionSolution``. If the budget runs out first
        the outcome is a ``SolverDidNotConverge`` failure whose value is the
        best feasible lower bound found.
    """
    left, right = Wad(left), Wad(right)
    if left > right:
        return Outcome.failure(InvalidConfiguration(f"Empty interval [{left}, {right}]"))
    if config.tolerance <= 0 or config.max_iterations < 0:
        return Outcome.failure(
            InvalidConfiguration("Bisection needs a positive tolerance and iteration budget")
        )

    try:
        if predicate(right):
            return Outcome.ok(BisectionSolution(value=right, iterations=0, width=Wad.ZERO))
        if not predicate(left):
            return Outcome.ok(
                BisectionSolution(value=left, iterations=0, width=right - left, feasible=False)
            )

        iterations = 0
        while right - left > config.tolerance and iterations < config.max_iterations:
            mid = Wad.from_raw((left.raw + right.raw) // 2)
            if predicate(mid):
                left = mid
            else:
                right = mid
            iterations += 1
    except LendingRiskError as e:
        return Outcome.failure(e)

    width = right - left
    solution = BisectionSolution(value=left, iterations=iterations, width=width)

    if width > config.tolerance:
        logger.debug(f"Bisection stopped after {iterations} iterations, width {width}")
        return Outcome.failure(
            SolverDidNotConverge(
                f"Interval width {width} still above tolerance {config.tolerance} "
                f"after {iterations} iterations",
                iterations=iterations,
                width=width,
            ),
            value=solution,
        )

    return Outcome.ok(solution)
