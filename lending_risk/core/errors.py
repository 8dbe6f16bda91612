"""Error taxonomy for the risk engines.

Engines never let these escape for routine conditions; they are caught at
the engine boundary and carried inside an ``Outcome``.
"""

from enum import Enum
from typing import Optional


class ErrorCode(Enum):
    """Machine-readable error categories."""

    STALE_DATA = "stale_data"
    ARITHMETIC_OVERFLOW = "arithmetic_overflow"
    RATE_LIMIT_EXCEEDED = "rate_limit_exceeded"
    SOLVER_DID_NOT_CONVERGE = "solver_did_not_converge"
    INVALID_CONFIGURATION = "invalid_configuration"


class LendingRiskError(Exception):
    """Base class for all risk engine errors."""

    code: ErrorCode = ErrorCode.INVALID_CONFIGURATION

    # Unrecoverable errors mark the affected reserve/market unusable until
    # the upstream data is corrected.
    recoverable: bool = True

    def to_dict(self) -> dict:
        return {"code": self.code.value, "message": str(self)}


class StaleDataError(LendingRiskError):
    """A price or interest timestamp is older than the caller's bound."""

    code = ErrorCode.STALE_DATA

    def __init__(
        self,
        message: str,
        asset_id: Optional[str] = None,
        age_s: Optional[int] = None,
        max_age_s: Optional[int] = None,
    ):
        super().__init__(message)
        self.asset_id = asset_id
        self.age_s = age_s
        self.max_age_s = max_age_s


class ArithmeticOverflow(LendingRiskError):
    """A value left the representable fixed-point range."""

    code = ErrorCode.ARITHMETIC_OVERFLOW
    recoverable = False


class RateLimitExceeded(LendingRiskError):
    """An outflow request would breach the sliding-window cap."""

    code = ErrorCode.RATE_LIMIT_EXCEEDED

    def __init__(self, message: str, requested=None, remaining=None):
        super().__init__(message)
        self.requested = requested
        self.remaining = remaining


class SolverDidNotConverge(LendingRiskError):
    """Bisection ran out of iterations before reaching its tolerance."""

    code = ErrorCode.SOLVER_DID_NOT_CONVERGE

    def __init__(self, message: str, iterations: int = 0, width=None):
        super().__init__(message)
        self.iterations = iterations
        self.width = width


class InvalidConfiguration(LendingRiskError):
    """Inputs or configuration violate a structural requirement."""

    code = ErrorCode.INVALID_CONFIGURATION
    recoverable = False
