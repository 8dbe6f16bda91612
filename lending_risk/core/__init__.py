"""Core module - fixed-point arithmetic, errors, results and models."""

from .errors import (
    ArithmeticOverflow,
    ErrorCode,
    InvalidConfiguration,
    LendingRiskError,
    RateLimitExceeded,
    SolverDidNotConverge,
    StaleDataError,
)
from .fixed_point import Rounding, Wad
from .result import Outcome

__all__ = [
    "ArithmeticOverflow",
    "ErrorCode",
    "InvalidConfiguration",
    "LendingRiskError",
    "RateLimitExceeded",
    "SolverDidNotConverge",
    "StaleDataError",
    "Rounding",
    "Wad",
    "Outcome",
]
