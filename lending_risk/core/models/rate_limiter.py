"""Rate limiter configuration and state."""

from dataclasses import dataclass

from ..constants import U64_MAX
from ..errors import InvalidConfiguration
from ..fixed_point import Wad


@dataclass(frozen=True)
class RateLimiterConfig:
    """Outflow cap (USD) over a sliding window of ``window_duration_s``."""

    max_outflow: int = U64_MAX
    window_duration_s: int = 0

    def __post_init__(self):
        if self.max_outflow < 0 or self.window_duration_s < 0:
            raise InvalidConfiguration("Rate limiter values must be non-negative")
        if self.window_duration_s == 0 and not self.is_unlimited:
            raise InvalidConfiguration(
                "Rate limiter window_duration_s must be positive when max_outflow is finite"
            )

    @property
    def is_unlimited(self) -> bool:
        return self.max_outflow == U64_MAX


@dataclass(frozen=True)
class RateLimiterState:
    """Per-market window bookkeeping. All zeros at market genesis."""

    window_start: int = 0
    cur_qty: Wad = Wad.ZERO
    prev_qty: Wad = Wad.ZERO
