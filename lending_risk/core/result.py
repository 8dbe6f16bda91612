"""Explicit success/error values returned by the engines."""

from dataclasses import dataclass
from typing import Any, Callable, Generic, Optional, TypeVar

from .errors import LendingRiskError

T = TypeVar("T")


@dataclass(frozen=True)
class Outcome(Generic[T]):
    """Result of an engine operation.

    A failed outcome may still carry a value, e.g. the best lower bound a
    solver found before running out of iterations.
    """

    value: Optional[T] = None
    error: Optional[LendingRiskError] = None

    @classmethod
    def ok(cls, value: T) -> "Outcome[T]":
        return cls(value=value)

    @classmethod
    def failure(cls, error: LendingRiskError, value: Optional[T] = None) -> "Outcome[T]":
        return cls(value=value, error=error)

    @classmethod
    def capture(cls, func: Callable[..., T], *args: Any, **kwargs: Any) -> "Outcome[T]":
        """Run ``func`` and turn any ``LendingRiskError`` into a failed outcome."""
        try:
            return cls.ok(func(*args, **kwargs))
        except LendingRiskError as e:
            return cls.failure(e)

    @property
    def is_ok(self) -> bool:
        return self.error is None

    @property
    def status(self) -> str:
        return "ok" if self.error is None else self.error.code.value

    def unwrap(self) -> T:
        """Return the value or raise the carried error."""
        if self.error is not None:
            raise self.error
        return self.value

    def value_or(self, default: T) -> T:
        return self.value if self.error is None else default
