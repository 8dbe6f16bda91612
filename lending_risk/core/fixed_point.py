"""Exact 18-decimal fixed-point arithmetic.

``Wad`` stores ``value * 10**18`` in a Python int, so sums and products are
exact until a division or rescale forces rounding. Every result is range
checked against the on-chain decimal width and raises ``ArithmeticOverflow``
instead of wrapping.

Rounding:
- ``DOWN`` (toward zero) is the default for ``*`` and ``/``. Accrual uses it
  so rounding never moves value out of the protocol.
- ``HALF_UP`` is used for user-facing USD totals.
- ``UP`` (away from zero) is used for amounts a borrower owes.
"""

from decimal import Decimal, InvalidOperation, localcontext
from enum import Enum
from fractions import Fraction
from typing import Union

from .constants import BPS_DENOMINATOR, U256_MAX, WAD
from .errors import ArithmeticOverflow, InvalidConfiguration


class Rounding(Enum):
    """Rounding applied when a result needs more than 18 decimals."""

    DOWN = "down"
    HALF_UP = "half_up"
    UP = "up"


WadLike = Union["Wad", int, str, Decimal]


def _checked(raw: int) -> int:
    if raw > U256_MAX or raw < -U256_MAX:
        raise ArithmeticOverflow(f"Fixed-point value out of range: {raw} raw units")
    return raw


def _div_rounded(numerator: int, denominator: int, rounding: Rounding) -> int:
    """Integer division of signed ints with an explicit rounding mode."""
    if denominator == 0:
        raise ArithmeticOverflow("Division by zero")

    negative = (numerator < 0) != (denominator < 0)
    quotient, remainder = divmod(abs(numerator), abs(denominator))

    if remainder:
        if rounding is Rounding.UP:
            quotient += 1
        elif rounding is Rounding.HALF_UP and 2 * remainder >= abs(denominator):
            quotient += 1

    return -quotient if negative else quotient


def _decimal_to_raw(value: Decimal) -> int:
    if not value.is_finite():
        raise ArithmeticOverflow(f"Non-finite value cannot be represented: {value}")
    with localcontext() as ctx:
        ctx.prec = 120
        scaled = value.scaleb(18)
        # Truncate toward zero past the 18th decimal
        return int(scaled.to_integral_value(rounding="ROUND_DOWN"))


class Wad:
    """Signed fixed-point decimal with 18 places of precision."""

    __slots__ = ("_raw",)

    def __init__(self, value: WadLike = 0):
        if isinstance(value, Wad):
            raw = value._raw
        elif isinstance(value, bool):
            raise TypeError("bool is not a numeric amount")
        elif isinstance(value, int):
            raw = value * WAD
        elif isinstance(value, Decimal):
            raw = _decimal_to_raw(value)
        elif isinstance(value, str):
            try:
                raw = _decimal_to_raw(Decimal(value.strip()))
            except InvalidOperation:
                raise InvalidConfiguration(f"Not a decimal number: {value!r}")
        elif isinstance(value, float):
            raise TypeError("floats are not exact; pass a str or Decimal")
        else:
            raise TypeError(f"Cannot convert {type(value).__name__} to Wad")
        object.__setattr__(self, "_raw", _checked(raw))

    def __setattr__(self, name, value):
        raise AttributeError("Wad is immutable")

    def __reduce__(self):
        return (Wad.from_raw, (self._raw,))

    # ========== CONSTRUCTORS ==========

    @classmethod
    def from_raw(cls, raw: int) -> "Wad":
        """Build from an already-scaled integer (``value * 10**18``)."""
        obj = cls.__new__(cls)
        object.__setattr__(obj, "_raw", _checked(int(raw)))
        return obj

    @classmethod
    def from_int(cls, value: int) -> "Wad":
        return cls(int(value))

    @classmethod
    def from_decimal(cls, value: Decimal) -> "Wad":
        return cls(value)

    @classmethod
    def from_bps(cls, bps: int) -> "Wad":
        """Basis points as a fraction (10000 bps == 1)."""
        return cls.from_raw(int(bps) * WAD // BPS_DENOMINATOR)

    @classmethod
    def from_percent(cls, percent: int) -> "Wad":
        return cls.from_raw(int(percent) * WAD // 100)

    # ========== ACCESSORS ==========

    @property
    def raw(self) -> int:
        return self._raw

    def to_decimal(self) -> Decimal:
        with localcontext() as ctx:
            ctx.prec = 120
            return Decimal(self._raw).scaleb(-18)

    def to_int(self, rounding: Rounding = Rounding.DOWN) -> int:
        return _div_rounded(self._raw, WAD, rounding)

    def floor(self) -> int:
        return self._raw // WAD

    def ceil(self) -> int:
        return -((-self._raw) // WAD)

    def round_to(self, places: int, rounding: Rounding = Rounding.HALF_UP) -> "Wad":
        """Round to ``places`` decimals (0..18)."""
        if not 0 <= places <= 18:
            raise InvalidConfiguration(f"places must be within 0..18, got {places}")
        step = 10 ** (18 - places)
        return Wad.from_raw(_div_rounded(self._raw, step, rounding) * step)

    # ========== ARITHMETIC ==========

    @staticmethod
    def _coerce(other: WadLike) -> "Wad":
        return other if isinstance(other, Wad) else Wad(other)

    def __add__(self, other: WadLike) -> "Wad":
        try:
            other = self._coerce(other)
        except TypeError:
            return NotImplemented
        return Wad.from_raw(self._raw + other._raw)

    __radd__ = __add__

    def __sub__(self, other: WadLike) -> "Wad":
        try:
            other = self._coerce(other)
        except TypeError:
            return NotImplemented
        return Wad.from_raw(self._raw - other._raw)

    def __rsub__(self, other: WadLike) -> "Wad":
        try:
            other = self._coerce(other)
        except TypeError:
            return NotImplemented
        return Wad.from_raw(other._raw - self._raw)

    def __neg__(self) -> "Wad":
        return Wad.from_raw(-self._raw)

    def __abs__(self) -> "Wad":
        return Wad.from_raw(abs(self._raw))

    def mul(self, other: WadLike, rounding: Rounding = Rounding.DOWN) -> "Wad":
        other = self._coerce(other)
        return Wad.from_raw(_div_rounded(self._raw * other._raw, WAD, rounding))

    def div(self, other: WadLike, rounding: Rounding = Rounding.DOWN) -> "Wad":
        other = self._coerce(other)
        return Wad.from_raw(_div_rounded(self._raw * WAD, other._raw, rounding))

    def __mul__(self, other: WadLike) -> "Wad":
        if isinstance(other, int) and not isinstance(other, bool):
            return Wad.from_raw(self._raw * other)
        try:
            return self.mul(other)
        except TypeError:
            return NotImplemented

    __rmul__ = __mul__

    def __truediv__(self, other: WadLike) -> "Wad":
        if isinstance(other, int) and not isinstance(other, bool):
            return Wad.from_raw(_div_rounded(self._raw, other, Rounding.DOWN))
        try:
            return self.div(other)
        except TypeError:
            return NotImplemented

    def __rtruediv__(self, other: WadLike) -> "Wad":
        try:
            return self._coerce(other).div(self)
        except TypeError:
            return NotImplemented

    def pow(self, exponent: int, rounding: Rounding = Rounding.DOWN) -> "Wad":
        """Raise to a non-negative integer power by square-and-multiply.

        Each intermediate product is rounded with ``rounding``.
        """
        if exponent < 0:
            raise InvalidConfiguration(f"Exponent must be non-negative, got {exponent}")

        result = Wad.ONE
        base = self
        while exponent:
            if exponent & 1:
                result = result.mul(base, rounding)
            exponent >>= 1
            if exponent:
                base = base.mul(base, rounding)
        return result

    def __pow__(self, exponent: int) -> "Wad":
        if not isinstance(exponent, int):
            return NotImplemented
        return self.pow(exponent)

    # ========== COMPARISON ==========

    def _cmp_raw(self, other) -> int:
        return self._coerce(other)._raw

    def __eq__(self, other) -> bool:
        # Strings order against a Wad but never compare equal.
        if isinstance(other, str):
            return NotImplemented
        try:
            return self._raw == self._cmp_raw(other)
        except (TypeError, InvalidConfiguration):
            return NotImplemented

    def __lt__(self, other) -> bool:
        try:
            return self._raw < self._cmp_raw(other)
        except TypeError:
            return NotImplemented

    def __le__(self, other) -> bool:
        try:
            return self._raw <= self._cmp_raw(other)
        except TypeError:
            return NotImplemented

    def __gt__(self, other) -> bool:
        try:
            return self._raw > self._cmp_raw(other)
        except TypeError:
            return NotImplemented

    def __ge__(self, other) -> bool:
        try:
            return self._raw >= self._cmp_raw(other)
        except TypeError:
            return NotImplemented

    def __hash__(self) -> int:
        # Same hash as the equal int or Decimal.
        if self._raw % WAD == 0:
            return hash(self._raw // WAD)
        return hash(Fraction(self._raw, WAD))

    def __bool__(self) -> bool:
        return self._raw != 0

    # ========== DISPLAY ==========

    def __str__(self) -> str:
        value = self.to_decimal().normalize()
        return f"{value:f}"

    def __repr__(self) -> str:
        return f"Wad('{self}')"

    def __format__(self, spec: str) -> str:
        if not spec:
            return str(self)
        return format(self.to_decimal(), spec)


Wad.ZERO = Wad.from_raw(0)
Wad.ONE = Wad.from_raw(WAD)
