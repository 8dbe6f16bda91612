"""Asset identifiers and action enums."""

import re
from enum import Enum
from typing import NewType

from ..errors import InvalidConfiguration

AssetId = NewType("AssetId", str)

_TYPE_TAG = re.compile(r"^0x([0-9a-fA-F]{1,64})(::.+)?$")


def normalize_asset_id(value: str) -> AssetId:
    """Normalize a coin type tag into an ``AssetId``.

    ``0x2::sui::SUI`` and ``0x000...02::sui::SUI`` name the same asset, so the
    address part is lower-cased and left-padded to 64 hex digits. Identifiers
    without a ``0x`` address are kept as given (trimmed).

    Raises:
        InvalidConfiguration: If the identifier is empty.
    """
    if not isinstance(value, str) or not value.strip():
        raise InvalidConfiguration(f"Empty asset identifier: {value!r}")

    value = value.strip()
    match = _TYPE_TAG.match(value)
    if not match:
        return AssetId(value)

    address = match.group(1).lower().rjust(64, "0")
    suffix = match.group(2) or ""
    return AssetId(f"0x{address}{suffix}")


class Side(Enum):
    """Side of a reserve a position or reward campaign belongs to."""

    DEPOSIT = "deposit"
    BORROW = "borrow"


class Action(Enum):
    """User actions the max-action query and simulator understand."""

    DEPOSIT = "deposit"
    WITHDRAW = "withdraw"
    BORROW = "borrow"
    REPAY = "repay"

    @property
    def side(self) -> Side:
        if self in (Action.DEPOSIT, Action.WITHDRAW):
            return Side.DEPOSIT
        return Side.BORROW

    @property
    def is_outflow(self) -> bool:
        """Withdrawals and borrows move liquidity out of the market."""
        return self in (Action.WITHDRAW, Action.BORROW)
