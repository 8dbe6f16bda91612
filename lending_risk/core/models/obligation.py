"""Obligation (user position) data models."""

from dataclasses import dataclass, field
from typing import Dict, Optional, Tuple

from ..errors import InvalidConfiguration
from ..fixed_point import Rounding, Wad
from .asset import AssetId, Side
from .rewards import UserRewardSnapshot


@dataclass(frozen=True)
class Deposit:
    """Collateral held in receipt-token units."""

    asset_id: AssetId
    deposited_share_amount: int
    reward_share: Wad = Wad.ZERO

    def __post_init__(self):
        if self.deposited_share_amount < 0:
            raise InvalidConfiguration(f"Deposit {self.asset_id}: negative share amount")


@dataclass(frozen=True)
class Borrow:
    """Debt in raw units as of the position's last touch."""

    asset_id: AssetId
    borrowed_amount: Wad
    cumulative_borrow_rate_snapshot: Wad = Wad.ONE
    reward_share: Wad = Wad.ZERO

    def __post_init__(self):
        if self.borrowed_amount < 0:
            raise InvalidConfiguration(f"Borrow {self.asset_id}: negative amount")
        if self.cumulative_borrow_rate_snapshot <= 0:
            raise InvalidConfiguration(
                f"Borrow {self.asset_id}: cumulative borrow rate snapshot must be positive"
            )


@dataclass(frozen=True)
class Obligation:
    """One user's position within one market."""

    id: str
    owner: str = ""
    deposits: Tuple[Deposit, ...] = field(default_factory=tuple)
    borrows: Tuple[Borrow, ...] = field(default_factory=tuple)
    user_reward_snapshots: Dict[str, UserRewardSnapshot] = field(default_factory=dict)

    def __post_init__(self):
        object.__setattr__(self, "deposits", tuple(self.deposits))
        object.__setattr__(self, "borrows", tuple(self.borrows))
        object.__setattr__(self, "user_reward_snapshots", dict(self.user_reward_snapshots))

        for label, positions in (("deposit", self.deposits), ("borrow", self.borrows)):
            ids = [p.asset_id for p in positions]
            if len(ids) != len(set(ids)):
                raise InvalidConfiguration(f"Obligation {self.id}: duplicate {label} asset ids")

    def deposit_for(self, asset_id: AssetId) -> Optional[Deposit]:
        for deposit in self.deposits:
            if deposit.asset_id == asset_id:
                return deposit
        return None

    def borrow_for(self, asset_id: AssetId) -> Optional[Borrow]:
        for borrow in self.borrows:
            if borrow.asset_id == asset_id:
                return borrow
        return None

    def position_share(self, asset_id: AssetId, side: Side) -> Wad:
        """Reward share held on one position (zero when there is none)."""
        position = self.deposit_for(asset_id) if side == Side.DEPOSIT else self.borrow_for(asset_id)
        return position.reward_share if position else Wad.ZERO

    @property
    def asset_ids(self) -> Tuple[AssetId, ...]:
        seen = []
        for position in (*self.deposits, *self.borrows):
            if position.asset_id not in seen:
                seen.append(position.asset_id)
        return tuple(seen)


@dataclass(frozen=True)
class PositionValuation:
    """USD view of a single deposit or borrow.

    ``conservative_price`` is the bound least favourable to the holder: the
    minimum price for collateral, the maximum price for debt.
    """

    asset_id: AssetId
    side: Side
    amount: Wad  # Whole tokens
    price: Wad
    conservative_price: Wad
    open_ltv: Wad = Wad.ZERO
    close_ltv: Wad = Wad.ZERO
    borrow_weight: Wad = Wad.ONE

    @property
    def amount_usd(self) -> Wad:
        return self.amount.mul(self.price, Rounding.HALF_UP)

    @property
    def conservative_usd(self) -> Wad:
        return self.amount.mul(self.conservative_price, Rounding.HALF_UP)

    @property
    def weighted_usd(self) -> Wad:
        """Open-LTV limit for collateral, borrow-weighted value for debt."""
        if self.side == Side.DEPOSIT:
            return self.conservative_usd.mul(self.open_ltv, Rounding.HALF_UP)
        return self.conservative_usd.mul(self.borrow_weight, Rounding.HALF_UP)


@dataclass(frozen=True)
class ObligationSummary:
    """Risk numbers for one obligation, recomputed on every refresh."""

    obligation_id: str
    deposited_amount_usd: Wad
    borrowed_amount_usd: Wad
    weighted_borrowed_amount_usd: Wad
    spot_weighted_borrowed_amount_usd: Wad
    borrow_limit_usd: Wad
    min_price_borrow_limit_usd: Wad
    uncapped_min_price_borrow_limit_usd: Wad
    max_price_borrow_limit_usd: Wad
    unhealthy_borrow_value_usd: Wad
    weighted_conservative_borrow_utilization_percent: Optional[Wad]
    deposits: Tuple[PositionValuation, ...] = field(default_factory=tuple)
    borrows: Tuple[PositionValuation, ...] = field(default_factory=tuple)

    def __post_init__(self):
        object.__setattr__(self, "deposits", tuple(self.deposits))
        object.__setattr__(self, "borrows", tuple(self.borrows))

    @property
    def net_value_usd(self) -> Wad:
        return self.deposited_amount_usd - self.borrowed_amount_usd

    @property
    def is_liquidatable(self) -> bool:
        """Mirrors the on-chain check: spot weighted debt above spot close-LTV limit."""
        return self.spot_weighted_borrowed_amount_usd > self.unhealthy_borrow_value_usd

    @property
    def display_utilization(self) -> str:
        value = self.weighted_conservative_borrow_utilization_percent
        if value is None:
            return "N/A"
        return f"{value.to_decimal():.2f}%"

    def position(self, asset_id: AssetId, side: Side) -> Optional[PositionValuation]:
        positions = self.deposits if side == Side.DEPOSIT else self.borrows
        for position in positions:
            if position.asset_id == asset_id:
                return position
        return None
