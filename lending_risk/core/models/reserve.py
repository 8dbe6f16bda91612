"""Reserve (single-asset market) data models."""

from dataclasses import dataclass
from typing import Optional, Tuple

from ..constants import BPS_DENOMINATOR, U64_MAX
from ..errors import InvalidConfiguration
from ..fixed_point import Wad
from .asset import AssetId, Side
from .rewards import RewardPool


@dataclass(frozen=True)
class InterestRateCurve:
    """Piecewise-linear borrow APR curve.

    ``points`` are ``(utilization_percent, apr_bps)`` pairs. The curve must
    start at 0 % and end at 100 % utilization.
    """

    points: Tuple[Tuple[int, int], ...]

    def __post_init__(self):
        points = tuple((int(u), int(a)) for u, a in self.points)
        object.__setattr__(self, "points", points)

        if len(points) < 2:
            raise InvalidConfiguration("Interest rate curve needs at least two points")
        if points[0][0] != 0 or points[-1][0] != 100:
            raise InvalidConfiguration("Interest rate curve must span 0..100 % utilization")

        for (u0, a0), (u1, a1) in zip(points, points[1:]):
            if u1 <= u0:
                raise InvalidConfiguration(
                    f"Curve utilizations must strictly increase: {u0} -> {u1}"
                )
            if a1 < a0:
                raise InvalidConfiguration(f"Curve APRs must not decrease: {a0} -> {a1}")
        if points[0][1] < 0:
            raise InvalidConfiguration("Curve APRs must be non-negative")

    @classmethod
    def from_lists(cls, utils, aprs) -> "InterestRateCurve":
        if len(utils) != len(aprs):
            raise InvalidConfiguration(
                f"Curve has {len(utils)} utilization points but {len(aprs)} APR points"
            )
        return cls(points=tuple(zip(utils, aprs)))


@dataclass(frozen=True)
class ReserveConfig:
    """Risk parameters of a reserve. Ratios are in basis points."""

    open_ltv_bps: int
    liquidation_threshold_bps: int  # Close LTV
    borrow_weight_bps: int
    interest_rate_curve: InterestRateCurve
    deposit_limit: int = U64_MAX
    borrow_limit: int = U64_MAX
    deposit_limit_usd: int = U64_MAX
    borrow_limit_usd: int = U64_MAX
    borrow_fee_bps: int = 0
    spread_fee_bps: int = 0

    def __post_init__(self):
        if not 0 <= self.open_ltv_bps <= self.liquidation_threshold_bps <= BPS_DENOMINATOR:
            raise InvalidConfiguration(
                "Expected 0 <= open_ltv_bps <= liquidation_threshold_bps <= 10000, got "
                f"{self.open_ltv_bps} / {self.liquidation_threshold_bps}"
            )
        if self.borrow_weight_bps < BPS_DENOMINATOR:
            raise InvalidConfiguration(
                f"borrow_weight_bps must be >= 10000, got {self.borrow_weight_bps}"
            )
        for name in ("borrow_fee_bps", "spread_fee_bps"):
            value = getattr(self, name)
            if not 0 <= value <= BPS_DENOMINATOR:
                raise InvalidConfiguration(f"{name} must be within 0..10000, got {value}")
        for name in ("deposit_limit", "borrow_limit", "deposit_limit_usd", "borrow_limit_usd"):
            if getattr(self, name) < 0:
                raise InvalidConfiguration(f"{name} must be non-negative")

    @property
    def open_ltv(self) -> Wad:
        return Wad.from_bps(self.open_ltv_bps)

    @property
    def close_ltv(self) -> Wad:
        return Wad.from_bps(self.liquidation_threshold_bps)

    @property
    def borrow_weight(self) -> Wad:
        return Wad.from_bps(self.borrow_weight_bps)

    @property
    def borrow_fee(self) -> Wad:
        return Wad.from_bps(self.borrow_fee_bps)

    @property
    def spread_fee(self) -> Wad:
        return Wad.from_bps(self.spread_fee_bps)


@dataclass(frozen=True)
class Reserve:
    """One asset's market within a lending pool.

    Raw amounts are in the asset's smallest unit. Prices are USD per whole
    token. ``min_price``/``max_price`` bound the price over the oracle's
    smoothing window.
    """

    asset_id: AssetId
    array_index: int
    mint_decimals: int
    config: ReserveConfig

    # Oracle
    price: Wad
    smoothed_price: Wad
    min_price: Wad
    max_price: Wad
    price_last_update_timestamp_s: int

    # Balances
    available_amount: int
    deposited_share_supply: int
    borrowed_amount: Wad
    cumulative_borrow_rate: Wad
    interest_last_update_timestamp_s: int
    unclaimed_spread_fees: Wad = Wad.ZERO

    symbol: str = ""
    deposits_reward_pool: Optional[RewardPool] = None
    borrows_reward_pool: Optional[RewardPool] = None

    def __post_init__(self):
        if self.available_amount < 0 or self.deposited_share_supply < 0:
            raise InvalidConfiguration(f"Reserve {self.asset_id}: negative balance")
        if self.borrowed_amount < 0:
            raise InvalidConfiguration(f"Reserve {self.asset_id}: negative borrowed amount")
        if self.cumulative_borrow_rate < Wad.ONE:
            raise InvalidConfiguration(
                f"Reserve {self.asset_id}: cumulative borrow rate below 1.0"
            )
        if self.min_price > self.max_price:
            raise InvalidConfiguration(f"Reserve {self.asset_id}: min_price above max_price")

    # ========== DERIVED AMOUNTS ==========

    @property
    def deposited_amount(self) -> Wad:
        """Total supplied liquidity in raw units (available + borrowed - fees)."""
        return Wad(self.available_amount) + self.borrowed_amount - self.unclaimed_spread_fees

    @property
    def share_exchange_rate(self) -> Wad:
        """Raw underlying units per receipt-token unit."""
        if self.deposited_share_supply == 0:
            return Wad.ONE
        return self.deposited_amount.div(Wad(self.deposited_share_supply))

    @property
    def utilization(self) -> Wad:
        """borrowed / (borrowed + available), 0 for an empty reserve."""
        total = self.borrowed_amount + self.available_amount
        if not total:
            return Wad.ZERO
        return self.borrowed_amount.div(total)

    @property
    def utilization_percent(self) -> Wad:
        return self.utilization * 100

    @property
    def decimals_factor(self) -> int:
        return 10**self.mint_decimals

    def to_tokens(self, raw_amount) -> Wad:
        """Convert a raw amount to whole-token units."""
        return Wad(raw_amount) / self.decimals_factor

    def shares_to_amount(self, shares) -> Wad:
        """Receipt-token units to raw underlying units."""
        return Wad(shares).mul(self.share_exchange_rate)

    @property
    def available_tokens(self) -> Wad:
        return self.to_tokens(self.available_amount)

    @property
    def deposited_tokens(self) -> Wad:
        return self.to_tokens(self.deposited_amount)

    @property
    def borrowed_tokens(self) -> Wad:
        return self.to_tokens(self.borrowed_amount)

    @property
    def deposited_amount_usd(self) -> Wad:
        return self.deposited_tokens.mul(self.price)

    @property
    def borrowed_amount_usd(self) -> Wad:
        return self.borrowed_tokens.mul(self.price)

    def reward_pool(self, side: Side) -> Optional[RewardPool]:
        return self.deposits_reward_pool if side == Side.DEPOSIT else self.borrows_reward_pool

    def __str__(self) -> str:
        return self.symbol or self.asset_id
