"""Looping classification.

An obligation loops when it holds a non-zero deposit and a non-zero borrow
in the same correlated asset group: the same asset, or two members of a
configured class such as stablecoins or ETH variants. Looped positions are
not eligible for rewards; the protocol zeroes their reward share.
"""

from dataclasses import dataclass, field
from typing import Dict, FrozenSet, Iterable, List, Tuple

from ..core.errors import InvalidConfiguration
from ..core.models.asset import AssetId, Side, normalize_asset_id
from ..core.models.obligation import Borrow, Deposit, Obligation

LOOPING_DEFINITION = (
    "depositing and borrowing the same asset, different stablecoin assets, "
    "or different ETH assets"
)


@dataclass(frozen=True)
class CorrelatedAssetGroups:
    """Disjoint equivalence classes of assets; any other asset is its own group."""

    groups: Tuple[FrozenSet[AssetId], ...] = field(default_factory=tuple)

    def __post_init__(self):
        groups = tuple(frozenset(g) for g in self.groups if g)
        object.__setattr__(self, "groups", groups)

        seen = set()
        for group in groups:
            overlap = seen & group
            if overlap:
                raise InvalidConfiguration(
                    f"Assets appear in more than one correlated group: {sorted(overlap)}"
                )
            seen |= group

    @classmethod
    def from_lists(cls, *asset_lists: Iterable[str]) -> "CorrelatedAssetGroups":
        return cls(tuple(frozenset(normalize_asset_id(a) for a in assets) for assets in asset_lists))

    def group_of(self, asset_id: AssetId) -> FrozenSet[AssetId]:
        for group in self.groups:
            if asset_id in group:
                return group
        return frozenset({asset_id})

    def correlated(self, a: AssetId, b: AssetId) -> bool:
        return a == b or b in self.group_of(a)


def _active_deposits(obligation: Obligation) -> List[Deposit]:
    return [d for d in obligation.deposits if d.deposited_share_amount > 0]


def _active_borrows(obligation: Obligation) -> List[Borrow]:
    return [b for b in obligation.borrows if b.borrowed_amount > 0]


def looped_asset_pairs(obligation: Obligation, groups: CorrelatedAssetGroups) -> List[Tuple[AssetId, AssetId]]:
    """``(deposit_asset, borrow_asset)`` pairs that make the obligation loop."""
    borrows = _active_borrows(obligation)
    return [
        (deposit.asset_id, borrow.asset_id)
        for deposit in _active_deposits(obligation)
        for borrow in borrows
        if groups.correlated(deposit.asset_id, borrow.asset_id)
    ]


def is_looping(obligation: Obligation, groups: CorrelatedAssetGroups) -> bool:
    return bool(looped_asset_pairs(obligation, groups))


def zero_share_positions(obligation: Obligation) -> Dict[Side, List[AssetId]]:
    """Non-zero positions whose reward share has been zeroed."""
    return {
        Side.DEPOSIT: [d.asset_id for d in _active_deposits(obligation) if not d.reward_share],
        Side.BORROW: [b.asset_id for b in _active_borrows(obligation) if not b.reward_share],
    }


def was_looping(obligation: Obligation, groups: CorrelatedAssetGroups) -> bool:
    """Zero-share positions remain but the obligation no longer loops.

    The user restores eligibility by touching each affected position.
    """
    if is_looping(obligation, groups):
        return False
    positions = zero_share_positions(obligation)
    return bool(positions[Side.DEPOSIT] or positions[Side.BORROW])


def would_loop(obligation: Obligation, groups: CorrelatedAssetGroups, asset_id: AssetId, side: Side) -> bool:
    """Whether depositing (or borrowing) ``asset_id`` would create a loop."""
    if side == Side.DEPOSIT:
        counterparts = [b.asset_id for b in _active_borrows(obligation)]
    else:
        counterparts = [d.asset_id for d in _active_deposits(obligation)]
    return any(groups.correlated(asset_id, other) for other in counterparts)


def looping_warning(action_verb: str, symbol: str) -> str:
    return (
        f"Note that by {action_verb} {symbol} you will be looping (defined as "
        f"{LOOPING_DEFINITION}) and no longer eligible for rewards."
    )
