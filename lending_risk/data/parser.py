"""Raw market snapshot parser.

Converts the JSON documents served by the snapshot API into immutable
models. Amounts follow the on-chain encoding:

- u64 amounts (token balances, limits, receipt-token supply) as integers or
  integer strings
- 18-decimal fixed-point fields (borrowed amounts, indices, fees, limiter
  quantities) as their raw scaled integer, suffixed ``_wad`` in field names
- prices as plain decimal strings

Anything malformed raises ``InvalidConfiguration``; the poller treats that
as a skipped tick.
"""

import logging
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, List, Mapping, Optional

from ..core.constants import U64_MAX
from ..core.errors import InvalidConfiguration
from ..core.fixed_point import Wad
from ..core.models import (
    Borrow,
    Deposit,
    InterestRateCurve,
    MarketSnapshot,
    Obligation,
    RateLimiterConfig,
    RateLimiterState,
    Reserve,
    ReserveConfig,
    RewardCampaign,
    RewardPool,
    Side,
    UserRewardSnapshot,
    normalize_asset_id,
)
from ..engine.oracle import OraclePriceQuote, price_bounds, validate_quote

logger = logging.getLogger(__name__)

AssetMetadata = Mapping[str, Mapping[str, Any]]


def _require(data: Mapping[str, Any], key: str, context: str) -> Any:
    try:
        return data[key]
    except (KeyError, TypeError):
        raise InvalidConfiguration(f"{context}: missing field '{key}'")


class SnapshotParser:
    """Parser for raw market snapshot documents."""

    @staticmethod
    def parse_int(value: Any, context: str = "value") -> int:
        """Parse a u64-style integer given as int or integer string."""
        if isinstance(value, bool):
            raise InvalidConfiguration(f"{context}: expected integer, got bool")
        try:
            result = int(value) if isinstance(value, int) else int(str(value).strip())
        except (TypeError, ValueError):
            raise InvalidConfiguration(f"{context}: not an integer: {value!r}")
        if result < 0:
            raise InvalidConfiguration(f"{context}: negative amount {result}")
        return result

    @classmethod
    def parse_wad_raw(cls, value: Any, context: str = "value") -> Wad:
        """Parse a raw 18-decimal scaled integer."""
        return Wad.from_raw(cls.parse_int(value, context))

    @staticmethod
    def parse_decimal(value: Any, context: str = "value") -> Wad:
        """Parse a plain decimal string such as a price."""
        if isinstance(value, float):
            value = repr(value)
        try:
            decimal = Decimal(str(value).strip())
        except (InvalidOperation, ValueError):
            raise InvalidConfiguration(f"{context}: not a decimal: {value!r}")
        if not decimal.is_finite():
            raise InvalidConfiguration(f"{context}: not finite: {value!r}")
        return Wad(decimal)

    # ========== RESERVES ==========

    @classmethod
    def parse_reserve_config(cls, data: Mapping[str, Any], context: str) -> ReserveConfig:
        def limit(key: str) -> int:
            return cls.parse_int(data.get(key, U64_MAX), f"{context}.{key}")

        curve = InterestRateCurve.from_lists(
            [cls.parse_int(u, f"{context}.interest_rate_utils") for u in _require(data, "interest_rate_utils", context)],
            [cls.parse_int(a, f"{context}.interest_rate_aprs") for a in _require(data, "interest_rate_aprs", context)],
        )
        return ReserveConfig(
            open_ltv_bps=cls.parse_int(_require(data, "open_ltv_bps", context), f"{context}.open_ltv_bps"),
            liquidation_threshold_bps=cls.parse_int(
                _require(data, "close_ltv_bps", context), f"{context}.close_ltv_bps"
            ),
            borrow_weight_bps=cls.parse_int(
                _require(data, "borrow_weight_bps", context), f"{context}.borrow_weight_bps"
            ),
            interest_rate_curve=curve,
            deposit_limit=limit("deposit_limit"),
            borrow_limit=limit("borrow_limit"),
            deposit_limit_usd=limit("deposit_limit_usd"),
            borrow_limit_usd=limit("borrow_limit_usd"),
            borrow_fee_bps=cls.parse_int(data.get("borrow_fee_bps", 0), f"{context}.borrow_fee_bps"),
            spread_fee_bps=cls.parse_int(data.get("spread_fee_bps", 0), f"{context}.spread_fee_bps"),
        )

    @classmethod
    def parse_reward_pool(cls, data: Optional[Mapping[str, Any]], reserve_asset_id, side: Side) -> Optional[RewardPool]:
        if not data:
            return None

        context = f"{reserve_asset_id}.{side.value}_rewards"
        campaigns = []
        for raw in data.get("pool_rewards") or []:
            campaign_id = str(_require(raw, "id", context))
            campaigns.append(
                RewardCampaign(
                    id=campaign_id,
                    reserve_asset_id=reserve_asset_id,
                    side=side,
                    reward_asset_id=normalize_asset_id(_require(raw, "coin_type", context)),
                    start_time_s=cls.parse_int(_require(raw, "start_time_s", context), f"{campaign_id}.start_time_s"),
                    end_time_s=cls.parse_int(_require(raw, "end_time_s", context), f"{campaign_id}.end_time_s"),
                    total_allocated=cls.parse_int(_require(raw, "total_rewards", context), f"{campaign_id}.total_rewards"),
                    distributed_amount=cls.parse_int(raw.get("distributed_rewards", 0), f"{campaign_id}.distributed_rewards"),
                    cumulative_reward_per_share=cls.parse_wad_raw(
                        raw.get("cumulative_rewards_per_share_wad", 0), f"{campaign_id}.cumulative_rewards_per_share_wad"
                    ),
                    last_update_time_s=cls.parse_int(
                        raw.get("last_update_time_s", raw["start_time_s"]), f"{campaign_id}.last_update_time_s"
                    ),
                    reward_mint_decimals=cls.parse_int(raw.get("mint_decimals", 9), f"{campaign_id}.mint_decimals"),
                )
            )

        return RewardPool(
            reserve_asset_id=reserve_asset_id,
            side=side,
            total_shares=Wad(cls.parse_int(data.get("total_shares", 0), f"{context}.total_shares")),
            campaigns=tuple(campaigns),
        )

    @classmethod
    def parse_reserve(cls, data: Mapping[str, Any], metadata: Optional[AssetMetadata] = None) -> Reserve:
        """Parse one reserve; ``metadata`` may override symbol and decimals."""
        asset_id = normalize_asset_id(_require(data, "coin_type", "reserve"))
        context = f"reserve {asset_id}"
        meta = (metadata or {}).get(asset_id, {})

        price = cls.parse_decimal(_require(data, "price", context), f"{context}.price")
        smoothed = cls.parse_decimal(data.get("smoothed_price", data["price"]), f"{context}.smoothed_price")
        price_updated = cls.parse_int(
            _require(data, "price_last_update_timestamp_s", context), f"{context}.price_last_update_timestamp_s"
        )
        quote = OraclePriceQuote(
            price=price,
            smoothed_price=smoothed,
            confidence=cls.parse_decimal(data.get("price_confidence", 0), f"{context}.price_confidence"),
            publish_time_s=price_updated,
            asset_id=asset_id,
        )
        # Freshness is judged at valuation time against the build clock.
        validate_quote(quote, now_s=price_updated).unwrap()

        if "min_price" in data and "max_price" in data:
            min_price = cls.parse_decimal(data["min_price"], f"{context}.min_price")
            max_price = cls.parse_decimal(data["max_price"], f"{context}.max_price")
        else:
            min_price, max_price = price_bounds(quote)

        return Reserve(
            asset_id=asset_id,
            array_index=cls.parse_int(data.get("array_index", 0), f"{context}.array_index"),
            mint_decimals=cls.parse_int(
                meta["decimals"] if "decimals" in meta else _require(data, "mint_decimals", context), f"{context}.mint_decimals"
            ),
            symbol=str(meta.get("symbol", data.get("symbol", ""))),
            config=cls.parse_reserve_config(_require(data, "config", context), context),
            price=price,
            smoothed_price=smoothed,
            min_price=min_price,
            max_price=max_price,
            price_last_update_timestamp_s=price_updated,
            available_amount=cls.parse_int(_require(data, "available_amount", context), f"{context}.available_amount"),
            deposited_share_supply=cls.parse_int(_require(data, "ctoken_supply", context), f"{context}.ctoken_supply"),
            borrowed_amount=cls.parse_wad_raw(_require(data, "borrowed_amount_wad", context), f"{context}.borrowed_amount_wad"),
            cumulative_borrow_rate=cls.parse_wad_raw(
                _require(data, "cumulative_borrow_rate_wad", context), f"{context}.cumulative_borrow_rate_wad"
            ),
            interest_last_update_timestamp_s=cls.parse_int(
                _require(data, "interest_last_update_timestamp_s", context),
                f"{context}.interest_last_update_timestamp_s",
            ),
            unclaimed_spread_fees=cls.parse_wad_raw(
                data.get("unclaimed_spread_fees_wad", 0), f"{context}.unclaimed_spread_fees_wad"
            ),
            deposits_reward_pool=cls.parse_reward_pool(data.get("deposits_pool_reward_manager"), asset_id, Side.DEPOSIT),
            borrows_reward_pool=cls.parse_reward_pool(data.get("borrows_pool_reward_manager"), asset_id, Side.BORROW),
        )

    # ========== OBLIGATIONS ==========

    @classmethod
    def parse_obligation(cls, data: Mapping[str, Any]) -> Obligation:
        obligation_id = str(_require(data, "id", "obligation"))
        context = f"obligation {obligation_id}"

        deposits = [
            Deposit(
                asset_id=normalize_asset_id(_require(d, "coin_type", context)),
                deposited_share_amount=cls.parse_int(
                    _require(d, "deposited_ctoken_amount", context), f"{context}.deposited_ctoken_amount"
                ),
                reward_share=Wad(cls.parse_int(_require(d, "reward_share", context), f"{context}.reward_share")),
            )
            for d in data.get("deposits") or []
        ]
        borrows = [
            Borrow(
                asset_id=normalize_asset_id(_require(b, "coin_type", context)),
                borrowed_amount=cls.parse_wad_raw(_require(b, "borrowed_amount_wad", context), f"{context}.borrowed_amount_wad"),
                cumulative_borrow_rate_snapshot=cls.parse_wad_raw(
                    _require(b, "cumulative_borrow_rate_wad", context), f"{context}.cumulative_borrow_rate_wad"
                ),
                reward_share=Wad(cls.parse_int(_require(b, "reward_share", context), f"{context}.reward_share")),
            )
            for b in data.get("borrows") or []
        ]
        snapshots = {}
        for r in data.get("user_rewards") or []:
            campaign_id = str(_require(r, "campaign_id", context))
            snapshots[campaign_id] = UserRewardSnapshot(
                campaign_id=campaign_id,
                share=Wad(cls.parse_int(r.get("share", 0), f"{context}.share")),
                reward_per_share_snapshot=cls.parse_wad_raw(
                    r.get("cumulative_rewards_per_share_wad", 0), f"{context}.cumulative_rewards_per_share_wad"
                ),
                earned_amount=cls.parse_wad_raw(r.get("earned_rewards_wad", 0), f"{context}.earned_rewards_wad"),
                claimed_amount=cls.parse_int(r.get("claimed_amount", 0), f"{context}.claimed_amount"),
            )

        return Obligation(
            id=obligation_id,
            owner=str(data.get("owner", "")),
            deposits=tuple(deposits),
            borrows=tuple(borrows),
            user_reward_snapshots=snapshots,
        )

    # ========== RATE LIMITER ==========

    @classmethod
    def parse_rate_limiter(cls, data: Optional[Mapping[str, Any]]):
        if not data:
            return RateLimiterConfig(), RateLimiterState()

        config_data = data.get("config") or {}
        config = RateLimiterConfig(
            max_outflow=cls.parse_int(config_data.get("max_outflow", U64_MAX), "rate_limiter.max_outflow"),
            window_duration_s=cls.parse_int(config_data.get("window_duration_s", 0), "rate_limiter.window_duration_s"),
        )
        state = RateLimiterState(
            window_start=cls.parse_int(data.get("window_start", 0), "rate_limiter.window_start"),
            cur_qty=cls.parse_wad_raw(data.get("cur_qty_wad", 0), "rate_limiter.cur_qty_wad"),
            prev_qty=cls.parse_wad_raw(data.get("prev_qty_wad", 0), "rate_limiter.prev_qty_wad"),
        )
        return config, state

    # ========== MARKET ==========

    @classmethod
    def parse_market(cls, data: Mapping[str, Any], metadata: Optional[AssetMetadata] = None) -> MarketSnapshot:
        """Parse a full market snapshot document.

        Args:
            data: Decoded JSON document.
            metadata: Optional ``{coin_type: {"symbol", "decimals"}}`` map,
                refreshed on a slower cadence than the snapshot itself.

        Returns:
            MarketSnapshot

        Raises:
            InvalidConfiguration: If the document is malformed.
        """
        if not isinstance(data, Mapping):
            raise InvalidConfiguration(f"Snapshot must be an object, got {type(data).__name__}")

        normalized_meta = {normalize_asset_id(k): v for k, v in (metadata or {}).items()}

        reserves: Dict = {}
        for raw in _require(data, "reserves", "snapshot"):
            reserve = cls.parse_reserve(raw, normalized_meta)
            if reserve.asset_id in reserves:
                raise InvalidConfiguration(f"Duplicate reserve {reserve.asset_id}")
            reserves[reserve.asset_id] = reserve

        obligations: List[Obligation] = [cls.parse_obligation(o) for o in data.get("obligations") or []]
        rate_limiter_config, rate_limiter_state = cls.parse_rate_limiter(data.get("rate_limiter"))

        snapshot = MarketSnapshot(
            market_id=str(_require(data, "market_id", "snapshot")),
            reserves=reserves,
            obligations=tuple(obligations),
            rate_limiter_config=rate_limiter_config,
            rate_limiter_state=rate_limiter_state,
            fetched_at_s=cls.parse_int(data.get("fetched_at_s", 0), "fetched_at_s"),
        )
        logger.debug(
            f"Parsed market {snapshot.market_id}: {len(reserves)} reserves, {len(obligations)} obligations"
        )
        return snapshot
