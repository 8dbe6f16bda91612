"""Pytest configuration and fixtures."""

from typing import Optional, Sequence, Tuple

import pytest

from config.settings import Settings
from lending_risk.core.fixed_point import Wad
from lending_risk.core.models import (
    Borrow,
    Deposit,
    InterestRateCurve,
    Obligation,
    Reserve,
    ReserveConfig,
    normalize_asset_id,
)
from lending_risk.engine.valuation import ObligationValuator, StalenessBounds

NOW = 1_700_000_000

USDC = normalize_asset_id("0xdba34672e30cb065b1f93e3ab55318768fd6fef66c15942c9f7cb846e2f900e7::usdc::USDC")
USDT = normalize_asset_id("0x375f70cf2ae4c00bf37117d0c85a2c71545e6ee05c4a5c7d282cd66a4504b068::usdt::USDT")
SUI = normalize_asset_id("0x2::sui::SUI")
WETH = normalize_asset_id("0xd0e89b2af5e4910726fbcd8b8dd37bb79b29e5f83f7491bca830e94f7f226d29::eth::ETH")


class TestFixtures:
    """Factories for reserves and obligations."""

    __test__ = False

    @staticmethod
    def create_reserve(
        asset_id: str = USDC,
        symbol: str = "USDC",
        mint_decimals: int = 6,
        price: str = "1",
        min_price: Optional[str] = None,
        max_price: Optional[str] = None,
        available_tokens: int = 1_000_000,
        borrowed_tokens: int = 0,
        open_ltv_bps: int = 8000,
        close_ltv_bps: int = 9000,
        borrow_weight_bps: int = 10000,
        curve: Sequence[Tuple[int, int]] = ((0, 0), (80, 1000), (100, 10000)),
        timestamp: int = NOW,
        **config_overrides,
    ) -> Reserve:
        """Create a reserve whose receipt tokens trade 1:1 with the underlying."""
        factor = 10**mint_decimals
        available = available_tokens * factor
        borrowed = borrowed_tokens * factor
        return Reserve(
            asset_id=normalize_asset_id(asset_id),
            array_index=0,
            mint_decimals=mint_decimals,
            symbol=symbol,
            config=ReserveConfig(
                open_ltv_bps=open_ltv_bps,
                liquidation_threshold_bps=close_ltv_bps,
                borrow_weight_bps=borrow_weight_bps,
                interest_rate_curve=InterestRateCurve(points=tuple(curve)),
                **config_overrides,
            ),
            price=Wad(price),
            smoothed_price=Wad(price),
            min_price=Wad(min_price or price),
            max_price=Wad(max_price or price),
            price_last_update_timestamp_s=timestamp,
            available_amount=available,
            deposited_share_supply=available + borrowed,
            borrowed_amount=Wad(borrowed),
            cumulative_borrow_rate=Wad.ONE,
            interest_last_update_timestamp_s=timestamp,
        )

    @staticmethod
    def create_obligation(
        obligation_id: str = "obligation-1",
        deposits: Sequence[Tuple[Reserve, int]] = (),
        borrows: Sequence[Tuple[Reserve, int]] = (),
        reward_share: bool = True,
    ) -> Obligation:
        """Create an obligation from (reserve, whole tokens) pairs."""
        return Obligation(
            id=obligation_id,
            owner="0xowner",
            deposits=tuple(
                Deposit(
                    asset_id=r.asset_id,
                    deposited_share_amount=tokens * r.decimals_factor,
                    reward_share=Wad(tokens * r.decimals_factor) if reward_share else Wad.ZERO,
                )
                for r, tokens in deposits
            ),
            borrows=tuple(
                Borrow(
                    asset_id=r.asset_id,
                    borrowed_amount=Wad(tokens * r.decimals_factor),
                    cumulative_borrow_rate_snapshot=r.cumulative_borrow_rate,
                    reward_share=Wad(tokens * r.decimals_factor) if reward_share else Wad.ZERO,
                )
                for r, tokens in borrows
            ),
        )


@pytest.fixture
def usdc_reserve() -> Reserve:
    return TestFixtures.create_reserve()


@pytest.fixture
def sui_reserve() -> Reserve:
    return TestFixtures.create_reserve(
        asset_id=SUI,
        symbol="SUI",
        mint_decimals=9,
        price="2",
        min_price="1.9",
        max_price="2.1",
        open_ltv_bps=7000,
        close_ltv_bps=7500,
        borrow_weight_bps=15000,
    )


@pytest.fixture
def valuator() -> ObligationValuator:
    return ObligationValuator(StalenessBounds(max_price_age_s=300, max_interest_age_s=300))


@pytest.fixture
def settings(tmp_path) -> Settings:
    """Settings isolated from the environment, with a temporary cache."""
    return Settings(
        snapshot_api_url="http://snapshot.test/market",
        metadata_api_url="http://snapshot.test/metadata",
        cache_dir=tmp_path / "cache",
        stablecoin_asset_ids=[USDC, USDT],
        eth_asset_ids=[WETH],
        parallel_min_obligations=1000,
        user_poll_interval_seconds=1,
        metadata_refresh_interval_seconds=3600,
    )


def snapshot_document(now: int = NOW) -> dict:
    """A raw snapshot document in the wire format the API serves."""
    wad = 10**18
    return {
        "market_id": "main",
        "fetched_at_s": now,
        "reserves": [
            {
                "coin_type": USDC,
                "array_index": 0,
                "mint_decimals": 6,
                "symbol": "USDC",
                "price": "1",
                "smoothed_price": "1",
                "price_last_update_timestamp_s": now,
                "available_amount": 900_000 * 10**6,
                "ctoken_supply": 1_000_000 * 10**6,
                "borrowed_amount_wad": str(100_000 * 10**6 * wad),
                "cumulative_borrow_rate_wad": str(wad),
                "interest_last_update_timestamp_s": now,
                "config": {
                    "open_ltv_bps": 8000,
                    "close_ltv_bps": 9000,
                    "borrow_weight_bps": 10000,
                    "interest_rate_utils": [0, 80, 100],
                    "interest_rate_aprs": [0, 1000, 10000],
                },
                "deposits_pool_reward_manager": {
                    "total_shares": 1_000_000 * 10**6,
                    "pool_rewards": [
                        {
                            "id": "campaign-usdc-sui",
                            "coin_type": "0x2::sui::SUI",
                            "start_time_s": now - 86_400,
                            "end_time_s": now + 86_400,
                            "total_rewards": 2_000 * 10**9,
                            "distributed_rewards": 0,
                            "cumulative_rewards_per_share_wad": "0",
                            "last_update_time_s": now - 86_400,
                            "mint_decimals": 9,
                        }
                    ],
                },
            },
            {
                "coin_type": "0x2::sui::SUI",
                "array_index": 1,
                "mint_decimals": 9,
                "symbol": "SUI",
                "price": "2",
                "smoothed_price": "2.2",
                "price_last_update_timestamp_s": now,
                "available_amount": 500_000 * 10**9,
                "ctoken_supply": 500_000 * 10**9,
                "borrowed_amount_wad": "0",
                "cumulative_borrow_rate_wad": str(wad),
                "interest_last_update_timestamp_s": now,
                "config": {
                    "open_ltv_bps": 7000,
                    "close_ltv_bps": 7500,
                    "borrow_weight_bps": 15000,
                    "interest_rate_utils": [0, 100],
                    "interest_rate_aprs": [100, 20000],
                },
            },
        ],
        "obligations": [
            {
                "id": "healthy",
                "owner": "0xalice",
                "deposits": [
                    {"coin_type": USDC, "deposited_ctoken_amount": 1_000 * 10**6, "reward_share": 1_000 * 10**6}
                ],
                "borrows": [
                    {
                        "coin_type": "0x2::sui::SUI",
                        "borrowed_amount_wad": str(100 * 10**9 * wad),
                        "cumulative_borrow_rate_wad": str(wad),
                        "reward_share": 100 * 10**9,
                    }
                ],
                "user_rewards": [
                    {
                        "campaign_id": "campaign-usdc-sui",
                        "share": 1_000 * 10**6,
                        "cumulative_rewards_per_share_wad": "0",
                        "earned_rewards_wad": "0",
                        "claimed_amount": 0,
                    }
                ],
            },
            {
                "id": "looper",
                "owner": "0xbob",
                "deposits": [
                    {"coin_type": USDC, "deposited_ctoken_amount": 500 * 10**6, "reward_share": 0}
                ],
                "borrows": [
                    {
                        "coin_type": USDC,
                        "borrowed_amount_wad": str(100 * 10**6 * wad),
                        "cumulative_borrow_rate_wad": str(wad),
                        "reward_share": 0,
                    }
                ],
            },
        ],
        "rate_limiter": {
            "config": {"max_outflow": 1_000_000, "window_duration_s": 86_400},
            "window_start": now - 3_600,
            "cur_qty_wad": str(250_000 * wad),
            "prev_qty_wad": "0",
        },
    }


@pytest.fixture
def raw_snapshot() -> dict:
    return snapshot_document()
