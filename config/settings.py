"""Pydantic settings for the lending risk engine."""

from decimal import Decimal
from functools import lru_cache
from pathlib import Path
from typing import Annotated, List, Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Snapshot API
    snapshot_api_url: str = Field(
        default="http://localhost:8080/market/snapshot",
        description="URL serving the raw market snapshot document",
    )
    metadata_api_url: Optional[str] = Field(
        default=None,
        description="URL serving asset metadata (symbols, decimals); optional",
    )
    api_rate_limit: int = Field(default=10, ge=1, le=1000, description="Requests allowed per rate window")
    api_rate_window_seconds: float = Field(default=1.0, gt=0, le=3600, description="Rate window in seconds")
    fetch_timeout_seconds: float = Field(default=10.0, gt=0, le=300, description="Per-fetch timeout in seconds")

    # Poll loop
    user_poll_interval_seconds: int = Field(default=30, ge=1, le=3600, description="Snapshot poll interval")
    metadata_refresh_interval_seconds: int = Field(
        default=3600, ge=60, le=86400, description="Asset metadata refresh interval"
    )

    # Staleness bounds
    max_price_age_seconds: int = Field(default=300, ge=0, description="Oldest accepted oracle price")
    max_interest_age_seconds: int = Field(default=300, ge=0, description="Oldest accepted interest index")

    # Max-action search
    bisection_max_iterations: int = Field(default=50, ge=1, le=512, description="Bisection iteration budget")
    bisection_tolerance: Decimal = Field(
        default=Decimal("0.000001"), gt=0, description="Bisection tolerance in whole tokens"
    )

    # Risk
    account_borrow_limit_usd: Decimal = Field(
        default=Decimal("20000000"), gt=0, description="Cap on the conservative borrow limit (USD)"
    )

    # Looping groups
    stablecoin_asset_ids: Annotated[List[str], NoDecode] = Field(
        default_factory=list, description="Correlated stablecoin coin types"
    )
    eth_asset_ids: Annotated[List[str], NoDecode] = Field(
        default_factory=list, description="Correlated ETH coin types"
    )

    # Batch valuation
    max_workers: Optional[int] = Field(default=None, ge=1, description="Worker processes (default: CPU count)")
    parallel_min_obligations: int = Field(
        default=64, ge=1, description="Value serially below this many obligations"
    )

    # Cache Configuration
    cache_dir: Path = Field(default=Path(".cache/lending_risk"), description="Cache directory path")
    cache_ttl_seconds: int = Field(default=86400, ge=60, le=604800, description="Cache TTL in seconds")

    @field_validator("stablecoin_asset_ids", "eth_asset_ids", mode="before")
    @classmethod
    def parse_asset_ids(cls, v):
        """Parse comma-separated coin types."""
        if isinstance(v, str):
            if not v.strip():
                return []
            return [coin.strip() for coin in v.split(",") if coin.strip()]
        return v or []

    @field_validator("cache_dir", mode="before")
    @classmethod
    def parse_cache_dir(cls, v):
        """Convert string to Path."""
        if isinstance(v, str):
            return Path(v)
        return v

    def ensure_cache_dir(self) -> Path:
        """Ensure cache directory exists and return it."""
        self.cache_dir.mkdir(parents=True, exist_ok=True)
        return self.cache_dir


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
