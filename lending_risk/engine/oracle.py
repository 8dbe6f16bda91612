"""Oracle price quotes and the conservative bounds derived from them."""

from dataclasses import dataclass
from typing import Tuple

from ..core.constants import MAX_PRICE_STALENESS_SECONDS, MIN_CONFIDENCE_RATIO
from ..core.errors import InvalidConfiguration, StaleDataError
from ..core.fixed_point import Wad
from ..core.result import Outcome


@dataclass(frozen=True)
class OraclePriceQuote:
    price: Wad
    smoothed_price: Wad
    confidence: Wad
    publish_time_s: int
    asset_id: str = ""


def price_bounds(quote: OraclePriceQuote) -> Tuple[Wad, Wad]:
    """(min, max) of the spot and smoothed (EMA) price."""
    return min(quote.price, quote.smoothed_price), max(quote.price, quote.smoothed_price)


def validate_quote(
    quote: OraclePriceQuote,
    now_s: int,
    max_staleness_s: int = MAX_PRICE_STALENESS_SECONDS,
    min_confidence_ratio: int = MIN_CONFIDENCE_RATIO,
) -> Outcome[OraclePriceQuote]:
    """Accept a quote only if it is fresh and its confidence interval is tight.

    A quote is rejected when ``confidence * min_confidence_ratio > price``,
    i.e. the confidence band exceeds ``1 / min_confidence_ratio`` of the price.
    """
    age = now_s - quote.publish_time_s
    if age > max_staleness_s:
        return Outcome.failure(
            StaleDataError(
                f"Price for {quote.asset_id or 'asset'} is {age}s old (max {max_staleness_s}s)",
                asset_id=quote.asset_id or None,
                age_s=age,
                max_age_s=max_staleness_s,
            )
        )
    if quote.price <= 0:
        return Outcome.failure(InvalidConfiguration(f"Non-positive price {quote.price}"))
    if quote.confidence * min_confidence_ratio > quote.price:
        return Outcome.failure(
            InvalidConfiguration(
                f"Confidence {quote.confidence} too wide for price {quote.price}"
            )
        )
    return Outcome.ok(quote)
