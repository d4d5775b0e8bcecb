"""ADA/USD price lookup with ordered fallback sources."""

from koios_stake_txs.pricing.sources import (
    FixedPriceSource,
    HistoricalPriceSource,
    PriceResult,
    SpotPriceSource,
    default_price_sources,
    resolve_price_quote,
)

__all__ = [
    "FixedPriceSource",
    "HistoricalPriceSource",
    "PriceResult",
    "SpotPriceSource",
    "default_price_sources",
    "resolve_price_quote",
]
