"""
ADA/USD price resolution as an ordered list of strategies.

Each source returns a PriceResult instead of raising; resolve_price_quote walks
the list in order and takes the first success. FixedPriceSource never fails and
is always tried last, so a run never stops because price data is unavailable.

Default order: CoinGecko history for the date, CoinGecko spot, fixed 0.25.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import date
from decimal import Decimal, InvalidOperation
from typing import Any, Protocol

import requests

from koios_stake_txs.config.settings import PipelineConfig
from koios_stake_txs.models import PriceQuote
from koios_stake_txs.txlog import get_logger

logger = get_logger(__name__)

COINGECKO_COIN_ID = "cardano"


@dataclass(frozen=True)
class PriceResult:
    """Outcome of one price source: a positive rate, or an error string."""

    source: str
    usd_per_ada: Decimal | None = None
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.usd_per_ada is not None

    @classmethod
    def success(cls, source: str, usd_per_ada: Decimal) -> "PriceResult":
        return cls(source=source, usd_per_ada=usd_per_ada)

    @classmethod
    def failure(cls, source: str, error: str) -> "PriceResult":
        return cls(source=source, error=error)


class PriceSource(Protocol):
    name: str

    def fetch(self, on_date: date) -> PriceResult: ...


def _dig(data: Any, path: tuple[str, ...]) -> Any:
    for key in path:
        if not isinstance(data, dict):
            return None
        data = data.get(key)
    return data


def _positive_decimal(value: Any) -> Decimal | None:
    """Return value as a positive Decimal; None for missing, non-numeric or <= 0."""
    if value is None or isinstance(value, bool):
        return None
    try:
        rate = Decimal(str(value))
    except InvalidOperation:
        return None
    if not rate.is_finite() or rate <= 0:
        return None
    return rate


class _CoinGeckoSource(ABC):
    """Shared GET + field extraction for CoinGecko endpoints."""

    name = "coingecko"
    rate_path: tuple[str, ...] = ()

    def __init__(self, config: PipelineConfig, session: requests.Session | None = None) -> None:
        self._base_url = config.coingecko_api
        self._timeout = config.request_timeout_sec
        self._session = session or requests.Session()

    @abstractmethod
    def _request(self, on_date: date) -> tuple[str, dict[str, str]]:
        """Endpoint path and query params for on_date."""

    def fetch(self, on_date: date) -> PriceResult:
        path, params = self._request(on_date)
        try:
            r = self._session.get(f"{self._base_url}/{path}", params=params, timeout=self._timeout)
            r.raise_for_status()
            data = r.json()
        except requests.RequestException as e:
            return PriceResult.failure(self.name, str(e))
        except ValueError as e:
            return PriceResult.failure(self.name, f"invalid JSON: {e}")
        rate = _positive_decimal(_dig(data, self.rate_path))
        if rate is None:
            return PriceResult.failure(self.name, f"missing or invalid {'.'.join(self.rate_path)}")
        return PriceResult.success(self.name, rate)


class HistoricalPriceSource(_CoinGeckoSource):
    """CoinGecko /coins/cardano/history for the exact calendar date."""

    name = "coingecko_history"
    rate_path = ("market_data", "current_price", "usd")

    def _request(self, on_date: date) -> tuple[str, dict[str, str]]:
        return (
            f"coins/{COINGECKO_COIN_ID}/history",
            {"date": on_date.strftime("%d-%m-%Y"), "localization": "false"},
        )


class SpotPriceSource(_CoinGeckoSource):
    """CoinGecko /simple/price: today's rate, used when history is unavailable."""

    name = "coingecko_spot"
    rate_path = (COINGECKO_COIN_ID, "usd")

    def _request(self, on_date: date) -> tuple[str, dict[str, str]]:
        return ("simple/price", {"ids": COINGECKO_COIN_ID, "vs_currencies": "usd"})


class FixedPriceSource:
    """Constant rate. Always succeeds."""

    name = "fixed"

    def __init__(self, usd_per_ada: Decimal) -> None:
        self._rate = Decimal(str(usd_per_ada))

    def fetch(self, on_date: date) -> PriceResult:
        return PriceResult.success(self.name, self._rate)


def default_price_sources(
    config: PipelineConfig,
    session: requests.Session | None = None,
) -> list[PriceSource]:
    """History, then spot (sharing one HTTP session), then the configured fixed rate."""
    session = session or requests.Session()
    return [
        HistoricalPriceSource(config, session),
        SpotPriceSource(config, session),
        FixedPriceSource(config.fallback_usd_per_ada),
    ]


def resolve_price_quote(
    on_date: date,
    sources: list[PriceSource],
    fallback_usd_per_ada: Decimal = Decimal("0.25"),
) -> PriceQuote:
    """
    Return the first successful quote from sources, in order.

    A source that raises is treated like one that returned a failure. If every
    source fails (or the list is empty) the fallback rate is used.
    """
    for source in sources:
        try:
            result = source.fetch(on_date)
        except Exception as e:
            result = PriceResult.failure(getattr(source, "name", type(source).__name__), str(e))
        if result.ok:
            logger.info("price_resolved", source=result.source, date=on_date.isoformat(), usd_per_ada=str(result.usd_per_ada))
            return PriceQuote(date=on_date, usd_per_ada=result.usd_per_ada, source=result.source)
        logger.warning("price_source_failed", source=result.source, date=on_date.isoformat(), error=result.error)
    logger.warning("price_fallback_constant", date=on_date.isoformat(), usd_per_ada=str(fallback_usd_per_ada))
    return PriceQuote(date=on_date, usd_per_ada=Decimal(str(fallback_usd_per_ada)), source=FixedPriceSource.name)
