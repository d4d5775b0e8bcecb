"""
Pipeline settings.

PipelineConfig gathers every tunable (API base URLs, batch size, fallback
price, HTTP retry policy, fetch concurrency, display timezone) with documented
defaults. Build it from the environment with get_config(), or construct it
directly in tests to point the clients at mock endpoints.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from koios_stake_txs.config.env import (
    DEFAULT_COINGECKO_API,
    DEFAULT_KOIOS_API,
    env_float,
    env_int,
    env_str,
    get_coingecko_api,
    get_koios_api,
    get_koios_api_token,
)

DEFAULT_BATCH_SIZE = 50
MAX_BATCH_SIZE = 1000
DEFAULT_FALLBACK_USD_PER_ADA = Decimal("0.25")
DEFAULT_REQUEST_TIMEOUT_SEC = 30.0
DEFAULT_MAX_RETRIES = 3
DEFAULT_RETRY_DELAY_SEC = 1.0
DEFAULT_FETCH_CONCURRENCY = 3
DEFAULT_TIMEZONE = "UTC"

TX_LOOKUP_ADDRESS = "address"
TX_LOOKUP_STAKE = "stake"
TX_LOOKUP_MODES = (TX_LOOKUP_ADDRESS, TX_LOOKUP_STAKE)


@dataclass
class PipelineConfig:
    """
    Config for the valuation pipeline and its HTTP collaborators.

    koios_api: Koios REST base URL (no trailing slash).
    koios_api_token: Optional bearer token sent to Koios.
    coingecko_api: CoinGecko REST base URL (no trailing slash).
    batch_size: Max tx hashes per tx_info / tx_utxos / tx_metadata request.
    fallback_usd_per_ada: Rate used when every price source fails.
    request_timeout_sec: Per-request HTTP timeout.
    max_retries: Attempts per HTTP call on transient failures (429, 5xx, connection).
    retry_delay_sec: Fixed sleep between attempts.
    fetch_concurrency: Worker threads for the per-batch lookups.
    timezone: IANA zone for the cutoff start-of-day and formatted tx times.
    tx_lookup: "address" (account_addresses + address_txs) or "stake" (account_txs).
    """

    koios_api: str = DEFAULT_KOIOS_API
    koios_api_token: str | None = None
    coingecko_api: str = DEFAULT_COINGECKO_API
    batch_size: int = DEFAULT_BATCH_SIZE
    fallback_usd_per_ada: Decimal = field(default_factory=lambda: DEFAULT_FALLBACK_USD_PER_ADA)
    request_timeout_sec: float = DEFAULT_REQUEST_TIMEOUT_SEC
    max_retries: int = DEFAULT_MAX_RETRIES
    retry_delay_sec: float = DEFAULT_RETRY_DELAY_SEC
    fetch_concurrency: int = DEFAULT_FETCH_CONCURRENCY
    timezone: str = DEFAULT_TIMEZONE
    tx_lookup: str = TX_LOOKUP_ADDRESS

    def __post_init__(self) -> None:
        self.koios_api = self.koios_api.rstrip("/")
        self.coingecko_api = self.coingecko_api.rstrip("/")
        self.batch_size = max(1, min(int(self.batch_size), MAX_BATCH_SIZE))
        self.fallback_usd_per_ada = Decimal(str(self.fallback_usd_per_ada))
        if self.fallback_usd_per_ada <= 0:
            raise ValueError("fallback_usd_per_ada must be positive")
        self.max_retries = max(1, int(self.max_retries))
        self.retry_delay_sec = max(0.0, float(self.retry_delay_sec))
        self.fetch_concurrency = max(1, int(self.fetch_concurrency))
        if self.tx_lookup not in TX_LOOKUP_MODES:
            raise ValueError(f"tx_lookup must be one of {TX_LOOKUP_MODES}, got {self.tx_lookup!r}")
        try:
            ZoneInfo(self.timezone)
        except (ZoneInfoNotFoundError, ValueError) as e:
            raise ValueError(f"unknown timezone {self.timezone!r}") from e

    @property
    def tzinfo(self) -> ZoneInfo:
        return ZoneInfo(self.timezone)

    @classmethod
    def from_env(cls) -> "PipelineConfig":
        """Build PipelineConfig from environment with defaults."""
        return cls(
            koios_api=get_koios_api(),
            koios_api_token=get_koios_api_token(),
            coingecko_api=get_coingecko_api(),
            batch_size=env_int("KOIOS_BATCH_SIZE", DEFAULT_BATCH_SIZE),
            fallback_usd_per_ada=Decimal(str(env_float("FALLBACK_ADA_USD", float(DEFAULT_FALLBACK_USD_PER_ADA)))),
            request_timeout_sec=env_float("REQUEST_TIMEOUT_SEC", DEFAULT_REQUEST_TIMEOUT_SEC),
            max_retries=env_int("MAX_RETRIES", DEFAULT_MAX_RETRIES),
            retry_delay_sec=env_float("RETRY_DELAY_SEC", DEFAULT_RETRY_DELAY_SEC),
            fetch_concurrency=env_int("FETCH_CONCURRENCY", DEFAULT_FETCH_CONCURRENCY),
            timezone=env_str("TX_TIMEZONE", DEFAULT_TIMEZONE),
            tx_lookup=env_str("TX_LOOKUP", TX_LOOKUP_ADDRESS).lower(),
        )


def get_config() -> PipelineConfig:
    """Return the pipeline settings for the current environment."""
    return PipelineConfig.from_env()
