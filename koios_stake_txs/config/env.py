"""
Environment variable loading for koios-stake-txs.

- KOIOS_API: Koios base URL (default: https://api.koios.rest/api/v1)
- KOIOS_API_TOKEN: optional Koios bearer token for higher rate limits
- COINGECKO_API: CoinGecko base URL (default: https://api.coingecko.com/api/v3)
- Loads .env from project root when available.
"""

from __future__ import annotations

import os
from pathlib import Path

from dotenv import load_dotenv

# Project root: config is koios_stake_txs/config/, root is 2 levels up
_CONFIG_DIR = Path(__file__).resolve().parent
_PACKAGE_DIR = _CONFIG_DIR.parent
_ROOT = _PACKAGE_DIR.parent
_ENV_PATH = _ROOT / ".env"

DEFAULT_KOIOS_API = "https://api.koios.rest/api/v1"
DEFAULT_COINGECKO_API = "https://api.coingecko.com/api/v3"


def load_env() -> None:
    """Load .env from project root. Existing variables win; safe to call multiple times."""
    load_dotenv(_ENV_PATH, override=False)


def env_str(name: str, default: str = "") -> str:
    """Return a stripped env value, or default when unset or blank."""
    load_env()
    raw = (os.getenv(name) or "").strip()
    return raw or default


def env_int(name: str, default: int) -> int:
    raw = env_str(name)
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError as e:
        raise ValueError(f"{name} must be an integer, got {raw!r}") from e


def env_float(name: str, default: float) -> float:
    raw = env_str(name)
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError as e:
        raise ValueError(f"{name} must be a number, got {raw!r}") from e


def get_koios_api() -> str:
    """Return KOIOS_API without a trailing slash."""
    return env_str("KOIOS_API", DEFAULT_KOIOS_API).rstrip("/")


def get_koios_api_token() -> str | None:
    return env_str("KOIOS_API_TOKEN") or None


def get_coingecko_api() -> str:
    """Return COINGECKO_API without a trailing slash."""
    return env_str("COINGECKO_API", DEFAULT_COINGECKO_API).rstrip("/")
