"""
Koios REST client for the stake-address transaction lookups.

Every call POSTs a JSON body and expects a JSON array back. Transient failures
(HTTP 429, 5xx, dropped or truncated connections, timeouts) are retried a bounded number of
times with a fixed delay; anything else, or exhausting the retries, raises
KoiosRequestError for that call only.
"""

from __future__ import annotations

import time
from typing import Any

import requests

from koios_stake_txs.config.settings import PipelineConfig
from koios_stake_txs.core.exceptions import KoiosRequestError
from koios_stake_txs.txlog import get_logger

logger = get_logger(__name__)

ACCOUNT_ADDRESSES_ENDPOINT = "account_addresses"
ACCOUNT_TXS_ENDPOINT = "account_txs"
ADDRESS_TXS_ENDPOINT = "address_txs"
TX_INFO_ENDPOINT = "tx_info"
TX_UTXOS_ENDPOINT = "tx_utxos"
TX_METADATA_ENDPOINT = "tx_metadata"

RETRY_STATUS_CODES = frozenset({429, 500, 502, 503, 504})
# Dropped or truncated connections; worth another attempt
RETRY_EXCEPTIONS = (requests.ConnectionError, requests.Timeout, requests.exceptions.ChunkedEncodingError)


def _dict_items(data: list[Any]) -> list[dict[str, Any]]:
    """Koios arrays occasionally carry null entries; keep only objects."""
    return [item for item in data if isinstance(item, dict)]


def _unique(values: list[str]) -> list[str]:
    """Drop blanks and duplicates, keep first-seen order."""
    seen: set[str] = set()
    out: list[str] = []
    for v in values:
        if v and v not in seen:
            seen.add(v)
            out.append(v)
    return out


class KoiosClient:
    """
    Thin wrapper around the Koios endpoints used by the pipeline.

    Use as a context manager so the underlying requests.Session is closed:
        with KoiosClient(config) as koios:
            addrs = koios.get_account_addresses("stake1...")
    """

    def __init__(self, config: PipelineConfig, session: requests.Session | None = None) -> None:
        self._config = config
        self._base_url = config.koios_api
        self._session = session or requests.Session()
        self._owns_session = session is None
        self._session.headers.update({
            "accept": "application/json",
            "content-type": "application/json",
        })
        if config.koios_api_token:
            self._session.headers["Authorization"] = f"Bearer {config.koios_api_token}"

    def __enter__(self) -> "KoiosClient":
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()

    def close(self) -> None:
        if self._owns_session:
            self._session.close()

    def _post(self, endpoint: str, body: dict[str, Any]) -> list[dict[str, Any]]:
        url = f"{self._base_url}/{endpoint}"
        last_error = ""
        status_code: int | None = None
        for attempt in range(self._config.max_retries):
            try:
                r = self._session.post(url, json=body, timeout=self._config.request_timeout_sec)
            except RETRY_EXCEPTIONS as e:
                last_error = str(e)
                status_code = None
                logger.warning("koios_request_error", endpoint=endpoint, error=last_error, attempt=attempt + 1)
            except requests.RequestException as e:
                raise KoiosRequestError(
                    f"Koios request to {endpoint} failed: {e}",
                    endpoint=endpoint,
                ) from e
            else:
                status_code = r.status_code
                if status_code in RETRY_STATUS_CODES:
                    last_error = f"HTTP {status_code}"
                    logger.warning("koios_transient_status", endpoint=endpoint, status=status_code, attempt=attempt + 1)
                elif not 200 <= status_code < 300:
                    raise KoiosRequestError(
                        f"Koios returned HTTP {status_code} for {endpoint}: {r.text[:200]}",
                        endpoint=endpoint,
                        status_code=status_code,
                    )
                else:
                    try:
                        data = r.json()
                    except ValueError as e:
                        raise KoiosRequestError(
                            f"Koios returned invalid JSON for {endpoint}",
                            endpoint=endpoint,
                            status_code=status_code,
                        ) from e
                    if not isinstance(data, list):
                        raise KoiosRequestError(
                            f"Koios returned {type(data).__name__} for {endpoint}, expected a list",
                            endpoint=endpoint,
                            status_code=status_code,
                        )
                    return data
            if attempt < self._config.max_retries - 1:
                time.sleep(self._config.retry_delay_sec)
        raise KoiosRequestError(
            f"Koios {endpoint} failed after {self._config.max_retries} attempts: {last_error}",
            endpoint=endpoint,
            status_code=status_code,
        )

    def get_account_addresses(self, stake_address: str) -> list[str]:
        """Payment addresses associated with a stake address."""
        data = self._post(ACCOUNT_ADDRESSES_ENDPOINT, {"_stake_addresses": [stake_address]})
        addresses: list[str] = []
        for item in _dict_items(data):
            if item.get("stake_address") in (None, stake_address):
                addresses.extend(item.get("addresses") or [])
        return _unique(addresses)

    def get_address_txs(
        self,
        addresses: list[str],
        after_block_height: int | None = None,
    ) -> list[str]:
        """Transaction hashes touching any of the payment addresses."""
        body: dict[str, Any] = {"_addresses": addresses}
        if after_block_height is not None:
            body["_after_block_height"] = after_block_height
        data = self._post(ADDRESS_TXS_ENDPOINT, body)
        return _unique([item.get("tx_hash") for item in _dict_items(data)])

    def get_account_txs(
        self,
        stake_address: str,
        after_block_height: int | None = None,
    ) -> list[str]:
        """Transaction hashes for a stake key, without resolving payment addresses."""
        body: dict[str, Any] = {"_stake_address": stake_address}
        if after_block_height is not None:
            body["_after_block_height"] = after_block_height
        data = self._post(ACCOUNT_TXS_ENDPOINT, body)
        return _unique([item.get("tx_hash") for item in _dict_items(data)])

    def get_tx_info(self, tx_hashes: list[str]) -> list[dict[str, Any]]:
        """Raw tx_info items for one batch of hashes."""
        return self._post(TX_INFO_ENDPOINT, {"_tx_hashes": tx_hashes})

    def get_tx_utxos(self, tx_hashes: list[str]) -> list[dict[str, Any]]:
        """Raw tx_utxos items for one batch of hashes."""
        return self._post(TX_UTXOS_ENDPOINT, {"_tx_hashes": tx_hashes})

    def get_tx_metadata(self, tx_hashes: list[str]) -> dict[str, Any]:
        """Metadata keyed by tx_hash for one batch; hashes without metadata are absent."""
        data = self._post(TX_METADATA_ENDPOINT, {"_tx_hashes": tx_hashes})
        out: dict[str, Any] = {}
        for item in _dict_items(data):
            tx_hash = item.get("tx_hash")
            if tx_hash and item.get("metadata") is not None:
                out[tx_hash] = item["metadata"]
        return out
