"""
Pytest fixtures for koios-stake-txs tests. Koios and CoinGecko are never called;
clients get MagicMock sessions and the pipeline gets a MagicMock Koios client.
"""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from typing import Any
from unittest.mock import MagicMock

import pytest

STAKE = "stake1u9ylzsgxaa6xctf4juup682ar3juj85n8tx3hthnljg47zqgk4hha"
OTHER_STAKE = "stake1uxpdrerp9wrxunfh6ukyv5267j70fzxgw0fr3z8zeac5vyqhf9jhy"
THIRD_STAKE = "stake1u8a9qstrmj4rvc3k5z8fems7f0j2vzrjhyqgurw3n9d0qlq4f2tkm"
PAYMENT = "addr1qx2fxv2umyhttkxyxp8x0dlpdt3k6cwng5pxj3jhsydzer3jcu5d8ps7zex2k2xt3uqxgjqnnj83ws8lhrn648jjxtwq2ytjqp"
OTHER_PAYMENT = "addr1q9other0payment0address0for0tests0only0000000000000000000000000000000000000000000000000000"

# 2024-01-01T00:00:00Z
CUTOFF_TS = 1704067200
CUTOFF_DATE = date(2024, 1, 1)


def tx_info_item(
    tx_hash: str,
    ts: int = CUTOFF_TS + 3600,
    total_output: str = "5000000",
    fee: str = "170000",
    block_height: int = 9_800_000,
    metadata: Any = None,
) -> dict[str, Any]:
    """Koios tx_info item with only the fields the pipeline reads (plus noise)."""
    return {
        "tx_hash": tx_hash,
        "block_hash": "b" * 64,
        "block_height": block_height,
        "epoch_no": 460,
        "tx_timestamp": ts,
        "total_output": total_output,
        "fee": fee,
        "metadata": metadata,
    }


def tx_utxos_item(
    tx_hash: str,
    inputs: list[tuple[str | None, str | None]],
    outputs: list[tuple[str | None, str, str | None]],
) -> dict[str, Any]:
    """inputs: (stake_addr, payment bech32); outputs: (stake_addr, value, payment bech32)."""
    return {
        "tx_hash": tx_hash,
        "inputs": [
            {
                "stake_addr": stake,
                "payment_addr": {"bech32": pay, "cred": "c" * 56} if pay else None,
                "value": "1000000",
            }
            for stake, pay in inputs
        ],
        "outputs": [
            {
                "stake_addr": stake,
                "payment_addr": {"bech32": pay, "cred": "c" * 56} if pay else None,
                "value": value,
            }
            for stake, value, pay in outputs
        ],
    }


def http_response(status_code: int = 200, json_data: Any = None, text: str = "") -> MagicMock:
    resp = MagicMock()
    resp.status_code = status_code
    resp.text = text
    resp.json.return_value = json_data
    return resp


@pytest.fixture
def config():
    """Deterministic config: UTC, small batches, no retry delay, local mock URLs."""
    from koios_stake_txs.config.settings import PipelineConfig

    return PipelineConfig(
        koios_api="http://koios.test/api/v1/",
        coingecko_api="http://coingecko.test/api/v3",
        batch_size=50,
        max_retries=3,
        retry_delay_sec=0,
        request_timeout_sec=5,
        timezone="UTC",
    )


@pytest.fixture
def fake_session():
    """requests.Session stand-in with a real headers dict."""
    session = MagicMock()
    session.headers = {}
    return session


@pytest.fixture
def query():
    from koios_stake_txs.models import StakeAddressQuery

    return StakeAddressQuery(
        stake_address=STAKE,
        cutoff_date=CUTOFF_DATE,
        label="treasury",
        controller="ops",
        bucket="core",
    )


@pytest.fixture
def fixed_price():
    from koios_stake_txs.models import PriceQuote

    return PriceQuote(date=CUTOFF_DATE, usd_per_ada=Decimal("0.4"), source="fixed")


@pytest.fixture
def fake_koios():
    """
    MagicMock Koios client backed by dicts. Tests fill tx_info / tx_utxos / metadata
    and the batch lookups answer only for hashes present.
    """
    koios = MagicMock()
    koios.tx_info = {}
    koios.tx_utxos = {}
    koios.metadata = {}
    koios.get_tx_info.side_effect = lambda hashes: [koios.tx_info[h] for h in hashes if h in koios.tx_info]
    koios.get_tx_utxos.side_effect = lambda hashes: [koios.tx_utxos[h] for h in hashes if h in koios.tx_utxos]
    koios.get_tx_metadata.side_effect = lambda hashes: {h: koios.metadata[h] for h in hashes if h in koios.metadata}
    return koios
