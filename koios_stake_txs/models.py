"""
Data models for the transaction valuation pipeline.

- StakeAddressQuery: one stake key to export, with optional bucket labels.
- TransactionSummary / UtxoSet: normalized Koios tx_info and tx_utxos items, joined by tx_hash.
- PriceQuote: the USD-per-ADA rate used for a run.
- ValuationRecord: one output row per transaction.

All models are frozen; ADA and USD amounts are Decimal so lovelace conversion is exact.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Any

TX_TYPE_IN = "in"
TX_TYPE_OUT = "out"


def _to_int(value: Any, default: int = 0) -> int:
    """Koios returns lovelace as strings and heights as ints; both may be null."""
    if value is None or value == "":
        return default
    return int(value)


def _payment_bech32(entry: dict[str, Any]) -> str | None:
    payment = entry.get("payment_addr")
    if isinstance(payment, dict):
        return payment.get("bech32") or None
    if isinstance(payment, str):
        return payment or None
    return None


@dataclass(frozen=True)
class StakeAddressQuery:
    """A stake address to export transactions for, from cutoff_date onwards."""

    stake_address: str
    cutoff_date: date
    label: str = ""
    controller: str = ""
    bucket: str = ""
    after_block_height: int | None = None


@dataclass(frozen=True)
class TransactionSummary:
    """
    Normalized tx_info item.

    Only the fields the valuation needs are kept; metadata is filled in from
    the tx_metadata lookup when available.
    """

    tx_hash: str
    block_height: int
    timestamp: int
    """Unix seconds (tx_timestamp)."""
    total_output_lovelace: int
    fee_lovelace: int
    metadata: Any = None

    @classmethod
    def from_api_item(cls, item: dict[str, Any], metadata: Any = None) -> "TransactionSummary":
        """Build from a single Koios tx_info result item."""
        total_output = _to_int(item.get("total_output"))
        fee = _to_int(item.get("fee"))
        if total_output < 0 or fee < 0:
            raise ValueError(f"negative lovelace amount in tx {item.get('tx_hash')}")
        return cls(
            tx_hash=item["tx_hash"],
            block_height=_to_int(item.get("block_height")),
            timestamp=_to_int(item.get("tx_timestamp")),
            total_output_lovelace=total_output,
            fee_lovelace=fee,
            metadata=metadata if metadata is not None else item.get("metadata"),
        )


@dataclass(frozen=True)
class UtxoInput:
    stake_addr: str | None
    payment_addr: str | None = None


@dataclass(frozen=True)
class UtxoOutput:
    stake_addr: str | None
    value_lovelace: int
    payment_addr: str | None = None


@dataclass(frozen=True)
class UtxoSet:
    """Inputs and outputs of one transaction (Koios tx_utxos item)."""

    tx_hash: str
    inputs: tuple[UtxoInput, ...] = ()
    outputs: tuple[UtxoOutput, ...] = ()

    @property
    def input_stake_addresses(self) -> frozenset[str]:
        """Stake addresses that funded this transaction (None entries excluded)."""
        return frozenset(i.stake_addr for i in self.inputs if i.stake_addr)

    @classmethod
    def from_api_item(cls, item: dict[str, Any]) -> "UtxoSet":
        """Build from a single Koios tx_utxos result item."""
        inputs = tuple(
            UtxoInput(stake_addr=i.get("stake_addr"), payment_addr=_payment_bech32(i))
            for i in item.get("inputs") or []
            if isinstance(i, dict)
        )
        outputs = []
        for o in item.get("outputs") or []:
            if not isinstance(o, dict):
                continue
            value = _to_int(o.get("value"))
            if value < 0:
                raise ValueError(f"negative output value in tx {item.get('tx_hash')}")
            outputs.append(
                UtxoOutput(
                    stake_addr=o.get("stake_addr"),
                    value_lovelace=value,
                    payment_addr=_payment_bech32(o),
                )
            )
        return cls(tx_hash=item["tx_hash"], inputs=inputs, outputs=tuple(outputs))


@dataclass(frozen=True)
class PriceQuote:
    """USD per ADA for a date, and the name of the source that produced it."""

    date: date
    usd_per_ada: Decimal
    source: str = "fixed"

    def __post_init__(self) -> None:
        if self.usd_per_ada <= 0:
            raise ValueError("usd_per_ada must be positive")


@dataclass(frozen=True)
class ValuationRecord:
    """
    One output row. Derived from a query, a summary, a UTXO set and a price quote;
    never mutated after creation.
    """

    bucket: str
    label: str
    controller: str
    stake_address: str
    payment_address: str
    tx_hash: str
    tx_time: str
    """Block time formatted as YYYY-MM-DD HH:MM:SS in the configured timezone."""
    block_height: int
    block_time: int
    amount_ada: Decimal
    fee_ada: Decimal
    tx_type: str
    output_ada: Decimal
    amount_usd: Decimal
    ada_usd_rate: Decimal
    total_output_ada: Decimal
    metadata: Any = None

    def to_dict(self) -> dict[str, Any]:
        """Return a JSON-friendly dict; Decimals become strings."""
        return {
            "bucket": self.bucket,
            "label": self.label,
            "controller": self.controller,
            "stake_address": self.stake_address,
            "payment_address": self.payment_address,
            "tx_hash": self.tx_hash,
            "tx_time": self.tx_time,
            "block_height": self.block_height,
            "block_time": self.block_time,
            "amount_ada": str(self.amount_ada),
            "fee_ada": str(self.fee_ada),
            "tx_type": self.tx_type,
            "output_ada": str(self.output_ada),
            "amount_usd": str(self.amount_usd),
            "ada_usd_rate": str(self.ada_usd_rate),
            "total_output_ada": str(self.total_output_ada),
            "metadata": self.metadata,
        }
