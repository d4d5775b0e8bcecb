"""
CSV output sink.

Two layouts: the 8-column basic export and the 15-column bucketed export.
ADA and USD amounts are rounded half-up to 6 fractional digits here and only
here; metadata is written as compact JSON. The header row is always written.
"""

from __future__ import annotations

import csv
import json
import sys
from collections.abc import Iterable
from decimal import ROUND_HALF_UP, Decimal
from pathlib import Path
from typing import Any, TextIO

from koios_stake_txs.models import ValuationRecord

FORMAT_BASIC = "basic"
FORMAT_EXTENDED = "extended"
FORMATS = (FORMAT_BASIC, FORMAT_EXTENDED)

BASIC_HEADER = [
    "stake_address",
    "payment_address",
    "transaction_hash",
    "transaction_time",
    "transaction_block_height",
    "amount_ada",
    "amount_usd",
    "fee_ada",
]

EXTENDED_HEADER = [
    "bucket",
    "label",
    "controller",
    "stake_address",
    "transaction_hash",
    "transaction_time",
    "block_height",
    "amount_ada",
    "fee_ada",
    "tx_type",
    "output_ada",
    "amount_usd",
    "ada_usd_rate",
    "total_output_ada",
    "metadata",
]

_SIX_PLACES = Decimal("0.000001")


def format_amount(value: Decimal) -> str:
    return str(value.quantize(_SIX_PLACES, rounding=ROUND_HALF_UP))


def format_metadata(metadata: Any) -> str:
    if metadata is None or metadata == {} or metadata == []:
        return ""
    return json.dumps(metadata, separators=(",", ":"), sort_keys=True, ensure_ascii=False)


def basic_row(r: ValuationRecord) -> list[Any]:
    return [
        r.stake_address,
        r.payment_address,
        r.tx_hash,
        r.tx_time,
        r.block_height,
        format_amount(r.amount_ada),
        format_amount(r.amount_usd),
        format_amount(r.fee_ada),
    ]


def extended_row(r: ValuationRecord) -> list[Any]:
    return [
        r.bucket,
        r.label,
        r.controller,
        r.stake_address,
        r.tx_hash,
        r.tx_time,
        r.block_height,
        format_amount(r.amount_ada),
        format_amount(r.fee_ada),
        r.tx_type,
        format_amount(r.output_ada),
        format_amount(r.amount_usd),
        str(r.ada_usd_rate),
        format_amount(r.total_output_ada),
        format_metadata(r.metadata),
    ]


def write_records(records: Iterable[ValuationRecord], stream: TextIO, fmt: str = FORMAT_BASIC) -> int:
    """Write header and rows to an open text stream. Returns the number of data rows."""
    if fmt not in FORMATS:
        raise ValueError(f"unknown CSV format {fmt!r}, expected one of {FORMATS}")
    header, to_row = (BASIC_HEADER, basic_row) if fmt == FORMAT_BASIC else (EXTENDED_HEADER, extended_row)
    w = csv.writer(stream, lineterminator="\n")
    w.writerow(header)
    count = 0
    for record in records:
        w.writerow(to_row(record))
        count += 1
    return count


def write_csv(records: Iterable[ValuationRecord], path: str | Path | None, fmt: str = FORMAT_BASIC) -> int:
    """Write to path, or to stdout when path is None or "-"."""
    if path is None or str(path) == "-":
        return write_records(records, sys.stdout, fmt)
    out_path = Path(path)
    if out_path.parent != Path("."):
        out_path.parent.mkdir(parents=True, exist_ok=True)
    with open(out_path, "w", newline="", encoding="utf-8") as f:
        return write_records(records, f, fmt)
