"""
Bucket files: CSV lists of stake addresses grouped under named buckets.

Columns: bucket,label,controller,stake_address. Only stake_address is required;
a file with a single unnamed column is read as one stake address per line.
Every row is validated up front so a bad file fails before any request is made.
"""

from __future__ import annotations

import csv
from collections.abc import Iterable
from datetime import date
from pathlib import Path

from koios_stake_txs.core.exceptions import InputValidationError
from koios_stake_txs.models import StakeAddressQuery
from koios_stake_txs.validation import validate_stake_address

BUCKET_COLUMNS = ("bucket", "label", "controller", "stake_address")


def load_bucket_queries(
    path: str | Path,
    cutoff_date: date,
    after_block_height: int | None = None,
) -> list[StakeAddressQuery]:
    """Read a bucket file into queries sharing cutoff_date. Duplicate stake addresses in one bucket are dropped."""
    p = Path(path)
    if not p.exists():
        raise InputValidationError(f"bucket file not found: {p}")
    try:
        with open(p, newline="", encoding="utf-8") as f:
            header_line, raw_fields, rows = _read_rows(f)
    except (OSError, UnicodeDecodeError, csv.Error) as e:
        raise InputValidationError(f"cannot read bucket file {p}: {e}") from e
    if not raw_fields:
        raise InputValidationError(f"bucket file is empty: {p}")

    fields = [name.lower() for name in raw_fields]
    # Single column with no header: the first line is an address, not a column name
    headerless = len(fields) == 1 and fields[0].startswith("stake1")
    if "stake_address" not in fields and len(fields) != 1:
        raise InputValidationError(f"bucket file needs a stake_address column: {p}")
    column = fields.index("stake_address") if "stake_address" in fields else 0

    queries: list[StakeAddressQuery] = []
    seen: set[tuple[str, str]] = set()
    numbered = [(header_line, raw_fields)] if headerless else []
    for line_no, row in numbered + rows:
        values = dict(zip(fields, (v.strip() for v in row)))
        raw = row[column].strip() if column < len(row) else ""
        if not raw:
            continue
        try:
            stake_address = validate_stake_address(raw)
        except InputValidationError as e:
            raise InputValidationError(f"{p}:{line_no}: {e}") from e
        bucket = "" if headerless else values.get("bucket", "")
        if (bucket, stake_address) in seen:
            continue
        seen.add((bucket, stake_address))
        queries.append(
            StakeAddressQuery(
                stake_address=stake_address,
                cutoff_date=cutoff_date,
                label="" if headerless else values.get("label", ""),
                controller="" if headerless else values.get("controller", ""),
                bucket=bucket,
                after_block_height=after_block_height,
            )
        )
    if not queries:
        raise InputValidationError(f"no stake addresses in bucket file: {p}")
    return queries


def _read_rows(f: Iterable[str]) -> tuple[int, list[str], list[tuple[int, list[str]]]]:
    """
    First non-blank line as stripped field names in their original case, and the
    remaining non-empty rows. Line numbers come along for error messages.
    """
    reader = csv.reader(f)
    header: list[str] = []
    header_line = 0
    for row in reader:
        if any(v.strip() for v in row):
            header = [v.strip() for v in row]
            header_line = reader.line_num
            break
    rows = [(reader.line_num, row) for row in reader if row]
    return header_line, header, rows
