"""CSV output for valuation records."""

from koios_stake_txs.export.csv_writer import (
    BASIC_HEADER,
    EXTENDED_HEADER,
    FORMAT_BASIC,
    FORMAT_EXTENDED,
    write_csv,
    write_records,
)

__all__ = [
    "BASIC_HEADER",
    "EXTENDED_HEADER",
    "FORMAT_BASIC",
    "FORMAT_EXTENDED",
    "write_csv",
    "write_records",
]
