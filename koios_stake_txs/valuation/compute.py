"""
Transaction classification and valuation.

Pure functions over pre-fetched data: no I/O, so the same inputs always give
the same records. Amounts stay exact Decimals; rounding is left to the CSV writer.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from datetime import date, datetime, time, tzinfo
from decimal import Decimal

from koios_stake_txs.models import (
    TX_TYPE_IN,
    TX_TYPE_OUT,
    PriceQuote,
    StakeAddressQuery,
    TransactionSummary,
    UtxoSet,
    ValuationRecord,
)
from koios_stake_txs.txlog import get_logger

logger = get_logger(__name__)

LOVELACE_PER_ADA = 1_000_000
TX_TIME_FORMAT = "%Y-%m-%d %H:%M:%S"


def lovelace_to_ada(lovelace: int) -> Decimal:
    """Exact conversion: 1 ADA = 1,000,000 lovelace."""
    return Decimal(int(lovelace)) / LOVELACE_PER_ADA


def cutoff_timestamp(cutoff_date: date, tz: tzinfo) -> int:
    """Unix seconds at the start of cutoff_date in tz."""
    return int(datetime.combine(cutoff_date, time.min, tzinfo=tz).timestamp())


def format_block_time(timestamp: int, tz: tzinfo) -> str:
    return datetime.fromtimestamp(timestamp, tz=tz).strftime(TX_TIME_FORMAT)


def classify(stake_address: str, utxos: UtxoSet) -> str:
    """Return TX_TYPE_OUT when the stake key appears among the inputs, else TX_TYPE_IN."""
    return TX_TYPE_OUT if stake_address in utxos.input_stake_addresses else TX_TYPE_IN


def external_output_lovelace(utxos: UtxoSet) -> int:
    """Sum of outputs not going back to any input stake key (change excluded)."""
    funders = utxos.input_stake_addresses
    return sum(o.value_lovelace for o in utxos.outputs if o.stake_addr not in funders)


def attribute_payment_address(stake_address: str, utxos: UtxoSet, tx_type: str) -> str:
    """
    Payment address of the stake key on the relevant side of the transaction:
    first matching input for "out", first matching output for "in". Blank if none.
    """
    side = utxos.inputs if tx_type == TX_TYPE_OUT else utxos.outputs
    for entry in side:
        if entry.stake_addr == stake_address and entry.payment_addr:
            return entry.payment_addr
    return ""


def value_transaction(
    query: StakeAddressQuery,
    summary: TransactionSummary,
    utxos: UtxoSet,
    price_quote: PriceQuote,
    tz: tzinfo,
) -> ValuationRecord:
    """Build the record for one joined transaction. Does not apply the date filter."""
    amount_ada = lovelace_to_ada(summary.total_output_lovelace)
    fee_ada = lovelace_to_ada(summary.fee_lovelace)
    tx_type = classify(query.stake_address, utxos)
    output_ada = lovelace_to_ada(external_output_lovelace(utxos))
    rate = price_quote.usd_per_ada
    # The sender pays the fee
    total_output_ada = output_ada + fee_ada if tx_type == TX_TYPE_OUT else output_ada
    return ValuationRecord(
        bucket=query.bucket,
        label=query.label,
        controller=query.controller,
        stake_address=query.stake_address,
        payment_address=attribute_payment_address(query.stake_address, utxos, tx_type),
        tx_hash=summary.tx_hash,
        tx_time=format_block_time(summary.timestamp, tz),
        block_height=summary.block_height,
        block_time=summary.timestamp,
        amount_ada=amount_ada,
        fee_ada=fee_ada,
        tx_type=tx_type,
        output_ada=output_ada,
        amount_usd=output_ada * rate,
        ada_usd_rate=rate,
        total_output_ada=total_output_ada,
        metadata=summary.metadata,
    )


def compute_valuation_records(
    query: StakeAddressQuery,
    tx_hashes: Iterable[str],
    tx_summaries: Mapping[str, TransactionSummary],
    utxo_sets: Mapping[str, UtxoSet],
    price_quote: PriceQuote,
    tz: tzinfo,
) -> list[ValuationRecord]:
    """
    One record per hash in tx_hashes order, for hashes that have both a summary
    and a UTXO set and whose block time is on or after the query's cutoff date.
    Hashes missing from either mapping are dropped without error.
    """
    cutoff = cutoff_timestamp(query.cutoff_date, tz)
    records: list[ValuationRecord] = []
    seen: set[str] = set()
    dropped = 0
    for tx_hash in tx_hashes:
        if tx_hash in seen:
            continue
        seen.add(tx_hash)
        summary = tx_summaries.get(tx_hash)
        utxos = utxo_sets.get(tx_hash)
        if summary is None or utxos is None:
            dropped += 1
            continue
        if summary.timestamp < cutoff:
            continue
        records.append(value_transaction(query, summary, utxos, price_quote, tz))
    if dropped:
        logger.debug("valuation_rows_dropped", stake_address=query.stake_address, dropped=dropped)
    return records
