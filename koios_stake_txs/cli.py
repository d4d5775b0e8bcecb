"""
Export a stake address's transactions from Koios as CSV, valued in USD.

Usage:
  koios-stake-txs -s STAKE_ADDRESS -d YYYY-MM-DD [-o transactions.csv]
  koios-stake-txs --buckets buckets.csv -d YYYY-MM-DD [-o report.csv]

Env:
  KOIOS_API, KOIOS_API_TOKEN, COINGECKO_API, KOIOS_BATCH_SIZE, TX_TIMEZONE, ...
  (see koios_stake_txs.config.settings)
"""

from __future__ import annotations

import argparse
import sys
from dataclasses import replace

from koios_stake_txs.buckets import load_bucket_queries
from koios_stake_txs.config import PipelineConfig, get_config
from koios_stake_txs.config.settings import TX_LOOKUP_STAKE
from koios_stake_txs.core.exceptions import InputValidationError, NoPaymentAddressesError, StakeTxsError
from koios_stake_txs.export.csv_writer import FORMAT_BASIC, FORMAT_EXTENDED, FORMATS, write_csv
from koios_stake_txs.models import StakeAddressQuery
from koios_stake_txs.txlog import get_logger
from koios_stake_txs.validation import parse_cutoff_date, validate_stake_address
from koios_stake_txs.valuation.pipeline import ValuationPipeline

logger = get_logger(__name__)

EXIT_OK = 0
EXIT_FAILED = 1
EXIT_USAGE = 2


def build_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(
        prog="koios-stake-txs",
        description="Query Koios for transactions of a stake address and export them as CSV with USD values.",
    )
    ap.add_argument("-s", "--stake-address", help="Stake address (stake1...)")
    ap.add_argument("-d", "--date", help="Cutoff date YYYY-MM-DD; earlier transactions are skipped")
    ap.add_argument("-o", "--output", help="Write CSV to this file (default: stdout)")
    ap.add_argument("--buckets", help="CSV with bucket,label,controller,stake_address columns")
    ap.add_argument("--format", choices=FORMATS, help="basic (8 columns) or extended (15 columns)")
    ap.add_argument("--after-block", type=int, help="Only transactions after this block height")
    ap.add_argument("--stake-lookup", action="store_true", help="Resolve transactions via account_txs on the stake key")
    return ap


def build_queries(args: argparse.Namespace) -> list[StakeAddressQuery]:
    """Validate CLI input into queries. Raises InputValidationError; makes no requests."""
    if args.buckets and args.stake_address:
        raise InputValidationError("use either -s or --buckets, not both")
    if not args.buckets and not (args.stake_address and args.date):
        raise InputValidationError("both -s (stake address) and -d (date) are required")
    cutoff = parse_cutoff_date(args.date)
    if args.after_block is not None and args.after_block < 0:
        raise InputValidationError("--after-block must be >= 0")
    if args.buckets:
        return load_bucket_queries(args.buckets, cutoff, args.after_block)
    return [
        StakeAddressQuery(
            stake_address=validate_stake_address(args.stake_address),
            cutoff_date=cutoff,
            after_block_height=args.after_block,
        )
    ]


def run(args: argparse.Namespace, config: PipelineConfig) -> int:
    queries = build_queries(args)
    fmt = args.format or (FORMAT_EXTENDED if args.buckets else FORMAT_BASIC)
    if args.stake_lookup:
        config = replace(config, tx_lookup=TX_LOOKUP_STAKE)

    with ValuationPipeline(config) as pipeline:
        if len(queries) == 1 and not args.buckets:
            query = queries[0]
            logger.info("cli_single_address", stake_address=query.stake_address, cutoff_date=query.cutoff_date.isoformat())
            try:
                records = pipeline.run(query)
            except NoPaymentAddressesError as e:
                logger.error("cli_no_payment_addresses", stake_address=e.stake_address, message=str(e))
                return EXIT_FAILED
            except StakeTxsError as e:
                logger.error("cli_upstream_failed", stake_address=query.stake_address, error=str(e))
                return EXIT_FAILED
            written = write_csv(records, args.output, fmt)
            logger.info("cli_csv_written", rows=written, output=args.output or "stdout")
            return EXIT_OK

        logger.info("cli_bucket_run", addresses=len(queries), buckets=len({q.bucket for q in queries}))
        report = pipeline.run_many(queries)
        written = write_csv(report.records, args.output, fmt)
        logger.info(
            "cli_csv_written",
            rows=written,
            output=args.output or "stdout",
            failed_addresses=len(report.failed),
        )
        return EXIT_FAILED if report.all_failed else EXIT_OK


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    try:
        config = get_config()
    except ValueError as e:
        print(f"Error: invalid configuration: {e}", file=sys.stderr)
        return EXIT_USAGE
    try:
        return run(args, config)
    except InputValidationError as e:
        print(f"Error: {e}", file=sys.stderr)
        return EXIT_USAGE
    except KeyboardInterrupt:
        logger.info("cli_interrupted")
        return EXIT_FAILED


if __name__ == "__main__":
    sys.exit(main())
