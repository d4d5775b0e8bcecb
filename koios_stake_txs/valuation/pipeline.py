"""
Valuation pipeline: stake address -> tx hashes -> batched lookups -> records.

For each batch the tx_info, tx_utxos and tx_metadata lookups run concurrently
and are joined by tx_hash once all three have finished. A failed tx_info or
tx_utxos lookup drops that batch; a failed tx_metadata lookup only leaves the
metadata empty. Across several queries, one address failing is logged and the
run moves on to the next address.
"""

from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from datetime import date
from typing import Any

import requests

from koios_stake_txs.config.settings import TX_LOOKUP_STAKE, PipelineConfig
from koios_stake_txs.core.exceptions import NoPaymentAddressesError, StakeTxsError
from koios_stake_txs.koios.client import KoiosClient
from koios_stake_txs.models import (
    PriceQuote,
    StakeAddressQuery,
    TransactionSummary,
    UtxoSet,
    ValuationRecord,
)
from koios_stake_txs.pricing.sources import PriceSource, default_price_sources, resolve_price_quote
from koios_stake_txs.txlog import bind_stake_address, get_logger
from koios_stake_txs.valuation.compute import compute_valuation_records

logger = get_logger(__name__)


def batched(items: list[str], size: int) -> list[list[str]]:
    """Split items into consecutive chunks of at most size."""
    return [items[i:i + size] for i in range(0, len(items), size)]


@dataclass
class QueryOutcome:
    """Result of one query in a multi-address run."""

    query: StakeAddressQuery
    records: list[ValuationRecord] = field(default_factory=list)
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass
class RunReport:
    outcomes: list[QueryOutcome] = field(default_factory=list)

    @property
    def records(self) -> list[ValuationRecord]:
        return [r for o in self.outcomes for r in o.records]

    @property
    def failed(self) -> list[QueryOutcome]:
        return [o for o in self.outcomes if not o.ok]

    @property
    def all_failed(self) -> bool:
        return bool(self.outcomes) and len(self.failed) == len(self.outcomes)


class ValuationPipeline:
    """
    Fetch, join and value the transactions of stake addresses.

    koios and price_sources are injectable so tests can run against fakes;
    by default they are built from config.
    """

    def __init__(
        self,
        config: PipelineConfig,
        koios: KoiosClient | None = None,
        price_sources: list[PriceSource] | None = None,
    ) -> None:
        self._config = config
        self._koios = koios or KoiosClient(config)
        self._owns_koios = koios is None
        self._price_session: requests.Session | None = None
        if price_sources is None:
            self._price_session = requests.Session()
            price_sources = default_price_sources(config, self._price_session)
        self._price_sources = price_sources
        self._price_cache: dict[date, PriceQuote] = {}

    def __enter__(self) -> "ValuationPipeline":
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()

    def close(self) -> None:
        if self._owns_koios:
            self._koios.close()
        if self._price_session is not None:
            self._price_session.close()

    def resolve_tx_hashes(self, query: StakeAddressQuery) -> list[str]:
        """
        Transaction hashes for the query's stake key.

        Raises NoPaymentAddressesError in address mode when the stake key has no
        payment addresses; nothing else is fetched in that case.
        """
        log = bind_stake_address(query.stake_address)
        if self._config.tx_lookup == TX_LOOKUP_STAKE:
            hashes = self._koios.get_account_txs(query.stake_address, query.after_block_height)
            log.info("tx_hashes_resolved", lookup="stake", tx_count=len(hashes))
            return hashes

        addresses = self._koios.get_account_addresses(query.stake_address)
        if not addresses:
            raise NoPaymentAddressesError(query.stake_address)
        log.info("payment_addresses_resolved", address_count=len(addresses))
        hashes = self._koios.get_address_txs(addresses, query.after_block_height)
        log.info("tx_hashes_resolved", lookup="address", tx_count=len(hashes))
        return hashes

    def fetch_batch(self, tx_hashes: list[str]) -> tuple[dict[str, TransactionSummary], dict[str, UtxoSet]]:
        """
        Run the three lookups for one batch concurrently and join them by tx_hash.

        Raises the tx_info / tx_utxos error if either failed; a tx_metadata error is
        logged and metadata falls back to whatever tx_info carried.
        """
        with ThreadPoolExecutor(max_workers=self._config.fetch_concurrency) as executor:
            info_future = executor.submit(self._koios.get_tx_info, tx_hashes)
            utxo_future = executor.submit(self._koios.get_tx_utxos, tx_hashes)
            meta_future = executor.submit(self._koios.get_tx_metadata, tx_hashes)
            info_items = info_future.result()
            utxo_items = utxo_future.result()
            try:
                metadata = meta_future.result()
            except StakeTxsError as e:
                logger.warning("tx_metadata_failed", tx_count=len(tx_hashes), error=str(e))
                metadata = {}
        return _summaries_by_hash(info_items, metadata), _utxos_by_hash(utxo_items)

    def fetch_transactions(
        self,
        tx_hashes: list[str],
        stake_address: str = "",
    ) -> tuple[dict[str, TransactionSummary], dict[str, UtxoSet]]:
        """Fetch every batch; a failing batch is logged and skipped."""
        log = bind_stake_address(stake_address) if stake_address else logger
        summaries: dict[str, TransactionSummary] = {}
        utxos: dict[str, UtxoSet] = {}
        batches = batched(tx_hashes, self._config.batch_size)
        for i, batch in enumerate(batches, start=1):
            log.info("tx_batch_fetching", batch=i, batches=len(batches), tx_count=len(batch))
            try:
                batch_summaries, batch_utxos = self.fetch_batch(batch)
            except StakeTxsError as e:
                log.warning("tx_batch_failed", batch=i, batches=len(batches), error=str(e))
                continue
            summaries.update(batch_summaries)
            utxos.update(batch_utxos)
        return summaries, utxos

    def price_for(self, on_date: date) -> PriceQuote:
        """Price quote for a date, looked up once per pipeline instance."""
        quote = self._price_cache.get(on_date)
        if quote is None:
            quote = resolve_price_quote(on_date, self._price_sources, self._config.fallback_usd_per_ada)
            self._price_cache[on_date] = quote
        return quote

    def run(self, query: StakeAddressQuery) -> list[ValuationRecord]:
        """Records for one stake address. Upstream and lookup errors propagate."""
        log = bind_stake_address(query.stake_address)
        tx_hashes = self.resolve_tx_hashes(query)
        if not tx_hashes:
            log.info("no_transactions_found")
            return []
        summaries, utxos = self.fetch_transactions(tx_hashes, query.stake_address)
        quote = self.price_for(query.cutoff_date)
        records = compute_valuation_records(
            query,
            tx_hashes,
            summaries,
            utxos,
            quote,
            self._config.tzinfo,
        )
        log.info(
            "valuation_done",
            tx_count=len(tx_hashes),
            record_count=len(records),
            price_source=quote.source,
        )
        return records

    def run_many(self, queries: list[StakeAddressQuery]) -> RunReport:
        """Run every query in order; one address failing does not stop the others."""
        report = RunReport()
        for query in queries:
            try:
                records = self.run(query)
            except Exception as e:
                logger.warning(
                    "stake_address_failed",
                    stake_address=query.stake_address,
                    bucket=query.bucket,
                    error=str(e),
                    exc_info=not isinstance(e, StakeTxsError),
                )
                report.outcomes.append(QueryOutcome(query=query, error=str(e)))
                continue
            report.outcomes.append(QueryOutcome(query=query, records=records))
        return report


def _summaries_by_hash(items: list[dict[str, Any]], metadata: dict[str, Any]) -> dict[str, TransactionSummary]:
    out: dict[str, TransactionSummary] = {}
    for item in items:
        if not isinstance(item, dict):
            logger.debug("tx_info_item_skipped", error=f"not an object: {item!r}")
            continue
        try:
            summary = TransactionSummary.from_api_item(item, metadata.get(item.get("tx_hash")))
        except (KeyError, TypeError, ValueError) as e:
            logger.debug("tx_info_item_skipped", tx_hash=item.get("tx_hash"), error=str(e))
            continue
        out[summary.tx_hash] = summary
    return out


def _utxos_by_hash(items: list[dict[str, Any]]) -> dict[str, UtxoSet]:
    out: dict[str, UtxoSet] = {}
    for item in items:
        if not isinstance(item, dict):
            logger.debug("tx_utxos_item_skipped", error=f"not an object: {item!r}")
            continue
        try:
            utxos = UtxoSet.from_api_item(item)
        except (KeyError, TypeError, ValueError) as e:
            logger.debug("tx_utxos_item_skipped", tx_hash=item.get("tx_hash"), error=str(e))
            continue
        out[utxos.tx_hash] = utxos
    return out
