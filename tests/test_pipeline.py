"""
ValuationPipeline with a MagicMock Koios client: address resolution, batching,
concurrent per-batch join, partial-data drops and isolate-and-continue.
"""

from __future__ import annotations

from dataclasses import replace
from decimal import Decimal
from unittest.mock import MagicMock

import pytest

from conftest import (
    CUTOFF_DATE,
    CUTOFF_TS,
    OTHER_PAYMENT,
    OTHER_STAKE,
    PAYMENT,
    STAKE,
    tx_info_item,
    tx_utxos_item,
)


def _pipeline(config, koios, rate="0.4"):
    from koios_stake_txs.pricing.sources import FixedPriceSource
    from koios_stake_txs.valuation.pipeline import ValuationPipeline

    return ValuationPipeline(config, koios=koios, price_sources=[FixedPriceSource(Decimal(rate))])


def _add_out_tx(koios, tx_hash, ts=CUTOFF_TS + 60, value="4830000"):
    koios.tx_info[tx_hash] = tx_info_item(tx_hash, ts=ts)
    koios.tx_utxos[tx_hash] = tx_utxos_item(tx_hash, [(STAKE, PAYMENT)], [(OTHER_STAKE, value, OTHER_PAYMENT)])


def test_no_payment_addresses_stops_before_other_calls(config, fake_koios, query):
    """Zero payment addresses: error raised, no tx, batch or price lookups."""
    from koios_stake_txs.core.exceptions import NoPaymentAddressesError
    from koios_stake_txs.valuation.pipeline import ValuationPipeline

    fake_koios.get_account_addresses.return_value = []
    price_source = MagicMock()
    pipeline = ValuationPipeline(config, koios=fake_koios, price_sources=[price_source])

    with pytest.raises(NoPaymentAddressesError, match="no payment addresses found"):
        pipeline.run(query)

    fake_koios.get_account_addresses.assert_called_once_with(STAKE)
    fake_koios.get_address_txs.assert_not_called()
    fake_koios.get_account_txs.assert_not_called()
    fake_koios.get_tx_info.assert_not_called()
    fake_koios.get_tx_utxos.assert_not_called()
    fake_koios.get_tx_metadata.assert_not_called()
    price_source.fetch.assert_not_called()


def test_end_to_end_single_outbound_tx(config, fake_koios, query):
    fake_koios.get_account_addresses.return_value = [PAYMENT]
    fake_koios.get_address_txs.return_value = ["tx1"]
    _add_out_tx(fake_koios, "tx1")
    fake_koios.tx_info["tx1"]["total_output"] = "5000000"

    [r] = _pipeline(config, fake_koios).run(query)

    assert r.amount_ada == Decimal("5")
    assert r.fee_ada == Decimal("0.17")
    assert r.tx_type == "out"
    assert r.output_ada == Decimal("4.83")
    assert r.total_output_ada == Decimal("5")
    assert r.amount_usd == Decimal("1.932")
    fake_koios.get_address_txs.assert_called_once_with([PAYMENT], None)


def test_after_block_height_is_passed_through(config, fake_koios, query):
    fake_koios.get_account_addresses.return_value = [PAYMENT]
    fake_koios.get_address_txs.return_value = []

    records = _pipeline(config, fake_koios).run(replace(query, after_block_height=123))

    assert records == []
    fake_koios.get_address_txs.assert_called_once_with([PAYMENT], 123)
    fake_koios.get_tx_info.assert_not_called()


def test_stake_lookup_mode_uses_account_txs(config, fake_koios, query):
    fake_koios.get_account_txs.return_value = ["tx1"]
    _add_out_tx(fake_koios, "tx1")

    records = _pipeline(replace(config, tx_lookup="stake"), fake_koios).run(query)

    assert len(records) == 1
    fake_koios.get_account_txs.assert_called_once_with(STAKE, None)
    fake_koios.get_account_addresses.assert_not_called()
    fake_koios.get_address_txs.assert_not_called()


def test_batches_respect_batch_size_and_join_by_key(config, fake_koios, query):
    """Five hashes with batch_size 2: three batches, each lookup sees at most two hashes."""
    hashes = [f"tx{i}" for i in range(5)]
    fake_koios.get_account_addresses.return_value = [PAYMENT]
    fake_koios.get_address_txs.return_value = hashes
    for h in hashes:
        _add_out_tx(fake_koios, h)
    # Koios does not promise response order; reverse one lookup to prove the join is by hash
    fake_koios.get_tx_utxos.side_effect = lambda batch: [fake_koios.tx_utxos[h] for h in reversed(batch)]

    records = _pipeline(replace(config, batch_size=2), fake_koios).run(query)

    assert [r.tx_hash for r in records] == hashes
    assert [c.args[0] for c in fake_koios.get_tx_info.call_args_list] == [["tx0", "tx1"], ["tx2", "tx3"], ["tx4"]]
    assert fake_koios.get_tx_utxos.call_count == 3
    assert fake_koios.get_tx_metadata.call_count == 3


def test_hash_missing_from_one_lookup_is_dropped(config, fake_koios, query):
    fake_koios.get_account_addresses.return_value = [PAYMENT]
    fake_koios.get_address_txs.return_value = ["full", "no_utxo", "no_info"]
    _add_out_tx(fake_koios, "full")
    fake_koios.tx_info["no_utxo"] = tx_info_item("no_utxo")
    fake_koios.tx_utxos["no_info"] = tx_utxos_item("no_info", [(STAKE, None)], [(OTHER_STAKE, "1", None)])

    records = _pipeline(config, fake_koios).run(query)

    assert [r.tx_hash for r in records] == ["full"]


def test_failed_batch_does_not_discard_other_batches(config, fake_koios, query):
    from koios_stake_txs.core.exceptions import KoiosRequestError

    fake_koios.get_account_addresses.return_value = [PAYMENT]
    fake_koios.get_address_txs.return_value = ["a", "b", "c"]
    for h in ("a", "b", "c"):
        _add_out_tx(fake_koios, h)

    def utxos(batch):
        if "c" in batch:
            raise KoiosRequestError("Koios returned HTTP 500", endpoint="tx_utxos", status_code=500)
        return [fake_koios.tx_utxos[h] for h in batch]

    fake_koios.get_tx_utxos.side_effect = utxos

    records = _pipeline(replace(config, batch_size=2), fake_koios).run(query)

    assert [r.tx_hash for r in records] == ["a", "b"]


def test_metadata_failure_keeps_rows_with_empty_metadata(config, fake_koios, query):
    from koios_stake_txs.core.exceptions import KoiosRequestError

    fake_koios.get_account_addresses.return_value = [PAYMENT]
    fake_koios.get_address_txs.return_value = ["a"]
    _add_out_tx(fake_koios, "a")
    fake_koios.get_tx_metadata.side_effect = KoiosRequestError("down", endpoint="tx_metadata")

    [r] = _pipeline(config, fake_koios).run(query)

    assert r.metadata is None


def test_metadata_joined_by_hash(config, fake_koios, query):
    fake_koios.get_account_addresses.return_value = [PAYMENT]
    fake_koios.get_address_txs.return_value = ["a", "b"]
    _add_out_tx(fake_koios, "a")
    _add_out_tx(fake_koios, "b")
    fake_koios.metadata["b"] = {"721": {"policy": {"name": "x"}}}

    records = _pipeline(config, fake_koios).run(query)

    assert {r.tx_hash: r.metadata for r in records} == {"a": None, "b": {"721": {"policy": {"name": "x"}}}}


def test_malformed_tx_info_item_is_skipped(config, fake_koios, query):
    fake_koios.get_account_addresses.return_value = [PAYMENT]
    fake_koios.get_address_txs.return_value = ["good", "bad"]
    _add_out_tx(fake_koios, "good")
    _add_out_tx(fake_koios, "bad")
    fake_koios.tx_info["bad"]["total_output"] = "not-a-number"

    records = _pipeline(config, fake_koios).run(query)

    assert [r.tx_hash for r in records] == ["good"]


def test_date_filter_applied_in_pipeline(config, fake_koios, query):
    fake_koios.get_account_addresses.return_value = [PAYMENT]
    fake_koios.get_address_txs.return_value = ["old", "new"]
    _add_out_tx(fake_koios, "old", ts=CUTOFF_TS - 3600)
    _add_out_tx(fake_koios, "new", ts=CUTOFF_TS + 3600)

    records = _pipeline(config, fake_koios).run(query)

    assert [r.tx_hash for r in records] == ["new"]


def test_price_looked_up_once_per_date(config, fake_koios, query):
    from koios_stake_txs.pricing.sources import PriceResult
    from koios_stake_txs.valuation.pipeline import ValuationPipeline

    fake_koios.get_account_addresses.return_value = [PAYMENT]
    fake_koios.get_address_txs.return_value = ["a"]
    _add_out_tx(fake_koios, "a")
    source = MagicMock()
    source.name = "mock"
    source.fetch.return_value = PriceResult.success("mock", Decimal("0.5"))
    pipeline = ValuationPipeline(config, koios=fake_koios, price_sources=[source])

    pipeline.run(query)
    pipeline.run(replace(query, bucket="second"))

    source.fetch.assert_called_once_with(CUTOFF_DATE)


def test_run_many_isolates_failing_address(config, fake_koios, query):
    """First address has no payment addresses, second errors upstream, third succeeds."""
    from koios_stake_txs.core.exceptions import KoiosRequestError

    broken = "stake1uxbroken"
    empty = "stake1uxempty"

    def account_addresses(stake):
        if stake == broken:
            raise KoiosRequestError("Koios returned HTTP 503", endpoint="account_addresses", status_code=503)
        return {STAKE: [PAYMENT]}.get(stake, [])

    fake_koios.get_account_addresses.side_effect = account_addresses
    fake_koios.get_address_txs.return_value = ["a"]
    _add_out_tx(fake_koios, "a")

    queries = [replace(query, stake_address=empty), replace(query, stake_address=broken), query]
    report = _pipeline(config, fake_koios).run_many(queries)

    assert [o.ok for o in report.outcomes] == [False, False, True]
    assert "no payment addresses found" in report.outcomes[0].error
    assert [r.stake_address for r in report.records] == [STAKE]
    assert len(report.failed) == 2
    assert report.all_failed is False


def test_run_many_all_failed(config, fake_koios, query):
    fake_koios.get_account_addresses.return_value = []

    report = _pipeline(config, fake_koios).run_many([query])

    assert report.all_failed is True
    assert report.records == []


def test_batched_helper():
    from koios_stake_txs.valuation.pipeline import batched

    assert batched([], 50) == []
    assert batched(["a", "b", "c"], 2) == [["a", "b"], ["c"]]
    assert batched(["a"], 50) == [["a"]]


def test_injected_koios_not_closed(config, fake_koios):
    with _pipeline(config, fake_koios):
        pass

    fake_koios.close.assert_not_called()


def test_null_items_from_koios_are_skipped(config, fake_koios, query):
    fake_koios.get_account_addresses.return_value = [PAYMENT]
    fake_koios.get_address_txs.return_value = ["a"]
    _add_out_tx(fake_koios, "a")
    fake_koios.get_tx_info.side_effect = lambda batch: [fake_koios.tx_info["a"], None]
    fake_koios.get_tx_utxos.side_effect = lambda batch: [None, "junk", fake_koios.tx_utxos["a"]]
    fake_koios.tx_utxos["a"]["outputs"].append(None)

    [r] = _pipeline(config, fake_koios).run(query)

    assert r.tx_hash == "a"
    assert r.output_ada == Decimal("4.83")


def test_transport_error_in_one_batch_keeps_other_batches(config, fake_session, query):
    """Real KoiosClient: a broken tx_utxos response for batch "b" drops only that batch."""
    import requests

    from koios_stake_txs.koios.client import KoiosClient
    from conftest import http_response

    info = {h: tx_info_item(h) for h in ("a", "b")}
    utxos = {h: tx_utxos_item(h, [(STAKE, PAYMENT)], [(OTHER_STAKE, "4830000", OTHER_PAYMENT)]) for h in ("a", "b")}

    def post(url, json=None, timeout=None):
        endpoint = url.rsplit("/", 1)[-1]
        if endpoint == "account_addresses":
            return http_response(200, [{"stake_address": STAKE, "addresses": [PAYMENT]}])
        if endpoint == "address_txs":
            return http_response(200, [{"tx_hash": "a"}, {"tx_hash": "b"}])
        hashes = json["_tx_hashes"]
        if endpoint == "tx_info":
            return http_response(200, [info[h] for h in hashes])
        if endpoint == "tx_utxos":
            if hashes == ["b"]:
                raise requests.exceptions.ChunkedEncodingError("connection broken: incomplete read")
            return http_response(200, [utxos[h] for h in hashes])
        return http_response(200, [])

    fake_session.post.side_effect = post
    cfg = replace(config, batch_size=1)

    records = _pipeline(cfg, KoiosClient(cfg, session=fake_session)).run(query)

    assert [r.tx_hash for r in records] == ["a"]


def test_batch_lookups_run_concurrently(config, fake_koios, query):
    """Each lookup waits for the other two; a sequential fetch would break the barrier."""
    import threading

    barrier = threading.Barrier(3, timeout=5)
    fake_koios.get_account_addresses.return_value = [PAYMENT]
    fake_koios.get_address_txs.return_value = ["a"]
    _add_out_tx(fake_koios, "a")
    fake_koios.metadata["a"] = {"674": {"msg": ["x"]}}

    def waiting(lookup):
        def call(batch):
            barrier.wait()
            return lookup(batch)

        return call

    fake_koios.get_tx_info.side_effect = waiting(lambda b: [fake_koios.tx_info[h] for h in b])
    fake_koios.get_tx_utxos.side_effect = waiting(lambda b: [fake_koios.tx_utxos[h] for h in b])
    fake_koios.get_tx_metadata.side_effect = waiting(lambda b: {h: fake_koios.metadata[h] for h in b})

    [r] = _pipeline(config, fake_koios).run(query)

    assert r.metadata == {"674": {"msg": ["x"]}}
    assert not barrier.broken


def test_default_price_session_closed_with_pipeline(config, fake_koios):
    from unittest.mock import patch

    from koios_stake_txs.pricing.sources import FixedPriceSource, HistoricalPriceSource
    from koios_stake_txs.valuation.pipeline import ValuationPipeline

    with patch("koios_stake_txs.valuation.pipeline.requests.Session") as session_cls:
        with ValuationPipeline(config, koios=fake_koios) as pipeline:
            assert isinstance(pipeline._price_sources[0], HistoricalPriceSource)
            assert isinstance(pipeline._price_sources[-1], FixedPriceSource)
            session_cls.return_value.close.assert_not_called()

    session_cls.return_value.close.assert_called_once()
    fake_koios.close.assert_not_called()
