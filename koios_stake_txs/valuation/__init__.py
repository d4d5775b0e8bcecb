"""Transaction classification, valuation and the fetch-join pipeline."""

from koios_stake_txs.valuation.compute import (
    compute_valuation_records,
    cutoff_timestamp,
    lovelace_to_ada,
)
from koios_stake_txs.valuation.pipeline import RunReport, ValuationPipeline

__all__ = [
    "RunReport",
    "ValuationPipeline",
    "compute_valuation_records",
    "cutoff_timestamp",
    "lovelace_to_ada",
]
