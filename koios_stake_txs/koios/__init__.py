"""Koios chain-indexer client."""

from koios_stake_txs.koios.client import KoiosClient

__all__ = ["KoiosClient"]
