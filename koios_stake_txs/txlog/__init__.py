"""
Structured logging for koios-stake-txs.

Use get_logger() in every module so log lines carry the same keys
(event_type, stake_address, batch, ...) and stay off stdout.
"""

from koios_stake_txs.txlog.logger import bind_stake_address, get_logger

__all__ = ["bind_stake_address", "get_logger"]
