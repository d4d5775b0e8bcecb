"""
Configuration management for koios-stake-txs.

Loads settings from environment variables (and an optional project-root
.env) into a PipelineConfig that is passed to clients and the pipeline.
"""

from koios_stake_txs.config.settings import PipelineConfig, get_config  # noqa: F401

__all__ = ["PipelineConfig", "get_config"]
