"""
koios-stake-txs: Cardano stake address transaction export with USD valuation.

Fetches a stake key's transactions from Koios, classifies each one as inbound
or outbound relative to the stake key, values it in ADA and USD (CoinGecko
rate for the cutoff date) and writes normalized CSV rows.
"""

__version__ = "0.1.0"
