"""
Application-level exceptions.

- InputValidationError: bad stake address, date or bucket file; raised before any network call.
- UpstreamError / KoiosRequestError: a collaborator call failed; scoped to that call's batch.
- NoPaymentAddressesError: the stake key has no payment addresses to query.
"""

from __future__ import annotations


class StakeTxsError(Exception):
    """Base class for koios-stake-txs errors."""


class InputValidationError(StakeTxsError, ValueError):
    """Raised when user input is malformed. Aborts the run before any request."""


class UpstreamError(StakeTxsError):
    """Raised when an external HTTP collaborator fails."""


class KoiosRequestError(UpstreamError):
    """Raised when a Koios call returns a non-success status or an unexpected body."""

    def __init__(self, message: str, endpoint: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.endpoint = endpoint
        self.status_code = status_code


class NoPaymentAddressesError(StakeTxsError):
    """Raised when a stake address resolves to zero payment addresses."""

    def __init__(self, stake_address: str) -> None:
        super().__init__(f"no payment addresses found for stake address: {stake_address}")
        self.stake_address = stake_address
