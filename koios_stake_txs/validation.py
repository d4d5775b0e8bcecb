"""Input validation for stake addresses and cutoff dates."""

from __future__ import annotations

import re
from datetime import date, datetime

from koios_stake_txs.core.exceptions import InputValidationError

STAKE_ADDRESS_RE = re.compile(r"^stake1[0-9a-z]+$")
DATE_RE = re.compile(r"^[0-9]{4}-[0-9]{2}-[0-9]{2}$")


def validate_stake_address(stake_address: str | None) -> str:
    """Return the stripped stake address or raise InputValidationError."""
    value = (stake_address or "").strip()
    if not value:
        raise InputValidationError("stake address is required")
    if not STAKE_ADDRESS_RE.match(value):
        raise InputValidationError(f"invalid stake address format: {value}")
    return value


def parse_cutoff_date(raw: str | None) -> date:
    """Parse a YYYY-MM-DD string into a date or raise InputValidationError."""
    value = (raw or "").strip()
    if not value:
        raise InputValidationError("date is required")
    if not DATE_RE.match(value):
        raise InputValidationError(f"invalid date format. Use YYYY-MM-DD: {value}")
    try:
        return datetime.strptime(value, "%Y-%m-%d").date()
    except ValueError as e:
        raise InputValidationError(f"invalid calendar date: {value}") from e
