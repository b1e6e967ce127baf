"""
Shared helpers for payment domain models.
"""

import re
from datetime import datetime, timezone

_CURRENCY_PATTERN = re.compile(r"^[a-z]{3}$")


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def normalize_currency(value: str) -> str:
    """Normalize an ISO 4217 currency code to lower case."""
    if not isinstance(value, str):
        raise ValueError("currency must be a string")
    code = value.strip().lower()
    if not _CURRENCY_PATTERN.match(code):
        raise ValueError(f"currency must be a 3-letter ISO code, got {value!r}")
    return code
