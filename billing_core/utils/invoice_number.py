"""Invoice number formatting and validation utilities.

Sequenced numbers look like ``INV-20261019-00042``: prefix, UTC day, and a
per-day counter. When the sequence is unavailable the generator falls back
to ``INV-1760870400000-4821``: prefix, epoch millis, and four random digits.
"""

import random
import re
import time
from datetime import datetime
from typing import Optional

DEFAULT_PREFIX = "INV"
SEQUENCE_DIGITS = 5

_SEQUENCED_PATTERN = re.compile(r"^(?P<prefix>[A-Za-z0-9]+)-(?P<day>\d{8})-(?P<seq>\d{5,})$")
_FALLBACK_PATTERN = re.compile(r"^(?P<prefix>[A-Za-z0-9]+)-(?P<millis>\d{13})-(?P<rand>\d{4})$")


def sequence_day(moment: datetime) -> str:
    """UTC day key (YYYYMMDD) used for the per-day sequence."""
    return moment.strftime("%Y%m%d")


def format_invoice_number(prefix: str, day: str, sequence: int) -> str:
    """Format a sequenced invoice number.

    Args:
        prefix: Invoice prefix (e.g., "INV")
        day: Day key in YYYYMMDD form
        sequence: Per-day counter, starting at 1

    Returns:
        Invoice number such as "INV-20261019-00001"

    Raises:
        ValueError: If sequence is not positive
    """
    if sequence <= 0:
        raise ValueError(f"Sequence must be positive, got: {sequence}")
    return f"{prefix}-{day}-{sequence:0{SEQUENCE_DIGITS}d}"


def generate_fallback_number(prefix: Optional[str] = None) -> str:
    """Generate a timestamp+random invoice number.

    Used only when the settings-backed sequence cannot be read or bumped.
    Uniqueness is still enforced by the unique index on invoices.number.

    Args:
        prefix: Invoice prefix (defaults to "INV")

    Returns:
        Invoice number such as "INV-1760870400000-4821"
    """
    prefix = prefix or DEFAULT_PREFIX
    millis = int(time.time() * 1000)
    return f"{prefix}-{millis}-{random.randint(1000, 9999)}"


def validate_invoice_number(number: str) -> bool:
    """Check whether a string is a sequenced or fallback invoice number."""
    if not number or not isinstance(number, str):
        return False
    return bool(_SEQUENCED_PATTERN.match(number) or _FALLBACK_PATTERN.match(number))

