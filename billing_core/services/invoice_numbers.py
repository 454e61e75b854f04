"""Invoice number generation.

Numbers come from a per-day counter in the settings table, bumped inside the
caller's transaction. If the counter cannot be used the generator falls
back to a timestamp+random number; gaps are allowed, duplicates are not
(invoices.number is unique).
"""

from datetime import datetime

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from billing_core.logging_config import get_logger
from billing_core.repositories.settings_store import SettingsStore
from billing_core.utils.invoice_number import (
    DEFAULT_PREFIX,
    format_invoice_number,
    generate_fallback_number,
    sequence_day,
    validate_invoice_number,
)

logger = get_logger(__name__)

PREFIX_SETTING = "invoice_prefix"
SEQUENCE_SETTING_TEMPLATE = "invoice_seq_{day}"


class InvoiceNumberGenerator:
    """Allocates invoice numbers within the caller's session."""

    def __init__(self, default_prefix: str = DEFAULT_PREFIX):
        self._default_prefix = default_prefix

    def next_number(self, session: Session, now: datetime) -> str:
        """Allocate the next number for the UTC day of ``now``.

        The counter bump runs in a SAVEPOINT so a failure here leaves the
        caller's transaction usable for the fallback path.
        """
        prefix = self._default_prefix
        day = sequence_day(now)
        try:
            with session.begin_nested():
                settings = SettingsStore(session)
                prefix = settings.get(PREFIX_SETTING) or self._default_prefix
                sequence = settings.increment(SEQUENCE_SETTING_TEMPLATE.format(day=day))
            number = format_invoice_number(prefix, day, sequence)
        except (SQLAlchemyError, ValueError) as e:
            number = generate_fallback_number(prefix)
            logger.warning(
                "invoice_sequence_unavailable",
                day=day,
                fallback_number=number,
                error=str(e),
                error_type=type(e).__name__,
            )

        if not validate_invoice_number(number):
            # Stored prefix is not alphanumeric; keep the allocated counter.
            number = self._default_prefix + number[len(prefix):]
            logger.warning("invoice_prefix_invalid", prefix=prefix, number=number)
        return number
