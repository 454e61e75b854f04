"""Utility functions and helpers for the billing core."""

from billing_core.utils.billing_period import (
    FAR_FUTURE,
    add_minutes,
    as_utc,
    cycle_window,
    dedup_window,
    format_billing_period,
    parse_billing_period,
)
from billing_core.utils.invoice_number import (
    DEFAULT_PREFIX,
    format_invoice_number,
    generate_fallback_number,
    sequence_day,
    validate_invoice_number,
)

__all__ = [
    # Billing periods
    "FAR_FUTURE",
    "add_minutes",
    "as_utc",
    "cycle_window",
    "dedup_window",
    "format_billing_period",
    "parse_billing_period",
    # Invoice numbers
    "DEFAULT_PREFIX",
    "format_invoice_number",
    "generate_fallback_number",
    "sequence_day",
    "validate_invoice_number",
]
