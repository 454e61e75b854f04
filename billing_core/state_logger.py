"""State change logging for invoices and services.

Tracks status transitions and cursor moves with before/after values for
auditing the scheduler and the payment bridges.
"""

from datetime import datetime
from typing import Any, Optional

from billing_core.logging_config import get_logger

logger = get_logger(__name__)


def log_invoice_status_change(
    invoice_id: int,
    old_status: Any,
    new_status: Any,
    reason: Optional[str] = None,
    **extra_context: Any,
) -> None:
    """Log an invoice status transition (pending -> paid, pending -> overdue).

    Args:
        invoice_id: Invoice primary key
        old_status: Previous status value
        new_status: New status value
        reason: Reason for the transition (payment method, sweep, ...)
        **extra_context: Additional context (user_id, number, ...)
    """
    logger.info(
        "invoice_status_changed",
        invoice_id=invoice_id,
        old_status=str(old_status),
        new_status=str(new_status),
        reason=reason,
        **extra_context,
    )


def log_service_status_change(
    service_id: int,
    old_status: Any,
    new_status: Any,
    reason: Optional[str] = None,
    **extra_context: Any,
) -> None:
    """Log a service status transition (created, reactivated, canceled).

    Args:
        service_id: Service primary key
        old_status: Previous status value (None when the service was created)
        new_status: New status value
        reason: Reason for the transition
        **extra_context: Additional context
    """
    logger.info(
        "service_status_changed",
        service_id=service_id,
        old_status=str(old_status) if old_status is not None else None,
        new_status=str(new_status),
        reason=reason,
        **extra_context,
    )


def log_cursor_change(
    service_id: int,
    old_cursor: Optional[datetime],
    new_cursor: datetime,
    reason: str,
    **extra_context: Any,
) -> None:
    """Log a move of a service's next_invoice_at cursor.

    Args:
        service_id: Service primary key
        old_cursor: Previous next_invoice_at
        new_cursor: New next_invoice_at
        reason: Why the cursor moved (catch-up, renewal, ...)
        **extra_context: Additional context
    """
    shift_minutes = None
    if old_cursor is not None:
        shift_minutes = (new_cursor - old_cursor).total_seconds() / 60

    logger.debug(
        "service_cursor_changed",
        service_id=service_id,
        old_cursor=old_cursor.isoformat() if old_cursor else None,
        new_cursor=new_cursor.isoformat(),
        shift_minutes=shift_minutes,
        reason=reason,
        **extra_context,
    )
