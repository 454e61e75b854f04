"""Overdue sweep: pending invoices past their due date become overdue."""

from datetime import datetime

from sqlalchemy.orm import Session

from billing_core.logging_config import get_logger
from billing_core.repositories.invoice_store import InvoiceStore

logger = get_logger(__name__)


class OverdueMarker:
    """Runs the bulk overdue update inside the caller's transaction."""

    def mark(self, session: Session, now: datetime) -> int:
        """Returns the number of invoices moved to overdue."""
        count = InvoiceStore(session).mark_overdue(now)
        if count:
            logger.info("invoices_marked_overdue", count=count, now=now.isoformat())
        return count
