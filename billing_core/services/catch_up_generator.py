"""Catch-up invoice generation for due services.

Each due service gets up to ``max_catch_up`` cycles billed per run. A
service that was dormant for a long time therefore catches up over several
ticks instead of generating its whole backlog at once.
"""

from datetime import datetime, timedelta

from sqlalchemy.orm import Session

from billing_core.logging_config import get_logger
from billing_core.models import CatchUpResult, ProductRecord, ServiceRecord
from billing_core.repositories.invoice_store import InvoiceStore
from billing_core.repositories.service_store import ServiceStore
from billing_core.services.invoice_numbers import InvoiceNumberGenerator
from billing_core.utils.billing_period import cycle_window, dedup_window

logger = get_logger(__name__)


class CatchUpGenerator:
    """Generates pending invoices for missed cycles and advances cursors.

    Args:
        number_generator: allocates invoice numbers
        max_catch_up: cycles billed per service per run
        dedup_window_minutes: tolerance around the cursor for legacy duplicates
        due_days: days until a generated invoice is due
        batch_size: max due services loaded per run
    """

    def __init__(
        self,
        number_generator: InvoiceNumberGenerator,
        max_catch_up: int = 3,
        dedup_window_minutes: int = 10,
        due_days: int = 3,
        batch_size: int = 500,
    ):
        if max_catch_up < 1:
            raise ValueError(f"max_catch_up must be at least 1, got: {max_catch_up}")
        self._numbers = number_generator
        self.max_catch_up = max_catch_up
        self.dedup_window_minutes = dedup_window_minutes
        self.due_days = due_days
        self.batch_size = batch_size

    def run(self, session: Session, now: datetime) -> CatchUpResult:
        """Bill due cycles for every due service, oldest cursor first."""
        result = CatchUpResult()
        invoices = InvoiceStore(session)
        services = ServiceStore(session)

        due = services.due_services(now, self.batch_size)
        result.services_processed = len(due)
        if len(due) == self.batch_size:
            logger.warning("catch_up_batch_full", batch_size=self.batch_size)

        for service, product in due:
            self._catch_up_service(session, invoices, services, service, product, now, result)

        if due:
            logger.info(
                "catch_up_completed",
                services_processed=result.services_processed,
                invoices_created=len(result.invoices),
                cycles_advanced=result.cycles_advanced,
                duplicates_skipped=result.duplicates_skipped,
            )
        return result

    def _catch_up_service(
        self,
        session: Session,
        invoices: InvoiceStore,
        services: ServiceStore,
        service: ServiceRecord,
        product: ProductRecord,
        now: datetime,
        result: CatchUpResult,
    ) -> None:
        cursor = service.next_invoice_at
        generated = 0

        while cursor <= now and generated < self.max_catch_up:
            _, next_cursor = cycle_window(cursor, service.period_minutes)
            window_start, window_end = dedup_window(cursor, self.dedup_window_minutes)

            duplicate = invoices.find_duplicate(service.id, next_cursor, window_start, window_end)
            if duplicate is None:
                invoice = invoices.insert_pending(
                    user_id=service.user_id,
                    product_id=service.product_id,
                    amount=product.price,
                    currency=product.currency,
                    number=self._numbers.next_number(session, now),
                    created_at=now,
                    due_at=now + timedelta(days=self.due_days),
                    service_id=service.id,
                    cycle_end_at=next_cursor,
                )
                if invoice is None:
                    result.duplicates_skipped += 1
                else:
                    result.invoices.append(invoice)
            else:
                result.duplicates_skipped += 1
                logger.info(
                    "catch_up_duplicate_skipped",
                    service_id=service.id,
                    existing_invoice_id=duplicate.id,
                    cycle_start=cursor.isoformat(),
                    cycle_end=next_cursor.isoformat(),
                )

            # The cursor moves even when the cycle was already billed.
            services.advance_cursor(service.id, cursor, next_cursor, reason="catch_up")
            cursor = next_cursor
            generated += 1
            result.cycles_advanced += 1

        if cursor <= now:
            logger.info(
                "catch_up_backlog_remaining",
                service_id=service.id,
                next_invoice_at=cursor.isoformat(),
                backlog_minutes=(now - cursor).total_seconds() / 60,
            )
