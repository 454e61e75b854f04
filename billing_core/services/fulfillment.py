"""Fulfillment: turn a paid invoice into an active service.

Every payment channel ends here. The resolver is idempotent: calling it
again for the same paid invoice leaves the store in the same state, so
bridges call it even when they lost the paid race.
"""

from datetime import datetime
from typing import Optional, Tuple

from sqlalchemy.orm import Session, sessionmaker

from billing_core.errors import ProductNotFoundError
from billing_core.logging_config import get_logger
from billing_core.models import (
    BillingNotificationType,
    FulfillmentResult,
    InvoiceRecord,
    ServiceStatus,
)
from billing_core.repositories.invoice_store import InvoiceStore
from billing_core.repositories.product_repository import ProductRepository
from billing_core.repositories.service_store import ServiceStore
from billing_core.services.event_dispatcher import EventDispatcher
from billing_core.services.time_controller import TimeController
from billing_core.utils.billing_period import FAR_FUTURE, add_minutes

logger = get_logger(__name__)


class FulfillmentResolver:
    """Creates or renews the service paid for by an invoice.

    Args:
        session_factory: sessionmaker bound to the billing store
        time_controller: clock for "now"
        event_dispatcher: optional publisher for service events
    """

    def __init__(
        self,
        session_factory: sessionmaker,
        time_controller: TimeController,
        event_dispatcher: Optional[EventDispatcher] = None,
    ):
        self._session_factory = session_factory
        self._time_controller = time_controller
        self._event_dispatcher = event_dispatcher

    def fulfill(self, invoice_id: int, user_id: int) -> FulfillmentResult:
        """Resolve fulfillment for an invoice owned by user_id.

        Unpaid invoices return a pending result without touching anything.

        Raises:
            InvoiceNotFoundError: If the invoice is missing or not owned by user_id
            ProductNotFoundError: If the invoice has no product to fulfill
        """
        with self._session_factory.begin() as session:
            result, event = self._resolve(session, invoice_id, user_id)

        if event is not None and result.service is not None and self._event_dispatcher is not None:
            self._event_dispatcher.publish_service_event(event, result.service)
        return result

    def _resolve(
        self, session: Session, invoice_id: int, user_id: int
    ) -> Tuple[FulfillmentResult, Optional[BillingNotificationType]]:
        invoices = InvoiceStore(session)
        services = ServiceStore(session)

        invoice = invoices.get_for_user(invoice_id, user_id)
        if not invoice.is_paid:
            logger.debug("fulfillment_pending", invoice_id=invoice_id, status=invoice.status.value)
            existing = (
                services.find_for_user_product(user_id, invoice.product_id) if invoice.product_id else None
            )
            return FulfillmentResult(pending=True, invoice=invoice, service=existing), None

        if invoice.product_id is None:
            raise ProductNotFoundError(f"Invoice {invoice_id} has no product to fulfill")

        now = self._time_controller.now()
        cycle_end, next_invoice_at, period_minutes = self._next_cycle(session, invoice, now)

        existing = services.find_for_user_product(user_id, invoice.product_id)

        service, created, previous_status = services.activate(
            user_id=user_id,
            product_id=invoice.product_id,
            period_minutes=period_minutes,
            next_invoice_at=next_invoice_at,
            now=now,
        )
        invoices.set_cycle_end_if_missing(invoice.id, cycle_end)
        invoices.link_service(invoice.id, service.id)
        invoice = invoices.get(invoice.id)

        event = None
        if created:
            event = BillingNotificationType.SERVICE_ACTIVATED
        elif previous_status == ServiceStatus.CANCELED:
            event = BillingNotificationType.SERVICE_REACTIVATED
        elif existing is not None and existing.next_invoice_at != service.next_invoice_at:
            event = BillingNotificationType.SERVICE_RENEWED

        logger.info(
            "invoice_fulfilled",
            invoice_id=invoice.id,
            service_id=service.id,
            user_id=user_id,
            product_id=invoice.product_id,
            service_created=created,
            cycle_end_at=invoice.cycle_end_at.isoformat() if invoice.cycle_end_at else None,
            next_invoice_at=service.next_invoice_at.isoformat(),
        )
        return (
            FulfillmentResult(pending=False, invoice=invoice, service=service, service_created=created),
            event,
        )

    def _next_cycle(
        self, session: Session, invoice: InvoiceRecord, now: datetime
    ) -> Tuple[datetime, datetime, int]:
        """(cycle_end, next_invoice_at, period_minutes) for a paid invoice.

        A recorded cycle_end_at always wins. One-time products end their
        cycle at payment and park the cursor far in the future.
        """
        product = ProductRepository(session).get_by_id(invoice.product_id)
        paid_at = invoice.paid_at or now

        if product.is_one_time:
            cycle_end = invoice.cycle_end_at or paid_at
            return cycle_end, FAR_FUTURE, 0

        cycle_end = invoice.cycle_end_at or add_minutes(paid_at, product.period_minutes)
        return cycle_end, cycle_end, product.period_minutes
