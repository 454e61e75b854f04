"""Purchase Manager - direct purchases outside the scheduler cycle.

A direct purchase yields an invoice to pay. The buyer's latest unpaid
invoice for the same product is reused so repeated checkout attempts do not
pile up invoices.
"""

from typing import Optional, Tuple

from sqlalchemy.orm import sessionmaker

from billing_core.errors import OutOfStockError
from billing_core.logging_config import get_logger
from billing_core.models import BillingNotificationType, InvoiceRecord
from billing_core.repositories.invoice_store import InvoiceStore
from billing_core.repositories.product_repository import ProductRepository
from billing_core.repositories.service_store import ServiceStore
from billing_core.services.event_dispatcher import EventDispatcher
from billing_core.services.invoice_numbers import InvoiceNumberGenerator
from billing_core.services.time_controller import TimeController

logger = get_logger(__name__)


class PurchaseManager:
    """Creates (or reuses) the invoice for a direct purchase."""

    def __init__(
        self,
        session_factory: sessionmaker,
        time_controller: TimeController,
        number_generator: InvoiceNumberGenerator,
        event_dispatcher: Optional[EventDispatcher] = None,
    ):
        self._session_factory = session_factory
        self._time_controller = time_controller
        self._numbers = number_generator
        self._event_dispatcher = event_dispatcher

    def start_purchase(self, user_id: int, product_id: int) -> Tuple[InvoiceRecord, bool]:
        """Get the invoice the user should pay for product_id.

        The invoice has no due date; it never goes overdue.

        Returns:
            (invoice, reused)

        Raises:
            ProductNotFoundError: If the product is missing or inactive
            OutOfStockError: If a first purchase finds the product sold out
        """
        now = self._time_controller.now()
        with self._session_factory.begin() as session:
            product = ProductRepository(session).get_active(product_id)
            invoices = InvoiceStore(session)

            existing = invoices.latest_unpaid_for(user_id, product_id)
            if existing is not None:
                logger.info("purchase_invoice_reused", invoice_id=existing.id, user_id=user_id, product_id=product_id)
                return existing, True

            has_service = ServiceStore(session).find_for_user_product(user_id, product_id) is not None
            if not has_service and not product.has_unlimited_stock and product.stock <= 0:
                raise OutOfStockError(f"Product {product_id} is out of stock")

            invoice = invoices.insert_pending(
                user_id=user_id,
                product_id=product_id,
                amount=product.price,
                currency=product.currency,
                number=self._numbers.next_number(session, now),
                created_at=now,
            )

        logger.info(
            "purchase_started",
            invoice_id=invoice.id,
            user_id=user_id,
            product_id=product_id,
            amount=invoice.amount,
            currency=invoice.currency.value,
        )
        if self._event_dispatcher is not None:
            self._event_dispatcher.publish_invoice_event(BillingNotificationType.INVOICE_CREATED, invoice)
        return invoice, False
