"""Payment-to-fulfillment bridges.

Each payment channel marks an invoice paid through the same fencing write
and then hands over to the fulfillment resolver:

- CreditBalanceBridge: debits the user's prepaid balance
- GatewayCaptureBridge: settles a completed gateway capture
- GatewayWebhookBridge: settles a verified gateway webhook delivery

Gateway protocol work (OAuth, capture calls, signature checks) happens
before these classes are called. A channel that loses the paid race gets a
duplicate outcome and applies no side effects.
"""

from decimal import Decimal
from typing import Callable, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from billing_core.errors import (
    BillingError,
    InsufficientBalanceError,
    InvoiceNotFoundError,
    OutOfStockError,
    PaymentRejectedError,
)
from billing_core.logging_config import get_logger
from billing_core.models import (
    BillingNotificationType,
    CaptureResult,
    FulfillmentResult,
    GatewayWebhookEvent,
    InvoiceRecord,
    PaymentMethod,
    PaymentOutcome,
)
from billing_core.repositories.credit_store import CreditStore
from billing_core.repositories.invoice_store import InvoiceStore
from billing_core.repositories.product_repository import ProductRepository
from billing_core.repositories.service_store import ServiceStore
from billing_core.services.event_dispatcher import EventDispatcher
from billing_core.services.fulfillment import FulfillmentResolver
from billing_core.services.invoice_numbers import InvoiceNumberGenerator
from billing_core.services.time_controller import TimeController

logger = get_logger(__name__)

SideEffect = Callable[[Session, InvoiceRecord], None]

# Webhook event types that mean "money received", and the channel they settle as.
WEBHOOK_EVENT_METHODS = {
    "checkout.session.completed": PaymentMethod.STRIPE,
    "payment_intent.succeeded": PaymentMethod.STRIPE,
    "paypal.ipn": PaymentMethod.PAYPAL_IPN,
}


class PaymentBridge:
    """Shared settle-then-fulfill flow.

    Args:
        session_factory: sessionmaker bound to the billing store
        time_controller: clock for paid_at
        fulfillment: resolver run after the payment commits
        number_generator: fills in a missing invoice number at payment
        event_dispatcher: optional publisher for INVOICE_PAID
    """

    def __init__(
        self,
        session_factory: sessionmaker,
        time_controller: TimeController,
        fulfillment: FulfillmentResolver,
        number_generator: InvoiceNumberGenerator,
        event_dispatcher: Optional[EventDispatcher] = None,
    ):
        self._session_factory = session_factory
        self._time_controller = time_controller
        self._fulfillment = fulfillment
        self._numbers = number_generator
        self._event_dispatcher = event_dispatcher

    def _settle(
        self,
        invoice_id: int,
        user_id: Optional[int],
        payment_method: PaymentMethod,
        external_id: Optional[str] = None,
        side_effect: Optional[SideEffect] = None,
    ) -> PaymentOutcome:
        """Mark the invoice paid and apply the channel side effect in one transaction.

        The side effect runs only for the caller that won the fencing write;
        if it raises, the paid transition is rolled back with it.
        """
        now = self._time_controller.now()
        with self._session_factory.begin() as session:
            invoices = InvoiceStore(session)
            if user_id is None:
                invoice = invoices.get(invoice_id)
            else:
                invoice = invoices.get_for_user(invoice_id, user_id)

            won = False
            if not invoice.is_paid:
                number = invoice.number or self._numbers.next_number(session, now)
                won = invoices.mark_paid(
                    invoice.id,
                    payment_method=payment_method.value,
                    paid_at=now,
                    number=number,
                    external_id=external_id,
                )
                if won and side_effect is not None:
                    side_effect(session, invoice)
            paid_invoice = invoices.get(invoice.id)

        if won:
            logger.info(
                "invoice_paid",
                invoice_id=invoice.id,
                user_id=invoice.user_id,
                payment_method=payment_method.value,
                amount=invoice.amount,
                currency=invoice.currency.value,
            )
            if self._event_dispatcher is not None:
                self._event_dispatcher.publish_invoice_event(
                    BillingNotificationType.INVOICE_PAID, paid_invoice, payment_method=payment_method.value
                )
        else:
            logger.info(
                "payment_duplicate",
                invoice_id=invoice.id,
                payment_method=payment_method.value,
                paid_by=paid_invoice.payment_method,
            )

        return PaymentOutcome(
            invoice_id=invoice.id,
            payment_method=payment_method.value,
            paid=won,
            duplicate=not won,
            fulfillment=self._run_fulfillment(paid_invoice),
        )

    def _run_fulfillment(self, invoice: InvoiceRecord) -> Optional[FulfillmentResult]:
        # The payment is committed; a failed fulfillment is retried through confirm.
        try:
            return self._fulfillment.fulfill(invoice.id, invoice.user_id)
        except (BillingError, SQLAlchemyError) as e:
            logger.error(
                "fulfillment_deferred",
                invoice_id=invoice.id,
                error=str(e),
                error_type=type(e).__name__,
            )
            return None

    @staticmethod
    def _take_stock(session: Session, invoice: InvoiceRecord, strict: bool) -> None:
        """Decrement stock for the first purchase of a product by this user.

        Renewals of an existing service never consume stock.

        Raises:
            OutOfStockError: If strict and the product is sold out
        """
        if invoice.product_id is None:
            return
        # Renewals take no stock; a unit is held for the life of the service.
        if ServiceStore(session).find_for_user_product(invoice.user_id, invoice.product_id) is not None:
            return
        if ProductRepository(session).decrement_stock(invoice.product_id):
            return
        if strict:
            raise OutOfStockError(f"Product {invoice.product_id} is out of stock")
        # Money was already captured by the gateway; fulfill anyway.
        logger.warning("paid_while_out_of_stock", invoice_id=invoice.id, product_id=invoice.product_id)

    @staticmethod
    def _warn_on_mismatch(
        invoice: InvoiceRecord,
        amount: Optional[Decimal],
        currency: Optional[str],
        channel: PaymentMethod,
    ) -> None:
        if amount is not None and Decimal(amount) != invoice.amount:
            logger.warning(
                "payment_amount_mismatch",
                invoice_id=invoice.id,
                channel=channel.value,
                invoice_amount=invoice.amount,
                reported_amount=amount,
            )
        if currency is not None and currency.upper() != invoice.currency.value:
            logger.warning(
                "payment_currency_mismatch",
                invoice_id=invoice.id,
                channel=channel.value,
                invoice_currency=invoice.currency.value,
                reported_currency=currency,
            )


class CreditBalanceBridge(PaymentBridge):
    """Pays invoices from the user's prepaid credit balance."""

    def pay(self, invoice_id: int, user_id: int) -> PaymentOutcome:
        """Debit the invoice amount and settle it.

        Raises:
            InvoiceNotFoundError: If the invoice is missing or not owned by user_id
            InsufficientBalanceError: If the balance does not cover the amount
            OutOfStockError: If this first purchase finds the product sold out
        """

        def debit_and_take_stock(session: Session, invoice: InvoiceRecord) -> None:
            if not CreditStore(session).debit(invoice.user_id, invoice.currency, invoice.amount):
                logger.info(
                    "credit_payment_rejected",
                    invoice_id=invoice.id,
                    user_id=invoice.user_id,
                    amount=invoice.amount,
                    currency=invoice.currency.value,
                )
                raise InsufficientBalanceError(
                    f"Insufficient {invoice.currency.value} balance for invoice {invoice.id} "
                    f"(amount {invoice.amount})"
                )
            self._take_stock(session, invoice, strict=True)

        return self._settle(invoice_id, user_id, PaymentMethod.CREDITS, side_effect=debit_and_take_stock)


class GatewayCaptureBridge(PaymentBridge):
    """Settles invoices after a gateway order capture."""

    def capture(self, invoice_id: int, user_id: int, capture: CaptureResult) -> PaymentOutcome:
        """Settle an invoice from a capture result.

        Raises:
            PaymentRejectedError: If the capture did not complete
            InvoiceNotFoundError: If the invoice is missing or not owned by user_id
        """
        if not capture.is_completed:
            logger.warning("capture_not_completed", invoice_id=invoice_id, status=capture.status)
            raise PaymentRejectedError(f"Capture not completed for invoice {invoice_id}: {capture.status}")

        def check_and_take_stock(session: Session, invoice: InvoiceRecord) -> None:
            self._warn_on_mismatch(invoice, capture.amount, capture.currency, PaymentMethod.PAYPAL)
            self._take_stock(session, invoice, strict=False)

        return self._settle(
            invoice_id,
            user_id,
            PaymentMethod.PAYPAL,
            external_id=capture.external_id,
            side_effect=check_and_take_stock,
        )


class GatewayWebhookBridge(PaymentBridge):
    """Settles invoices from verified gateway webhook deliveries.

    Webhooks must always be acknowledged, so events that cannot be applied
    are logged and ignored instead of raising.
    """

    def handle_event(self, event: GatewayWebhookEvent) -> Optional[PaymentOutcome]:
        """Apply a webhook event.

        Returns:
            The payment outcome, or None if the event was ignored
        """
        payment_method = WEBHOOK_EVENT_METHODS.get(event.event_type)
        if payment_method is None:
            logger.info("webhook_event_ignored", event_type=event.event_type, reason="unhandled_type")
            return None
        if not event.is_completed:
            logger.info(
                "webhook_event_ignored",
                event_type=event.event_type,
                reason="payment_not_completed",
                payment_status=event.payment_status,
            )
            return None
        if event.invoice_id is None:
            logger.warning("webhook_event_ignored", event_type=event.event_type, reason="missing_invoice_id")
            return None

        def check_and_take_stock(session: Session, invoice: InvoiceRecord) -> None:
            self._warn_on_mismatch(invoice, event.amount, event.currency, payment_method)
            self._take_stock(session, invoice, strict=False)

        try:
            return self._settle(
                event.invoice_id,
                None,
                payment_method,
                external_id=event.external_id,
                side_effect=check_and_take_stock,
            )
        except InvoiceNotFoundError:
            logger.warning(
                "webhook_event_ignored",
                event_type=event.event_type,
                reason="invoice_not_found",
                invoice_id=event.invoice_id,
            )
            return None
