"""Billing API: purchases, payments, and fulfillment confirmation.

Implements:
- POST /billing/purchases - Start a direct purchase
- POST /billing/invoices/{invoice_id}/pay/credits - Pay from credit balance
- POST /billing/invoices/{invoice_id}/capture - Settle a gateway capture
- POST /billing/webhooks/gateway - Settle a verified gateway webhook
- GET /billing/invoices/{invoice_id}/confirm - Fulfill (or poll) a paid invoice

Route handlers are sync so blocking store calls run in the threadpool.
"""

from fastapi import APIRouter, Depends, Query

from billing_core.api.deps import api_error, get_container
from billing_core.container import BillingContainer
from billing_core.errors import (
    InsufficientBalanceError,
    InvoiceNotFoundError,
    OutOfStockError,
    PaymentRejectedError,
    ProductNotFoundError,
)
from billing_core.logging_config import bind_context, get_logger
from billing_core.models import (
    CaptureResult,
    CreditPaymentRequest,
    DirectPurchaseRequest,
    DirectPurchaseResponse,
    FulfillmentResult,
    GatewayWebhookEvent,
    PaymentOutcome,
)

logger = get_logger(__name__)
router = APIRouter(tags=["Billing API"], prefix="/billing")


@router.post("/purchases", response_model=DirectPurchaseResponse, status_code=201, summary="Start direct purchase")
def start_purchase(
    request: DirectPurchaseRequest,
    container: BillingContainer = Depends(get_container),
) -> DirectPurchaseResponse:
    """Return the invoice to pay for a product, reusing an unpaid one.

    Raises:
        404: Product not found or inactive
        409: Product out of stock
    """
    bind_context(user_id=request.user_id, product_id=request.product_id)
    try:
        invoice, reused = container.purchases.start_purchase(request.user_id, request.product_id)
    except ProductNotFoundError as e:
        logger.warning("product_not_found", product_id=request.product_id)
        raise api_error(404, "ProductNotFound", str(e))
    except OutOfStockError as e:
        raise api_error(409, "OutOfStock", str(e))

    return DirectPurchaseResponse(
        invoice=invoice,
        reused=reused,
        message="Existing unpaid invoice returned" if reused else "Invoice created",
    )


@router.post("/invoices/{invoice_id}/pay/credits", response_model=PaymentOutcome, summary="Pay with credits")
def pay_with_credits(
    invoice_id: int,
    request: CreditPaymentRequest,
    container: BillingContainer = Depends(get_container),
) -> PaymentOutcome:
    """Settle an invoice from the user's credit balance.

    Raises:
        404: Invoice not found for this user
        402: Insufficient balance
        409: Product out of stock
    """
    bind_context(user_id=request.user_id)
    try:
        return container.credit_bridge.pay(invoice_id, request.user_id)
    except InvoiceNotFoundError as e:
        raise api_error(404, "InvoiceNotFound", str(e))
    except InsufficientBalanceError as e:
        raise api_error(402, "InsufficientBalance", str(e))
    except OutOfStockError as e:
        raise api_error(409, "OutOfStock", str(e))


@router.post("/invoices/{invoice_id}/capture", response_model=PaymentOutcome, summary="Settle gateway capture")
def capture_payment(
    invoice_id: int,
    capture: CaptureResult,
    user_id: int = Query(..., gt=0, description="Invoice owner"),
    container: BillingContainer = Depends(get_container),
) -> PaymentOutcome:
    """Settle an invoice after the gateway capture call.

    Raises:
        404: Invoice not found for this user
        400: Capture not completed
    """
    bind_context(user_id=user_id)
    try:
        return container.capture_bridge.capture(invoice_id, user_id, capture)
    except InvoiceNotFoundError as e:
        raise api_error(404, "InvoiceNotFound", str(e))
    except PaymentRejectedError as e:
        raise api_error(400, "PaymentRejected", str(e))


@router.post("/webhooks/gateway", summary="Gateway webhook")
def gateway_webhook(
    event: GatewayWebhookEvent,
    container: BillingContainer = Depends(get_container),
) -> dict:
    """Apply a verified webhook event. Always acknowledged with 200."""
    if event.invoice_id is not None:
        bind_context(invoice_id=event.invoice_id)
    outcome = container.webhook_bridge.handle_event(event)
    if outcome is None:
        return {"received": True, "applied": False}
    return {
        "received": True,
        "applied": True,
        "paid": outcome.paid,
        "duplicate": outcome.duplicate,
    }


@router.get("/invoices/{invoice_id}/confirm", response_model=FulfillmentResult, summary="Confirm fulfillment")
def confirm_invoice(
    invoice_id: int,
    user_id: int = Query(..., gt=0, description="Invoice owner"),
    container: BillingContainer = Depends(get_container),
) -> FulfillmentResult:
    """Fulfill a paid invoice, or report it as pending.

    Raises:
        404: Invoice not found for this user
    """
    bind_context(user_id=user_id)
    try:
        return container.fulfillment.fulfill(invoice_id, user_id)
    except InvoiceNotFoundError as e:
        raise api_error(404, "InvoiceNotFound", str(e))
    except ProductNotFoundError as e:
        raise api_error(404, "ProductNotFound", str(e))
