"""Payment channel inputs and billing outcomes.

``CaptureResult`` and ``GatewayWebhookEvent`` are what the gateway-specific
code hands to the bridges after it has done the protocol work (capture
call, signature verification). ``PaymentOutcome`` and ``FulfillmentResult``
are what the core hands back.
"""

from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from .invoice import InvoiceRecord
from .service import ServiceRecord

CAPTURE_COMPLETED = "COMPLETED"
WEBHOOK_COMPLETED = "completed"


class CaptureResult(BaseModel):
    """Result of a gateway order capture."""

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "status": "COMPLETED",
                "amount": "9.99",
                "currency": "USD",
                "external_id": "5O190127TN364715T",
            }
        }
    )

    status: str = Field(..., description="Gateway capture status (COMPLETED on success)")
    amount: Optional[Decimal] = Field(None, description="Captured amount as reported by the gateway")
    currency: Optional[str] = Field(None, description="Captured currency as reported by the gateway")
    external_id: Optional[str] = Field(None, description="Gateway order/capture ID")

    @property
    def is_completed(self) -> bool:
        return self.status.upper() == CAPTURE_COMPLETED


class GatewayWebhookEvent(BaseModel):
    """Verified gateway webhook delivery."""

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "event_type": "checkout.session.completed",
                "invoice_id": 42,
                "payment_status": "completed",
                "amount": "9.99",
                "currency": "USD",
                "external_id": "cs_test_a1b2c3",
            }
        }
    )

    event_type: str = Field(..., description="Gateway event type")
    invoice_id: Optional[int] = Field(None, description="Invoice ID carried in the event metadata")
    payment_status: str = Field(default=WEBHOOK_COMPLETED, description="Gateway payment status")
    amount: Optional[Decimal] = Field(None, description="Amount reported by the gateway")
    currency: Optional[str] = Field(None, description="Currency reported by the gateway")
    external_id: Optional[str] = Field(None, description="Gateway transaction ID")

    @property
    def is_completed(self) -> bool:
        return self.payment_status.lower() == WEBHOOK_COMPLETED


class FulfillmentResult(BaseModel):
    """Result of resolving fulfillment for an invoice.

    ``pending`` means the invoice is not paid yet and nothing was changed;
    callers poll or show a waiting page.
    """

    ok: bool = Field(default=True)
    pending: bool = Field(..., description="Invoice is not paid yet")
    invoice: InvoiceRecord = Field(..., description="Invoice after fulfillment")
    service: Optional[ServiceRecord] = Field(None, description="Service state after fulfillment")
    service_created: bool = Field(default=False, description="Service row was created by this call")


class PaymentOutcome(BaseModel):
    """Result of a payment bridge settling an invoice.

    ``duplicate`` means another channel already marked the invoice paid; no
    side effect was applied by this call.
    """

    invoice_id: int = Field(..., description="Settled invoice")
    payment_method: str = Field(..., description="Channel that attempted the settlement")
    paid: bool = Field(..., description="This call performed the paid transition")
    duplicate: bool = Field(default=False, description="Invoice was already paid")
    fulfillment: Optional[FulfillmentResult] = Field(None, description="Fulfillment after payment")
