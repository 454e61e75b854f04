"""Billing notification models published to Pub/Sub.

Downstream consumers (mailer, WhatsApp notifier) subscribe to these.
"""

from datetime import datetime
from enum import IntEnum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class BillingNotificationType(IntEnum):
    """Billing notification types."""

    INVOICE_CREATED = 1  # Scheduler generated a pending invoice
    INVOICE_PAID = 2  # A payment bridge won the paid transition
    INVOICES_OVERDUE = 3  # Overdue sweep moved pending invoices to overdue
    SERVICE_ACTIVATED = 4  # First paid invoice created the service
    SERVICE_RENEWED = 5  # Paid invoice renewed an active service
    SERVICE_REACTIVATED = 6  # Paid invoice resurrected a canceled service


class BillingNotification(BaseModel):
    """Root message published to the billing topic."""

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "version": "1.0",
                "notification_type": BillingNotificationType.INVOICE_PAID,
                "event_time": "2026-10-19T12:00:00Z",
                "invoice_id": 42,
                "invoice_number": "INV-20261019-00042",
                "user_id": 7,
                "product_id": 1,
                "payment_method": "credits",
            }
        }
    )

    version: str = Field(default="1.0", description="Notification version")
    notification_type: int = Field(..., description="BillingNotificationType value")
    event_time: datetime = Field(..., description="Event timestamp (UTC)")

    invoice_id: Optional[int] = Field(None, description="Invoice the event is about")
    invoice_number: Optional[str] = Field(None, description="Invoice number")
    service_id: Optional[int] = Field(None, description="Service the event is about")
    user_id: Optional[int] = Field(None, description="Owning user")
    product_id: Optional[int] = Field(None, description="Product")
    payment_method: Optional[str] = Field(None, description="Payment channel for INVOICE_PAID")
    count: Optional[int] = Field(None, description="Affected rows for bulk events")
