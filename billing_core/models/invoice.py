"""Invoice models.

Amount and currency are snapshotted from the product at creation and never
recomputed. Once an invoice is paid its payment_method and paid_at never
change, and cycle_end_at is written at most once.
"""

from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from .product import Currency


class InvoiceStatus(str, Enum):
    """Invoice lifecycle: pending -> overdue | paid. Paid is terminal."""

    PENDING = "pending"
    OVERDUE = "overdue"
    PAID = "paid"


UNPAID_STATUSES = (InvoiceStatus.PENDING, InvoiceStatus.OVERDUE)


class PaymentMethod(str, Enum):
    """Payment channels that can settle an invoice."""

    CREDITS = "credits"
    PAYPAL = "paypal"
    PAYPAL_IPN = "paypal_ipn"
    STRIPE = "stripe"


class InvoiceRecord(BaseModel):
    """Snapshot of an invoices row."""

    model_config = ConfigDict(
        from_attributes=True,
        json_schema_extra={
            "example": {
                "id": 42,
                "number": "INV-20261019-00042",
                "user_id": 7,
                "product_id": 1,
                "service_id": 3,
                "amount": "9.99",
                "currency": "USD",
                "status": "pending",
                "payment_method": None,
                "external_id": None,
                "created_at": "2026-10-19T12:00:00Z",
                "due_at": "2026-10-22T12:00:00Z",
                "paid_at": None,
                "cycle_end_at": "2026-11-18T12:00:00Z",
            }
        },
    )

    id: int = Field(..., description="Invoice ID")
    number: Optional[str] = Field(None, description="Human-readable unique number")
    user_id: int = Field(..., description="Owning user")
    product_id: Optional[int] = Field(None, description="Product being billed")
    service_id: Optional[int] = Field(None, description="Service this invoice renews, once it exists")
    amount: Decimal = Field(..., description="Amount snapshotted from the product")
    currency: Currency = Field(..., description="Currency snapshotted from the product")
    status: InvoiceStatus = Field(default=InvoiceStatus.PENDING, description="Invoice status")
    payment_method: Optional[str] = Field(None, description="Channel that settled the invoice")
    external_id: Optional[str] = Field(None, description="Gateway reference of the payment")
    created_at: datetime = Field(..., description="When the invoice was generated")
    due_at: Optional[datetime] = Field(None, description="Due date; pending invoices past it become overdue")
    paid_at: Optional[datetime] = Field(None, description="When the invoice was paid")
    cycle_end_at: Optional[datetime] = Field(None, description="End of the cycle this invoice pays for")

    @property
    def is_paid(self) -> bool:
        return self.status == InvoiceStatus.PAID
