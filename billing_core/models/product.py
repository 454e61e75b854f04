"""Product models.

Products are reference data owned by admin tooling. The core reads them and
only ever decrements stock.
"""

from decimal import Decimal
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field

UNLIMITED_STOCK = -1


class Currency(str, Enum):
    """Supported invoice currencies (no conversion between them)."""

    USD = "USD"
    MXN = "MXN"


class BillingType(str, Enum):
    """How a product is billed."""

    RECURRING = "recurring"
    ONE_TIME = "one_time"


class ProductRecord(BaseModel):
    """Snapshot of a products row."""

    model_config = ConfigDict(
        from_attributes=True,
        json_schema_extra={
            "example": {
                "id": 1,
                "name": "Streaming Basic 30d",
                "price": "9.99",
                "currency": "USD",
                "period_minutes": 43200,
                "billing_type": "recurring",
                "stock": -1,
                "active": True,
            }
        },
    )

    id: int = Field(..., description="Product ID")
    name: str = Field(..., description="Human-readable name")
    price: Decimal = Field(..., description="Price per cycle (or one-time price)")
    currency: Currency = Field(..., description="Price currency")
    period_minutes: int = Field(..., ge=0, description="Cycle length in minutes, 0 = one-time")
    billing_type: BillingType = Field(default=BillingType.RECURRING, description="recurring or one_time")
    stock: int = Field(default=UNLIMITED_STOCK, description="Units left, -1 = unlimited")
    active: bool = Field(default=True, description="Whether the product can be purchased")

    @property
    def is_one_time(self) -> bool:
        """One-time products never renew, whatever their period says."""
        return self.billing_type == BillingType.ONE_TIME or self.period_minutes <= 0

    @property
    def has_unlimited_stock(self) -> bool:
        return self.stock < 0
