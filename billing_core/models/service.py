"""Service (subscription) models."""

from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class ServiceStatus(str, Enum):
    """Service status. Cancellation is owned by an external flow."""

    ACTIVE = "active"
    CANCELED = "canceled"


class ServiceRecord(BaseModel):
    """Snapshot of a services row. At most one per (user_id, product_id)."""

    model_config = ConfigDict(
        from_attributes=True,
        json_schema_extra={
            "example": {
                "id": 3,
                "user_id": 7,
                "product_id": 1,
                "period_minutes": 43200,
                "next_invoice_at": "2026-11-18T12:00:00Z",
                "status": "active",
                "canceled_at": None,
                "created_at": "2026-10-19T12:00:00Z",
            }
        },
    )

    id: int = Field(..., description="Service ID")
    user_id: int = Field(..., description="Subscribed user")
    product_id: int = Field(..., description="Subscribed product")
    period_minutes: int = Field(..., description="Cycle length snapshotted at activation")
    next_invoice_at: datetime = Field(..., description="Cursor: start of the next cycle to bill")
    status: ServiceStatus = Field(default=ServiceStatus.ACTIVE, description="Service status")
    canceled_at: Optional[datetime] = Field(None, description="When the service was canceled")
    created_at: datetime = Field(..., description="When the service was first activated")

    @property
    def is_active(self) -> bool:
        return self.status == ServiceStatus.ACTIVE
