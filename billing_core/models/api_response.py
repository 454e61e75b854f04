"""API response models for billing and control endpoints."""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from .invoice import InvoiceRecord
from .scheduler import TickResult
from .service import ServiceRecord


class DirectPurchaseResponse(BaseModel):
    """Invoice to pay for a direct purchase."""

    invoice: InvoiceRecord = Field(..., description="Invoice the buyer should pay")
    reused: bool = Field(..., description="An existing unpaid invoice was returned")
    message: str = Field(..., description="Success message")


class AdvanceTimeResponse(BaseModel):
    """Response after advancing virtual time."""

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "previous_time": "2026-10-19T12:00:00Z",
                "current_time": "2026-11-18T12:00:00Z",
                "tick": None,
                "message": "Time advanced by 30 days",
            }
        }
    )

    previous_time: datetime = Field(..., description="Virtual time before the jump")
    current_time: datetime = Field(..., description="Virtual time after the jump")
    tick: Optional[TickResult] = Field(None, description="Scheduler tick run after advancing")
    message: str = Field(..., description="Success message")


class CancelServiceResponse(BaseModel):
    """Response after canceling a service."""

    service: ServiceRecord = Field(..., description="Service after cancellation")
    message: str = Field(..., description="Success message")


class HealthResponse(BaseModel):
    """Liveness and scheduler state."""

    status: str = Field(..., description="healthy")
    database: str = Field(..., description="ok or error")
    scheduler_running: bool = Field(..., description="Background loop is alive")
    current_time: datetime = Field(..., description="Virtual time")


class ErrorResponse(BaseModel):
    """Error body returned in HTTPException detail."""

    model_config = ConfigDict(
        json_schema_extra={
            "example": {"error": "InvoiceNotFound", "message": "Invoice 42 not found for user 7"}
        }
    )

    error: str = Field(..., description="Error code")
    message: str = Field(..., description="Human-readable message")
