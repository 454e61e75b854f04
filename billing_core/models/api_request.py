"""API request models for billing and control endpoints."""

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class DirectPurchaseRequest(BaseModel):
    """Request to buy a product outside the scheduler cycle."""

    model_config = ConfigDict(json_schema_extra={"example": {"user_id": 7, "product_id": 1}})

    user_id: int = Field(..., gt=0, description="Buying user")
    product_id: int = Field(..., gt=0, description="Product to buy")


class CreditPaymentRequest(BaseModel):
    """Request to settle an invoice from the user's credit balance."""

    model_config = ConfigDict(json_schema_extra={"example": {"user_id": 7}})

    user_id: int = Field(..., gt=0, description="Invoice owner; their balance is debited")


class AdvanceTimeRequest(BaseModel):
    """Request to advance virtual time."""

    model_config = ConfigDict(
        json_schema_extra={"example": {"days": 30, "hours": 0, "minutes": 0, "run_tick": True}}
    )

    days: Optional[int] = Field(None, ge=0, description="Days to advance")
    hours: Optional[int] = Field(None, ge=0, description="Hours to advance")
    minutes: Optional[int] = Field(None, ge=0, description="Minutes to advance")
    run_tick: bool = Field(default=True, description="Run a scheduler tick after advancing")


class CancelServiceRequest(BaseModel):
    """Request to cancel a service (only the external cancel flow uses this)."""

    model_config = ConfigDict(json_schema_extra={"example": {"reason": "user_requested"}})

    reason: str = Field(default="user_requested", description="Free-form cancel reason, logged only")
