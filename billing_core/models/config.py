"""Configuration models.

Models for config/billing.yaml.
"""

from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, Field, model_validator

from billing_core.utils.billing_period import parse_billing_period

from .product import BillingType, Currency, UNLIMITED_STOCK


class DatabaseSettings(BaseModel):
    """Relational store connection."""

    url: str = Field(default="sqlite:///data/billing.db", description="SQLAlchemy database URL")
    echo: bool = Field(default=False, description="Echo SQL statements")


class SchedulerSettings(BaseModel):
    """Recurring billing scheduler behavior."""

    enabled: bool = Field(default=True, description="Start the scheduler with the application")
    interval_seconds: float = Field(default=30.0, gt=0, description="Seconds between ticks")
    max_catch_up: int = Field(default=3, ge=1, description="Max cycles generated per service per tick")
    dedup_window_minutes: int = Field(default=10, ge=0, description="+/- minutes around the cursor treated as duplicate")
    due_days: int = Field(default=3, ge=0, description="Days until a generated invoice is due")
    batch_size: int = Field(default=500, ge=1, description="Max due services loaded per tick")


class InvoiceSettings(BaseModel):
    """Invoice numbering."""

    prefix: str = Field(default="INV", pattern=r"^[A-Za-z0-9]+$", description="Invoice number prefix")


class PubSubSettings(BaseModel):
    """Pub/Sub configuration for billing notifications."""

    enabled: bool = Field(default=False, description="Publish billing notifications")
    project_id: str = Field(default="billing-local", description="GCP project ID")
    topic: str = Field(default="billing-events", description="Pub/Sub topic name")


class CatalogProduct(BaseModel):
    """Seed product definition from billing.yaml."""

    id: int = Field(..., description="Product ID")
    name: str = Field(..., description="Human-readable name")
    price: Decimal = Field(..., ge=0, description="Price")
    currency: Currency = Field(default=Currency.USD, description="Price currency")
    period: Optional[str] = Field(None, description="Cycle length (P30D, PT3M, 30d, ...)")
    period_minutes: Optional[int] = Field(None, ge=0, description="Cycle length in minutes")
    billing_type: BillingType = Field(default=BillingType.RECURRING, description="recurring or one_time")
    stock: int = Field(default=UNLIMITED_STOCK, ge=UNLIMITED_STOCK, description="Units left, -1 = unlimited")
    active: bool = Field(default=True)

    @model_validator(mode="after")
    def resolve_period(self) -> "CatalogProduct":
        """Derive period_minutes from period; one-time products always get 0."""
        if self.billing_type == BillingType.ONE_TIME:
            self.period_minutes = 0
        elif self.period_minutes is None:
            if not self.period:
                raise ValueError(f"Recurring product {self.id} needs a period or period_minutes")
            self.period_minutes = parse_billing_period(self.period)
        elif self.period_minutes == 0:
            raise ValueError(f"Recurring product {self.id} cannot have period_minutes=0")
        return self


class BillingSettings(BaseModel):
    """Complete billing.yaml configuration."""

    database: DatabaseSettings = Field(default_factory=DatabaseSettings)
    scheduler: SchedulerSettings = Field(default_factory=SchedulerSettings)
    invoices: InvoiceSettings = Field(default_factory=InvoiceSettings)
    pubsub: PubSubSettings = Field(default_factory=PubSubSettings)
    catalog: list[CatalogProduct] = Field(default_factory=list, description="Seed products")
