"""SQLAlchemy tables for the billing store.

Datetimes go in and come out as aware UTC values; they are stored naive in
UTC so SQLite and Postgres behave the same.
"""

from datetime import datetime, timezone
from decimal import Decimal
from typing import Optional

from sqlalchemy import (
    Boolean,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy.types import TypeDecorator

from billing_core.models.invoice import InvoiceStatus
from billing_core.models.product import BillingType, UNLIMITED_STOCK
from billing_core.models.service import ServiceStatus


class UTCDateTime(TypeDecorator):
    """DateTime that always returns aware UTC datetimes."""

    impl = DateTime
    cache_ok = True

    def process_bind_param(self, value: Optional[datetime], dialect) -> Optional[datetime]:
        if value is None:
            return None
        if value.tzinfo is None:
            return value
        return value.astimezone(timezone.utc).replace(tzinfo=None)

    def process_result_value(self, value: Optional[datetime], dialect) -> Optional[datetime]:
        if value is None:
            return None
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)


Money = Numeric(12, 2, asdecimal=True)


class Base(DeclarativeBase):
    """Base class for all ORM tables."""

    pass


class ProductRow(Base):
    __tablename__ = "products"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    price: Mapped[Decimal] = mapped_column(Money, nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False)
    period_minutes: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    billing_type: Mapped[str] = mapped_column(String(16), nullable=False, default=BillingType.RECURRING.value)
    stock: Mapped[int] = mapped_column(Integer, nullable=False, default=UNLIMITED_STOCK)
    active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)


class ServiceRow(Base):
    """A user's subscription to a product; next_invoice_at is the billing cursor."""

    __tablename__ = "services"
    __table_args__ = (
        UniqueConstraint("user_id", "product_id", name="uq_services_user_product"),
        Index("ix_services_due", "status", "next_invoice_at"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(Integer, nullable=False)
    product_id: Mapped[int] = mapped_column(ForeignKey("products.id"), nullable=False)
    period_minutes: Mapped[int] = mapped_column(Integer, nullable=False)
    next_invoice_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)
    status: Mapped[str] = mapped_column(String(16), nullable=False, default=ServiceStatus.ACTIVE.value)
    canceled_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, nullable=True)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)


class InvoiceRow(Base):
    __tablename__ = "invoices"
    __table_args__ = (
        # One invoice per billed cycle. NULL service_id (direct purchases) never collides.
        Index("uq_invoices_service_cycle", "service_id", "cycle_end_at", unique=True),
        Index("ix_invoices_status_due", "status", "due_at"),
        Index("ix_invoices_service_created", "service_id", "created_at"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    number: Mapped[Optional[str]] = mapped_column(String(64), nullable=True, unique=True)
    user_id: Mapped[int] = mapped_column(Integer, nullable=False)
    product_id: Mapped[Optional[int]] = mapped_column(ForeignKey("products.id"), nullable=True)
    service_id: Mapped[Optional[int]] = mapped_column(ForeignKey("services.id"), nullable=True)
    amount: Mapped[Decimal] = mapped_column(Money, nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False)
    status: Mapped[str] = mapped_column(String(16), nullable=False, default=InvoiceStatus.PENDING.value)
    payment_method: Mapped[Optional[str]] = mapped_column(String(32), nullable=True)
    external_id: Mapped[Optional[str]] = mapped_column(String(128), nullable=True)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)
    due_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, nullable=True)
    paid_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, nullable=True)
    cycle_end_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, nullable=True)


class SettingRow(Base):
    __tablename__ = "settings"

    key: Mapped[str] = mapped_column(String(100), primary_key=True)
    value: Mapped[str] = mapped_column(String(255), nullable=False)


class CreditRow(Base):
    """Prepaid balance per user and currency."""

    __tablename__ = "credits"
    __table_args__ = (UniqueConstraint("user_id", "currency", name="uq_credits_user_currency"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(Integer, nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False)
    balance: Mapped[Decimal] = mapped_column(Money, nullable=False, default=Decimal("0"))


class SchemaVersionRow(Base):
    __tablename__ = "schema_version"

    version: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=False)
    description: Mapped[str] = mapped_column(String(200), nullable=False)
    applied_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)


# Tables created by the first migration; later migrations add indexes to them.
CORE_TABLES = [
    ProductRow.__table__,
    ServiceRow.__table__,
    InvoiceRow.__table__,
    SettingRow.__table__,
    CreditRow.__table__,
]
