"""Shared test data: the test catalog, a fixed start time, and row builders."""

from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Optional

from billing_core.db.tables import InvoiceRow, ServiceRow
from billing_core.models import (
    BillingType,
    CatalogProduct,
    Currency,
    InvoiceRecord,
    InvoiceStatus,
    ServiceRecord,
    ServiceStatus,
)
from billing_core.repositories.credit_store import CreditStore
from billing_core.services.fulfillment import FulfillmentResolver
from billing_core.services.payment_bridges import (
    CreditBalanceBridge,
    GatewayCaptureBridge,
    GatewayWebhookBridge,
)

NOW = datetime(2026, 1, 15, 12, 0, tzinfo=timezone.utc)

MONTHLY_PRODUCT_ID = 1
TEN_MINUTE_PRODUCT_ID = 2
ONE_TIME_PRODUCT_ID = 3
LIMITED_PRODUCT_ID = 4

TEST_CATALOG = [
    CatalogProduct(id=MONTHLY_PRODUCT_ID, name="Monthly", price=Decimal("9.99"), currency=Currency.USD, period="P30D"),
    CatalogProduct(
        id=TEN_MINUTE_PRODUCT_ID, name="Ten Minutes", price=Decimal("1.50"), currency=Currency.MXN, period_minutes=10
    ),
    CatalogProduct(
        id=ONE_TIME_PRODUCT_ID,
        name="Lifetime",
        price=Decimal("49.00"),
        currency=Currency.USD,
        billing_type=BillingType.ONE_TIME,
        stock=2,
    ),
    CatalogProduct(
        id=LIMITED_PRODUCT_ID, name="Limited", price=Decimal("5.00"), currency=Currency.USD, period="P7D", stock=1
    ),
]


def build_bridges(session_factory, clock, numbers, dispatcher=None):
    """(fulfillment, credit, capture, webhook) sharing one resolver."""
    fulfillment = FulfillmentResolver(session_factory, clock, dispatcher)
    args = (session_factory, clock, fulfillment, numbers, dispatcher)
    return fulfillment, CreditBalanceBridge(*args), GatewayCaptureBridge(*args), GatewayWebhookBridge(*args)


def add_service(
    session_factory,
    user_id: int,
    product_id: int,
    next_invoice_at: datetime,
    period_minutes: int,
    status: ServiceStatus = ServiceStatus.ACTIVE,
    canceled_at: Optional[datetime] = None,
) -> ServiceRecord:
    with session_factory.begin() as session:
        row = ServiceRow(
            user_id=user_id,
            product_id=product_id,
            period_minutes=period_minutes,
            next_invoice_at=next_invoice_at,
            status=status.value,
            canceled_at=canceled_at,
            created_at=next_invoice_at - timedelta(minutes=period_minutes),
        )
        session.add(row)
        session.flush()
        return ServiceRecord.model_validate(row)


def add_invoice(
    session_factory,
    user_id: int,
    product_id: int,
    amount: Decimal,
    currency: Currency = Currency.USD,
    status: InvoiceStatus = InvoiceStatus.PENDING,
    number: Optional[str] = None,
    service_id: Optional[int] = None,
    created_at: datetime = NOW,
    due_at: Optional[datetime] = None,
    cycle_end_at: Optional[datetime] = None,
    paid_at: Optional[datetime] = None,
    payment_method: Optional[str] = None,
) -> InvoiceRecord:
    with session_factory.begin() as session:
        row = InvoiceRow(
            number=number,
            user_id=user_id,
            product_id=product_id,
            service_id=service_id,
            amount=amount,
            currency=currency.value,
            status=status.value,
            payment_method=payment_method,
            created_at=created_at,
            due_at=due_at,
            paid_at=paid_at,
            cycle_end_at=cycle_end_at,
        )
        session.add(row)
        session.flush()
        return InvoiceRecord.model_validate(row)


def add_credits(session_factory, user_id: int, amount: Decimal, currency: Currency = Currency.USD) -> None:
    with session_factory.begin() as session:
        CreditStore(session).credit(user_id, currency, amount)
