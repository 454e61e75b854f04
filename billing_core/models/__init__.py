"""Pydantic models for records, configuration, events, and API payloads."""

# Catalog
from .product import (
    UNLIMITED_STOCK,
    Currency,
    BillingType,
    ProductRecord,
)

# Invoices
from .invoice import (
    InvoiceStatus,
    UNPAID_STATUSES,
    PaymentMethod,
    InvoiceRecord,
)

# Services
from .service import (
    ServiceStatus,
    ServiceRecord,
)

# Configuration
from .config import (
    DatabaseSettings,
    SchedulerSettings,
    InvoiceSettings,
    PubSubSettings,
    CatalogProduct,
    BillingSettings,
)

# Events
from .events import (
    BillingNotificationType,
    BillingNotification,
)

# Payments and outcomes
from .payments import (
    CaptureResult,
    GatewayWebhookEvent,
    FulfillmentResult,
    PaymentOutcome,
)

# Scheduler
from .scheduler import (
    CatchUpResult,
    TickResult,
    SchedulerStatus,
)

# API
from .api_request import (
    DirectPurchaseRequest,
    CreditPaymentRequest,
    AdvanceTimeRequest,
    CancelServiceRequest,
)
from .api_response import (
    DirectPurchaseResponse,
    AdvanceTimeResponse,
    CancelServiceResponse,
    HealthResponse,
    ErrorResponse,
)

__all__ = [
    # Catalog
    "UNLIMITED_STOCK",
    "Currency",
    "BillingType",
    "ProductRecord",
    # Invoices
    "InvoiceStatus",
    "UNPAID_STATUSES",
    "PaymentMethod",
    "InvoiceRecord",
    # Services
    "ServiceStatus",
    "ServiceRecord",
    # Configuration
    "DatabaseSettings",
    "SchedulerSettings",
    "InvoiceSettings",
    "PubSubSettings",
    "CatalogProduct",
    "BillingSettings",
    # Events
    "BillingNotificationType",
    "BillingNotification",
    # Payments
    "CaptureResult",
    "GatewayWebhookEvent",
    "FulfillmentResult",
    "PaymentOutcome",
    # Scheduler
    "CatchUpResult",
    "TickResult",
    "SchedulerStatus",
    # API
    "DirectPurchaseRequest",
    "CreditPaymentRequest",
    "AdvanceTimeRequest",
    "CancelServiceRequest",
    "DirectPurchaseResponse",
    "AdvanceTimeResponse",
    "CancelServiceResponse",
    "HealthResponse",
    "ErrorResponse",
]
