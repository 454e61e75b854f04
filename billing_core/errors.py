"""Exception hierarchy for the billing core.

Not-found errors are surfaced to callers and never retried. Payment
rejections leave the invoice unpaid. Duplicate payment confirmations are not
errors at all; the bridges report them through ``PaymentOutcome.duplicate``.
"""

from typing import Optional


class BillingError(Exception):
    """Base exception for billing core errors."""

    pass


class ConfigurationError(BillingError):
    """Raised when configuration is invalid or missing."""

    pass


class MigrationError(BillingError):
    """Raised when a schema migration cannot be applied."""

    pass


class NotFoundError(BillingError):
    """Base class for missing (or not owned) records."""

    pass


class InvoiceNotFoundError(NotFoundError):
    """Raised when an invoice does not exist or does not belong to the user."""

    def __init__(self, invoice_id: int, user_id: Optional[int] = None):
        self.invoice_id = invoice_id
        self.user_id = user_id
        if user_id is None:
            message = f"Invoice not found: {invoice_id}"
        else:
            message = f"Invoice {invoice_id} not found for user {user_id}"
        super().__init__(message)


class ServiceNotFoundError(NotFoundError):
    """Raised when a service does not exist or does not belong to the user."""

    pass


class ProductNotFoundError(NotFoundError):
    """Raised when a product is not found or is inactive."""

    pass


class PaymentRejectedError(BillingError):
    """Raised when a payment channel rejects a payment; the invoice stays unpaid."""

    pass


class InsufficientBalanceError(PaymentRejectedError):
    """Raised when the user's credit balance cannot cover the invoice."""

    pass


class OutOfStockError(PaymentRejectedError):
    """Raised when a product has no stock left."""

    pass
