"""Subscription Manager - service lookups and the external cancel flow."""

from typing import List

from sqlalchemy.orm import sessionmaker

from billing_core.logging_config import get_logger
from billing_core.models import InvoiceRecord, ServiceRecord
from billing_core.repositories.invoice_store import InvoiceStore
from billing_core.repositories.service_store import ServiceStore
from billing_core.services.time_controller import TimeController

logger = get_logger(__name__)


class SubscriptionManager:
    """Reads services and cancels them on request."""

    def __init__(self, session_factory: sessionmaker, time_controller: TimeController):
        self._session_factory = session_factory
        self._time_controller = time_controller

    def get_service(self, service_id: int) -> ServiceRecord:
        """Raises ServiceNotFoundError if the service does not exist."""
        with self._session_factory() as session:
            return ServiceStore(session).get(service_id)

    def list_services(self, user_id: int) -> List[ServiceRecord]:
        with self._session_factory() as session:
            return ServiceStore(session).list_for_user(user_id)

    def list_invoices(self, service_id: int) -> List[InvoiceRecord]:
        with self._session_factory() as session:
            return InvoiceStore(session).list_for_service(service_id)

    def cancel_service(self, service_id: int, reason: str = "user_requested") -> ServiceRecord:
        """Cancel a service so the scheduler stops billing it.

        Already generated invoices stay payable; paying one reactivates the
        service.

        Raises:
            ServiceNotFoundError: If the service does not exist
        """
        now = self._time_controller.now()
        with self._session_factory.begin() as session:
            service = ServiceStore(session).cancel(service_id, now, reason=reason)
        logger.info("service_canceled", service_id=service_id, reason=reason)
        return service
