"""Service store - subscription rows and their billing cursors.

At most one service exists per (user_id, product_id); the unique constraint
makes a second concurrent activation fall back to an update.
"""

from datetime import datetime
from typing import List, Optional, Tuple

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from billing_core.db.tables import ProductRow, ServiceRow
from billing_core.errors import ServiceNotFoundError
from billing_core.logging_config import get_logger
from billing_core.models import ProductRecord, ServiceRecord, ServiceStatus
from billing_core.state_logger import log_cursor_change, log_service_status_change

logger = get_logger(__name__)


class ServiceStore:
    """Services within one session/transaction."""

    def __init__(self, session: Session):
        self._session = session

    def _row(self, service_id: int) -> Optional[ServiceRow]:
        return self._session.get(ServiceRow, service_id, populate_existing=True)

    def get(self, service_id: int) -> ServiceRecord:
        """Get service by ID.

        Raises:
            ServiceNotFoundError: If service ID not found
        """
        row = self._row(service_id)
        if row is None:
            raise ServiceNotFoundError(f"Service not found: {service_id}")
        return ServiceRecord.model_validate(row)

    def find_for_user_product(self, user_id: int, product_id: int) -> Optional[ServiceRecord]:
        row = self._session.scalar(
            select(ServiceRow)
            .where(ServiceRow.user_id == user_id, ServiceRow.product_id == product_id)
            .execution_options(populate_existing=True)
        )
        return ServiceRecord.model_validate(row) if row is not None else None

    def list_for_user(self, user_id: int) -> List[ServiceRecord]:
        rows = self._session.scalars(
            select(ServiceRow)
            .where(ServiceRow.user_id == user_id)
            .order_by(ServiceRow.id)
            .execution_options(populate_existing=True)
        )
        return [ServiceRecord.model_validate(row) for row in rows]

    def due_services(self, now: datetime, limit: int) -> List[Tuple[ServiceRecord, ProductRecord]]:
        """Active recurring services whose cursor is at or before now.

        Oldest cursor first, joined with the product for the price snapshot.
        """
        query = (
            select(ServiceRow, ProductRow)
            .join(ProductRow, ProductRow.id == ServiceRow.product_id)
            .where(
                ServiceRow.status == ServiceStatus.ACTIVE.value,
                ServiceRow.next_invoice_at <= now,
                ServiceRow.period_minutes > 0,
            )
            .order_by(ServiceRow.next_invoice_at.asc(), ServiceRow.id.asc())
            .limit(limit)
            .execution_options(populate_existing=True)
        )
        return [
            (ServiceRecord.model_validate(service), ProductRecord.model_validate(product))
            for service, product in self._session.execute(query)
        ]

    def advance_cursor(self, service_id: int, old_cursor: datetime, new_cursor: datetime, reason: str) -> None:
        self._session.execute(
            update(ServiceRow)
            .where(ServiceRow.id == service_id)
            .values(next_invoice_at=new_cursor)
            .execution_options(synchronize_session=False)
        )
        log_cursor_change(service_id=service_id, old_cursor=old_cursor, new_cursor=new_cursor, reason=reason)

    def activate(
        self,
        user_id: int,
        product_id: int,
        period_minutes: int,
        next_invoice_at: datetime,
        now: datetime,
    ) -> Tuple[ServiceRecord, bool, Optional[ServiceStatus]]:
        """Create the service or move an existing one to the new cycle.

        Existing services get the new period and cursor and become active
        again (a canceled service is reactivated and its canceled_at cleared).

        Returns:
            (service, created, previous_status) where previous_status is None
            when the service was created
        """
        existing = self._session.scalar(
            select(ServiceRow)
            .where(ServiceRow.user_id == user_id, ServiceRow.product_id == product_id)
            .execution_options(populate_existing=True)
        )

        if existing is None:
            row = ServiceRow(
                user_id=user_id,
                product_id=product_id,
                period_minutes=period_minutes,
                next_invoice_at=next_invoice_at,
                status=ServiceStatus.ACTIVE.value,
                canceled_at=None,
                created_at=now,
            )
            try:
                with self._session.begin_nested():
                    self._session.add(row)
                    self._session.flush()
            except IntegrityError:
                # Concurrent activation created the row first; update it instead.
                logger.info("service_create_conflict", user_id=user_id, product_id=product_id)
                existing = self._session.scalar(
                    select(ServiceRow)
                    .where(ServiceRow.user_id == user_id, ServiceRow.product_id == product_id)
                    .execution_options(populate_existing=True)
                )
                if existing is None:
                    raise
            else:
                log_service_status_change(
                    service_id=row.id,
                    old_status=None,
                    new_status=ServiceStatus.ACTIVE.value,
                    reason="first_payment",
                    user_id=user_id,
                    product_id=product_id,
                )
                return ServiceRecord.model_validate(row), True, None

        previous_status = ServiceStatus(existing.status)
        old_cursor = existing.next_invoice_at
        existing.period_minutes = period_minutes
        existing.next_invoice_at = next_invoice_at
        existing.status = ServiceStatus.ACTIVE.value
        existing.canceled_at = None
        self._session.flush()

        if previous_status != ServiceStatus.ACTIVE:
            log_service_status_change(
                service_id=existing.id,
                old_status=previous_status.value,
                new_status=ServiceStatus.ACTIVE.value,
                reason="reactivated_by_payment",
                user_id=user_id,
                product_id=product_id,
            )
        log_cursor_change(
            service_id=existing.id,
            old_cursor=old_cursor,
            new_cursor=next_invoice_at,
            reason="payment_fulfilled",
        )
        return ServiceRecord.model_validate(existing), False, previous_status

    def cancel(self, service_id: int, now: datetime, reason: str = "user_requested") -> ServiceRecord:
        """Cancel a service; canceling a canceled service is a no-op.

        Raises:
            ServiceNotFoundError: If service ID not found
        """
        row = self._row(service_id)
        if row is None:
            raise ServiceNotFoundError(f"Service not found: {service_id}")

        if row.status != ServiceStatus.CANCELED.value:
            old_status = row.status
            row.status = ServiceStatus.CANCELED.value
            row.canceled_at = now
            self._session.flush()
            log_service_status_change(
                service_id=service_id,
                old_status=old_status,
                new_status=ServiceStatus.CANCELED.value,
                reason=reason,
            )
        return ServiceRecord.model_validate(row)
