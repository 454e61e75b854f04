"""Invoice store - invoice rows, the overdue sweep, and the paid fencing write.

``mark_paid`` is the only way an invoice becomes paid. Its WHERE clause
excludes already paid rows, so whichever caller gets rowcount 1 owns the
transition and every other caller sees a duplicate.
"""

from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from sqlalchemy import and_, func, or_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from billing_core.db.tables import InvoiceRow
from billing_core.errors import InvoiceNotFoundError
from billing_core.logging_config import get_logger
from billing_core.models import Currency, InvoiceRecord, InvoiceStatus, UNPAID_STATUSES
from billing_core.state_logger import log_invoice_status_change

logger = get_logger(__name__)

_UNPAID_VALUES = [status.value for status in UNPAID_STATUSES]


class InvoiceStore:
    """Invoices within one session/transaction."""

    def __init__(self, session: Session):
        self._session = session

    def find(self, invoice_id: int) -> Optional[InvoiceRecord]:
        row = self._session.get(InvoiceRow, invoice_id, populate_existing=True)
        return InvoiceRecord.model_validate(row) if row is not None else None

    def get(self, invoice_id: int) -> InvoiceRecord:
        """Get invoice by ID.

        Raises:
            InvoiceNotFoundError: If invoice ID not found
        """
        invoice = self.find(invoice_id)
        if invoice is None:
            raise InvoiceNotFoundError(invoice_id)
        return invoice

    def get_for_user(self, invoice_id: int, user_id: int) -> InvoiceRecord:
        """Get an invoice owned by user_id.

        Raises:
            InvoiceNotFoundError: If the invoice is missing or owned by someone else
        """
        invoice = self.find(invoice_id)
        if invoice is None or invoice.user_id != user_id:
            raise InvoiceNotFoundError(invoice_id, user_id)
        return invoice

    def list_for_service(self, service_id: int) -> List[InvoiceRecord]:
        rows = self._session.scalars(
            select(InvoiceRow)
            .where(InvoiceRow.service_id == service_id)
            .order_by(InvoiceRow.cycle_end_at, InvoiceRow.id)
            .execution_options(populate_existing=True)
        )
        return [InvoiceRecord.model_validate(row) for row in rows]

    def list_for_user(self, user_id: int) -> List[InvoiceRecord]:
        rows = self._session.scalars(
            select(InvoiceRow)
            .where(InvoiceRow.user_id == user_id)
            .order_by(InvoiceRow.id)
            .execution_options(populate_existing=True)
        )
        return [InvoiceRecord.model_validate(row) for row in rows]

    def latest_unpaid_for(self, user_id: int, product_id: int) -> Optional[InvoiceRecord]:
        """Most recent pending or overdue invoice for (user, product)."""
        row = self._session.scalar(
            select(InvoiceRow)
            .where(
                InvoiceRow.user_id == user_id,
                InvoiceRow.product_id == product_id,
                InvoiceRow.status.in_(_UNPAID_VALUES),
            )
            .order_by(InvoiceRow.id.desc())
            .limit(1)
            .execution_options(populate_existing=True)
        )
        return InvoiceRecord.model_validate(row) if row is not None else None

    def mark_overdue(self, now: datetime) -> int:
        """Move pending invoices past their due date to overdue.

        Invoices without a due date are never marked.

        Returns:
            Number of invoices marked overdue
        """
        result = self._session.execute(
            update(InvoiceRow)
            .where(
                InvoiceRow.status == InvoiceStatus.PENDING.value,
                InvoiceRow.due_at.is_not(None),
                InvoiceRow.due_at < now,
            )
            .values(status=InvoiceStatus.OVERDUE.value)
            .execution_options(synchronize_session=False)
        )
        return int(result.rowcount or 0)

    def find_duplicate(
        self,
        service_id: int,
        cycle_end_at: datetime,
        window_start: datetime,
        window_end: datetime,
    ) -> Optional[InvoiceRecord]:
        """An invoice that already bills this cycle.

        Matches the exact cycle end. Invoices without a recorded cycle end
        (rows written before cycles were tracked) match when they were
        created inside the window around the cursor.
        """
        row = self._session.scalar(
            select(InvoiceRow)
            .where(
                InvoiceRow.service_id == service_id,
                or_(
                    InvoiceRow.cycle_end_at == cycle_end_at,
                    and_(
                        InvoiceRow.cycle_end_at.is_(None),
                        InvoiceRow.created_at >= window_start,
                        InvoiceRow.created_at <= window_end,
                    ),
                ),
            )
            .order_by(InvoiceRow.id)
            .limit(1)
        )
        return InvoiceRecord.model_validate(row) if row is not None else None

    def insert_pending(
        self,
        user_id: int,
        product_id: int,
        amount: Decimal,
        currency: Currency,
        number: Optional[str],
        created_at: datetime,
        due_at: Optional[datetime] = None,
        service_id: Optional[int] = None,
        cycle_end_at: Optional[datetime] = None,
    ) -> Optional[InvoiceRecord]:
        """Insert a pending invoice.

        Returns:
            The new invoice, or None when another invoice already bills
            (service_id, cycle_end_at)

        Raises:
            IntegrityError: For any other constraint violation (e.g. number collision)
        """
        row = InvoiceRow(
            number=number,
            user_id=user_id,
            product_id=product_id,
            service_id=service_id,
            amount=amount,
            currency=currency.value,
            status=InvoiceStatus.PENDING.value,
            created_at=created_at,
            due_at=due_at,
            cycle_end_at=cycle_end_at,
        )
        try:
            with self._session.begin_nested():
                self._session.add(row)
                self._session.flush()
        except IntegrityError:
            if service_id is not None and cycle_end_at is not None and self._cycle_exists(service_id, cycle_end_at):
                logger.info(
                    "invoice_cycle_conflict",
                    service_id=service_id,
                    cycle_end_at=cycle_end_at.isoformat(),
                )
                return None
            raise

        logger.info(
            "invoice_created",
            invoice_id=row.id,
            number=number,
            user_id=user_id,
            product_id=product_id,
            service_id=service_id,
            amount=amount,
            currency=currency.value,
        )
        return InvoiceRecord.model_validate(row)

    def _cycle_exists(self, service_id: int, cycle_end_at: datetime) -> bool:
        found = self._session.scalar(
            select(InvoiceRow.id).where(
                InvoiceRow.service_id == service_id,
                InvoiceRow.cycle_end_at == cycle_end_at,
            )
        )
        return found is not None

    def mark_paid(
        self,
        invoice_id: int,
        payment_method: str,
        paid_at: datetime,
        number: Optional[str] = None,
        external_id: Optional[str] = None,
    ) -> bool:
        """Fencing write: move an unpaid invoice to paid.

        A missing number is filled in; an existing one is kept.

        Returns:
            True if this call performed the transition, False if the invoice
            was already paid (or does not exist)
        """
        values = {
            "status": InvoiceStatus.PAID.value,
            "payment_method": payment_method,
            "paid_at": paid_at,
        }
        if number is not None:
            values["number"] = func.coalesce(InvoiceRow.number, number)
        if external_id is not None:
            values["external_id"] = external_id

        result = self._session.execute(
            update(InvoiceRow)
            .where(InvoiceRow.id == invoice_id, InvoiceRow.status != InvoiceStatus.PAID.value)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        won = int(result.rowcount or 0) == 1
        if won:
            log_invoice_status_change(
                invoice_id=invoice_id,
                old_status="unpaid",
                new_status=InvoiceStatus.PAID.value,
                reason=payment_method,
                external_id=external_id,
            )
        else:
            logger.info("invoice_already_paid", invoice_id=invoice_id, payment_method=payment_method)
        return won

    def set_cycle_end_if_missing(self, invoice_id: int, cycle_end_at: datetime) -> bool:
        """Record the cycle end once; later calls never overwrite it.

        Returns:
            True if the value was written by this call
        """
        result = self._session.execute(
            update(InvoiceRow)
            .where(InvoiceRow.id == invoice_id, InvoiceRow.cycle_end_at.is_(None))
            .values(cycle_end_at=cycle_end_at)
            .execution_options(synchronize_session=False)
        )
        return int(result.rowcount or 0) == 1

    def link_service(self, invoice_id: int, service_id: int) -> bool:
        """Attach the invoice to its service if it is not attached yet.

        Returns:
            True if linked by this call. False if it was already linked, or
            the service already has an invoice for the same cycle end.
        """
        try:
            with self._session.begin_nested():
                result = self._session.execute(
                    update(InvoiceRow)
                    .where(InvoiceRow.id == invoice_id, InvoiceRow.service_id.is_(None))
                    .values(service_id=service_id)
                    .execution_options(synchronize_session=False)
                )
        except IntegrityError:
            logger.warning("invoice_link_conflict", invoice_id=invoice_id, service_id=service_id)
            return False
        return int(result.rowcount or 0) == 1
