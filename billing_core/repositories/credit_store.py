"""Credit store - prepaid balances per user and currency."""

from decimal import Decimal

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from billing_core.db.tables import CreditRow
from billing_core.logging_config import get_logger
from billing_core.models import Currency

logger = get_logger(__name__)


class CreditStore:
    """Credit balances within one session/transaction."""

    def __init__(self, session: Session):
        self._session = session

    def balance(self, user_id: int, currency: Currency) -> Decimal:
        """Current balance, zero when the user never had credits in this currency."""
        value = self._session.scalar(
            select(CreditRow.balance).where(CreditRow.user_id == user_id, CreditRow.currency == currency.value)
        )
        return Decimal(value) if value is not None else Decimal("0")

    def credit(self, user_id: int, currency: Currency, amount: Decimal) -> Decimal:
        """Add funds, creating the balance row if needed.

        Returns:
            New balance

        Raises:
            ValueError: If amount is not positive
        """
        if amount <= 0:
            raise ValueError(f"Credit amount must be positive, got {amount}")

        result = self._session.execute(
            update(CreditRow)
            .where(CreditRow.user_id == user_id, CreditRow.currency == currency.value)
            .values(balance=CreditRow.balance + amount)
            .execution_options(synchronize_session=False)
        )
        if int(result.rowcount or 0) == 0:
            self._session.add(CreditRow(user_id=user_id, currency=currency.value, balance=amount))
            self._session.flush()

        new_balance = self.balance(user_id, currency)
        logger.info("credits_added", user_id=user_id, currency=currency.value, amount=amount, balance=new_balance)
        return new_balance

    def debit(self, user_id: int, currency: Currency, amount: Decimal) -> bool:
        """Take funds if the balance covers them.

        The balance guard is part of the UPDATE, so two concurrent debits can
        never overdraw the account.

        Returns:
            True if debited, False if the balance was insufficient
        """
        result = self._session.execute(
            update(CreditRow)
            .where(
                CreditRow.user_id == user_id,
                CreditRow.currency == currency.value,
                CreditRow.balance >= amount,
            )
            .values(balance=CreditRow.balance - amount)
            .execution_options(synchronize_session=False)
        )
        debited = int(result.rowcount or 0) == 1
        if debited:
            logger.debug("credits_debited", user_id=user_id, currency=currency.value, amount=amount)
        return debited
