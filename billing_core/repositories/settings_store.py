"""Settings store - key/value rows in the settings table."""

from typing import Optional

from sqlalchemy import Integer, String, cast, select, update
from sqlalchemy.orm import Session

from billing_core.db.tables import SettingRow


class SettingsStore:
    """Key/value settings within one session/transaction."""

    def __init__(self, session: Session):
        self._session = session

    def get(self, key: str, default: Optional[str] = None) -> Optional[str]:
        value = self._session.scalar(select(SettingRow.value).where(SettingRow.key == key))
        return default if value is None else value

    def set(self, key: str, value: str) -> None:
        """Insert or overwrite a setting."""
        row = self._session.get(SettingRow, key)
        if row is None:
            self._session.add(SettingRow(key=key, value=value))
        else:
            row.value = value
        self._session.flush()

    def set_default(self, key: str, value: str) -> bool:
        """Insert a setting only if it does not exist.

        Returns:
            True if the row was inserted
        """
        if self._session.get(SettingRow, key) is not None:
            return False
        self._session.add(SettingRow(key=key, value=value))
        self._session.flush()
        return True

    def increment(self, key: str) -> int:
        """Atomically increment an integer setting, creating it at 1.

        The UPDATE takes the row lock, so two transactions can never read the
        same value. Must run inside a transaction.

        Returns:
            The value after incrementing
        """
        result = self._session.execute(
            update(SettingRow)
            .where(SettingRow.key == key)
            .values(value=cast(cast(SettingRow.value, Integer) + 1, String(255)))
            .execution_options(synchronize_session=False)
        )
        if int(result.rowcount or 0) == 0:
            self._session.add(SettingRow(key=key, value="1"))
            self._session.flush()
            return 1
        return int(self._session.scalar(select(SettingRow.value).where(SettingRow.key == key)))
