"""Virtual clock for time manipulation and fast-forwarding.

Responsibilities:
- Provide the current time to every billing component
- Advance time (days, hours, minutes) so cycles come due without waiting
- Freeze time for deterministic tests
"""

import threading
from datetime import datetime, timedelta, timezone
from typing import Optional

from billing_core.logging_config import get_logger
from billing_core.utils.billing_period import as_utc

logger = get_logger(__name__)


class TimeController:
    """Virtual clock: real UTC time plus an offset.

    When created with ``frozen_at`` the clock does not move on its own; only
    advance_time/set_time move it.

    Args:
        frozen_at: optional fixed starting instant
    """

    def __init__(self, frozen_at: Optional[datetime] = None) -> None:
        self._lock = threading.RLock()
        self._frozen_at = as_utc(frozen_at) if frozen_at is not None else None
        self._offset = timedelta(0)

        logger.info(
            "time_controller_initialized",
            frozen=self._frozen_at is not None,
            virtual_time=self.now().isoformat(),
        )

    def _base(self) -> datetime:
        if self._frozen_at is not None:
            return self._frozen_at
        return datetime.now(timezone.utc)

    def now(self) -> datetime:
        """Current virtual time (aware UTC)."""
        with self._lock:
            return self._base() + self._offset

    @property
    def offset(self) -> timedelta:
        with self._lock:
            return self._offset

    @property
    def is_frozen(self) -> bool:
        return self._frozen_at is not None

    def advance_time(self, days: int = 0, hours: int = 0, minutes: int = 0) -> dict:
        """Advance virtual time.

        Args:
            days: number of days to advance
            hours: number of hours to advance
            minutes: number of minutes to advance

        Returns:
            Dictionary with old_time, new_time and advanced_by (timedelta)

        Raises:
            ValueError: if any value is negative
        """
        if days < 0 or hours < 0 or minutes < 0:
            raise ValueError("Cannot advance time backwards, negative values are not allowed")

        delta = timedelta(days=days, hours=hours, minutes=minutes)
        with self._lock:
            old_time = self.now()
            self._offset += delta
            new_time = self.now()

        if delta:
            logger.info(
                "time_advanced",
                old_time=old_time.isoformat(),
                new_time=new_time.isoformat(),
                days=days,
                hours=hours,
                minutes=minutes,
            )
        return {"old_time": old_time, "new_time": new_time, "advanced_by": delta}

    def set_time(self, moment: datetime) -> dict:
        """Jump virtual time to a specific instant.

        Raises:
            ValueError: If moment is before the current virtual time
        """
        moment = as_utc(moment)
        with self._lock:
            old_time = self.now()
            if moment < old_time:
                raise ValueError(
                    f"Cannot set time backwards, current: {old_time.isoformat()}, requested: {moment.isoformat()}"
                )
            self._offset += moment - old_time

        logger.info("time_set", old_time=old_time.isoformat(), new_time=moment.isoformat())
        return {"old_time": old_time, "new_time": moment}

    def reset_time(self) -> dict:
        """Drop the offset, back to real (or frozen start) time."""
        with self._lock:
            old_time = self.now()
            self._offset = timedelta(0)
            new_time = self.now()

        logger.info("time_reset", old_time=old_time.isoformat(), new_time=new_time.isoformat())
        return {"old_time": old_time, "new_time": new_time}
