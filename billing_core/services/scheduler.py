"""Billing scheduler: overdue sweep plus catch-up generation on an interval.

Responsibilities:
- Run one tick immediately on start, then one per interval
- Skip (never queue) a tick that fires while another one runs
- Apply each tick in a single transaction, rolled back on any error
- Publish billing events after the tick commits
"""

import threading
import time
import uuid
from typing import Optional

from sqlalchemy.orm import sessionmaker

from billing_core.logging_config import bound_context, get_logger
from billing_core.models import (
    BillingNotificationType,
    CatchUpResult,
    SchedulerStatus,
    TickResult,
)
from billing_core.services.catch_up_generator import CatchUpGenerator
from billing_core.services.event_dispatcher import EventDispatcher
from billing_core.services.overdue_marker import OverdueMarker
from billing_core.services.time_controller import TimeController

logger = get_logger(__name__)


class BillingScheduler:
    """Drives the overdue marker and the catch-up generator.

    Args:
        session_factory: sessionmaker bound to the billing store
        time_controller: clock for "now"
        catch_up: catch-up generator
        overdue_marker: overdue sweep (default OverdueMarker())
        event_dispatcher: optional publisher for tick events
        interval_seconds: seconds between ticks
    """

    def __init__(
        self,
        session_factory: sessionmaker,
        time_controller: TimeController,
        catch_up: CatchUpGenerator,
        overdue_marker: Optional[OverdueMarker] = None,
        event_dispatcher: Optional[EventDispatcher] = None,
        interval_seconds: float = 30.0,
    ):
        if interval_seconds <= 0:
            raise ValueError(f"interval_seconds must be positive, got: {interval_seconds}")
        self._session_factory = session_factory
        self._time_controller = time_controller
        self._catch_up = catch_up
        self._overdue_marker = overdue_marker or OverdueMarker()
        self._event_dispatcher = event_dispatcher
        self.interval_seconds = interval_seconds

        self._stop_event = threading.Event()
        self._tick_lock = threading.Lock()
        self._state_lock = threading.Lock()
        self._thread: Optional[threading.Thread] = None
        self._last_tick: Optional[TickResult] = None
        self._ticks_completed = 0

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    @property
    def last_tick(self) -> Optional[TickResult]:
        return self._last_tick

    def start(self) -> None:
        """Start the background loop; the first tick runs right away."""
        with self._state_lock:
            if self.is_running:
                logger.debug("scheduler_already_running")
                return
            self._stop_event.clear()
            self._thread = threading.Thread(target=self._run_loop, name="billing-scheduler", daemon=True)
            self._thread.start()
        logger.info("scheduler_started", interval_seconds=self.interval_seconds)

    def stop(self, timeout: Optional[float] = 10.0) -> None:
        """Stop the loop and wait for an in-flight tick to finish."""
        with self._state_lock:
            thread = self._thread
            self._stop_event.set()
            self._thread = None
        if thread is not None:
            thread.join(timeout=timeout)
            if thread.is_alive():
                logger.warning("scheduler_stop_timeout", timeout=timeout)
        logger.info("scheduler_stopped", ticks_completed=self._ticks_completed)

    def _run_loop(self) -> None:
        self.run_once()
        while not self._stop_event.wait(self.interval_seconds):
            self.run_once()

    def run_once(self) -> TickResult:
        """Run one tick synchronously.

        Returns a skipped result if a tick is already running. Never raises.
        """
        now = self._time_controller.now()
        if not self._tick_lock.acquire(blocking=False):
            logger.info("scheduler_tick_skipped", reason="tick_in_progress")
            return TickResult(started_at=now, skipped=True)

        try:
            with bound_context(tick_id=uuid.uuid4().hex[:12]):
                result = self._tick(now)
            with self._state_lock:
                self._last_tick = result
                self._ticks_completed += 1
            return result
        finally:
            self._tick_lock.release()

    def _tick(self, now) -> TickResult:
        started = time.perf_counter()
        try:
            with self._session_factory.begin() as session:
                overdue_marked = self._overdue_marker.mark(session, now)
                catch_up = self._catch_up.run(session, now)
        except Exception as e:
            duration_ms = (time.perf_counter() - started) * 1000
            logger.error(
                "scheduler_tick_failed",
                error=str(e),
                error_type=type(e).__name__,
                duration_ms=round(duration_ms, 2),
                exc_info=True,
            )
            return TickResult(started_at=now, failed=True, error=str(e), duration_ms=duration_ms)

        duration_ms = (time.perf_counter() - started) * 1000
        self._publish_events(overdue_marked, catch_up)

        result = TickResult(
            started_at=now,
            overdue_marked=overdue_marked,
            services_processed=catch_up.services_processed,
            cycles_advanced=catch_up.cycles_advanced,
            duplicates_skipped=catch_up.duplicates_skipped,
            invoices_created=len(catch_up.invoices),
            duration_ms=duration_ms,
        )
        logger.info(
            "scheduler_tick_completed",
            overdue_marked=result.overdue_marked,
            services_processed=result.services_processed,
            invoices_created=result.invoices_created,
            duplicates_skipped=result.duplicates_skipped,
            duration_ms=round(duration_ms, 2),
        )
        return result

    def _publish_events(self, overdue_marked: int, catch_up: CatchUpResult) -> None:
        if self._event_dispatcher is None:
            return
        self._event_dispatcher.publish_overdue(overdue_marked)
        for invoice in catch_up.invoices:
            self._event_dispatcher.publish_invoice_event(BillingNotificationType.INVOICE_CREATED, invoice)

    def status(self) -> SchedulerStatus:
        return SchedulerStatus(
            running=self.is_running,
            tick_in_progress=self._tick_lock.locked(),
            interval_seconds=self.interval_seconds,
            max_catch_up=self._catch_up.max_catch_up,
            dedup_window_minutes=self._catch_up.dedup_window_minutes,
            due_days=self._catch_up.due_days,
            batch_size=self._catch_up.batch_size,
            ticks_completed=self._ticks_completed,
            last_tick=self._last_tick,
        )
