"""Tests for BillingScheduler ticks, reentrancy, failure handling, and the background loop."""

import time
from datetime import timedelta
from decimal import Decimal
from unittest.mock import MagicMock

import pytest

from billing_core.models import BillingNotificationType, InvoiceStatus
from billing_core.repositories.invoice_store import InvoiceStore
from billing_core.services.scheduler import BillingScheduler
from tests.factories import MONTHLY_PRODUCT_ID, NOW, TEN_MINUTE_PRODUCT_ID, add_invoice, add_service


@pytest.fixture
def scheduler(session_factory, clock, catch_up):
    return BillingScheduler(session_factory, clock, catch_up, interval_seconds=0.05)


def wait_for(condition, timeout=5.0):
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if condition():
            return True
        time.sleep(0.01)
    return False


class TestRunOnce:
    """Test a single synchronous tick."""

    def test_tick_generates_and_marks(self, session_factory, scheduler):
        add_service(session_factory, 7, TEN_MINUTE_PRODUCT_ID, NOW - timedelta(minutes=35), 10)
        overdue = add_invoice(session_factory, 8, MONTHLY_PRODUCT_ID, Decimal("9.99"), due_at=NOW - timedelta(days=1))

        result = scheduler.run_once()

        assert result.skipped is False
        assert result.failed is False
        assert result.started_at == NOW
        assert result.overdue_marked == 1
        assert result.services_processed == 1
        assert result.invoices_created == 3
        assert result.cycles_advanced == 3
        with session_factory() as session:
            assert InvoiceStore(session).get(overdue.id).status == InvoiceStatus.OVERDUE

    def test_tick_uses_virtual_time(self, session_factory, scheduler, clock):
        add_service(session_factory, 7, MONTHLY_PRODUCT_ID, NOW + timedelta(days=30), 43200)

        assert scheduler.run_once().invoices_created == 0
        clock.advance_time(days=30)
        assert scheduler.run_once().invoices_created == 1

    def test_generated_invoices_not_overdue_in_same_tick(self, session_factory, scheduler):
        add_service(session_factory, 7, TEN_MINUTE_PRODUCT_ID, NOW, 10)

        result = scheduler.run_once()

        assert result.invoices_created == 1
        assert result.overdue_marked == 0

    def test_status_tracks_last_tick(self, scheduler):
        assert scheduler.last_tick is None

        result = scheduler.run_once()
        status = scheduler.status()

        assert status.ticks_completed == 1
        assert status.last_tick == result
        assert status.running is False
        assert status.tick_in_progress is False
        assert status.max_catch_up == 3
        assert status.dedup_window_minutes == 10


class TestReentrancy:
    """A tick that fires while another runs is skipped, not queued."""

    def test_skipped_while_tick_in_progress(self, session_factory, scheduler):
        add_service(session_factory, 7, TEN_MINUTE_PRODUCT_ID, NOW, 10)

        scheduler._tick_lock.acquire()
        try:
            assert scheduler.status().tick_in_progress is True
            result = scheduler.run_once()
        finally:
            scheduler._tick_lock.release()

        assert result.skipped is True
        assert result.invoices_created == 0
        assert scheduler.status().ticks_completed == 0
        assert scheduler.run_once().invoices_created == 1


class TestFailures:
    """A failing tick rolls back and reports."""

    def test_failure_rolls_back_whole_tick(self, session_factory, clock, catch_up):
        overdue = add_invoice(session_factory, 8, MONTHLY_PRODUCT_ID, Decimal("9.99"), due_at=NOW - timedelta(days=1))
        broken_catch_up = MagicMock()
        broken_catch_up.run.side_effect = RuntimeError("catch-up exploded")
        scheduler = BillingScheduler(session_factory, clock, broken_catch_up)

        result = scheduler.run_once()

        assert result.failed is True
        assert "catch-up exploded" in result.error
        with session_factory() as session:
            assert InvoiceStore(session).get(overdue.id).status == InvoiceStatus.PENDING

    def test_next_tick_after_failure_runs(self, session_factory, clock, catch_up):
        add_service(session_factory, 7, TEN_MINUTE_PRODUCT_ID, NOW, 10)
        calls = []

        def run(session, now):
            calls.append(now)
            if len(calls) == 1:
                raise RuntimeError("transient")
            return catch_up.run(session, now)

        flaky = MagicMock()
        flaky.run.side_effect = run
        scheduler = BillingScheduler(session_factory, clock, flaky)

        assert scheduler.run_once().failed is True
        assert scheduler.run_once().invoices_created == 1

    def test_interval_must_be_positive(self, session_factory, clock, catch_up):
        with pytest.raises(ValueError, match="interval_seconds"):
            BillingScheduler(session_factory, clock, catch_up, interval_seconds=0)


class TestEvents:
    """Events are published after the tick commits."""

    def test_publishes_created_and_overdue(self, session_factory, clock, catch_up):
        add_service(session_factory, 7, TEN_MINUTE_PRODUCT_ID, NOW, 10)
        add_invoice(session_factory, 8, MONTHLY_PRODUCT_ID, Decimal("9.99"), due_at=NOW - timedelta(days=1))
        dispatcher = MagicMock()
        scheduler = BillingScheduler(session_factory, clock, catch_up, event_dispatcher=dispatcher)

        scheduler.run_once()

        dispatcher.publish_overdue.assert_called_once_with(1)
        dispatcher.publish_invoice_event.assert_called_once()
        assert dispatcher.publish_invoice_event.call_args.args[0] == BillingNotificationType.INVOICE_CREATED

    def test_nothing_published_on_failure(self, session_factory, clock):
        dispatcher = MagicMock()
        broken_catch_up = MagicMock()
        broken_catch_up.run.side_effect = RuntimeError("boom")
        scheduler = BillingScheduler(session_factory, clock, broken_catch_up, event_dispatcher=dispatcher)

        scheduler.run_once()

        dispatcher.publish_overdue.assert_not_called()
        dispatcher.publish_invoice_event.assert_not_called()


class TestBackgroundLoop:
    """Test start/stop of the background thread."""

    def test_start_runs_first_tick_immediately(self, scheduler):
        scheduler.start()
        try:
            assert scheduler.is_running
            assert wait_for(lambda: scheduler.status().ticks_completed >= 1)
        finally:
            scheduler.stop()

        assert not scheduler.is_running

    def test_start_twice_keeps_one_thread(self, scheduler):
        scheduler.start()
        try:
            thread = scheduler._thread
            scheduler.start()
            assert scheduler._thread is thread
        finally:
            scheduler.stop()

    def test_stop_without_start(self, scheduler):
        scheduler.stop()
        assert not scheduler.is_running
