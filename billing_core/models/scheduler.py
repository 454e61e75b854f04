"""Scheduler run results."""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field

from .invoice import InvoiceRecord


class CatchUpResult(BaseModel):
    """What one catch-up pass did."""

    services_processed: int = Field(default=0, description="Due services loaded in this pass")
    cycles_advanced: int = Field(default=0, description="Cursor advances across all services")
    duplicates_skipped: int = Field(default=0, description="Cycles that already had an invoice")
    invoices: list[InvoiceRecord] = Field(default_factory=list, description="Invoices created")


class TickResult(BaseModel):
    """Outcome of one scheduler tick."""

    started_at: datetime = Field(..., description="Virtual time the tick ran at")
    skipped: bool = Field(default=False, description="Another tick was already running")
    failed: bool = Field(default=False, description="Tick rolled back on error")
    error: Optional[str] = Field(None, description="Error message when failed")
    overdue_marked: int = Field(default=0, description="Invoices moved to overdue")
    services_processed: int = Field(default=0)
    cycles_advanced: int = Field(default=0)
    duplicates_skipped: int = Field(default=0)
    invoices_created: int = Field(default=0)
    duration_ms: float = Field(default=0.0)


class SchedulerStatus(BaseModel):
    """Scheduler state for the control API."""

    running: bool = Field(..., description="Background loop is alive")
    tick_in_progress: bool = Field(..., description="A tick is executing right now")
    interval_seconds: float
    max_catch_up: int
    dedup_window_minutes: int
    due_days: int
    batch_size: int
    ticks_completed: int = Field(default=0)
    last_tick: Optional[TickResult] = None
