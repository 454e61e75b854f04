"""Control API for test orchestration and operations.

Implements:
- POST /control/scheduler/run - Run one scheduler tick now
- GET /control/scheduler/status - Scheduler state and last tick
- POST /control/time/advance - Fast-forward virtual time (and tick)
- POST /control/services/{service_id}/cancel - Cancel a service
- GET /control/services/{service_id}/invoices - Invoices of a service
"""

from typing import List, Optional

from fastapi import APIRouter, Depends

from billing_core.api.deps import api_error, get_container
from billing_core.container import BillingContainer
from billing_core.errors import ServiceNotFoundError
from billing_core.logging_config import get_logger
from billing_core.models import (
    AdvanceTimeRequest,
    AdvanceTimeResponse,
    CancelServiceRequest,
    CancelServiceResponse,
    InvoiceRecord,
    SchedulerStatus,
    TickResult,
)

logger = get_logger(__name__)
router = APIRouter(tags=["Control API"], prefix="/control")


@router.post("/scheduler/run", response_model=TickResult, summary="Run scheduler tick")
def run_scheduler_tick(container: BillingContainer = Depends(get_container)) -> TickResult:
    """Run one tick synchronously. A tick already in progress yields skipped=true."""
    return container.scheduler.run_once()


@router.get("/scheduler/status", response_model=SchedulerStatus, summary="Scheduler status")
def scheduler_status(container: BillingContainer = Depends(get_container)) -> SchedulerStatus:
    return container.scheduler.status()


@router.post("/time/advance", response_model=AdvanceTimeResponse, summary="Advance virtual time")
def advance_time(
    request: AdvanceTimeRequest,
    container: BillingContainer = Depends(get_container),
) -> AdvanceTimeResponse:
    """Fast-forward the virtual clock, then optionally run a tick.

    Raises:
        400: Nothing to advance
    """
    days = request.days or 0
    hours = request.hours or 0
    minutes = request.minutes or 0
    if days == 0 and hours == 0 and minutes == 0:
        raise api_error(400, "InvalidRequest", "Specify at least one of days, hours, minutes")

    moved = container.time_controller.advance_time(days=days, hours=hours, minutes=minutes)
    tick: Optional[TickResult] = container.scheduler.run_once() if request.run_tick else None

    logger.info(
        "control_time_advanced",
        days=days,
        hours=hours,
        minutes=minutes,
        invoices_created=tick.invoices_created if tick else None,
    )
    return AdvanceTimeResponse(
        previous_time=moved["old_time"],
        current_time=moved["new_time"],
        tick=tick,
        message=f"Time advanced by {days}d {hours}h {minutes}m",
    )


@router.post("/services/{service_id}/cancel", response_model=CancelServiceResponse, summary="Cancel service")
def cancel_service(
    service_id: int,
    request: Optional[CancelServiceRequest] = None,
    container: BillingContainer = Depends(get_container),
) -> CancelServiceResponse:
    """Cancel a service so it is no longer billed.

    Raises:
        404: Service not found
    """
    reason = request.reason if request is not None else "user_requested"
    try:
        service = container.subscriptions.cancel_service(service_id, reason=reason)
    except ServiceNotFoundError as e:
        raise api_error(404, "ServiceNotFound", str(e))
    return CancelServiceResponse(service=service, message="Service canceled")


@router.get("/services/{service_id}/invoices", response_model=List[InvoiceRecord], summary="Service invoices")
def list_service_invoices(
    service_id: int,
    container: BillingContainer = Depends(get_container),
) -> List[InvoiceRecord]:
    """Raises 404 if the service does not exist."""
    try:
        container.subscriptions.get_service(service_id)
    except ServiceNotFoundError as e:
        raise api_error(404, "ServiceNotFound", str(e))
    return container.subscriptions.list_invoices(service_id)
