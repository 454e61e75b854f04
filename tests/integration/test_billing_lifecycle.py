"""End-to-end billing lifecycle through the HTTP API.

Flow: purchase -> pay -> time advances -> scheduler bills the next cycle ->
pay -> renew, then overdue -> cancel -> late payment reactivates.
"""

from datetime import datetime, timedelta
from decimal import Decimal

import pytest
from fastapi.testclient import TestClient

from billing_core.config import Config
from billing_core.main import create_app
from billing_core.models import BillingSettings, DatabaseSettings, SchedulerSettings
from billing_core.services.time_controller import TimeController
from tests.factories import MONTHLY_PRODUCT_ID, NOW, TEN_MINUTE_PRODUCT_ID, TEST_CATALOG, add_credits

MONTH = timedelta(days=30)


def parse_time(value: str) -> datetime:
    return datetime.fromisoformat(value.replace("Z", "+00:00"))


@pytest.fixture
def client():
    settings = BillingSettings(
        database=DatabaseSettings(url="sqlite://"),
        scheduler=SchedulerSettings(enabled=False),
        catalog=TEST_CATALOG,
    )
    app = create_app(Config.from_settings(settings), TimeController(frozen_at=NOW))
    with TestClient(app) as test_client:
        yield test_client


def advance(client, **kwargs) -> dict:
    response = client.post("/control/time/advance", json=kwargs)
    assert response.status_code == 200
    return response.json()["tick"]


def service_invoices(client, service_id: int) -> list:
    response = client.get(f"/control/services/{service_id}/invoices")
    assert response.status_code == 200
    return sorted(response.json(), key=lambda invoice: invoice["id"])


class TestMonthlyLifecycle:
    """A monthly subscription paid from credits."""

    def test_full_lifecycle(self, client):
        add_credits(client.app.state.container.session_factory, 7, Decimal("20.00"))

        # Direct purchase and first payment
        invoice = client.post("/billing/purchases", json={"user_id": 7, "product_id": MONTHLY_PRODUCT_ID}).json()[
            "invoice"
        ]
        paid = client.post(f"/billing/invoices/{invoice['id']}/pay/credits", json={"user_id": 7}).json()
        service = paid["fulfillment"]["service"]
        service_id = service["id"]
        assert paid["fulfillment"]["service_created"] is True
        assert parse_time(service["next_invoice_at"]) == NOW + MONTH

        # Nothing due before the cycle ends
        tick = advance(client, days=29)
        assert tick["invoices_created"] == 0

        # One month later the scheduler bills the next cycle
        tick = advance(client, days=1)
        assert tick["invoices_created"] == 1
        invoices = service_invoices(client, service_id)
        assert len(invoices) == 2
        renewal = invoices[1]
        assert renewal["status"] == "pending"
        assert renewal["number"] == "INV-20260214-00001"
        assert parse_time(renewal["cycle_end_at"]) == NOW + 2 * MONTH
        assert parse_time(renewal["due_at"]) == NOW + MONTH + timedelta(days=3)

        # A second tick at the same instant bills nothing
        assert client.post("/control/scheduler/run").json()["invoices_created"] == 0

        # Paying the renewal keeps the service on the billed cursor
        renewed = client.post(f"/billing/invoices/{renewal['id']}/pay/credits", json={"user_id": 7}).json()
        assert renewed["paid"] is True
        assert renewed["fulfillment"]["service_created"] is False
        assert parse_time(renewed["fulfillment"]["service"]["next_invoice_at"]) == NOW + 2 * MONTH

        # Next cycle: the balance no longer covers it
        tick = advance(client, days=30)
        assert tick["invoices_created"] == 1
        third = service_invoices(client, service_id)[2]
        response = client.post(f"/billing/invoices/{third['id']}/pay/credits", json={"user_id": 7})
        assert response.status_code == 402

        # Past the due date the invoice goes overdue
        tick = advance(client, days=4)
        assert tick["overdue_marked"] == 1
        assert service_invoices(client, service_id)[2]["status"] == "overdue"

        # Cancellation stops billing
        canceled = client.post(f"/control/services/{service_id}/cancel", json={"reason": "user_requested"})
        assert canceled.json()["service"]["status"] == "canceled"
        tick = advance(client, days=30)
        assert tick["invoices_created"] == 0

        # Paying the overdue invoice through the gateway reactivates the service
        webhook = client.post(
            "/billing/webhooks/gateway",
            json={"event_type": "checkout.session.completed", "invoice_id": third["id"], "external_id": "cs_1"},
        )
        assert webhook.json()["paid"] is True
        confirm = client.get(f"/billing/invoices/{third['id']}/confirm", params={"user_id": 7}).json()
        assert confirm["service"]["status"] == "active"
        assert confirm["service"]["canceled_at"] is None
        assert confirm["invoice"]["payment_method"] == "stripe"

        # The reactivated service bills the cycle it missed
        tick = client.post("/control/scheduler/run").json()
        assert tick["invoices_created"] == 1
        latest = service_invoices(client, service_id)[-1]
        assert parse_time(latest["cycle_end_at"]) == NOW + 4 * MONTH
        assert len(service_invoices(client, service_id)) == 4


class TestCatchUpThroughApi:
    """Short-period services catch up over several ticks."""

    def test_backlog_bounded_per_tick(self, client):
        invoice = client.post(
            "/billing/purchases", json={"user_id": 9, "product_id": TEN_MINUTE_PRODUCT_ID}
        ).json()["invoice"]
        paid = client.post(
            f"/billing/invoices/{invoice['id']}/capture",
            params={"user_id": 9},
            json={"status": "COMPLETED", "amount": "1.50", "currency": "MXN"},
        ).json()
        service_id = paid["fulfillment"]["service"]["id"]

        tick = advance(client, hours=1)
        assert tick["invoices_created"] == 3
        assert tick["cycles_advanced"] == 3

        tick = client.post("/control/scheduler/run").json()
        assert tick["invoices_created"] == 3

        invoices = service_invoices(client, service_id)
        assert len(invoices) == 7
        cycle_ends = [parse_time(i["cycle_end_at"]) for i in invoices[1:]]
        assert cycle_ends == [NOW + timedelta(minutes=10 * n) for n in range(2, 8)]
        assert all(i["currency"] == "MXN" for i in invoices)
