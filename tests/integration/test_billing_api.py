"""HTTP-level tests for the billing and control APIs.

Each test gets a fresh application on an in-memory store with the
scheduler loop disabled and a frozen virtual clock.
"""

from datetime import datetime, timedelta
from decimal import Decimal

import pytest
from fastapi.testclient import TestClient

from billing_core.config import Config
from billing_core.main import create_app
from billing_core.models import BillingSettings, DatabaseSettings, SchedulerSettings
from billing_core.services.time_controller import TimeController
from tests.factories import (
    LIMITED_PRODUCT_ID,
    MONTHLY_PRODUCT_ID,
    NOW,
    ONE_TIME_PRODUCT_ID,
    TEST_CATALOG,
    add_credits,
)


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


@pytest.fixture
def session_factory_of(client):
    return client.app.state.container.session_factory


def purchase(client, user_id=7, product_id=MONTHLY_PRODUCT_ID):
    response = client.post("/billing/purchases", json={"user_id": user_id, "product_id": product_id})
    assert response.status_code == 201
    return response.json()["invoice"]


class TestHealthEndpoints:
    """Root and health endpoints."""

    def test_root(self, client):
        response = client.get("/")

        assert response.status_code == 200
        assert response.json()["service"] == "billing-core"

    def test_health_reports_virtual_time(self, client):
        response = client.get("/health")

        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "healthy"
        assert body["database"] == "ok"
        assert body["scheduler_running"] is False
        assert parse_time(body["current_time"]) == NOW

    def test_request_id_echoed(self, client):
        response = client.get("/health", headers={"X-Request-ID": "req-abc"})

        assert response.headers["X-Request-ID"] == "req-abc"
        assert client.get("/").headers["X-Request-ID"]


class TestPurchases:
    """POST /billing/purchases."""

    def test_purchase_creates_invoice(self, client):
        response = client.post("/billing/purchases", json={"user_id": 7, "product_id": MONTHLY_PRODUCT_ID})

        assert response.status_code == 201
        body = response.json()
        assert body["reused"] is False
        assert body["invoice"]["number"] == "INV-20260115-00001"
        assert body["invoice"]["status"] == "pending"
        assert Decimal(str(body["invoice"]["amount"])) == Decimal("9.99")
        assert body["invoice"]["due_at"] is None

    def test_repeated_purchase_reuses_invoice(self, client):
        first = purchase(client)

        response = client.post("/billing/purchases", json={"user_id": 7, "product_id": MONTHLY_PRODUCT_ID})

        assert response.json()["reused"] is True
        assert response.json()["invoice"]["id"] == first["id"]

    def test_unknown_product(self, client):
        response = client.post("/billing/purchases", json={"user_id": 7, "product_id": 404})

        assert response.status_code == 404
        assert response.json()["detail"]["error"] == "ProductNotFound"

    def test_invalid_body(self, client):
        response = client.post("/billing/purchases", json={"user_id": 0, "product_id": MONTHLY_PRODUCT_ID})
        assert response.status_code == 422


class TestCreditPayments:
    """POST /billing/invoices/{id}/pay/credits."""

    def test_pay_and_fulfill(self, client, session_factory_of):
        add_credits(session_factory_of, 7, Decimal("20.00"))
        invoice = purchase(client)

        response = client.post(f"/billing/invoices/{invoice['id']}/pay/credits", json={"user_id": 7})

        assert response.status_code == 200
        body = response.json()
        assert body["paid"] is True
        assert body["duplicate"] is False
        assert body["payment_method"] == "credits"
        service = body["fulfillment"]["service"]
        assert service["status"] == "active"
        assert parse_time(service["next_invoice_at"]) == NOW + timedelta(days=30)

    def test_second_payment_is_duplicate(self, client, session_factory_of):
        add_credits(session_factory_of, 7, Decimal("20.00"))
        invoice = purchase(client)
        client.post(f"/billing/invoices/{invoice['id']}/pay/credits", json={"user_id": 7})

        response = client.post(f"/billing/invoices/{invoice['id']}/pay/credits", json={"user_id": 7})

        assert response.status_code == 200
        assert response.json()["paid"] is False
        assert response.json()["duplicate"] is True

    def test_insufficient_balance(self, client):
        invoice = purchase(client)

        response = client.post(f"/billing/invoices/{invoice['id']}/pay/credits", json={"user_id": 7})

        assert response.status_code == 402
        assert response.json()["detail"]["error"] == "InsufficientBalance"

    def test_other_users_invoice(self, client, session_factory_of):
        add_credits(session_factory_of, 8, Decimal("20.00"))
        invoice = purchase(client)

        response = client.post(f"/billing/invoices/{invoice['id']}/pay/credits", json={"user_id": 8})

        assert response.status_code == 404
        assert response.json()["detail"]["error"] == "InvoiceNotFound"

    def test_sold_out_product(self, client, session_factory_of):
        """The last unit goes to the first payer; the second is refused."""
        add_credits(session_factory_of, 7, Decimal("10.00"))
        add_credits(session_factory_of, 8, Decimal("10.00"))
        first = purchase(client, 7, LIMITED_PRODUCT_ID)
        second = purchase(client, 8, LIMITED_PRODUCT_ID)

        assert client.post(f"/billing/invoices/{first['id']}/pay/credits", json={"user_id": 7}).status_code == 200
        response = client.post(f"/billing/invoices/{second['id']}/pay/credits", json={"user_id": 8})

        assert response.status_code == 409
        assert response.json()["detail"]["error"] == "OutOfStock"


class TestGatewayChannels:
    """Capture and webhook settlement."""

    def test_capture(self, client):
        invoice = purchase(client)

        response = client.post(
            f"/billing/invoices/{invoice['id']}/capture",
            params={"user_id": 7},
            json={"status": "COMPLETED", "amount": "9.99", "currency": "USD", "external_id": "ORDER-1"},
        )

        assert response.status_code == 200
        assert response.json()["paid"] is True
        assert response.json()["payment_method"] == "paypal"

    def test_capture_not_completed(self, client):
        invoice = purchase(client)

        response = client.post(
            f"/billing/invoices/{invoice['id']}/capture", params={"user_id": 7}, json={"status": "DECLINED"}
        )

        assert response.status_code == 400
        assert response.json()["detail"]["error"] == "PaymentRejected"

    def test_capture_requires_user(self, client):
        invoice = purchase(client)

        response = client.post(f"/billing/invoices/{invoice['id']}/capture", json={"status": "COMPLETED"})

        assert response.status_code == 422

    def test_webhook_after_capture_is_duplicate(self, client):
        invoice = purchase(client)
        client.post(
            f"/billing/invoices/{invoice['id']}/capture", params={"user_id": 7}, json={"status": "COMPLETED"}
        )

        response = client.post(
            "/billing/webhooks/gateway",
            json={"event_type": "checkout.session.completed", "invoice_id": invoice["id"]},
        )

        assert response.status_code == 200
        assert response.json() == {"received": True, "applied": True, "paid": False, "duplicate": True}

    def test_webhook_pays_invoice(self, client):
        invoice = purchase(client)

        response = client.post(
            "/billing/webhooks/gateway",
            json={"event_type": "paypal.ipn", "invoice_id": invoice["id"], "payment_status": "Completed"},
        )

        assert response.json() == {"received": True, "applied": True, "paid": True, "duplicate": False}

    @pytest.mark.parametrize(
        "payload",
        [
            {"event_type": "customer.created", "invoice_id": 1},
            {"event_type": "checkout.session.completed", "invoice_id": 1, "payment_status": "unpaid"},
            {"event_type": "checkout.session.completed"},
            {"event_type": "checkout.session.completed", "invoice_id": 999},
        ],
    )
    def test_webhook_always_acknowledged(self, client, payload):
        response = client.post("/billing/webhooks/gateway", json=payload)

        assert response.status_code == 200
        assert response.json() == {"received": True, "applied": False}


class TestConfirm:
    """GET /billing/invoices/{id}/confirm."""

    def test_unpaid_is_pending(self, client):
        invoice = purchase(client)

        response = client.get(f"/billing/invoices/{invoice['id']}/confirm", params={"user_id": 7})

        assert response.status_code == 200
        assert response.json()["pending"] is True
        assert response.json()["service"] is None

    def test_confirm_after_payment_is_stable(self, client):
        invoice = purchase(client, product_id=ONE_TIME_PRODUCT_ID)
        client.post(
            f"/billing/invoices/{invoice['id']}/capture", params={"user_id": 7}, json={"status": "COMPLETED"}
        )

        first = client.get(f"/billing/invoices/{invoice['id']}/confirm", params={"user_id": 7}).json()
        second = client.get(f"/billing/invoices/{invoice['id']}/confirm", params={"user_id": 7}).json()

        assert first["pending"] is False
        assert first["service"]["period_minutes"] == 0
        assert second["service"] == first["service"]
        assert second["service_created"] is False

    def test_unknown_invoice(self, client):
        response = client.get("/billing/invoices/999/confirm", params={"user_id": 7})

        assert response.status_code == 404


class TestControlApi:
    """Scheduler, time and service controls."""

    def test_scheduler_run_and_status(self, client):
        run = client.post("/control/scheduler/run")

        assert run.status_code == 200
        assert run.json()["skipped"] is False
        assert run.json()["invoices_created"] == 0

        status = client.get("/control/scheduler/status").json()
        assert status["running"] is False
        assert status["ticks_completed"] == 1
        assert status["max_catch_up"] == 3
        assert status["last_tick"]["failed"] is False

    def test_advance_time(self, client):
        response = client.post("/control/time/advance", json={"days": 2, "hours": 3, "run_tick": False})

        assert response.status_code == 200
        body = response.json()
        assert parse_time(body["previous_time"]) == NOW
        assert parse_time(body["current_time"]) == NOW + timedelta(days=2, hours=3)
        assert body["tick"] is None

    def test_advance_nothing_rejected(self, client):
        response = client.post("/control/time/advance", json={"days": 0})

        assert response.status_code == 400
        assert response.json()["detail"]["error"] == "InvalidRequest"

    def test_advance_negative_rejected(self, client):
        response = client.post("/control/time/advance", json={"days": -1})
        assert response.status_code == 422

    def test_cancel_unknown_service(self, client):
        response = client.post("/control/services/999/cancel", json={"reason": "test"})

        assert response.status_code == 404
        assert response.json()["detail"]["error"] == "ServiceNotFound"

    def test_invoices_of_unknown_service(self, client):
        assert client.get("/control/services/999/invoices").status_code == 404
