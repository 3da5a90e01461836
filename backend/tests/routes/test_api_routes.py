# backend/tests/routes/test_api_routes.py
"""
HTTP-level tests for the v1 routes.

Services are wired against the per-test SQLite session with a pinned
clock and a fake payment gateway.
"""

import pytest
from fastapi.testclient import TestClient

from bookflow.api.dependencies import (
    get_availability_service,
    get_db,
    get_reservation_service,
)
from bookflow.main import app
from bookflow.services.availability_service import AvailabilityService
from bookflow.services.pricing_service import PricingService
from bookflow.services.reservation_service import ReservationService
from tests.factories.builders import (
    MONDAY,
    SATURDAY,
    FakePaymentGateway,
    fixed_clock,
    make_activity,
    make_gift_card,
    make_promo,
)


@pytest.fixture
def gateway():
    return FakePaymentGateway()


@pytest.fixture
def client(db, bus, gateway):
    def _db():
        yield db

    app.dependency_overrides[get_db] = _db
    app.dependency_overrides[get_availability_service] = lambda: AvailabilityService(
        db, clock=lambda: fixed_clock().replace(tzinfo=None)
    )
    app.dependency_overrides[get_reservation_service] = lambda: ReservationService(
        db,
        pricing_service=PricingService(db, clock=fixed_clock),
        payment_gateway=gateway,
        bus=bus,
        clock=fixed_clock,
    )
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture
def activity(db):
    return make_activity(db)


def _reservation_payload(activity, **overrides):
    payload = {
        "activity_id": activity.id,
        "booking_date": MONDAY.isoformat(),
        "start_time": "10:00",
        "party_size": 2,
        "customer": {"email": "guest@example.com", "full_name": "Guest User"},
    }
    payload.update(overrides)
    return payload


class TestAvailabilityRoutes:
    def test_lists_slots(self, client, activity):
        response = client.get(
            f"/api/v1/activities/{activity.id}/availability", params={"date": MONDAY.isoformat()}
        )

        assert response.status_code == 200
        data = response.json()
        assert data["available_count"] == 8
        assert data["slots"][0]["start"] == "09:00"
        assert data["slots"][0]["display_time"] == "9:00 AM"

    def test_unknown_activity_is_404_problem(self, client):
        response = client.get(
            "/api/v1/activities/01HNOTAREALACTIVITY0000000/availability",
            params={"date": MONDAY.isoformat()},
        )

        assert response.status_code == 404
        assert response.headers["content-type"].startswith("application/problem+json")
        assert response.json()["code"] == "ACTIVITY_NOT_FOUND"

    def test_missing_date_is_422(self, client, activity):
        response = client.get(f"/api/v1/activities/{activity.id}/availability")

        assert response.status_code == 422
        assert response.json()["code"] == "validation_error"

    def test_next_available_date(self, client, activity):
        response = client.get(
            f"/api/v1/activities/{activity.id}/next-available-date",
            params={"from_date": SATURDAY.isoformat(), "max_days": 7},
        )

        assert response.status_code == 200
        assert response.json()["next_available_date"] == "2026-03-16"


class TestPricingRoutes:
    def test_promo_code_check(self, client, db):
        make_promo(db, "SAVE20", max_discount_cents=5000)

        response = client.post(
            "/api/v1/pricing/promo-code", json={"code": "save20", "subtotal_cents": 10000}
        )

        assert response.status_code == 200
        assert response.json()["discount_cents"] == 2000

    def test_invalid_promo_is_not_an_http_error(self, client):
        response = client.post(
            "/api/v1/pricing/promo-code", json={"code": "NOPE", "subtotal_cents": 10000}
        )

        assert response.status_code == 200
        assert response.json()["is_valid"] is False
        assert response.json()["error"] == "Invalid promo code"

    def test_gift_card_check(self, client, db):
        make_gift_card(
            db,
            "GC-HALF-2500",
            original_value_cents=5000,
            remaining_balance_cents=2500,
            status="partially_used",
        )

        response = client.post(
            "/api/v1/pricing/gift-card", json={"code": "GC-HALF-2500", "amount_owed_cents": 5000}
        )

        data = response.json()
        assert data["amount_applied_cents"] == 2500
        assert data["amount_owed_cents"] == 2500
        assert data["status"] == "partially_used"

    def test_quote_for_activity(self, client, db, activity):
        make_promo(db, "SAVE20", max_discount_cents=5000)
        make_gift_card(
            db, "GC-DEMO-5000", original_value_cents=5000, remaining_balance_cents=5000
        )

        response = client.post(
            "/api/v1/pricing/quote",
            json={
                "activity_id": activity.id,
                "party_size": 4,
                "promo_code": "SAVE20",
                "gift_card_code": "GC-DEMO-5000",
            },
        )

        assert response.status_code == 200
        assert response.json()["final_amount_cents"] == 3000


class TestReservationRoutes:
    def test_create_and_fetch(self, client, activity):
        created = client.post("/api/v1/reservations", json=_reservation_payload(activity))

        assert created.status_code == 201
        body = created.json()
        assert body["payment_client_secret"] == "pi_test_1_secret"

        fetched = client.get(f"/api/v1/reservations/{body['reservation_id']}")
        assert fetched.status_code == 200
        assert fetched.json()["start_time"] == "10:00"
        assert fetched.json()["end_time"] == "11:00"

    def test_double_booking_is_409(self, client, activity):
        client.post("/api/v1/reservations", json=_reservation_payload(activity))

        response = client.post(
            "/api/v1/reservations",
            json=_reservation_payload(
                activity, customer={"email": "other@example.com", "full_name": "Other"}
            ),
        )

        assert response.status_code == 409
        assert response.json()["code"] == "SLOT_UNAVAILABLE"

    def test_payment_failure_is_502_with_reservation_id(self, client, gateway, activity):
        gateway.fail = True

        response = client.post("/api/v1/reservations", json=_reservation_payload(activity))

        assert response.status_code == 502
        assert "reservation_id" in response.json()["errors"]

    def test_cancel_then_status_transition_rejected(self, client, activity):
        created = client.post("/api/v1/reservations", json=_reservation_payload(activity)).json()
        reservation_id = created["reservation_id"]

        canceled = client.post(
            f"/api/v1/reservations/{reservation_id}/cancel", json={"reason": "sick"}
        )
        confirm = client.patch(
            f"/api/v1/reservations/{reservation_id}/status", json={"status": "confirmed"}
        )

        assert canceled.status_code == 200
        assert canceled.json()["status"] == "canceled"
        assert confirm.status_code == 400
        assert confirm.json()["code"] == "INVALID_STATUS_TRANSITION"

    def test_bad_email_is_422(self, client, activity):
        response = client.post(
            "/api/v1/reservations",
            json=_reservation_payload(activity, customer={"email": "nope", "full_name": "X"}),
        )

        assert response.status_code == 422


class TestRealtimeAndOps:
    @pytest.mark.parametrize(
        "params", [{}, {"activity_id": "a", "venue_id": "v"}], ids=["neither", "both"]
    )
    def test_stream_requires_exactly_one_scope(self, client, params):
        response = client.get("/api/v1/realtime/availability", params=params)

        assert response.status_code == 400
        assert response.json()["code"] == "INVALID_SCOPE"

    def test_health(self, client):
        response = client.get("/api/v1/health")

        assert response.status_code == 200
        assert response.json()["database"] == "ok"

    def test_health_lite(self, client):
        assert client.get("/api/v1/health/lite").json() == {"status": "ok"}

    def test_metrics(self, client, activity):
        client.get(f"/api/v1/activities/{activity.id}/availability", params={"date": "2026-03-09"})

        response = client.get("/metrics")

        assert response.status_code == 200
        assert "bookflow_http_request_duration_seconds" in response.text
