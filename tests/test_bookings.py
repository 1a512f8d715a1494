from datetime import date
from decimal import Decimal

import pytest

from app.errors import AppError, PersistenceError, ProcessorError
from app.extensions import db
from app.models import Booking, Notification, RentTransaction
from app.services import BookingService, InvoiceService
from app.services import booking_service
from app.timeline import TimelineEntry
from conftest import make_customer, make_room


def booking_payload(customer, room, **overrides):
    payload = {
        "customer_id": customer.id,
        "room_id": room.id,
        "start_date": "2024-01-15",
        "months": 12,
        "rent_price": "1000",
        "deposit_type": "months",
        "deposit_months": 2,
        "rent_calculation": "full",
        "payment_collection_method": "manual",
    }
    payload.update(overrides)
    return payload


def test_create_manual_booking(client, operator):
    customer, room = make_customer(), make_room()

    response = client.post("/api/v1/bookings", json=booking_payload(customer, room))

    assert response.status_code == 201
    body = response.get_json()
    assert body["warnings"] == []
    assert body["invoice_scheduling"] is None
    booking = body["booking"]
    assert booking["status"] == "active"
    assert booking["end_date"] == "2025-01-15"
    assert booking["deposit_amount"] == "2000.00"
    transactions = booking["rent_transactions"]
    assert len(transactions) == 14
    assert {t["status"] for t in transactions} == {"pending"}
    assert [t["type"] for t in transactions[:2]] == ["deposit", "rent"]
    assert Notification.query.filter_by(user_id=operator.id, booking_id=booking["id"]).count() == 1


def test_create_automatic_booking_schedules_due_invoices(client, gateway):
    customer, room = make_customer(), make_room()
    today = date.today().isoformat()

    response = client.post(
        "/api/v1/bookings",
        json=booking_payload(customer, room, start_date=today, payment_collection_method="automatic"),
    )

    assert response.status_code == 201
    body = response.get_json()
    assert body["warnings"] == []
    results = body["invoice_scheduling"]["results"]
    assert [r["status"] for r in results] == ["processed_invoice_created", "processed_invoice_created"]
    assert len(gateway.calls_to("create_invoice")) == 2
    statuses = {t["status"] for t in body["booking"]["rent_transactions"]}
    assert statuses == {"scheduled"}


def test_invoice_scheduling_failure_becomes_warning(client, monkeypatch):
    customer, room = make_customer(), make_room()

    def unavailable(booking_id, as_of=None):
        raise ProcessorError("Stripe error: API unavailable")

    monkeypatch.setattr(InvoiceService, "schedule_invoices", staticmethod(unavailable))

    response = client.post(
        "/api/v1/bookings", json=booking_payload(customer, room, payment_collection_method="automatic")
    )

    assert response.status_code == 201
    [warning] = response.get_json()["warnings"]
    assert "failed to trigger invoice scheduling: Stripe error: API unavailable" in warning
    assert Booking.query.count() == 1


def test_failed_transaction_insert_keeps_booking(app, operator, monkeypatch):
    customer, room = make_customer(), make_room()

    def broken_timeline(*args, **kwargs):
        return [TimelineEntry(date(2024, 1, 15), "rent", Decimal("0.00"), "Broken rent")]

    monkeypatch.setattr(booking_service, "build_payment_timeline", broken_timeline)

    with pytest.raises(PersistenceError) as info:
        BookingService.create_booking(operator.id, booking_payload(customer, room))

    booking_id = info.value.payload["booking_id"]
    assert f"Booking created (ID: {booking_id})" in info.value.message
    assert db.session.get(Booking, booking_id) is not None
    assert RentTransaction.query.count() == 0


def test_custom_deposit_and_natural_rent(app, operator):
    customer, room = make_customer(), make_room()
    payload = booking_payload(
        customer,
        room,
        end_date="2024-06-01",
        deposit_type="custom",
        deposit_amount="1500",
        rent_calculation="natural",
    )
    del payload["months"]

    booking = BookingService.create_booking(operator.id, payload)["booking"]

    assert booking.deposit_amount == Decimal("1500.00")
    assert booking.deposit_months == Decimal("1.50")
    amounts = [t.amount for t in booking.transactions]
    assert amounts[:2] == [Decimal("1500.00"), Decimal("548.39")]


@pytest.mark.parametrize(
    "overrides, message",
    [
        ({"months": 2}, "The contract duration must be at least 3 months."),
        ({"rent_price": "0"}, "Rent price must be positive."),
        ({"rent_calculation": "weekly"}, "Rent calculation must be 'full' or 'natural'."),
        ({"payment_collection_method": "cash"}, "Payment collection method must be 'automatic' or 'manual'."),
        ({"start_date": "15/01/2024"}, "Invalid start date. Use YYYY-MM-DD."),
        ({"customer_id": "abc"}, "Missing or invalid customer_id."),
        ({"months": 25}, "The contract duration cannot exceed 24 months."),
        ({"rent_price": "0.001"}, "Rent price must be at least 0.01."),
        (
            {"rent_price": "0.10", "start_date": "2024-01-31", "rent_calculation": "natural"},
            "The first month's rent rounds to zero. Use a higher rent or the full rent calculation.",
        ),
    ],
)
def test_create_booking_validation(app, operator, overrides, message):
    customer, room = make_customer(), make_room()
    with pytest.raises(AppError) as info:
        BookingService.create_booking(operator.id, booking_payload(customer, room, **overrides))
    assert info.value.status_code == 400
    assert info.value.message == message
    assert Booking.query.count() == 0


def test_create_booking_unknown_room(client):
    customer = make_customer()
    response = client.post("/api/v1/bookings", json={"customer_id": customer.id, "room_id": 404})
    assert response.status_code == 404


def test_preview_timeline_writes_nothing(client):
    response = client.post(
        "/api/v1/bookings/preview-timeline",
        json={"start_date": "2024-01-15", "months": 3, "rent_price": "900", "deposit_months": 1},
    )

    assert response.status_code == 200
    body = response.get_json()
    assert body["end_date"] == "2024-04-15"
    assert body["notice_end_date"] == "2024-05-15"
    assert [e["due_date"] for e in body["entries"]] == [
        "2024-01-15",
        "2024-01-15",
        "2024-02-01",
        "2024-03-01",
        "2024-04-01",
    ]
    assert body["total"] == "4500.00"
    assert Booking.query.count() == 0


def test_booking_detail(client, operator):
    customer, room = make_customer(), make_room()
    created = BookingService.create_booking(operator.id, booking_payload(customer, room))["booking"]

    response = client.get(f"/api/v1/bookings/{created.id}")

    assert response.status_code == 200
    assert response.get_json()["customer"]["name"] == "Lena Fischer"
    assert client.get("/api/v1/bookings/999").status_code == 404


def test_longest_allowed_contract(client):
    response = client.post(
        "/api/v1/bookings/preview-timeline",
        json={"start_date": "2024-01-31", "months": 24, "rent_price": "900", "deposit_months": 0},
    )

    assert response.status_code == 200
    assert response.get_json()["end_date"] == "2026-01-31"
