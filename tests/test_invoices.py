from datetime import date

from app.errors import ProcessorError
from app.models import RentTransaction
from app.services import InvoiceService, PlatformService
from conftest import make_booking, make_customer, make_transaction, reload


def test_schedule_due_transactions_only(app, gateway):
    booking = make_booking()
    due = make_transaction(booking, due_date=date(2024, 2, 1), amount="1000.00")
    later = make_transaction(booking, due_date=date(2024, 3, 1))

    result = InvoiceService.schedule_invoices(booking.id, as_of=date(2024, 2, 1))

    assert result["message"] == "Invoice scheduling process completed."
    assert result["results"] == [{"transaction_id": due.id, "status": "processed_invoice_created"}]
    [invoice] = gateway.calls_to("create_invoice")
    assert invoice["metadata"]["rent_transaction_id"] == str(due.id)
    assert invoice["idempotency_key"] == f"rent-transaction-{due.id}-invoice"
    [item] = gateway.calls_to("create_invoice_item")
    assert item["amount"] == 100000
    assert item["invoice_id"].startswith("in_test_")
    assert reload(RentTransaction, due.id).stripe_invoice_id == item["invoice_id"]
    assert reload(RentTransaction, later.id).stripe_invoice_id is None


def test_lead_days_setting_widens_window(app, gateway):
    booking = make_booking()
    make_transaction(booking, due_date=date(2024, 3, 1))
    PlatformService.set_setting("invoice_lead_days", 7)

    result = InvoiceService.schedule_invoices(booking.id, as_of=date(2024, 2, 25))

    assert [r["status"] for r in result["results"]] == ["processed_invoice_created"]


def test_already_invoiced_transactions_are_skipped(app, gateway):
    booking = make_booking()
    transaction = make_transaction(booking, due_date=date(2024, 2, 1))
    InvoiceService.schedule_invoices(booking.id, as_of=date(2024, 2, 1))

    result = InvoiceService.schedule_invoices(booking.id, as_of=date(2024, 2, 1))

    assert result["results"] == []
    assert "already processed" in result["message"]
    assert len(gateway.calls_to("create_invoice")) == 1
    assert reload(RentTransaction, transaction.id).stripe_invoice_id is not None


def test_inactive_mandate_and_missing_details(app, gateway):
    inactive = make_booking(customer=make_customer(mandate_status="inactive"))
    make_transaction(inactive, due_date=date(2024, 2, 1))
    missing = make_booking(customer=make_customer(with_stripe=False, email="no-stripe@example.com"))
    make_transaction(missing, due_date=date(2024, 2, 1))

    inactive_result = InvoiceService.schedule_invoices(inactive.id, as_of=date(2024, 2, 1))
    missing_result = InvoiceService.schedule_invoices(missing.id, as_of=date(2024, 2, 1))

    assert inactive_result["results"][0]["status"] == "skipped_inactive_mandate"
    assert missing_result["results"][0]["status"] == "skipped_missing_stripe_details"
    assert gateway.calls_to("create_invoice") == []


def test_stripe_error_is_reported_per_transaction(app, gateway):
    booking = make_booking()
    transaction = make_transaction(booking, due_date=date(2024, 2, 1))
    gateway.failures["create_invoice"] = ProcessorError("Stripe error: No such customer")

    result = InvoiceService.schedule_invoices(booking.id, as_of=date(2024, 2, 1))

    assert result["results"] == [
        {"transaction_id": transaction.id, "status": "error_stripe", "reason": "Stripe error: No such customer"}
    ]


def test_manual_booking_is_not_invoiced(client, gateway):
    booking = make_booking(payment_collection_method="manual")
    make_transaction(booking, status="pending", due_date=date(2024, 2, 1))

    response = client.post("/api/v1/functions/schedule-stripe-invoices", json={"booking_id": booking.id})

    assert response.status_code == 200
    assert response.get_json()["results"] == []
    assert gateway.calls == []


def test_schedule_all_due(app, gateway):
    first = make_booking()
    make_transaction(first, due_date=date(2024, 2, 1))
    second = make_booking(customer=first.customer, room=first.room, status="ended")
    make_transaction(second, due_date=date(2024, 2, 1))

    summary = InvoiceService.schedule_all_due(as_of=date(2024, 2, 1))

    assert list(summary) == [first.id]


def test_schedule_invoices_command(app, gateway):
    booking = make_booking()
    make_transaction(booking, due_date=date(2024, 2, 1))

    result = app.test_cli_runner().invoke(args=["schedule-invoices", "--as-of", "2024-02-01"])

    assert result.exit_code == 0
    assert "processed_invoice_created" in result.output
    assert "1 bookings processed." in result.output
