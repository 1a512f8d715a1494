from datetime import date
from decimal import Decimal, InvalidOperation

from flask import current_app
from sqlalchemy.exc import SQLAlchemyError

from app import lifecycle
from app.errors import AppError, Conflict, NotFound, PersistenceError
from app.extensions import db
from app.lifecycle import TransitionRejected, next_booking_status
from app.models import Booking, Customer, RentTransaction, Room
from app.services.invoice_service import InvoiceService
from app.services.notification_service import NotificationService
from app.services.transaction_service import TransactionService
from app.timeline import (
    RENT_CALCULATIONS,
    add_months,
    build_payment_timeline,
    first_month_rent,
    months_between,
    timeline_total,
    to_money,
)

COLLECTION_METHODS = {"automatic", "manual"}
DEPOSIT_TYPES = {"months", "custom"}


def _parse_date(raw, label):
    if isinstance(raw, date):
        return raw
    try:
        return date.fromisoformat(str(raw or "")[:10])
    except ValueError as exc:
        raise AppError(f"Invalid {label}. Use YYYY-MM-DD.", 400) from exc


def _parse_id(raw, label):
    try:
        return int(raw)
    except (TypeError, ValueError) as exc:
        raise AppError(f"Missing or invalid {label}.", 400) from exc


def _parse_decimal(raw, label, allow_zero=False):
    try:
        value = Decimal(str(raw))
    except (InvalidOperation, ValueError) as exc:
        raise AppError(f"{label} must be a number.", 400) from exc
    if value < 0 or (value == 0 and not allow_zero):
        raise AppError(f"{label} must be {'zero or ' if allow_zero else ''}positive.", 400)
    return value


class BookingService:
    @staticmethod
    def parse_terms(payload):
        """Validate booking terms shared by creation and timeline preview."""
        start_date = _parse_date(payload.get("start_date"), "start date")
        if payload.get("end_date"):
            end_date = _parse_date(payload.get("end_date"), "end date")
        else:
            try:
                months = int(payload.get("months") or 0)
            except (TypeError, ValueError) as exc:
                raise AppError("Months must be an integer.", 400) from exc
            end_date = add_months(start_date, months)

        minimum = current_app.config["MIN_BOOKING_MONTHS"]
        if end_date <= start_date or months_between(start_date, end_date) < minimum:
            raise AppError(f"The contract duration must be at least {minimum} months.", 400)
        maximum = current_app.config["MAX_BOOKING_MONTHS"]
        if end_date > add_months(start_date, maximum):
            raise AppError(f"The contract duration cannot exceed {maximum} months.", 400)

        rent_price = _parse_decimal(payload.get("rent_price"), "Rent price")
        if to_money(rent_price) <= 0:
            raise AppError("Rent price must be at least 0.01.", 400)

        deposit_type = (payload.get("deposit_type") or "months").lower()
        if deposit_type not in DEPOSIT_TYPES:
            raise AppError("Invalid deposit type.", 400)
        if deposit_type == "months":
            deposit_months = _parse_decimal(payload.get("deposit_months", 2), "Deposit months", allow_zero=True)
            deposit_amount = (rent_price * deposit_months).quantize(Decimal("0.01"))
        else:
            deposit_amount = _parse_decimal(payload.get("deposit_amount"), "Deposit amount", allow_zero=True)
            deposit_months = (deposit_amount / rent_price).quantize(Decimal("0.01"))

        rent_calculation = (payload.get("rent_calculation") or "full").lower()
        if rent_calculation not in RENT_CALCULATIONS:
            raise AppError("Rent calculation must be 'full' or 'natural'.", 400)
        if first_month_rent(start_date, rent_price, rent_calculation) <= 0:
            raise AppError("The first month's rent rounds to zero. Use a higher rent or the full rent calculation.", 400)

        method = (payload.get("payment_collection_method") or "automatic").lower()
        if method not in COLLECTION_METHODS:
            raise AppError("Payment collection method must be 'automatic' or 'manual'.", 400)

        try:
            notice_months = int(payload.get("notice_period_months", 1))
            if notice_months < 0:
                raise ValueError
        except (TypeError, ValueError) as exc:
            raise AppError("Notice period must be a non-negative integer.", 400) from exc

        return {
            "start_date": start_date,
            "end_date": end_date,
            "rent_price": rent_price,
            "deposit_months": deposit_months,
            "deposit_amount": deposit_amount,
            "rent_calculation": rent_calculation,
            "payment_collection_method": method,
            "notice_period_months": notice_months,
        }

    @staticmethod
    def timeline_for(terms):
        deposit_months = terms["deposit_months"]
        if deposit_months == deposit_months.to_integral_value():
            deposit_months = int(deposit_months)
        return build_payment_timeline(
            terms["start_date"],
            terms["end_date"],
            terms["rent_price"],
            deposit_months=deposit_months,
            rent_calculation=terms["rent_calculation"],
            deposit_amount=terms["deposit_amount"],
        )

    @staticmethod
    def preview_timeline(payload):
        terms = BookingService.parse_terms(payload)
        entries = BookingService.timeline_for(terms)
        return {
            "start_date": terms["start_date"].isoformat(),
            "end_date": terms["end_date"].isoformat(),
            "notice_end_date": add_months(terms["end_date"], terms["notice_period_months"]).isoformat(),
            "months": months_between(terms["start_date"], terms["end_date"]),
            "entries": [
                {
                    "due_date": entry.due_date.isoformat(),
                    "type": entry.type,
                    "amount": str(entry.amount),
                    "description": entry.description,
                }
                for entry in entries
            ],
            "total": str(timeline_total(entries)),
        }

    @staticmethod
    def create_booking(operator_id, payload):
        """
        Create a booking and mint its rent transactions.

        The booking row is committed on its own first. If the transactions
        cannot be written the booking stays and the error names it. Invoice
        scheduling for automatic collection is best effort: a failure comes
        back as a warning next to the created booking.
        """
        customer_id = _parse_id(payload.get("customer_id"), "customer_id")
        customer = db.session.get(Customer, customer_id)
        if not customer:
            raise NotFound(f"Customer with ID {customer_id} not found.")
        room_id = _parse_id(payload.get("room_id"), "room_id")
        room = db.session.get(Room, room_id)
        if not room:
            raise NotFound(f"Room with ID {room_id} not found.")

        terms = BookingService.parse_terms(payload)
        entries = BookingService.timeline_for(terms)

        booking = Booking(customer_id=customer.id, room_id=room.id, created_by=operator_id, status="active", **terms)
        db.session.add(booking)
        db.session.commit()
        current_app.logger.info("Booking %s created for customer %s in room %s", booking.id, customer.id, room.id)

        status = lifecycle.initial_status(booking.payment_collection_method)
        try:
            db.session.add_all(
                [
                    RentTransaction(
                        booking_id=booking.id,
                        customer_id=customer.id,
                        room_id=room.id,
                        created_by=operator_id,
                        due_date=entry.due_date,
                        amount=entry.amount,
                        type=entry.type,
                        status=status,
                        description=entry.description,
                    )
                    for entry in entries
                ]
            )
            db.session.commit()
        except SQLAlchemyError as exc:
            db.session.rollback()
            current_app.logger.error("Error creating rent transactions for booking %s: %s", booking.id, exc)
            raise PersistenceError(
                f"Booking created (ID: {booking.id}), but failed to create its rent transactions.",
                payload={"booking_id": booking.id},
            ) from exc
        current_app.logger.info(
            "%s rent transactions created for booking %s with status %s", len(entries), booking.id, status
        )

        warnings = []
        invoice_scheduling = None
        if booking.payment_collection_method == "automatic":
            try:
                invoice_scheduling = InvoiceService.schedule_invoices(booking.id)
            except (AppError, SQLAlchemyError) as exc:
                db.session.rollback()
                message = getattr(exc, "message", None) or str(exc)
                current_app.logger.warning("Invoice scheduling failed for booking %s: %s", booking.id, message)
                warnings.append(
                    f"Rent transactions created, but failed to trigger invoice scheduling: {message}. "
                    "Please check Stripe or trigger manually."
                )

        NotificationService.push(
            operator_id,
            "Booking created",
            f"Booking #{booking.id} for {customer.full_name} created with {len(entries)} payments.",
            booking_id=booking.id,
        )
        db.session.commit()
        return {"booking": booking, "invoice_scheduling": invoice_scheduling, "warnings": warnings}

    @staticmethod
    def get_booking(booking_id):
        booking = db.session.get(Booking, booking_id)
        if not booking:
            raise NotFound(f"Booking with ID {booking_id} not found.")
        return booking

    @staticmethod
    def serialize(booking, include_transactions=False):
        customer = booking.customer
        data = {
            "id": booking.id,
            "customer_id": booking.customer_id,
            "room_id": booking.room_id,
            "status": booking.status,
            "start_date": booking.start_date.isoformat(),
            "end_date": booking.end_date.isoformat(),
            "rent_price": str(booking.rent_price),
            "deposit_months": str(booking.deposit_months) if booking.deposit_months is not None else None,
            "deposit_amount": str(booking.deposit_amount),
            "notice_period_months": booking.notice_period_months,
            "rent_calculation": booking.rent_calculation,
            "payment_collection_method": booking.payment_collection_method,
            "payment_status": booking.payment_status,
            "stripe_payment_intent_id": booking.stripe_payment_intent_id,
            "customer": {
                "id": customer.id,
                "name": customer.full_name,
                "stripe_mandate_status": customer.stripe_mandate_status,
            },
        }
        if include_transactions:
            data["rent_transactions"] = [TransactionService.serialize(t) for t in booking.transactions]
        return data

    @staticmethod
    def mark_booking_paid_manual(booking_id):
        booking = BookingService.get_booking(booking_id)
        try:
            booking.payment_status = next_booking_status(booking.payment_status, lifecycle.MARK_PAID_MANUALLY)
        except TransitionRejected as exc:
            raise Conflict(exc.reason) from exc
        db.session.commit()
        current_app.logger.info("Booking %s successfully marked as paid_manual", booking.id)
        return {
            "success": True,
            "message": f"Booking {booking.id} marked as paid_manual.",
            "updated_booking": BookingService.serialize(booking),
        }
