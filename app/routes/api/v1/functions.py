from flask import Blueprint, current_app, jsonify
from flask_login import login_required

from app.decorators import json_body, require_id
from app.errors import AppError
from app.extensions import limiter
from app.services import BookingService, ChargeService, InvoiceService, TransactionService

api_function_bp = Blueprint("api_function", __name__)


def _charge_limit():
    return current_app.config["RATELIMIT_CHARGE"]


@api_function_bp.post("/charge-sepa-booking")
@login_required
@limiter.limit(_charge_limit)
def charge_sepa_booking():
    payload = json_body()
    booking_id = require_id(payload, "booking_id")
    current_app.logger.info("Starting SEPA charge process for booking %s", booking_id)
    return jsonify(ChargeService.initiate_booking_charge(booking_id, idempotency_key=payload.get("idempotency_key")))


@api_function_bp.post("/charge-rent-transaction")
@login_required
@limiter.limit(_charge_limit)
def charge_rent_transaction():
    payload = json_body()
    transaction_id = require_id(payload, "rent_transaction_id")
    return jsonify(ChargeService.charge_transaction(transaction_id, idempotency_key=payload.get("idempotency_key")))


@api_function_bp.post("/reconcile-booking-charge")
@login_required
def reconcile_booking_charge():
    payload = json_body()
    booking_id = require_id(payload, "booking_id")
    payment_intent_id = (payload.get("stripe_payment_intent_id") or "").strip()
    if not payment_intent_id:
        raise AppError("Missing stripe_payment_intent_id", 400)
    return jsonify(ChargeService.reconcile_booking_charge(booking_id, payment_intent_id))


@api_function_bp.post("/mark-booking-paid-manual")
@login_required
def mark_booking_paid_manual():
    booking_id = require_id(json_body(), "booking_id")
    return jsonify(BookingService.mark_booking_paid_manual(booking_id))


@api_function_bp.post("/mark-transaction-paid-manual")
@login_required
def mark_transaction_paid_manual():
    transaction_id = require_id(json_body(), "rent_transaction_id")
    return jsonify(TransactionService.mark_paid_manually(transaction_id))


@api_function_bp.post("/switch-transaction-to-manual")
@login_required
def switch_transaction_to_manual():
    payload = json_body()
    if payload.get("rent_transaction_id") is None and payload.get("booking_id") is not None:
        return jsonify(TransactionService.switch_booking_to_manual(require_id(payload, "booking_id")))
    return jsonify(TransactionService.switch_to_manual(require_id(payload, "rent_transaction_id")))


@api_function_bp.post("/schedule-stripe-invoices")
@login_required
def schedule_stripe_invoices():
    booking_id = require_id(json_body(), "booking_id")
    return jsonify(InvoiceService.schedule_invoices(booking_id))
