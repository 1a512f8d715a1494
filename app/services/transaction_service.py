from datetime import date, timedelta
from decimal import Decimal

from flask import current_app

from app import lifecycle
from app.errors import AppError, Conflict, NotFound
from app.extensions import db
from app.lifecycle import TransitionRejected, next_status
from app.models import Booking, RentTransaction

TIME_PERIODS = {"week", "month", "year", "all"}


class TransactionService:
    @staticmethod
    def serialize(transaction):
        return {
            "id": transaction.id,
            "booking_id": transaction.booking_id,
            "customer_id": transaction.customer_id,
            "room_id": transaction.room_id,
            "due_date": transaction.due_date.isoformat(),
            "amount": str(transaction.amount),
            "type": transaction.type,
            "status": transaction.status,
            "description": transaction.description,
            "stripe_payment_intent_id": transaction.stripe_payment_intent_id,
            "stripe_invoice_id": transaction.stripe_invoice_id,
            "created_at": transaction.created_at.isoformat() if transaction.created_at else None,
        }

    @staticmethod
    def get_transaction(transaction_id):
        transaction = db.session.get(RentTransaction, transaction_id)
        if not transaction:
            raise NotFound(f"Rent transaction with ID {transaction_id} not found.")
        return transaction

    @staticmethod
    def period_start(time_period, today=None):
        today = today or date.today()
        if time_period == "week":
            return today - timedelta(days=7)
        if time_period == "month":
            return today.replace(day=1)
        if time_period == "year":
            return today.replace(month=1, day=1)
        return None

    @staticmethod
    def list_transactions(status=None, time_period="month", created_by=None, booking_id=None, today=None):
        time_period = (time_period or "month").lower()
        if time_period not in TIME_PERIODS:
            raise AppError("Invalid time period.", 400)
        if status and status not in lifecycle.TRANSACTION_STATUSES:
            raise AppError("Invalid status filter.", 400)

        query = RentTransaction.query
        if status:
            query = query.filter(RentTransaction.status == status)
        if created_by:
            query = query.filter(RentTransaction.created_by == created_by)
        if booking_id:
            query = query.filter(RentTransaction.booking_id == booking_id)
        start = TransactionService.period_start(time_period, today)
        if start:
            query = query.filter(RentTransaction.due_date >= start)
        return query.order_by(RentTransaction.due_date, RentTransaction.id).all()

    @staticmethod
    def totals(transactions):
        totals = {key: Decimal("0.00") for key in ("total", "pending", "paid", "paid_manually", "late")}
        for transaction in transactions:
            amount = Decimal(str(transaction.amount))
            totals["total"] += amount
            if transaction.status in {lifecycle.SCHEDULED, lifecycle.PROCESSING}:
                totals["pending"] += amount
            elif transaction.status == lifecycle.PAID:
                totals["paid"] += amount
            elif transaction.status == lifecycle.PAID_MANUALLY:
                totals["paid_manually"] += amount
            elif transaction.status == lifecycle.FAILED:
                totals["late"] += amount
        return {key: str(value) for key, value in totals.items()}

    @staticmethod
    def switch_to_manual(transaction_id):
        """
        Abandon automatic collection for one transaction.

        A disallowed state is reported back to the caller, not raised: the
        result has ``success=False`` and the record is left untouched.
        """
        transaction = TransactionService.get_transaction(transaction_id)
        try:
            transaction.status = next_status(transaction.status, lifecycle.SWITCH_TO_MANUAL)
        except TransitionRejected as exc:
            current_app.logger.info("Switch to manual refused for rent transaction %s: %s", transaction.id, exc.reason)
            return {
                "success": False,
                "title": "Action Not Allowed",
                "message": exc.reason,
                "rent_transaction_id": transaction.id,
                "status": transaction.status,
            }
        db.session.commit()
        current_app.logger.info("Rent transaction %s switched to manual collection", transaction.id)
        return {
            "success": True,
            "message": "Transaction switched to manual collection. Status set to 'pending'.",
            "rent_transaction_id": transaction.id,
            "status": transaction.status,
        }

    @staticmethod
    def switch_booking_to_manual(booking_id):
        booking = db.session.get(Booking, booking_id)
        if not booking:
            raise NotFound(f"Booking with ID {booking_id} not found.")

        switched = []
        for transaction in booking.transactions:
            if lifecycle.can_apply(transaction.status, lifecycle.SWITCH_TO_MANUAL):
                transaction.status = next_status(transaction.status, lifecycle.SWITCH_TO_MANUAL)
                switched.append(transaction.id)

        if not switched and booking.payment_collection_method == "manual":
            return {
                "success": False,
                "title": "Action Not Allowed",
                "message": f"Booking {booking.id} is already collected manually.",
                "booking_id": booking.id,
                "switched_transaction_ids": [],
            }

        booking.payment_collection_method = "manual"
        db.session.commit()
        current_app.logger.info("Booking %s switched to manual collection (%s transactions)", booking.id, len(switched))
        return {
            "success": True,
            "message": f"{len(switched)} transactions switched to manual collection.",
            "booking_id": booking.id,
            "switched_transaction_ids": switched,
        }

    @staticmethod
    def mark_paid_manually(transaction_id):
        transaction = TransactionService.get_transaction(transaction_id)
        try:
            transaction.status = next_status(transaction.status, lifecycle.MARK_PAID_MANUALLY)
        except TransitionRejected as exc:
            raise Conflict(exc.reason) from exc
        db.session.commit()
        current_app.logger.info("Rent transaction %s marked as paid manually", transaction.id)
        return {
            "success": True,
            "message": f"Transaction {transaction.id} marked as paid manually.",
            "rent_transaction": TransactionService.serialize(transaction),
        }
