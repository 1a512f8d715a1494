from flask import current_app
from sqlalchemy.exc import SQLAlchemyError

from app import lifecycle
from app.errors import (
    Conflict,
    InvalidAmount,
    MandateInactive,
    NotFound,
    PaymentConfigMissing,
    PersistenceError,
    ProcessorError,
)
from app.extensions import db
from app.lifecycle import TransitionRejected, next_booking_status, next_status
from app.models import Booking, RentTransaction
from app.services.platform_service import PlatformService
from app.services.stripe_gateway import get_gateway
from app.timeline import to_minor_units

# Stripe PaymentIntent status -> booking action replayed by reconciliation.
INTENT_STATUS_ACTIONS = {
    "processing": lifecycle.CHARGE,
    "requires_confirmation": lifecycle.CHARGE,
    "requires_action": lifecycle.CHARGE,
    "succeeded": lifecycle.PAYMENT_SUCCEEDED,
    "requires_payment_method": lifecycle.CHARGE_FAILED,
    "canceled": lifecycle.CHARGE_FAILED,
}


class ChargeService:
    @staticmethod
    def booking_charge_amount(booking):
        """Rent plus deposit, in cents."""
        return to_minor_units((booking.rent_price or 0) + (booking.deposit_amount or 0))

    @staticmethod
    def _check_customer(customer, customer_id):
        if not customer:
            raise NotFound(f"Customer with ID {customer_id} not found.")
        if customer.stripe_mandate_status != "active":
            current_app.logger.warning(
                "Mandate not active for customer %s. Status: %s", customer.id, customer.stripe_mandate_status
            )
            raise MandateInactive(f"SEPA mandate for customer is not active. Status: {customer.stripe_mandate_status}")
        if not customer.stripe_customer_id or not customer.stripe_payment_method_id:
            current_app.logger.warning("Missing Stripe customer or payment method ID for customer %s", customer.id)
            raise PaymentConfigMissing("Customer is missing necessary Stripe payment configuration.")

    @staticmethod
    def initiate_booking_charge(booking_id, idempotency_key=None):
        """Start an off-session SEPA debit for a booking's rent plus deposit."""
        booking = db.session.get(Booking, booking_id)
        if not booking:
            raise NotFound(f"Booking with ID {booking_id} not found.")

        try:
            next_booking_status(booking.payment_status, lifecycle.CHARGE)
        except TransitionRejected as exc:
            current_app.logger.warning(
                "Booking %s payment is already processing or completed. Status: %s", booking.id, booking.payment_status
            )
            raise Conflict(f"Payment for booking {booking.id} is already {booking.payment_status}.") from exc

        amount = ChargeService.booking_charge_amount(booking)
        if amount <= 0:
            raise InvalidAmount("Invalid amount to charge. Amount must be positive.")
        current_app.logger.info("Amount to charge for booking %s: %s cents", booking.id, amount)

        customer = booking.customer
        ChargeService._check_customer(customer, booking.customer_id)

        # Same key until the booking fails, so a replay returns the same intent.
        key = idempotency_key or f"booking-{booking.id}-charge-{booking.charge_attempts or 0}"
        try:
            intent = get_gateway().create_payment_intent(
                amount=amount,
                currency=PlatformService.currency(),
                customer=customer.stripe_customer_id,
                payment_method=customer.stripe_payment_method_id,
                metadata={"booking_id": str(booking.id), "customer_id": str(customer.id)},
                idempotency_key=key,
            )
        except ProcessorError:
            booking.payment_status = next_booking_status(booking.payment_status, lifecycle.CHARGE_FAILED)
            booking.stripe_payment_intent_id = None
            booking.charge_attempts = (booking.charge_attempts or 0) + 1
            db.session.commit()
            raise

        try:
            booking.stripe_payment_intent_id = intent["id"]
            booking.payment_status = next_booking_status(booking.payment_status, lifecycle.CHARGE)
            db.session.commit()
        except SQLAlchemyError as exc:
            db.session.rollback()
            current_app.logger.error(
                "Failed to update booking %s with PaymentIntent %s; manual reconciliation needed", booking_id, intent["id"]
            )
            raise PersistenceError(
                "Failed to update booking after creating PaymentIntent. Please check logs.",
                payload={"booking_id": booking_id, "stripe_payment_intent_id": intent["id"]},
            ) from exc

        current_app.logger.info(
            "Booking %s updated. PaymentIntent: %s, Status: %s", booking.id, intent["id"], booking.payment_status
        )
        return {
            "success": True,
            "message": "SEPA charge initiated successfully.",
            "booking_id": booking.id,
            "stripe_payment_intent_id": intent["id"],
            "payment_status": booking.payment_status,
        }

    @staticmethod
    def charge_transaction(transaction_id, idempotency_key=None):
        """Charge a single scheduled or failed rent transaction off-session."""
        transaction = db.session.get(RentTransaction, transaction_id)
        if not transaction:
            raise NotFound(f"Rent transaction with ID {transaction_id} not found.")

        try:
            next_status(transaction.status, lifecycle.CHARGE)
        except TransitionRejected as exc:
            raise Conflict(exc.reason) from exc

        amount = to_minor_units(transaction.amount)
        if amount <= 0:
            raise InvalidAmount("Invalid amount to charge. Amount must be positive.")

        customer = transaction.customer
        ChargeService._check_customer(customer, transaction.customer_id)

        key = idempotency_key or f"rent-transaction-{transaction.id}-charge-{transaction.charge_attempts or 0}"
        try:
            intent = get_gateway().create_payment_intent(
                amount=amount,
                currency=PlatformService.currency(),
                customer=customer.stripe_customer_id,
                payment_method=customer.stripe_payment_method_id,
                metadata={
                    "rent_transaction_id": str(transaction.id),
                    "booking_id": str(transaction.booking_id),
                    "customer_id": str(customer.id),
                },
                idempotency_key=key,
            )
        except ProcessorError:
            transaction.status = next_status(transaction.status, lifecycle.CHARGE_FAILED)
            transaction.stripe_payment_intent_id = None
            transaction.charge_attempts = (transaction.charge_attempts or 0) + 1
            db.session.commit()
            raise

        try:
            transaction.stripe_payment_intent_id = intent["id"]
            transaction.status = next_status(transaction.status, lifecycle.CHARGE)
            db.session.commit()
        except SQLAlchemyError as exc:
            db.session.rollback()
            current_app.logger.error(
                "Failed to update rent transaction %s with PaymentIntent %s", transaction_id, intent["id"]
            )
            raise PersistenceError(
                "Failed to update rent transaction after creating PaymentIntent. Please check logs.",
                payload={"rent_transaction_id": transaction_id, "stripe_payment_intent_id": intent["id"]},
            ) from exc

        return {
            "success": True,
            "message": "Rent transaction charge initiated.",
            "rent_transaction_id": transaction.id,
            "stripe_payment_intent_id": intent["id"],
            "status": transaction.status,
        }

    @staticmethod
    def reconcile_booking_charge(booking_id, payment_intent_id):
        """Replay the local booking write from the processor's view of an intent."""
        booking = db.session.get(Booking, booking_id)
        if not booking:
            raise NotFound(f"Booking with ID {booking_id} not found.")

        if lifecycle.is_stale_intent(
            booking.payment_status, booking.stripe_payment_intent_id, payment_intent_id, booking_level=True
        ):
            current_app.logger.warning(
                "Refusing to reconcile booking %s with %s; it tracks %s",
                booking.id,
                payment_intent_id,
                booking.stripe_payment_intent_id,
            )
            raise Conflict(
                f"Booking {booking.id} is {booking.payment_status} with PaymentIntent "
                f"{booking.stripe_payment_intent_id}, not {payment_intent_id}."
            )

        intent = get_gateway().retrieve_payment_intent(payment_intent_id)
        if intent["metadata"].get("booking_id") != str(booking.id):
            raise Conflict(f"PaymentIntent {payment_intent_id} does not belong to booking {booking.id}.")

        action = INTENT_STATUS_ACTIONS.get(intent["status"])
        if action is None:
            raise Conflict(f"PaymentIntent {payment_intent_id} is in status '{intent['status']}' and cannot be reconciled.")

        target = lifecycle.BOOKING_TRANSITIONS[action][1]
        if booking.payment_status != target:
            try:
                booking.payment_status = next_booking_status(booking.payment_status, action)
            except TransitionRejected as exc:
                raise Conflict(exc.reason) from exc
            if action == lifecycle.CHARGE_FAILED:
                booking.charge_attempts = (booking.charge_attempts or 0) + 1
        booking.stripe_payment_intent_id = None if action == lifecycle.CHARGE_FAILED else intent["id"]
        db.session.commit()

        current_app.logger.info(
            "Booking %s reconciled with PaymentIntent %s: %s", booking.id, payment_intent_id, booking.payment_status
        )
        return {
            "success": True,
            "booking_id": booking.id,
            "stripe_payment_intent_id": intent["id"],
            "payment_status": booking.payment_status,
        }
