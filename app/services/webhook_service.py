import stripe
from flask import current_app

from app import lifecycle
from app.errors import AppError, ProcessorError
from app.extensions import cache, db
from app.lifecycle import TransitionRejected, next_booking_status, next_status
from app.models import Booking, Customer, RentTransaction
from app.services.customer_service import CustomerService
from app.services.notification_service import NotificationService
from app.services.stripe_gateway import get_gateway


def _parse_id(raw):
    try:
        return int(raw)
    except (TypeError, ValueError):
        return None


class WebhookService:
    """Applies Stripe events to customers, bookings and rent transactions."""

    @staticmethod
    def handle(payload, signature):
        if not signature:
            current_app.logger.error("Webhook error: missing Stripe-Signature header")
            raise AppError("Missing signature", 400)
        secret = current_app.config.get("STRIPE_WEBHOOK_SECRET")
        if not secret:
            current_app.logger.error("Webhook error: STRIPE_WEBHOOK_SECRET is not set")
            raise AppError("Webhook secret not configured", 500)

        try:
            event = get_gateway().construct_event(payload, signature, secret)
        except (ValueError, stripe.SignatureVerificationError) as exc:
            current_app.logger.warning("Webhook signature verification failed: %s", exc)
            raise AppError(f"Webhook Error: {exc}", 400) from exc

        event_id = event.get("id")
        event_type = event.get("type")
        cache_key = f"stripe-event:{event_id}"
        if event_id and cache.get(cache_key):
            current_app.logger.info("Webhook %s (%s) already processed", event_id, event_type)
            return {"received": True, "duplicate": True}

        current_app.logger.info("Webhook received: %s, ID: %s", event_type, event_id)
        handler = EVENT_HANDLERS.get(event_type)
        if handler is None:
            current_app.logger.info("Unhandled event type: %s", event_type)
        else:
            handler(event.get("data", {}).get("object") or {})
            db.session.commit()

        if event_id:
            cache.set(cache_key, True, timeout=current_app.config["STRIPE_EVENT_TTL"])
        return {"received": True}

    # Customers and mandates

    @staticmethod
    def _store_payment_method(customer_id, payment_method_id, mandate_status):
        customer = db.session.get(Customer, customer_id) if customer_id is not None else None
        if not customer or not payment_method_id:
            current_app.logger.warning(
                "Missing customer or payment method in setup event: customer=%s, pm=%s", customer_id, payment_method_id
            )
            return
        last_four = None
        method_type = "sepa_debit"
        try:
            details = get_gateway().retrieve_payment_method(payment_method_id)
            last_four = details["last4"]
            method_type = details["type"]
        except ProcessorError as exc:
            current_app.logger.warning("Could not load payment method %s details: %s", payment_method_id, exc.message)
        _, is_update = CustomerService.record_payment_method(
            customer, payment_method_id, mandate_status, last_four=last_four, method_type=method_type
        )
        current_app.logger.info(
            "Customer %s payment method %s stored (mandate %s, update=%s)",
            customer.id,
            payment_method_id,
            mandate_status,
            is_update,
        )

    @staticmethod
    def checkout_session_completed(session):
        if session.get("mode") != "setup" or not session.get("setup_intent"):
            current_app.logger.info("Ignoring checkout.session.completed (mode: %s)", session.get("mode"))
            return
        setup_intent = get_gateway().retrieve_setup_intent(session["setup_intent"])
        customer_id = _parse_id((session.get("metadata") or {}).get("customer_id"))
        WebhookService._store_payment_method(
            customer_id, setup_intent["payment_method_id"], setup_intent["mandate_status"] or "unknown"
        )

    @staticmethod
    def setup_intent_succeeded(setup_intent):
        customer_id = _parse_id((setup_intent.get("metadata") or {}).get("customer_id"))
        mandate = setup_intent.get("mandate")
        # Unexpanded mandates arrive as ids; a succeeded setup means an active mandate.
        mandate_status = mandate.get("status", "active") if isinstance(mandate, dict) else "active"
        WebhookService._store_payment_method(customer_id, setup_intent.get("payment_method"), mandate_status)

    @staticmethod
    def setup_intent_failed(setup_intent):
        customer_id = _parse_id((setup_intent.get("metadata") or {}).get("customer_id"))
        if customer_id is None:
            current_app.logger.warning("Missing customer_id in setup_intent.setup_failed metadata")
            return
        reason = (setup_intent.get("last_setup_error") or {}).get("message") or "Unknown reason"
        current_app.logger.info("SEPA setup failed for customer %s: %s", customer_id, reason)
        CustomerService.update_mandate_status(setup_intent.get("payment_method"), "failed", customer_id=customer_id)

    @staticmethod
    def mandate_updated(mandate):
        payment_method_id = mandate.get("payment_method")
        if not payment_method_id:
            current_app.logger.warning("Missing payment_method in mandate.updated event")
            return
        updated = CustomerService.update_mandate_status(payment_method_id, mandate.get("status") or "unknown")
        current_app.logger.info("Mandate for %s is now %s (%s customers)", payment_method_id, mandate.get("status"), updated)

    # Bookings and rent transactions

    @staticmethod
    def _transition_booking(booking_id, action, payment_intent_id=None):
        booking = db.session.get(Booking, booking_id) if booking_id is not None else None
        if not booking:
            current_app.logger.warning("Webhook references unknown booking %s", booking_id)
            return None
        if lifecycle.is_stale_intent(
            booking.payment_status, booking.stripe_payment_intent_id, payment_intent_id, booking_level=True
        ):
            current_app.logger.warning(
                "Ignoring %s for booking %s: PaymentIntent %s is not the tracked %s",
                action,
                booking.id,
                payment_intent_id,
                booking.stripe_payment_intent_id,
            )
            return None
        try:
            booking.payment_status = next_booking_status(booking.payment_status, action)
        except TransitionRejected as exc:
            current_app.logger.warning("Ignoring %s for booking %s: %s", action, booking.id, exc.reason)
            return None
        if payment_intent_id:
            booking.stripe_payment_intent_id = payment_intent_id
        if booking.payment_status == lifecycle.FAILED_STRIPE:
            booking.charge_attempts = (booking.charge_attempts or 0) + 1
            NotificationService.push(
                booking.created_by,
                "SEPA charge failed",
                f"The SEPA charge for booking #{booking.id} failed.",
                booking_id=booking.id,
                category="payment_failed",
            )
        current_app.logger.info("Booking %s payment status is now %s", booking.id, booking.payment_status)
        return booking

    @staticmethod
    def _transition_transaction(transaction_id, action, payment_intent_id=None):
        transaction = db.session.get(RentTransaction, transaction_id) if transaction_id is not None else None
        if not transaction:
            current_app.logger.warning("Webhook references unknown rent transaction %s", transaction_id)
            return None
        if lifecycle.is_stale_intent(transaction.status, transaction.stripe_payment_intent_id, payment_intent_id):
            current_app.logger.warning(
                "Ignoring %s for rent transaction %s: PaymentIntent %s is not the tracked %s",
                action,
                transaction.id,
                payment_intent_id,
                transaction.stripe_payment_intent_id,
            )
            return None
        try:
            transaction.status = next_status(transaction.status, action)
        except TransitionRejected as exc:
            current_app.logger.warning("Ignoring %s for rent transaction %s: %s", action, transaction.id, exc.reason)
            return None
        if payment_intent_id:
            transaction.stripe_payment_intent_id = payment_intent_id
        if transaction.status == lifecycle.FAILED:
            transaction.charge_attempts = (transaction.charge_attempts or 0) + 1
            NotificationService.push(
                transaction.booking.created_by,
                "Rent collection failed",
                f"Collection of {transaction.type} due {transaction.due_date.isoformat()} "
                f"for booking #{transaction.booking_id} failed.",
                booking_id=transaction.booking_id,
                category="payment_failed",
            )
        current_app.logger.info("Rent transaction %s is now %s", transaction.id, transaction.status)
        return transaction

    @staticmethod
    def _payment_intent(intent, action):
        metadata = intent.get("metadata") or {}
        transaction_id = _parse_id(metadata.get("rent_transaction_id"))
        if transaction_id is not None:
            WebhookService._transition_transaction(transaction_id, action, intent.get("id"))
            return
        booking_id = _parse_id(metadata.get("booking_id"))
        if booking_id is None:
            current_app.logger.warning("PaymentIntent %s has no booking or transaction metadata", intent.get("id"))
            return
        WebhookService._transition_booking(booking_id, action, intent.get("id"))

    @staticmethod
    def payment_intent_succeeded(intent):
        WebhookService._payment_intent(intent, lifecycle.PAYMENT_SUCCEEDED)

    @staticmethod
    def payment_intent_failed(intent):
        reason = (intent.get("last_payment_error") or {}).get("message") or "Unknown reason"
        current_app.logger.info("PaymentIntent %s failed: %s", intent.get("id"), reason)
        WebhookService._payment_intent(intent, lifecycle.PAYMENT_FAILED)

    @staticmethod
    def _invoice(invoice, action):
        transaction_id = _parse_id((invoice.get("metadata") or {}).get("rent_transaction_id"))
        if transaction_id is None:
            current_app.logger.warning("Invoice %s received without rent_transaction_id metadata", invoice.get("id"))
            return
        WebhookService._transition_transaction(transaction_id, action, invoice.get("payment_intent"))

    @staticmethod
    def invoice_created(invoice):
        WebhookService._invoice(invoice, lifecycle.INVOICE_CREATED)

    @staticmethod
    def invoice_payment_succeeded(invoice):
        WebhookService._invoice(invoice, lifecycle.PAYMENT_SUCCEEDED)

    @staticmethod
    def invoice_payment_failed(invoice):
        WebhookService._invoice(invoice, lifecycle.PAYMENT_FAILED)


EVENT_HANDLERS = {
    "checkout.session.completed": WebhookService.checkout_session_completed,
    "setup_intent.succeeded": WebhookService.setup_intent_succeeded,
    "setup_intent.setup_failed": WebhookService.setup_intent_failed,
    "mandate.updated": WebhookService.mandate_updated,
    "payment_intent.succeeded": WebhookService.payment_intent_succeeded,
    "payment_intent.payment_failed": WebhookService.payment_intent_failed,
    "invoice.created": WebhookService.invoice_created,
    "invoice.payment_succeeded": WebhookService.invoice_payment_succeeded,
    "invoice.payment_failed": WebhookService.invoice_payment_failed,
}
