import json

import stripe
from flask import current_app

from app.errors import AppError, ProcessorError


class StripeGateway:
    """Thin wrapper over the Stripe SDK returning plain dicts."""

    def __init__(self, api_key=None, api_version=None):
        self.api_key = api_key
        self.api_version = api_version

    def _options(self, idempotency_key=None):
        if not self.api_key:
            raise AppError("Stripe secret key not configured.", 500)
        options = {"api_key": self.api_key}
        if self.api_version:
            options["stripe_version"] = self.api_version
        if idempotency_key:
            options["idempotency_key"] = idempotency_key
        return options

    @staticmethod
    def _raise(exc, action):
        message = getattr(exc, "user_message", None) or str(exc) or "Unknown Stripe error"
        current_app.logger.error("Stripe %s failed: %s", action, message)
        raise ProcessorError(f"Stripe error: {message}", payload={"stripe_code": getattr(exc, "code", None)}) from exc

    @staticmethod
    def _intent(intent):
        return {
            "id": intent.id,
            "status": intent.status,
            "amount": intent.amount,
            "metadata": dict((intent.metadata or {}).items()),
        }

    def create_payment_intent(self, amount, currency, customer, payment_method, metadata, idempotency_key=None):
        try:
            intent = stripe.PaymentIntent.create(
                amount=amount,
                currency=currency,
                customer=customer,
                payment_method=payment_method,
                payment_method_types=["sepa_debit"],
                confirm=True,
                off_session=True,
                metadata=metadata,
                **self._options(idempotency_key),
            )
        except stripe.StripeError as exc:
            self._raise(exc, "payment intent creation")
        return self._intent(intent)

    def retrieve_payment_intent(self, payment_intent_id):
        try:
            intent = stripe.PaymentIntent.retrieve(payment_intent_id, **self._options())
        except stripe.StripeError as exc:
            self._raise(exc, "payment intent lookup")
        return self._intent(intent)

    def create_invoice(self, customer, payment_method, metadata, idempotency_key=None):
        try:
            invoice = stripe.Invoice.create(
                customer=customer,
                collection_method="charge_automatically",
                default_payment_method=payment_method,
                auto_advance=True,
                metadata=metadata,
                **self._options(idempotency_key),
            )
        except stripe.StripeError as exc:
            self._raise(exc, "invoice creation")
        return {"id": invoice.id, "status": invoice.status}

    def create_invoice_item(self, customer, invoice_id, amount, currency, description, idempotency_key=None):
        try:
            item = stripe.InvoiceItem.create(
                customer=customer,
                invoice=invoice_id,
                amount=amount,
                currency=currency,
                description=description,
                **self._options(idempotency_key),
            )
        except stripe.StripeError as exc:
            self._raise(exc, "invoice item creation")
        return {"id": item.id}

    def create_customer(self, name, email, metadata, idempotency_key=None):
        try:
            customer = stripe.Customer.create(
                name=name,
                email=email,
                metadata=metadata,
                **self._options(idempotency_key),
            )
        except stripe.StripeError as exc:
            self._raise(exc, "customer creation")
        return {"id": customer.id}

    def create_setup_session(self, customer, currency, success_url, cancel_url, metadata):
        try:
            session = stripe.checkout.Session.create(
                payment_method_types=["sepa_debit"],
                mode="setup",
                currency=currency,
                customer=customer,
                success_url=success_url,
                cancel_url=cancel_url,
                metadata=metadata,
                setup_intent_data={"metadata": metadata},
                **self._options(),
            )
        except stripe.StripeError as exc:
            self._raise(exc, "checkout session creation")
        return {"id": session.id, "url": session.url}

    def retrieve_setup_intent(self, setup_intent_id):
        try:
            setup_intent = stripe.SetupIntent.retrieve(
                setup_intent_id,
                expand=["payment_method", "mandate"],
                **self._options(),
            )
        except stripe.StripeError as exc:
            self._raise(exc, "setup intent lookup")
        payment_method = setup_intent.payment_method
        mandate = setup_intent.mandate
        return {
            "id": setup_intent.id,
            "payment_method_id": payment_method.id if payment_method else None,
            "mandate_status": mandate.status if mandate else "unknown",
        }

    def retrieve_payment_method(self, payment_method_id):
        try:
            method = stripe.PaymentMethod.retrieve(payment_method_id, **self._options())
        except stripe.StripeError as exc:
            self._raise(exc, "payment method lookup")
        sepa = getattr(method, "sepa_debit", None)
        return {
            "id": method.id,
            "type": method.type or "sepa_debit",
            "last4": sepa.last4 if sepa else None,
        }

    def construct_event(self, payload, signature, secret):
        """Verify a webhook signature and return the event as a plain dict.

        Raises ``ValueError`` for an unparsable body and
        ``stripe.SignatureVerificationError`` for a bad signature.
        """
        if isinstance(payload, bytes):
            payload = payload.decode("utf-8")
        stripe.WebhookSignature.verify_header(payload, signature, secret, stripe.Webhook.DEFAULT_TOLERANCE)
        return json.loads(payload)


def init_stripe(app):
    app.extensions["stripe_gateway"] = StripeGateway(
        api_key=app.config.get("STRIPE_SECRET_KEY"),
        api_version=app.config.get("STRIPE_API_VERSION"),
    )


def get_gateway():
    return current_app.extensions["stripe_gateway"]
