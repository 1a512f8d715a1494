from flask import current_app

from app.errors import AppError, NotFound
from app.extensions import db
from app.models import Customer, CustomerPaymentMethod
from app.models.base import utcnow
from app.services.platform_service import PlatformService
from app.services.stripe_gateway import get_gateway


def ensure_https(url):
    if not url:
        return url
    if url.startswith("http://") or url.startswith("https://"):
        return url
    return f"https://{url}"


class CustomerService:
    @staticmethod
    def create_customer(payload):
        first_name = (payload.get("first_name") or "").strip()
        if not first_name:
            raise AppError("First name is required.", 400)

        customer = Customer(
            first_name=first_name,
            last_name=(payload.get("last_name") or "").strip(),
            email=(payload.get("email") or "").strip().lower() or None,
            phone=(payload.get("phone") or "").strip() or None,
        )
        db.session.add(customer)
        db.session.commit()
        return customer

    @staticmethod
    def get_customer(customer_id):
        customer = db.session.get(Customer, customer_id)
        if not customer:
            raise NotFound(f"Customer with ID {customer_id} not found.")
        return customer

    @staticmethod
    def ensure_stripe_customer(customer):
        if customer.stripe_customer_id:
            return customer.stripe_customer_id
        created = get_gateway().create_customer(
            name=customer.full_name,
            email=customer.email,
            metadata={"customer_id": str(customer.id)},
            idempotency_key=f"customer-{customer.id}-create",
        )
        customer.stripe_customer_id = created["id"]
        db.session.commit()
        current_app.logger.info("Created Stripe customer %s for customer %s", created["id"], customer.id)
        return customer.stripe_customer_id

    @staticmethod
    def create_sepa_setup_session(customer_id, success_url=None, cancel_url=None):
        customer = CustomerService.get_customer(customer_id)
        stripe_customer_id = CustomerService.ensure_stripe_customer(customer)

        site_url = ensure_https(current_app.config["SITE_URL"])
        session = get_gateway().create_setup_session(
            customer=stripe_customer_id,
            currency=PlatformService.currency(),
            success_url=ensure_https(success_url) if success_url else f"{site_url}/customers?setup_success=true",
            cancel_url=ensure_https(cancel_url) if cancel_url else f"{site_url}/customers",
            metadata={"customer_id": str(customer.id)},
        )
        current_app.logger.info("SEPA setup session %s created for customer %s", session["id"], customer.id)
        return {"sessionId": session["id"], "url": session.get("url")}

    @staticmethod
    def record_payment_method(customer, payment_method_id, mandate_status, last_four=None, method_type="sepa_debit"):
        """Store the payment method on the customer and in its method list.

        The first method collected for a customer becomes its default.
        Returns ``(method, is_update)``.
        """
        customer.stripe_payment_method_id = payment_method_id
        customer.stripe_mandate_status = mandate_status

        existing = CustomerPaymentMethod.query.filter_by(
            customer_id=customer.id, stripe_payment_method_id=payment_method_id
        ).first()
        if existing:
            existing.stripe_mandate_status = mandate_status
            existing.last_four = last_four or existing.last_four
            customer.last_payment_method_action = "updated_existing"
            customer.last_payment_method_action_at = utcnow()
            return existing, True

        others = CustomerPaymentMethod.query.filter_by(customer_id=customer.id).all()
        make_default = not any(method.is_default for method in others)
        method = CustomerPaymentMethod(
            customer_id=customer.id,
            stripe_payment_method_id=payment_method_id,
            stripe_mandate_status=mandate_status,
            payment_method_type=method_type or "sepa_debit",
            is_default=make_default,
            nickname="Primary Payment Method" if not others else f"Payment Method {len(others) + 1}",
            last_four=last_four,
        )
        db.session.add(method)
        customer.last_payment_method_action = "added_new"
        customer.last_payment_method_action_at = utcnow()
        return method, False

    @staticmethod
    def update_mandate_status(payment_method_id, mandate_status, customer_id=None):
        query = Customer.query.filter_by(stripe_payment_method_id=payment_method_id)
        if customer_id is not None:
            query = Customer.query.filter_by(id=customer_id)
        updated = 0
        for customer in query.all():
            customer.stripe_mandate_status = mandate_status
            updated += 1
        method_query = CustomerPaymentMethod.query.filter_by(stripe_payment_method_id=payment_method_id)
        if customer_id is not None:
            method_query = method_query.filter_by(customer_id=customer_id)
        for method in method_query.all():
            method.stripe_mandate_status = mandate_status
        return updated
