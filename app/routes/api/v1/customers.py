from flask import Blueprint, jsonify
from flask_login import login_required

from app.decorators import json_body
from app.services import CustomerService

api_customer_bp = Blueprint("api_customer", __name__)


def _customer_payload(customer):
    return {
        "id": customer.id,
        "first_name": customer.first_name,
        "last_name": customer.last_name,
        "email": customer.email,
        "phone": customer.phone,
        "stripe_customer_id": customer.stripe_customer_id,
        "stripe_payment_method_id": customer.stripe_payment_method_id,
        "stripe_mandate_status": customer.stripe_mandate_status,
        "last_payment_method_action": customer.last_payment_method_action,
        "payment_methods": [
            {
                "id": m.id,
                "stripe_payment_method_id": m.stripe_payment_method_id,
                "stripe_mandate_status": m.stripe_mandate_status,
                "is_default": m.is_default,
                "nickname": m.nickname,
                "last_four": m.last_four,
            }
            for m in customer.payment_methods
        ],
    }


@api_customer_bp.post("")
@login_required
def create_customer():
    customer = CustomerService.create_customer(json_body())
    return jsonify(_customer_payload(customer)), 201


@api_customer_bp.get("/<int:customer_id>")
@login_required
def customer_detail(customer_id):
    return jsonify(_customer_payload(CustomerService.get_customer(customer_id)))


@api_customer_bp.post("/<int:customer_id>/sepa-setup-session")
@login_required
def sepa_setup_session(customer_id):
    payload = json_body()
    session = CustomerService.create_sepa_setup_session(
        customer_id,
        success_url=payload.get("success_url"),
        cancel_url=payload.get("cancel_url"),
    )
    return jsonify(session)
