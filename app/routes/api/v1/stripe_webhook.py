from flask import Blueprint, jsonify, request

from app.services import WebhookService

api_stripe_bp = Blueprint("api_stripe", __name__)


@api_stripe_bp.post("/webhook")
def stripe_webhook():
    result = WebhookService.handle(request.get_data(), request.headers.get("Stripe-Signature"))
    return jsonify(result)
