from flask import Blueprint, jsonify
from flask_login import current_user, login_required

from app.decorators import json_body
from app.services import BookingService

api_booking_bp = Blueprint("api_booking", __name__)


@api_booking_bp.post("")
@login_required
def create_booking():
    result = BookingService.create_booking(current_user.id, json_body())
    booking = result["booking"]
    return (
        jsonify(
            {
                "booking": BookingService.serialize(booking, include_transactions=True),
                "invoice_scheduling": result["invoice_scheduling"],
                "warnings": result["warnings"],
            }
        ),
        201,
    )


@api_booking_bp.post("/preview-timeline")
@login_required
def preview_timeline():
    return jsonify(BookingService.preview_timeline(json_body()))


@api_booking_bp.get("/<int:booking_id>")
@login_required
def booking_detail(booking_id):
    booking = BookingService.get_booking(booking_id)
    return jsonify(BookingService.serialize(booking, include_transactions=True))
