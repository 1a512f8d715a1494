from flask import Blueprint, jsonify
from flask_login import login_required

from app.decorators import json_body, role_required
from app.services import PlatformService

api_settings_bp = Blueprint("api_settings", __name__)


@api_settings_bp.get("")
@login_required
def get_settings():
    return jsonify(PlatformService.billing_settings())


@api_settings_bp.put("")
@login_required
@role_required("admin")
def update_settings():
    return jsonify(PlatformService.update_billing_settings(json_body()))
