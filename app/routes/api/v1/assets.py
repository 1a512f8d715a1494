from flask import Blueprint, jsonify
from flask_login import current_user, login_required

from app.decorators import json_body
from app.services import AssetService

api_asset_bp = Blueprint("api_asset", __name__)


def _asset_payload(asset):
    return {
        "id": asset.id,
        "name": asset.name,
        "address": asset.address,
        "rooms": [
            {"id": r.id, "name": r.name, "price": str(r.price) if r.price is not None else None} for r in asset.rooms
        ],
    }


@api_asset_bp.post("")
@login_required
def create_asset():
    asset = AssetService.create_asset(current_user.id, json_body())
    return jsonify(_asset_payload(asset)), 201


@api_asset_bp.get("/<int:asset_id>")
@login_required
def asset_detail(asset_id):
    return jsonify(_asset_payload(AssetService.get_asset(asset_id)))
