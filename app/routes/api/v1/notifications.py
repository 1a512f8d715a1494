from flask import Blueprint, jsonify, request
from flask_login import current_user, login_required

from app.decorators import json_body
from app.errors import AppError
from app.services import NotificationService

api_notification_bp = Blueprint("api_notification", __name__)


@api_notification_bp.get("/me")
@login_required
def my_notifications():
    items = NotificationService.for_user(
        current_user.id,
        category=request.args.get("category") or None,
        unread_only=request.args.get("unread") in {"1", "true"},
        limit=min(request.args.get("limit", 20, type=int), 100),
    )
    return jsonify(
        {
            "unread": NotificationService.unread_count(current_user.id),
            "items": [NotificationService.serialize(n) for n in items],
        }
    )


@api_notification_bp.post("/me/read")
@login_required
def mark_read():
    ids = json_body().get("ids")
    if ids is not None and not isinstance(ids, list):
        raise AppError("ids must be a list of notification ids.", 400)
    updated = NotificationService.mark_read(current_user.id, ids)
    return jsonify({"ok": True, "updated": updated})
