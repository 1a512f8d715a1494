from flask import Blueprint, jsonify
from flask_login import current_user, login_required, login_user, logout_user

from app.decorators import json_body
from app.services import AuthService, NotificationService

api_auth_bp = Blueprint("api_auth", __name__)


def _operator_payload(user):
    return {
        "id": user.id,
        "full_name": user.full_name,
        "email": user.email,
        "role": user.role,
        "last_login": user.last_login.isoformat() if user.last_login else None,
    }


@api_auth_bp.post("/register")
def register_operator():
    payload = json_body()
    user = AuthService.register_user(
        full_name=payload.get("full_name", ""),
        email=payload.get("email", ""),
        password=payload.get("password", ""),
        role=payload.get("role", "manager"),
    )
    login_user(user)
    return jsonify(_operator_payload(user)), 201


@api_auth_bp.post("/login")
def login_operator():
    payload = json_body()
    user = AuthService.authenticate_user(payload.get("email", ""), payload.get("password", ""))
    login_user(user, remember=bool(payload.get("remember")))
    return jsonify(_operator_payload(user))


@api_auth_bp.get("/me")
@login_required
def current_operator():
    data = _operator_payload(current_user)
    data["unread_notifications"] = NotificationService.unread_count(current_user.id)
    return jsonify(data)


@api_auth_bp.post("/logout")
@login_required
def logout_operator():
    logout_user()
    return jsonify({"ok": True})
