from functools import wraps

from flask import abort, request
from flask_login import current_user

from app.errors import AppError


def role_required(*roles):
    def wrapper(func):
        @wraps(func)
        def inner(*args, **kwargs):
            if not current_user.is_authenticated:
                abort(401)
            if current_user.role not in roles:
                abort(403)
            return func(*args, **kwargs)

        return inner

    return wrapper


def json_body():
    return request.get_json(silent=True) or {}


def require_id(payload, key):
    raw = payload.get(key)
    if raw is None or raw == "":
        raise AppError(f"Missing {key}", 400)
    try:
        return int(raw)
    except (TypeError, ValueError) as exc:
        raise AppError(f"Invalid {key}", 400) from exc
