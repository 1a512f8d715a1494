from sqlalchemy.exc import IntegrityError

from app.errors import AppError
from app.extensions import bcrypt, db
from app.models import User
from app.models.base import utcnow

OPERATOR_ROLES = {"admin", "manager"}
MIN_PASSWORD_LENGTH = 8


class AuthService:
    @staticmethod
    def register_user(full_name, email, password, role="manager"):
        role = (role or "manager").strip().lower()
        if role not in OPERATOR_ROLES:
            raise AppError("Invalid role.", 400)

        normalized_email = (email or "").strip().lower()
        if not (full_name or "").strip() or not normalized_email or not password:
            raise AppError("Name, email, and password are required.", 400)
        if len(password) < MIN_PASSWORD_LENGTH:
            raise AppError(f"Password must be at least {MIN_PASSWORD_LENGTH} characters.", 400)

        if User.query.filter_by(email=normalized_email).first():
            raise AppError("Email already registered.", 409)
        if role == "admin" and User.query.filter_by(role="admin").count():
            raise AppError("An admin account already exists.", 403)

        user = User(
            full_name=full_name.strip(),
            email=normalized_email,
            role=role,
            password_hash=bcrypt.generate_password_hash(password).decode("utf-8"),
        )
        try:
            db.session.add(user)
            db.session.commit()
        except IntegrityError as exc:
            db.session.rollback()
            raise AppError("Email already registered.", 409) from exc
        return user

    @staticmethod
    def authenticate_user(email, password):
        user = User.query.filter_by(email=(email or "").strip().lower()).first()
        if not user:
            raise AppError("Invalid credentials.", 401)

        try:
            is_valid = bcrypt.check_password_hash(user.password_hash, password or "")
        except ValueError:
            is_valid = False

        if not is_valid:
            raise AppError("Invalid credentials.", 401)
        if not user.is_active_user:
            raise AppError("User account is inactive.", 403)
        user.last_login = utcnow()
        db.session.commit()
        return user
