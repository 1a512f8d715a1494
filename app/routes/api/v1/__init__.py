from flask import Blueprint

from app.extensions import csrf
from app.routes.api.v1.assets import api_asset_bp
from app.routes.api.v1.auth import api_auth_bp
from app.routes.api.v1.bookings import api_booking_bp
from app.routes.api.v1.customers import api_customer_bp
from app.routes.api.v1.functions import api_function_bp
from app.routes.api.v1.notifications import api_notification_bp
from app.routes.api.v1.settings import api_settings_bp
from app.routes.api.v1.stripe_webhook import api_stripe_bp
from app.routes.api.v1.transactions import api_transaction_bp

api_v1_bp = Blueprint("api_v1", __name__)
api_v1_bp.register_blueprint(api_auth_bp, url_prefix="/auth")
api_v1_bp.register_blueprint(api_customer_bp, url_prefix="/customers")
api_v1_bp.register_blueprint(api_asset_bp, url_prefix="/assets")
api_v1_bp.register_blueprint(api_booking_bp, url_prefix="/bookings")
api_v1_bp.register_blueprint(api_transaction_bp, url_prefix="/transactions")
api_v1_bp.register_blueprint(api_function_bp, url_prefix="/functions")
api_v1_bp.register_blueprint(api_stripe_bp, url_prefix="/stripe")
api_v1_bp.register_blueprint(api_notification_bp, url_prefix="/notifications")
api_v1_bp.register_blueprint(api_settings_bp, url_prefix="/settings")

csrf.exempt(api_v1_bp)
