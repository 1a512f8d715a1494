from flask import current_app

from app.errors import AppError
from app.extensions import db
from app.models import PlatformSetting

EDITABLE_SETTINGS = ("currency", "invoice_lead_days")


class PlatformService:
    """Organisation settings stored in the database, falling back to app config."""

    @staticmethod
    def get_setting(key, default=None):
        setting = db.session.get(PlatformSetting, key)
        if not setting:
            return default
        return setting.value

    @staticmethod
    def set_setting(key, value):
        setting = db.session.get(PlatformSetting, key)
        if setting:
            setting.value = str(value)
        else:
            setting = PlatformSetting(key=key, value=str(value))
            db.session.add(setting)
        db.session.commit()
        return setting

    @staticmethod
    def currency():
        return PlatformService.get_setting("currency", current_app.config["PAYMENT_CURRENCY"]).lower()

    @staticmethod
    def invoice_lead_days():
        raw = PlatformService.get_setting("invoice_lead_days")
        try:
            return int(raw)
        except (TypeError, ValueError):
            return current_app.config["INVOICE_LEAD_DAYS"]

    @staticmethod
    def billing_settings():
        return {"currency": PlatformService.currency(), "invoice_lead_days": PlatformService.invoice_lead_days()}

    @staticmethod
    def update_billing_settings(payload):
        unknown = set(payload) - set(EDITABLE_SETTINGS)
        if unknown:
            raise AppError(f"Unknown settings: {', '.join(sorted(unknown))}", 400)

        if "currency" in payload:
            currency = str(payload["currency"] or "").strip().lower()
            if len(currency) != 3 or not currency.isalpha():
                raise AppError("Currency must be a three-letter ISO code.", 400)
            PlatformService.set_setting("currency", currency)

        if "invoice_lead_days" in payload:
            try:
                lead_days = int(payload["invoice_lead_days"])
            except (TypeError, ValueError) as exc:
                raise AppError("Invoice lead days must be a non-negative integer.", 400) from exc
            if lead_days < 0:
                raise AppError("Invoice lead days must be a non-negative integer.", 400)
            PlatformService.set_setting("invoice_lead_days", lead_days)

        current_app.logger.info("Billing settings updated: %s", sorted(payload))
        return PlatformService.billing_settings()
