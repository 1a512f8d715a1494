from app.extensions import db
from app.models.base import TimestampMixin


class PlatformSetting(TimestampMixin, db.Model):
    """Organisation-wide key/value settings (currency, invoice lead time)."""

    __tablename__ = "platform_settings"

    key = db.Column(db.String(64), primary_key=True)
    value = db.Column(db.String(255), nullable=False)
