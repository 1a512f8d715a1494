from app.extensions import db
from app.models.base import PKType, TimestampMixin


class Asset(TimestampMixin, db.Model):
    __tablename__ = "assets"

    id = db.Column(PKType, primary_key=True, autoincrement=True)
    name = db.Column(db.String(160), nullable=False)
    address = db.Column(db.String(255), nullable=True)
    created_by = db.Column(PKType, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True, index=True)

    rooms = db.relationship("Room", back_populates="asset", cascade="all, delete-orphan", order_by="Room.id")


class Room(TimestampMixin, db.Model):
    __tablename__ = "rooms"

    id = db.Column(PKType, primary_key=True, autoincrement=True)
    asset_id = db.Column(PKType, db.ForeignKey("assets.id", ondelete="CASCADE"), nullable=False, index=True)
    name = db.Column(db.String(120), nullable=False)
    price = db.Column(db.Numeric(10, 2), nullable=True)

    asset = db.relationship("Asset", back_populates="rooms")
    bookings = db.relationship("Booking", back_populates="room", lazy="dynamic")
