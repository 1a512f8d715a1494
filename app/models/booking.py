from app.extensions import db
from app.models.base import PKType, TimestampMixin


class Booking(TimestampMixin, db.Model):
    __tablename__ = "bookings"

    id = db.Column(PKType, primary_key=True, autoincrement=True)
    customer_id = db.Column(PKType, db.ForeignKey("customers.id", ondelete="CASCADE"), nullable=False, index=True)
    room_id = db.Column(PKType, db.ForeignKey("rooms.id", ondelete="CASCADE"), nullable=False, index=True)
    created_by = db.Column(PKType, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True, index=True)

    status = db.Column(db.String(24), nullable=False, default="active", index=True)
    start_date = db.Column(db.Date, nullable=False)
    end_date = db.Column(db.Date, nullable=False)
    rent_price = db.Column(db.Numeric(10, 2), nullable=False)
    deposit_months = db.Column(db.Numeric(5, 2), nullable=True)
    deposit_amount = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    notice_period_months = db.Column(db.Integer, nullable=False, default=1)
    rent_calculation = db.Column(db.String(16), nullable=False, default="full")
    payment_collection_method = db.Column(db.String(16), nullable=False, default="automatic")

    payment_status = db.Column(db.String(24), nullable=True, index=True)
    stripe_payment_intent_id = db.Column(db.String(64), nullable=True, index=True)
    charge_attempts = db.Column(db.Integer, nullable=False, default=0)

    customer = db.relationship("Customer", back_populates="bookings")
    room = db.relationship("Room", back_populates="bookings")
    creator = db.relationship("User", back_populates="bookings")
    transactions = db.relationship(
        "RentTransaction",
        back_populates="booking",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="RentTransaction.due_date, RentTransaction.id",
    )

    __table_args__ = (
        db.Index("ix_bookings_customer_status", "customer_id", "status"),
        db.CheckConstraint("rent_price > 0", name="ck_booking_rent_positive"),
        db.CheckConstraint("end_date > start_date", name="ck_booking_dates_ordered"),
    )
