from app.extensions import db
from app.models.base import PKType, TimestampMixin


class RentTransaction(TimestampMixin, db.Model):
    __tablename__ = "rent_transactions"

    id = db.Column(PKType, primary_key=True, autoincrement=True)
    booking_id = db.Column(PKType, db.ForeignKey("bookings.id", ondelete="CASCADE"), nullable=False, index=True)
    customer_id = db.Column(PKType, db.ForeignKey("customers.id", ondelete="CASCADE"), nullable=False, index=True)
    room_id = db.Column(PKType, db.ForeignKey("rooms.id", ondelete="CASCADE"), nullable=False, index=True)
    created_by = db.Column(PKType, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True, index=True)

    due_date = db.Column(db.Date, nullable=False, index=True)
    amount = db.Column(db.Numeric(12, 2), nullable=False)
    type = db.Column(db.String(16), nullable=False)
    status = db.Column(db.String(24), nullable=False, index=True)
    description = db.Column(db.String(255), nullable=True)
    stripe_payment_intent_id = db.Column(db.String(64), nullable=True, index=True)
    stripe_invoice_id = db.Column(db.String(64), nullable=True, index=True)
    charge_attempts = db.Column(db.Integer, nullable=False, default=0)

    booking = db.relationship("Booking", back_populates="transactions")
    customer = db.relationship("Customer")
    room = db.relationship("Room")

    __table_args__ = (
        db.Index("ix_rent_transactions_booking_status", "booking_id", "status"),
        db.CheckConstraint("amount > 0", name="ck_rent_transaction_amount_positive"),
        db.CheckConstraint("type IN ('rent', 'deposit')", name="ck_rent_transaction_type"),
    )
