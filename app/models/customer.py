from app.extensions import db
from app.models.base import PKType, TimestampMixin


class Customer(TimestampMixin, db.Model):
    __tablename__ = "customers"

    id = db.Column(PKType, primary_key=True, autoincrement=True)
    first_name = db.Column(db.String(120), nullable=False)
    last_name = db.Column(db.String(120), nullable=False, default="")
    email = db.Column(db.String(255), nullable=True, index=True)
    phone = db.Column(db.String(32), nullable=True)

    stripe_customer_id = db.Column(db.String(64), nullable=True, unique=True)
    stripe_payment_method_id = db.Column(db.String(64), nullable=True, index=True)
    stripe_mandate_status = db.Column(db.String(24), nullable=False, default="none")
    last_payment_method_action = db.Column(db.String(32), nullable=True)
    last_payment_method_action_at = db.Column(db.DateTime(timezone=True), nullable=True)

    bookings = db.relationship("Booking", back_populates="customer", lazy="dynamic")
    payment_methods = db.relationship(
        "CustomerPaymentMethod",
        back_populates="customer",
        cascade="all, delete-orphan",
        order_by="CustomerPaymentMethod.id",
    )

    @property
    def full_name(self):
        return f"{self.first_name or ''} {self.last_name or ''}".strip()


class CustomerPaymentMethod(TimestampMixin, db.Model):
    __tablename__ = "customer_payment_methods"

    id = db.Column(PKType, primary_key=True, autoincrement=True)
    customer_id = db.Column(PKType, db.ForeignKey("customers.id", ondelete="CASCADE"), nullable=False, index=True)
    stripe_payment_method_id = db.Column(db.String(64), nullable=False, index=True)
    stripe_mandate_status = db.Column(db.String(24), nullable=False, default="unknown")
    payment_method_type = db.Column(db.String(32), nullable=False, default="sepa_debit")
    is_default = db.Column(db.Boolean, nullable=False, default=False)
    nickname = db.Column(db.String(80), nullable=True)
    last_four = db.Column(db.String(4), nullable=True)

    customer = db.relationship("Customer", back_populates="payment_methods")

    __table_args__ = (
        db.UniqueConstraint("customer_id", "stripe_payment_method_id", name="uq_customer_payment_method"),
    )
