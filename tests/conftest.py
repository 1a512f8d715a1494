import hashlib
import hmac
import itertools
import json
import time
from datetime import date
from decimal import Decimal

import pytest

from app import create_app
from app.errors import ProcessorError
from app.extensions import db
from app.models import Asset, Booking, Customer, RentTransaction, Room, User
from app.services.stripe_gateway import StripeGateway


class FakeGateway(StripeGateway):
    """Records Stripe calls instead of making them.

    Webhook signature checks are inherited, so events must be signed.
    """

    def __init__(self):
        super().__init__(api_key="sk_test_dummy")
        self.calls = []
        self.failures = {}
        self.intents = {}
        self.intent_status = "processing"
        self.setup_intents = {}
        self._ids = itertools.count(1)

    def _record(self, name, /, **kwargs):
        self.calls.append((name, kwargs))
        error = self.failures.get(name)
        if error is not None:
            raise error

    def calls_to(self, name):
        return [kwargs for call, kwargs in self.calls if call == name]

    def create_payment_intent(self, amount, currency, customer, payment_method, metadata, idempotency_key=None):
        self._record(
            "create_payment_intent",
            amount=amount,
            currency=currency,
            customer=customer,
            payment_method=payment_method,
            metadata=metadata,
            idempotency_key=idempotency_key,
        )
        if idempotency_key not in self.intents:
            self.intents[idempotency_key] = {
                "id": f"pi_test_{next(self._ids)}",
                "status": self.intent_status,
                "amount": amount,
                "metadata": dict(metadata),
            }
        return dict(self.intents[idempotency_key])

    def retrieve_payment_intent(self, payment_intent_id):
        self._record("retrieve_payment_intent", payment_intent_id=payment_intent_id)
        for intent in self.intents.values():
            if intent["id"] == payment_intent_id:
                return dict(intent)
        raise ProcessorError(f"Stripe error: No such payment_intent: '{payment_intent_id}'")

    def create_invoice(self, customer, payment_method, metadata, idempotency_key=None):
        self._record(
            "create_invoice",
            customer=customer,
            payment_method=payment_method,
            metadata=metadata,
            idempotency_key=idempotency_key,
        )
        return {"id": f"in_test_{next(self._ids)}", "status": "draft"}

    def create_invoice_item(self, customer, invoice_id, amount, currency, description, idempotency_key=None):
        self._record(
            "create_invoice_item",
            customer=customer,
            invoice_id=invoice_id,
            amount=amount,
            currency=currency,
            description=description,
            idempotency_key=idempotency_key,
        )
        return {"id": f"ii_test_{next(self._ids)}"}

    def create_customer(self, name, email, metadata, idempotency_key=None):
        self._record("create_customer", name=name, email=email, metadata=metadata, idempotency_key=idempotency_key)
        return {"id": f"cus_test_{next(self._ids)}"}

    def create_setup_session(self, customer, currency, success_url, cancel_url, metadata):
        self._record(
            "create_setup_session",
            customer=customer,
            currency=currency,
            success_url=success_url,
            cancel_url=cancel_url,
            metadata=metadata,
        )
        session_id = f"cs_test_{next(self._ids)}"
        return {"id": session_id, "url": f"https://checkout.stripe.com/c/pay/{session_id}"}

    def retrieve_setup_intent(self, setup_intent_id):
        self._record("retrieve_setup_intent", setup_intent_id=setup_intent_id)
        return self.setup_intents.get(
            setup_intent_id,
            {"id": setup_intent_id, "payment_method_id": "pm_test_sepa", "mandate_status": "active"},
        )

    def retrieve_payment_method(self, payment_method_id):
        self._record("retrieve_payment_method", payment_method_id=payment_method_id)
        return {"id": payment_method_id, "type": "sepa_debit", "last4": "3000"}


def sign_payload(payload, secret="whsec_test", timestamp=None):
    timestamp = timestamp or int(time.time())
    signed = f"{timestamp}.{payload}".encode("utf-8")
    signature = hmac.new(secret.encode("utf-8"), signed, hashlib.sha256).hexdigest()
    return f"t={timestamp},v1={signature}"


@pytest.fixture()
def app():
    app = create_app("testing")
    app.extensions["stripe_gateway"] = FakeGateway()
    with app.app_context():
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture()
def gateway(app):
    return app.extensions["stripe_gateway"]


@pytest.fixture()
def client(app):
    client = app.test_client()
    response = client.post(
        "/api/v1/auth/register",
        json={"full_name": "Maria Operator", "email": "maria@example.com", "password": "correct-horse"},
    )
    assert response.status_code == 201
    return client


@pytest.fixture()
def operator(client):
    return User.query.filter_by(email="maria@example.com").one()


@pytest.fixture()
def post_event(app):
    def _post(event_type, obj, event_id="evt_test_1"):
        payload = json.dumps({"id": event_id, "type": event_type, "data": {"object": obj}})
        return app.test_client().post(
            "/api/v1/stripe/webhook",
            data=payload,
            headers={"Stripe-Signature": sign_payload(payload), "Content-Type": "application/json"},
        )

    return _post


def make_customer(mandate_status="active", with_stripe=True, **fields):
    customer = Customer(
        first_name=fields.pop("first_name", "Lena"),
        last_name=fields.pop("last_name", "Fischer"),
        email=fields.pop("email", "lena@example.com"),
        stripe_customer_id="cus_existing" if with_stripe else None,
        stripe_payment_method_id="pm_existing" if with_stripe else None,
        stripe_mandate_status=mandate_status,
        **fields,
    )
    db.session.add(customer)
    db.session.commit()
    return customer


def make_room(price="850.00"):
    asset = Asset(name="Canal House", address="Prinsengracht 1")
    room = Room(name="Room 3", price=Decimal(price))
    asset.rooms.append(room)
    db.session.add(asset)
    db.session.commit()
    return room


def make_booking(customer=None, room=None, **fields):
    customer = customer or make_customer()
    room = room or make_room()
    values = {
        "status": "active",
        "start_date": date(2024, 1, 15),
        "end_date": date(2025, 1, 15),
        "rent_price": Decimal("1000.00"),
        "deposit_months": Decimal("2"),
        "deposit_amount": Decimal("2000.00"),
        "notice_period_months": 1,
        "rent_calculation": "full",
        "payment_collection_method": "automatic",
    }
    values.update(fields)
    booking = Booking(customer_id=customer.id, room_id=room.id, **values)
    db.session.add(booking)
    db.session.commit()
    return booking


def make_transaction(booking, status="scheduled", amount="1000.00", due_date=None, type_="rent"):
    transaction = RentTransaction(
        booking_id=booking.id,
        customer_id=booking.customer_id,
        room_id=booking.room_id,
        created_by=booking.created_by,
        due_date=due_date or booking.start_date,
        amount=Decimal(amount),
        type=type_,
        status=status,
        description="Monthly rent",
    )
    db.session.add(transaction)
    db.session.commit()
    return transaction


def reload(model, pk):
    db.session.expire_all()
    return db.session.get(model, pk)
