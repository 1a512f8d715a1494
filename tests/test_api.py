from app.extensions import db
from app.models import Customer, User
from app.services import NotificationService
from conftest import make_customer, reload


def test_register_login_logout(app):
    client = app.test_client()
    payload = {"full_name": "Ana Admin", "email": "Ana@Example.com", "password": "long-enough"}

    assert client.post("/api/v1/auth/register", json=payload).status_code == 201
    assert client.post("/api/v1/auth/register", json=payload).status_code == 409
    assert client.post("/api/v1/auth/logout").status_code == 200

    bad = client.post("/api/v1/auth/login", json={"email": "ana@example.com", "password": "wrong-password"})
    assert bad.status_code == 401
    good = client.post("/api/v1/auth/login", json={"email": "ana@example.com", "password": "long-enough"})
    assert good.status_code == 200
    assert good.get_json()["role"] == "manager"


def test_register_rejects_short_password(app):
    response = app.test_client().post(
        "/api/v1/auth/register", json={"full_name": "Ana", "email": "ana@example.com", "password": "short"}
    )
    assert response.status_code == 400


def test_create_customer_and_detail(client):
    response = client.post("/api/v1/customers", json={"first_name": "Jonas", "last_name": "Weber"})

    assert response.status_code == 201
    body = response.get_json()
    assert body["stripe_mandate_status"] == "none"
    detail = client.get(f"/api/v1/customers/{body['id']}").get_json()
    assert detail["first_name"] == "Jonas"
    assert detail["payment_methods"] == []
    assert client.post("/api/v1/customers", json={"last_name": "Weber"}).status_code == 400


def test_sepa_setup_session_creates_stripe_customer(client, gateway):
    customer = make_customer(with_stripe=False)

    response = client.post(f"/api/v1/customers/{customer.id}/sepa-setup-session", json={})

    assert response.status_code == 200
    body = response.get_json()
    assert body["sessionId"].startswith("cs_test_")
    [created] = gateway.calls_to("create_customer")
    assert created["idempotency_key"] == f"customer-{customer.id}-create"
    [session] = gateway.calls_to("create_setup_session")
    assert session["success_url"] == "https://rooms.example.com/customers?setup_success=true"
    assert session["cancel_url"] == "https://rooms.example.com/customers"
    assert session["metadata"] == {"customer_id": str(customer.id)}
    assert reload(Customer, customer.id).stripe_customer_id.startswith("cus_test_")


def test_sepa_setup_session_custom_urls(client, gateway):
    customer = make_customer()

    client.post(
        f"/api/v1/customers/{customer.id}/sepa-setup-session",
        json={"success_url": "app.example.com/done", "cancel_url": "https://app.example.com/back"},
    )

    assert gateway.calls_to("create_customer") == []
    [session] = gateway.calls_to("create_setup_session")
    assert session["customer"] == "cus_existing"
    assert session["success_url"] == "https://app.example.com/done"
    assert session["cancel_url"] == "https://app.example.com/back"


def test_create_asset_with_rooms(client):
    response = client.post(
        "/api/v1/assets",
        json={"name": "Canal House", "rooms": [{"name": "Attic", "price": "650"}, {}]},
    )

    assert response.status_code == 201
    rooms = response.get_json()["rooms"]
    assert [r["name"] for r in rooms] == ["Attic", "Room 2"]
    assert rooms[0]["price"] == "650.00"
    assert client.post("/api/v1/assets", json={"name": "X", "rooms": [{"price": "-1"}]}).status_code == 400


def test_settings_require_admin(client, operator):
    assert client.get("/api/v1/settings").get_json() == {"currency": "eur", "invoice_lead_days": 0}
    assert client.put("/api/v1/settings", json={"currency": "usd"}).status_code == 403

    operator.role = "admin"
    db.session.commit()
    response = client.put("/api/v1/settings", json={"currency": "USD", "invoice_lead_days": 5})

    assert response.status_code == 200
    assert response.get_json() == {"currency": "usd", "invoice_lead_days": 5}
    assert client.put("/api/v1/settings", json={"timezone": "UTC"}).status_code == 400


def test_notifications(client, operator):
    NotificationService.push(operator.id, "SEPA charge failed", "Booking #1 failed.", category="payment_failed")
    db.session.commit()

    body = client.get("/api/v1/notifications/me").get_json()
    assert body["unread"] == 1
    assert body["items"][0]["category"] == "payment_failed"

    assert client.get("/api/v1/notifications/me?category=info").get_json()["items"] == []
    assert client.post("/api/v1/notifications/me/read", json={}).get_json()["updated"] == 1
    assert client.get("/api/v1/notifications/me").get_json()["unread"] == 0
    assert client.post("/api/v1/notifications/me/read", json={"ids": 3}).status_code == 400


def test_unknown_route_is_json(client):
    response = client.get("/api/v1/nothing-here")
    assert response.status_code == 404
    assert response.get_json() == {"error": "Not found"}


def test_inactive_user_cannot_log_in(app):
    client = app.test_client()
    client.post("/api/v1/auth/register", json={"full_name": "Old", "email": "old@example.com", "password": "long-enough"})
    client.post("/api/v1/auth/logout")
    User.query.filter_by(email="old@example.com").one().is_active_user = False
    db.session.commit()

    response = client.post("/api/v1/auth/login", json={"email": "old@example.com", "password": "long-enough"})
    assert response.status_code == 403


def test_current_operator(client):
    body = client.get("/api/v1/auth/me").get_json()
    assert body["email"] == "maria@example.com"
    assert body["role"] == "manager"
    assert body["unread_notifications"] == 0


def test_only_first_admin_can_self_register(app):
    client = app.test_client()
    first = {"full_name": "Ana", "email": "ana@example.com", "password": "long-enough", "role": "admin"}
    second = dict(first, email="bo@example.com")

    assert client.post("/api/v1/auth/register", json=first).status_code == 201
    assert client.post("/api/v1/auth/register", json=second).status_code == 403
