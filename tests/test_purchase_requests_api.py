import os
import sys

import pytest

sys.path.append(os.path.join(os.path.dirname(__file__), ".."))

from stockroom import create_app
from stockroom.extensions import db
from stockroom.models import Category, Item, PurchaseRequest, Role, Transaction, User


@pytest.fixture
def app():
    app = create_app({"TESTING": True, "SQLALCHEMY_DATABASE_URI": "sqlite:///:memory:"})
    with app.app_context():
        db.create_all()
        db.session.add(Category(name="Sensors"))
        db.session.commit()
    yield app
    with app.app_context():
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def admin_headers(client):
    response = client.post(
        "/api/auth/login", json={"username": "admin", "password": "change_me_admin"}
    )
    return {"Authorization": f"Bearer {response.get_json()['token']}"}


@pytest.fixture
def category_id(app):
    with app.app_context():
        return Category.query.filter_by(name="Sensors").one().id


def _create_request(client, headers, category_id, **extra):
    payload = {"category_id": category_id, "units_count": 1, **extra}
    response = client.post("/api/purchase-requests", json=payload, headers=headers)
    assert response.status_code == 201, response.get_json()
    return response.get_json()


def _approve(client, headers, request_id):
    return client.put(
        f"/api/purchase-requests/{request_id}/status",
        json={"status": "approved"},
        headers=headers,
    )


def test_create_request_defaults(client, admin_headers, category_id):
    created = _create_request(
        client, admin_headers, category_id, description="Humidity sensors", deadline="2026-11-01"
    )

    assert created["status"] == "pending"
    assert created["status_label"] == "Pending"
    assert created["requester"] == "admin"
    assert created["completed_units"] == 0
    assert created["deadline"] == "2026-11-01"
    assert created["category_name"] == "Sensors"


def test_create_request_validation(client, admin_headers):
    response = client.post(
        "/api/purchase-requests",
        json={"units_count": 0, "deadline": "next week"},
        headers=admin_headers,
    )

    assert response.status_code == 400
    assert response.get_json()["errors"] == [
        "Category ID is required.",
        "Units count must be at least 1.",
        "Enter the deadline in YYYY-MM-DD format.",
    ]


def test_full_fulfillment_flow(app, client, admin_headers, category_id):
    created = _create_request(client, admin_headers, category_id, description="Probes")
    assert _approve(client, admin_headers, created["id"]).status_code == 200

    response = client.post(
        f"/api/purchase-requests/{created['id']}/complete",
        json={
            "item_name": "DS18B20",
            "quantity_received": 12,
            "location": "A3:blue1",
            "properties": {"package": "TO-92"},
            "notes": "Arrived early",
        },
        headers=admin_headers,
    )

    assert response.status_code == 200
    payload = response.get_json()
    assert payload["message"] == "Purchase request item added successfully"
    assert payload["item_added"]["quantity"] == 12
    assert payload["item_added"]["location"] == "A3:blue1"
    assert payload["purchase_request"]["status"] == "completed"
    assert payload["purchase_request"]["completed_units"] == 1
    assert payload["purchase_request"]["notes"] == "Arrived early"

    detail = client.get(
        f"/api/purchase-requests/{created['id']}", headers=admin_headers
    ).get_json()
    assert detail["items"] == [
        {
            "item_id": payload["item_added"]["id"],
            "item_name": "DS18B20",
            "quantity_added": 12,
            "added_by": "System",
            "notes": "Arrived early",
        }
    ]

    with app.app_context():
        item = Item.query.filter_by(name="DS18B20").one()
        addition = Transaction.query.filter_by(item_id=item.id).one()
        assert addition.type == "addition"
        assert addition.quantity == 12


def test_completing_pending_request_is_a_conflict(app, client, admin_headers, category_id):
    created = _create_request(client, admin_headers, category_id)

    response = client.post(
        f"/api/purchase-requests/{created['id']}/complete",
        json={"item_name": "Probe", "quantity_received": 1, "location": "A1"},
        headers=admin_headers,
    )

    assert response.status_code == 409
    with app.app_context():
        assert Item.query.count() == 0


def test_complete_requires_fields(client, admin_headers, category_id):
    created = _create_request(client, admin_headers, category_id)
    _approve(client, admin_headers, created["id"])

    response = client.post(
        f"/api/purchase-requests/{created['id']}/complete",
        json={"quantity_received": 0},
        headers=admin_headers,
    )

    assert response.status_code == 400
    assert response.get_json()["errors"] == [
        "Item name is required.",
        "Quantity received must be at least 1.",
        "Location is required.",
    ]


def test_invalid_status_transition(client, admin_headers, category_id):
    created = _create_request(client, admin_headers, category_id)

    response = client.put(
        f"/api/purchase-requests/{created['id']}/status",
        json={"status": "completed"},
        headers=admin_headers,
    )

    assert response.status_code == 409


def test_unknown_status_value(client, admin_headers, category_id):
    created = _create_request(client, admin_headers, category_id)

    response = client.put(
        f"/api/purchase-requests/{created['id']}/status",
        json={"status": "shipped"},
        headers=admin_headers,
    )

    assert response.status_code == 400


def test_list_orders_by_status_then_deadline(client, admin_headers, category_id):
    late = _create_request(client, admin_headers, category_id, deadline="2026-12-01")
    soon = _create_request(client, admin_headers, category_id, deadline="2026-11-01")
    approved = _create_request(client, admin_headers, category_id, deadline="2026-10-20")
    _approve(client, admin_headers, approved["id"])

    listing = client.get("/api/purchase-requests", headers=admin_headers).get_json()

    assert [entry["id"] for entry in listing["requests"]] == [
        soon["id"],
        late["id"],
        approved["id"],
    ]
    assert listing["pagination"]["total"] == 3

    pending = client.get(
        "/api/purchase-requests?status=pending", headers=admin_headers
    ).get_json()
    assert {entry["id"] for entry in pending["requests"]} == {soon["id"], late["id"]}

    window = client.get(
        "/api/purchase-requests?deadline_from=2026-10-25&deadline_to=2026-11-30",
        headers=admin_headers,
    ).get_json()
    assert [entry["id"] for entry in window["requests"]] == [soon["id"]]


def test_list_rejects_unknown_status_filter(client, admin_headers):
    response = client.get("/api/purchase-requests?status=lost", headers=admin_headers)

    assert response.status_code == 400


def test_default_user_cannot_approve(app, client, admin_headers, category_id):
    created = _create_request(client, admin_headers, category_id)
    with app.app_context():
        user = User(username="requester")
        user.set_password("password")
        user.roles = [Role.query.filter_by(name="default_user").one()]
        db.session.add(user)
        db.session.commit()
    token = client.post(
        "/api/auth/login", json={"username": "requester", "password": "password"}
    ).get_json()["token"]

    response = _approve(client, {"Authorization": f"Bearer {token}"}, created["id"])

    assert response.status_code == 403


def test_delete_request(app, client, admin_headers, category_id):
    created = _create_request(client, admin_headers, category_id)

    response = client.delete(
        f"/api/purchase-requests/{created['id']}", headers=admin_headers
    )

    assert response.status_code == 200
    with app.app_context():
        assert db.session.get(PurchaseRequest, created["id"]) is None
