import os
import sys

import pytest

sys.path.append(os.path.join(os.path.dirname(__file__), ".."))

from stockroom import create_app
from stockroom.extensions import db
from stockroom.models import Category, Item, Role, User


@pytest.fixture
def app():
    app = create_app({"TESTING": True, "SQLALCHEMY_DATABASE_URI": "sqlite:///:memory:"})
    with app.app_context():
        db.create_all()
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


def _user_headers(app, client, username, role_name):
    with app.app_context():
        user = User(username=username)
        user.set_password("password")
        user.roles = [Role.query.filter_by(name=role_name).one()]
        db.session.add(user)
        db.session.commit()
    response = client.post(
        "/api/auth/login", json={"username": username, "password": "password"}
    )
    return {"Authorization": f"Bearer {response.get_json()['token']}"}


def _create(client, headers, name, **extra):
    return client.post("/api/categories", json={"name": name, **extra}, headers=headers)


def test_create_and_list_categories(client, admin_headers):
    parent = _create(client, admin_headers, "Electronics").get_json()
    child = _create(
        client, admin_headers, "Resistors", description="Through-hole", parent_id=parent["id"]
    )

    assert child.status_code == 201
    assert child.get_json()["parent_id"] == parent["id"]

    listing = client.get("/api/categories", headers=admin_headers).get_json()
    assert [category["name"] for category in listing] == ["Electronics", "Resistors"]


def test_duplicate_active_name_is_rejected(client, admin_headers):
    _create(client, admin_headers, "Tools")

    response = _create(client, admin_headers, "Tools")

    assert response.status_code == 400
    assert response.get_json()["error"] == "Category with this name already exists."


def test_name_required(client, admin_headers):
    response = _create(client, admin_headers, "  ")

    assert response.status_code == 400
    assert response.get_json()["errors"] == ["Category name is required."]


def test_unknown_parent_is_not_found(client, admin_headers):
    response = _create(client, admin_headers, "Orphan", parent_id=99)

    assert response.status_code == 404


def test_update_category(client, admin_headers):
    category = _create(client, admin_headers, "Cabels").get_json()

    response = client.put(
        f"/api/categories/{category['id']}",
        json={"name": "Cables", "description": "Patch leads"},
        headers=admin_headers,
    )

    assert response.status_code == 200
    assert response.get_json()["name"] == "Cables"
    assert response.get_json()["description"] == "Patch leads"


def test_category_cannot_be_its_own_parent(client, admin_headers):
    category = _create(client, admin_headers, "Loops").get_json()

    response = client.put(
        f"/api/categories/{category['id']}",
        json={"parent_id": category["id"]},
        headers=admin_headers,
    )

    assert response.status_code == 400


def test_update_rejects_unknown_parent(app, client, admin_headers):
    category = _create(client, admin_headers, "Drills").get_json()

    response = client.put(
        f"/api/categories/{category['id']}",
        json={"parent_id": 999},
        headers=admin_headers,
    )

    assert response.status_code == 404
    with app.app_context():
        assert db.session.get(Category, category["id"]).parent_id is None


def test_update_moves_category_under_existing_parent(client, admin_headers):
    parent = _create(client, admin_headers, "Power tools").get_json()
    category = _create(client, admin_headers, "Saws").get_json()

    response = client.put(
        f"/api/categories/{category['id']}",
        json={"parent_id": parent["id"]},
        headers=admin_headers,
    )

    assert response.status_code == 200
    assert response.get_json()["parent_id"] == parent["id"]


def test_reactivation_keeps_active_names_unique(app, client, admin_headers):
    retired = _create(client, admin_headers, "Bolts").get_json()
    client.delete(f"/api/categories/{retired['id']}", headers=admin_headers)
    assert _create(client, admin_headers, "Bolts").status_code == 201

    response = client.put(
        f"/api/categories/{retired['id']}",
        json={"is_active": True},
        headers=admin_headers,
    )

    assert response.status_code == 400
    assert response.get_json()["errors"] == ["Category with this name already exists."]
    names = [row["name"] for row in client.get("/api/categories", headers=admin_headers).get_json()]
    assert names == ["Bolts"]
    with app.app_context():
        assert db.session.get(Category, retired["id"]).is_active is False


def test_reactivation_with_a_new_name(client, admin_headers):
    retired = _create(client, admin_headers, "Rivets").get_json()
    client.delete(f"/api/categories/{retired['id']}", headers=admin_headers)
    _create(client, admin_headers, "Rivets")

    response = client.put(
        f"/api/categories/{retired['id']}",
        json={"name": "Pop rivets", "is_active": True},
        headers=admin_headers,
    )

    assert response.status_code == 200
    assert response.get_json()["is_active"] is True
    names = [row["name"] for row in client.get("/api/categories", headers=admin_headers).get_json()]
    assert names == ["Pop rivets", "Rivets"]


def test_delete_refuses_categories_with_items(app, client, admin_headers):
    category = _create(client, admin_headers, "Fasteners").get_json()
    with app.app_context():
        db.session.add(Item(name="Bolt", category_id=category["id"], quantity=1))
        db.session.commit()

    response = client.delete(f"/api/categories/{category['id']}", headers=admin_headers)

    assert response.status_code == 400
    assert response.get_json()["error"] == "Cannot delete category with existing items."


def test_delete_is_a_soft_delete(app, client, admin_headers):
    category = _create(client, admin_headers, "Obsolete").get_json()

    response = client.delete(f"/api/categories/{category['id']}", headers=admin_headers)

    assert response.status_code == 200
    assert client.get(f"/api/categories/{category['id']}", headers=admin_headers).status_code == 404
    with app.app_context():
        assert db.session.get(Category, category["id"]).is_active is False

    # The name is free again once the old category is retired.
    assert _create(client, admin_headers, "Obsolete").status_code == 201


def test_category_stats(app, client, admin_headers):
    category = _create(client, admin_headers, "Paint").get_json()
    with app.app_context():
        db.session.add_all(
            [
                Item(name="Red", category_id=category["id"], quantity=10),
                Item(name="Blue", category_id=category["id"], quantity=2),
                Item(name="Green", category_id=category["id"], quantity=0),
            ]
        )
        db.session.commit()

    stats = client.get(f"/api/categories/{category['id']}/stats", headers=admin_headers).get_json()

    assert stats["total_items"] == 3
    assert stats["total_quantity"] == 12
    assert stats["low_stock_count"] == 1
    assert stats["out_of_stock_count"] == 1

    all_stats = client.get("/api/categories/stats", headers=admin_headers).get_json()
    assert [row["name"] for row in all_stats] == ["Paint"]


def test_default_users_cannot_create_categories(app, client):
    headers = _user_headers(app, client, "viewer", "default_user")

    assert _create(client, headers, "Nope").status_code == 403
    assert client.get("/api/categories", headers=headers).status_code == 200


def test_managers_can_create_but_not_delete(app, client):
    headers = _user_headers(app, client, "manny", "manager")

    category = _create(client, headers, "Glue")
    assert category.status_code == 201
    response = client.delete(f"/api/categories/{category.get_json()['id']}", headers=headers)
    assert response.status_code == 403
