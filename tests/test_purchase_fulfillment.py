import os
import sys

import pytest

sys.path.append(os.path.join(os.path.dirname(__file__), ".."))

from stockroom import create_app
from stockroom.errors import InvalidState, NotFound, ValidationError
from stockroom.extensions import db
from stockroom.models import (
    Category,
    Item,
    PurchaseItemMapping,
    PurchaseRequest,
    Transaction,
)
from stockroom.services.purchase_fulfillment import (
    complete_purchase_request,
    update_purchase_request_status,
)
from stockroom.services.stock_ledger import reconcile_item


@pytest.fixture
def app():
    app = create_app(
        {
            "TESTING": True,
            "SQLALCHEMY_DATABASE_URI": "sqlite:///:memory:",
            "SYSTEM_ACTOR": "Receiving",
        }
    )
    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()


def _request(status=PurchaseRequest.STATUS_APPROVED, units_count=1, **extra):
    category = Category.query.filter_by(name="Sensors").first()
    if category is None:
        category = Category(name="Sensors")
        db.session.add(category)
        db.session.flush()
    purchase_request = PurchaseRequest(
        category_id=category.id,
        units_count=units_count,
        status=status,
        requester="alice",
        description=extra.pop("description", "Temperature sensors"),
        **extra,
    )
    db.session.add(purchase_request)
    db.session.commit()
    return purchase_request.id


def test_completing_single_unit_request(app):
    request_id = _request()

    result = complete_purchase_request(
        request_id, "DS18B20", 12, location="A3:blue1", properties={"range": "-55..125C"}
    )

    purchase_request = db.session.get(PurchaseRequest, request_id)
    assert purchase_request.status == PurchaseRequest.STATUS_COMPLETED
    assert purchase_request.completed_units == 1
    assert purchase_request.completed_at is not None

    item = result.item
    assert item.name == "DS18B20"
    assert item.quantity == 12
    assert item.initial_quantity == 0
    assert item.location == "A3:blue1"
    assert item.description == "Temperature sensors"
    assert item.properties == {"range": "-55..125C"}
    assert item.category_id == purchase_request.category_id
    assert reconcile_item(item)

    addition = Transaction.query.filter_by(item_id=item.id).one()
    assert addition.type == Transaction.TYPE_ADDITION
    assert addition.quantity == 12
    assert addition.purpose == f"Purchase request #{request_id} completed"
    assert addition.user_name == "Receiving"

    mapping = PurchaseItemMapping.query.one()
    assert mapping.item_id == item.id
    assert mapping.quantity_added == 12
    assert mapping.added_by == "Receiving"


def test_multi_unit_request_stays_approved_until_last_unit(app):
    request_id = _request(units_count=2)

    first = complete_purchase_request(request_id, "Probe batch 1", 5, notes="First box")
    assert first.request.status == PurchaseRequest.STATUS_APPROVED
    assert first.request.completed_units == 1
    assert first.request.notes == "First box"

    second = complete_purchase_request(request_id, "Probe batch 2", 7)
    assert second.request.status == PurchaseRequest.STATUS_COMPLETED
    assert second.request.completed_units == 2
    assert second.request.notes == "First box"
    assert Item.query.count() == 2


@pytest.mark.parametrize(
    "status",
    [
        PurchaseRequest.STATUS_PENDING,
        PurchaseRequest.STATUS_CANCELLED,
        PurchaseRequest.STATUS_COMPLETED,
    ],
)
def test_only_approved_requests_can_be_completed(app, status):
    request_id = _request(status=status)

    with pytest.raises(InvalidState):
        complete_purchase_request(request_id, "Probe", 1)

    assert Item.query.count() == 0
    assert Transaction.query.count() == 0
    assert db.session.get(PurchaseRequest, request_id).completed_units == 0


def test_invalid_quantity_rolls_back_new_item(app):
    request_id = _request()

    with pytest.raises(ValidationError):
        complete_purchase_request(request_id, "Probe", 0)

    assert Item.query.count() == 0
    assert db.session.get(PurchaseRequest, request_id).status == PurchaseRequest.STATUS_APPROVED


def test_item_name_is_required(app):
    request_id = _request()

    with pytest.raises(ValidationError):
        complete_purchase_request(request_id, "   ", 3)


def test_unknown_request(app):
    with pytest.raises(NotFound):
        complete_purchase_request(321, "Probe", 1)


def test_status_transitions(app):
    request_id = _request(status=PurchaseRequest.STATUS_PENDING)

    approved = update_purchase_request_status(
        request_id, PurchaseRequest.STATUS_APPROVED, notes="Budget ok"
    )
    assert approved.status == PurchaseRequest.STATUS_APPROVED
    assert approved.notes == "Budget ok"

    with pytest.raises(InvalidState):
        update_purchase_request_status(request_id, PurchaseRequest.STATUS_PENDING)

    with pytest.raises(InvalidState):
        update_purchase_request_status(request_id, PurchaseRequest.STATUS_COMPLETED)

    cancelled = update_purchase_request_status(request_id, PurchaseRequest.STATUS_CANCELLED)
    assert cancelled.status == PurchaseRequest.STATUS_CANCELLED

    with pytest.raises(InvalidState):
        update_purchase_request_status(request_id, PurchaseRequest.STATUS_APPROVED)


def test_unknown_status_is_a_validation_error(app):
    request_id = _request(status=PurchaseRequest.STATUS_PENDING)

    with pytest.raises(ValidationError):
        update_purchase_request_status(request_id, "shipped")
