from __future__ import annotations

import json
from typing import Any

from flask import Blueprint, current_app, jsonify, request
from flask_login import current_user
from sqlalchemy.orm import joinedload

from stockroom.errors import InvalidState, NotFound, ValidationError
from stockroom.models import Category, Item, Transaction, db
from stockroom.security import login_required, require_admin, require_editor
from stockroom.services.stock_ledger import apply_stock_change
from stockroom.services.transactions import atomic
from stockroom.services.warehouse_grid import load_warehouse
from stockroom.services.withdrawals import withdraw_single
from stockroom.utils.location_code import decode_location, encode_location
from stockroom.utils.validation import (
    clean_text,
    json_body,
    pagination_args,
    pagination_meta,
    parse_int,
    parse_properties,
    raise_if_errors,
)


bp = Blueprint("items", __name__, url_prefix="/api/items")

_STRUCTURED_LOCATION_FIELDS = (
    "cell",
    "box_name",
    "color",
    "group_number",
    "box_number",
    "total_boxes",
)


def _get_item(item_id: int) -> Item:
    item = db.session.get(Item, item_id)
    if item is None:
        raise NotFound("Item not found.")
    return item


def _require_active_category(category_id: int) -> Category:
    category = Category.query.filter_by(id=category_id, is_active=True).first()
    if category is None:
        raise ValidationError("Invalid category ID.")
    return category


def _location_from_payload(payload: dict[str, Any]) -> tuple[bool, str | None]:
    """Return ``(provided, location)`` from a raw or structured payload."""

    structured = payload.get("location")
    if isinstance(structured, dict):
        fields = structured
    elif "cell" in payload:
        fields = {key: payload.get(key) for key in _STRUCTURED_LOCATION_FIELDS}
    else:
        if "location" not in payload:
            return False, None
        return True, clean_text(structured)

    errors: list[str] = []
    numbers: dict[str, int | None] = {}
    for key, label in (
        ("group_number", "Group number"),
        ("box_number", "Box number"),
        ("total_boxes", "Total boxes"),
    ):
        numbers[key], error = parse_int(fields.get(key), field_label=label, minimum=0)
        if error:
            errors.append(error)
    raise_if_errors(errors)

    try:
        location = encode_location(
            clean_text(fields.get("cell")) or "",
            box_name=clean_text(fields.get("box_name")),
            color=clean_text(fields.get("color")),
            **numbers,
        )
    except ValueError as exc:
        raise ValidationError(str(exc)) from exc
    return True, location


def _log_off_grid(item: Item) -> None:
    if item.location and not decode_location(item.location).in_grid:
        current_app.logger.info(
            "Item %s stored with off-grid location %r", item.id, item.location
        )


@bp.get("")
@login_required
def list_items():
    page, limit = pagination_args()
    query = Item.query.options(joinedload(Item.category)).join(
        Category, Category.id == Item.category_id
    )

    category = clean_text(request.args.get("category"))
    if category:
        if category.isdigit():
            query = query.filter(Item.category_id == int(category))
        else:
            query = query.filter(Category.name == category)

    search = clean_text(request.args.get("search"))
    if search:
        query = query.filter(Item.name.ilike(f"%{search}%"))

    location = clean_text(request.args.get("location"))
    if location:
        query = query.filter(Item.location.ilike(f"%{location}%"))

    raw_filters = request.args.get("filters") or "{}"
    try:
        filters = json.loads(raw_filters)
    except ValueError:
        filters = {}
    if isinstance(filters, dict):
        for key, value in filters.items():
            if value is None or value == "":
                continue
            query = query.filter(Item.properties[str(key)].as_string() == str(value))

    total = query.count()
    items = query.order_by(Item.name, Item.id).offset((page - 1) * limit).limit(limit).all()
    return jsonify(
        {
            "items": [item.to_dict() for item in items],
            "pagination": pagination_meta(page, limit, total),
        }
    )


@bp.get("/warehouse")
@login_required
def warehouse_data():
    return jsonify(load_warehouse())


@bp.get("/<int:item_id>")
@login_required
def get_item(item_id: int):
    return jsonify(_get_item(item_id).to_dict())


@bp.post("")
@require_editor
def create_item():
    payload = json_body()
    name = clean_text(payload.get("name"))
    category_id, category_error = parse_int(
        payload.get("category_id"), field_label="Category ID", minimum=1
    )
    quantity, quantity_error = parse_int(
        payload.get("quantity", 0), field_label="Quantity", minimum=0
    )
    properties, properties_error = parse_properties(payload.get("properties"))

    errors: list[str] = []
    if not name:
        errors.append("Item name is required.")
    if category_error or category_id is None:
        errors.append(category_error or "Category ID is required.")
    for message in (quantity_error, properties_error):
        if message:
            errors.append(message)
    raise_if_errors(errors)

    _require_active_category(category_id)
    _, location = _location_from_payload(payload)

    quantity = quantity or 0
    item = Item(
        name=name,
        category_id=category_id,
        quantity=quantity,
        initial_quantity=quantity,
        location=location,
        description=clean_text(payload.get("description")),
        properties=properties or {},
    )
    db.session.add(item)
    db.session.commit()
    _log_off_grid(item)
    return jsonify(item.to_dict()), 201


@bp.put("/<int:item_id>")
@require_editor
def update_item(item_id: int):
    item = _get_item(item_id)
    payload = json_body()

    if "quantity" in payload:
        raise ValidationError(
            "Quantity cannot be edited directly; use withdraw or restock."
        )

    errors: list[str] = []
    if "name" in payload:
        name = clean_text(payload.get("name"))
        if not name:
            errors.append("Item name cannot be empty.")
        else:
            item.name = name

    if "category_id" in payload:
        category_id, category_error = parse_int(
            payload.get("category_id"), field_label="Category ID", minimum=1
        )
        if category_error or category_id is None:
            errors.append(category_error or "Category ID is required.")
        else:
            _require_active_category(category_id)
            item.category_id = category_id

    if "description" in payload:
        item.description = clean_text(payload.get("description"))

    if "properties" in payload:
        properties, properties_error = parse_properties(payload.get("properties"))
        if properties_error:
            errors.append(properties_error)
        else:
            item.properties = properties or {}

    if errors:
        db.session.rollback()
        raise ValidationError(errors=errors)

    provided, location = _location_from_payload(payload)
    if provided:
        item.location = location

    db.session.commit()
    _log_off_grid(item)
    return jsonify(item.to_dict())


@bp.delete("/<int:item_id>")
@require_admin
def delete_item(item_id: int):
    item = _get_item(item_id)
    if Transaction.query.filter_by(item_id=item.id).count():
        raise InvalidState("Cannot delete an item with ledger history.")
    db.session.delete(item)
    db.session.commit()
    current_app.logger.info("Item %s deleted by %s", item_id, current_user.username)
    return jsonify({"message": "Item deleted successfully"})


def _stock_change_args(payload: dict[str, Any], *, purpose_required: bool):
    quantity, quantity_error = parse_int(
        payload.get("quantity"), field_label="Quantity", minimum=1
    )
    purpose = clean_text(payload.get("purpose"))
    user_name = clean_text(payload.get("user_name")) or current_user.username

    errors: list[str] = []
    if quantity_error or quantity is None:
        errors.append(quantity_error or "Quantity is required.")
    if purpose_required and not purpose:
        errors.append("Purpose is required.")
    raise_if_errors(errors)
    return quantity, purpose, user_name


@bp.post("/<int:item_id>/withdraw")
@login_required
def withdraw_item(item_id: int):
    quantity, purpose, user_name = _stock_change_args(json_body(), purpose_required=True)
    item = withdraw_single(item_id, quantity, purpose, user_name)
    return jsonify(item.to_dict())


@bp.post("/<int:item_id>/restock")
@require_editor
def restock_item(item_id: int):
    quantity, purpose, user_name = _stock_change_args(json_body(), purpose_required=False)
    with atomic():
        item = apply_stock_change(
            item_id,
            quantity,
            Transaction.TYPE_ADDITION,
            purpose or "Restock",
            user_name,
        )
    return jsonify(item.to_dict())


@bp.put("/<int:item_id>/location")
@require_editor
def update_item_location(item_id: int):
    item = _get_item(item_id)
    provided, location = _location_from_payload(json_body())
    if not provided or not location:
        raise ValidationError("Location is required.")

    item.location = location
    db.session.commit()
    _log_off_grid(item)
    return jsonify({**item.to_dict(), "decoded_location": decode_location(location).as_dict()})
