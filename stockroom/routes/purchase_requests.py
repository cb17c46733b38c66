"""JSON endpoints for requesting, approving and receiving purchases."""

from __future__ import annotations

from flask import Blueprint, current_app, jsonify, request
from flask_login import current_user
from sqlalchemy import case, or_

from stockroom.errors import NotFound, ValidationError
from stockroom.models import Category, PurchaseRequest, db
from stockroom.security import login_required, require_admin, require_editor
from stockroom.services.purchase_fulfillment import (
    complete_purchase_request,
    update_purchase_request_status,
)
from stockroom.utils.validation import (
    clean_text,
    json_body,
    pagination_args,
    pagination_meta,
    parse_date,
    parse_int,
    parse_properties,
    raise_if_errors,
)


bp = Blueprint("purchase_requests", __name__, url_prefix="/api/purchase-requests")

_STATUS_ORDER = case(
    (PurchaseRequest.status == PurchaseRequest.STATUS_PENDING, 1),
    (PurchaseRequest.status == PurchaseRequest.STATUS_APPROVED, 2),
    (PurchaseRequest.status == PurchaseRequest.STATUS_COMPLETED, 3),
    else_=4,
)


def _get_request(request_id: int) -> PurchaseRequest:
    purchase_request = db.session.get(PurchaseRequest, request_id)
    if purchase_request is None:
        raise NotFound("Purchase request not found.")
    return purchase_request


@bp.get("")
@login_required
def list_requests():
    page, limit = pagination_args()
    query = PurchaseRequest.query

    errors: list[str] = []
    status = clean_text(request.args.get("status"))
    if status:
        if status not in PurchaseRequest.status_values():
            errors.append(f"Unknown status filter: {status}.")
        query = query.filter(PurchaseRequest.status == status)

    search = clean_text(request.args.get("search"))
    if search:
        pattern = f"%{search}%"
        query = query.filter(
            or_(
                PurchaseRequest.description.ilike(pattern),
                PurchaseRequest.notes.ilike(pattern),
                PurchaseRequest.requester.ilike(pattern),
            )
        )

    deadline_from, from_error = parse_date(
        request.args.get("deadline_from"), field_label="the deadline_from date"
    )
    deadline_to, to_error = parse_date(
        request.args.get("deadline_to"), field_label="the deadline_to date"
    )
    errors.extend(message for message in (from_error, to_error) if message)
    raise_if_errors(errors)

    if deadline_from:
        query = query.filter(PurchaseRequest.deadline >= deadline_from)
    if deadline_to:
        query = query.filter(PurchaseRequest.deadline <= deadline_to)

    total = query.count()
    requests = (
        query.order_by(
            _STATUS_ORDER,
            PurchaseRequest.deadline.asc(),
            PurchaseRequest.created_at.desc(),
            PurchaseRequest.id.desc(),
        )
        .offset((page - 1) * limit)
        .limit(limit)
        .all()
    )
    return jsonify(
        {
            "requests": [purchase_request.to_dict() for purchase_request in requests],
            "pagination": pagination_meta(page, limit, total),
        }
    )


@bp.get("/<int:request_id>")
@login_required
def get_request(request_id: int):
    purchase_request = _get_request(request_id)
    data = purchase_request.to_dict()
    data["items"] = [
        {
            "item_id": mapping.item_id,
            "item_name": mapping.item.name if mapping.item else None,
            "quantity_added": mapping.quantity_added,
            "added_by": mapping.added_by,
            "notes": mapping.notes,
        }
        for mapping in purchase_request.item_mappings
    ]
    return jsonify(data)


@bp.post("")
@login_required
def create_request():
    payload = json_body()
    category_id, category_error = parse_int(
        payload.get("category_id"), field_label="Category ID", minimum=1
    )
    units_count, units_error = parse_int(
        payload.get("units_count"), field_label="Units count", minimum=1
    )
    deadline, deadline_error = parse_date(payload.get("deadline"), field_label="the deadline")
    requester = clean_text(payload.get("requester")) or current_user.username

    errors: list[str] = []
    if category_error or category_id is None:
        errors.append(category_error or "Category ID is required.")
    if units_error or units_count is None:
        errors.append(units_error or "Units count must be at least 1.")
    if deadline_error:
        errors.append(deadline_error)
    raise_if_errors(errors)

    category = Category.query.filter_by(id=category_id, is_active=True).first()
    if category is None:
        raise ValidationError("Invalid category ID.")

    purchase_request = PurchaseRequest(
        category_id=category.id,
        units_count=units_count,
        description=clean_text(payload.get("description")),
        deadline=deadline,
        requester=requester,
        notes=clean_text(payload.get("notes")),
        status=PurchaseRequest.STATUS_PENDING,
    )
    db.session.add(purchase_request)
    db.session.commit()
    current_app.logger.info(
        "Purchase request %s logged by %s for category %s",
        purchase_request.id,
        requester,
        category.name,
    )
    return jsonify(purchase_request.to_dict()), 201


@bp.put("/<int:request_id>/status")
@require_editor
def update_status(request_id: int):
    payload = json_body()
    status = clean_text(payload.get("status"))
    if not status:
        raise ValidationError("Status is required.")
    purchase_request = update_purchase_request_status(
        request_id, status, clean_text(payload.get("notes"))
    )
    return jsonify(purchase_request.to_dict())


@bp.post("/<int:request_id>/complete")
@require_editor
def complete_request(request_id: int):
    payload = json_body()
    item_name = clean_text(payload.get("item_name"))
    quantity, quantity_error = parse_int(
        payload.get("quantity_received"), field_label="Quantity received", minimum=1
    )
    location = clean_text(payload.get("location"))
    properties, properties_error = parse_properties(payload.get("properties"))

    errors: list[str] = []
    if not item_name:
        errors.append("Item name is required.")
    if quantity_error or quantity is None:
        errors.append(quantity_error or "Quantity received is required.")
    if not location:
        errors.append("Location is required.")
    if properties_error:
        errors.append(properties_error)
    raise_if_errors(errors)

    result = complete_purchase_request(
        request_id,
        item_name,
        quantity,
        location,
        properties,
        clean_text(payload.get("notes")),
    )
    return jsonify(
        {
            "message": "Purchase request item added successfully",
            "item_added": result.item.to_dict(),
            "purchase_request": result.request.to_dict(),
        }
    )


@bp.delete("/<int:request_id>")
@require_admin
def delete_request(request_id: int):
    purchase_request = _get_request(request_id)
    db.session.delete(purchase_request)
    db.session.commit()
    return jsonify({"message": "Purchase request deleted successfully"})
