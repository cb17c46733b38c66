"""Receiving purchased stock against approved purchase requests."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
import logging
from typing import Mapping

from flask import current_app, has_app_context
from sqlalchemy import select

from stockroom.errors import InvalidState, NotFound, ValidationError
from stockroom.extensions import db
from stockroom.models import Item, PurchaseItemMapping, PurchaseRequest, Transaction
from stockroom.services.stock_ledger import apply_stock_change
from stockroom.services.transactions import atomic

logger = logging.getLogger(__name__)

DEFAULT_SYSTEM_ACTOR = "System"


@dataclass(frozen=True)
class FulfillmentResult:
    item: Item
    request: PurchaseRequest


def _system_actor() -> str:
    if has_app_context():
        return current_app.config.get("SYSTEM_ACTOR") or DEFAULT_SYSTEM_ACTOR
    return DEFAULT_SYSTEM_ACTOR


def lock_purchase_request(request_id: int) -> PurchaseRequest:
    purchase_request = db.session.execute(
        select(PurchaseRequest)
        .where(PurchaseRequest.id == request_id)
        .with_for_update()
        .execution_options(populate_existing=True)
    ).scalar_one_or_none()
    if purchase_request is None:
        raise NotFound(f"Purchase request {request_id} not found.")
    return purchase_request


def complete_purchase_request(
    request_id: int,
    item_name: str,
    quantity: int,
    location: str | None = None,
    properties: Mapping[str, str] | None = None,
    notes: str | None = None,
) -> FulfillmentResult:
    """Receive one unit of an approved request into inventory.

    Each call creates a new item, records the received quantity as a ledger
    addition and counts as exactly one completed unit of the request,
    whatever ``quantity`` was received.
    """

    if not item_name or not item_name.strip():
        raise ValidationError("An item name is required.")

    actor = _system_actor()
    with atomic():
        purchase_request = lock_purchase_request(request_id)
        if purchase_request.status != PurchaseRequest.STATUS_APPROVED:
            raise InvalidState("Purchase request must be approved before completion.")

        item = Item(
            name=item_name.strip(),
            category_id=purchase_request.category_id,
            description=purchase_request.description,
            quantity=0,
            initial_quantity=0,
            location=location,
            properties=dict(properties or {}),
        )
        db.session.add(item)
        db.session.flush()

        apply_stock_change(
            item.id,
            quantity,
            Transaction.TYPE_ADDITION,
            f"Purchase request #{purchase_request.id} completed",
            actor,
        )

        db.session.add(
            PurchaseItemMapping(
                purchase_request_id=purchase_request.id,
                item_id=item.id,
                quantity_added=quantity,
                added_by=actor,
                notes=notes,
            )
        )

        purchase_request.completed_units = (purchase_request.completed_units or 0) + 1
        if notes:
            purchase_request.notes = notes
        if purchase_request.completed_units >= purchase_request.units_count:
            purchase_request.status = PurchaseRequest.STATUS_COMPLETED
            purchase_request.completed_at = datetime.utcnow()
        db.session.flush()

    logger.info(
        "Purchase request %s received item %s (%s/%s units, status %s)",
        purchase_request.id,
        item.id,
        purchase_request.completed_units,
        purchase_request.units_count,
        purchase_request.status,
    )
    return FulfillmentResult(item=item, request=purchase_request)


def update_purchase_request_status(
    request_id: int, status: str, notes: str | None = None
) -> PurchaseRequest:
    if status not in PurchaseRequest.status_values():
        raise ValidationError(f"Unknown purchase request status: {status!r}.")

    with atomic():
        purchase_request = lock_purchase_request(request_id)
        current = purchase_request.status
        if status != current:
            allowed = PurchaseRequest.ALLOWED_TRANSITIONS.get(current, set())
            if status not in allowed:
                raise InvalidState(
                    f"Cannot move a {current} purchase request to {status}."
                )
            purchase_request.status = status
        if notes:
            purchase_request.notes = notes
        db.session.flush()

    logger.info("Purchase request %s status %s -> %s", request_id, current, status)
    return purchase_request
