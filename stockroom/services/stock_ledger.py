"""Quantity changes and the append-only transaction ledger.

``apply_stock_change`` is the only code path that writes ``Item.quantity``.
It flushes but never commits; callers wrap it in
:func:`stockroom.services.transactions.atomic`.
"""

from __future__ import annotations

import logging

from sqlalchemy import case, func, select

from stockroom.errors import InsufficientStock, NotFound, ValidationError
from stockroom.extensions import db
from stockroom.models import Item, Transaction

logger = logging.getLogger(__name__)


def lock_item(item_id: int) -> Item:
    """Load an item with a row lock, refreshing any cached state."""

    item = db.session.execute(
        select(Item)
        .where(Item.id == item_id)
        .with_for_update()
        .execution_options(populate_existing=True)
    ).scalar_one_or_none()
    if item is None:
        raise NotFound(f"Item {item_id} not found.")
    return item


def apply_stock_change(
    item_id: int,
    quantity: int,
    change_type: str,
    purpose: str | None,
    user_name: str | None,
) -> Item:
    if change_type not in Transaction.TYPES:
        raise ValidationError(f"Unknown transaction type: {change_type!r}.")
    if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity <= 0:
        raise ValidationError("Quantity must be a positive whole number.")

    item = lock_item(item_id)
    current = item.quantity or 0

    if change_type == Transaction.TYPE_WITHDRAWAL:
        if current < quantity:
            raise InsufficientStock(item.id, quantity, current)
        item.quantity = current - quantity
    else:
        item.quantity = current + quantity

    db.session.add(
        Transaction(
            item_id=item.id,
            type=change_type,
            quantity=quantity,
            purpose=purpose,
            user_name=user_name,
        )
    )
    db.session.flush()

    logger.info(
        "Recorded %s of %s for item %s (now %s) by %s",
        change_type,
        quantity,
        item.id,
        item.quantity,
        user_name or "-",
    )
    return item


def ledger_balance(item_id: int) -> int:
    """Net quantity change recorded in the ledger for an item."""

    additions = func.coalesce(
        func.sum(
            case(
                (Transaction.type == Transaction.TYPE_ADDITION, Transaction.quantity),
                else_=0,
            )
        ),
        0,
    )
    withdrawals = func.coalesce(
        func.sum(
            case(
                (Transaction.type == Transaction.TYPE_WITHDRAWAL, Transaction.quantity),
                else_=0,
            )
        ),
        0,
    )
    added, withdrawn = db.session.execute(
        select(additions, withdrawals).where(Transaction.item_id == item_id)
    ).one()
    return int(added or 0) - int(withdrawn or 0)


def reconcile_item(item: Item) -> bool:
    """True when the ledger explains the item's current quantity."""

    return (item.initial_quantity or 0) + ledger_balance(item.id) == (item.quantity or 0)
