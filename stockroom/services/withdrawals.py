"""Withdrawing stock for a single item or a whole preset kit."""

from __future__ import annotations

from dataclasses import dataclass
import logging

from sqlalchemy import func, select

from stockroom.errors import NotFound
from stockroom.extensions import db
from stockroom.models import (
    Category,
    Item,
    Preset,
    PresetItem,
    PresetWithdrawalMapping,
    Transaction,
)
from stockroom.services.stock_ledger import apply_stock_change
from stockroom.services.transactions import atomic

logger = logging.getLogger(__name__)

STATUS_SUCCESS = "success"
STATUS_PARTIAL = "partial"
STATUS_NOT_FOUND = "not_found"


@dataclass(frozen=True)
class CategoryWithdrawal:
    category_id: int
    category: str
    requested: int
    withdrawn: int
    status: str

    def as_dict(self) -> dict[str, object]:
        return {
            "category_id": self.category_id,
            "category": self.category,
            "requested": self.requested,
            "withdrawn": self.withdrawn,
            "status": self.status,
        }


def withdraw_single(item_id: int, quantity: int, purpose: str, user_name: str) -> Item:
    with atomic():
        item = apply_stock_change(
            item_id, quantity, Transaction.TYPE_WITHDRAWAL, purpose, user_name
        )
    return item


def _load_preset(preset_id: int) -> Preset:
    preset = db.session.get(Preset, preset_id)
    if preset is None:
        raise NotFound(f"Preset {preset_id} not found.")
    return preset


def _ordered_preset_items(preset_id: int) -> list[tuple[PresetItem, str]]:
    rows = db.session.execute(
        select(PresetItem, Category.name)
        .join(Category, Category.id == PresetItem.category_id)
        .where(PresetItem.preset_id == preset_id)
        .order_by(Category.name, PresetItem.id)
    ).all()
    return [(preset_item, category_name) for preset_item, category_name in rows]


def _lock_stocked_items(category_id: int) -> list[Item]:
    # Largest stock first keeps the number of touched items low; the id
    # tie-break keeps lock order deterministic across concurrent withdrawals.
    return list(
        db.session.execute(
            select(Item)
            .where(Item.category_id == category_id, Item.quantity > 0)
            .order_by(Item.quantity.desc(), Item.id)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalars()
    )


def _withdraw_for_preset_item(
    preset_id: int,
    preset_item: PresetItem,
    category_name: str,
    *,
    user_name: str,
    purpose: str,
) -> CategoryWithdrawal:
    requested = preset_item.quantity_needed
    stocked_items = _lock_stocked_items(preset_item.category_id)

    if not stocked_items:
        return CategoryWithdrawal(
            category_id=preset_item.category_id,
            category=category_name,
            requested=requested,
            withdrawn=0,
            status=STATUS_NOT_FOUND,
        )

    mapping_note = "Withdrawn for preset: " + (
        preset_item.requirements or "No specific requirements"
    )
    remaining = requested
    withdrawn = 0
    for item in stocked_items:
        if remaining <= 0:
            break
        take = min(remaining, item.quantity)
        if take <= 0:
            continue
        apply_stock_change(item.id, take, Transaction.TYPE_WITHDRAWAL, purpose, user_name)
        db.session.add(
            PresetWithdrawalMapping(
                preset_id=preset_id,
                item_id=item.id,
                quantity_withdrawn=take,
                withdrawn_by=user_name,
                notes=mapping_note,
            )
        )
        remaining -= take
        withdrawn += take

    return CategoryWithdrawal(
        category_id=preset_item.category_id,
        category=category_name,
        requested=requested,
        withdrawn=withdrawn,
        status=STATUS_SUCCESS if withdrawn >= requested else STATUS_PARTIAL,
    )


def withdraw_preset(preset_id: int, user_name: str, purpose: str) -> list[CategoryWithdrawal]:
    """Withdraw every category a preset needs in one transaction.

    Shortfalls are reported per category as ``partial`` or ``not_found``
    rather than raised; only unexpected failures roll the whole preset back.
    """

    with atomic():
        _load_preset(preset_id)
        results = [
            _withdraw_for_preset_item(
                preset_id,
                preset_item,
                category_name,
                user_name=user_name,
                purpose=purpose,
            )
            for preset_item, category_name in _ordered_preset_items(preset_id)
        ]
        db.session.flush()

    logger.info(
        "Preset %s withdrawal by %s: %s",
        preset_id,
        user_name,
        ", ".join(f"{result.category}={result.status}" for result in results) or "empty",
    )
    return results


def check_preset_availability(preset_id: int) -> list[dict[str, object]]:
    _load_preset(preset_id)

    stock = (
        select(
            Item.category_id.label("category_id"),
            func.coalesce(func.sum(Item.quantity), 0).label("available_quantity"),
            func.count(Item.id).label("available_items_count"),
        )
        .where(Item.quantity > 0)
        .group_by(Item.category_id)
        .subquery()
    )

    rows = db.session.execute(
        select(
            PresetItem,
            Category.name,
            func.coalesce(stock.c.available_quantity, 0),
            func.coalesce(stock.c.available_items_count, 0),
        )
        .join(Category, Category.id == PresetItem.category_id)
        .outerjoin(stock, stock.c.category_id == PresetItem.category_id)
        .where(PresetItem.preset_id == preset_id)
        .order_by(Category.name, PresetItem.id)
    ).all()

    availability = []
    for preset_item, category_name, available_quantity, items_count in rows:
        available_quantity = int(available_quantity or 0)
        if available_quantity >= preset_item.quantity_needed:
            status = "sufficient"
        elif available_quantity > 0:
            status = "low"
        else:
            status = "none"
        availability.append(
            {
                "category_id": preset_item.category_id,
                "category_name": category_name,
                "quantity_needed": preset_item.quantity_needed,
                "requirements": preset_item.requirements,
                "notes": preset_item.notes,
                "available_quantity": available_quantity,
                "available_items_count": int(items_count or 0),
                "status": status,
            }
        )
    return availability
