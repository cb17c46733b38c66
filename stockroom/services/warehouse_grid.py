from __future__ import annotations

from typing import Any, Iterable, Mapping

from sqlalchemy import select

from stockroom.extensions import db
from stockroom.models import Category, Item
from stockroom.utils.location_code import DecodedLocation, decode_location

DEFAULT_GROUP = "loose"


def _field(record: Any, name: str, default=None):
    if isinstance(record, Mapping):
        return record.get(name, default)
    return getattr(record, name, default)


def _category_name(record: Any) -> str | None:
    name = _field(record, "category_name")
    if name is None:
        category = _field(record, "category")
        name = getattr(category, "name", None)
    return name


def _group_key(decoded: DecodedLocation) -> tuple[str, str]:
    if decoded.color:
        return "color", decoded.color
    if decoded.box_name:
        return "box", decoded.box_name
    return DEFAULT_GROUP, DEFAULT_GROUP


def _item_entry(record: Any, decoded: DecodedLocation) -> dict[str, Any]:
    return {
        "id": _field(record, "id"),
        "name": _field(record, "name"),
        "description": _field(record, "description"),
        "quantity": _field(record, "quantity"),
        "category_id": _field(record, "category_id"),
        "category_name": _category_name(record),
        "location": _field(record, "location"),
        "box_name": decoded.box_name,
        "color": decoded.color,
        "group_number": decoded.group_number,
        "box_number": decoded.box_number,
        "properties": dict(_field(record, "properties") or {}),
    }


def project_warehouse(items: Iterable[Any]) -> dict[str, list[dict[str, Any]]]:
    """Group located items by grid cell, then by colour or box.

    Items without a location, or whose cell lies outside the A1-C6 grid, are
    left out. Groups and items keep the order they were first seen in.
    """

    cells: dict[str, dict[tuple[str, str], dict[str, Any]]] = {}
    for record in items:
        location = _field(record, "location")
        if not location:
            continue
        decoded = decode_location(location)
        if not decoded.in_grid:
            continue

        kind, key = _group_key(decoded)
        groups = cells.setdefault(decoded.cell, {})
        group = groups.get((kind, key))
        if group is None:
            # colour groups report the first-seen group number
            group = {
                "key": key,
                "kind": kind,
                "color": decoded.color,
                "group_number": decoded.group_number if kind == "color" else None,
                "box_name": decoded.box_name,
                "items": [],
            }
            groups[(kind, key)] = group
        group["items"].append(_item_entry(record, decoded))

    return {cell: list(groups.values()) for cell, groups in cells.items()}


def located_items() -> list[Item]:
    return list(
        db.session.execute(
            select(Item)
            .join(Category, Category.id == Item.category_id)
            .where(Item.location.isnot(None), Item.location != "")
            .order_by(Item.location, Item.name)
        ).scalars()
    )


def load_warehouse() -> dict[str, list[dict[str, Any]]]:
    return project_warehouse(located_items())
