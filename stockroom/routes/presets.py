from __future__ import annotations

from typing import Any

from flask import Blueprint, current_app, jsonify
from flask_login import current_user

from stockroom.errors import NotFound, ValidationError
from stockroom.models import Category, Preset, PresetItem, db
from stockroom.security import login_required, require_admin, require_editor
from stockroom.services.withdrawals import check_preset_availability, withdraw_preset
from stockroom.utils.validation import clean_text, json_body, parse_int, raise_if_errors


bp = Blueprint("presets", __name__, url_prefix="/api/presets")


def _get_preset(preset_id: int) -> Preset:
    preset = db.session.get(Preset, preset_id)
    if preset is None:
        raise NotFound("Preset not found.")
    return preset


def _parse_preset_items(raw_items: Any, *, allow_empty: bool) -> list[PresetItem]:
    if not isinstance(raw_items, list) or (not raw_items and not allow_empty):
        raise ValidationError("Items must be a non-empty list.")

    errors: list[str] = []
    parsed: list[PresetItem] = []
    for index, raw in enumerate(raw_items, start=1):
        if not isinstance(raw, dict):
            errors.append(f"Item {index} must be an object.")
            continue
        category_id, category_error = parse_int(
            raw.get("category_id"), field_label=f"Item {index} category ID", minimum=1
        )
        quantity_needed, quantity_error = parse_int(
            raw.get("quantity_needed"),
            field_label=f"Item {index} quantity needed",
            minimum=1,
        )
        if category_error or category_id is None:
            errors.append(category_error or f"Item {index} category ID is required.")
            continue
        if quantity_error:
            errors.append(quantity_error)
            continue
        parsed.append(
            PresetItem(
                category_id=category_id,
                quantity_needed=quantity_needed or 1,
                requirements=clean_text(raw.get("requirements")),
                notes=clean_text(raw.get("notes")),
            )
        )
    raise_if_errors(errors)

    category_ids = {preset_item.category_id for preset_item in parsed}
    if category_ids:
        known = {
            category_id
            for (category_id,) in db.session.query(Category.id).filter(
                Category.id.in_(category_ids)
            )
        }
        missing = sorted(category_ids - known)
        if missing:
            raise ValidationError(
                "Unknown category ID(s): " + ", ".join(str(value) for value in missing)
            )
    return parsed


@bp.get("")
@login_required
def list_presets():
    presets = Preset.query.order_by(Preset.name).all()
    return jsonify([preset.to_dict() for preset in presets])


@bp.get("/<int:preset_id>")
@login_required
def get_preset(preset_id: int):
    return jsonify(_get_preset(preset_id).to_dict(include_items=True))


@bp.post("")
@require_editor
def create_preset():
    payload = json_body()
    name = clean_text(payload.get("name"))
    if not name:
        raise ValidationError("Preset name is required.")
    preset_items = _parse_preset_items(payload.get("items"), allow_empty=False)

    preset = Preset(name=name, description=clean_text(payload.get("description")))
    preset.items = preset_items
    db.session.add(preset)
    db.session.commit()
    return jsonify(preset.to_dict(include_items=True)), 201


@bp.put("/<int:preset_id>")
@require_editor
def update_preset(preset_id: int):
    preset = _get_preset(preset_id)
    payload = json_body()

    if "name" in payload:
        name = clean_text(payload.get("name"))
        if not name:
            raise ValidationError("Preset name cannot be empty.")
        preset.name = name
    if "description" in payload:
        preset.description = clean_text(payload.get("description"))
    if "items" in payload:
        # Replaces the whole list; orphaned rows are deleted by the cascade.
        preset.items = _parse_preset_items(payload.get("items"), allow_empty=True)

    db.session.commit()
    return jsonify(preset.to_dict(include_items=True))


@bp.delete("/<int:preset_id>")
@require_admin
def delete_preset(preset_id: int):
    preset = _get_preset(preset_id)
    db.session.delete(preset)
    db.session.commit()
    return jsonify({"message": "Preset deleted successfully"})


@bp.get("/<int:preset_id>/check")
@login_required
def check_preset(preset_id: int):
    return jsonify(check_preset_availability(preset_id))


@bp.post("/<int:preset_id>/withdraw")
@login_required
def withdraw_from_preset(preset_id: int):
    payload = json_body()
    user_name = clean_text(payload.get("user_name")) or current_user.username
    purpose = clean_text(payload.get("purpose"))
    if not purpose:
        raise ValidationError("Purpose is required.")

    results = withdraw_preset(preset_id, user_name, purpose)
    current_app.logger.info(
        "Preset %s withdrawn by %s for %s", preset_id, user_name, purpose
    )
    return jsonify(
        {
            "message": "Preset withdrawal completed",
            "results": [result.as_dict() for result in results],
        }
    )
