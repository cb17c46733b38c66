from __future__ import annotations

from flask import Blueprint, current_app, jsonify
from sqlalchemy import case, func

from stockroom.errors import NotFound, ValidationError
from stockroom.models import Category, Item, db
from stockroom.security import login_required, require_admin, require_editor
from stockroom.utils.validation import (
    clean_text,
    json_body,
    parse_bool,
    parse_int,
    raise_if_errors,
)


bp = Blueprint("categories", __name__, url_prefix="/api/categories")


def _get_active_category(category_id: int) -> Category:
    category = Category.query.filter_by(id=category_id, is_active=True).first()
    if category is None:
        raise NotFound("Category not found.")
    return category


def _name_taken(name: str, *, exclude_id: int | None = None) -> bool:
    query = Category.query.filter(Category.name == name, Category.is_active.is_(True))
    if exclude_id is not None:
        query = query.filter(Category.id != exclude_id)
    return db.session.query(query.exists()).scalar()


def _stats_query():
    low_threshold = current_app.config.get("LOW_STOCK_THRESHOLD", 5)
    return (
        db.session.query(
            Category.id,
            Category.name,
            Category.description,
            func.count(Item.id).label("total_items"),
            func.coalesce(func.sum(Item.quantity), 0).label("total_quantity"),
            func.coalesce(
                func.sum(
                    case(
                        ((Item.quantity < low_threshold) & (Item.quantity > 0), 1),
                        else_=0,
                    )
                ),
                0,
            ).label("low_stock_count"),
            func.coalesce(
                func.sum(case((Item.quantity == 0, 1), else_=0)), 0
            ).label("out_of_stock_count"),
        )
        .outerjoin(Item, Item.category_id == Category.id)
        .filter(Category.is_active.is_(True))
        .group_by(Category.id, Category.name, Category.description)
        .order_by(Category.name)
    )


def _stats_row(row) -> dict:
    return {
        "id": row.id,
        "name": row.name,
        "description": row.description,
        "total_items": int(row.total_items or 0),
        "total_quantity": int(row.total_quantity or 0),
        "low_stock_count": int(row.low_stock_count or 0),
        "out_of_stock_count": int(row.out_of_stock_count or 0),
    }


@bp.get("")
@login_required
def list_categories():
    categories = Category.query.filter_by(is_active=True).order_by(Category.name).all()
    return jsonify([category.to_dict() for category in categories])


@bp.get("/stats")
@login_required
def all_category_stats():
    return jsonify([_stats_row(row) for row in _stats_query().all()])


@bp.get("/<int:category_id>")
@login_required
def get_category(category_id: int):
    return jsonify(_get_active_category(category_id).to_dict())


@bp.get("/<int:category_id>/stats")
@login_required
def category_stats(category_id: int):
    row = _stats_query().filter(Category.id == category_id).first()
    if row is None:
        raise NotFound("Category not found.")
    return jsonify(_stats_row(row))


@bp.post("")
@require_editor
def create_category():
    payload = json_body()
    name = clean_text(payload.get("name"))
    description = clean_text(payload.get("description"))
    parent_id, parent_error = parse_int(payload.get("parent_id"), field_label="Parent ID")

    errors: list[str] = []
    if not name:
        errors.append("Category name is required.")
    if parent_error:
        errors.append(parent_error)
    raise_if_errors(errors)

    if parent_id is not None:
        _get_active_category(parent_id)
    if _name_taken(name):
        raise ValidationError("Category with this name already exists.")

    category = Category(name=name, description=description, parent_id=parent_id)
    db.session.add(category)
    db.session.commit()
    return jsonify(category.to_dict()), 201


@bp.put("/<int:category_id>")
@require_editor
def update_category(category_id: int):
    category = db.session.get(Category, category_id)
    if category is None:
        raise NotFound("Category not found.")

    payload = json_body()
    errors: list[str] = []

    if "name" in payload:
        name = clean_text(payload.get("name"))
        if not name:
            errors.append("Category name cannot be empty.")
        elif _name_taken(name, exclude_id=category.id):
            errors.append("Category with this name already exists.")
        else:
            category.name = name

    if "description" in payload:
        category.description = clean_text(payload.get("description"))

    if "parent_id" in payload:
        parent_id, parent_error = parse_int(payload.get("parent_id"), field_label="Parent ID")
        if parent_error:
            errors.append(parent_error)
        elif parent_id == category.id:
            errors.append("A category cannot be its own parent.")
        else:
            if parent_id is not None:
                _get_active_category(parent_id)
            category.parent_id = parent_id

    if "is_active" in payload:
        is_active, active_error = parse_bool(payload.get("is_active"), field_label="is_active")
        if active_error:
            errors.append(active_error)
        elif is_active and not category.is_active:
            # names are unique among active categories
            if _name_taken(category.name, exclude_id=category.id):
                errors.append("Category with this name already exists.")
            else:
                category.is_active = True
        elif is_active is not None:
            category.is_active = is_active

    if errors:
        db.session.rollback()
        raise ValidationError(errors=errors)

    db.session.commit()
    return jsonify(category.to_dict())


@bp.delete("/<int:category_id>")
@require_admin
def delete_category(category_id: int):
    category = db.session.get(Category, category_id)
    if category is None:
        raise NotFound("Category not found.")

    item_count = Item.query.filter_by(category_id=category.id).count()
    if item_count:
        raise ValidationError("Cannot delete category with existing items.")

    category.is_active = False
    db.session.commit()
    current_app.logger.info("Category %s retired", category.id)
    return jsonify({"message": "Category deleted successfully"})
