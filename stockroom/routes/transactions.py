from __future__ import annotations

from datetime import datetime, timedelta

from flask import Blueprint, jsonify, request
from sqlalchemy import case, func
from sqlalchemy.orm import joinedload

from stockroom.errors import NotFound, ValidationError
from stockroom.models import Item, Transaction, db
from stockroom.security import login_required
from stockroom.utils.validation import (
    clean_text,
    pagination_args,
    pagination_meta,
    parse_int,
)


bp = Blueprint("transactions", __name__, url_prefix="/api/transactions")


def _page(query, page: int, limit: int):
    total = query.count()
    rows = (
        query.order_by(Transaction.created_at.desc(), Transaction.id.desc())
        .offset((page - 1) * limit)
        .limit(limit)
        .all()
    )
    return jsonify(
        {
            "transactions": [row.to_dict() for row in rows],
            "pagination": pagination_meta(page, limit, total),
        }
    )


@bp.get("")
@login_required
def list_transactions():
    page, limit = pagination_args()
    query = Transaction.query.options(joinedload(Transaction.item))

    change_type = clean_text(request.args.get("type"))
    if change_type:
        if change_type not in Transaction.TYPES:
            raise ValidationError(f"Unknown transaction type: {change_type}.")
        query = query.filter(Transaction.type == change_type)

    user_name = clean_text(request.args.get("user_name"))
    if user_name:
        query = query.filter(Transaction.user_name.ilike(f"%{user_name}%"))

    return _page(query, page, limit)


@bp.get("/stats")
@login_required
def transaction_stats():
    period, period_error = parse_int(
        request.args.get("period", "30"), field_label="Period", minimum=1
    )
    if period_error:
        raise ValidationError(period_error)
    since = datetime.utcnow() - timedelta(days=period or 30)

    totals = (
        db.session.query(
            func.count(Transaction.id),
            func.coalesce(
                func.sum(case((Transaction.type == Transaction.TYPE_WITHDRAWAL, 1), else_=0)),
                0,
            ),
            func.coalesce(
                func.sum(case((Transaction.type == Transaction.TYPE_ADDITION, 1), else_=0)),
                0,
            ),
            func.count(func.distinct(Transaction.user_name)),
            func.count(func.distinct(Transaction.item_id)),
        )
        .filter(Transaction.created_at >= since)
        .one()
    )

    top_items = (
        db.session.query(
            Item.id,
            Item.name,
            func.count(Transaction.id).label("usage_count"),
            func.coalesce(
                func.sum(
                    case(
                        (Transaction.type == Transaction.TYPE_WITHDRAWAL, Transaction.quantity),
                        else_=0,
                    )
                ),
                0,
            ).label("total_withdrawn"),
        )
        .join(Transaction, Transaction.item_id == Item.id)
        .filter(Transaction.created_at >= since)
        .group_by(Item.id, Item.name)
        .order_by(func.count(Transaction.id).desc(), Item.name)
        .limit(10)
        .all()
    )

    total, withdrawals, additions, unique_users, unique_items = totals
    return jsonify(
        {
            "period_days": period or 30,
            "total_transactions": int(total or 0),
            "withdrawals": int(withdrawals or 0),
            "additions": int(additions or 0),
            "unique_users": int(unique_users or 0),
            "unique_items": int(unique_items or 0),
            "top_items": [
                {
                    "id": item_id,
                    "name": name,
                    "usage_count": int(usage_count or 0),
                    "total_withdrawn": int(total_withdrawn or 0),
                }
                for item_id, name, usage_count, total_withdrawn in top_items
            ],
        }
    )


@bp.get("/item/<int:item_id>")
@login_required
def item_transactions(item_id: int):
    if db.session.get(Item, item_id) is None:
        raise NotFound("Item not found.")
    page, limit = pagination_args()
    query = Transaction.query.filter(Transaction.item_id == item_id)
    return _page(query, page, limit)
