"""Request parsing helpers shared by the JSON routes."""

from __future__ import annotations

from datetime import date, datetime
from typing import Any, Mapping

from flask import current_app, request

from stockroom.errors import ValidationError


def json_body() -> dict[str, Any]:
    payload = request.get_json(silent=True)
    if payload is None:
        return {}
    if not isinstance(payload, dict):
        raise ValidationError("Request body must be a JSON object.")
    return payload


def clean_text(value: Any) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def parse_int(
    value: Any, *, field_label: str, minimum: int | None = None
) -> tuple[int | None, str | None]:
    if value is None or (isinstance(value, str) and not value.strip()):
        return None, None
    if isinstance(value, bool):
        return None, f"{field_label} must be a whole number."
    try:
        number = int(str(value).strip())
    except (TypeError, ValueError):
        return None, f"{field_label} must be a whole number."
    if minimum is not None and number < minimum:
        return None, f"{field_label} must be at least {minimum}."
    return number, None


def parse_date(value: Any, *, field_label: str) -> tuple[date | None, str | None]:
    text = clean_text(value)
    if not text:
        return None, None
    try:
        parsed = datetime.strptime(text[:10], "%Y-%m-%d").date()
    except ValueError:
        return None, f"Enter {field_label} in YYYY-MM-DD format."
    return parsed, None


def parse_bool(value: Any, *, field_label: str) -> tuple[bool | None, str | None]:
    if value is None:
        return None, None
    if isinstance(value, bool):
        return value, None
    text = str(value).strip().lower()
    if text in {"1", "true", "yes", "on"}:
        return True, None
    if text in {"0", "false", "no", "off"}:
        return False, None
    return None, f"{field_label} must be a boolean."


def parse_properties(value: Any) -> tuple[dict[str, str] | None, str | None]:
    if value is None:
        return None, None
    if not isinstance(value, Mapping):
        return None, "Properties must be an object of name/value pairs."
    return {str(key): "" if val is None else str(val) for key, val in value.items()}, None


def pagination_args() -> tuple[int, int]:
    default_limit = current_app.config.get("DEFAULT_PAGE_SIZE", 20)
    max_limit = current_app.config.get("MAX_PAGE_SIZE", 200)

    page, page_error = parse_int(request.args.get("page"), field_label="Page", minimum=1)
    limit, limit_error = parse_int(
        request.args.get("limit"), field_label="Limit", minimum=1
    )
    errors = [message for message in (page_error, limit_error) if message]
    if errors:
        raise ValidationError(errors=errors)
    return page or 1, min(limit or default_limit, max_limit)


def pagination_meta(page: int, limit: int, total: int) -> dict[str, int]:
    return {
        "page": page,
        "limit": limit,
        "total": total,
        "pages": (total + limit - 1) // limit if limit else 0,
    }


def raise_if_errors(errors: list[str]) -> None:
    if errors:
        raise ValidationError(errors=errors)
