"""Shared security helpers and decorators for API protection."""

from __future__ import annotations

from functools import wraps
from typing import Iterable, Tuple

from flask import abort
from flask_login import current_user

from stockroom.extensions import login_manager

ROLE_ADMIN = "admin"
ROLE_MANAGER = "manager"
ROLE_DEFAULT_USER = "default_user"
ROLE_GLOBAL_USER = "global_user"

CORE_ROLES = {
    ROLE_ADMIN: "Administrator",
    ROLE_MANAGER: "Inventory manager",
    ROLE_DEFAULT_USER: "Standard user",
    ROLE_GLOBAL_USER: "Read access across all inventory",
}

EDITOR_ROLES = (ROLE_ADMIN, ROLE_MANAGER)


def _normalize_roles(role_names: Iterable[str]) -> Tuple[str, ...]:
    unique: list[str] = []
    seen: set[str] = set()
    for name in role_names:
        if not name:
            continue
        if name in seen:
            continue
        unique.append(name)
        seen.add(name)
    return tuple(unique)


def require_roles(*role_names: str):
    """Decorator ensuring the active user has any of the provided roles.

    With no roles it only requires an authenticated user.
    """

    normalized_roles = _normalize_roles(role_names)

    def decorator(view_func):
        @wraps(view_func)
        def wrapped(*args, **kwargs):
            if not current_user.is_authenticated:
                return login_manager.unauthorized()

            if normalized_roles and not current_user.has_any_role(normalized_roles):
                abort(403)

            return view_func(*args, **kwargs)

        return wrapped

    return decorator


def require_admin(view_func):
    """Decorator specialized for the administrator role."""

    return require_roles(ROLE_ADMIN)(view_func)


def require_editor(view_func):
    return require_roles(*EDITOR_ROLES)(view_func)


login_required = require_roles()
