"""Bearer tokens for the JSON API."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any

from flask import current_app
from jose import JWTError, jwt


def create_access_token(user) -> str:
    expires = datetime.now(tz=timezone.utc) + timedelta(
        hours=current_app.config.get("JWT_EXPIRES_HOURS", 24)
    )
    payload = {
        "sub": str(user.id),
        "username": user.username,
        "role": user.primary_role,
        "exp": expires,
    }
    return jwt.encode(
        payload,
        current_app.config["JWT_SECRET_KEY"],
        algorithm=current_app.config.get("JWT_ALGORITHM", "HS256"),
    )


def decode_access_token(token: str) -> dict[str, Any] | None:
    """Return the token claims, or ``None`` when it is invalid or expired."""

    try:
        return jwt.decode(
            token,
            current_app.config["JWT_SECRET_KEY"],
            algorithms=[current_app.config.get("JWT_ALGORITHM", "HS256")],
        )
    except JWTError:
        return None


def bearer_token(header_value: str | None) -> str | None:
    if not header_value:
        return None
    scheme, _, token = header_value.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()
