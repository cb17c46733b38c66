from __future__ import annotations

from datetime import datetime

from flask import Blueprint, current_app, jsonify
from flask_login import current_user
from sqlalchemy import or_

from stockroom.errors import ValidationError
from stockroom.models import Role, User, db
from stockroom.security import CORE_ROLES, ROLE_DEFAULT_USER, login_required, require_admin
from stockroom.tokens import create_access_token
from stockroom.utils.validation import clean_text, json_body, raise_if_errors


bp = Blueprint("auth", __name__, url_prefix="/api/auth")


@bp.post("/login")
def login():
    payload = json_body()
    username = clean_text(payload.get("username"))
    password = payload.get("password") or ""
    if not username or not password:
        raise ValidationError("Username and password are required.")

    user = User.query.filter(
        or_(User.username == username, User.email == username),
        User.active.is_(True),
    ).first()
    if user is None or not user.check_password(password):
        current_app.logger.info("Rejected login for %s", username)
        return jsonify({"error": "Invalid credentials"}), 401

    user.last_login = datetime.utcnow()
    db.session.commit()

    return jsonify(
        {
            "message": "Login successful",
            "token": create_access_token(user),
            "user": user.to_dict(),
        }
    )


@bp.get("/me")
@login_required
def me():
    return jsonify(current_user.to_dict())


@bp.get("/users")
@require_admin
def list_users():
    users = User.query.order_by(User.username).all()
    return jsonify([user.to_dict() for user in users])


@bp.post("/register")
@require_admin
def register():
    payload = json_body()
    username = clean_text(payload.get("username"))
    email = clean_text(payload.get("email"))
    password = payload.get("password") or ""
    full_name = clean_text(payload.get("full_name"))
    role_name = clean_text(payload.get("role")) or ROLE_DEFAULT_USER

    errors: list[str] = []
    if not username or not 3 <= len(username) <= 50:
        errors.append("Username must be between 3 and 50 characters.")
    if email is not None and "@" not in email:
        errors.append("Enter a valid email address.")
    if len(password) < 6:
        errors.append("Password must be at least 6 characters.")
    if not full_name:
        errors.append("Full name is required.")
    if role_name not in CORE_ROLES:
        errors.append(f"Role must be one of: {', '.join(sorted(CORE_ROLES))}.")
    raise_if_errors(errors)

    conflict = User.query.filter(
        or_(User.username == username, User.email == email) if email else User.username == username
    ).first()
    if conflict is not None:
        raise ValidationError("Username or email already exists.")

    role = Role.query.filter_by(name=role_name).first()
    if role is None:
        role = Role(name=role_name, description=CORE_ROLES[role_name])
        db.session.add(role)

    user = User(username=username, email=email, full_name=full_name)
    user.set_password(password)
    user.roles = [role]
    db.session.add(user)
    db.session.commit()
    current_app.logger.info(
        "User %s created by %s with role %s", username, current_user.username, role_name
    )
    return jsonify(user.to_dict()), 201
