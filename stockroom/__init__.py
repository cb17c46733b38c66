from flask import Flask, current_app, jsonify, request
from sqlalchemy import text
from sqlalchemy.exc import IntegrityError, OperationalError, SQLAlchemyError
from sqlalchemy.pool import StaticPool

from config import Config

from .extensions import db, login_manager
from . import models  # ensure models are registered with SQLAlchemy
from .routes import (
    auth,
    categories,
    errors,
    health,
    items,
    presets,
    purchase_requests,
    transactions,
)
from .security import CORE_ROLES, ROLE_ADMIN
from .tokens import bearer_token, decode_access_token
from .utils.logging import configure_logging


def _ensure_core_roles() -> None:
    """Make sure the built-in roles exist for assignment."""

    existing_roles = {
        role.name: role
        for role in models.Role.query.filter(models.Role.name.in_(CORE_ROLES)).all()
    }

    changed = False
    for role_name, description in CORE_ROLES.items():
        role = existing_roles.get(role_name)
        if role is not None:
            if role.description != description:
                role.description = description
                changed = True
            continue

        db.session.add(models.Role(name=role_name, description=description))
        changed = True

    if changed:
        db.session.commit()


def _ensure_admin_account(admin_username: str, admin_password: str) -> None:
    """Create or update the default administrative user."""

    if not admin_username:
        return

    for attempt in range(3):
        try:
            admin_role = models.Role.query.filter_by(name=ROLE_ADMIN).first()
            if admin_role is None:
                admin_role = models.Role(name=ROLE_ADMIN, description=CORE_ROLES[ROLE_ADMIN])
                db.session.add(admin_role)

            user = models.User.query.filter_by(username=admin_username).first()
            if user is None:
                user = models.User(username=admin_username, full_name="Administrator")
                db.session.add(user)

            if admin_password:
                user.set_password(admin_password)

            if admin_role not in user.roles:
                user.roles.append(admin_role)

            db.session.commit()
            return
        except IntegrityError:
            db.session.rollback()
            if attempt == 2:
                raise


def _ping_database() -> None:
    """Raise :class:`OperationalError` when the configured database is unreachable."""

    with db.engine.connect() as connection:
        connection.execute(text("SELECT 1"))


def create_app(config_override=None):
    app = Flask(__name__)

    # load configuration from environment variables
    app.config.from_object(Config)
    if config_override:
        app.config.update(config_override)
    # tests only write log files when they ask for it
    if app.config.get("TESTING") and "LOG_TO_FILE" not in (config_override or {}):
        app.config["LOG_TO_FILE"] = "false"

    configure_logging(app)

    database_uri = app.config.get("SQLALCHEMY_DATABASE_URI", "")
    if database_uri.startswith("sqlite:///:memory:"):
        engine_options = app.config.setdefault("SQLALCHEMY_ENGINE_OPTIONS", {})
        connect_args = engine_options.setdefault("connect_args", {})
        connect_args.setdefault("check_same_thread", False)
        engine_options.setdefault("poolclass", StaticPool)

    db.init_app(app)
    login_manager.init_app(app)

    @login_manager.request_loader
    def load_user_from_request(req):
        token = bearer_token(req.headers.get("Authorization"))
        if token is None:
            return None
        claims = decode_access_token(token)
        if not claims:
            return None
        try:
            user_id = int(claims.get("sub"))
        except (TypeError, ValueError):
            return None
        try:
            user = db.session.get(models.User, user_id)
        except OperationalError:
            current_app.logger.warning(
                "Skipped token user lookup because the database is unavailable."
            )
            return None
        if user is None or not user.is_active:
            return None
        return user

    @login_manager.unauthorized_handler
    def unauthorized():
        message = "Access token required"
        if request.headers.get("Authorization"):
            message = "Invalid or expired token"
        return jsonify({"error": message}), 401

    database_available = True

    # create tables if they do not exist and seed roles and the admin account
    with app.app_context():
        try:
            _ping_database()
        except OperationalError as exc:
            database_available = False
            root_cause = getattr(exc, "orig", exc)
            details = str(root_cause).strip()
            message_suffix = f": {details}" if details else ""
            current_app.logger.error(
                "Database connection unavailable during startup%s",
                message_suffix,
                exc_info=current_app.debug,
            )
            db.session.remove()
        else:
            try:
                db.create_all()
                _ensure_core_roles()
                _ensure_admin_account(
                    app.config.get("ADMIN_USER", "admin"),
                    app.config.get("ADMIN_PASSWORD", ""),
                )
            except SQLAlchemyError:
                database_available = False
                current_app.logger.exception("Database initialization error")
                db.session.remove()

    app.config["DATABASE_AVAILABLE"] = database_available

    # register blueprints
    app.register_blueprint(errors.bp)
    app.register_blueprint(health.bp)
    app.register_blueprint(auth.bp)
    app.register_blueprint(categories.bp)
    app.register_blueprint(items.bp)
    app.register_blueprint(presets.bp)
    app.register_blueprint(purchase_requests.bp)
    app.register_blueprint(transactions.bp)

    return app
