from __future__ import annotations

from flask import Blueprint, current_app, jsonify, request
from werkzeug.exceptions import HTTPException

from stockroom.errors import StockroomError, ValidationError
from stockroom.extensions import db

bp = Blueprint("errors", __name__)


@bp.app_errorhandler(StockroomError)
def handle_stockroom_error(error: StockroomError):
    db.session.rollback()
    payload = {"error": error.message}
    if isinstance(error, ValidationError) and error.errors:
        payload["errors"] = error.errors
    return jsonify(payload), error.status_code


@bp.app_errorhandler(HTTPException)
def handle_http_error(error: HTTPException):
    return jsonify({"error": error.description or error.name}), error.code or 500


@bp.app_errorhandler(Exception)
def handle_exception(error: Exception):
    # Anything reaching this handler escaped the services' own transactions.
    db.session.rollback()
    current_app.logger.exception(
        "Unhandled exception on %s %s", request.method, request.path, exc_info=error
    )
    return jsonify({"error": "Internal Server Error"}), 500
