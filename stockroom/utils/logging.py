from __future__ import annotations

import logging
import sys
import uuid
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Iterable

from flask import Flask, g, has_request_context, request


class RequestIdFilter(logging.Filter):
    def filter(self, record: logging.LogRecord) -> bool:
        request_id = None
        if has_request_context():
            request_id = getattr(g, "request_id", None)
        record.request_id = request_id or "-"
        return True


def _has_handler(logger: logging.Logger, handler_types: Iterable[type]) -> bool:
    return any(isinstance(handler, handler_types) for handler in logger.handlers)


def _truthy(value) -> bool:
    return str(value).strip().lower() in {"1", "true", "yes", "on"}


def assign_request_id() -> None:
    g.request_id = request.headers.get("X-Request-ID") or uuid.uuid4().hex[:12]


def _attach(root_logger: logging.Logger, handler: logging.Handler, formatter, request_filter) -> None:
    handler.setLevel(logging.INFO)
    handler.setFormatter(formatter)
    handler.addFilter(request_filter)
    root_logger.addHandler(handler)


def _log_file_path(app: Flask) -> Path:
    logs_dir = Path(app.config.get("LOG_DIR") or Path(app.root_path).parent / "logs")
    logs_dir.mkdir(parents=True, exist_ok=True)
    return logs_dir / app.config.get("LOG_FILE_NAME", "stockroom.log")


def configure_logging(app: Flask) -> Path | None:
    """Send stockroom logs to stdout and, unless disabled, a rotating file.

    Every record carries the request id assigned in ``before_request`` so
    ledger writes can be traced back to the API call that made them.
    """
    root_logger = logging.getLogger()
    root_logger.setLevel(logging.INFO)

    formatter = logging.Formatter(
        "%(asctime)s [%(levelname)s] [req=%(request_id)s] %(name)s: %(message)s"
    )
    request_filter = RequestIdFilter()

    if not _has_handler(root_logger, (logging.StreamHandler,)):
        _attach(root_logger, logging.StreamHandler(sys.stdout), formatter, request_filter)

    log_path = None
    if _truthy(app.config.get("LOG_TO_FILE", "true")):
        log_path = _log_file_path(app)
        already_open = any(
            getattr(handler, "baseFilename", "") == str(log_path)
            for handler in root_logger.handlers
        )
        if not already_open:
            file_handler = RotatingFileHandler(
                log_path,
                maxBytes=int(app.config.get("LOG_MAX_BYTES", 5 * 1024 * 1024)),
                backupCount=int(app.config.get("LOG_BACKUP_COUNT", 5)),
            )
            _attach(root_logger, file_handler, formatter, request_filter)

    for handler in app.logger.handlers:
        if request_filter not in handler.filters:
            handler.addFilter(request_filter)

    app.logger.setLevel(logging.INFO)
    for name in ("werkzeug", "gunicorn.error", "gunicorn.access"):
        logging.getLogger(name).setLevel(logging.INFO)

    app.before_request(assign_request_id)

    return log_path
