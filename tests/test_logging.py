import logging
import os
import sys

import pytest
from flask import g

sys.path.append(os.path.join(os.path.dirname(__file__), ".."))

from stockroom import create_app
from stockroom.utils.logging import RequestIdFilter


@pytest.fixture
def app():
    return create_app({"TESTING": True, "SQLALCHEMY_DATABASE_URI": "sqlite:///:memory:"})


def _record():
    return logging.LogRecord("stockroom", logging.INFO, __file__, 1, "hello", None, None)


def test_filter_uses_placeholder_outside_requests():
    record = _record()

    assert RequestIdFilter().filter(record) is True
    assert record.request_id == "-"


def test_request_id_comes_from_header(app):
    with app.test_request_context("/api/health", headers={"X-Request-ID": "abc123"}):
        app.preprocess_request()
        record = _record()
        RequestIdFilter().filter(record)

        assert g.request_id == "abc123"
        assert record.request_id == "abc123"


def test_request_id_generated_when_missing(app):
    with app.test_request_context("/api/health"):
        app.preprocess_request()

        assert len(g.request_id) == 12


def test_file_logging_can_be_enabled(tmp_path):
    create_app(
        {
            "TESTING": True,
            "SQLALCHEMY_DATABASE_URI": "sqlite:///:memory:",
            "LOG_TO_FILE": "true",
            "LOG_DIR": str(tmp_path),
        }
    )

    log_path = tmp_path / "stockroom.log"
    root_logger = logging.getLogger()
    handlers = [
        handler
        for handler in root_logger.handlers
        if getattr(handler, "baseFilename", None) == str(log_path)
    ]
    try:
        assert log_path.exists()
        assert len(handlers) == 1
    finally:
        for handler in handlers:
            root_logger.removeHandler(handler)
            handler.close()


def test_log_file_name_and_rotation_come_from_config(tmp_path):
    create_app(
        {
            "TESTING": True,
            "SQLALCHEMY_DATABASE_URI": "sqlite:///:memory:",
            "LOG_TO_FILE": "true",
            "LOG_DIR": str(tmp_path),
            "LOG_FILE_NAME": "ledger.log",
            "LOG_MAX_BYTES": 1024,
            "LOG_BACKUP_COUNT": 2,
        }
    )

    log_path = tmp_path / "ledger.log"
    root_logger = logging.getLogger()
    handlers = [
        handler
        for handler in root_logger.handlers
        if getattr(handler, "baseFilename", None) == str(log_path)
    ]
    try:
        assert len(handlers) == 1
        assert handlers[0].maxBytes == 1024
        assert handlers[0].backupCount == 2
    finally:
        for handler in handlers:
            root_logger.removeHandler(handler)
            handler.close()
