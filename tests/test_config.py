import os
import sys

sys.path.append(os.path.join(os.path.dirname(__file__), ".."))

from config import Config, resolve_database_url


def test_command_line_override_wins():
    url = resolve_database_url(
        "postgresql://ini/db", override="sqlite:///cli.db", environ={"DB_URL": "x"}
    )

    assert url == "sqlite:///cli.db"


def test_literal_ini_url_is_used_as_is():
    assert resolve_database_url("sqlite:///ini.db", environ={}) == "sqlite:///ini.db"


def test_env_scheme_reads_the_named_variable():
    environ = {"STOCK_DB": "postgresql://named/db", "DB_URL": "postgresql://default/db"}

    assert resolve_database_url("env://STOCK_DB", environ=environ) == "postgresql://named/db"


def test_bare_env_scheme_reads_db_url():
    environ = {"DB_URL": "postgresql://default/db"}

    assert resolve_database_url("env://", environ=environ) == "postgresql://default/db"


def test_unset_variable_falls_back_to_app_config():
    assert resolve_database_url("env://DB_URL", environ={}) == Config.SQLALCHEMY_DATABASE_URI
    assert resolve_database_url(None, environ={}) == Config.SQLALCHEMY_DATABASE_URI
