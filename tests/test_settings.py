import logging
from pathlib import Path

from wxstore.core.logging_config import get_log_directory, setup_production_logging
from wxstore.core.settings import (
    DEFAULT_BUSY_TIMEOUT_MS,
    DEFAULT_DB_PATH,
    StorageSettings,
)


def test_defaults_from_empty_environment():
    settings = StorageSettings.from_env({})
    assert settings.db_path == DEFAULT_DB_PATH
    assert settings.db_path.name == "wechat-mcp.db"
    assert settings.db_path.parent.name == "data"
    assert settings.secret_key is None
    assert not settings.encryption_enabled
    assert settings.busy_timeout_ms == DEFAULT_BUSY_TIMEOUT_MS == 5000


def test_values_from_environment(tmp_path):
    settings = StorageSettings.from_env(
        {
            "WXSTORE_DB_PATH": str(tmp_path / "x.db"),
            "WECHAT_MCP_SECRET_KEY": "s3cret",
            "WXSTORE_BUSY_TIMEOUT_MS": "250",
        }
    )
    assert settings.db_path == tmp_path / "x.db"
    assert settings.secret_key == "s3cret"
    assert settings.encryption_enabled
    assert settings.busy_timeout_ms == 250


def test_empty_secret_disables_encryption():
    assert not StorageSettings.from_env({"WECHAT_MCP_SECRET_KEY": ""}).encryption_enabled


def test_invalid_timeout_falls_back(caplog):
    with caplog.at_level(logging.WARNING, logger="wxstore.core.settings"):
        settings = StorageSettings.from_env({"WXSTORE_BUSY_TIMEOUT_MS": "soon"})
    assert settings.busy_timeout_ms == DEFAULT_BUSY_TIMEOUT_MS
    assert "WXSTORE_BUSY_TIMEOUT_MS" in caplog.text


def test_log_dir_from_environment(tmp_path):
    assert StorageSettings.from_env({}).log_dir is None
    settings = StorageSettings.from_env({"WXSTORE_LOG_DIR": str(tmp_path / "logs")})
    assert settings.log_dir == tmp_path / "logs"
    assert get_log_directory(settings) == tmp_path / "logs"


def _flush():
    for handler in logging.getLogger("wxstore").handlers:
        handler.flush()


def test_production_logging_writes_rotating_files(tmp_path, restore_logging):
    settings = StorageSettings(db_path=tmp_path / "x.db", secret_key="never-log-me")
    log_dir = setup_production_logging(
        settings, log_dir=tmp_path / "logs", console_level=logging.CRITICAL
    )
    assert log_dir == Path(tmp_path / "logs")

    logging.getLogger("wxstore.storage.repair").info("Backed up corrupted database to: x.db.backup.1")
    logging.getLogger("wxstore.storage.sqlite.drafts").debug("saved draft d1")
    logging.getLogger("wxstore.storage.repair").error("Database repair failed for x.db")
    _flush()

    main_log = (log_dir / "wxstore.log").read_text(encoding="utf-8")
    assert "logging initialized" in main_log
    assert str(tmp_path / "x.db") in main_log
    assert "Field encryption: on" in main_log
    assert "never-log-me" not in main_log
    # DEBUG from accessor modules still reaches the file.
    assert "saved draft d1" in main_log

    repairs = (log_dir / "repairs.log").read_text(encoding="utf-8")
    assert "Backed up corrupted database" in repairs
    assert "saved draft d1" not in repairs
    assert "Database repair failed" in (log_dir / "errors.log").read_text(encoding="utf-8")


def test_console_hides_accessor_chatter(tmp_path, restore_logging, capsys):
    setup_production_logging(log_dir=tmp_path / "logs", console_level=logging.DEBUG)
    capsys.readouterr()

    logging.getLogger("wxstore.storage.connection").info("Opened database x.db")
    logging.getLogger("wxstore.storage.connection").warning("Error closing database x.db")
    logging.getLogger("wxstore.storage.repair").info("Attempting to repair database x.db...")

    out = capsys.readouterr().out
    assert "Opened database" not in out
    assert "Error closing database" in out
    assert "Attempting to repair" in out
    _flush()
    assert "Opened database" in (tmp_path / "logs" / "wxstore.log").read_text(encoding="utf-8")


def test_root_handlers_left_alone(tmp_path, restore_logging):
    marker = logging.NullHandler()
    logging.getLogger().addHandler(marker)
    setup_production_logging(log_dir=tmp_path / "logs", console_level=logging.CRITICAL)
    assert marker in logging.getLogger().handlers
    assert logging.getLogger("wxstore").propagate is False
