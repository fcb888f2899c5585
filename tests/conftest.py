import logging
from pathlib import Path

import pytest

from wxstore.core.settings import StorageSettings
from wxstore.storage.store import StorageManager

GARBAGE = b"this is definitely not an sqlite database file\n" * 200


@pytest.fixture
def db_path(tmp_path) -> Path:
    return tmp_path / "data" / "wechat-mcp.db"


@pytest.fixture
def make_store(db_path):
    def _make(secret: str | None = None, path: Path | None = None) -> StorageManager:
        target = path or db_path
        return StorageManager(target, settings=StorageSettings(db_path=target, secret_key=secret))

    return _make


@pytest.fixture
def garbage_db(db_path) -> Path:
    db_path.parent.mkdir(parents=True, exist_ok=True)
    db_path.write_bytes(GARBAGE)
    return db_path


@pytest.fixture
def restore_logging():
    root = logging.getLogger()
    pkg = logging.getLogger("wxstore")
    saved = (list(root.handlers), root.level, list(pkg.handlers), pkg.level, pkg.propagate)
    yield
    for logger in (root, pkg):
        for handler in list(logger.handlers):
            logger.removeHandler(handler)
            handler.close()
    root_handlers, root_level, pkg_handlers, pkg_level, pkg_propagate = saved
    for handler in root_handlers:
        root.addHandler(handler)
    for handler in pkg_handlers:
        pkg.addHandler(handler)
    root.setLevel(root_level)
    pkg.setLevel(pkg_level)
    pkg.propagate = pkg_propagate

