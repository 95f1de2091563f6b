import os
from datetime import datetime

import pytest

from adaptive_srs.config import SrsConfig


@pytest.fixture(autouse=True)
def isolated_config(tmp_path, monkeypatch):
    """Keep user config files and ADAPTIVE_SRS_* variables out of tests."""
    monkeypatch.setenv("ADAPTIVE_SRS_CONFIG_FILE", str(tmp_path / "no-config.toml"))
    for key in list(os.environ):
        if key.startswith("ADAPTIVE_SRS_") and key != "ADAPTIVE_SRS_CONFIG_FILE":
            monkeypatch.delenv(key)


@pytest.fixture
def tmp_db(tmp_path):
    """Provide a temporary SQLite database path for tests."""
    db_path = str(tmp_path / "test_srs.db")
    return db_path


@pytest.fixture
def config():
    return SrsConfig()


@pytest.fixture
def now():
    return datetime(2026, 3, 2, 9, 30)
