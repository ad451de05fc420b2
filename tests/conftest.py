import importlib
import sys
from pathlib import Path

import pytest

# Ensure the package under test is importable without installation
PROJECT_ROOT = Path(__file__).resolve().parents[1]
SRC_PATH = PROJECT_ROOT / "src"
if str(SRC_PATH) not in sys.path:
    sys.path.insert(0, str(SRC_PATH))

CONFIG_ENV_VARS = (
    "CANNA_JOURNAL_DB",
    "CANNA_JOURNAL_BUSY_TIMEOUT_MS",
    "CANNA_JOURNAL_WRITE_RETRIES",
    "CANNA_JOURNAL_WRITE_RETRY_DELAY",
    "CANNA_JOURNAL_RECOMMENDATION_LIMIT",
    "CANNA_JOURNAL_COUNT_UNRATED",
)


@pytest.fixture
def reload_config(monkeypatch):
    """
    Return a callable that reloads config under the current environment.
    Config is reloaded again with a clean environment afterwards.
    """
    import canna_journal.config as config

    yield lambda: importlib.reload(config)

    for key in CONFIG_ENV_VARS:
        monkeypatch.delenv(key, raising=False)
    importlib.reload(config)


@pytest.fixture
def store(tmp_path):
    """An initialized journal store backed by a temporary database."""
    from canna_journal.database import JournalStore

    journal = JournalStore(tmp_path / "journal.db")
    journal.init_db()
    yield journal
    journal.close()


@pytest.fixture
def db_path(tmp_path):
    return tmp_path / "cli.db"
