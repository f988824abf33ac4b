from datetime import datetime, timezone

import pytest

from lending_library import database
from lending_library.database import KeyValueStore
from lending_library.library import Library
from lending_library.main import LibraryManager
from lending_library.utils.ui_helpers import OUTPUT_MODE_ENV


class FakeClock:
    """Deterministic clock; tests move it forward with advance()."""

    def __init__(self, start=None):
        self.now = start or datetime(2024, 3, 1, 10, 0, 0, tzinfo=timezone.utc)

    def __call__(self):
        return self.now

    def advance(self, delta):
        self.now = self.now + delta


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def store(tmp_path, request):
    # Unique store file per test
    return KeyValueStore(str(tmp_path / f"store_{request.node.name}.db"))


@pytest.fixture
def lib(store, clock):
    lib = Library(store, clock=clock)
    yield lib
    lib.close()


@pytest.fixture
def cli_store(tmp_path, monkeypatch):
    """Point the CLI at a fresh store file and plain output."""
    db_file = str(tmp_path / "cli_store.db")
    monkeypatch.setattr(database, "DATABASE_FILE", db_file)
    monkeypatch.setenv(OUTPUT_MODE_ENV, "plain")
    LibraryManager.reset()
    yield KeyValueStore(db_file)
    LibraryManager.reset()
