import os
from datetime import datetime, timedelta, timezone

import pytest

from home_library import database
from home_library.catalog import CatalogService
from home_library.cli import CatalogManager
from home_library.store import BookStore
from home_library.ui_helpers import OUTPUT_MODE_ENV


class FakeClock:
    """Returns a fixed start time that moves one second forward on every call."""

    def __init__(self, start: datetime = datetime(2024, 5, 1, 12, 0, 0, tzinfo=timezone.utc)):
        self.current = start

    def __call__(self) -> datetime:
        now = self.current
        self.current = now + timedelta(seconds=1)
        return now


@pytest.fixture
def db_file(tmp_path, request):
    # Each test gets its own database file
    path = str(tmp_path / f"test_{request.node.name}.db")
    yield path
    if os.path.exists(path):
        os.remove(path)


@pytest.fixture
def store(db_file):
    return BookStore(db_file)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def catalog(store, clock):
    return CatalogService(store, clock=clock)


@pytest.fixture
def cli_db(db_file, monkeypatch):
    """Point the CLI at a per-test database with plain output."""
    monkeypatch.setattr(database, "DATABASE_FILE", db_file)
    monkeypatch.setenv(OUTPUT_MODE_ENV, "plain")
    CatalogManager.reset()
    yield db_file
    CatalogManager.reset()
