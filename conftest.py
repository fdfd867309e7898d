import asyncio
from datetime import datetime, timedelta, timezone

import pytest
from fastapi.testclient import TestClient

from library_catalog.api import create_app
from library_catalog.config import Settings
from library_catalog.database import SqliteStore, initialize_database
from library_catalog.library import Library


class FakeClock:
    """Elle ilerletilen saat; zaman damgası sıralamasını test etmek için."""

    def __init__(self, start: datetime) -> None:
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


@pytest.fixture
def db_file(tmp_path):
    # Her test için benzersiz bir veritabanı dosyası
    return str(tmp_path / "catalog.db")


@pytest.fixture
def store(db_file):
    store = SqliteStore(db_file)
    asyncio.run(store.open())
    asyncio.run(initialize_database(store))
    yield store
    asyncio.run(store.close())


@pytest.fixture
def clock():
    return FakeClock(datetime(2026, 10, 19, 8, 0, tzinfo=timezone.utc))


@pytest.fixture
def lib(store, clock):
    return Library(store, clock=clock)


@pytest.fixture
def client(db_file):
    settings = Settings(db_backend="sqlite", sqlite_file=db_file)
    shutdown_calls = []
    app = create_app(settings, shutdown_trigger=lambda: shutdown_calls.append(True))
    with TestClient(app) as test_client:
        test_client.shutdown_calls = shutdown_calls
        yield test_client
