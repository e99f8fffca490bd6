# tests/conftest.py
"""
Shared fixtures for all tests.
"""
import asyncio
import gzip
import json
import threading
import pytest
from datetime import datetime
from unittest.mock import MagicMock
from fastapi.testclient import TestClient

from instrument_cache import main
from instrument_cache.errors import NetworkError
from instrument_cache.services.catalog_parser import parse_catalog
from instrument_cache.services.catalog_store import CatalogStore
from instrument_cache.services.refresher import CatalogRefresher

TEST_URL = "https://assets.example.test/instruments/complete.json.gz"

SAMPLE_INSTRUMENTS = [
    {
        "segment": "NSE_FO",
        "instrument_key": "NSE_FO|NIFTY-0109-23300-PE",
        "trading_symbol": "NIFTY 23300 PE 09 JAN 25",
        "asset_symbol": "NIFTY",
        "instrument_type": "PE",
        "strike_price": 23300,
        "expiry": "2025-01-09",
        "lot_size": 75,
    },
    {
        "segment": "NSE_FO",
        "instrument_key": "NSE_FO|NIFTY-0102-23300-PE",
        "trading_symbol": "NIFTY 23300 PE 02 JAN 25",
        "asset_symbol": "NIFTY",
        "instrument_type": "PE",
        "strike_price": 23300,
        "expiry": "2025-01-02",
        "lot_size": 75,
    },
    {
        "segment": "NSE_FO",
        "instrument_key": "NSE_FO|NIFTY-0102-23300-CE",
        "trading_symbol": "NIFTY 23300 CE 02 JAN 25",
        "asset_symbol": "NIFTY",
        "instrument_type": "CE",
        "strike_price": 23300,
        "expiry": "2025-01-02",
        "lot_size": 75,
    },
    {
        "segment": "NSE_FO",
        "instrument_key": "NSE_FO|BANKNIFTY-0129-51000-CE",
        "trading_symbol": "BANKNIFTY 51000 CE 29 JAN 25",
        "asset_symbol": "BANKNIFTY",
        "instrument_type": "CE",
        "strike_price": 51000.0,
        "expiry": 1738175400000,
        "lot_size": 30,
    },
    {
        "segment": "NSE_EQ",
        "instrument_key": "NSE_EQ|INE669E01016",
        "trading_symbol": "IDEA",
        "instrument_type": "EQ",
    },
]


def gzip_json(instruments) -> bytes:
    return gzip.compress(json.dumps(instruments).encode("utf-8"))


@pytest.fixture
def sample_catalog():
    """Catalog parsed from SAMPLE_INSTRUMENTS."""
    return parse_catalog(json.dumps(SAMPLE_INSTRUMENTS).encode("utf-8"), source_url=TEST_URL)


@pytest.fixture
def store():
    return CatalogStore(clock=lambda: datetime(2025, 1, 1, 7, 0, 0))


@pytest.fixture
def make_fetch():
    """
    Build a fake fetcher. The returned callable records each URL it is
    asked for in .calls and yields payload in chunk_size pieces, or raises
    error instead.
    """
    def factory(payload: bytes = b"", chunk_size: int = 7, error: Exception | None = None):
        calls = []

        async def fetch(url: str):
            calls.append(url)
            if error is not None:
                raise error
            for i in range(0, len(payload), chunk_size):
                yield payload[i:i + chunk_size]

        fetch.calls = calls
        return fetch

    return factory


@pytest.fixture
def wire_app(monkeypatch):
    """
    Point the app at a fresh store and a refresher using the given fetcher.
    The scheduler is patched out so no cron job is registered.
    """
    def factory(fetch, blocking: bool = True) -> CatalogRefresher:
        store = CatalogStore()
        refresher = CatalogRefresher(store, url=TEST_URL, fetch=fetch, retry_delay=0)

        monkeypatch.setattr(main, "store", store)
        monkeypatch.setattr(main, "refresher", refresher)
        monkeypatch.setattr(main, "STARTUP_REFRESH_BLOCKING", blocking)
        monkeypatch.setattr(main.scheduler, "start", MagicMock())
        monkeypatch.setattr(main.scheduler, "shutdown", MagicMock())
        monkeypatch.setattr(main.scheduler, "add_job", MagicMock())
        return refresher

    return factory


@pytest.fixture
def gated_fetch():
    """
    Fake fetcher that waits for .gate (a threading.Event, so tests can open
    it from outside the app's event loop) before yielding payload.
    Cancellation while waiting is recorded in .cancelled.
    """
    def factory(payload: bytes):
        gate = threading.Event()
        cancelled = []

        async def fetch(url: str):
            try:
                while not gate.is_set():
                    await asyncio.sleep(0.01)
            except asyncio.CancelledError:
                cancelled.append(url)
                raise
            yield payload

        fetch.gate = gate
        fetch.cancelled = cancelled
        return fetch

    return factory


@pytest.fixture
def make_client(wire_app, make_fetch):
    """Start the app (lifespan included) against a fake fetcher."""
    clients = []

    def factory(
        payload: bytes | None = None,
        error: Exception | None = None,
        fetch=None,
        blocking: bool = True,
    ):
        wire_app(fetch or make_fetch(payload or b"", error=error), blocking=blocking)
        client = TestClient(main.app)
        client.__enter__()
        clients.append(client)
        return client

    yield factory

    for client in clients:
        client.__exit__(None, None, None)


@pytest.fixture
def client(make_client):
    """Test client whose startup refresh loaded SAMPLE_INSTRUMENTS."""
    return make_client(payload=gzip_json(SAMPLE_INSTRUMENTS))


@pytest.fixture
def unready_client(make_client):
    """Test client whose startup refresh failed, leaving no catalog."""
    return make_client(error=NetworkError("connection refused"))
