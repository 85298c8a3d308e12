"""Shared fixtures for FeedWatcher tests."""

import tempfile
import threading
from pathlib import Path
from typing import Optional

import pytest
from requests.structures import CaseInsensitiveDict

from feedwatcher.db import Database
from feedwatcher.fetcher import AbortSignal, FetchResponse


class FakeFetcher:
    """Stands in for HttpFetcher, answering from a table of canned responses.

    Unknown URLs get a 404. Every call is recorded as (method, url).
    """

    def __init__(self):
        self.routes: dict[tuple[str, str], object] = {}
        self.calls: list[tuple[str, str]] = []
        self.signal = AbortSignal()
        self.closed = False
        self._lock = threading.Lock()

    def add(
        self,
        url: str,
        body: bytes | str = b"",
        status: int = 200,
        method: str = "GET",
        headers: Optional[dict] = None,
    ) -> None:
        if isinstance(body, str):
            body = body.encode("utf-8")
        self.routes[(method, url)] = FetchResponse(
            url=url,
            status=status,
            headers=CaseInsensitiveDict(headers or {}),
            content=body if method != "HEAD" else b"",
            encoding="utf-8",
        )

    def fail(self, url: str, error: Exception, method: str = "GET") -> None:
        self.routes[(method, url)] = error

    def fetch(self, url, method="GET", timeout=None, signal=None):
        with self._lock:
            self.calls.append((method, url))
        route = self.routes.get((method, url))
        if route is None:
            return FetchResponse(url=url, status=404)
        if isinstance(route, Exception):
            raise route
        return route

    def abort(self):
        self.signal.abort()

    def reset(self):
        if self.signal.aborted:
            self.signal = AbortSignal()

    def close(self):
        self.closed = True


@pytest.fixture
def fetcher() -> FakeFetcher:
    """A fake fetcher with no routes."""
    return FakeFetcher()


@pytest.fixture
def db():
    """Create a temporary database for testing."""
    with tempfile.TemporaryDirectory() as tmpdir:
        db_path = Path(tmpdir) / "test.db"
        database = Database(db_path)
        yield database
        database.close()
