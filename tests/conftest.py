"""Shared test fixtures and configuration.

Sets environment defaults before any timebox imports so timebox.config
never sees a real .env, and provides an in-memory store, a controllable
clock and a repository with a short quiet period.
"""

import asyncio
import os

# Patch env vars BEFORE any timebox imports
os.environ.setdefault("DOCUMENT_STORE", "memory")
os.environ.setdefault("CACHE_TTL_SECONDS", "300")
os.environ.setdefault("WRITE_DEBOUNCE_SECONDS", "1.0")
os.environ.setdefault("FIRESTORE_PROJECT_ID", "")

import pytest

QUIET = 0.05


class FakeClock:
    """Monotonic clock the tests move by hand."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def fake_clock():
    return FakeClock()


@pytest.fixture
def store():
    """Return an empty InMemoryDocumentStore."""
    from timebox.adapters.memory_store import InMemoryDocumentStore
    return InMemoryDocumentStore()


@pytest.fixture
def cache(fake_clock):
    from timebox.data.cache import TTLCache
    return TTLCache(ttl_seconds=300, clock=fake_clock)


@pytest.fixture
def coalescer():
    from timebox.core.write_coalescer import WriteCoalescer
    return WriteCoalescer(quiet_period=QUIET)


@pytest.fixture
def repo(store, cache, coalescer):
    """Return a SheetRepository wired to the in-memory store."""
    from timebox.core.sheet_repository import SheetRepository
    return SheetRepository(store, cache=cache, coalescer=coalescer)


@pytest.fixture
def settle():
    """Return a coroutine that lets queued loop callbacks (snapshots) run."""
    async def _settle(rounds: int = 5) -> None:
        for _ in range(rounds):
            await asyncio.sleep(0)
    return _settle
