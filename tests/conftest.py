"""
Shared pytest fixtures for mathvault tests.

Provides a deterministic clock and vaults over both store backends.
"""

from datetime import datetime, timedelta, timezone

import pytest

from mathvault.api import Vault
from mathvault.history import MemoryHistoryLog
from mathvault.store import MemoryRecordStore, SqliteRecordStore


class FakeClock:
    """
    Deterministic clock for testing.

    Each call returns the current time and then advances it by ``step``.
    """

    def __init__(self, start: datetime | None = None, step: timedelta = timedelta(seconds=1)):
        self.now = start or datetime(2026, 1, 1, 12, 0, 0, tzinfo=timezone.utc)
        self.step = step
        self.calls = 0

    def __call__(self) -> datetime:
        self.calls += 1
        current = self.now
        self.now = self.now + self.step
        return current

    def set(self, when: datetime) -> None:
        self.now = when


class SequentialIds:
    """Id factory producing item-0001, item-0002, ..."""

    def __init__(self):
        self.n = 0

    def __call__(self) -> str:
        self.n += 1
        return f"item-{self.n:04d}"


@pytest.fixture
def clock():
    """Create a fresh FakeClock instance."""
    return FakeClock()


@pytest.fixture
def memory_store():
    return MemoryRecordStore()


@pytest.fixture
def sqlite_store(tmp_path):
    with SqliteRecordStore(tmp_path / "vault.db") as s:
        yield s


@pytest.fixture(params=["memory", "sqlite"])
def record_store(request, tmp_path):
    """Run a test against both store backends."""
    if request.param == "memory":
        yield MemoryRecordStore()
    else:
        with SqliteRecordStore(tmp_path / "vault.db") as s:
            yield s


@pytest.fixture
def history():
    return MemoryHistoryLog()


@pytest.fixture
def vault(record_store, history, clock):
    """Vault over each backend with a fake clock and an in-memory history log."""
    v = Vault(record_store, history=history, clock=clock)
    yield v
    v.close()


@pytest.fixture
def memory_vault(clock):
    """Vault over the in-memory store with sequential ids."""
    v = Vault(MemoryRecordStore(), clock=clock, id_factory=SequentialIds())
    yield v
    v.close()
