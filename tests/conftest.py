"""
Shared fixtures.

Every store-level test runs twice: once against the in-memory backend
and once against a SQLite file in a temporary directory.
"""

import datetime as dt

import pytest

from ledger.services.storage import InMemoryStorage, SQLiteStorage
from ledger.store import LedgerStore


# Sunday 15 December 2024, 10:30 UTC
START = dt.datetime(2024, 12, 15, 10, 30, tzinfo=dt.timezone.utc)


class FakeClock:
    """A clock that only moves when told to."""
    
    def __init__(self, current: dt.datetime = START):
        self.current = current
    
    def __call__(self) -> dt.datetime:
        return self.current
    
    def advance(self, **kwargs) -> None:
        self.current += dt.timedelta(**kwargs)
    
    def set(self, current: dt.datetime) -> None:
        self.current = current


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture(params=["memory", "sqlite"])
def storage(request, tmp_path):
    if request.param == "memory":
        return InMemoryStorage()
    return SQLiteStorage(str(tmp_path / "ledger.db"))


@pytest.fixture
async def store(storage, clock):
    ledger_store = LedgerStore(storage, clock=clock, connect_wait_seconds=0)
    await ledger_store.initialize()
    yield ledger_store
    await ledger_store.close()


@pytest.fixture
def expense_data():
    """Factory for valid expense input, camelCase like a UI form would send."""
    def make(**overrides) -> dict:
        data = {
            "amount": "150.00",
            "date": "2024-12-15",
            "time": "09:30",
            "category": "food",
            "paymentMethod": "UPI",
            "account": "HDFC",
            "items": "Lunch",
            "where": "Cafe",
            "note": "team lunch",
        }
        data.update(overrides)
        return data
    return make


@pytest.fixture
def budget_data():
    """Factory for valid budget input."""
    def make(**overrides) -> dict:
        data = {
            "name": "Groceries",
            "amount": "5000",
            "category": "food",
            "period": "monthly",
            "startDate": "2024-01-01",
            "isActive": True,
        }
        data.update(overrides)
        return data
    return make
