"""
Pytest configuration for crime lab tests.

Unit tests run against the in-memory fakes in fakes.py. Tests under db/
need a real PostgreSQL (TEST_POSTGRES_DSN) and are skipped without one.
"""
import pytest

from crimelab.services.activity_recorder import ActivityRecorder
from crimelab.services.resolution_committer import ResolutionCommitter

from fakes import (
    FakeDatabase,
    FakePool,
    FakeRedis,
    InMemoryCaseRepository,
    InMemoryLedger,
    InMemoryPurchases,
)


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers", "asyncio: mark test as an async test."
    )
    config.addinivalue_line(
        "markers", "integration: mark test as integration test requiring PostgreSQL"
    )


@pytest.fixture
def db():
    """Two overlapping cases: 1 needs {X, Y}, 2 needs {Y, Z}."""
    database = FakeDatabase()
    database.add_case(1, {'X', 'Y'})
    database.add_case(2, {'Y', 'Z'})
    return database


@pytest.fixture
def cases(db):
    return InMemoryCaseRepository(db)


@pytest.fixture
def ledger(db):
    return InMemoryLedger(db)


@pytest.fixture
def purchases(db):
    return InMemoryPurchases(db)


@pytest.fixture
def fake_redis():
    return FakeRedis()


@pytest.fixture
def recorder(fake_redis):
    recorder = ActivityRecorder("redis://unused", stream_key="test:activities")
    recorder.redis = fake_redis
    return recorder


@pytest.fixture
def committer(db, cases, ledger, purchases, recorder):
    return ResolutionCommitter(
        FakePool(db),
        cases,
        ledger,
        purchases,
        recorder,
        max_attempts=3,
        worker_id="test-webhook",
    )
