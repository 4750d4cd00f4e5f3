"""Shared fixtures for status engine tests."""

import pytest
import pytest_asyncio

from open_status import (
    InMemoryRecordStore,
    MonitoringConfig,
    MonitoringSession,
    QueueLocationSource,
    RetryPolicy,
)

from factories import OWNER, FakeClock, make_site


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def store():
    """Create an in-memory record store."""
    return InMemoryRecordStore()


@pytest.fixture
def source():
    """Create a push location source."""
    return QueueLocationSource()


@pytest.fixture
def config():
    """Config with no backoff delays and a long timer."""
    return MonitoringConfig(
        max_accuracy_meters=100.0,
        reconcile_interval=3600.0,
        retry=RetryPolicy(max_attempts=3, base_delay=0.0, max_delay=0.0),
    )


@pytest_asyncio.fixture
async def session(store, source, config, clock):
    """Create and start a session monitoring one site ("shop")."""
    store.put_site(make_site())
    monitoring = MonitoringSession(store, source, config, clock=clock)
    await monitoring.start(OWNER)
    yield monitoring
    await monitoring.stop()
