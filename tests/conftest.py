"""Shared fixtures: a temporary SQLite store and a small seeded farm."""

import pytest

from agritwin.shared.database import SQLiteStore
from agritwin.shared.settings import FarmConfig
from agritwin.simulator.seed import seed_farm


@pytest.fixture
def store(tmp_path):
    store = SQLiteStore(tmp_path / "agritwin-test.db")
    store.create_schema()
    yield store
    store.close()


@pytest.fixture
def farm():
    """One level, one zone, one sensor of each type."""
    return FarmConfig(levels=1, zones_per_level=1)


@pytest.fixture
def seeded_store(store, farm):
    seed_farm(store, farm)
    return store
