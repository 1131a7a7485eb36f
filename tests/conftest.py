"""
Pytest configuration and fixtures for liraindex tests
"""

import pytest

from liraindex.adapters.checkpoint_sql import SqlCheckpointStore
from liraindex.adapters.sql_store import SqlProjectionStore

# Test database URL (in-memory SQLite for testing)
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"


@pytest.fixture
async def store():
    """
    Fresh in-memory read model per test
    """
    s = SqlProjectionStore(TEST_DATABASE_URL)
    await s.create_schema()
    yield s
    await s.close()


@pytest.fixture
def checkpoint_store(store):
    return SqlCheckpointStore(store)
