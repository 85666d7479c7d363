"""
Pytest Configuration and Fixtures

Shared fixtures for all tests.
"""

import pytest

from scenegen.storage import BoundedSessionStore, MemoryStorage, PromptHistoryIndex


@pytest.fixture
def storage():
    """Roomy in-memory storage."""
    return MemoryStorage(quota_bytes=1_000_000)


@pytest.fixture
def session_store(storage):
    return BoundedSessionStore(storage)


@pytest.fixture
def history(storage, session_store):
    return PromptHistoryIndex(storage, session_store)


@pytest.fixture
def sample_script() -> str:
    return (
        "INT. LIGHTHOUSE - NIGHT\n"
        "The keeper climbs the stairs.\n"
        "EXT. CLIFF - DAWN\n"
        "A ship appears on the horizon."
    )
