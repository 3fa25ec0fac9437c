"""
Pytest configuration and fixtures.
"""

import os
import uuid
from datetime import UTC, datetime

import pytest

# Set test environment
os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")
os.environ.setdefault("ADMIN_API_KEY", "test-admin-key")

NOW = datetime(2026, 3, 1, 12, 0, 0, tzinfo=UTC)


@pytest.fixture
def now():
    return NOW


@pytest.fixture
def fake_clock():
    """Clock frozen at NOW."""
    from backup_gc.clock import FakeClock

    return FakeClock(NOW)


@pytest.fixture
def make_backup():
    """Factory for BackupRecord with a fresh uid."""
    from backup_gc.types import BackupRecord

    def _make(name="backup-1", namespace="velero", expiration=None, uid=None):
        return BackupRecord(
            namespace=namespace,
            name=name,
            uid=uid or str(uuid.uuid4()),
            expiration=expiration,
        )

    return _make


@pytest.fixture
def session_factory():
    """Session factory bound to a fresh in-memory SQLite database."""
    from backup_gc.database import create_engine_for_url, create_session_factory, init_db

    engine = create_engine_for_url("sqlite:///:memory:")
    init_db(engine)
    yield create_session_factory(engine)
    engine.dispose()


@pytest.fixture(autouse=True)
def clear_settings_cache():
    """Settings are lru_cached; reset between tests so env changes apply."""
    from backup_gc.config import get_settings

    get_settings.cache_clear()
    yield
    get_settings.cache_clear()
