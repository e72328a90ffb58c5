"""Shared fixtures for the bridge tests."""

import pytest
import structlog

from dhis2rapidpro.config import Settings
from dhis2rapidpro.security.token_store import TokenStore

OPERATOR_USERNAME = "admin"
OPERATOR_PASSWORD = "district-s3cret"


@pytest.fixture(autouse=True)
def reset_structlog():
    """Undo any structlog configuration made by a test."""
    structlog.reset_defaults()
    yield
    structlog.reset_defaults()


@pytest.fixture
def db_path(tmp_path):
    """Path of a fresh SQLite database."""
    return tmp_path / "bridge.db"


@pytest.fixture
def token_store(db_path):
    """Token store backed by a temporary database."""
    return TokenStore(db_path, timeout_seconds=2.0)


@pytest.fixture
def make_settings(db_path):
    """Factory for settings with both security schemes enabled."""

    def _make(**overrides) -> Settings:
        values = {
            "MANAGEMENT_AUTH": "basic",
            "WEBHOOK_SECURITY_AUTH": "token",
            "MANAGEMENT_USERNAME": OPERATOR_USERNAME,
            "MANAGEMENT_PASSWORD": OPERATOR_PASSWORD,
            "SESSION_SECRET_KEY": "test-session-key",
            "DATABASE_PATH": db_path,
            "CONNECTION_TEST_ON_STARTUP": False,
        }
        values.update(overrides)
        return Settings(**values)

    return _make
