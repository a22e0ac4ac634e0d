"""Pytest configuration and fixtures for test suite."""

import os
import sys
from pathlib import Path

import pytest

# Set test environment BEFORE any other imports
os.environ.setdefault("APP_ENVIRONMENT", "test")
os.environ.setdefault("APP_STORE_BACKEND", "memory")
os.environ.setdefault("DB_DRIVER", "sqlite+aiosqlite")

# Add src to path for imports
src_path = Path(__file__).parent.parent / "src"
if str(src_path) not in sys.path:
    sys.path.insert(0, str(src_path))


def _reset_db_modules():
    """Reset database module globals to ensure clean state."""
    try:
        import database.async_engine as module
        module._async_engine = None
        module._async_session_factory = None
    except ImportError:
        pass


@pytest.fixture(autouse=True)
def reset_database_globals():
    """Reset database module globals before and after each test."""
    _reset_db_modules()
    yield
    _reset_db_modules()


@pytest.fixture(autouse=True)
def clear_settings_cache():
    """Settings getters are lru_cached; drop them so env patches apply."""
    from config.database import get_database_settings
    from config.settings import get_settings

    get_settings.cache_clear()
    get_database_settings.cache_clear()
    yield
    get_settings.cache_clear()
    get_database_settings.cache_clear()


# =============================================================================
# WIZARD FIXTURES
# =============================================================================

@pytest.fixture
def abc_catalog():
    """Three-step catalog used by most engine tests."""
    from wizard.step_catalog import StepCatalog, StepDefinition

    return StepCatalog(
        [
            StepDefinition(id="a", title="Step A", fields=("x", "y", "tags")),
            StepDefinition(id="b", title="Step B", fields=("y", "name", "ids")),
            StepDefinition(id="c", title="Step C", fields=("notes",)),
        ],
        version="test",
    )


@pytest.fixture
def memory_store(abc_catalog):
    """In-memory response store bound to the abc catalog."""
    from wizard.store import InMemoryResponseStore
    return InMemoryResponseStore(catalog=abc_catalog)


@pytest.fixture
def wizard_settings():
    from config.settings import WizardSettings
    return WizardSettings()


@pytest.fixture
def fast_retry():
    """Retry config without real sleeping."""
    from resilience import RetryConfig
    from wizard.errors import SyncFailed

    return RetryConfig(
        max_attempts=3,
        base_delay=0.0,
        max_delay=0.0,
        jitter=0.0,
        retryable_exceptions=(SyncFailed,),
    )


@pytest.fixture
def temp_db_settings(tmp_path):
    """Database settings pointing at a throwaway SQLite file."""
    from config.database import DatabaseSettings
    return DatabaseSettings(driver="sqlite+aiosqlite", sqlite_path=tmp_path / "wizard.db")
