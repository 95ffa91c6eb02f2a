"""Shared test fixtures and configuration.

Sets up fake environment variables so src.config doesn't sys.exit(),
and provides temp-file stores, a service and a ready-made family.
"""

import os

# Patch env vars BEFORE any src imports
os.environ.setdefault("TELEGRAM_BOT_TOKEN", "fake-token-for-tests")
os.environ.setdefault("ALLOWED_USER_IDS", "12345")
os.environ.setdefault("DATABASE_PATH", ":memory:")
os.environ.setdefault("TIMEZONE", "UTC")

import pytest
from datetime import date

OWNER_ID = 12345


@pytest.fixture
def tmp_db_path(tmp_path):
    """Return a temporary SQLite DB path."""
    return str(tmp_path / "test_hometasks.db")


@pytest.fixture
def family_db(tmp_db_path):
    from src.data.db import FamilyDB
    return FamilyDB(db_path=tmp_db_path)


@pytest.fixture
def task_db(tmp_db_path):
    from src.data.db import TaskDB
    return TaskDB(db_path=tmp_db_path)


@pytest.fixture
def record_db(tmp_db_path):
    from src.data.db import RecordDB
    return RecordDB(db_path=tmp_db_path)


@pytest.fixture
def service(family_db, task_db, record_db):
    """HouseholdService over the temp stores."""
    from src.core.household_service import HouseholdService
    return HouseholdService(family_db, task_db, record_db)


@pytest.fixture
def session():
    from src.data.models import Session
    return Session(user_id=OWNER_ID, display_name="Dana")


@pytest.fixture
def family(service, session):
    """The Smith family: Alice (parent), Bob (child)."""
    response = service.setup_family(session, {
        "name": "Smith",
        "members": [{"name": "Alice", "role": "parent"}, {"name": "Bob", "role": "child"}],
    })
    return response.family


@pytest.fixture
def today():
    return date(2024, 5, 10)


@pytest.fixture
def task_form():
    """Factory for a daily task form payload inside a window."""
    def _make(title="Dishes", assignees=("Alice",), start="2024-05-01", end="2024-05-31"):
        return {
            "title": title,
            "priority": "medium",
            "frequency": "daily",
            "start_date": start,
            "end_date": end,
            "assignees": list(assignees),
        }
    return _make
