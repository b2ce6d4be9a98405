import os
import tempfile
from datetime import datetime, time, timedelta, timezone
from pathlib import Path

import pytest

_TEST_DIR = Path(tempfile.mkdtemp(prefix="assistline-tests-"))
TEST_DB_PATH = _TEST_DIR / "assistline_test.db"

TEST_ENV = {
    "ENVIRONMENT": "test",
    "DATA_DIR": str(_TEST_DIR),
    "DATABASE_URL": f"sqlite+aiosqlite:///{TEST_DB_PATH}",
    "LOG_FILE": str(_TEST_DIR / "assistline-test.log"),
    "LOG_LEVEL": "WARNING",
    "TZ": "UTC",
    "RESPONSE_DEADLINE_HOURS": "2",
    "AUTO_ESCALATION_ENABLED": "0",
    "MAX_RECURRENCE_OCCURRENCES": "26",
}

for key, value in TEST_ENV.items():
    os.environ[key] = value

from sqlalchemy import create_engine

from assistline.domain import models  # noqa: F401  (registers tables on Base.metadata)
from assistline.domain.assignment_service import AssignmentStateMachine
from assistline.domain.base import Base
from assistline.domain.interfaces import StaticAvailabilityProvider
from assistline.domain.permissions import Principal
from assistline.services.notifications import InMemoryNotificationDispatcher

SYNC_DB_URL = f"sqlite:///{TEST_DB_PATH}"

FUTURE_DAY = datetime.now(timezone.utc).date() + timedelta(days=7)


@pytest.fixture(scope="session", autouse=True)
def _set_test_env():
    """Force deterministic env for tests and reset cached settings."""
    for key, value in TEST_ENV.items():
        os.environ[key] = value

    from assistline.core import settings as settings_module

    settings_module.get_settings.cache_clear()
    yield
    settings_module.get_settings.cache_clear()


@pytest.fixture(scope="session", autouse=True)
def _prepare_test_db(_set_test_env):
    """Apply migrations once per session to the test database."""
    from assistline.migrations.runner import upgrade_to_head

    upgrade_to_head(SYNC_DB_URL)
    yield


def _wipe_db() -> None:
    engine = create_engine(SYNC_DB_URL)
    try:
        with engine.begin() as conn:
            for table in reversed(Base.metadata.sorted_tables):
                conn.execute(table.delete())
    finally:
        engine.dispose()


@pytest.fixture(autouse=True)
def _clean_database_between_tests(_prepare_test_db):
    """Wipe all tables before each test to avoid cross-test pollution."""
    _wipe_db()
    yield


class FakeClock:
    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **delta) -> datetime:
        self.now = self.now + timedelta(**delta)
        return self.now


@pytest.fixture
def clock():
    return FakeClock(datetime.now(timezone.utc).replace(microsecond=0))


@pytest.fixture
def dispatcher():
    return InMemoryNotificationDispatcher()


@pytest.fixture
def availability():
    return StaticAvailabilityProvider()


@pytest.fixture
def machine(dispatcher, availability, clock):
    return AssignmentStateMachine(dispatcher=dispatcher, availability=availability, clock=clock)


@pytest.fixture
def stylist():
    return Principal.of("stylist-1", ["stylist"])


@pytest.fixture
def admin():
    return Principal.of("admin-1", ["admin"])


@pytest.fixture
def assistant_x():
    return Principal.of("assistant-x", ["assistant"])


@pytest.fixture
def assistant_y():
    return Principal.of("assistant-y", ["assistant"])


@pytest.fixture
def new_request(machine, stylist):
    async def _create(**overrides):
        data = dict(
            stylist_id=stylist.user_id,
            client_name="Dana Client",
            service_id="svc-balayage",
            request_date=FUTURE_DAY,
            start_time=time(9, 0),
            end_time=time(10, 0),
            principal=stylist,
        )
        data.update(overrides)
        return await machine.create(**data)

    return _create
