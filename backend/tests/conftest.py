"""Pytest configuration and fixtures."""

import pytest
from datetime import datetime, timezone
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from app.models import Base, Task


class FakeClock:
    """Callable clock the tests can move."""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now


class FakeChime:
    """Counts plays instead of making noise."""

    def __init__(self):
        self.plays = 0

    def play(self) -> bool:
        self.plays += 1
        return True


class RecordingSink:
    """Collects emitted alerts."""

    def __init__(self):
        self.alerts = []

    def emit(self, alert) -> bool:
        self.alerts.append(alert)
        return True


def make_task(
    task_id: str = "t1",
    title: str = "Restart backup server",
    priority: str = "medium",
    status: str = "pending",
    alert_time=None,
    category: str = "infrastructure",
    user_id: str = "ops",
    created_at=None,
    updated_at=None,
) -> Task:
    """Create an unsaved task."""
    return Task(
        id=task_id,
        user_id=user_id,
        title=title,
        description=None,
        category=category,
        priority=priority,
        status=status,
        alert_time=alert_time,
        created_at=created_at,
        updated_at=updated_at,
    )


@pytest.fixture
def db_session():
    """Create an in-memory database session for testing."""
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)
    Session = sessionmaker(bind=engine)
    session = Session()
    yield session
    session.close()


@pytest.fixture
def clock():
    """Clock fixed at 2026-03-10 14:30:20 UTC."""
    return FakeClock(datetime(2026, 3, 10, 14, 30, 20, tzinfo=timezone.utc))


@pytest.fixture
def chime():
    return FakeChime()


@pytest.fixture
def sink():
    return RecordingSink()


@pytest.fixture
def critical_task():
    """A pending critical task with no alert time."""
    return make_task(
        task_id="crit-1",
        title="Core switch down",
        priority="critical",
        status="pending",
    )
