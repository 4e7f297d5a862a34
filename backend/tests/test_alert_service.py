"""Tests for per-user alert engines."""

import pytest
from datetime import datetime, timedelta, timezone
from unittest.mock import MagicMock
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from app.alert_service import EVICT_JOB_ID, AlertService
from app.config import Settings
from app.models import Base, Task
from app.notification_config import AlertConfig
from conftest import FakeChime, FakeClock, RecordingSink


@pytest.fixture
def session_factory():
    """Sessions sharing one in-memory database."""
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    return sessionmaker(bind=engine)


@pytest.fixture
def service(session_factory):
    return AlertService(
        scheduler=MagicMock(),
        notifier=RecordingSink(),
        chime=FakeChime(),
        config=AlertConfig(),
        settings=Settings(default_user_id="ops", user_timezone="UTC"),
        session_factory=session_factory,
    )


def add_critical(session_factory, user_id: str, task_id: str = "crit-1"):
    db = session_factory()
    db.add(
        Task(
            id=task_id,
            user_id=user_id,
            title="Core switch down",
            category="infrastructure",
            priority="critical",
            status="pending",
        )
    )
    db.commit()
    db.close()


class TestEngineFor:
    """Tests for AlertService.engine_for."""

    def test_created_once_and_started(self, service):
        engine = service.engine_for("ops")

        assert service.engine_for("ops") is engine
        assert engine.running
        assert service.scheduler.add_job.call_count == 4

    def test_job_ids_are_per_user(self, service):
        service.engine_for("ops")
        service.engine_for("alice")

        ids = {c.kwargs["id"] for c in service.scheduler.add_job.call_args_list}
        assert "alerts:ops:critical" in ids
        assert "alerts:alice:critical" in ids

    def test_slack_only_for_default_user(self, service):
        assert service.notifier in service.engine_for("ops").sinks
        assert service.notifier not in service.engine_for("alice").sinks

    def test_engine_reads_only_its_user(self, service, session_factory):
        add_critical(session_factory, "ops")

        assert len(service.engine_for("alice").check_critical()) == 0
        assert len(service.engine_for("ops").check_critical()) == 1

    def test_alerts_reach_users_feed(self, service, session_factory):
        add_critical(session_factory, "ops")

        service.engine_for("ops").check_critical()

        assert service.feed_for("ops").last_seq == 1
        assert service.feed_for("alice").last_seq == 0
        assert len(service.notifier.alerts) == 1


class TestStop:
    """Tests for stopping engines."""

    def test_restarted_engine_starts_clean(self, service, session_factory):
        add_critical(session_factory, "ops")
        service.engine_for("ops").check_critical()

        service.stop("ops")
        fired = service.engine_for("ops").check_critical()

        assert len(fired) == 1

    def test_stop_all(self, service):
        service.engine_for("ops")
        service.engine_for("alice")

        service.stop_all()

        assert service.engines == {}
        # 4 jobs per engine plus the eviction job
        assert service.scheduler.remove_job.call_count == 9

    def test_stop_unknown_user_is_noop(self, service):
        service.stop("nobody")
        service.scheduler.remove_job.assert_not_called()

    def test_refresh_without_engine_is_noop(self, service):
        service.refresh("nobody")
        assert "nobody" not in service.engines


class TestIdleEviction:
    """Engines of users who stop polling are torn down."""

    @pytest.fixture
    def clock(self):
        return FakeClock(datetime(2026, 3, 10, 12, 0, tzinfo=timezone.utc))

    @pytest.fixture
    def idle_service(self, session_factory, clock):
        return AlertService(
            scheduler=MagicMock(),
            chime=FakeChime(),
            config=AlertConfig(),
            settings=Settings(
                default_user_id="ops", user_timezone="UTC", alert_idle_minutes=30
            ),
            session_factory=session_factory,
            clock=clock,
        )

    def test_start_registers_eviction_job(self, idle_service):
        idle_service.start()

        kwargs = idle_service.scheduler.add_job.call_args.kwargs
        assert kwargs["id"] == EVICT_JOB_ID
        assert kwargs["seconds"] == 60

    def test_many_users_do_not_pile_up(self, idle_service, clock):
        for n in range(50):
            idle_service.engine_for(f"user-{n}")

        clock.now += timedelta(minutes=31)
        evicted = idle_service.evict_idle()

        assert len(evicted) == 50
        assert idle_service.engines == {}
        assert idle_service.feeds == {}
        assert idle_service.last_seen == {}

    def test_recent_activity_keeps_engine(self, idle_service, clock):
        idle_service.engine_for("alice")
        clock.now += timedelta(minutes=20)
        idle_service.engine_for("alice")
        clock.now += timedelta(minutes=20)

        assert idle_service.evict_idle() == []
        assert "alice" in idle_service.engines

    def test_default_user_never_evicted(self, idle_service, clock):
        idle_service.engine_for("ops")
        clock.now += timedelta(days=1)

        assert idle_service.evict_idle() == []
        assert idle_service.engines["ops"].running

    def test_evicted_engine_jobs_removed(self, idle_service, clock):
        idle_service.engine_for("alice")
        clock.now += timedelta(hours=1)

        idle_service.evict_idle()

        assert idle_service.scheduler.remove_job.call_count == 4

    def test_sequence_continues_after_eviction(
        self, idle_service, session_factory, clock
    ):
        """A client cursor from before eviction still sees new alerts."""
        add_critical(session_factory, "alice")
        idle_service.engine_for("alice").check_critical()
        cursor = idle_service.feed_for("alice").last_seq

        clock.now += timedelta(hours=1)
        idle_service.evict_idle()
        idle_service.engine_for("alice").check_critical()

        assert len(idle_service.feed_for("alice").since(cursor)) == 1

    @pytest.mark.asyncio
    async def test_eviction_job_runs_eviction(self, idle_service, clock):
        idle_service.engine_for("alice")
        clock.now += timedelta(hours=1)

        await idle_service._evict_job()

        assert idle_service.engines == {}
