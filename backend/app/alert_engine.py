"""Task alert engine.

Polls a user's task list on two timers and raises at-most-once alerts:

- Critical-immediate: a critical task that is pending or scheduled.
- Scheduled: an open task whose alert time falls on the current minute
  (same calendar day, same hour and minute, in the user's timezone).

Every alert plays the chime and is handed to each sink (the in-app feed,
Slack). NotifiedState remembers what fired so nothing repeats until the task
completes or its scheduled alert is more than a day old.
"""

import logging
from datetime import datetime, timedelta, timezone, tzinfo
from typing import Callable, Iterable, Optional, Sequence, Union
from zoneinfo import ZoneInfo

from apscheduler.jobstores.base import JobLookupError

from .enums import OPEN_STATUSES, Priority
from .events import Alert, AlertKey, AlertKind, Severity
from .models import SessionLocal, Task
from .notification_config import AlertConfig
from .notification_state import NotifiedState, parse_alert_time

logger = logging.getLogger(__name__)

CRITICAL_TITLE = "Critical task alert"
SCHEDULED_TITLE = "Scheduled task reminder"
CRITICAL_SCHEDULED_TITLE = "Critical scheduled task"


def task_snapshot(user_id: str, session_factory=SessionLocal) -> Callable[[], list]:
    """Build a snapshot reader for one user's tasks, newest first."""

    def read() -> list[Task]:
        db = session_factory()
        try:
            tasks = (
                db.query(Task)
                .filter(Task.user_id == user_id)
                .order_by(Task.created_at.desc())
                .all()
            )
            db.expunge_all()
            return tasks
        finally:
            db.close()

    return read


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class AlertEngine:
    """Decides which tasks to alert about and fires each alert once."""

    def __init__(
        self,
        snapshot: Callable[[], Iterable],
        chime=None,
        sinks: Sequence = (),
        clock: Callable[[], datetime] = _utcnow,
        config: Optional[AlertConfig] = None,
        tz: Union[str, tzinfo] = "UTC",
        stale_after: timedelta = timedelta(hours=24),
        critical_interval: int = 30,
        scheduled_interval: int = 30,
        startup_delay: int = 2,
        name: str = "alerts",
    ):
        self.snapshot = snapshot
        self.chime = chime
        self.sinks = list(sinks)
        self.clock = clock
        self.config = config or AlertConfig()
        self.tz = ZoneInfo(tz) if isinstance(tz, str) else tz
        self.state = NotifiedState(stale_after)
        self.critical_interval = critical_interval
        self.scheduled_interval = scheduled_interval
        self.startup_delay = startup_delay
        self.name = name

        self._fingerprint: Optional[tuple] = None
        self._scheduler = None
        self._job_ids: list[str] = []

    # -------------------------------------------------------------------------
    # Snapshot handling
    # -------------------------------------------------------------------------

    def _now(self) -> datetime:
        now = self.clock()
        if now.tzinfo is None:
            now = now.replace(tzinfo=timezone.utc)
        return now

    def _read_snapshot(self) -> list:
        tasks = list(self.snapshot())
        fingerprint = tuple((t.id, t.status, t.alert_time) for t in tasks)
        if fingerprint != self._fingerprint:
            self.state.collect_garbage(tasks, self._now())
            self._fingerprint = fingerprint
        return tasks

    def refresh(self) -> None:
        """Re-read the snapshot so completed tasks are re-armed right away."""
        self._read_snapshot()

    def collect_garbage(self, tasks: Iterable) -> int:
        return self.state.collect_garbage(tasks, self._now())

    def reset(self) -> None:
        """Forget everything that fired."""
        self.state.clear()
        self._fingerprint = None

    def rebind(self, snapshot: Callable[[], Iterable]) -> None:
        """Point the engine at a different task list, starting clean."""
        self.snapshot = snapshot
        self.reset()

    # -------------------------------------------------------------------------
    # Checks
    # -------------------------------------------------------------------------

    def _fire(self, alert: Alert) -> None:
        if self.chime is not None and self.config.sound:
            try:
                self.chime.play()
            except Exception:
                logger.exception("Alert chime failed")

        for sink in self.sinks:
            try:
                sink.emit(alert)
            except Exception:
                logger.exception(f"Alert sink {type(sink).__name__} failed")

    def check_critical(self) -> list[Alert]:
        """Alert once for every open critical task.

        Returns:
            Alerts fired by this call, in snapshot order
        """
        if not self.config.is_kind_enabled(AlertKind.CRITICAL_IMMEDIATE.value):
            return []

        fired = []
        for task in self._read_snapshot():
            if task.priority != Priority.CRITICAL.value:
                continue
            if task.status not in OPEN_STATUSES:
                continue

            key = AlertKey(AlertKind.CRITICAL_IMMEDIATE, task.id)
            if key in self.state:
                continue

            self.state.add(key)
            alert = Alert(
                title=CRITICAL_TITLE,
                body=f"{task.title} needs immediate attention",
                severity=Severity.CRITICAL,
                key=key,
                task_title=task.title,
                created_at=self._now(),
            )
            self._fire(alert)
            fired.append(alert)

        if fired:
            logger.info(f"{self.name}: {len(fired)} critical alert(s)")
        return fired

    def matches_now(self, alert_time: datetime, now: datetime) -> bool:
        """Same calendar day, hour and minute in the user's timezone."""
        local_now = now.astimezone(self.tz)
        local_alert = alert_time.astimezone(self.tz)
        return (
            local_now.date() == local_alert.date()
            and local_now.hour == local_alert.hour
            and local_now.minute == local_alert.minute
        )

    def check_scheduled(self) -> list[Alert]:
        """Alert once for every open task whose alert time is this minute.

        Returns:
            Alerts fired by this call, in snapshot order
        """
        if not self.config.is_kind_enabled(AlertKind.SCHEDULED.value):
            return []

        tasks = self._read_snapshot()
        now = self._now()

        fired = []
        for task in tasks:
            if task.status not in OPEN_STATUSES:
                continue

            alert_time = parse_alert_time(task.alert_time)
            if alert_time is None:
                continue

            key = AlertKey(AlertKind.SCHEDULED, task.id)
            if key in self.state:
                continue
            if not self.matches_now(alert_time, now):
                continue

            self.state.add(key)
            at = alert_time.astimezone(self.tz).strftime("%H:%M")
            if task.priority == Priority.CRITICAL.value:
                title, severity = CRITICAL_SCHEDULED_TITLE, Severity.CRITICAL
            else:
                title, severity = SCHEDULED_TITLE, Severity.WARNING

            alert = Alert(
                title=title,
                body=f"{task.title} is scheduled for {at}",
                severity=severity,
                key=key,
                task_title=task.title,
                created_at=self._now(),
            )
            self._fire(alert)
            fired.append(alert)

        if fired:
            logger.info(f"{self.name}: {len(fired)} scheduled alert(s)")
        return fired

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    @property
    def running(self) -> bool:
        return bool(self._job_ids)

    async def _critical_job(self):
        self.check_critical()

    async def _scheduled_job(self):
        self.check_scheduled()

    def start(self, scheduler) -> None:
        """Register the polling and startup jobs on an APScheduler scheduler."""
        if self.running:
            return

        startup = _utcnow() + timedelta(seconds=self.startup_delay)
        jobs = [
            scheduler.add_job(
                self._critical_job,
                "interval",
                seconds=self.critical_interval,
                id=f"{self.name}:critical",
            ),
            scheduler.add_job(
                self._scheduled_job,
                "interval",
                seconds=self.scheduled_interval,
                id=f"{self.name}:scheduled",
            ),
            scheduler.add_job(
                self._critical_job,
                "date",
                run_date=startup,
                id=f"{self.name}:critical:startup",
            ),
            scheduler.add_job(
                self._scheduled_job,
                "date",
                run_date=startup,
                id=f"{self.name}:scheduled:startup",
            ),
        ]
        self._scheduler = scheduler
        self._job_ids = [job.id for job in jobs]
        logger.info(f"{self.name}: alert engine started")

    def stop(self) -> None:
        """Remove every job this engine registered."""
        if not self.running:
            return

        for job_id in self._job_ids:
            try:
                self._scheduler.remove_job(job_id)
            except JobLookupError:
                # Startup jobs drop themselves once they have run
                logger.debug(f"Job {job_id} already gone")

        self._job_ids = []
        self._scheduler = None
        logger.info(f"{self.name}: alert engine stopped")
