"""Per-user alert engines.

Each user gets an engine and a feed the first time their alerts are read
(the equivalent of opening the dashboard). Engines share the scheduler and
the chime; Slack only follows the default user.

A user's subscription ends when they unsubscribe or stop polling for longer
than `alert_idle_minutes`. Their engine's jobs are removed and its notified
state is dropped with it. The default user is never evicted.
"""

import itertools
import logging
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

from apscheduler.jobstores.base import JobLookupError

from .alert_engine import AlertEngine, task_snapshot
from .alert_feed import AlertFeed
from .chime import Chime
from .config import Settings, get_settings
from .models import SessionLocal
from .notification_config import AlertConfig, get_alert_config
from .notifier import SlackNotifier

logger = logging.getLogger(__name__)

EVICT_JOB_ID = "alerts:evict-idle"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class AlertService:
    """Owns one AlertEngine and AlertFeed per user."""

    def __init__(
        self,
        scheduler,
        notifier: Optional[SlackNotifier] = None,
        chime: Optional[Chime] = None,
        config: Optional[AlertConfig] = None,
        settings: Optional[Settings] = None,
        session_factory=SessionLocal,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self.scheduler = scheduler
        self.settings = settings or get_settings()
        self.notifier = notifier
        self.chime = chime or Chime(enabled=self.settings.sound_enabled)
        self.config = config
        self.session_factory = session_factory
        self.clock = clock
        self.idle_after = timedelta(minutes=self.settings.alert_idle_minutes)
        self.engines: dict[str, AlertEngine] = {}
        self.feeds: dict[str, AlertFeed] = {}
        self.last_seen: dict[str, datetime] = {}
        # One counter for every feed so sequence numbers survive eviction
        self._seq = itertools.count(1)

    def start(self) -> None:
        """Register the idle-eviction job."""
        self.scheduler.add_job(
            self._evict_job,
            "interval",
            seconds=self.settings.alert_evict_check_seconds,
            id=EVICT_JOB_ID,
        )

    async def _evict_job(self):
        self.evict_idle()

    def feed_for(self, user_id: str) -> AlertFeed:
        if user_id not in self.feeds:
            self.feeds[user_id] = AlertFeed(self.settings.alert_feed_size, self._seq)
        return self.feeds[user_id]

    def engine_for(self, user_id: str) -> AlertEngine:
        """Get the user's engine, creating and starting it on first use.

        Every call counts as activity for idle eviction.
        """
        self.last_seen[user_id] = self.clock()

        engine = self.engines.get(user_id)
        if engine is not None:
            return engine

        sinks = [self.feed_for(user_id)]
        if self.notifier is not None and user_id == self.settings.default_user_id:
            sinks.append(self.notifier)

        engine = AlertEngine(
            snapshot=task_snapshot(user_id, self.session_factory),
            chime=self.chime,
            sinks=sinks,
            config=self.config or get_alert_config(),
            tz=self.settings.user_timezone,
            stale_after=timedelta(hours=self.settings.stale_alert_hours),
            critical_interval=self.settings.critical_check_seconds,
            scheduled_interval=self.settings.scheduled_check_seconds,
            startup_delay=self.settings.startup_delay_seconds,
            name=f"alerts:{user_id}",
        )
        engine.start(self.scheduler)
        self.engines[user_id] = engine
        return engine

    def refresh(self, user_id: str) -> None:
        """Tell a running engine that the user's tasks changed."""
        engine = self.engines.get(user_id)
        if engine is not None:
            engine.refresh()

    def stop(self, user_id: str) -> None:
        """End a user's subscription. A later engine starts with a clean state."""
        engine = self.engines.pop(user_id, None)
        self.feeds.pop(user_id, None)
        self.last_seen.pop(user_id, None)
        if engine is not None:
            engine.stop()

    def evict_idle(self) -> list[str]:
        """Stop engines whose user has not polled within `idle_after`.

        Returns:
            The evicted user ids
        """
        cutoff = self.clock() - self.idle_after
        idle = [
            user_id
            for user_id, seen in self.last_seen.items()
            if seen < cutoff and user_id != self.settings.default_user_id
        ]
        for user_id in idle:
            self.stop(user_id)
        if idle:
            logger.info(f"Evicted {len(idle)} idle alert engine(s)")
        return idle

    def stop_all(self) -> None:
        for user_id in list(self.engines):
            self.stop(user_id)
        try:
            self.scheduler.remove_job(EVICT_JOB_ID)
        except JobLookupError:
            logger.debug("Eviction job was not registered")
