"""Notification state management.

Tracks which (alert kind, task) pairs have already fired so that each alert
is delivered once, and forgets them again when a task completes or its
scheduled alert goes stale.
"""

import logging
from datetime import datetime, timedelta, timezone
from typing import Iterable, Iterator, Optional, TYPE_CHECKING

from .enums import TaskStatus
from .events import AlertKey, AlertKind

if TYPE_CHECKING:
    from .models import Task

logger = logging.getLogger(__name__)


def parse_alert_time(value) -> Optional[datetime]:
    """Return a task's alert time as an aware UTC datetime.

    Naive datetimes are taken as UTC. ISO strings are accepted. Anything else
    (including malformed strings) yields None.
    """
    if value is None:
        return None
    if isinstance(value, str):
        try:
            value = datetime.fromisoformat(value)
        except ValueError:
            logger.debug(f"Ignoring malformed alert_time {value!r}")
            return None
    if not isinstance(value, datetime):
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class NotifiedState:
    """Set of alert keys that have already fired."""

    def __init__(self, stale_after: timedelta = timedelta(hours=24)):
        self.stale_after = stale_after
        self._keys: set[AlertKey] = set()

    def __contains__(self, key: AlertKey) -> bool:
        return key in self._keys

    def __iter__(self) -> Iterator[AlertKey]:
        return iter(self._keys)

    def __len__(self) -> int:
        return len(self._keys)

    def add(self, key: AlertKey) -> None:
        self._keys.add(key)

    def discard(self, key: AlertKey) -> None:
        self._keys.discard(key)

    def forget_task(self, task_id: str) -> None:
        """Drop every kind of key for a task."""
        for kind in AlertKind:
            self._keys.discard(AlertKey(kind, task_id))

    def clear(self) -> None:
        self._keys.clear()

    def collect_garbage(self, tasks: Iterable["Task"], now: datetime) -> int:
        """Forget keys for completed, deleted and stale-scheduled tasks.

        Keys for task ids missing from the snapshot are dropped, so the
        snapshot must be the full task list.

        Args:
            tasks: Current task snapshot
            now: Aware current time

        Returns:
            Number of keys removed
        """
        before = len(self._keys)
        tasks = list(tasks)

        present = {task.id for task in tasks}
        self._keys = {key for key in self._keys if key.task_id in present}

        for task in tasks:
            if task.status == TaskStatus.COMPLETED.value:
                self.forget_task(task.id)
                continue

            alert_time = parse_alert_time(task.alert_time)
            if alert_time and now - alert_time > self.stale_after:
                self._keys.discard(AlertKey(AlertKind.SCHEDULED, task.id))

        removed = before - len(self._keys)
        if removed:
            logger.debug(f"Forgot {removed} notified keys")
        return removed
