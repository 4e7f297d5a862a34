"""Summary dashboard.

Aggregates a user's tasks and notes into headline counts:
- Open work (pending + scheduled), in progress, completed in the last 24h
- Open critical tasks and upcoming scheduled alerts
- The most recent tasks
"""

from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Optional

from .enums import OPEN_STATUSES, Priority, TaskStatus
from .filters import newest_first
from .models import Task
from .notification_state import parse_alert_time

RECENT_LIMIT = 5


@dataclass
class DashboardStats:
    """Headline counts."""

    pending: int = 0
    in_progress: int = 0
    completed_today: int = 0
    critical: int = 0
    scheduled_alerts: int = 0
    notes: int = 0


@dataclass
class Dashboard:
    """Complete dashboard data."""

    stats: DashboardStats
    recent_tasks: list[Task] = field(default_factory=list)


def build_dashboard(
    tasks: list[Task], note_count: int = 0, now: Optional[datetime] = None
) -> Dashboard:
    """Aggregate tasks into dashboard stats.

    Args:
        tasks: The user's tasks
        note_count: Number of notes the user has
        now: Aware current time (defaults to now in UTC)
    """
    now = now or datetime.now(timezone.utc)
    # Stored timestamps are naive UTC
    day_ago = now.astimezone(timezone.utc).replace(tzinfo=None) - timedelta(hours=24)

    stats = DashboardStats(notes=note_count)
    for task in tasks:
        is_open = task.status in OPEN_STATUSES

        if is_open:
            stats.pending += 1
            if task.priority == Priority.CRITICAL.value:
                stats.critical += 1
            alert_time = parse_alert_time(task.alert_time)
            if alert_time and alert_time > now:
                stats.scheduled_alerts += 1
        elif task.status == TaskStatus.IN_PROGRESS.value:
            stats.in_progress += 1
        elif task.status == TaskStatus.COMPLETED.value:
            if task.updated_at and task.updated_at >= day_ago:
                stats.completed_today += 1

    return Dashboard(stats=stats, recent_tasks=newest_first(tasks)[:RECENT_LIMIT])
