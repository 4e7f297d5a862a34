"""Alert data classes for the notification system."""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Optional


class AlertKind(Enum):
    """Reasons a task can raise an alert."""

    CRITICAL_IMMEDIATE = "critical_immediate"
    SCHEDULED = "scheduled"


class Severity(Enum):
    """How loudly an alert should be presented."""

    CRITICAL = "critical"
    WARNING = "warning"


@dataclass(frozen=True)
class AlertKey:
    """Deduplication key: one alert per (kind, task)."""

    kind: AlertKind
    task_id: str


@dataclass
class Alert:
    """A user-facing alert.

    Attributes:
        title: Short headline
        body: Message text
        severity: critical or warning
        key: The dedupe key this alert was fired under
        task_title: Title of the task that raised it
        created_at: When the engine fired it
    """

    title: str
    body: str
    severity: Severity
    key: Optional[AlertKey] = None
    task_title: str = ""
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def task_id(self) -> Optional[str]:
        return self.key.task_id if self.key else None
