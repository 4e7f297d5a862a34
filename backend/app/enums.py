"""Enumerated task fields."""

from enum import Enum


class Priority(str, Enum):
    """Task priority, lowest first."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class TaskStatus(str, Enum):
    """Task lifecycle status."""

    PENDING = "pending"
    SCHEDULED = "scheduled"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class Category(str, Enum):
    """Area of IT operations a task belongs to."""

    INFRASTRUCTURE = "infrastructure"
    SECURITY = "security"
    DEVELOPMENT = "development"
    SUPPORT = "support"
    MONITORING = "monitoring"


# Statuses that can still raise alerts
OPEN_STATUSES = frozenset({TaskStatus.PENDING.value, TaskStatus.SCHEDULED.value})

PRIORITY_RANK = {p.value: i for i, p in enumerate(Priority)}
