"""Task and note filtering.

Filters mirror the dashboard's search box and dropdowns:
    - search:   case-insensitive substring match
    - category: exact match, "all" or empty disables
    - status:   exact match, "all" or empty disables
    - priority: exact match, "all" or empty disables
"""

from datetime import datetime
from typing import Iterable, Optional, Union

from .enums import PRIORITY_RANK
from .models import Note, Task

ALL = "all"


def _is_unset(value: Optional[str]) -> bool:
    return not value or value.lower() == ALL


def _contains(haystack: Optional[str], needle: str) -> bool:
    return bool(haystack) and needle in haystack.lower()


def task_matches(
    task: Task,
    search: Optional[str] = None,
    category: Optional[str] = None,
    status: Optional[str] = None,
    priority: Optional[str] = None,
) -> bool:
    """Check one task against every active filter."""
    if search:
        term = search.lower()
        if not (_contains(task.title, term) or _contains(task.description, term)):
            return False

    if not _is_unset(category) and task.category != category:
        return False
    if not _is_unset(status) and task.status != status:
        return False
    if not _is_unset(priority) and task.priority != priority:
        return False

    return True


def filter_tasks(tasks: Iterable[Task], **filters) -> list[Task]:
    """Filter tasks, keeping input order."""
    return [t for t in tasks if task_matches(t, **filters)]


def note_matches(note: Note, search: Optional[str] = None) -> bool:
    """Match the search term against title, content or any tag."""
    if not search:
        return True

    term = search.lower()
    return (
        _contains(note.title, term)
        or _contains(note.content, term)
        or any(term in tag.lower() for tag in note.tags)
    )


def filter_notes(notes: Iterable[Note], search: Optional[str] = None) -> list[Note]:
    return [n for n in notes if note_matches(n, search)]


def parse_tags(raw: Union[str, Iterable[str], None]) -> list[str]:
    """Normalize tags from "a, b,,c" or a list into trimmed, non-empty strings."""
    if raw is None:
        return []
    if isinstance(raw, str):
        raw = raw.split(",")
    return [tag.strip() for tag in raw if tag and tag.strip()]


def newest_first(items: Iterable) -> list:
    """Sort by created_at, newest first. Unsaved items sort last."""
    return sorted(
        items,
        key=lambda item: item.created_at or datetime.min,
        reverse=True,
    )


def by_priority(tasks: Iterable[Task]) -> list[Task]:
    """Sort critical first, ties broken by newest."""
    return sorted(
        newest_first(tasks),
        key=lambda t: PRIORITY_RANK.get(t.priority, -1),
        reverse=True,
    )
