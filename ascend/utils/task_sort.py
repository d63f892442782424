"""Task sorting, grouping and filtering helpers.

All helpers are pure: they accept ORM rows, Pydantic models or plain dicts
and return new lists without touching the input.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Iterable, Optional, Sequence, TypeVar

T = TypeVar("T")

SORT_FIELDS = ("position", "due_date", "priority")
SORT_DIRECTIONS = ("asc", "desc")
DEFAULT_SORT_FIELD = "position"
DEFAULT_SORT_DIRECTION = "asc"

TASK_STATUSES = ("todo", "in-progress", "done")

# Higher number = higher priority; unknown values rank below "low"
PRIORITY_VALUES = {
    "low": 1,
    "medium": 2,
    "high": 3,
    "urgent": 4,
}


@dataclass(frozen=True)
class TaskSortOption:
    """A sort choice offered to users."""

    field: str
    direction: str
    label: str

    @property
    def key(self) -> str:
        return get_sort_option_key(self.field, self.direction)


TASK_SORT_OPTIONS: list[TaskSortOption] = [
    TaskSortOption("position", "asc", "Default"),
    TaskSortOption("due_date", "asc", "Due Date (earliest first)"),
    TaskSortOption("due_date", "desc", "Due Date (latest first)"),
    TaskSortOption("priority", "desc", "Priority (highest first)"),
    TaskSortOption("priority", "asc", "Priority (lowest first)"),
]


def _field(task: Any, name: str) -> Any:
    if isinstance(task, dict):
        return task.get(name)
    return getattr(task, name, None)


def _enum_value(value: Any) -> Any:
    return getattr(value, "value", value)


def _as_datetime(value: Any) -> Optional[datetime]:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value
    return datetime.fromisoformat(str(value).replace("Z", "+00:00"))


def _timestamp(value: datetime) -> float:
    # Naive values are treated as UTC so mixed inputs stay comparable
    if value.tzinfo is None:
        return (value - datetime(1970, 1, 1)).total_seconds()
    return value.timestamp()


def get_priority_value(priority: Any) -> int:
    """Numeric rank of a priority (0 for unknown values)."""
    return PRIORITY_VALUES.get(_enum_value(priority), 0)


def sort_tasks(tasks: Iterable[T], field: str, direction: str) -> list[T]:
    """
    Sort tasks by a field and direction.

    Args:
        tasks: Tasks to sort (not modified)
        field: "position", "due_date" or "priority"; anything else sorts by position
        direction: "asc" or "desc"

    Returns:
        list: A new, stably sorted list. Tasks without a due date go last
        when ascending and first when descending.
    """
    descending = direction == "desc"
    items = list(tasks)

    if field == "due_date":
        dated = [t for t in items if _as_datetime(_field(t, "due_date")) is not None]
        undated = [t for t in items if _as_datetime(_field(t, "due_date")) is None]
        dated = sorted(
            dated,
            key=lambda t: _timestamp(_as_datetime(_field(t, "due_date"))),
            reverse=descending,
        )
        return undated + dated if descending else dated + undated

    if field == "priority":
        return sorted(
            items,
            key=lambda t: get_priority_value(_field(t, "priority")),
            reverse=descending,
        )

    return sorted(
        items,
        key=lambda t: _field(t, "position") or 0,
        reverse=descending,
    )


def sort_tasks_with_completed_last(
    tasks: Iterable[T], field: str, direction: str
) -> list[T]:
    """Sort incomplete tasks first and completed ones after, each group on its own."""
    items = list(tasks)
    incomplete = [t for t in items if _enum_value(_field(t, "status")) != "done"]
    completed = [t for t in items if _enum_value(_field(t, "status")) == "done"]
    return sort_tasks(incomplete, field, direction) + sort_tasks(completed, field, direction)


def get_sort_option_key(field: str, direction: str) -> str:
    return f"{field}:{direction}"


def parse_sort_option_key(key: Optional[str]) -> tuple[str, str]:
    """
    Parse a ``field:direction`` key.

    Missing or unrecognized parts fall back to ``position`` / ``asc``.
    """
    field, _, direction = (key or "").partition(":")
    if field not in SORT_FIELDS:
        field = DEFAULT_SORT_FIELD
    if direction not in SORT_DIRECTIONS:
        direction = DEFAULT_SORT_DIRECTION
    return field, direction


def group_by_status(tasks: Iterable[T]) -> dict[str, list[T]]:
    """Group tasks into Kanban columns, each ordered by position."""
    columns: dict[str, list[T]] = {status: [] for status in TASK_STATUSES}
    for task in tasks:
        columns.setdefault(_enum_value(_field(task, "status")), []).append(task)
    return {status: sort_tasks(items, "position", "asc") for status, items in columns.items()}


def filter_tasks(
    tasks: Iterable[T],
    *,
    statuses: Optional[Sequence[str]] = None,
    priorities: Optional[Sequence[str]] = None,
    assignee_id: Any = None,
    project_id: Any = None,
    search: Optional[str] = None,
    include_archived: bool = False,
) -> list[T]:
    """
    Filter tasks by the list-view criteria.

    Empty criteria match everything. ``search`` is a case-insensitive
    substring match against the title. Archived tasks are excluded unless
    ``include_archived`` is set.
    """
    needle = search.strip().lower() if search else ""
    result = []
    for task in tasks:
        if not include_archived and _field(task, "is_archived"):
            continue
        if statuses and _enum_value(_field(task, "status")) not in statuses:
            continue
        if priorities and _enum_value(_field(task, "priority")) not in priorities:
            continue
        if assignee_id is not None and str(_field(task, "assignee_id")) != str(assignee_id):
            continue
        if project_id is not None and str(_field(task, "project_id")) != str(project_id):
            continue
        if needle and needle not in (_field(task, "title") or "").lower():
            continue
        result.append(task)
    return result
