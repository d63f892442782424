"""Due date display helpers."""

from datetime import date, datetime, timedelta, timezone
from typing import Optional, Union

DateLike = Union[datetime, date, str]


def _to_datetime(value: DateLike) -> datetime:
    if isinstance(value, datetime):
        return value
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day)
    return datetime.fromisoformat(value.replace("Z", "+00:00"))


def _today(now: Optional[datetime], reference: datetime) -> date:
    if now is None:
        now = datetime.now(reference.tzinfo) if reference.tzinfo else datetime.now()
    return now.date()


def format_due_date(value: DateLike, now: Optional[datetime] = None) -> str:
    """
    Format a due date as "Today", "Tomorrow" or "Mar 5".

    A time suffix such as " at 2:00 PM" is added when the hour or minute
    is non-zero.

    Args:
        value: The due date (datetime, date or ISO string)
        now: Reference time, defaults to the current local time
    """
    due = _to_datetime(value)
    suffix = ""
    if due.hour or due.minute:
        suffix = " at " + due.strftime("%I:%M %p").lstrip("0")

    today = _today(now, due)
    if due.date() == today:
        return f"Today{suffix}"
    if due.date() == today + timedelta(days=1):
        return f"Tomorrow{suffix}"
    return f"{due.strftime('%b')} {due.day}{suffix}"


def _naive_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


def is_overdue(value: DateLike, now: Optional[datetime] = None) -> bool:
    """
    True when the date is in the past and not today.

    Naive values are taken as UTC (how timestamps are stored); aware values
    are converted, so mixing the two is safe. ``now`` defaults to the
    current UTC time.
    """
    due = _naive_utc(_to_datetime(value))
    now = _naive_utc(now) if now is not None else datetime.utcnow()
    return due < now and due.date() != now.date()
