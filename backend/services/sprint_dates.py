"""Sprint date-range inference from task dates."""

from datetime import date, datetime, timedelta, timezone
from typing import Iterable, Optional

from services.models import SprintRange
from services.result import Result

SPRINT_LENGTH_DAYS = 14
DEFAULT_HALF_WINDOW_DAYS = 7
FALLBACK_RANGE = SprintRange(start=date(2024, 1, 1), end=date(2024, 12, 31))

# ISO variants not accepted by datetime.fromisoformat on older interpreters
_DATE_FORMATS = (
    "%Y-%m-%dT%H:%M:%S.%f%z",
    "%Y-%m-%dT%H:%M:%S%z",
    "%Y-%m-%dT%H:%M:%S.%f",
    "%Y-%m-%dT%H:%M:%S",
    "%Y-%m-%d",
)


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def parse_task_datetime(value) -> Result:
    """Parse a ClickUp date value into an aware UTC datetime.

    ClickUp sends millisecond epoch timestamps as strings; ISO strings and
    datetime objects are accepted as well.
    """
    if value is None or value == "" or value == 0:
        return Result.failure("missing")

    if isinstance(value, datetime):
        return Result.success(_as_utc(value))
    if isinstance(value, date):
        return Result.success(datetime(value.year, value.month, value.day, tzinfo=timezone.utc))

    if isinstance(value, (int, float)) or (isinstance(value, str) and value.strip().lstrip("-").isdigit()):
        try:
            millis = float(value)
            return Result.success(datetime.fromtimestamp(millis / 1000, tz=timezone.utc))
        except (OverflowError, OSError, ValueError):
            return Result.failure("timestamp out of range")

    if not isinstance(value, str):
        return Result.failure("unsupported type")

    text = value.strip()
    try:
        return Result.success(_as_utc(datetime.fromisoformat(text.replace("Z", "+00:00"))))
    except ValueError:
        pass

    for fmt in _DATE_FORMATS:
        try:
            return Result.success(_as_utc(datetime.strptime(text, fmt)))
        except ValueError:
            continue

    return Result.failure("unparseable date")


def parse_task_date(value) -> Result:
    """Parse a ClickUp date value into a calendar date (UTC)."""
    parsed = parse_task_datetime(value)
    if not parsed.ok:
        return parsed
    return Result.success(parsed.value.date())


def _valid_dates(values: Iterable) -> list:
    dates = []
    for value in values:
        parsed = parse_task_date(value)
        if parsed.ok:
            dates.append(parsed.value)
    return sorted(dates)


def task_created_value(task: dict):
    return task.get("date_created") or task.get("created_at")


def infer_range(tasks: list, today: Optional[date] = None) -> SprintRange:
    """Infer a sprint's start/end dates from its tasks.

    Due dates win when present; otherwise the earliest creation date opens a
    two-week window; otherwise the window is centred on today.
    """
    due_dates = _valid_dates(task.get("due_date") for task in tasks)
    if due_dates:
        return SprintRange(start=due_dates[0], end=due_dates[-1])

    created_dates = _valid_dates(task_created_value(task) for task in tasks)
    if created_dates:
        start = created_dates[0]
        try:
            return SprintRange(start=start, end=start + timedelta(days=SPRINT_LENGTH_DAYS))
        except OverflowError:
            pass

    if today is None:
        today = datetime.now(timezone.utc).date()
    try:
        return SprintRange(
            start=today - timedelta(days=DEFAULT_HALF_WINDOW_DAYS),
            end=today + timedelta(days=DEFAULT_HALF_WINDOW_DAYS),
        )
    except OverflowError:
        return FALLBACK_RANGE
