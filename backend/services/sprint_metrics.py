"""Sprint metrics calculation: task counts, story points, status and KPIs."""

import re
from datetime import date, datetime, timezone
from typing import Optional

from services import status_classifier
from services.models import (
    SPRINT_ACTIVE,
    SPRINT_COMPLETED,
    SPRINT_DRAFT,
    SprintData,
    SprintMetrics,
    SprintRange,
    StoryPoints,
    TaskMetrics,
    TimeTracking,
)
from services.sprint_dates import infer_range, parse_task_datetime

STORY_POINTS_FIELD = "Sprint points"

KPI_PERIODS = ("current", "last4", "last8", "all")


def _to_number(value) -> float:
    if value is None or value == "" or isinstance(value, bool):
        return 0
    if isinstance(value, (int, float)):
        return value
    try:
        number = float(value)
    except (TypeError, ValueError):
        return 0
    return int(number) if number.is_integer() else number


def get_story_points(task: dict) -> float:
    """Story points from the "Sprint points" custom field, else ``points``."""
    for custom_field in task.get("custom_fields") or []:
        if custom_field.get("name") == STORY_POINTS_FIELD:
            points = _to_number(custom_field.get("value"))
            if points:
                return points
            break

    return _to_number(task.get("points"))


def _now_utc(now: Optional[datetime]) -> datetime:
    if now is None:
        return datetime.now(timezone.utc)
    if now.tzinfo is None:
        return now.replace(tzinfo=timezone.utc)
    return now


def aggregate(tasks: list, states: list, now: Optional[datetime] = None) -> tuple:
    """Compute TaskMetrics and SprintMetrics for a set of tasks.

    Args:
        tasks: Raw ClickUp task dicts
        states: Classified state for each task (same order as ``tasks``)
        now: Reference time for the overdue check (defaults to current UTC time)

    Returns:
        Tuple of (TaskMetrics, SprintMetrics)
    """
    now = _now_utc(now)
    task_metrics = TaskMetrics(total=len(tasks))
    total_points = 0
    completed_points = 0
    estimated = 0
    spent = 0

    for task, state in zip(tasks, states):
        if state == status_classifier.COMPLETED:
            task_metrics.completed += 1
        elif state == status_classifier.IN_PROGRESS:
            task_metrics.in_progress += 1
        elif state == status_classifier.BLOCKED:
            task_metrics.blocked += 1
        else:
            task_metrics.pending += 1

        # Overdue is counted on top of the four-way split
        due = parse_task_datetime(task.get("due_date"))
        if due.ok and due.value < now and state != status_classifier.COMPLETED:
            task_metrics.overdue += 1

        points = get_story_points(task)
        total_points += points
        if state == status_classifier.COMPLETED:
            completed_points += points

        estimated += _to_number(task.get("time_estimate"))
        spent += _to_number(task.get("time_spent"))

    if task_metrics.total > 0:
        velocity = round(task_metrics.completed / task_metrics.total * 100)
    else:
        velocity = 0

    sprint_metrics = SprintMetrics(
        velocity=velocity,
        story_points=StoryPoints(
            total=total_points,
            completed=completed_points,
            remaining=total_points - completed_points,
        ),
        time_tracking=TimeTracking(
            estimated=estimated,
            spent=spent,
            remaining=estimated - spent,
        ),
    )
    return task_metrics, sprint_metrics


def resolve_status(sprint_range: SprintRange, metrics: TaskMetrics,
                   today: Optional[date] = None) -> str:
    """Decide whether a sprint is draft, active or completed.

    Full completion wins over the date range, even before the end date.
    """
    if today is None:
        today = datetime.now(timezone.utc).date()

    if metrics.total > 0 and metrics.completed == metrics.total:
        return SPRINT_COMPLETED

    if today > sprint_range.end:
        return SPRINT_COMPLETED

    if sprint_range.start <= today <= sprint_range.end:
        return SPRINT_ACTIVE

    if today < sprint_range.start:
        return SPRINT_DRAFT

    # Only reachable with an inverted range
    return SPRINT_ACTIVE if metrics.completed > 0 else SPRINT_DRAFT


def build_sprint(task_list: dict, tasks: list, now: Optional[datetime] = None) -> SprintData:
    """Run classification, date inference, aggregation and status on one list."""
    now = _now_utc(now)
    states = [status_classifier.classify_task(task) for task in tasks]
    task_metrics, sprint_metrics = aggregate(tasks, states, now=now)
    sprint_range = infer_range(tasks, today=now.date())
    status = resolve_status(sprint_range, task_metrics, today=now.date())

    return SprintData(
        id=str(task_list["id"]),
        name=task_list.get("name", ""),
        start_date=sprint_range.start.isoformat(),
        end_date=sprint_range.end.isoformat(),
        status=status,
        tasks=task_metrics,
        metrics=sprint_metrics,
    )


def dedupe_and_sort(sprints: list) -> list:
    """Deduplicate by id (last write wins) and sort by end date, newest first."""
    unique = {}
    for sprint in sprints:
        unique[sprint.id] = sprint
    return sorted(unique.values(), key=lambda s: s.end_date, reverse=True)


def sprint_number(name: str) -> int:
    match = re.search(r"\d+", name or "")
    return int(match.group(0)) if match else 0


def average_completed_velocity(sprints: list, min_sprint_number: int = 0) -> int:
    """Average completed story points across completed sprints.

    Only sprints whose name carries a number >= ``min_sprint_number`` count.
    """
    completed = [
        s for s in sprints
        if s.status == SPRINT_COMPLETED and sprint_number(s.name) >= min_sprint_number
    ]
    if not completed:
        return 0

    total = sum(s.metrics.story_points.completed or 0 for s in completed)
    return round(total / len(completed))


def filter_sprints(sprints: list, period: str) -> list:
    """Select the sprints for a KPI period."""
    if period == "current":
        return [s for s in sprints if s.status == SPRINT_ACTIVE]

    if period in ("last4", "last8"):
        limit = 4 if period == "last4" else 8
        completed = [s for s in sprints if s.status == SPRINT_COMPLETED]
        completed.sort(key=lambda s: s.end_date, reverse=True)
        return completed[:limit]

    return list(sprints)


def calculate_kpis(sprints: list) -> dict:
    """Aggregate dashboard KPIs over a set of sprints."""
    if not sprints:
        return {
            "totalSprints": 0,
            "activeSprints": 0,
            "completedSprints": 0,
            "totalTasks": 0,
            "completedTasks": 0,
            "inProgressTasks": 0,
            "overdueTasks": 0,
            "averageVelocity": 0,
            "averageStoryPoints": 0,
            "teamProductivity": 0,
            "sprintSuccessRate": 0,
            "backlogSize": 0,
        }

    total_sprints = len(sprints)
    active_sprints = sum(1 for s in sprints if s.status == SPRINT_ACTIVE)
    completed_sprints = sum(1 for s in sprints if s.status == SPRINT_COMPLETED)

    total_tasks = sum(s.tasks.total for s in sprints)
    completed_tasks = sum(s.tasks.completed for s in sprints)
    in_progress_tasks = sum(s.tasks.in_progress for s in sprints)
    overdue_tasks = sum(s.tasks.overdue for s in sprints)
    total_velocity = sum(s.metrics.velocity for s in sprints)
    total_story_points = sum(s.metrics.story_points.total for s in sprints)

    backlog_size = 0
    for sprint in sprints:
        if "backlog" in sprint.name.lower():
            backlog_size = sprint.tasks.total

    return {
        "totalSprints": total_sprints,
        "activeSprints": active_sprints,
        "completedSprints": completed_sprints,
        "totalTasks": total_tasks,
        "completedTasks": completed_tasks,
        "inProgressTasks": in_progress_tasks,
        "overdueTasks": overdue_tasks,
        "averageVelocity": round(total_velocity / total_sprints),
        "averageStoryPoints": round(total_story_points / total_sprints),
        "teamProductivity": round(completed_tasks / total_tasks * 100) if total_tasks else 0,
        "sprintSuccessRate": round(completed_sprints / total_sprints * 100),
        "backlogSize": backlog_size,
    }
