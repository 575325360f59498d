"""Derived sprint and test-run records."""

from dataclasses import dataclass, field, asdict
from datetime import date
from typing import Optional

SPRINT_DRAFT = "draft"
SPRINT_ACTIVE = "active"
SPRINT_COMPLETED = "completed"

RUN_PASSED = "passed"
RUN_FAILED = "failed"
RUN_RUNNING = "running"
RUN_PENDING = "pending"


@dataclass(frozen=True)
class SprintRange:
    start: date
    end: date

    def to_dict(self) -> dict:
        return {"start": self.start.isoformat(), "end": self.end.isoformat()}


@dataclass
class TaskMetrics:
    total: int = 0
    completed: int = 0
    in_progress: int = 0
    pending: int = 0
    overdue: int = 0
    blocked: int = 0

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class StoryPoints:
    total: float = 0
    completed: float = 0
    remaining: float = 0


@dataclass
class TimeTracking:
    estimated: int = 0
    spent: int = 0
    remaining: int = 0


@dataclass
class SprintMetrics:
    velocity: int = 0
    story_points: StoryPoints = field(default_factory=StoryPoints)
    time_tracking: TimeTracking = field(default_factory=TimeTracking)

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class SprintData:
    """One ClickUp list interpreted as a sprint (or the backlog)."""

    id: str
    name: str
    start_date: str
    end_date: str
    status: str
    tasks: TaskMetrics
    metrics: SprintMetrics

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "start_date": self.start_date,
            "end_date": self.end_date,
            "status": self.status,
            "tasks": self.tasks.to_dict(),
            "metrics": self.metrics.to_dict(),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "SprintData":
        metrics = data.get("metrics") or {}
        return cls(
            id=str(data["id"]),
            name=data.get("name", ""),
            start_date=data.get("start_date", ""),
            end_date=data.get("end_date", ""),
            status=data.get("status", SPRINT_DRAFT),
            tasks=TaskMetrics(**(data.get("tasks") or {})),
            metrics=SprintMetrics(
                velocity=metrics.get("velocity", 0),
                story_points=StoryPoints(**(metrics.get("story_points") or {})),
                time_tracking=TimeTracking(**(metrics.get("time_tracking") or {})),
            ),
        )


@dataclass
class TestRun:
    """A Qase test run, optionally stamped with the day it was recorded."""

    id: str
    name: str
    status: str
    passed: int = 0
    failed: int = 0
    skipped: int = 0
    total: int = 0
    last_updated: str = ""
    execution_date: Optional[str] = None

    def to_dict(self) -> dict:
        data = {
            "id": self.id,
            "name": self.name,
            "status": self.status,
            "passed": self.passed,
            "failed": self.failed,
            "skipped": self.skipped,
            "total": self.total,
            "lastUpdated": self.last_updated,
        }
        if self.execution_date is not None:
            data["executionDate"] = self.execution_date
        return data

    @classmethod
    def from_dict(cls, data: dict) -> "TestRun":
        return cls(
            id=str(data["id"]),
            name=data.get("name", ""),
            status=data.get("status", RUN_PENDING),
            passed=data.get("passed", 0),
            failed=data.get("failed", 0),
            skipped=data.get("skipped", 0),
            total=data.get("total", 0),
            last_updated=data.get("lastUpdated", ""),
            execution_date=data.get("executionDate"),
        )


@dataclass
class SprintVelocityEntry:
    sprint_id: str
    sprint_name: str
    end_date: str
    completed_story_points: float = 0

    def to_dict(self) -> dict:
        return {
            "sprintId": self.sprint_id,
            "sprintName": self.sprint_name,
            "endDate": self.end_date,
            "completedStoryPoints": self.completed_story_points,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "SprintVelocityEntry":
        return cls(
            sprint_id=str(data["sprintId"]),
            sprint_name=data.get("sprintName", ""),
            end_date=data.get("endDate", ""),
            completed_story_points=data.get("completedStoryPoints") or 0,
        )
