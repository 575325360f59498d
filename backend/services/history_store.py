"""Local history persistence for test runs, sprint velocity and sprint details.

All persistence is best-effort: failures are logged and reported through a
``Result`` (or a bool) rather than raised, so the dashboard degrades to its
last-known state instead of failing.
"""

import json
import logging
import os
import tempfile
import threading
from datetime import date, datetime, timedelta, timezone
from typing import Callable, Optional

from services.models import SprintData, SprintVelocityEntry, TestRun
from services.result import Result

logger = logging.getLogger(__name__)

TEST_RUNS_KEY = "qase_test_runs_history"
VELOCITY_KEY = "sprint_velocity_history"
SPRINT_DETAIL_KEY = "sprintHistory_{space_id}"

TEST_RUN_RETENTION_DAYS = 30
LAST_WEEK_DAYS = 7
VELOCITY_MAX_ENTRIES = 24
SPRINT_DETAIL_MAX_AGE_DAYS = 7


def _utc_today() -> date:
    return datetime.now(timezone.utc).date()


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _parse_iso_date(value) -> Optional[date]:
    try:
        return date.fromisoformat(str(value)[:10])
    except (TypeError, ValueError):
        return None


class MemoryStore:
    """In-process key-value store."""

    def __init__(self, initial: Optional[dict] = None):
        self._data = dict(initial or {})

    def get(self, key: str) -> Result:
        if key not in self._data:
            return Result.failure("missing")
        return Result.success(json.loads(self._data[key]))

    def set(self, key: str, value) -> Result:
        try:
            self._data[key] = json.dumps(value)
        except (TypeError, ValueError) as e:
            return Result.failure(f"unserializable value: {e}")
        return Result.success()

    def delete(self, key: str) -> Result:
        self._data.pop(key, None)
        return Result.success()


class JsonFileStore:
    """Key-value store backed by a single JSON document on disk."""

    def __init__(self, path: str):
        self.path = path
        self._lock = threading.Lock()

    def _read(self) -> dict:
        if not os.path.exists(self.path):
            return {}
        with open(self.path, "r", encoding="utf-8") as f:
            data = json.load(f)
        return data if isinstance(data, dict) else {}

    def _write(self, data: dict):
        directory = os.path.dirname(self.path) or "."
        os.makedirs(directory, exist_ok=True)
        fd, tmp_path = tempfile.mkstemp(dir=directory, suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(data, f, indent=2)
            os.replace(tmp_path, self.path)
        except BaseException:
            if os.path.exists(tmp_path):
                os.remove(tmp_path)
            raise

    def get(self, key: str) -> Result:
        with self._lock:
            try:
                data = self._read()
            except (ValueError, OSError) as e:
                return Result.failure(f"read failed: {e}")
        if key not in data:
            return Result.failure("missing")
        return Result.success(data[key])

    def set(self, key: str, value) -> Result:
        with self._lock:
            try:
                try:
                    data = self._read()
                except ValueError:
                    logger.warning(f"Corrupt history file {self.path}, starting fresh")
                    data = {}
                data[key] = value
                self._write(data)
            except (TypeError, ValueError, OSError) as e:
                return Result.failure(f"write failed: {e}")
        return Result.success()

    def delete(self, key: str) -> Result:
        with self._lock:
            try:
                data = self._read()
                if key in data:
                    del data[key]
                    self._write(data)
            except (ValueError, OSError) as e:
                return Result.failure(f"delete failed: {e}")
        return Result.success()


def _read_list(store, key: str) -> list:
    result = store.get(key)
    if not result.ok and result.reason != "missing":
        logger.warning(f"Could not read {key}: {result.reason}")
    value = result.unwrap_or([])
    return value if isinstance(value, list) else []


class TestRunHistory:
    """Daily snapshots of Qase test runs, kept for 30 days."""

    def __init__(self, store, today: Callable[[], date] = _utc_today):
        self.store = store
        self._today = today

    def _load(self) -> list:
        runs = []
        for item in _read_list(self.store, TEST_RUNS_KEY):
            try:
                runs.append(TestRun.from_dict(item))
            except (KeyError, TypeError):
                continue
        return runs

    def _prune(self, runs: list) -> list:
        # Keep the 30 most recent calendar days, today included
        cutoff = self._today() - timedelta(days=TEST_RUN_RETENTION_DAYS)
        kept = []
        for run in runs:
            run_date = _parse_iso_date(run.execution_date)
            if run_date is not None and run_date > cutoff:
                kept.append(run)
        return kept

    def _write(self, runs: list) -> bool:
        result = self.store.set(TEST_RUNS_KEY, [run.to_dict() for run in runs])
        if not result.ok:
            logger.warning(f"Could not save test run history: {result.reason}")
        return result.ok

    def save(self, run: TestRun) -> bool:
        """Upsert a run by (executionDate, id), then prune old entries."""
        history = self._load()

        for index, existing in enumerate(history):
            if existing.execution_date == run.execution_date and existing.id == run.id:
                history[index] = run
                break
        else:
            history.append(run)

        return self._write(self._prune(history))

    def get_all(self) -> list:
        return self._load()

    def get_for_date(self, execution_date: str) -> list:
        return [run for run in self._load() if run.execution_date == execution_date]

    def get_last_week(self) -> list:
        """Runs from the last 7 days, oldest first."""
        cutoff = self._today() - timedelta(days=LAST_WEEK_DAYS)
        recent = []
        for run in self._load():
            run_date = _parse_iso_date(run.execution_date)
            if run_date is not None and run_date >= cutoff:
                recent.append(run)
        recent.sort(key=lambda r: r.execution_date)
        return recent

    def cleanup(self) -> bool:
        return self._write(self._prune(self._load()))


class SprintVelocityHistory:
    """Completed story points per sprint, kept for the last 24 sprints."""

    def __init__(self, store):
        self.store = store

    def _load(self) -> list:
        entries = []
        for item in _read_list(self.store, VELOCITY_KEY):
            try:
                entries.append(SprintVelocityEntry.from_dict(item))
            except (KeyError, TypeError):
                continue
        return entries

    def save(self, entry: SprintVelocityEntry) -> bool:
        """Upsert by sprint id or end date (last write wins)."""
        entries = self._load()

        for index, existing in enumerate(entries):
            if existing.sprint_id == entry.sprint_id or existing.end_date == entry.end_date:
                entries[index] = entry
                break
        else:
            entries.append(entry)

        entries.sort(key=lambda e: e.end_date)
        trimmed = entries[-VELOCITY_MAX_ENTRIES:]

        result = self.store.set(VELOCITY_KEY, [e.to_dict() for e in trimmed])
        if not result.ok:
            logger.warning(f"Could not save sprint velocity: {result.reason}")
        return result.ok

    def get_all(self) -> list:
        return sorted(self._load(), key=lambda e: e.end_date)

    def get_last_n(self, n: int) -> list:
        if n <= 0:
            return []
        return self.get_all()[-n:]

    def get_average_completed(self, last_n: int = 4) -> int:
        recent = self.get_last_n(last_n)
        if not recent:
            return 0
        total = sum(e.completed_story_points or 0 for e in recent)
        return round(total / len(recent))


class SprintDetailCache:
    """Per-space cache of computed sprints, trusted for 7 days."""

    def __init__(self, store, now: Callable[[], datetime] = _utc_now):
        self.store = store
        self._now = now

    def load(self, space_id: str) -> list:
        saved = self.store.get(SPRINT_DETAIL_KEY.format(space_id=space_id)).unwrap_or(None)
        if not isinstance(saved, dict):
            return []

        try:
            saved_at = datetime.fromisoformat(saved["timestamp"])
        except (KeyError, TypeError, ValueError):
            return []
        if saved_at.tzinfo is None:
            saved_at = saved_at.replace(tzinfo=timezone.utc)

        age = self._now() - saved_at
        if age >= timedelta(days=SPRINT_DETAIL_MAX_AGE_DAYS):
            return []

        sprints = []
        for item in saved.get("history") or []:
            try:
                sprints.append(SprintData.from_dict(item))
            except (KeyError, TypeError):
                continue
        return sprints

    def save(self, space_id: str, sprints: list) -> bool:
        payload = {
            "history": [s.to_dict() for s in sprints],
            "timestamp": self._now().isoformat(),
            "spaceId": space_id,
        }
        result = self.store.set(SPRINT_DETAIL_KEY.format(space_id=space_id), payload)
        if not result.ok:
            logger.warning(f"Could not save sprint history for space {space_id}: {result.reason}")
        return result.ok
