"""Tests for the local history stores."""

import json
from datetime import date, datetime, timedelta, timezone
from unittest.mock import Mock

from services import history_store, models
from services.history_store import (
    SPRINT_DETAIL_KEY,
    TEST_RUNS_KEY,
    VELOCITY_KEY,
    JsonFileStore,
    MemoryStore,
    SprintDetailCache,
    SprintVelocityHistory,
)
from services.models import SprintData, SprintMetrics, SprintVelocityEntry, TaskMetrics
from services.result import Result

TODAY = date(2024, 3, 31)


def make_run(run_id, execution_date, passed=10):
    return models.TestRun(
        id=run_id,
        name=f"Run {run_id}",
        status="passed",
        passed=passed,
        total=passed,
        last_updated=f"{execution_date}T08:00:00+00:00",
        execution_date=execution_date,
    )


def failing_store():
    store = Mock()
    store.get.return_value = Result.failure("read failed: disk error")
    store.set.return_value = Result.failure("write failed: disk full")
    return store


class TestMemoryStore:
    """Test the in-memory key-value store."""

    def test_get_missing_key(self):
        result = MemoryStore().get("nope")
        assert not result.ok
        assert result.reason == "missing"

    def test_set_get_delete(self):
        store = MemoryStore()
        assert store.set("k", {"a": [1, 2]}).ok
        assert store.get("k").value == {"a": [1, 2]}
        assert store.delete("k").ok
        assert not store.get("k").ok

    def test_returned_values_are_copies(self):
        store = MemoryStore()
        store.set("k", [1])
        store.get("k").value.append(2)
        assert store.get("k").value == [1]

    def test_unserializable_value_fails(self):
        assert not MemoryStore().set("k", object()).ok


class TestJsonFileStore:
    """Test the file-backed key-value store."""

    def test_persists_across_instances(self, tmp_path):
        path = str(tmp_path / "nested" / "history.json")
        JsonFileStore(path).set("k", [1, 2, 3])
        assert JsonFileStore(path).get("k").value == [1, 2, 3]

    def test_keeps_other_keys(self, tmp_path):
        store = JsonFileStore(str(tmp_path / "history.json"))
        store.set("a", 1)
        store.set("b", 2)
        store.delete("a")
        assert not store.get("a").ok
        assert store.get("b").value == 2

    def test_corrupt_file_reads_as_failure(self, tmp_path):
        path = tmp_path / "history.json"
        path.write_text("{not json")
        result = JsonFileStore(str(path)).get("k")
        assert not result.ok
        assert result.reason.startswith("read failed")

    def test_undecodable_bytes_read_as_failure(self, tmp_path):
        path = tmp_path / "history.json"
        path.write_bytes(b"\xff\xfe garbage")
        store = JsonFileStore(str(path))

        assert store.get("k").reason.startswith("read failed")
        assert not store.delete("k").ok
        assert SprintVelocityHistory(store).get_all() == []
        assert history_store.TestRunHistory(store, today=lambda: TODAY).get_all() == []
        assert SprintDetailCache(store).load("space-1") == []

    def test_undecodable_file_is_replaced_on_write(self, tmp_path):
        path = tmp_path / "history.json"
        path.write_bytes(b"\xff\xfe")
        store = JsonFileStore(str(path))

        assert store.set("k", "v").ok
        assert store.get("k").value == "v"

    def test_corrupt_file_is_replaced_on_write(self, tmp_path):
        path = tmp_path / "history.json"
        path.write_text("{not json")
        store = JsonFileStore(str(path))
        assert store.set("k", "v").ok
        assert json.loads(path.read_text()) == {"k": "v"}


class TestTestRunHistory:
    """Test daily test-run snapshots."""

    def test_upserts_by_date_and_id(self, store):
        history = history_store.TestRunHistory(store, today=lambda: TODAY)
        history.save(make_run("1", "2024-03-31", passed=5))
        history.save(make_run("1", "2024-03-31", passed=7))
        history.save(make_run("2", "2024-03-31"))
        history.save(make_run("1", "2024-03-30"))

        runs = history.get_all()
        assert len(runs) == 3
        assert history.get_for_date("2024-03-31")[0].passed == 7

    def test_keeps_thirty_most_recent_days(self, store):
        """35 daily entries shrink to the 30 most recent execution dates."""
        history = history_store.TestRunHistory(store, today=lambda: TODAY)
        dates = [(TODAY - timedelta(days=offset)).isoformat() for offset in range(34, -1, -1)]
        store.set(TEST_RUNS_KEY, [make_run("1", d).to_dict() for d in dates[:-1]])

        assert history.save(make_run("1", dates[-1]))

        kept = sorted(run.execution_date for run in history.get_all())
        assert len(kept) == 30
        assert kept == dates[-30:]

    def test_last_week_is_sorted_ascending(self, store):
        history = history_store.TestRunHistory(store, today=lambda: TODAY)
        for offset in (0, 3, 7, 8, 12):
            history.save(make_run("1", (TODAY - timedelta(days=offset)).isoformat()))

        last_week = [run.execution_date for run in history.get_last_week()]
        assert last_week == ["2024-03-24", "2024-03-28", "2024-03-31"]

    def test_reads_do_not_mutate(self, store):
        history = history_store.TestRunHistory(store, today=lambda: TODAY)
        stale = make_run("1", "2023-01-01").to_dict()
        store.set(TEST_RUNS_KEY, [stale])

        history.get_all()
        history.get_last_week()
        assert store.get(TEST_RUNS_KEY).value == [stale]

    def test_cleanup_prunes_without_adding(self, store):
        history = history_store.TestRunHistory(store, today=lambda: TODAY)
        store.set(TEST_RUNS_KEY, [make_run("1", "2023-01-01").to_dict(),
                                  make_run("2", "2024-03-30").to_dict()])
        assert history.cleanup()
        assert [r.id for r in history.get_all()] == ["2"]

    def test_storage_failures_are_swallowed(self):
        history = history_store.TestRunHistory(failing_store(), today=lambda: TODAY)
        assert history.save(make_run("1", "2024-03-31")) is False
        assert history.get_all() == []
        assert history.get_last_week() == []

    def test_skips_malformed_entries(self, store):
        store.set(TEST_RUNS_KEY, [{"name": "no id"}, make_run("1", "2024-03-31").to_dict()])
        history = history_store.TestRunHistory(store, today=lambda: TODAY)
        assert [r.id for r in history.get_all()] == ["1"]


class TestSprintVelocityHistory:
    """Test the velocity trend store."""

    def test_same_sprint_id_keeps_latest_value(self, store):
        history = SprintVelocityHistory(store)
        history.save(SprintVelocityEntry("S1", "Sprint 1", "2024-01-14", 10))
        history.save(SprintVelocityEntry("S1", "Sprint 1", "2024-01-14", 18))

        entries = history.get_all()
        assert len(entries) == 1
        assert entries[0].sprint_id == "S1"
        assert entries[0].completed_story_points == 18

    def test_matching_end_date_replaces_entry(self, store):
        history = SprintVelocityHistory(store)
        history.save(SprintVelocityEntry("S1", "Sprint 1", "2024-01-14", 10))
        history.save(SprintVelocityEntry("S1-bis", "Sprint 1 bis", "2024-01-14", 12))

        entries = history.get_all()
        assert [e.sprint_id for e in entries] == ["S1-bis"]

    def test_keeps_last_24_sorted_by_end_date(self, store):
        history = SprintVelocityHistory(store)
        start = date(2023, 1, 1)
        for i in reversed(range(30)):
            end = (start + timedelta(days=14 * i)).isoformat()
            history.save(SprintVelocityEntry(f"S{i}", f"Sprint {i}", end, i))

        entries = history.get_all()
        assert len(entries) == 24
        assert entries[0].sprint_id == "S6"
        assert entries[-1].sprint_id == "S29"
        assert [e.end_date for e in entries] == sorted(e.end_date for e in entries)

    def test_last_n_and_average(self, store):
        history = SprintVelocityHistory(store)
        for i, points in enumerate([10, 20, 30, 41, 50]):
            history.save(SprintVelocityEntry(f"S{i}", f"Sprint {i}", f"2024-0{i + 1}-01", points))

        assert [e.completed_story_points for e in history.get_last_n(2)] == [41, 50]
        assert history.get_last_n(0) == []
        assert history.get_average_completed() == 35
        assert history.get_average_completed(last_n=1) == 50

    def test_empty_average_is_zero(self, store):
        assert SprintVelocityHistory(store).get_average_completed() == 0

    def test_storage_failures_are_swallowed(self):
        history = SprintVelocityHistory(failing_store())
        assert history.save(SprintVelocityEntry("S1", "Sprint 1", "2024-01-14", 10)) is False
        assert history.get_all() == []

    def test_persisted_shape(self, store):
        SprintVelocityHistory(store).save(SprintVelocityEntry("S1", "Sprint 1", "2024-01-14", 10))
        assert store.get(VELOCITY_KEY).value == [{
            "sprintId": "S1",
            "sprintName": "Sprint 1",
            "endDate": "2024-01-14",
            "completedStoryPoints": 10,
        }]


class TestSprintDetailCache:
    """Test the per-space sprint cache and its freshness window."""

    now = datetime(2024, 3, 31, 12, 0, tzinfo=timezone.utc)

    def sprint(self):
        return SprintData(
            id="L1", name="Sprint 31", start_date="2024-03-01", end_date="2024-03-14",
            status="completed", tasks=TaskMetrics(total=2, completed=2), metrics=SprintMetrics(velocity=100),
        )

    def test_round_trip_while_fresh(self, store):
        cache = SprintDetailCache(store, now=lambda: self.now)
        cache.save("space-1", [self.sprint()])
        assert cache.load("space-1") == [self.sprint()]
        assert store.get(SPRINT_DETAIL_KEY.format(space_id="space-1")).value["spaceId"] == "space-1"

    def test_expires_after_seven_days(self, store):
        SprintDetailCache(store, now=lambda: self.now).save("space-1", [self.sprint()])
        later = SprintDetailCache(store, now=lambda: self.now + timedelta(days=7))
        assert later.load("space-1") == []

    def test_spaces_are_independent(self, store):
        cache = SprintDetailCache(store, now=lambda: self.now)
        cache.save("space-1", [self.sprint()])
        assert cache.load("space-2") == []

    def test_bad_timestamp_is_ignored(self, store):
        store.set(SPRINT_DETAIL_KEY.format(space_id="s"), {"history": [], "timestamp": "yesterday"})
        assert SprintDetailCache(store).load("s") == []
