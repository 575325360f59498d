"""Sprint data refresh: discovery, batched task retrieval, merge and caching."""

import logging
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

import requests

from services.clickup_client import ClickUpClient
from services.config import DashboardConfig
from services.errors import ClickUpError, ConfigurationError, DiscoveryError, RateLimitError
from services.history_store import SprintDetailCache, SprintVelocityHistory
from services.models import SPRINT_ACTIVE, SPRINT_DRAFT, SprintVelocityEntry
from services.single_flight import SingleFlight
from services.sprint_metrics import (
    average_completed_velocity,
    build_sprint,
    calculate_kpis,
    dedupe_and_sort,
    filter_sprints,
)

logger = logging.getLogger(__name__)

SPACE_NAME_HINTS = ("engineering", "dev", "development")
CONFIGURED_FOLDER_NAME = "Configured sprint folder"

# Per-item errors that only drop that item from the refresh
ITEM_ERRORS = (ClickUpError, requests.exceptions.RequestException, ValueError)


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _list_name(task_list: dict) -> str:
    return task_list.get("name") or ""


def is_backlog_list(task_list: dict) -> bool:
    name = _list_name(task_list)
    return name == "BACKLOG" or "backlog" in name.lower()


def is_sprint_list(task_list: dict) -> bool:
    return "sprint" in _list_name(task_list).lower()


class SprintDataService:
    """Build sprint data for the dashboard from ClickUp lists.

    Task requests go out in batches of three, each member staggered by
    200 ms, with a one second pause between batches. A 429 gets one retry
    after two seconds; any other per-list failure just drops that list.
    """

    BATCH_SIZE = 3
    STAGGER_SECONDS = 0.2
    BATCH_DELAY_SECONDS = 1.0
    RATE_LIMIT_DELAY_SECONDS = 2.0
    HISTORY_DELAY_SECONDS = 0.1
    SNAPSHOT_TTL = timedelta(minutes=5)

    def __init__(self, config: DashboardConfig, client: ClickUpClient,
                 velocity_history: SprintVelocityHistory,
                 detail_cache: SprintDetailCache,
                 sleep: Callable[[float], None] = time.sleep,
                 clock: Callable[[], datetime] = _utc_now):
        self.config = config
        self.client = client
        self.velocity_history = velocity_history
        self.detail_cache = detail_cache
        self._sleep = sleep
        self._clock = clock
        self._flight = SingleFlight()
        self._snapshot_lock = threading.Lock()
        self._snapshot = None
        self._snapshot_generation = 0
        self._snapshot_at = None

    # Discovery

    def _lists_for_space(self, space: dict) -> tuple:
        """Return (lists, sprint_folder) for a space."""
        space_id = space["id"]

        if self.config.clickup_sprint_folder_id:
            folder_id = self.config.clickup_sprint_folder_id
            lists = self.client.get_lists(space_id, folder_id=folder_id)
            return lists, {"id": folder_id, "name": CONFIGURED_FOLDER_NAME}

        folders = self.client.get_folders(space_id)
        sprint_folder = next(
            (f for f in folders if "sprint" in (f.get("name") or "").lower()),
            None
        )
        if sprint_folder:
            lists = self.client.get_lists(space_id, folder_id=sprint_folder["id"])
            return lists, {"id": sprint_folder["id"], "name": sprint_folder.get("name")}

        return self.client.get_lists(space_id), None

    def discover_spaces(self) -> list:
        """Fetch the workspace's spaces together with their sprint lists.

        Raises:
            DiscoveryError: if the teams or spaces listing fails
        """
        try:
            self.client.get_teams()
            spaces = self.client.get_spaces(self.config.clickup_workspace_id)
        except ITEM_ERRORS as e:
            raise DiscoveryError(f"Failed to list ClickUp spaces: {e}") from e

        spaces_with_lists = []
        for space in spaces:
            try:
                lists, sprint_folder = self._lists_for_space(space)
            except ITEM_ERRORS as e:
                logger.warning(f"Skipping space {space.get('id')}: {e}")
                continue

            spaces_with_lists.append({
                "id": str(space["id"]),
                "name": space.get("name", ""),
                "lists": lists,
                "sprintFolder": sprint_folder,
            })

        logger.info(f"Discovered {len(spaces_with_lists)} spaces with lists")
        return spaces_with_lists

    @staticmethod
    def select_space(spaces: list) -> dict:
        """Prefer an engineering/dev space, else the first one."""
        for space in spaces:
            name = (space.get("name") or "").lower()
            if any(hint in name for hint in SPACE_NAME_HINTS):
                return space

        if spaces:
            return spaces[0]

        raise DiscoveryError("No space with lists found in the workspace.")

    # Task retrieval

    def _fetch_tasks(self, task_list: dict, subtasks: bool) -> Optional[list]:
        """Fetch a list's tasks, or None if that list yields no data."""
        list_id = task_list["id"]
        try:
            try:
                return self.client.get_tasks(list_id, subtasks=subtasks)
            except RateLimitError:
                logger.warning(f"Rate limited on list {list_id}, retrying once")
                self._sleep(self.RATE_LIMIT_DELAY_SECONDS)
                return self.client.get_tasks(list_id, subtasks=subtasks)
        except ITEM_ERRORS as e:
            logger.warning(f"Skipping list {list_id}: {e}")
            return None

    def _process_list(self, task_list: dict, index: int, subtasks: bool,
                      skip_empty: bool, now: datetime):
        if index:
            self._sleep(index * self.STAGGER_SECONDS)

        tasks = self._fetch_tasks(task_list, subtasks)
        if tasks is None or (skip_empty and not tasks):
            return None

        return build_sprint(task_list, tasks, now=now)

    def process_lists(self, lists: list, now: datetime, subtasks: bool = False,
                      skip_empty: bool = False) -> list:
        """Process lists in fixed-size batches, joining each before the next."""
        results = []

        for start in range(0, len(lists), self.BATCH_SIZE):
            batch = lists[start:start + self.BATCH_SIZE]

            with ThreadPoolExecutor(max_workers=self.BATCH_SIZE) as executor:
                futures = [
                    executor.submit(self._process_list, task_list, index,
                                    subtasks, skip_empty, now)
                    for index, task_list in enumerate(batch)
                ]
                batch_results = [future.result() for future in futures]

            results.extend(r for r in batch_results if r is not None)

            if start + self.BATCH_SIZE < len(lists):
                self._sleep(self.BATCH_DELAY_SECONDS)

        return results

    # Sprint views

    def _record_velocity(self, sprints: list):
        """Upsert every active sprint into the velocity history, except the backlog list."""
        for sprint in sprints:
            if sprint.status != SPRINT_ACTIVE or is_backlog_list({"name": sprint.name}):
                continue
            self.velocity_history.save(SprintVelocityEntry(
                sprint_id=sprint.id,
                sprint_name=sprint.name,
                end_date=sprint.end_date,
                completed_story_points=sprint.metrics.story_points.completed or 0,
            ))

    def fetch_sprint_data(self, space: dict, now: Optional[datetime] = None) -> list:
        """Current view: the backlog plus the latest sprint list.

        Falls back to every list of the space when that yields nothing.
        Draft sprints are left out.
        """
        now = now or self._clock()
        lists = space.get("lists") or []

        to_process = []
        backlog = next((l for l in lists if is_backlog_list(l)), None)
        if backlog:
            to_process.append(backlog)
        sprint_lists = [l for l in lists if is_sprint_list(l)]
        if sprint_lists:
            to_process.append(sprint_lists[-1])

        sprints = [
            s for s in self.process_lists(to_process, now)
            if s.status != SPRINT_DRAFT
        ]

        if not sprints:
            logger.info(f"No sprint detected in space {space.get('id')}, using all lists")
            sprints = [
                s for s in self.process_lists(lists, now, subtasks=True, skip_empty=True)
                if s.status != SPRINT_DRAFT
            ]

        sprints = dedupe_and_sort(sprints)
        self._record_velocity(sprints)
        return sprints

    def fetch_sprint_history(self, space: dict, now: Optional[datetime] = None) -> list:
        """All sprint lists of a space, reusing cached completed sprints."""
        now = now or self._clock()
        space_id = space["id"]
        sprint_lists = [
            l for l in space.get("lists") or []
            if is_sprint_list(l) and _list_name(l) != "BACKLOG"
        ]

        saved = {s.id: s for s in self.detail_cache.load(space_id)}
        processed = []
        to_fetch = []

        for sprint_list in sprint_lists:
            cached = saved.get(str(sprint_list["id"]))
            if cached is None or cached.status in (SPRINT_ACTIVE, SPRINT_DRAFT):
                to_fetch.append(sprint_list)
            else:
                processed.append(cached)

        logger.info(
            f"Sprint history for space {space_id}: "
            f"{len(processed)} cached, {len(to_fetch)} to fetch"
        )

        for sprint_list in to_fetch:
            tasks = self._fetch_tasks(sprint_list, subtasks=False)
            if tasks is None:
                continue
            processed.append(build_sprint(sprint_list, tasks, now=now))
            self._sleep(self.HISTORY_DELAY_SECONDS)

        processed = dedupe_and_sort(processed)
        self.detail_cache.save(space_id, processed)
        return processed

    # Refresh cycle

    def _refresh_cycle(self) -> dict:
        now = self._clock()
        spaces = self.discover_spaces()
        space = self.select_space(spaces)

        sprints = self.fetch_sprint_data(space, now=now)
        history = self.fetch_sprint_history(space, now=now)

        return {
            "spaces": [
                {
                    "id": s["id"],
                    "name": s["name"],
                    "listCount": len(s["lists"]),
                    "sprintFolder": s["sprintFolder"],
                }
                for s in spaces
            ],
            "selectedSpace": space["id"],
            "sprints": sprints,
            "history": history,
            "averageVelocity": average_completed_velocity(
                history, self.config.velocity_min_sprint
            ),
            "lastUpdate": now.isoformat(),
        }

    def _cached_snapshot(self) -> Optional[dict]:
        with self._snapshot_lock:
            if self._snapshot is None:
                return None
            if self._clock() - self._snapshot_at >= self.SNAPSHOT_TTL:
                return None
            return dict(self._snapshot, generation=self._snapshot_generation)

    def refresh(self, force: bool = False) -> dict:
        """Run a refresh cycle, or return the snapshot from the last 5 minutes.

        Concurrent callers share one in-flight cycle; a snapshot only
        replaces the cached one if its generation is newer.

        Raises:
            ConfigurationError: before any network call if config is invalid
            DiscoveryError: if the workspace/space listing fails
        """
        errors = self.config.validate()
        if errors:
            raise ConfigurationError(errors)

        if not force:
            cached = self._cached_snapshot()
            if cached is not None:
                return cached

        snapshot, generation = self._flight.do("sprints", self._refresh_cycle)

        with self._snapshot_lock:
            # A cycle finished after this one owns the cached snapshot
            superseded = generation < self._flight.latest_generation("sprints")
            if not superseded and generation > self._snapshot_generation:
                self._snapshot = snapshot
                self._snapshot_generation = generation
                self._snapshot_at = self._clock()

        return dict(snapshot, generation=generation)

    def get_kpis(self, period: str = "current") -> dict:
        """KPIs over the current sprints and history of the latest snapshot."""
        snapshot = self.refresh()
        sprints = dedupe_and_sort(list(snapshot["history"]) + list(snapshot["sprints"]))
        selected = filter_sprints(sprints, period)
        return {
            "period": period,
            "sprintCount": len(selected),
            "kpis": calculate_kpis(selected),
        }


def serialize_snapshot(snapshot: dict) -> dict:
    """JSON-ready copy of a refresh snapshot."""
    data = dict(snapshot)
    data["sprints"] = [s.to_dict() for s in snapshot["sprints"]]
    data["history"] = [s.to_dict() for s in snapshot["history"]]
    return data
