"""Qase API client for test runs and test cases."""

from typing import Optional

import requests

from services.config import DashboardConfig
from services.errors import QaseError
from services.models import RUN_FAILED, RUN_PASSED, RUN_PENDING, RUN_RUNNING, TestRun

RUN_STATUS_CODES = {1: RUN_PASSED, 2: RUN_RUNNING, 3: RUN_FAILED}

AUTOMATION_CODES = {"2": "automated", "1": "to-be-automated"}
CASE_STATUS_CODES = {"0": "active", "1": "draft", "2": "deprecated"}
PRIORITY_CODES = {"1": "low", "2": "medium", "3": "high", "4": "critical"}


class QaseClient:
    """Read-only access to a Qase project's runs and cases."""

    def __init__(self, config: DashboardConfig, timeout: int = 30):
        self.base_url = config.qase_base_url.rstrip("/")
        self.token = config.qase_token
        self.project_code = config.qase_project_code
        self.timeout = timeout

    def _request(self, endpoint: str, params: Optional[dict] = None) -> list:
        """GET a Qase collection and return its ``result.entities``."""
        response = requests.get(
            f"{self.base_url}{endpoint}",
            headers={
                "Accept": "application/json",
                "Content-Type": "application/json",
                "Token": self.token,
            },
            params=params,
            timeout=self.timeout
        )

        if response.status_code != 200:
            raise QaseError(f"Qase API error: {response.status_code}")

        data = response.json()
        if not isinstance(data, dict) or not isinstance(data.get("result"), dict) \
                or "entities" not in data["result"]:
            raise QaseError("Invalid data format received from the Qase API")

        return data["result"]["entities"] or []

    def get_runs(self, limit: int = 50, offset: int = 0) -> list:
        return self._request(f"/run/{self.project_code}", {"limit": limit, "offset": offset})

    def get_cases(self, limit: int = 100) -> list:
        return self._request(f"/case/{self.project_code}", {"limit": limit})


def map_run_status(qase_run: dict) -> str:
    status_text = qase_run.get("status_text")
    if status_text in (RUN_PASSED, RUN_FAILED, RUN_RUNNING):
        return status_text
    return RUN_STATUS_CODES.get(qase_run.get("status"), RUN_PENDING)


def transform_run(qase_run: dict, fallback_time: str) -> TestRun:
    """Convert a Qase run entity into a TestRun."""
    stats = qase_run.get("stats") or {}

    def count(key):
        return qase_run.get(key) or stats.get(key) or 0

    return TestRun(
        id=str(qase_run["id"]),
        name=qase_run.get("name") or qase_run.get("title") or f"Test Run {qase_run['id']}",
        status=map_run_status(qase_run),
        passed=count("passed"),
        failed=count("failed"),
        skipped=count("skipped"),
        total=count("total"),
        last_updated=(
            qase_run.get("lastUpdated")
            or qase_run.get("end_time")
            or qase_run.get("start_time")
            or fallback_time
        ),
    )


def transform_case(qase_case: dict, fallback_time: str) -> dict:
    """Convert a Qase case entity into the dashboard's test case shape."""
    suite = qase_case.get("suite") or {}
    return {
        "id": qase_case.get("id"),
        "title": qase_case.get("title") or "Untitled test case",
        "description": qase_case.get("description") or "",
        "automation": AUTOMATION_CODES.get(str(qase_case.get("automation")), "manual"),
        "status": CASE_STATUS_CODES.get(str(qase_case.get("status")), "active"),
        "priority": PRIORITY_CODES.get(str(qase_case.get("priority")), "medium"),
        "suite": suite.get("title") if isinstance(suite, dict) and suite.get("title") else "No suite",
        "created_at": qase_case.get("created_at") or fallback_time,
        "updated_at": qase_case.get("updated_at") or fallback_time,
    }


def calculate_case_stats(cases: list) -> dict:
    """Count manual and automated cases per status.

    Cases still marked to-be-automated are not counted.
    """
    stats = {
        "manual": {"total": 0, "active": 0, "draft": 0, "deprecated": 0},
        "automated": {"total": 0, "active": 0, "draft": 0, "deprecated": 0},
    }

    for case in cases:
        automation = case["automation"]
        if automation not in stats:
            continue
        stats[automation]["total"] += 1
        stats[automation][case["status"]] += 1

    return stats
