"""QA dashboard data: current Qase runs merged with stored history."""

import logging
from datetime import datetime, timezone
from typing import Callable

import requests

from services.errors import QaseError
from services.history_store import TestRunHistory
from services.qase_client import QaseClient, calculate_case_stats, transform_case, transform_run
from services.single_flight import SingleFlight

logger = logging.getLogger(__name__)

DISPLAY_LIMIT = 30

QASE_ERRORS = (QaseError, requests.exceptions.RequestException, ValueError, KeyError)


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class QaDashboardService:
    """Fetch test runs and cases, degrading to history on any failure."""

    def __init__(self, client: QaseClient, history: TestRunHistory,
                 configured: bool = True,
                 clock: Callable[[], datetime] = _utc_now):
        self.client = client
        self.history = history
        self.configured = configured
        self._clock = clock
        self._flight = SingleFlight()

    def _historical_view(self, exclude_date=None) -> list:
        runs = []
        for stored in self.history.get_last_week():
            if exclude_date is not None and stored.execution_date == exclude_date:
                continue
            runs.append(dict(stored.to_dict(), isHistorical=True, isCurrentRun=False))
        return runs

    @staticmethod
    def _finalize(runs: list) -> list:
        runs.sort(key=lambda r: r.get("lastUpdated") or "")
        return runs[-DISPLAY_LIMIT:]

    def _load_runs(self) -> dict:
        now = self._clock()
        today = now.date().isoformat()

        if not self.configured:
            return {"runs": self._finalize(self._historical_view()), "live": False}

        try:
            entities = self.client.get_runs(limit=50, offset=0)
            current = [transform_run(entity, now.isoformat()) for entity in entities]
        except QASE_ERRORS as e:
            logger.warning(f"Falling back to stored test run history: {e}")
            return {"runs": self._finalize(self._historical_view()), "live": False}

        for run in current:
            run.execution_date = today
            self.history.save(run)

        runs = self._historical_view(exclude_date=today)
        runs.extend(
            dict(run.to_dict(), isHistorical=False, isCurrentRun=True, testCount=run.total)
            for run in current
        )
        return {"runs": self._finalize(runs), "live": True}

    def get_test_runs(self) -> dict:
        """Today's runs (saved to history) plus the last week of history."""
        result, generation = self._flight.do("test_runs", self._load_runs)
        return dict(result, generation=generation)

    def _load_cases(self) -> dict:
        if not self.configured:
            return {"cases": [], "stats": calculate_case_stats([]), "live": False}

        fallback_time = self._clock().isoformat()
        try:
            cases = [transform_case(entity, fallback_time)
                     for entity in self.client.get_cases(limit=100)]
        except QASE_ERRORS as e:
            logger.warning(f"Could not fetch test cases: {e}")
            return {"cases": [], "stats": calculate_case_stats([]), "live": False}

        return {"cases": cases, "stats": calculate_case_stats(cases), "live": True}

    def get_test_cases(self) -> dict:
        result, generation = self._flight.do("test_cases", self._load_cases)
        return dict(result, generation=generation)
