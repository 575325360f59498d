"""Shared fixtures for QA & Sprint Dashboard tests."""

import os
import sys
from datetime import datetime, timezone
from unittest.mock import Mock

import pytest

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

from services.config import DashboardConfig
from services.history_store import MemoryStore


def epoch_ms(year, month, day):
    """ClickUp-style millisecond timestamp string for a UTC date."""
    return str(int(datetime(year, month, day, tzinfo=timezone.utc).timestamp() * 1000))


def make_response(status_code=200, payload=None):
    """Mock requests.Response with a JSON body."""
    response = Mock(status_code=status_code)
    response.json = Mock(return_value=payload if payload is not None else {})
    return response


@pytest.fixture
def config():
    """Valid dashboard configuration."""
    return DashboardConfig(
        clickup_token="pk_test_token",
        clickup_workspace_id="9001",
        clickup_base_url="https://api.clickup.test/api/v2",
        qase_token="qase-token",
        qase_project_code="DEMO",
        qase_base_url="https://api.qase.test/v1",
        history_file="/nonexistent/history.json",
    )


@pytest.fixture
def store():
    """Empty in-memory key-value store."""
    return MemoryStore()


@pytest.fixture
def no_sleep():
    """Recording stand-in for time.sleep."""
    return Mock()


@pytest.fixture
def fixed_now():
    """Reference time in the middle of the sample sprint."""
    return datetime(2024, 1, 8, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def sample_tasks():
    """Tasks of a sprint running 2024-01-01 .. 2024-01-14."""
    return [
        {
            "id": "t1",
            "name": "Login page",
            "status": {"status": "Done", "color": "#6bc950"},
            "due_date": epoch_ms(2024, 1, 1),
            "date_created": epoch_ms(2023, 12, 28),
            "time_estimate": 7200000,
            "time_spent": 3600000,
            "points": 3,
            "priority": None,
        },
        {
            "id": "t2",
            "name": "Checkout flow",
            "status": {"status": "in progress", "color": "#4194f6"},
            "due_date": epoch_ms(2024, 1, 14),
            "date_created": epoch_ms(2023, 12, 29),
            "time_estimate": 3600000,
            "time_spent": None,
            "points": None,
            "custom_fields": [{"id": "cf1", "name": "Sprint points", "value": "5"}],
        },
        {
            "id": "t3",
            "name": "Payment provider",
            "status": {"status": "Blocked"},
            "due_date": epoch_ms(2024, 1, 5),
            "points": 2,
        },
        {
            "id": "t4",
            "name": "Copy review",
            "status": {"status": "to do"},
            "due_date": None,
        },
    ]


@pytest.fixture
def sample_lists():
    """Lists of the engineering space's sprint folder."""
    return [
        {"id": "L0", "name": "BACKLOG", "task_count": 12},
        {"id": "L1", "name": "Sprint 31", "task_count": 20},
        {"id": "L2", "name": "Sprint 32", "task_count": 18},
    ]


@pytest.fixture
def app(config, store, no_sleep):
    """Create Flask test app."""
    from app import create_app
    app = create_app(config=config, store=store, sleep=no_sleep)
    app.config['TESTING'] = True
    return app


@pytest.fixture
def client(app):
    """Create Flask test client."""
    return app.test_client()
