"""Tests for the ClickUp API client."""

from unittest.mock import patch

import pytest

from conftest import make_response
from services.clickup_client import ClickUpClient, build_url, describe_error
from services.errors import ClickUpError, RateLimitError


class TestBuildUrl:
    """Test endpoint templating."""

    def test_fills_placeholders(self):
        url = build_url("https://api.clickup.com/api/v2", "/team/{workspaceId}/space", workspaceId="123")
        assert url == "https://api.clickup.com/api/v2/team/123/space"

    def test_leaves_unknown_placeholders(self):
        assert build_url("https://x", "/list/{listId}/task") == "https://x/list/{listId}/task"


class TestDescribeError:
    """Test error message translation."""

    def test_known_error_codes(self):
        message = describe_error(401, {"err": "Token invalid", "ECODE": "OAUTH_001"})
        assert message.startswith("Invalid API token: Token invalid")

    def test_unknown_error_code(self):
        assert describe_error(400, {"err": "Bad", "ECODE": "XYZ_1"}) == "ClickUp error (XYZ_1): Bad"

    @pytest.mark.parametrize("status, fragment", [
        (401, "Authentication error"),
        (403, "Access denied"),
        (404, "Resource not found"),
        (503, "server error"),
    ])
    def test_status_code_messages(self, status, fragment):
        assert fragment in describe_error(status)

    def test_fallback_message(self):
        assert "HTTP 418" in describe_error(418, {})


class TestClickUpClient:
    """Test authenticated requests."""

    @patch("services.clickup_client.requests.get")
    def test_sends_token_header(self, mock_get, config):
        mock_get.return_value = make_response(200, {"teams": [{"id": "1"}]})
        client = ClickUpClient(config)

        assert client.get_teams() == [{"id": "1"}]

        args, kwargs = mock_get.call_args
        assert args[0] == "https://api.clickup.test/api/v2/team"
        assert kwargs["headers"]["Authorization"] == "pk_test_token"
        assert kwargs["timeout"] == 30

    @patch("services.clickup_client.requests.get")
    def test_get_tasks_query_flags(self, mock_get, config):
        mock_get.return_value = make_response(200, {"tasks": [{"id": "t1"}]})

        tasks = ClickUpClient(config).get_tasks("L1", subtasks=True)

        assert tasks == [{"id": "t1"}]
        args, kwargs = mock_get.call_args
        assert args[0].endswith("/list/L1/task")
        assert kwargs["params"] == {
            "include_closed": "true",
            "subtasks": "true",
            "include_time": "true",
            "page": 0,
        }

    @patch("services.clickup_client.requests.get")
    def test_get_lists_with_folder(self, mock_get, config):
        mock_get.return_value = make_response(200, {"lists": []})
        ClickUpClient(config).get_lists("S1", folder_id="F9")

        args, kwargs = mock_get.call_args
        assert args[0].endswith("/space/S1/list")
        assert kwargs["params"] == {"folder_id": "F9"}

    @patch("services.clickup_client.requests.get")
    def test_rate_limit_raises(self, mock_get, config):
        mock_get.return_value = make_response(429)
        with pytest.raises(RateLimitError):
            ClickUpClient(config).get_tasks("L1")

    @patch("services.clickup_client.requests.get")
    def test_error_body_is_translated(self, mock_get, config):
        mock_get.return_value = make_response(401, {"err": "Oauth token not found", "ECODE": "OAUTH_027"})

        with pytest.raises(ClickUpError) as exc_info:
            ClickUpClient(config).get_spaces("9001")

        assert exc_info.value.status_code == 401
        assert exc_info.value.code == "OAUTH_027"
        assert "Authorization error" in str(exc_info.value)

    @patch("services.clickup_client.requests.get")
    def test_non_json_error_body(self, mock_get, config):
        response = make_response(500)
        response.json.side_effect = ValueError("no json")
        mock_get.return_value = response

        with pytest.raises(ClickUpError, match="server error"):
            ClickUpClient(config).get_folders("S1")
