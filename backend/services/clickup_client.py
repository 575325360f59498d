"""ClickUp API client for workspaces, spaces, lists and tasks."""

import logging
from typing import Optional

import requests

from services.config import DashboardConfig
from services.errors import ClickUpError, RateLimitError

logger = logging.getLogger(__name__)

ENDPOINTS = {
    "TEAMS": "/team",
    "SPACES": "/team/{workspaceId}/space",
    "FOLDERS": "/space/{spaceId}/folder",
    "LISTS": "/space/{spaceId}/list",
    "TASKS": "/list/{listId}/task",
}

ERROR_CODE_MESSAGES = {
    "OAUTH_027": "Authorization error: {err}. Check that your API token has the right permissions.",
    "OAUTH_001": "Invalid API token: {err}. Check your ClickUp token.",
    "OAUTH_002": "Expired API token: {err}. Regenerate your token.",
    "OAUTH_003": "Insufficient permissions: {err}. Check your token's access rights.",
}


def build_url(base_url: str, endpoint: str, **params) -> str:
    """Fill ``{placeholders}`` in an endpoint template and prefix the base URL."""
    url = f"{base_url}{endpoint}"
    for key, value in params.items():
        url = url.replace(f"{{{key}}}", str(value))
    return url


def describe_error(status_code: Optional[int], body: Optional[dict] = None) -> str:
    """Turn a ClickUp error response into a human readable message."""
    body = body or {}
    err = body.get("err")
    code = body.get("ECODE")

    if err and code:
        template = ERROR_CODE_MESSAGES.get(code)
        if template:
            return template.format(err=err)
        return f"ClickUp error ({code}): {err}"

    if status_code == 401:
        return "Authentication error: check your ClickUp API token."
    if status_code == 403:
        return "Access denied: check your API token permissions."
    if status_code == 404:
        return "Resource not found: check the workspace or space ID."
    if status_code is not None and status_code >= 500:
        return "ClickUp server error. Try again later."

    return f"Unknown ClickUp error: {body.get('message') or f'HTTP {status_code}'}"


class ClickUpClient:
    """Thin wrapper around the ClickUp v2 REST API."""

    def __init__(self, config: DashboardConfig, timeout: int = 30):
        self.base_url = config.clickup_base_url.rstrip("/")
        self.token = config.clickup_token
        self.timeout = timeout

    def _request(self, endpoint: str, params: Optional[dict] = None,
                 **path_params) -> dict:
        """Make an authenticated GET request to the ClickUp API.

        Raises:
            RateLimitError: on HTTP 429
            ClickUpError: on any other non-success status
            requests.exceptions.RequestException: on transport failure
        """
        response = requests.get(
            build_url(self.base_url, endpoint, **path_params),
            headers={
                "Authorization": self.token,
                "Content-Type": "application/json",
            },
            params=params,
            timeout=self.timeout
        )

        if response.status_code == 429:
            raise RateLimitError("ClickUp rate limit reached", status_code=429)

        if response.status_code != 200:
            try:
                body = response.json()
            except ValueError:
                body = {}
            if not isinstance(body, dict):
                body = {}
            raise ClickUpError(
                describe_error(response.status_code, body),
                status_code=response.status_code,
                code=body.get("ECODE"),
            )

        return response.json()

    def get_teams(self) -> list:
        return self._request(ENDPOINTS["TEAMS"]).get("teams", [])

    def get_spaces(self, workspace_id: str) -> list:
        return self._request(ENDPOINTS["SPACES"], workspaceId=workspace_id).get("spaces", [])

    def get_folders(self, space_id: str) -> list:
        return self._request(ENDPOINTS["FOLDERS"], spaceId=space_id).get("folders", [])

    def get_lists(self, space_id: str, folder_id: Optional[str] = None) -> list:
        params = {"folder_id": folder_id} if folder_id else None
        return self._request(ENDPOINTS["LISTS"], params=params, spaceId=space_id).get("lists", [])

    def get_tasks(self, list_id: str, subtasks: bool = False) -> list:
        """Get the first page of tasks for a list, closed tasks included."""
        data = self._request(
            ENDPOINTS["TASKS"],
            params={
                "include_closed": "true",
                "subtasks": "true" if subtasks else "false",
                "include_time": "true",
                "page": 0,
            },
            listId=list_id,
        )
        return data.get("tasks", [])
