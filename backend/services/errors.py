"""Exception types surfaced by the dashboard services."""

from typing import Optional


class DashboardError(Exception):
    """Base class for dashboard service errors."""


class ConfigurationError(DashboardError):
    """Raised when required configuration is missing or malformed."""

    def __init__(self, errors: list):
        self.errors = list(errors)
        super().__init__("Invalid dashboard configuration: " + "; ".join(self.errors))


class DiscoveryError(DashboardError):
    """Raised when the workspace/space listing fails. Fatal for a refresh."""


class ClickUpError(DashboardError):
    """Non-success response from the ClickUp API."""

    def __init__(self, message: str, status_code: Optional[int] = None,
                 code: Optional[str] = None):
        self.status_code = status_code
        self.code = code
        super().__init__(message)


class RateLimitError(ClickUpError):
    """ClickUp answered 429 Too Many Requests."""


class QaseError(DashboardError):
    """Non-success or malformed response from the Qase API."""
