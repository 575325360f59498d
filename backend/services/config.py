"""Dashboard configuration loaded once from the environment."""

import os
from dataclasses import dataclass, field
from typing import Mapping, Optional

DEFAULT_CLICKUP_BASE_URL = "https://api.clickup.com/api/v2"
DEFAULT_QASE_BASE_URL = "https://api.qase.io/v1"
DEFAULT_HISTORY_FILE = os.path.join(
    os.path.dirname(os.path.dirname(__file__)), "config", "history.json"
)
DEFAULT_CORS_ORIGINS = ("http://localhost:5173", "http://127.0.0.1:5173")
LOG_LEVELS = ("CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG")


def _split_origins(raw: str) -> tuple:
    return tuple(o.strip() for o in raw.split(",") if o.strip())


def _parse_log_level(raw: Optional[str]) -> str:
    level = (raw or "").strip().upper()
    return level if level in LOG_LEVELS else "INFO"


def _parse_int(raw: Optional[str], default: int) -> int:
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        return default


@dataclass(frozen=True)
class DashboardConfig:
    """Immutable settings passed to every service that needs them."""

    clickup_token: str = ""
    clickup_workspace_id: str = ""
    clickup_sprint_folder_id: str = ""
    clickup_base_url: str = DEFAULT_CLICKUP_BASE_URL
    qase_token: str = ""
    qase_project_code: str = ""
    qase_base_url: str = DEFAULT_QASE_BASE_URL
    history_file: str = DEFAULT_HISTORY_FILE
    velocity_min_sprint: int = 0
    cors_origins: tuple = field(default=DEFAULT_CORS_ORIGINS)
    log_level: str = "INFO"

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "DashboardConfig":
        """Build the config from environment variables, with fallback defaults."""
        env = os.environ if environ is None else environ
        origins = env.get("DASHBOARD_CORS_ORIGINS")
        return cls(
            clickup_token=env.get("CLICKUP_API_TOKEN", "").strip(),
            clickup_workspace_id=env.get("CLICKUP_WORKSPACE_ID", "").strip(),
            clickup_sprint_folder_id=env.get("CLICKUP_SPRINT_FOLDER_ID", "").strip(),
            clickup_base_url=env.get("CLICKUP_BASE_URL", DEFAULT_CLICKUP_BASE_URL).rstrip("/"),
            qase_token=env.get("QASE_API_TOKEN", "").strip(),
            qase_project_code=env.get("QASE_PROJECT_CODE", "").strip(),
            qase_base_url=env.get("QASE_BASE_URL", DEFAULT_QASE_BASE_URL).rstrip("/"),
            history_file=env.get("DASHBOARD_HISTORY_FILE", DEFAULT_HISTORY_FILE),
            velocity_min_sprint=_parse_int(env.get("DASHBOARD_VELOCITY_MIN_SPRINT"), 0),
            cors_origins=_split_origins(origins) if origins else DEFAULT_CORS_ORIGINS,
            log_level=_parse_log_level(env.get("DASHBOARD_LOG_LEVEL")),
        )

    def validate(self) -> list:
        """Return a list of ClickUp configuration problems (empty when valid)."""
        errors = []

        if not self.clickup_token:
            errors.append("ClickUp API token is not configured (CLICKUP_API_TOKEN)")
        elif not self.clickup_token.startswith("pk_"):
            errors.append('Invalid ClickUp API token format (must start with "pk_")')

        if not self.clickup_workspace_id:
            errors.append("ClickUp workspace ID is not configured (CLICKUP_WORKSPACE_ID)")
        elif not self.clickup_workspace_id.isdigit():
            errors.append("ClickUp workspace ID must be numeric")

        return errors

    @property
    def qase_configured(self) -> bool:
        return bool(self.qase_token and self.qase_project_code)
