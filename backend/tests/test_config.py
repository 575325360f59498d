"""Tests for environment configuration."""

from services.config import DEFAULT_CLICKUP_BASE_URL, DEFAULT_CORS_ORIGINS, DashboardConfig


class TestFromEnv:
    """Test loading settings from environment variables."""

    def test_reads_all_variables(self):
        config = DashboardConfig.from_env({
            "CLICKUP_API_TOKEN": " pk_abc ",
            "CLICKUP_WORKSPACE_ID": "123",
            "CLICKUP_SPRINT_FOLDER_ID": "F1",
            "CLICKUP_BASE_URL": "https://clickup.example/api/v2/",
            "QASE_API_TOKEN": "qt",
            "QASE_PROJECT_CODE": "WEB",
            "DASHBOARD_HISTORY_FILE": "/tmp/history.json",
            "DASHBOARD_VELOCITY_MIN_SPRINT": "30",
            "DASHBOARD_CORS_ORIGINS": "https://a.example, https://b.example",
            "DASHBOARD_LOG_LEVEL": "debug",
        })

        assert config.clickup_token == "pk_abc"
        assert config.clickup_workspace_id == "123"
        assert config.clickup_sprint_folder_id == "F1"
        assert config.clickup_base_url == "https://clickup.example/api/v2"
        assert config.qase_configured
        assert config.history_file == "/tmp/history.json"
        assert config.velocity_min_sprint == 30
        assert config.cors_origins == ("https://a.example", "https://b.example")
        assert config.log_level == "DEBUG"

    def test_defaults(self):
        config = DashboardConfig.from_env({})

        assert config.clickup_token == ""
        assert config.clickup_base_url == DEFAULT_CLICKUP_BASE_URL
        assert config.cors_origins == DEFAULT_CORS_ORIGINS
        assert config.velocity_min_sprint == 0
        assert not config.qase_configured

    def test_bad_integer_falls_back(self):
        config = DashboardConfig.from_env({"DASHBOARD_VELOCITY_MIN_SPRINT": "thirty"})
        assert config.velocity_min_sprint == 0

    def test_unknown_log_level_falls_back_to_info(self):
        config = DashboardConfig.from_env({"DASHBOARD_LOG_LEVEL": "verbose"})
        assert config.log_level == "INFO"


class TestValidate:
    """Test ClickUp configuration checks."""

    def test_valid(self):
        assert DashboardConfig(clickup_token="pk_1", clickup_workspace_id="42").validate() == []

    def test_missing_values(self):
        errors = DashboardConfig().validate()
        assert len(errors) == 2
        assert "CLICKUP_API_TOKEN" in errors[0]
        assert "CLICKUP_WORKSPACE_ID" in errors[1]

    def test_token_prefix(self):
        errors = DashboardConfig(clickup_token="abc", clickup_workspace_id="42").validate()
        assert errors == ['Invalid ClickUp API token format (must start with "pk_")']

    def test_numeric_workspace(self):
        errors = DashboardConfig(clickup_token="pk_1", clickup_workspace_id="team").validate()
        assert errors == ["ClickUp workspace ID must be numeric"]
