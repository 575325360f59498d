"""Flask application factory."""

import logging
from flask import Flask
from flask_cors import CORS

from services.clickup_client import ClickUpClient
from services.config import DashboardConfig
from services.history_store import (
    JsonFileStore,
    SprintDetailCache,
    SprintVelocityHistory,
    TestRunHistory,
)
from services.qa_service import QaDashboardService
from services.qase_client import QaseClient
from services.sprint_service import SprintDataService


def build_services(config, store=None, sleep=None):
    """Wire the dashboard services around one shared history store."""
    if store is None:
        store = JsonFileStore(config.history_file)

    velocity_history = SprintVelocityHistory(store)
    sprint_kwargs = {"sleep": sleep} if sleep is not None else {}

    return {
        "config": config,
        "store": store,
        "velocity_history": velocity_history,
        "sprints": SprintDataService(
            config,
            ClickUpClient(config),
            velocity_history,
            SprintDetailCache(store),
            **sprint_kwargs
        ),
        "quality": QaDashboardService(
            QaseClient(config),
            TestRunHistory(store),
            configured=config.qase_configured,
        ),
    }


def create_app(config=None, store=None, sleep=None):
    """Create and configure the Flask application.

    Args:
        config: DashboardConfig; read from the environment when omitted
        store: Key-value store for history (JSON file from config by default)
        sleep: Override for the fetch delays (tests pass a no-op)
    """
    if config is None:
        config = DashboardConfig.from_env()

    app = Flask(__name__)
    logging.basicConfig(level=config.log_level)
    app.logger.setLevel(config.log_level)

    # Enable CORS for frontend
    CORS(app, resources={
        r"/api/*": {
            "origins": list(config.cors_origins),
            "methods": ["GET", "OPTIONS"],
            "allow_headers": ["Content-Type"]
        }
    })

    app.extensions["dashboard"] = build_services(config, store=store, sleep=sleep)

    errors = config.validate()
    if errors:
        app.logger.warning(f"ClickUp configuration incomplete: {'; '.join(errors)}")
    if not config.qase_configured:
        app.logger.info("Qase not configured, QA endpoints will serve stored history only")

    # Register blueprints
    from app.api import quality, settings, sprints
    app.register_blueprint(settings.bp)
    app.register_blueprint(sprints.bp)
    app.register_blueprint(quality.bp)

    # Health check endpoint
    @app.route("/health")
    def health():
        return {"status": "ok"}

    return app
