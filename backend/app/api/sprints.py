"""Sprint data API endpoints."""

from flask import Blueprint, current_app, jsonify, request

from services.errors import ConfigurationError, DiscoveryError
from services.sprint_metrics import KPI_PERIODS
from services.sprint_service import serialize_snapshot

bp = Blueprint("sprints", __name__, url_prefix="/api/sprints")


def get_services():
    return current_app.extensions["dashboard"]


def wants_refresh():
    """Whether the caller asked to bypass the 5 minute snapshot cache."""
    return request.args.get("refresh", "").lower() in ("1", "true", "yes")


@bp.route("", methods=["GET"])
def get_sprints():
    """Get current sprint data and sprint history for the selected space.

    Query params:
        - refresh: Set to 1 to force a new fetch cycle

    Returns:
        - Spaces discovered in the workspace
        - Current backlog/sprint data (sorted by end date, newest first)
        - Sprint history and average completed velocity
    """
    service = get_services()["sprints"]

    try:
        snapshot = service.refresh(force=wants_refresh())
        return jsonify({"data": serialize_snapshot(snapshot)})
    except ConfigurationError as e:
        return jsonify({"error": "Invalid ClickUp configuration", "errors": e.errors}), 400
    except DiscoveryError as e:
        current_app.logger.error(f"Sprint refresh failed: {e}")
        return jsonify({"error": str(e)}), 502


@bp.route("/velocity", methods=["GET"])
def get_velocity():
    """Get stored velocity history.

    Query params:
        - last: Number of most recent sprints to return (default: all)
        - average_over: Sprints used for the average (default: 4)
    """
    velocity_history = get_services()["velocity_history"]

    last = request.args.get("last", type=int)
    average_over = request.args.get("average_over", 4, type=int)

    entries = velocity_history.get_last_n(last) if last else velocity_history.get_all()

    return jsonify({
        "data": {
            "entries": [e.to_dict() for e in entries],
            "averageCompleted": velocity_history.get_average_completed(average_over),
        }
    })


@bp.route("/kpis", methods=["GET"])
def get_kpis():
    """Get sprint KPIs for a period.

    Query params:
        - period: current | last4 | last8 | all (default: current)
    """
    period = request.args.get("period", "current")
    if period not in KPI_PERIODS:
        return jsonify({"error": f"Unknown period: {period}"}), 400

    service = get_services()["sprints"]

    try:
        return jsonify({"data": service.get_kpis(period)})
    except ConfigurationError as e:
        return jsonify({"error": "Invalid ClickUp configuration", "errors": e.errors}), 400
    except DiscoveryError as e:
        current_app.logger.error(f"Sprint refresh failed: {e}")
        return jsonify({"error": str(e)}), 502
