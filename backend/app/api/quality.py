"""QA metrics API endpoints (Qase test runs and test cases)."""

from flask import Blueprint, current_app, jsonify

bp = Blueprint("quality", __name__, url_prefix="/api/quality")


@bp.route("/runs", methods=["GET"])
def get_test_runs():
    """Get today's test runs merged with the last week of stored history.

    When Qase is unreachable only stored history is returned and
    ``live`` is false.
    """
    service = current_app.extensions["dashboard"]["quality"]
    return jsonify({"data": service.get_test_runs()})


@bp.route("/cases", methods=["GET"])
def get_test_cases():
    """Get test cases with manual/automated counts per status."""
    service = current_app.extensions["dashboard"]["quality"]
    return jsonify({"data": service.get_test_cases()})
