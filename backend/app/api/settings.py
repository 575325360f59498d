"""Configuration check endpoint."""

from flask import Blueprint, current_app, jsonify

bp = Blueprint("settings", __name__, url_prefix="/api/settings")


@bp.route("/validate", methods=["GET"])
def validate_settings():
    """Report whether the ClickUp/Qase configuration is usable.

    Tokens are never echoed back.
    """
    config = current_app.extensions["dashboard"]["config"]
    errors = config.validate()

    return jsonify({
        "data": {
            "valid": not errors,
            "errors": errors,
            "qaseConfigured": config.qase_configured,
            "sprintFolderConfigured": bool(config.clickup_sprint_folder_id),
        }
    })
