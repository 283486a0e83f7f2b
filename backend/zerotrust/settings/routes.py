# =============================================================================
# File: zerotrust/settings/routes.py
# Description: Detection configuration endpoints.
#
# Endpoints:
#   GET   /admin/zerotrust/config    current detection config (secret masked)
#   PATCH /admin/zerotrust/config    merge a partial key set into the config
# =============================================================================

from __future__ import annotations

from flask import Blueprint, jsonify, request

from zerotrust.audit import log_audit
from zerotrust.extensions import db
from zerotrust.settings.configuration import (
    SECRET_MASK,
    load_config,
    update_config,
    validate_update,
)

settings_bp = Blueprint("zerotrust_settings", __name__, url_prefix="/admin/zerotrust")


@settings_bp.get("/config")
def get_config():
    return jsonify(config=load_config().to_dict()), 200


@settings_bp.patch("/config")
def patch_config():
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        return jsonify(error="INVALID_DATA", message="Request body must be a JSON object"), 400

    # The UI round-trips the masked secret; that means "unchanged"
    if data.get("webhook_secret") == SECRET_MASK:
        data.pop("webhook_secret")

    if not data:
        return jsonify(error="INVALID_DATA", message="No settings provided"), 400

    problem = validate_update(data)
    if problem:
        return jsonify(error="INVALID_DATA", message=problem), 400

    config = update_config(data)

    log_audit(
        action="config.updated",
        category="zerotrust",
        target_type="config",
        target_label="zerotrust",
        description=f"Updated zero-trust settings: {', '.join(sorted(data.keys()))}",
        metadata={"keys": sorted(data.keys())},
    )
    db.session.commit()

    return jsonify(config=config.to_dict()), 200
