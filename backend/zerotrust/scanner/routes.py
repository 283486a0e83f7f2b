# =============================================================================
# File: zerotrust/scanner/routes.py
# Description: Admin-triggered scans.
#
# Endpoints:
#   POST /admin/zerotrust/scan          scan one server
#         { "server_uuid": "...", "directory": "/", "max_depth": 10 }
#   POST /admin/zerotrust/scan/batch    scan many servers
#         { "server_uuids": ["...", "..."], "directory": "/", "max_depth": 10 }
#
# Single scans surface not-found (404) and agent failures (502) directly.
# Batch scans always return 200 with one result per requested uuid; failures
# are carried in each result's "error".
# =============================================================================

from __future__ import annotations

import logging

from flask import Blueprint, current_app, jsonify, request

from zerotrust.audit import log_audit
from zerotrust.extensions import db
from zerotrust.scanner.orchestrator import ScanOrchestrator
from zerotrust.settings.configuration import load_config

logger = logging.getLogger(__name__)

scanner_bp = Blueprint("zerotrust_scanner", __name__, url_prefix="/admin/zerotrust")


def _orchestrator() -> ScanOrchestrator:
    return ScanOrchestrator(max_workers=current_app.config.get("ZEROTRUST_MAX_WORKERS", 4))


def _parse_common(data: dict):
    """Return (directory, max_depth, error)."""
    directory = data.get("directory") or "/"
    if not isinstance(directory, str):
        return None, None, "directory must be a string"

    max_depth = data.get("max_depth")
    if max_depth is not None:
        if isinstance(max_depth, bool) or not isinstance(max_depth, int):
            return None, None, "max_depth must be an integer"
        if max_depth < 0:
            return None, None, "max_depth must be >= 0"

    return directory, max_depth, None


# ---------------------------------------------------------------------------
# POST /scan
# ---------------------------------------------------------------------------

@scanner_bp.post("/scan")
def scan_server():
    data = request.get_json(silent=True) or {}
    if not isinstance(data, dict):
        return jsonify(error="INVALID_DATA", message="Request body must be a JSON object"), 400

    server_uuid = data.get("server_uuid")
    if not isinstance(server_uuid, str) or not server_uuid.strip():
        return jsonify(error="MISSING_SERVER_UUID", message="server_uuid is required"), 400

    directory, max_depth, problem = _parse_common(data)
    if problem:
        return jsonify(error="INVALID_DATA", message=problem), 400

    config = load_config()
    result = _orchestrator().scan_one(
        server_uuid.strip(), directory=directory, max_depth=max_depth, config=config
    )

    log_audit(
        action="scan.single",
        category="zerotrust",
        target_type="server",
        target_id=result.server_id,
        target_label=result.server_name,
        description=f"Manual scan found {result.detections_count} detection(s)",
        metadata={
            "directory": directory,
            "files_scanned": result.files_scanned,
            "detections": result.detections_count,
        },
    )
    db.session.commit()

    return jsonify(result.to_dict()), 200


# ---------------------------------------------------------------------------
# POST /scan/batch
# ---------------------------------------------------------------------------

@scanner_bp.post("/scan/batch")
def scan_batch():
    data = request.get_json(silent=True) or {}
    if not isinstance(data, dict):
        return jsonify(error="INVALID_DATA", message="Request body must be a JSON object"), 400

    server_uuids = data.get("server_uuids")
    if not isinstance(server_uuids, list) or not server_uuids:
        return jsonify(error="MISSING_SERVER_UUIDS", message="server_uuids must be a non-empty list"), 400
    if not all(isinstance(u, str) and u.strip() for u in server_uuids):
        return jsonify(error="INVALID_DATA", message="server_uuids must contain only strings"), 400

    directory, max_depth, problem = _parse_common(data)
    if problem:
        return jsonify(error="INVALID_DATA", message=problem), 400

    config = load_config()
    batch = _orchestrator().scan_batch(
        [u.strip() for u in server_uuids], directory=directory, max_depth=max_depth, config=config
    )

    log_audit(
        action="scan.batch",
        category="zerotrust",
        target_type="server",
        description=(
            f"Batch scan of {batch.total_scanned} server(s) found "
            f"{batch.total_detections} detection(s)"
        ),
        metadata={
            "servers": batch.total_scanned,
            "detections": batch.total_detections,
            "errors": batch.total_errors,
        },
    )
    db.session.commit()

    return jsonify(batch.to_dict()), 200
