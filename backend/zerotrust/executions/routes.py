# =============================================================================
# File: zerotrust/executions/routes.py
# Description: Read-only views over scheduled scan executions.
#
# Endpoints:
#   GET /admin/zerotrust/logs                   paginated execution list
#         ?page=1&limit=25&status=running|completed|failed
#   GET /admin/zerotrust/logs/<execution_id>    one execution + its scan logs
# =============================================================================

from __future__ import annotations

from flask import Blueprint, jsonify, request

from zerotrust.executions import store

executions_bp = Blueprint("zerotrust_executions", __name__, url_prefix="/admin/zerotrust")


@executions_bp.get("/logs")
def list_logs():
    page = request.args.get("page", 1, type=int)
    limit = request.args.get("limit", store.DEFAULT_LIMIT, type=int)
    status = (request.args.get("status") or "").strip().lower() or None

    if status and status not in store.STATUSES:
        return jsonify(
            error="INVALID_STATUS",
            message=f"status must be one of: {', '.join(store.STATUSES)}",
        ), 400

    rows, pagination = store.list_executions(page=page, limit=limit, status=status)
    return jsonify(
        logs=[store.execution_to_dict(r) for r in rows],
        pagination=pagination,
    ), 200


@executions_bp.get("/logs/<execution_id>")
def get_log(execution_id: str):
    # ExecutionNotFound → 404 via the app-level ZeroTrustError handler
    execution, scan_logs = store.get_execution(execution_id)
    return jsonify(
        execution=store.execution_to_dict(execution),
        scanLogs=[store.scan_log_to_dict(s) for s in scan_logs],
    ), 200
