# zerotrust/executions/store.py
"""
Execution log store for scheduled scan runs.

One CronExecutionLog per run, one ScanLog per server scanned in that run.

State machine:

    running ──► completed
        └─────► failed

A terminal status is written exactly once; a second attempt raises
InvalidExecutionState. ScanLog rows are append-only and can only be added
while the execution is still running, so every row exists before the run is
marked completed.
"""

from __future__ import annotations

import logging
import math
import secrets
import time
from typing import Any, Dict, List, Optional, Tuple

from zerotrust.errors import ExecutionNotFound, InvalidExecutionState
from zerotrust.extensions import db
from zerotrust.models import CronExecutionLog, ScanLog, now_utc
from zerotrust.scanner.base import ScanResult

logger = logging.getLogger(__name__)

RUNNING = "running"
COMPLETED = "completed"
FAILED = "failed"
STATUSES = (RUNNING, COMPLETED, FAILED)

DEFAULT_LIMIT = 25
MAX_LIMIT = 100


def new_execution_id() -> str:
    return f"fzt-{int(time.time())}-{secrets.token_hex(8)}"


def _get(execution_id: str) -> CronExecutionLog:
    execution = CronExecutionLog.query.filter_by(execution_id=execution_id).first()
    if not execution:
        raise ExecutionNotFound(execution_id)
    return execution


def _require_running(execution: CronExecutionLog) -> None:
    if execution.status != RUNNING:
        raise InvalidExecutionState(
            f"Execution {execution.execution_id} is already {execution.status}"
        )


# ---------------------------------------------------------------------------
# Writes
# ---------------------------------------------------------------------------

def start_execution() -> CronExecutionLog:
    execution = CronExecutionLog(
        execution_id=new_execution_id(),
        status=RUNNING,
        started_at=now_utc(),
    )
    db.session.add(execution)
    db.session.commit()
    logger.info(f"Started execution {execution.execution_id}")
    return execution


def record_scan(execution_id: str, result: ScanResult) -> ScanLog:
    """Append the outcome of one server scan to a running execution."""
    execution = _get(execution_id)
    _require_running(execution)

    row = ScanLog(
        execution_id=execution_id,
        server_id=result.server_id,
        server_name=result.server_name,
        node_id=result.node_id,
        node_name=result.node_name,
        status=COMPLETED if result.ok else FAILED,
        files_scanned=result.files_scanned,
        detections=result.detections_count,
        error=result.error[:500] if result.error else None,
        duration_seconds=result.duration_seconds,
        detections_json=result.detections or None,
        created_at=now_utc(),
    )
    db.session.add(row)
    db.session.commit()
    return row


def complete_execution(
    execution_id: str,
    servers_scanned: int,
    total_detections: int,
    total_errors: int = 0,
    summary: Optional[str] = None,
    details: Optional[Dict[str, Any]] = None,
) -> CronExecutionLog:
    execution = _get(execution_id)
    _require_running(execution)

    logged = ScanLog.query.filter_by(execution_id=execution_id).count()
    if logged > servers_scanned:
        raise InvalidExecutionState(
            f"Execution {execution_id} has {logged} scan log(s) "
            f"but reports {servers_scanned} server(s) scanned"
        )

    execution.status = COMPLETED
    execution.finished_at = now_utc()
    execution.servers_scanned = servers_scanned
    execution.total_detections = total_detections
    execution.total_errors = total_errors
    execution.summary = summary
    execution.details_json = details
    db.session.commit()

    logger.info(
        f"Execution {execution_id} completed: {servers_scanned} server(s), "
        f"{total_detections} detection(s), {total_errors} error(s)"
    )
    return execution


def fail_execution(execution_id: str, reason: str) -> CronExecutionLog:
    execution = _get(execution_id)
    _require_running(execution)

    execution.status = FAILED
    execution.finished_at = now_utc()
    execution.summary = f"Execution failed: {reason}"[:2000]
    execution.details_json = {"error": reason}
    db.session.commit()

    logger.error(f"Execution {execution_id} failed: {reason}")
    return execution


# ---------------------------------------------------------------------------
# Reads
# ---------------------------------------------------------------------------

def clamp_pagination(page: Optional[int], limit: Optional[int]) -> Tuple[int, int]:
    page = max(1, page or 1)
    limit = DEFAULT_LIMIT if limit is None else min(MAX_LIMIT, max(1, limit))
    return page, limit


def list_executions(
    page: Optional[int] = 1,
    limit: Optional[int] = DEFAULT_LIMIT,
    status: Optional[str] = None,
) -> Tuple[List[CronExecutionLog], Dict[str, Any]]:
    page, limit = clamp_pagination(page, limit)

    query = CronExecutionLog.query
    if status:
        query = query.filter(CronExecutionLog.status == status)

    total = query.count()
    rows = (
        query.order_by(CronExecutionLog.started_at.desc(), CronExecutionLog.id.desc())
        .offset((page - 1) * limit)
        .limit(limit)
        .all()
    )

    total_pages = math.ceil(total / limit) if total else 0
    pagination = {
        "current_page": page,
        "per_page": limit,
        "total_records": total,
        "total_pages": total_pages,
        "has_next": page < total_pages,
        "has_prev": page > 1,
        "from": (page - 1) * limit + 1 if rows else 0,
        "to": (page - 1) * limit + len(rows) if rows else 0,
    }
    return rows, pagination


def get_execution(execution_id: str) -> Tuple[CronExecutionLog, List[ScanLog]]:
    execution = _get(execution_id)
    scan_logs = (
        ScanLog.query.filter_by(execution_id=execution_id)
        .order_by(ScanLog.id.asc())
        .all()
    )
    return execution, scan_logs


# ---------------------------------------------------------------------------
# Serialization
# ---------------------------------------------------------------------------

def _iso(dt):
    return dt.isoformat() if dt else None


def execution_to_dict(e: CronExecutionLog) -> Dict[str, Any]:
    return {
        "id": str(e.id),
        "executionId": e.execution_id,
        "status": e.status,
        "startedAt": _iso(e.started_at),
        "finishedAt": _iso(e.finished_at),
        "serversScanned": e.servers_scanned,
        "totalDetections": e.total_detections,
        "totalErrors": e.total_errors,
        "summary": e.summary,
        "details": e.details_json or {},
    }


def scan_log_to_dict(s: ScanLog) -> Dict[str, Any]:
    return {
        "id": str(s.id),
        "executionId": s.execution_id,
        "serverId": s.server_id,
        "serverName": s.server_name,
        "nodeId": s.node_id,
        "nodeName": s.node_name,
        "status": s.status,
        "filesScanned": s.files_scanned,
        "detections": s.detections,
        "error": s.error,
        "durationSeconds": s.duration_seconds,
        "detectionsList": s.detections_json or [],
        "createdAt": _iso(s.created_at),
    }
