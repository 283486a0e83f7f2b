# zerotrust/scheduler.py
"""
Background Scheduler for Zero-Trust Scans
─────────────────────────────────────────
Uses APScheduler to tick once a minute. On each tick, if scheduled scanning is
enabled and the last execution started at least `scan_interval` minutes ago,
a new execution scans every eligible server.

An execution:
    1. start_execution()                       → status "running"
    2. load_config()                           → failure marks the execution "failed"
    3. every server with a node and skip_zerotrust = False
    4. ScanOrchestrator.scan_batch(...)        → per-server errors stay per-server
    5. one ScanLog per server
    6. complete_execution(...)                 → totals, summary, per-node breakdown

Setup in the app factory:
    from zerotrust.scheduler import init_scheduler
    init_scheduler(app)

Manual run:
    flask zerotrust run-scan
"""
from __future__ import annotations

import logging
import os
import time
from datetime import timedelta
from typing import Any, Dict, List, Optional

import click
from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.interval import IntervalTrigger
from flask import current_app
from flask.cli import AppGroup

from zerotrust.executions import store
from zerotrust.extensions import db
from zerotrust.models import CronExecutionLog, Node, Server, now_utc
from zerotrust.scanner.base import BatchResult
from zerotrust.scanner.orchestrator import ScanOrchestrator
from zerotrust.settings.configuration import DetectionConfig, load_config

logger = logging.getLogger("zerotrust.scheduler")

_scheduler: BackgroundScheduler | None = None

TICK_SECONDS = 60
STALE_RUNNING = timedelta(hours=1)      # a "running" row older than this no longer blocks


# ---------------------------------------------------------------------------
# One execution
# ---------------------------------------------------------------------------

def _eligible_servers() -> List[Server]:
    return (
        Server.query
        .join(Node, Node.id == Server.node_id)
        .filter(Server.skip_zerotrust.is_(False))
        .order_by(Server.node_id.asc(), Server.id.asc())
        .all()
    )


def _node_breakdown(batch: BatchResult) -> List[Dict[str, Any]]:
    nodes: Dict[Any, Dict[str, Any]] = {}
    for r in batch.unique_results:
        entry = nodes.setdefault(r.node_id, {
            "node_id": r.node_id,
            "node_name": r.node_name,
            "servers_scanned": 0,
            "detections": 0,
            "errors": 0,
        })
        entry["servers_scanned"] += 1
        entry["detections"] += r.detections_count
        if not r.ok:
            entry["errors"] += 1
    return list(nodes.values())


def run_scheduled_scan(
    orchestrator: Optional[ScanOrchestrator] = None,
    config: Optional[DetectionConfig] = None,
) -> CronExecutionLog:
    """Run one execution end to end. Must be called inside an app context."""
    execution = store.start_execution()
    execution_id = execution.execution_id
    started = time.monotonic()

    if config is None:
        try:
            config = load_config()
        except Exception as e:
            db.session.rollback()
            return store.fail_execution(execution_id, f"Could not load detection config: {e}")

    try:
        servers = _eligible_servers()
        if not servers:
            return store.complete_execution(
                execution_id, 0, 0, 0,
                summary="No servers eligible for scanning",
                details={"duration_seconds": round(time.monotonic() - started, 2), "nodes": []},
            )

        orchestrator = orchestrator or ScanOrchestrator(
            max_workers=current_app.config.get("ZEROTRUST_MAX_WORKERS", 4)
        )
        batch = orchestrator.scan_batch([s.uuid for s in servers], config=config)

        for result in batch.unique_results:
            store.record_scan(execution_id, result)

        duration = round(time.monotonic() - started, 2)
        summary = (
            f"Scanned {batch.total_scanned} server(s), "
            f"found {batch.total_detections} detection(s), "
            f"{batch.total_errors} error(s) in {duration}s"
        )
        return store.complete_execution(
            execution_id,
            servers_scanned=batch.total_scanned,
            total_detections=batch.total_detections,
            total_errors=batch.total_errors,
            summary=summary,
            details={"duration_seconds": duration, "nodes": _node_breakdown(batch)},
        )

    except Exception as e:
        logger.exception(f"Execution {execution_id} crashed")
        db.session.rollback()
        return store.fail_execution(execution_id, f"{type(e).__name__}: {e}")


# ---------------------------------------------------------------------------
# Periodic tick
# ---------------------------------------------------------------------------

def _is_due(config: DetectionConfig) -> bool:
    last = CronExecutionLog.query.order_by(CronExecutionLog.started_at.desc()).first()
    if not last:
        return True
    if last.status == store.RUNNING and last.started_at + STALE_RUNNING > now_utc():
        return False
    return last.started_at + timedelta(minutes=config.scan_interval) <= now_utc()


def _tick(app):
    """Start an execution if scanning is enabled and one is due."""
    with app.app_context():
        try:
            config = load_config()
            if not config.enabled or not _is_due(config):
                return

            execution = run_scheduled_scan(config=config)
            logger.info(f"Execution {execution.execution_id} finished: {execution.status}")
        except Exception as e:
            logger.error(f"Zero-trust scheduler tick failed: {e}")
            db.session.rollback()
        finally:
            db.session.remove()


def init_scheduler(app):
    """Initialize and start the background scheduler."""
    global _scheduler

    if os.environ.get("FLASK_NO_SCHEDULER"):
        logger.info("Scheduler disabled via FLASK_NO_SCHEDULER")
        return

    if app.config.get("TESTING"):
        logger.info("Scheduler disabled in testing mode")
        return

    if _scheduler is not None:
        logger.info("Scheduler already running")
        return

    _scheduler = BackgroundScheduler(daemon=True)

    _scheduler.add_job(
        func=lambda: _tick(app),
        trigger=IntervalTrigger(seconds=TICK_SECONDS),
        id="zerotrust_scan",
        name="Run scheduled zero-trust scans",
        replace_existing=True,
        max_instances=1,  # Prevent overlapping runs
    )

    _scheduler.start()
    logger.info(f"Background scheduler started (checking every {TICK_SECONDS}s)")


def shutdown_scheduler():
    """Gracefully stop the scheduler."""
    global _scheduler
    if _scheduler:
        _scheduler.shutdown(wait=False)
        _scheduler = None
        logger.info("Scheduler stopped")


# ---------------------------------------------------------------------------
# CLI
# ---------------------------------------------------------------------------

zerotrust_cli = AppGroup("zerotrust", help="Zero-trust scanner commands.")


@zerotrust_cli.command("run-scan")
def run_scan_command():
    """Run one scheduled scan now, regardless of the enabled flag."""
    execution = run_scheduled_scan()
    click.echo(f"{execution.execution_id}: {execution.status}")
    if execution.summary:
        click.echo(execution.summary)
