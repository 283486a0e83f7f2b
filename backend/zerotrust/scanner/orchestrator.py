# zerotrust/scanner/orchestrator.py
"""
Scan Orchestrator: fans scans out to node agents and applies the follow-ups.

Single server:

    1. Resolve server → owning node        (ServerNotFound / NodeNotFound)
    2. Scan through that node's agent      (RemoteUnavailable / AgentReportedError propagate)
    3. Detections? → suspension decision, hash registry, detection webhook

Batch:

    1. Resolve every distinct id up front; unresolved ids become error entries
    2. Remote scans fan out over a bounded thread pool (no DB access in workers)
    3. Results are put back in input order
    4. Follow-ups (suspension, hash registry) run per server, in input order,
       on the caller's thread
    5. One batch webhook, after everything, only if total detections > 0

The scan result is authoritative: suspension, hash recording and webhooks are
wrapped so a failure there is logged (a failed suspension also shows up in
ScanResult.warnings) and never changes the result or raises.

Usage:
    from zerotrust.scanner import ScanOrchestrator

    orchestrator = ScanOrchestrator(max_workers=4)
    result = orchestrator.scan_one(server_uuid, config=load_config())
    batch = orchestrator.scan_batch([uuid_a, uuid_b], config=load_config())
"""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor, as_completed
from typing import Callable, Dict, List, Optional, Sequence, Tuple

from zerotrust.agent.client import AgentClient
from zerotrust.errors import (
    AgentReportedError,
    NodeNotFound,
    NotFound,
    RemoteUnavailable,
    ServerNotFound,
)
from zerotrust.extensions import db
from zerotrust.hashes.service import is_sha256, submit_hash
from zerotrust.models import Node, Server
from zerotrust.scanner.base import AgentEndpoint, BatchResult, ScanResult, ScanTarget
from zerotrust.scanner.suspension import SuspensionEngine
from zerotrust.scanner.webhook import WebhookNotifier, WebhookOutcome
from zerotrust.settings.configuration import DetectionConfig, load_config

logger = logging.getLogger(__name__)

DEFAULT_MAX_WORKERS = 4


def _resolve_depth(max_depth: Optional[int], config: DetectionConfig) -> int:
    depth = config.max_depth if max_depth is None else int(max_depth)
    if depth < 0:
        raise ValueError("max_depth must be >= 0")
    return depth


class ScanOrchestrator:
    """
    Coordinates scans across node agents.

    The orchestrator holds no per-scan state. The DetectionConfig snapshot is
    passed into every call (or loaded once at the start of it) and used for
    the whole operation, so a config change mid-batch only affects later scans.
    """

    def __init__(
        self,
        client_factory: Callable[[AgentEndpoint], AgentClient] = AgentClient.for_node,
        suspension: Optional[SuspensionEngine] = None,
        notifier: Optional[WebhookNotifier] = None,
        max_workers: int = DEFAULT_MAX_WORKERS,
    ):
        self.client_factory = client_factory
        self.suspension = suspension or SuspensionEngine(client_factory)
        self.notifier = notifier or WebhookNotifier()
        self.max_workers = max(1, int(max_workers))

    # -------------------------------------------------------------------
    # Resolution
    # -------------------------------------------------------------------

    def resolve(self, server_id: str) -> ScanTarget:
        """Look up the server and its node. Raises before any remote call."""
        server = Server.query.filter_by(uuid=server_id).first()
        if not server:
            raise ServerNotFound(server_id)

        node = db.session.get(Node, server.node_id)
        if not node:
            raise NodeNotFound(server.node_id)

        return ScanTarget(
            server_id=server.uuid,
            server_name=server.name,
            endpoint=AgentEndpoint.from_node(node),
        )

    # -------------------------------------------------------------------
    # Single server
    # -------------------------------------------------------------------

    def scan_one(
        self,
        server_id: str,
        directory: str = "/",
        max_depth: Optional[int] = None,
        config: Optional[DetectionConfig] = None,
    ) -> ScanResult:
        config = config or load_config()
        depth = _resolve_depth(max_depth, config)
        target = self.resolve(server_id)

        logger.info(f"Scanning server {target.server_name} ({server_id}) depth={depth}")
        result = self._remote_scan(target, directory, depth)
        self._log_result(result)

        if result.detections:
            self._after_scan(result, config)
            self._notify(
                lambda: self.notifier.notify_detection(
                    result.server_id,
                    result.server_name or "Unknown",
                    result.detections,
                    result.files_scanned,
                    config,
                ),
                f"detection webhook for {server_id}",
            )

        return result

    # -------------------------------------------------------------------
    # Batch
    # -------------------------------------------------------------------

    def scan_batch(
        self,
        server_ids: Sequence[str],
        directory: str = "/",
        max_depth: Optional[int] = None,
        config: Optional[DetectionConfig] = None,
    ) -> BatchResult:
        config = config or load_config()
        depth = _resolve_depth(max_depth, config)
        ids = [str(s) for s in server_ids]

        results: List[Optional[ScanResult]] = [None] * len(ids)
        first_index: Dict[str, int] = {}
        pending: List[Tuple[int, ScanTarget]] = []

        # --- 1. Resolve (DB work stays on this thread) ---
        for i, sid in enumerate(ids):
            if sid in first_index:
                continue
            first_index[sid] = i
            try:
                pending.append((i, self.resolve(sid)))
            except NotFound as e:
                logger.warning(f"Batch scan: {e.message} for {sid}")
                results[i] = ScanResult(server_id=sid, error=e.message)

        # --- 2. Fan out remote scans ---
        for i, result in self._fan_out(pending, directory, depth):
            results[i] = result

        # --- 3. Follow-ups in input order; duplicates mirror the first entry ---
        for i, sid in enumerate(ids):
            first = first_index[sid]
            if first != i:
                results[i] = results[first].as_duplicate()
                continue
            result = results[i]
            self._log_result(result)
            if result.ok and result.detections:
                self._after_scan(result, config)

        batch = BatchResult(results=results)

        # --- 4. One aggregate webhook ---
        if batch.total_detections > 0:
            self._notify(
                lambda: self.notifier.notify_batch(
                    batch.unique_results,
                    batch.total_scanned,
                    batch.total_detections,
                    config,
                ),
                "batch webhook",
            )

        logger.info(
            f"Batch scan finished: {batch.total_scanned} server(s), "
            f"{batch.total_detections} detection(s), {batch.total_errors} error(s)"
        )
        return batch

    def _fan_out(
        self,
        pending: List[Tuple[int, ScanTarget]],
        directory: str,
        depth: int,
    ) -> List[Tuple[int, ScanResult]]:
        if not pending:
            return []

        workers = min(self.max_workers, len(pending))
        if workers == 1:
            return [(i, self._scan_isolated(t, directory, depth)) for i, t in pending]

        out: List[Tuple[int, ScanResult]] = []
        with ThreadPoolExecutor(max_workers=workers) as executor:
            future_to_index = {
                executor.submit(self._scan_isolated, target, directory, depth): i
                for i, target in pending
            }
            for future in as_completed(future_to_index):
                out.append((future_to_index[future], future.result()))
        return out

    def _scan_isolated(self, target: ScanTarget, directory: str, depth: int) -> ScanResult:
        """Scan one target; every failure becomes an error entry instead of raising."""
        try:
            return self._remote_scan(target, directory, depth)
        except (RemoteUnavailable, AgentReportedError) as e:
            error = e.message
        except Exception as e:
            logger.exception(f"Unexpected error scanning {target.server_id}")
            error = f"{type(e).__name__}: {e}"

        return ScanResult(
            server_id=target.server_id,
            server_name=target.server_name,
            node_id=target.endpoint.node_id,
            node_name=target.endpoint.node_name,
            error=error,
        )

    # -------------------------------------------------------------------
    # Helpers
    # -------------------------------------------------------------------

    def _remote_scan(self, target: ScanTarget, directory: str, depth: int) -> ScanResult:
        client = self.client_factory(target.endpoint)
        result = client.scan(target.server_id, directory, depth)
        result.server_name = target.server_name
        result.node_id = target.endpoint.node_id
        result.node_name = target.endpoint.node_name
        return result

    def _after_scan(self, result: ScanResult, config: DetectionConfig) -> None:
        """Suspension decision + hash registry. Never raises."""
        try:
            outcome = self.suspension.suspend_if_needed(
                result.server_id, result.detections_count, config
            )
        except Exception as e:
            logger.exception(f"Suspension decision crashed for {result.server_id}")
            db.session.rollback()
            result.warnings.append(f"Auto-suspend failed: {e}")
        else:
            if outcome.failed:
                result.warnings.append(f"Auto-suspend failed: {outcome.reason}")
            elif outcome.suspended:
                logger.info(f"Server {result.server_id} suspended")
            else:
                logger.debug(f"Suspension skipped for {result.server_id}: {outcome.reason}")

        self._record_hashes(result)

    def _record_hashes(self, result: ScanResult) -> None:
        hashed = [d for d in result.detections if is_sha256(str(d.get("hash") or ""))]
        if not hashed:
            return
        try:
            for d in hashed:
                submit_hash(
                    d["hash"],
                    str(d.get("file_name") or d.get("file_path") or "unknown"),
                    str(d.get("detection_type") or "unknown"),
                    result.server_id,
                    {
                        "file_path": d.get("file_path"),
                        "file_size": d.get("file_size"),
                        "server_name": result.server_name,
                        "node_id": result.node_id,
                        "node_name": result.node_name,
                        "detected_by": "zerotrust-scanner",
                    },
                    commit=False,
                )
            db.session.commit()
        except Exception as e:
            db.session.rollback()
            logger.warning(f"Failed to record detection hashes for {result.server_id}: {e}")

    def _notify(self, send: Callable[[], WebhookOutcome], label: str) -> None:
        try:
            outcome = send()
        except Exception as e:
            logger.warning(f"Failed to send {label}: {e}")
            return

        if outcome.delivered:
            logger.info(f"Delivered {label}")
        elif outcome.status == "failed":
            logger.warning(f"Dropped {label}: {outcome.reason}")
        else:
            logger.debug(f"Skipped {label}: {outcome.reason}")

    @staticmethod
    def _log_result(result: ScanResult) -> None:
        if result.error:
            logger.error(f"Scan failed for server {result.server_id}: {result.error}")
        elif result.detections:
            logger.warning(
                f"Detected {result.detections_count} suspicious file(s) on server {result.server_id}"
            )
        else:
            logger.info(f"No suspicious files found on server {result.server_id}")
