# zerotrust/scanner/suspension.py
"""
Suspension decision engine.

    engine = SuspensionEngine()
    outcome = engine.suspend_if_needed(server_uuid, detection_count, config)

Policy (first match wins):
    1. auto_suspend disabled                 → skipped
    2. detection_count < suspend_threshold   → skipped
    3. server already suspended              → skipped (idempotent, no remote call)
    4. otherwise                             → suspend via the node agent,
                                               flip Server.suspended, audit it

Remote or agent failures come back as a "failed" outcome and are never raised.
The scan that produced the detections already succeeded and stays that way.

Decisions for the same server are serialized with a per-server lock so two
concurrent scans of one server can't both issue a suspend command.
"""

from __future__ import annotations

import logging
import threading
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional

from zerotrust.agent.client import AgentClient
from zerotrust.audit import log_audit
from zerotrust.errors import AgentReportedError, RemoteUnavailable
from zerotrust.extensions import db
from zerotrust.models import Node, Server
from zerotrust.scanner.base import AgentEndpoint
from zerotrust.settings.configuration import DetectionConfig

logger = logging.getLogger(__name__)

SUSPENDED = "suspended"
SKIPPED = "skipped"
FAILED = "failed"


@dataclass(frozen=True)
class SuspensionOutcome:
    status: str                      # suspended, skipped, failed
    reason: Optional[str] = None

    @property
    def suspended(self) -> bool:
        return self.status == SUSPENDED

    @property
    def failed(self) -> bool:
        return self.status == FAILED


class _ServerLocks:
    """
    One lock per server id, alive only while a thread holds or waits on it.

    Each entry carries a count of interested threads; the last one out removes
    it, so the map only ever holds servers with a decision in progress.
    """

    def __init__(self):
        self._guard = threading.Lock()
        self._locks: Dict[str, List] = {}       # server_id -> [lock, users]

    def __len__(self) -> int:
        with self._guard:
            return len(self._locks)

    @contextmanager
    def hold(self, server_id: str):
        with self._guard:
            entry = self._locks.setdefault(server_id, [threading.Lock(), 0])
            entry[1] += 1

        try:
            with entry[0]:
                yield
        finally:
            with self._guard:
                entry[1] -= 1
                if entry[1] == 0:
                    del self._locks[server_id]


# Shared across engine instances so two requests in different threads still
# serialize on the same server.
_server_locks = _ServerLocks()


class SuspensionEngine:

    def __init__(self, client_factory: Callable[[AgentEndpoint], AgentClient] = AgentClient.for_node):
        self.client_factory = client_factory

    def suspend_if_needed(
        self,
        server_id: str,
        detection_count: int,
        config: DetectionConfig,
    ) -> SuspensionOutcome:
        if not config.auto_suspend:
            return SuspensionOutcome(SKIPPED, "auto-suspend disabled")

        if detection_count < config.suspend_threshold:
            return SuspensionOutcome(
                SKIPPED,
                f"{detection_count} detection(s) below threshold {config.suspend_threshold}",
            )

        with _server_locks.hold(server_id):
            return self._suspend_locked(server_id, detection_count, config)

    def _suspend_locked(
        self,
        server_id: str,
        detection_count: int,
        config: DetectionConfig,
    ) -> SuspensionOutcome:
        server = Server.query.filter_by(uuid=server_id).first()
        if not server:
            return SuspensionOutcome(FAILED, "server not found")

        # Re-read inside the lock; another thread may have just suspended it
        db.session.refresh(server)
        if server.suspended:
            return SuspensionOutcome(SKIPPED, "already suspended")

        node = db.session.get(Node, server.node_id)
        if not node:
            return SuspensionOutcome(FAILED, "node not found")

        client = self.client_factory(AgentEndpoint.from_node(node))
        try:
            ok = client.suspend(server_id)
        except (RemoteUnavailable, AgentReportedError) as e:
            logger.warning(f"Auto-suspend of {server_id} failed: {e.message}")
            return SuspensionOutcome(FAILED, e.message)

        if not ok:
            logger.warning(f"Agent refused to suspend {server_id}")
            return SuspensionOutcome(FAILED, "agent refused suspend command")

        server.suspended = True
        log_audit(
            actor="system",
            action="server.auto_suspended",
            category="zerotrust",
            target_type="server",
            target_id=server.uuid,
            target_label=server.name,
            description=(
                f"Automatically suspended {server.name} after "
                f"{detection_count} detection(s)"
            ),
            metadata={
                "detections": detection_count,
                "threshold": config.suspend_threshold,
                "node_id": node.id,
            },
        )
        db.session.commit()

        logger.warning(
            f"Automatically suspended server {server.name} ({server_id}) "
            f"due to {detection_count} detection(s)"
        )
        return SuspensionOutcome(SUSPENDED)
