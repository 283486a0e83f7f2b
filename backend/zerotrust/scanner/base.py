# zerotrust/scanner/base.py
"""
Data structures that flow through the zero-trust scan pipeline.

    AgentEndpoint    connection details for one node agent, detached from the ORM
                     so worker threads never touch a database session.
    ScanTarget       a resolved (server, node) pair, ready to be scanned.
    ScanResult       per-server outcome. Transient: only ScanLog rows are persisted.
    BatchResult      ordered ScanResults plus the aggregates the webhook needs.

Detections are opaque dicts produced by the agent. The only keys this
subsystem looks at are "file_path", "detection_type", "reason" and "hash".
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional


def now_utc() -> datetime:
    """Timezone-aware UTC timestamp."""
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class AgentEndpoint:
    node_id: int
    node_name: str
    fqdn: str
    port: int
    scheme: str
    token: str

    @property
    def base_url(self) -> str:
        return f"{self.scheme}://{self.fqdn}:{self.port}"

    @classmethod
    def from_node(cls, node) -> "AgentEndpoint":
        return cls(
            node_id=node.id,
            node_name=node.name,
            fqdn=node.fqdn,
            port=int(node.daemon_listen),
            scheme=node.scheme or "https",
            token=node.daemon_token,
        )


@dataclass(frozen=True)
class ScanTarget:
    server_id: str
    server_name: str
    endpoint: AgentEndpoint


@dataclass
class ScanResult:
    """
    Outcome of scanning one server.

    Fields:
        server_id:        The server UUID this result is keyed to.
        detections:       Opaque detection records, in agent order.
        files_scanned:    Files the agent looked at.
        error:            Set when the scan could not complete (not found,
                          agent offline, agent error). Detections are then empty.
        warnings:         Non-fatal problems AFTER a successful scan, e.g. a
                          failed auto-suspend. Never turns the result into an error.
        duplicate:        True when the id appeared earlier in the same batch
                          and this entry mirrors that first result.
    """
    server_id: str
    server_name: Optional[str] = None
    detections: List[Dict[str, Any]] = field(default_factory=list)
    files_scanned: int = 0
    error: Optional[str] = None
    warnings: List[str] = field(default_factory=list)
    node_id: Optional[int] = None
    node_name: Optional[str] = None
    duration_seconds: float = 0.0
    duplicate: bool = False

    @property
    def ok(self) -> bool:
        return self.error is None

    @property
    def detections_count(self) -> int:
        return len(self.detections)

    def as_duplicate(self) -> "ScanResult":
        return replace(
            self,
            detections=list(self.detections),
            warnings=list(self.warnings),
            duplicate=True,
        )

    def to_dict(self) -> Dict[str, Any]:
        out = {
            "serverId": self.server_id,
            "serverName": self.server_name,
            "nodeId": self.node_id,
            "nodeName": self.node_name,
            "detections": self.detections,
            "detectionsCount": self.detections_count,
            "filesScanned": self.files_scanned,
            "durationSeconds": self.duration_seconds,
            "error": self.error,
            "warnings": self.warnings,
        }
        if self.duplicate:
            out["duplicate"] = True
        return out


@dataclass
class BatchResult:
    results: List[ScanResult] = field(default_factory=list)

    @property
    def unique_results(self) -> List[ScanResult]:
        return [r for r in self.results if not r.duplicate]

    @property
    def total_scanned(self) -> int:
        return len(self.unique_results)

    @property
    def total_detections(self) -> int:
        return sum(r.detections_count for r in self.unique_results)

    @property
    def total_errors(self) -> int:
        return sum(1 for r in self.unique_results if not r.ok)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "results": [r.to_dict() for r in self.results],
            "totalScanned": self.total_scanned,
            "totalDetections": self.total_detections,
            "totalErrors": self.total_errors,
        }
