"""
Zero-trust scan pipeline.

Usage:
    from zerotrust.scanner import ScanOrchestrator

    orchestrator = ScanOrchestrator()
    result = orchestrator.scan_one(server_uuid)
    batch = orchestrator.scan_batch([uuid_a, uuid_b, uuid_c])

Architecture:
    ScanOrchestrator
    ├── AgentClient        (agent/client.py)     scan / suspend RPC, one per node
    ├── SuspensionEngine   (suspension.py)       threshold + idempotent auto-suspend
    └── WebhookNotifier    (webhook.py)          best-effort detection alerts
"""

from zerotrust.scanner.orchestrator import ScanOrchestrator
from zerotrust.scanner.routes import scanner_bp

__all__ = ["ScanOrchestrator", "scanner_bp"]
