"""Fakes shared across the zero-trust test suite."""

import threading
import time
from typing import Any, Dict, List, Optional

from zerotrust.scanner.base import AgentEndpoint, ScanResult
from zerotrust.scanner.webhook import SKIPPED, WebhookOutcome


def make_detections(n: int, **extra) -> List[Dict[str, Any]]:
    return [
        {
            "file_path": f"/plugins/evil{i}.jar",
            "file_name": f"evil{i}.jar",
            "detection_type": "suspicious_jar",
            "reason": "Obfuscated class loader",
            **extra,
        }
        for i in range(n)
    ]


class FakeAgent:
    """
    Scripted node agent keyed by server uuid.

    scan_results[uuid] is either a list of detections or an exception to raise.
    suspend_response is a bool or an exception to raise; suspend_delay slows
    suspend() down to widen race windows.
    """

    def __init__(self):
        self.scan_results: Dict[str, Any] = {}
        self.files_scanned: Dict[str, int] = {}
        self.suspend_response: Any = True
        self.suspend_delay: float = 0.0
        self.scan_calls: List[tuple] = []
        self.suspend_calls: List[str] = []
        self.endpoints: List[AgentEndpoint] = []
        self._lock = threading.Lock()

    def factory(self, endpoint: AgentEndpoint) -> "FakeClient":
        with self._lock:
            self.endpoints.append(endpoint)
        return FakeClient(self)


class FakeClient:

    def __init__(self, agent: FakeAgent):
        self.agent = agent

    def scan(self, server_id: str, directory: str, max_depth: int) -> ScanResult:
        with self.agent._lock:
            self.agent.scan_calls.append((server_id, directory, max_depth))
        outcome = self.agent.scan_results.get(server_id, [])
        if isinstance(outcome, Exception):
            raise outcome
        return ScanResult(
            server_id=server_id,
            detections=[dict(d) for d in outcome],
            files_scanned=self.agent.files_scanned.get(server_id, 42),
        )

    def suspend(self, server_id: str) -> bool:
        with self.agent._lock:
            self.agent.suspend_calls.append(server_id)
        if self.agent.suspend_delay:
            time.sleep(self.agent.suspend_delay)
        if isinstance(self.agent.suspend_response, Exception):
            raise self.agent.suspend_response
        return self.agent.suspend_response


class RecordingNotifier:
    """Stands in for WebhookNotifier and records what would have been sent."""

    def __init__(self, outcome: Optional[WebhookOutcome] = None):
        self.outcome = outcome or WebhookOutcome(SKIPPED, "recording")
        self.detection_calls: List[tuple] = []
        self.batch_calls: List[tuple] = []

    def notify_detection(self, server_id, server_name, detections, files_scanned, config):
        self.detection_calls.append((server_id, server_name, list(detections), files_scanned))
        return self.outcome

    def notify_batch(self, results, total_scanned, total_detections, config):
        self.batch_calls.append((list(results), total_scanned, total_detections))
        return self.outcome


_INVALID = object()


class FakeResponse:
    """Minimal stand-in for requests.Response."""

    INVALID_JSON = _INVALID

    def __init__(self, status_code: int = 200, payload: Any = None, text: str = ""):
        self.status_code = status_code
        self._payload = payload
        self.text = text or ("" if payload is _INVALID else str(payload))

    def json(self):
        if self._payload is _INVALID:
            raise ValueError("No JSON object could be decoded")
        return self._payload


class RecordingPost:
    """Replacement for requests.post that records calls and replays responses."""

    def __init__(self, response: Any = None):
        self.response = response if response is not None else FakeResponse(200, {})
        self.calls: List[Dict[str, Any]] = []

    def __call__(self, url, **kwargs):
        self.calls.append({"url": url, **kwargs})
        if isinstance(self.response, Exception):
            raise self.response
        if callable(self.response):
            return self.response(url, **kwargs)
        return self.response
