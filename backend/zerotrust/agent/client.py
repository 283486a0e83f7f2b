# zerotrust/agent/client.py
"""
HTTP client for one node agent.

    client = AgentClient.for_node(endpoint)
    result = client.scan("6f1c...", "/", 10)     # -> ScanResult
    ok = client.suspend("6f1c...")               # -> bool

Every call has a fixed timeout and no retries. Failures are split in two so
callers can tell "agent offline" from "agent said no":

    RemoteUnavailable     timeout, connection refused, DNS/TLS failure
    AgentReportedError    non-2xx status, {"error": ...} body, or garbage JSON
"""

from __future__ import annotations

import logging
import os
import time
from typing import Any, Dict

import requests

from zerotrust.errors import AgentReportedError, RemoteUnavailable
from zerotrust.scanner.base import AgentEndpoint, ScanResult

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 30  # seconds

SCAN_PATH = "/api/zerotrust/scan"
SUSPEND_PATH = "/api/zerotrust/suspend"


def _default_timeout() -> float:
    try:
        return float(os.getenv("ZEROTRUST_AGENT_TIMEOUT", DEFAULT_TIMEOUT))
    except ValueError:
        return DEFAULT_TIMEOUT


class AgentClient:

    def __init__(self, base_url: str, token: str, timeout: float | None = None):
        self.base_url = base_url.rstrip("/")
        self.token = token
        self.timeout = timeout if timeout is not None else _default_timeout()

    @classmethod
    def for_node(cls, endpoint: AgentEndpoint) -> "AgentClient":
        return cls(endpoint.base_url, endpoint.token)

    # -------------------------------------------------------------------
    # Commands
    # -------------------------------------------------------------------

    def scan(self, server_id: str, directory: str, max_depth: int) -> ScanResult:
        if max_depth < 0:
            raise ValueError("max_depth must be >= 0")

        start = time.monotonic()
        data = self._post(SCAN_PATH, {
            "serverId": server_id,
            "directory": directory,
            "maxDepth": max_depth,
        })

        detections = data.get("detections") or []
        if not isinstance(detections, list):
            raise AgentReportedError("Agent returned a malformed detections list")
        if not all(isinstance(d, dict) for d in detections):
            raise AgentReportedError("Agent returned a malformed detection record")

        try:
            files_scanned = int(data.get("filesScanned") or 0)
        except (TypeError, ValueError):
            files_scanned = 0

        return ScanResult(
            server_id=server_id,
            detections=detections,
            files_scanned=files_scanned,
            duration_seconds=round(time.monotonic() - start, 2),
        )

    def suspend(self, server_id: str) -> bool:
        data = self._post(SUSPEND_PATH, {"serverId": server_id})
        return bool(data.get("success"))

    # -------------------------------------------------------------------
    # Transport
    # -------------------------------------------------------------------

    def _post(self, path: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        url = f"{self.base_url}{path}"
        headers = {
            "Authorization": f"Bearer {self.token}",
            "Accept": "application/json",
            "Content-Type": "application/json",
        }

        try:
            resp = requests.post(url, json=payload, headers=headers, timeout=self.timeout)
        except requests.Timeout as e:
            raise RemoteUnavailable(f"Agent at {self.base_url} timed out after {self.timeout}s") from e
        except requests.RequestException as e:
            raise RemoteUnavailable(f"Agent at {self.base_url} unreachable: {str(e)[:200]}") from e

        if not 200 <= resp.status_code < 300:
            raise AgentReportedError(
                f"Agent returned {resp.status_code}: {resp.text[:200]}",
                status=resp.status_code,
            )

        try:
            data = resp.json()
        except ValueError as e:
            raise AgentReportedError("Agent returned invalid JSON", status=resp.status_code) from e

        if not isinstance(data, dict):
            raise AgentReportedError("Agent returned an unexpected payload", status=resp.status_code)

        if data.get("error"):
            raise AgentReportedError(str(data["error"])[:500], status=resp.status_code)

        return data
