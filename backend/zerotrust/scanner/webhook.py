# zerotrust/scanner/webhook.py
"""
Best-effort webhook notifier for detections.

    notifier = WebhookNotifier()
    outcome = notifier.notify_detection(uuid, name, detections, files_scanned, config)
    outcome = notifier.notify_batch(results, total_scanned, total_detections, config)

Delivery is at-most-once: one POST, no queue, no retry. Both methods return a
WebhookOutcome and never raise. A lost notification is acceptable; the
authoritative record lives in the scan and cron logs.

Body: the plain fields (serverId, serverName, detections, filesScanned, or
results, totalScanned, totalDetections) plus a Discord-style "embeds" list so
the same URL can point straight at a Discord channel.
"""

from __future__ import annotations

import hashlib
import hmac
import json
import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence

import requests

from zerotrust.scanner.base import ScanResult, now_utc
from zerotrust.settings.configuration import DetectionConfig, is_valid_webhook_url

logger = logging.getLogger(__name__)

DELIVERED = "delivered"
FAILED = "failed"
SKIPPED = "skipped"

EMBED_COLOR = 15158332          # red
MAX_DETECTION_FIELDS = 10
MAX_EMBED_FIELDS = 25           # Discord limit


@dataclass(frozen=True)
class WebhookOutcome:
    status: str                      # delivered, failed, skipped
    reason: Optional[str] = None

    @property
    def delivered(self) -> bool:
        return self.status == DELIVERED


class WebhookNotifier:

    def __init__(self, timeout: float = 10):
        self.timeout = timeout

    # -------------------------------------------------------------------
    # Public API
    # -------------------------------------------------------------------

    def notify_detection(
        self,
        server_id: str,
        server_name: str,
        detections: Sequence[Dict[str, Any]],
        files_scanned: int,
        config: DetectionConfig,
    ) -> WebhookOutcome:
        if not detections:
            return WebhookOutcome(SKIPPED, "no detections")

        skip = self._check_enabled(config)
        if skip:
            return skip

        payload = {
            "event": "zerotrust.detection",
            "serverId": server_id,
            "serverName": server_name,
            "detections": list(detections),
            "filesScanned": files_scanned,
            "embeds": [_detection_embed(server_id, server_name, detections, files_scanned)],
        }
        return self._send(config, payload)

    def notify_batch(
        self,
        results: Sequence[ScanResult],
        total_scanned: int,
        total_detections: int,
        config: DetectionConfig,
    ) -> WebhookOutcome:
        if total_detections <= 0:
            return WebhookOutcome(SKIPPED, "no detections")

        skip = self._check_enabled(config)
        if skip:
            return skip

        payload = {
            "event": "zerotrust.batch",
            "results": [
                {
                    "serverId": r.server_id,
                    "serverName": r.server_name,
                    "detectionsCount": r.detections_count,
                    "filesScanned": r.files_scanned,
                    "error": r.error,
                }
                for r in results
            ],
            "totalScanned": total_scanned,
            "totalDetections": total_detections,
            "embeds": [_batch_embed(results, total_scanned, total_detections)],
        }
        return self._send(config, payload)

    # -------------------------------------------------------------------
    # Internals
    # -------------------------------------------------------------------

    def _check_enabled(self, config: DetectionConfig) -> Optional[WebhookOutcome]:
        if not config.webhook_enabled or not config.webhook_url:
            return WebhookOutcome(SKIPPED, "webhook not configured")
        if not is_valid_webhook_url(config.webhook_url):
            logger.warning("Invalid webhook URL configured for zero-trust scanner")
            return WebhookOutcome(SKIPPED, "invalid webhook URL")
        return None

    def _send(self, config: DetectionConfig, payload: dict) -> WebhookOutcome:
        body = json.dumps(payload, default=str)
        headers = {"Content-Type": "application/json"}

        # HMAC signature if secret is set
        if config.webhook_secret:
            sig = hmac.new(config.webhook_secret.encode(), body.encode(), hashlib.sha256).hexdigest()
            headers["X-ZeroTrust-Signature"] = f"sha256={sig}"

        try:
            resp = requests.post(config.webhook_url, data=body, headers=headers, timeout=self.timeout)
        except requests.RequestException as e:
            reason = f"Webhook request failed: {str(e)[:200]}"
            logger.error(reason)
            return WebhookOutcome(FAILED, reason)

        if 200 <= resp.status_code < 300:
            return WebhookOutcome(DELIVERED)

        reason = f"Webhook returned {resp.status_code}: {resp.text[:200]}"
        logger.warning(reason)
        return WebhookOutcome(FAILED, reason)


# ---------------------------------------------------------------------------
# Embed builders
# ---------------------------------------------------------------------------

def _detection_embed(
    server_id: str,
    server_name: str,
    detections: Sequence[Dict[str, Any]],
    files_scanned: int,
) -> dict:
    count = len(detections)
    description = (
        f"**Server:** {server_name}\n"
        f"**UUID:** `{server_id}`\n"
        f"**Files Scanned:** {files_scanned}\n"
        f"**Detections:** {count}\n"
    )

    fields: List[dict] = []
    for d in list(detections)[:MAX_DETECTION_FIELDS]:
        path = str(d.get("file_path") or "Unknown")
        if len(path) > 100:
            path = "..." + path[-97:]
        fields.append({
            "name": str(d.get("detection_type") or "Unknown"),
            "value": f"`{path}`\n*{d.get('reason') or 'No reason provided'}*",
            "inline": False,
        })

    if count > MAX_DETECTION_FIELDS:
        fields.append({
            "name": "Additional Detections",
            "value": f"And {count - MAX_DETECTION_FIELDS} more detection(s)...",
            "inline": False,
        })

    return {
        "title": "Zero-Trust Detection Alert",
        "description": description,
        "color": EMBED_COLOR,
        "fields": fields,
        "timestamp": now_utc().isoformat(),
        "footer": {"text": "Zero-Trust Scanner"},
    }


def _batch_embed(results: Sequence[ScanResult], total_scanned: int, total_detections: int) -> dict:
    description = (
        "**Batch Scan Completed**\n"
        f"**Servers Scanned:** {total_scanned}\n"
        f"**Total Detections:** {total_detections}\n"
    )

    fields = [
        {
            "name": r.server_name or r.server_id,
            "value": f"{r.detections_count} detection(s) found",
            "inline": True,
        }
        for r in results
        if r.detections_count > 0 and not r.duplicate
    ]

    return {
        "title": "Zero-Trust Batch Scan Alert",
        "description": description,
        "color": EMBED_COLOR,
        "fields": fields[:MAX_EMBED_FIELDS],
        "timestamp": now_utc().isoformat(),
        "footer": {"text": "Zero-Trust Scanner"},
    }
