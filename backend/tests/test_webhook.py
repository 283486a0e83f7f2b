"""Tests for the best-effort webhook notifier."""

import hashlib
import hmac
import json

import pytest
import requests

from zerotrust.scanner.base import ScanResult
from zerotrust.scanner.webhook import DELIVERED, FAILED, SKIPPED, WebhookNotifier
from zerotrust.settings.configuration import DetectionConfig

from .helpers import FakeResponse, RecordingPost, make_detections


HOOK = DetectionConfig(webhook_enabled=True, webhook_url="https://hooks.example.com/zt")


@pytest.fixture
def post(monkeypatch):
    recorder = RecordingPost(FakeResponse(204, None, text=""))
    monkeypatch.setattr(requests, "post", recorder)
    return recorder


def _body(call):
    return json.loads(call["data"])


class TestSkips:

    def test_zero_detections_sends_nothing(self, post):
        outcome = WebhookNotifier().notify_detection("srv-1", "alpha", [], 10, HOOK)
        assert outcome.status == SKIPPED
        assert post.calls == []

    def test_zero_batch_detections_sends_nothing(self, post):
        outcome = WebhookNotifier().notify_batch([ScanResult("srv-1")], 1, 0, HOOK)
        assert outcome.status == SKIPPED
        assert post.calls == []

    def test_disabled(self, post):
        config = DetectionConfig(webhook_enabled=False, webhook_url="https://hooks.example.com/zt")
        outcome = WebhookNotifier().notify_detection("srv-1", "alpha", make_detections(1), 10, config)
        assert outcome.status == SKIPPED
        assert post.calls == []

    def test_missing_url(self, post):
        config = DetectionConfig(webhook_enabled=True)
        assert WebhookNotifier().notify_detection("srv-1", "a", make_detections(1), 1, config).status == SKIPPED

    def test_invalid_url(self, post):
        config = DetectionConfig(webhook_enabled=True, webhook_url="not a url")
        outcome = WebhookNotifier().notify_detection("srv-1", "a", make_detections(1), 1, config)
        assert outcome.reason == "invalid webhook URL"
        assert post.calls == []


class TestDelivery:

    def test_detection_payload(self, post):
        outcome = WebhookNotifier(timeout=3).notify_detection(
            "srv-1", "alpha", make_detections(2), 77, HOOK
        )

        assert outcome.status == DELIVERED
        call = post.calls[0]
        assert call["url"] == HOOK.webhook_url
        assert call["timeout"] == 3

        body = _body(call)
        assert body["serverId"] == "srv-1"
        assert body["serverName"] == "alpha"
        assert body["filesScanned"] == 77
        assert len(body["detections"]) == 2
        assert body["embeds"][0]["title"] == "Zero-Trust Detection Alert"

    def test_detection_embed_caps_fields(self, post):
        WebhookNotifier().notify_detection("srv-1", "alpha", make_detections(14), 100, HOOK)
        fields = _body(post.calls[0])["embeds"][0]["fields"]
        assert len(fields) == 11
        assert fields[-1]["value"] == "And 4 more detection(s)..."

    def test_batch_payload_skips_duplicates_in_embed(self, post):
        first = ScanResult("srv-1", server_name="alpha", detections=make_detections(2))
        results = [first, ScanResult("srv-2", server_name="beta"), first.as_duplicate()]

        outcome = WebhookNotifier().notify_batch(results, 2, 2, HOOK)

        assert outcome.delivered
        body = _body(post.calls[0])
        assert body["totalScanned"] == 2
        assert body["totalDetections"] == 2
        assert len(body["results"]) == 3
        assert [f["name"] for f in body["embeds"][0]["fields"]] == ["alpha"]

    def test_signature_header(self, post):
        config = DetectionConfig(
            webhook_enabled=True, webhook_url="https://hooks.example.com/zt", webhook_secret="k3y",
        )
        WebhookNotifier().notify_detection("srv-1", "alpha", make_detections(1), 1, config)

        call = post.calls[0]
        expected = hmac.new(b"k3y", call["data"].encode(), hashlib.sha256).hexdigest()
        assert call["headers"]["X-ZeroTrust-Signature"] == f"sha256={expected}"

    def test_no_signature_without_secret(self, post):
        WebhookNotifier().notify_detection("srv-1", "alpha", make_detections(1), 1, HOOK)
        assert "X-ZeroTrust-Signature" not in post.calls[0]["headers"]


class TestFailures:

    def test_non_2xx_is_failed(self, post):
        post.response = FakeResponse(500, None, text="upstream exploded")
        outcome = WebhookNotifier().notify_detection("srv-1", "a", make_detections(1), 1, HOOK)
        assert outcome.status == FAILED
        assert "500" in outcome.reason

    def test_transport_error_never_raises(self, post):
        post.response = requests.ConnectionError("unreachable")
        outcome = WebhookNotifier().notify_batch(
            [ScanResult("srv-1", detections=make_detections(1))], 1, 1, HOOK
        )
        assert outcome.status == FAILED
        assert len(post.calls) == 1
