"""Tests for the node agent HTTP client."""

import pytest
import requests

from zerotrust.agent.client import AgentClient
from zerotrust.errors import AgentReportedError, RemoteUnavailable
from zerotrust.scanner.base import AgentEndpoint

from .helpers import FakeResponse, RecordingPost, make_detections


@pytest.fixture
def post(monkeypatch):
    recorder = RecordingPost()
    monkeypatch.setattr(requests, "post", recorder)
    return recorder


@pytest.fixture
def agent():
    return AgentClient("https://node-1.example.com:8080/", "node-token", timeout=5)


class TestScan:

    def test_posts_scan_request_and_parses_result(self, agent, post):
        post.response = FakeResponse(200, {"detections": make_detections(2), "filesScanned": 120})

        result = agent.scan("srv-1", "/plugins", 3)

        assert result.server_id == "srv-1"
        assert result.detections_count == 2
        assert result.files_scanned == 120
        assert result.ok

        call = post.calls[0]
        assert call["url"] == "https://node-1.example.com:8080/api/zerotrust/scan"
        assert call["json"] == {"serverId": "srv-1", "directory": "/plugins", "maxDepth": 3}
        assert call["headers"]["Authorization"] == "Bearer node-token"
        assert call["timeout"] == 5

    def test_missing_fields_default_to_empty(self, agent, post):
        post.response = FakeResponse(200, {})
        result = agent.scan("srv-1", "/", 10)
        assert result.detections == []
        assert result.files_scanned == 0

    def test_negative_depth_rejected_before_any_request(self, agent, post):
        with pytest.raises(ValueError):
            agent.scan("srv-1", "/", -1)
        assert post.calls == []

    def test_zero_depth_allowed(self, agent, post):
        agent.scan("srv-1", "/", 0)
        assert post.calls[0]["json"]["maxDepth"] == 0

    def test_malformed_detection_list(self, agent, post):
        post.response = FakeResponse(200, {"detections": "nope"})
        with pytest.raises(AgentReportedError):
            agent.scan("srv-1", "/", 10)

    def test_non_object_detection_is_rejected(self, agent, post):
        post.response = FakeResponse(200, {"detections": [*make_detections(2), "evil.jar"], "filesScanned": 3})
        with pytest.raises(AgentReportedError) as exc:
            agent.scan("srv-1", "/", 10)
        assert exc.value.message == "Agent returned a malformed detection record"


class TestFailures:

    def test_timeout_is_remote_unavailable(self, agent, post):
        post.response = requests.Timeout("read timed out")
        with pytest.raises(RemoteUnavailable) as exc:
            agent.scan("srv-1", "/", 10)
        assert "timed out" in exc.value.message

    def test_connection_error_is_remote_unavailable(self, agent, post):
        post.response = requests.ConnectionError("connection refused")
        with pytest.raises(RemoteUnavailable):
            agent.suspend("srv-1")

    def test_non_2xx_is_agent_error(self, agent, post):
        post.response = FakeResponse(500, {"error": "boom"}, text="boom")
        with pytest.raises(AgentReportedError) as exc:
            agent.scan("srv-1", "/", 10)
        assert exc.value.status == 500

    def test_error_field_is_agent_error(self, agent, post):
        post.response = FakeResponse(200, {"error": "server is offline"})
        with pytest.raises(AgentReportedError) as exc:
            agent.scan("srv-1", "/", 10)
        assert exc.value.message == "server is offline"

    def test_invalid_json_is_agent_error(self, agent, post):
        post.response = FakeResponse(200, FakeResponse.INVALID_JSON, text="<html>")
        with pytest.raises(AgentReportedError):
            agent.scan("srv-1", "/", 10)

    def test_non_object_body_is_agent_error(self, agent, post):
        post.response = FakeResponse(200, ["not", "a", "dict"])
        with pytest.raises(AgentReportedError):
            agent.suspend("srv-1")

    def test_no_retries(self, agent, post):
        post.response = requests.ConnectionError("down")
        with pytest.raises(RemoteUnavailable):
            agent.scan("srv-1", "/", 10)
        assert len(post.calls) == 1


class TestSuspend:

    def test_success_flag(self, agent, post):
        post.response = FakeResponse(200, {"success": True})
        assert agent.suspend("srv-1") is True
        assert post.calls[0]["url"].endswith("/api/zerotrust/suspend")
        assert post.calls[0]["json"] == {"serverId": "srv-1"}

    def test_refusal(self, agent, post):
        post.response = FakeResponse(200, {"success": False})
        assert agent.suspend("srv-1") is False


class TestConstruction:

    def test_for_node_builds_base_url(self):
        endpoint = AgentEndpoint(
            node_id=1, node_name="node-1", fqdn="10.0.0.5", port=8443, scheme="http", token="t",
        )
        agent = AgentClient.for_node(endpoint)
        assert agent.base_url == "http://10.0.0.5:8443"
        assert agent.token == "t"

    def test_timeout_from_environment(self, monkeypatch):
        monkeypatch.setenv("ZEROTRUST_AGENT_TIMEOUT", "12")
        assert AgentClient("https://x", "t").timeout == 12.0

    def test_bad_timeout_env_falls_back(self, monkeypatch):
        monkeypatch.setenv("ZEROTRUST_AGENT_TIMEOUT", "soon")
        assert AgentClient("https://x", "t").timeout == 30
