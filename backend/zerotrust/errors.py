# zerotrust/errors.py
"""
Error taxonomy for the zero-trust scanner.

    NotFound                server / node / execution reference does not resolve
    RemoteUnavailable       timeout or transport failure talking to a node agent
    AgentReportedError      the agent answered but signalled failure
    InvalidExecutionState   an execution record was asked to leave a terminal state

Remediation and notification failures are NOT exceptions: they come back as
SuspensionOutcome / WebhookOutcome values (see scanner/suspension.py and
scanner/webhook.py) so callers can log them without unwinding a scan.
"""

from __future__ import annotations


class ZeroTrustError(Exception):
    status_code = 500
    code = "ZEROTRUST_ERROR"

    def __init__(self, message: str = ""):
        super().__init__(message)
        self.message = message or self.__class__.__name__

    def to_dict(self) -> dict:
        return {"error": self.code, "message": self.message}


class NotFound(ZeroTrustError):
    status_code = 404
    code = "NOT_FOUND"


class ServerNotFound(NotFound):
    code = "SERVER_NOT_FOUND"

    def __init__(self, server_id: str):
        super().__init__("Server not found")
        self.server_id = server_id


class NodeNotFound(NotFound):
    code = "NODE_NOT_FOUND"

    def __init__(self, node_id):
        super().__init__("Node not found")
        self.node_id = node_id


class ExecutionNotFound(NotFound):
    code = "LOG_NOT_FOUND"

    def __init__(self, execution_id: str):
        super().__init__("Execution log not found")
        self.execution_id = execution_id


class RemoteUnavailable(ZeroTrustError):
    """The node agent could not be reached (timeout, refused, DNS, TLS...)."""
    status_code = 502
    code = "REMOTE_UNAVAILABLE"


class AgentReportedError(ZeroTrustError):
    """The node agent responded, but reported a failure."""
    status_code = 502
    code = "AGENT_ERROR"

    def __init__(self, message: str = "", status: int | None = None):
        super().__init__(message)
        self.status = status


class InvalidExecutionState(ZeroTrustError):
    status_code = 409
    code = "INVALID_EXECUTION_STATE"
