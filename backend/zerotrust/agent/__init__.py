from zerotrust.agent.client import AgentClient

__all__ = ["AgentClient"]
