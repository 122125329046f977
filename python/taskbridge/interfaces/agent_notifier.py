"""Interface for notifying the requesting agent."""

from typing import Any, Protocol


class IAgentNotifier(Protocol):
    async def send_message(self, agent_id: str, role: str, content: str) -> Any:
        """Deliver a message to the agent. Callers treat it as fire-and-forget."""
        ...
