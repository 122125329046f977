"""Collaborator contracts (Protocol-based dependency injection)."""

from taskbridge.interfaces.agent_notifier import IAgentNotifier
from taskbridge.interfaces.chat_sink import IChatSink
from taskbridge.interfaces.execution_backend import EventCallback, IExecutionBackend
from taskbridge.interfaces.workspace_store import IWorkspaceStore

__all__ = [
    "IAgentNotifier",
    "IChatSink",
    "EventCallback",
    "IExecutionBackend",
    "IWorkspaceStore",
]
