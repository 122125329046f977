from dataclasses import dataclass
from typing import Optional

from taskbridge.control import ControlSignalHandler
from taskbridge.exceptions import (
    ChannelNotFoundError,
    CoordinationDisabledError,
    TaskNotFoundError,
)
from taskbridge.interfaces import IChatSink, IExecutionBackend, IWorkspaceStore
from taskbridge.models.task import TaskRegistryEntry
from taskbridge.orchestration import TaskExecutionOrchestrator
from taskbridge.registry import TaskRegistry


@dataclass
class ToolDependencies:
    """Everything a tool handler may touch."""

    registry: TaskRegistry
    workspace: IWorkspaceStore
    execution: IExecutionBackend
    orchestrator: TaskExecutionOrchestrator
    control: ControlSignalHandler
    chat: Optional[IChatSink] = None

    def require_task(self, task_id: str) -> TaskRegistryEntry:
        entry = self.registry.get_task(task_id)
        if entry is None:
            raise TaskNotFoundError(task_id)
        return entry

    def require_chat(self) -> IChatSink:
        if self.chat is None:
            raise CoordinationDisabledError()
        return self.chat

    def require_room(self, entry: TaskRegistryEntry):
        if entry.chat_room is None:
            raise ChannelNotFoundError(details={"task_id": entry.task_id})
        return entry.chat_room
