"""
Tool handlers exposed over MCP.

Each tool is a pydantic parameter model plus an async handler
``handler(params, deps) -> dict``:
- execute_task: submit a task to the orchestrator
- get_task_status / get_task_history / archive_task_conversation
- send_task_message / send_task_feedback / send_runtime_update
- list_task_channels / get_task_channel / send_task_update / send_task_control
- task_control: cancel, pause or resume through the control signal handler
- add_task_observer / remove_task_observer / list_task_observers
- get_task_files / read_task_file
- health
"""

from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Type

from pydantic import BaseModel

from taskbridge.tools import schemas
from taskbridge.tools.coordination import (
    get_task_channel,
    list_task_channels,
    send_task_control,
    send_task_update,
    task_control,
)
from taskbridge.tools.deps import ToolDependencies
from taskbridge.tools.execute_task import execute_task
from taskbridge.tools.file_access import get_task_files, read_task_file
from taskbridge.tools.observers import add_task_observer, list_task_observers, remove_task_observer
from taskbridge.tools.task_archive import archive_task_conversation, get_task_history
from taskbridge.tools.task_messages import send_runtime_update, send_task_feedback, send_task_message
from taskbridge.tools.task_status import get_task_status, health

ToolHandler = Callable[[Any, ToolDependencies], Awaitable[Dict[str, Any]]]


@dataclass(frozen=True)
class ToolSpec:
    name: str
    description: str
    params: Type[BaseModel]
    handler: ToolHandler


_SPECS = [
    ToolSpec(
        "execute_task",
        "Execute a development task in an isolated runner. Returns immediately with a task id "
        "unless sync is true. Progress is mirrored into a workspace memory block attached to "
        "the calling agent and, when chat is enabled, into a task room.",
        schemas.ExecuteTaskParams,
        execute_task,
    ),
    ToolSpec(
        "get_task_status",
        "Get the status, timestamps, outcome and the five most recent workspace events of a task.",
        schemas.TaskIdParams,
        get_task_status,
    ),
    ToolSpec(
        "get_task_history",
        "Get the full workspace event history of a task, optionally with artifacts.",
        schemas.GetTaskHistoryParams,
        get_task_history,
    ),
    ToolSpec(
        "archive_task_conversation",
        "Archive the chat conversation of a finished task and record the archive in its workspace.",
        schemas.ArchiveTaskConversationParams,
        archive_task_conversation,
    ),
    ToolSpec(
        "send_task_message",
        "Send a message (update, feedback, requirement or context change) to a running or paused task.",
        schemas.SendTaskMessageParams,
        send_task_message,
    ),
    ToolSpec(
        "send_task_feedback",
        "Send feedback (clarification, correction, guidance or approval) to a running or paused task.",
        schemas.SendTaskFeedbackParams,
        send_task_feedback,
    ),
    ToolSpec(
        "send_runtime_update",
        "Tell a running or paused task about a context, requirement or priority change.",
        schemas.SendRuntimeUpdateParams,
        send_runtime_update,
    ),
    ToolSpec(
        "list_task_channels",
        "List task chat channels, optionally for one agent and including finished tasks.",
        schemas.ListTaskChannelsParams,
        list_task_channels,
    ),
    ToolSpec(
        "get_task_channel",
        "Get the chat channel of a task by task id or channel id.",
        schemas.GetTaskChannelParams,
        get_task_channel,
    ),
    ToolSpec(
        "send_task_update",
        "Post a progress, error or status update into a task's chat channel.",
        schemas.SendTaskUpdateParams,
        send_task_update,
    ),
    ToolSpec(
        "send_task_control",
        "Post a cancel, pause or resume control message into a task's chat channel.",
        schemas.SendTaskControlParams,
        send_task_control,
    ),
    ToolSpec(
        "task_control",
        "Cancel, pause or resume a task. Illegal transitions are reported, not applied.",
        schemas.TaskControlParams,
        task_control,
    ),
    ToolSpec(
        "add_task_observer",
        "Invite a Matrix user to observe a task's chat channel.",
        schemas.AddTaskObserverParams,
        add_task_observer,
    ),
    ToolSpec(
        "remove_task_observer",
        "Remove an observer from a task's chat channel.",
        schemas.RemoveTaskObserverParams,
        remove_task_observer,
    ),
    ToolSpec(
        "list_task_observers",
        "List the observers of a task's chat channel.",
        schemas.TaskIdParams,
        list_task_observers,
    ),
    ToolSpec(
        "get_task_files",
        "List files in the workspace of a task that is still executing.",
        schemas.GetTaskFilesParams,
        get_task_files,
    ),
    ToolSpec(
        "read_task_file",
        "Read a file from the workspace of a task that is still executing.",
        schemas.ReadTaskFileParams,
        read_task_file,
    ),
    ToolSpec(
        "health",
        "Report bridge health: running tasks, capacity and whether chat is enabled.",
        schemas.EmptyParams,
        health,
    ),
]

TOOL_REGISTRY: Dict[str, ToolSpec] = {spec.name: spec for spec in _SPECS}

__all__ = ["TOOL_REGISTRY", "ToolDependencies", "ToolHandler", "ToolSpec"]
