"""Messages from the calling agent to a running task.

Every message lands in the task's workspace; when the task has a chat room
the same text is mirrored there as ``[<message_type>] <message>``.
"""

import logging
from typing import Any, Dict, Optional

from taskbridge.exceptions import InvalidTaskStateError, WorkspaceNotFoundError
from taskbridge.models.chat import ChatEventKind
from taskbridge.models.task import TaskStatus, now_ms
from taskbridge.models.workspace import WorkspaceEvent, WorkspaceEventType
from taskbridge.tools.deps import ToolDependencies
from taskbridge.tools.schemas import (
    SendRuntimeUpdateParams,
    SendTaskFeedbackParams,
    SendTaskMessageParams,
)

logger = logging.getLogger(__name__)

MESSAGE_EVENT_TYPES: Dict[str, WorkspaceEventType] = {
    "update": WorkspaceEventType.TASK_PROGRESS,
    "feedback": WorkspaceEventType.TASK_FEEDBACK,
    "context_change": WorkspaceEventType.TASK_RUNTIME_UPDATE,
    "requirement_change": WorkspaceEventType.TASK_RUNTIME_UPDATE,
    "priority_change": WorkspaceEventType.TASK_RUNTIME_UPDATE,
    "clarification": WorkspaceEventType.TASK_FEEDBACK,
    "correction": WorkspaceEventType.TASK_FEEDBACK,
    "guidance": WorkspaceEventType.TASK_FEEDBACK,
    "approval": WorkspaceEventType.TASK_FEEDBACK,
}

MESSAGEABLE = {TaskStatus.RUNNING, TaskStatus.PAUSED}


async def send_task_message(params: SendTaskMessageParams, deps: ToolDependencies) -> Dict[str, Any]:
    task = deps.require_task(params.task_id)
    if not task.workspace_block_id:
        raise WorkspaceNotFoundError(
            f"Task {task.task_id} does not have a workspace block",
            details={"task_id": task.task_id},
        )
    if task.status not in MESSAGEABLE:
        raise InvalidTaskStateError(
            f"Cannot send message to task with status: {task.status.value}",
            details={"task_id": task.task_id, "status": task.status.value},
        )

    timestamp = now_ms()
    message_id = f"msg-{timestamp}"
    event_type = MESSAGE_EVENT_TYPES.get(params.message_type, WorkspaceEventType.TASK_MESSAGE)

    await deps.workspace.append_event(
        task.agent_id,
        task.workspace_block_id,
        WorkspaceEvent(
            type=event_type.value,
            message=params.message,
            timestamp=timestamp,
            data={
                "message_id": message_id,
                "message_type": params.message_type,
                **(params.metadata or {}),
            },
        ),
    )

    if deps.chat is not None and task.chat_room is not None:
        await deps.chat.send_task_update(
            task.chat_room.room_id,
            task.task_id,
            f"[{params.message_type}] {params.message}",
            ChatEventKind.PROGRESS,
        )

    logger.info(f"Delivered {params.message_type} message {message_id} to task {task.task_id}")
    return {"task_id": task.task_id, "message_id": message_id, "timestamp": timestamp}


def _with_kind(metadata: Optional[Dict[str, Any]], key: str, value: str) -> Dict[str, Any]:
    merged = dict(metadata or {})
    merged[key] = value
    return merged


async def send_task_feedback(params: SendTaskFeedbackParams, deps: ToolDependencies) -> Dict[str, Any]:
    return await send_task_message(
        SendTaskMessageParams(
            task_id=params.task_id,
            message=params.feedback,
            message_type=params.feedback_type,
            metadata=_with_kind(params.metadata, "feedback_type", params.feedback_type),
        ),
        deps,
    )


async def send_runtime_update(params: SendRuntimeUpdateParams, deps: ToolDependencies) -> Dict[str, Any]:
    return await send_task_message(
        SendTaskMessageParams(
            task_id=params.task_id,
            message=params.update,
            message_type=params.update_type,
            metadata=_with_kind(params.metadata, "update_type", params.update_type),
        ),
        deps,
    )
