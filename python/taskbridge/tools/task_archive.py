"""Workspace history and conversation archiving."""

from typing import Any, Dict

from taskbridge.exceptions import ChannelNotFoundError, InvalidTaskStateError, WorkspaceNotFoundError
from taskbridge.models.task import TaskStatus, now_ms
from taskbridge.models.workspace import WorkspaceEvent, WorkspaceEventType
from taskbridge.tools.deps import ToolDependencies
from taskbridge.tools.schemas import ArchiveTaskConversationParams, GetTaskHistoryParams

ARCHIVABLE = {TaskStatus.COMPLETED, TaskStatus.FAILED, TaskStatus.CANCELLED, TaskStatus.TIMEOUT}


async def get_task_history(params: GetTaskHistoryParams, deps: ToolDependencies) -> Dict[str, Any]:
    task = deps.require_task(params.task_id)
    if not task.workspace_block_id:
        raise WorkspaceNotFoundError(
            f"Task {task.task_id} does not have a workspace block",
            details={"task_id": task.task_id},
        )

    workspace = await deps.workspace.get_workspace(task.agent_id, task.workspace_block_id)
    history: Dict[str, Any] = {
        "task_id": task.task_id,
        "status": task.status.value,
        "created_at": task.created_at,
        "completed_at": task.completed_at,
        "events": [
            {"timestamp": e.timestamp, "type": e.type, "message": e.message}
            for e in workspace.events
        ],
    }
    if params.include_artifacts:
        history["artifacts"] = [
            {"timestamp": a.timestamp, "type": a.type, "name": a.name, "content": a.content}
            for a in workspace.artifacts
        ]
    return history


async def archive_task_conversation(
    params: ArchiveTaskConversationParams, deps: ToolDependencies
) -> Dict[str, Any]:
    chat = deps.require_chat()
    task = deps.require_task(params.task_id)

    room_id = task.chat_room.room_id if task.chat_room else task.last_chat_room_id
    if not room_id:
        raise ChannelNotFoundError(
            f"Task {task.task_id} does not have a communication channel to archive",
            details={"task_id": task.task_id},
        )
    if task.status not in ARCHIVABLE:
        raise InvalidTaskStateError(
            f"Cannot archive task with status: {task.status.value}. Task must be finished.",
            details={"task_id": task.task_id, "status": task.status.value},
        )

    archive = await chat.archive_task_room(room_id, task.task_id)
    history = await get_task_history(
        GetTaskHistoryParams(task_id=task.task_id, include_artifacts=True), deps
    )

    if task.workspace_block_id:
        await deps.workspace.append_event(
            task.agent_id,
            task.workspace_block_id,
            WorkspaceEvent(
                type=WorkspaceEventType.TASK_MESSAGE.value,
                message=params.summary or "Task conversation archived",
                timestamp=now_ms(),
                data={
                    "archived_at": archive.archived_at,
                    "message_count": len(history["events"]),
                    "artifact_count": len(history.get("artifacts", [])),
                },
            ),
        )

    return {
        "task_id": task.task_id,
        "channel_id": room_id,
        "archived_at": archive.archived_at,
        "archive_location": task.workspace_block_id or "unknown",
        "message_count": len(history["events"]),
    }
