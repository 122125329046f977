"""Chat channel coordination tools. All require chat to be configured."""

from typing import Any, Dict, List

from taskbridge.exceptions import ChannelNotFoundError
from taskbridge.models.chat import ChatEventKind
from taskbridge.models.control import ControlSignal, ControlSignalRequest
from taskbridge.models.task import TaskRegistryEntry, TaskStatus
from taskbridge.tools.deps import ToolDependencies
from taskbridge.tools.schemas import (
    GetTaskChannelParams,
    ListTaskChannelsParams,
    SendTaskControlParams,
    SendTaskUpdateParams,
    TaskControlParams,
)

OPEN_STATUSES = {TaskStatus.QUEUED, TaskStatus.RUNNING}


def channel_summary(task: TaskRegistryEntry) -> Dict[str, Any]:
    room = task.chat_room
    return {
        "task_id": task.task_id,
        "status": task.status.value,
        "channel_id": room.room_id,
        "created_at": room.created_at,
        "workspace_block_id": task.workspace_block_id,
        "participants": [p.to_dict() for p in room.participants],
    }


async def list_task_channels(params: ListTaskChannelsParams, deps: ToolDependencies) -> Dict[str, Any]:
    deps.require_chat()
    tasks = (
        deps.registry.find_tasks_by_agent(params.agent_id)
        if params.agent_id
        else deps.registry.get_all_tasks()
    )
    channels: List[Dict[str, Any]] = [
        channel_summary(task)
        for task in tasks
        if task.chat_room is not None
        and (params.include_completed or task.status in OPEN_STATUSES)
    ]
    return {"channels": channels, "total": len(channels)}


async def get_task_channel(params: GetTaskChannelParams, deps: ToolDependencies) -> Dict[str, Any]:
    deps.require_chat()
    task = deps.registry.get_task(params.task_id) if params.task_id else None
    if task is None and params.channel_id:
        task = deps.registry.find_task_by_chat_room(params.channel_id)
    if task is None or task.chat_room is None:
        raise ChannelNotFoundError(
            "Task communication channel not found for the specified task or channel id",
            details={"task_id": params.task_id, "channel_id": params.channel_id},
        )
    return {"channel": channel_summary(task)}


async def send_task_update(params: SendTaskUpdateParams, deps: ToolDependencies) -> Dict[str, Any]:
    chat = deps.require_chat()
    task = deps.require_task(params.task_id)
    room = deps.require_room(task)
    await chat.send_task_update(
        room.room_id, task.task_id, params.message, ChatEventKind(params.event_type)
    )
    return {"channel_id": room.room_id, "task_id": task.task_id}


async def send_task_control(params: SendTaskControlParams, deps: ToolDependencies) -> Dict[str, Any]:
    """Post a control message into the task room.

    Only the room sees this; the registry is changed by ``task_control`` or
    by the message router picking the signal up from the room.
    """
    chat = deps.require_chat()
    task = deps.require_task(params.task_id)
    room = deps.require_room(task)
    await chat.send_control_signal(
        room.room_id, task.task_id, ControlSignal(params.control), params.reason
    )
    return {"channel_id": room.room_id, "task_id": task.task_id, "control": params.control}


async def task_control(params: TaskControlParams, deps: ToolDependencies) -> Dict[str, Any]:
    result = await deps.control.handle_control_signal(
        ControlSignalRequest(
            task_id=params.task_id,
            signal=ControlSignal(params.control),
            requested_by=params.agent_id or "mcp_client",
            reason=params.reason,
        )
    )
    return result.to_dict()
