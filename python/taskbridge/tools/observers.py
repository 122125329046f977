"""Add, remove and list human or agent observers of a task room."""

import logging
from typing import Any, Dict

from taskbridge.exceptions import InvalidTaskStateError, ValidationError
from taskbridge.models.chat import Participant, ParticipantRole, ParticipantType
from taskbridge.tools.deps import ToolDependencies
from taskbridge.tools.schemas import AddTaskObserverParams, RemoveTaskObserverParams, TaskIdParams

logger = logging.getLogger(__name__)


async def add_task_observer(params: AddTaskObserverParams, deps: ToolDependencies) -> Dict[str, Any]:
    chat = deps.require_chat()
    task = deps.require_task(params.task_id)
    room = deps.require_room(task)

    if task.is_terminal:
        raise InvalidTaskStateError(
            f"Cannot add observer to task with status: {task.status.value}",
            details={"task_id": task.task_id, "status": task.status.value},
        )
    if not params.observer_id.startswith("@"):
        raise ValidationError(
            "Observer ID must be a valid Matrix user ID (starting with @)",
            details={"observer_id": params.observer_id},
        )

    await chat.invite_to_room(room.room_id, params.observer_id, params.read_only)
    if all(p.id != params.observer_id for p in room.participants):
        room.participants.append(
            Participant(
                id=params.observer_id,
                type=ParticipantType(params.observer_type),
                role=ParticipantRole.OBSERVER,
            )
        )
    logger.info(f"Added observer {params.observer_id} to task {task.task_id}")
    return {"task_id": task.task_id, "observer_id": params.observer_id, "channel_id": room.room_id}


async def remove_task_observer(params: RemoveTaskObserverParams, deps: ToolDependencies) -> Dict[str, Any]:
    chat = deps.require_chat()
    task = deps.require_task(params.task_id)
    room = deps.require_room(task)

    await chat.remove_from_room(room.room_id, params.observer_id)
    room.participants = [p for p in room.participants if p.id != params.observer_id]
    logger.info(f"Removed observer {params.observer_id} from task {task.task_id}")
    return {"task_id": task.task_id, "observer_id": params.observer_id, "channel_id": room.room_id}


async def list_task_observers(params: TaskIdParams, deps: ToolDependencies) -> Dict[str, Any]:
    deps.require_chat()
    task = deps.require_task(params.task_id)
    room = deps.require_room(task)
    observers = [
        {"id": p.id, "type": p.type.value, "role": p.role.value}
        for p in room.participants
        if p.role == ParticipantRole.OBSERVER or p.type == ParticipantType.HUMAN
    ]
    return {"task_id": task.task_id, "observers": observers}
