"""Cancel / pause / resume as a guarded state machine.

Order of operations for every signal:

1. look the task up in the registry
2. check the precondition for the signal
3. ask the execution backend to apply it
4. commit the new status to the registry (the signal is applied from here on)
5. mirror the transition into the workspace (best effort)
6. notify the task's chat room, if any (best effort)
"""

import logging
from dataclasses import dataclass
from typing import Dict, FrozenSet, Optional

from taskbridge.interfaces import IChatSink, IExecutionBackend, IWorkspaceStore
from taskbridge.models.chat import ChatEventKind
from taskbridge.models.control import ControlSignal, ControlSignalRequest, ControlSignalResult
from taskbridge.models.task import TaskStatus
from taskbridge.models.workspace import (
    UpdateWorkspaceRequest,
    WorkspaceEvent,
    WorkspaceEventType,
)
from taskbridge.orchestration.best_effort import best_effort
from taskbridge.registry import TaskRegistry

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class _Transition:
    allowed_from: FrozenSet[TaskStatus]
    target: TaskStatus
    event_type: WorkspaceEventType
    verb: str  # "cancel" / "pause" / "resume"
    past: str  # "cancelled" / "paused" / "resumed"


_TRANSITIONS: Dict[ControlSignal, _Transition] = {
    ControlSignal.CANCEL: _Transition(
        allowed_from=frozenset(
            {TaskStatus.QUEUED, TaskStatus.RUNNING, TaskStatus.PAUSED, TaskStatus.TIMEOUT}
        ),
        target=TaskStatus.CANCELLED,
        event_type=WorkspaceEventType.TASK_CANCELLED,
        verb="cancel",
        past="cancelled",
    ),
    ControlSignal.PAUSE: _Transition(
        allowed_from=frozenset({TaskStatus.RUNNING}),
        target=TaskStatus.PAUSED,
        event_type=WorkspaceEventType.TASK_PAUSED,
        verb="pause",
        past="paused",
    ),
    ControlSignal.RESUME: _Transition(
        allowed_from=frozenset({TaskStatus.PAUSED}),
        target=TaskStatus.RUNNING,
        event_type=WorkspaceEventType.TASK_RESUMED,
        verb="resume",
        past="resumed",
    ),
}


class ControlSignalHandler:
    """Applies control signals against the registry and execution backend."""

    def __init__(
        self,
        registry: TaskRegistry,
        execution: IExecutionBackend,
        workspace: IWorkspaceStore,
        chat: Optional[IChatSink] = None,
    ):
        self.registry = registry
        self.execution = execution
        self.workspace = workspace
        self.chat = chat

    async def handle_control_signal(self, request: ControlSignalRequest) -> ControlSignalResult:
        signal = ControlSignal(request.signal)
        task = self.registry.get_task(request.task_id)
        if task is None:
            return ControlSignalResult(
                success=False,
                task_id=request.task_id,
                signal=signal,
                error="Task not found in registry",
            )

        transition = _TRANSITIONS[signal]
        previous = task.status

        if previous not in transition.allowed_from:
            return ControlSignalResult(
                success=False,
                task_id=request.task_id,
                signal=signal,
                previous_status=previous,
                error=f"Cannot {transition.verb} task with status: {previous.value}",
            )

        if not await self._apply_to_backend(signal, request.task_id):
            return ControlSignalResult(
                success=False,
                task_id=request.task_id,
                signal=signal,
                previous_status=previous,
                error=f"Failed to {transition.verb} task execution",
            )

        self.registry.update_status(request.task_id, transition.target)
        logger.info(
            f"Task {request.task_id} {transition.past} by {request.requested_by} "
            f"({previous.value} -> {transition.target.value})"
        )

        await self._mirror_to_workspace(request, transition)
        await self._notify_chat(request.task_id, f"Task {transition.past}")

        return ControlSignalResult(
            success=True,
            task_id=request.task_id,
            signal=signal,
            previous_status=previous,
            new_status=transition.target,
        )

    async def _apply_to_backend(self, signal: ControlSignal, task_id: str) -> bool:
        """Backend mutation happens before the registry commit.

        A cancel the backend refuses still counts as applied when the backend
        no longer tracks the task as active.
        """
        try:
            if signal == ControlSignal.CANCEL:
                killed = await self.execution.cancel_task(task_id)
                return killed or not self.execution.is_task_active(task_id)
            if signal == ControlSignal.PAUSE:
                return await self.execution.pause_task(task_id)
            return await self.execution.resume_task(task_id)
        except Exception as e:
            logger.error(f"Backend rejected {signal.value} for task {task_id}: {e}")
            return False

    async def _mirror_to_workspace(
        self, request: ControlSignalRequest, transition: _Transition
    ) -> None:
        task = self.registry.get_task(request.task_id)
        if task is None or not task.workspace_block_id:
            return
        event = WorkspaceEvent(
            type=transition.event_type.value,
            message=request.reason or f"Task {transition.past} by control signal",
            data={"requested_by": request.requested_by},
        )
        await best_effort(
            f"workspace {transition.event_type.value}",
            self.workspace.update_workspace(
                task.agent_id,
                task.workspace_block_id,
                UpdateWorkspaceRequest(status=transition.target.value, events=[event]),
            ),
            task_id=request.task_id,
        )

    async def _notify_chat(self, task_id: str, message: str) -> None:
        if self.chat is None:
            return
        task = self.registry.get_task(task_id)
        if task is None or task.chat_room is None:
            return
        await best_effort(
            "chat status_change",
            self.chat.send_task_update(
                task.chat_room.room_id, task_id, message, ChatEventKind.STATUS_CHANGE
            ),
            task_id=task_id,
        )
