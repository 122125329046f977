"""Task execution orchestrator.

Drives one task from admission to finalization:

    admission -> workspace provisioning -> (optional) chat room -> running
    -> backend dispatch with event fan-out -> finalization -> deferred release

Finalization runs exactly once per task on every path, whether the backend
returns a result, raises, or the orchestrator itself fails after admission.
Synchronous submissions race the run against a response deadline; losing the
race only changes what the caller sees, the run continues in the background.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Set

from taskbridge.exceptions import QueueFullError
from taskbridge.interfaces import IAgentNotifier, IChatSink, IExecutionBackend, IWorkspaceStore
from taskbridge.models.chat import ChatEventKind, CreateRoomRequest, RoomInfo
from taskbridge.models.events import ExecutionEvent, is_significant
from taskbridge.models.execution import ExecutionRequest, ExecutionResult, ExecutionStatus
from taskbridge.models.task import TaskStatus, generate_task_id
from taskbridge.models.workspace import (
    ArtifactType,
    CreateWorkspaceRequest,
    UpdateWorkspaceRequest,
    WorkspaceArtifact,
    WorkspaceEvent,
    WorkspaceEventType,
)
from taskbridge.observability import track_performance
from taskbridge.orchestration.best_effort import best_effort, drain_pending, spawn_best_effort
from taskbridge.orchestration.notifications import (
    format_completion_notification,
    format_failure_notification,
    system_alert,
)
from taskbridge.registry import TaskRegistry

logger = logging.getLogger(__name__)

DUPLICATE_MESSAGE = "Task already exists (idempotency key match)"
QUEUED_MESSAGE = "Task queued for execution"
CANCELLED_EARLY_MESSAGE = "Task was cancelled before execution started"
STILL_RUNNING_MESSAGE = (
    "Task started but execution is taking longer than expected. "
    "Use get_task_status to check progress."
)
STILL_RUNNING_HINT = "Response timeout reached, task continues in background"

_FINAL_STATUS = {
    ExecutionStatus.SUCCESS: TaskStatus.COMPLETED,
    ExecutionStatus.TIMEOUT: TaskStatus.TIMEOUT,
}

_FINAL_EVENT = {
    TaskStatus.COMPLETED: WorkspaceEventType.TASK_COMPLETED,
    TaskStatus.TIMEOUT: WorkspaceEventType.TASK_TIMEOUT,
    TaskStatus.CANCELLED: WorkspaceEventType.TASK_CANCELLED,
}


# ── Per-run state ────────────────────────────────────────────────────


@dataclass
class _TaskRun:
    """Mutable state for one in-flight task."""

    task_id: str
    agent_id: str
    description: str
    workspace_block_id: str
    idempotency_key: Optional[str] = None
    timeout_ms: Optional[int] = None
    sync: bool = False
    observers: List[str] = field(default_factory=list)

    room: Optional[RoomInfo] = None
    events_mirrored: int = 0
    finalized: bool = False
    release_scheduled: bool = False
    # Cancelled before its workspace block was attached
    cancel_unrecorded: bool = False
    response: Dict[str, Any] = field(default_factory=dict)
    # Serializes workspace writes so events land in emission order
    workspace_lock: asyncio.Lock = field(default_factory=asyncio.Lock)
    # Progress mirrors still in flight; flushed before the terminal event
    mirrors: Set[asyncio.Task] = field(default_factory=set)


# ── Orchestrator ─────────────────────────────────────────────────────


class TaskExecutionOrchestrator:
    """Owns the full lifecycle of submitted tasks."""

    def __init__(
        self,
        registry: TaskRegistry,
        execution: IExecutionBackend,
        workspace: IWorkspaceStore,
        notifier: IAgentNotifier,
        chat: Optional[IChatSink] = None,
        *,
        default_observers: Optional[List[str]] = None,
        response_timeout_seconds: float = 60.0,
        release_delay_seconds: float = 60.0,
        output_preview_chars: int = 5000,
        notification_preview_chars: int = 1000,
    ):
        self.registry = registry
        self.execution = execution
        self.workspace = workspace
        self.notifier = notifier
        self.chat = chat
        self.default_observers = list(default_observers or [])
        self.response_timeout_seconds = response_timeout_seconds
        self.release_delay_seconds = release_delay_seconds
        self.output_preview_chars = output_preview_chars
        self.notification_preview_chars = notification_preview_chars

        self._runs: Dict[str, asyncio.Task] = {}
        self._releases: Set[asyncio.Task] = set()

    @property
    def active_runs(self) -> int:
        return sum(1 for t in self._runs.values() if not t.done())

    # ── Submission ───────────────────────────────────────────────────

    @track_performance
    async def submit(
        self,
        agent_id: str,
        task_description: str,
        *,
        idempotency_key: Optional[str] = None,
        timeout_ms: Optional[int] = None,
        sync: bool = False,
        observers: Optional[List[str]] = None,
    ) -> Dict[str, Any]:
        """Admit and dispatch a task.

        Raises:
            QueueFullError: the running task count is at the ceiling. Nothing
                is mutated in that case.

        Returns:
            Response payload for the caller. Provisioning failures are
            reported in the payload (``status: failed``) rather than raised,
            because the task id has already been assigned.
        """
        task_id = generate_task_id()
        logger.info(f"Submitting task {task_id} for agent {agent_id}")

        if not self.registry.can_accept_task():
            logger.warning(
                f"Rejecting task for agent {agent_id}: "
                f"{self.registry.running_count()} tasks running"
            )
            raise QueueFullError()

        entry = self.registry.register(task_id, agent_id, idempotency_key)
        if entry.task_id != task_id:
            return {
                "task_id": entry.task_id,
                "status": entry.status.value,
                "message": DUPLICATE_MESSAGE,
                "workspace_block_id": entry.workspace_block_id,
            }

        try:
            block_id, _ = await self.workspace.create_workspace_block(
                CreateWorkspaceRequest(
                    task_id=task_id,
                    agent_id=agent_id,
                    metadata={
                        "task_description": task_description,
                        "idempotency_key": idempotency_key,
                    },
                )
            )
        except Exception as e:
            logger.error(f"Failed to create workspace block for task {task_id}: {e}")
            error = f"Failed to create workspace block: {e}"
            if self._is_cancelled(task_id):
                return {"task_id": task_id, "status": TaskStatus.CANCELLED.value, "error": error}
            self.registry.update_status(task_id, TaskStatus.FAILED, error=error)
            return {"task_id": task_id, "status": TaskStatus.FAILED.value, "error": error}

        # A cancel may have landed while the block was being created; status is left as is
        entry = self.registry.attach_workspace(task_id, block_id)
        logger.debug(f"Created workspace block {block_id} for task {task_id}")

        run = _TaskRun(
            task_id=task_id,
            agent_id=agent_id,
            description=task_description,
            workspace_block_id=block_id,
            idempotency_key=idempotency_key,
            timeout_ms=timeout_ms,
            sync=sync,
            observers=list(observers or []),
            cancel_unrecorded=entry is not None and entry.status == TaskStatus.CANCELLED,
        )
        run_task = asyncio.create_task(self._run(run), name=f"taskbridge-run-{task_id}")
        self._runs[task_id] = run_task
        run_task.add_done_callback(lambda _t, tid=task_id: self._runs.pop(tid, None))

        if not sync:
            if run.cancel_unrecorded:
                return {
                    "task_id": task_id,
                    "status": TaskStatus.CANCELLED.value,
                    "workspace_block_id": block_id,
                    "message": CANCELLED_EARLY_MESSAGE,
                }
            return {
                "task_id": task_id,
                "status": TaskStatus.QUEUED.value,
                "workspace_block_id": block_id,
                "message": QUEUED_MESSAGE,
            }

        # Only the response deadline is abandoned when it loses; the run is
        # never cancelled from here.
        done, _ = await asyncio.wait({run_task}, timeout=self.response_timeout_seconds)
        if run_task in done:
            return run_task.result()

        logger.info(f"Response deadline reached for task {task_id}; continuing in background")
        return {
            "task_id": task_id,
            "status": TaskStatus.RUNNING.value,
            "workspace_block_id": block_id,
            "message": STILL_RUNNING_MESSAGE,
            "timeout_hint": STILL_RUNNING_HINT,
        }

    # ── Run ──────────────────────────────────────────────────────────

    async def _run(self, run: _TaskRun) -> Dict[str, Any]:
        try:
            if self._is_cancelled(run.task_id):
                return await self._skip_cancelled(run)

            try:
                run.room = await self._open_room(run)
                # Only a still-queued task moves forward; a cancel during room setup wins
                if self._is_cancelled(run.task_id):
                    return await self._skip_cancelled(run)
                self.registry.update_status(run.task_id, TaskStatus.RUNNING)

                await self._write_workspace(
                    run,
                    "workspace task_started",
                    UpdateWorkspaceRequest(
                        status=TaskStatus.RUNNING.value,
                        events=[
                            WorkspaceEvent(
                                type=WorkspaceEventType.TASK_STARTED.value,
                                message="Task execution started",
                                data={"chat_room_id": run.room.room_id} if run.room else None,
                            )
                        ],
                    ),
                )

                request = ExecutionRequest(
                    task_id=run.task_id,
                    agent_id=run.agent_id,
                    prompt=run.description,
                    workspace_block_id=run.workspace_block_id,
                    timeout_ms=run.timeout_ms,
                )
                result = await self.execution.execute(
                    request, lambda event: self._on_event(run, event)
                )
            except Exception as e:
                return await self._fail(run, e)

            try:
                return await self._finalize(run, result)
            except Exception as e:
                return await self._fail(run, e)
        finally:
            self._schedule_release(run)

    async def _open_room(self, run: _TaskRun) -> Optional[RoomInfo]:
        """Create the task's chat room. Failure disables chat for this task."""
        if self.chat is None:
            return None

        observers: List[str] = []
        for observer in self.default_observers + run.observers:
            if observer and observer not in observers:
                observers.append(observer)

        try:
            room = await self.chat.create_task_room(
                CreateRoomRequest(
                    task_id=run.task_id,
                    task_description=run.description,
                    calling_agent_id=run.agent_id,
                    human_observers=observers,
                    metadata={
                        "idempotency_key": run.idempotency_key,
                        "timeout_ms": run.timeout_ms,
                        "sync": run.sync,
                    },
                )
            )
        except Exception as e:
            logger.warning(f"Failed to create chat room for task {run.task_id}: {e}")
            return None

        self.registry.set_chat_room(run.task_id, room)
        return room

    def _is_cancelled(self, task_id: str) -> bool:
        entry = self.registry.get_task(task_id)
        return entry is not None and entry.status == TaskStatus.CANCELLED

    async def _skip_cancelled(self, run: _TaskRun) -> Dict[str, Any]:
        """Finish a run whose task was cancelled before it reached the backend."""
        logger.info(f"Task {run.task_id} cancelled before dispatch")
        run.finalized = True
        run.response = {
            "task_id": run.task_id,
            "status": TaskStatus.CANCELLED.value,
            "workspace_block_id": run.workspace_block_id,
        }

        if self.chat is not None and run.room is not None:
            closed = await best_effort(
                "chat close_task_room",
                self.chat.close_task_room(
                    run.room.room_id,
                    run.task_id,
                    f"Task {run.task_id} was cancelled before execution started.\n"
                    f"Status: {TaskStatus.CANCELLED.value}",
                ),
                task_id=run.task_id,
            )
            if closed.ok:
                self.registry.clear_chat_room(run.task_id)

        if run.cancel_unrecorded:
            # The cancel landed before the block was attached, so nothing mirrored it
            await self._write_workspace(
                run,
                "workspace task_cancelled",
                UpdateWorkspaceRequest(
                    status=TaskStatus.CANCELLED.value,
                    events=[
                        WorkspaceEvent(
                            type=WorkspaceEventType.TASK_CANCELLED.value,
                            message="Task cancelled before execution started",
                        )
                    ],
                ),
            )
        return run.response

    def _on_event(self, run: _TaskRun, event: ExecutionEvent) -> None:
        """Fan a significant execution event out to workspace and chat."""
        if not is_significant(event):
            return

        run.events_mirrored += 1
        progress = WorkspaceEvent(
            type=WorkspaceEventType.TASK_PROGRESS.value,
            message=f"Execution event: {event.kind}",
            timestamp=event.timestamp,
            data={"event_type": event.kind, "event_data": event.data},
        )
        self._track(
            run,
            spawn_best_effort(
                "workspace task_progress",
                self._locked_update(run, UpdateWorkspaceRequest(events=[progress])),
                task_id=run.task_id,
            ),
        )

        if self.chat is not None and run.room is not None:
            self._track(
                run,
                spawn_best_effort(
                    "chat progress",
                    self.chat.send_task_update(
                        run.room.room_id, run.task_id, event.describe(), ChatEventKind.PROGRESS
                    ),
                    task_id=run.task_id,
                ),
            )

    @staticmethod
    def _track(run: _TaskRun, mirror: asyncio.Task) -> None:
        run.mirrors.add(mirror)
        mirror.add_done_callback(run.mirrors.discard)

    async def _flush_mirrors(self, run: _TaskRun) -> None:
        if run.mirrors:
            await asyncio.wait(set(run.mirrors))

    # ── Finalization ─────────────────────────────────────────────────

    async def _finalize(self, run: _TaskRun, result: ExecutionResult) -> Dict[str, Any]:
        if run.finalized:
            return run.response
        run.finalized = True

        final_status = _FINAL_STATUS.get(result.status, TaskStatus.FAILED)
        entry = self.registry.get_task(run.task_id)
        if entry is not None and entry.status == TaskStatus.CANCELLED:
            # A cancel committed during execution is not overwritten
            final_status = TaskStatus.CANCELLED

        output_preview = (result.output or "")[: self.output_preview_chars]
        self.registry.update_status(
            run.task_id,
            final_status,
            output=output_preview,
            error=result.error,
            duration_ms=result.duration_ms,
            exit_code=result.exit_code,
        )
        logger.info(f"Task {run.task_id} finished with status {final_status.value}")

        run.response = {
            "task_id": run.task_id,
            "status": final_status.value,
            "workspace_block_id": run.workspace_block_id,
            "exit_code": result.exit_code,
            "duration_ms": result.duration_ms,
            "output": output_preview,
        }
        if result.error:
            run.response["error"] = result.error

        await self._flush_mirrors(run)
        notice = format_completion_notification(
            run.task_id,
            final_status,
            result,
            run.description,
            preview_chars=self.notification_preview_chars,
        )

        if self.chat is not None and run.room is not None:
            summary = f"{notice}\n\nEvents: {run.events_mirrored}"
            closed = await best_effort(
                "chat close_task_room",
                self.chat.close_task_room(run.room.room_id, run.task_id, summary),
                task_id=run.task_id,
            )
            if closed.ok:
                self.registry.clear_chat_room(run.task_id)

        succeeded = result.status == ExecutionStatus.SUCCESS
        await self._write_workspace(
            run,
            "workspace final event",
            UpdateWorkspaceRequest(
                status=final_status.value,
                events=[
                    WorkspaceEvent(
                        type=_FINAL_EVENT.get(final_status, WorkspaceEventType.TASK_FAILED).value,
                        message=result.error or "Task execution completed",
                        data={
                            "exit_code": result.exit_code,
                            "duration_ms": result.duration_ms,
                            "chat_room_id": run.room.room_id if run.room else None,
                        },
                    )
                ],
                artifacts=[
                    WorkspaceArtifact(
                        type=(ArtifactType.OUTPUT if succeeded else ArtifactType.ERROR).value,
                        name="execution_output" if succeeded else "execution_error",
                        content=result.output if succeeded else (result.error or result.output),
                    )
                ],
            ),
        )

        await self._notify_agent(run, notice)
        return run.response

    async def _fail(self, run: _TaskRun, error: Exception) -> Dict[str, Any]:
        """Failure path for exceptions raised after admission.

        A cancel committed while the backend was running is kept; the error is
        still recorded on the entry and in the workspace.
        """
        if run.finalized:
            logger.error(
                f"Error after task {run.task_id} was finalized: {error}", exc_info=True
            )
            return run.response
        run.finalized = True

        message = str(error) or type(error).__name__
        logger.error(f"Task {run.task_id} failed: {message}", exc_info=True)
        final_status = TaskStatus.CANCELLED if self._is_cancelled(run.task_id) else TaskStatus.FAILED
        self.registry.update_status(run.task_id, final_status, error=message)

        run.response = {
            "task_id": run.task_id,
            "status": final_status.value,
            "workspace_block_id": run.workspace_block_id,
            "error": message,
        }
        await self._flush_mirrors(run)

        notice = format_failure_notification(run.task_id, run.description, message)
        if self.chat is not None and run.room is not None:
            summary = notice
            if final_status == TaskStatus.CANCELLED:
                summary += f"\nStatus: {final_status.value}"
            closed = await best_effort(
                "chat close_task_room",
                self.chat.close_task_room(run.room.room_id, run.task_id, summary),
                task_id=run.task_id,
            )
            if closed.ok:
                self.registry.clear_chat_room(run.task_id)

        event_type = _FINAL_EVENT.get(final_status, WorkspaceEventType.TASK_FAILED)
        await self._write_workspace(
            run,
            f"workspace {event_type.value}",
            UpdateWorkspaceRequest(
                status=final_status.value,
                events=[WorkspaceEvent(type=event_type.value, message=message)],
            ),
        )
        await self._notify_agent(run, notice)
        return run.response

    async def _notify_agent(self, run: _TaskRun, notice: str) -> None:
        await best_effort(
            "agent notification",
            self.notifier.send_message(run.agent_id, "user", system_alert(notice)),
            task_id=run.task_id,
        )

    # ── Workspace helpers ────────────────────────────────────────────

    async def _locked_update(self, run: _TaskRun, update: UpdateWorkspaceRequest) -> None:
        async with run.workspace_lock:
            await self.workspace.update_workspace(run.agent_id, run.workspace_block_id, update)

    async def _write_workspace(
        self, run: _TaskRun, operation: str, update: UpdateWorkspaceRequest
    ) -> None:
        await best_effort(operation, self._locked_update(run, update), task_id=run.task_id)

    # ── Deferred release ─────────────────────────────────────────────

    def _schedule_release(self, run: _TaskRun) -> None:
        if run.release_scheduled:
            return
        run.release_scheduled = True
        timer = asyncio.create_task(self._release_later(run))
        self._releases.add(timer)
        timer.add_done_callback(self._releases.discard)

    async def _release_later(self, run: _TaskRun) -> None:
        await asyncio.sleep(self.release_delay_seconds)
        await best_effort(
            "workspace detach",
            self.workspace.detach_workspace_block(run.agent_id, run.workspace_block_id),
            task_id=run.task_id,
        )
        logger.debug(f"Released workspace block {run.workspace_block_id} for task {run.task_id}")

    # ── Shutdown ─────────────────────────────────────────────────────

    async def shutdown(self, timeout: float = 5.0) -> None:
        """Cancel pending release timers and wait briefly for active runs."""
        for timer in list(self._releases):
            timer.cancel()
        pending = [t for t in self._runs.values() if not t.done()]
        if pending:
            logger.info(f"Waiting for {len(pending)} active task run(s)")
            await asyncio.wait(pending, timeout=timeout)
        if self._releases:
            await asyncio.gather(*self._releases, return_exceptions=True)
        await drain_pending(timeout)
