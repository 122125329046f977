"""In-memory task registry.

The registry is the only mutable source of truth for task existence and
state. It owns the status side effects (``started_at`` / ``completed_at``),
idempotency deduplication, advisory admission control and the periodic
eviction sweep.

It is an explicitly owned component: construct it with a TaskQueueConfig,
call ``start()`` to begin the sweep and ``stop()`` to end it.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Dict, List, Optional

from taskbridge.models.chat import RoomInfo
from taskbridge.models.task import (
    TaskQueueConfig,
    TaskRegistryEntry,
    TaskStatus,
    now_ms,
)

logger = logging.getLogger(__name__)


class TaskRegistry:
    """Authoritative map of task id to TaskRegistryEntry."""

    def __init__(self, config: Optional[TaskQueueConfig] = None) -> None:
        self.config = config or TaskQueueConfig()
        self._tasks: Dict[str, TaskRegistryEntry] = {}
        # idempotency key -> task id
        self._idempotency: Dict[str, str] = {}
        self._sweep_task: Optional[asyncio.Task] = None

    # ── Lifecycle ────────────────────────────────────────────────────

    @property
    def is_running(self) -> bool:
        return self._sweep_task is not None and not self._sweep_task.done()

    async def start(self) -> None:
        """Begin the recurring eviction sweep."""
        if self.is_running:
            logger.warning("Task registry sweep already running")
            return
        self._sweep_task = asyncio.create_task(self._sweep_loop())
        logger.info(
            f"Task registry started (max_concurrent={self.config.max_concurrent_tasks}, "
            f"sweep every {self.config.cleanup_interval_seconds}s)"
        )

    async def stop(self) -> None:
        if self._sweep_task is None:
            return
        self._sweep_task.cancel()
        try:
            await self._sweep_task
        except asyncio.CancelledError:
            pass
        self._sweep_task = None
        logger.info("Task registry stopped")

    async def _sweep_loop(self) -> None:
        while True:
            await asyncio.sleep(self.config.cleanup_interval_seconds)
            try:
                self.sweep()
            except Exception as e:
                logger.error(f"Error in registry sweep: {e}", exc_info=True)

    # ── Mutations ────────────────────────────────────────────────────

    def register(
        self,
        task_id: str,
        agent_id: str,
        idempotency_key: Optional[str] = None,
    ) -> TaskRegistryEntry:
        """Create a queued entry, or return the live entry for a known idempotency key.

        A returned entry whose ``task_id`` differs from the requested one
        means the submission is a duplicate.
        """
        if idempotency_key:
            existing_id = self._idempotency.get(idempotency_key)
            if existing_id is not None:
                existing = self._tasks.get(existing_id)
                if existing is not None:
                    logger.info(
                        f"Idempotency key {idempotency_key} matches task {existing_id}"
                    )
                    return existing

        entry = TaskRegistryEntry(
            task_id=task_id,
            agent_id=agent_id,
            status=TaskStatus.QUEUED,
            created_at=now_ms(),
            idempotency_key=idempotency_key,
        )
        self._tasks[task_id] = entry
        if idempotency_key:
            self._idempotency[idempotency_key] = task_id
        logger.debug(f"Registered task {task_id} for agent {agent_id}")
        return entry

    def update_status(
        self,
        task_id: str,
        status: TaskStatus,
        *,
        workspace_block_id: Optional[str] = None,
        output: Optional[str] = None,
        error: Optional[str] = None,
        duration_ms: Optional[int] = None,
        exit_code: Optional[int] = None,
    ) -> Optional[TaskRegistryEntry]:
        """Set the status of a task. Unknown ids are ignored.

        Transition legality is the caller's concern. The first entry into
        ``running`` stamps ``started_at``; the first entry into a terminal
        status stamps ``completed_at``. Neither is ever overwritten.
        """
        entry = self._tasks.get(task_id)
        if entry is None:
            return None

        entry.status = status
        timestamp = now_ms()
        if status == TaskStatus.RUNNING and entry.started_at is None:
            entry.started_at = timestamp
        if status.is_terminal and entry.completed_at is None:
            entry.completed_at = timestamp

        if workspace_block_id is not None:
            entry.workspace_block_id = workspace_block_id
        if output is not None:
            entry.output = output
        if error is not None:
            entry.error = error
        if duration_ms is not None:
            entry.duration_ms = duration_ms
        if exit_code is not None:
            entry.exit_code = exit_code
        return entry

    def attach_workspace(self, task_id: str, block_id: str) -> Optional[TaskRegistryEntry]:
        """Record the workspace block of a task without touching its status."""
        entry = self._tasks.get(task_id)
        if entry is not None:
            entry.workspace_block_id = block_id
        return entry

    def set_chat_room(self, task_id: str, room: RoomInfo) -> None:
        entry = self._tasks.get(task_id)
        if entry is not None:
            entry.chat_room = room
            entry.last_chat_room_id = room.room_id

    def clear_chat_room(self, task_id: str) -> None:
        entry = self._tasks.get(task_id)
        if entry is not None:
            entry.chat_room = None

    # ── Admission ────────────────────────────────────────────────────

    def running_count(self) -> int:
        return sum(1 for e in self._tasks.values() if e.status == TaskStatus.RUNNING)

    def can_accept_task(self) -> bool:
        """Advisory check; no slot is reserved."""
        return self.running_count() < self.config.max_concurrent_tasks

    # ── Queries ──────────────────────────────────────────────────────

    def get_task(self, task_id: str) -> Optional[TaskRegistryEntry]:
        return self._tasks.get(task_id)

    def get_all_tasks(self) -> List[TaskRegistryEntry]:
        return list(self._tasks.values())

    def find_tasks_by_agent(self, agent_id: str) -> List[TaskRegistryEntry]:
        return [e for e in self._tasks.values() if e.agent_id == agent_id]

    def find_task_by_chat_room(self, room_id: str) -> Optional[TaskRegistryEntry]:
        for entry in self._tasks.values():
            if entry.chat_room is not None and entry.chat_room.room_id == room_id:
                return entry
        return None

    def __len__(self) -> int:
        return len(self._tasks)

    # ── Eviction ─────────────────────────────────────────────────────

    def sweep(self, now: Optional[int] = None) -> List[str]:
        """Evict terminal entries older than the idempotency window.

        Returns:
            Evicted task ids
        """
        cutoff = (now if now is not None else now_ms()) - self.config.idempotency_window_ms
        evicted: List[str] = []
        for task_id, entry in list(self._tasks.items()):
            if entry.status == TaskStatus.RUNNING or not entry.is_terminal:
                continue
            if entry.completed_at is None or entry.completed_at >= cutoff:
                continue
            del self._tasks[task_id]
            key = entry.idempotency_key
            if key and self._idempotency.get(key) == task_id:
                del self._idempotency[key]
            evicted.append(task_id)

        if evicted:
            logger.info(f"Evicted {len(evicted)} expired task(s) from registry")
        return evicted
