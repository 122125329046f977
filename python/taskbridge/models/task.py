"""Task registry data types."""

from __future__ import annotations

import secrets
import string
import time
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Any, Dict, Optional

if TYPE_CHECKING:
    from taskbridge.models.chat import RoomInfo

_BASE36 = string.digits + string.ascii_lowercase


class TaskStatus(str, Enum):
    QUEUED = "queued"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    TIMEOUT = "timeout"
    PAUSED = "paused"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES


TERMINAL_STATUSES = frozenset(
    {TaskStatus.COMPLETED, TaskStatus.FAILED, TaskStatus.TIMEOUT, TaskStatus.CANCELLED}
)


def now_ms() -> int:
    """Wall-clock epoch milliseconds."""
    return int(time.time() * 1000)


def generate_task_id() -> str:
    """`task-<epoch ms>-<9 base36 chars>`."""
    suffix = "".join(secrets.choice(_BASE36) for _ in range(9))
    return f"task-{now_ms()}-{suffix}"


@dataclass
class TaskQueueConfig:
    max_concurrent_tasks: int = 3
    idempotency_window_ms: int = 24 * 60 * 60 * 1000
    cleanup_interval_seconds: float = 3600.0


@dataclass
class TaskRegistryEntry:
    """The single authoritative record of one task.

    Timestamps are epoch milliseconds. ``started_at`` and ``completed_at``
    are written once by the registry and never overwritten.
    """

    task_id: str
    agent_id: str
    status: TaskStatus
    created_at: int
    idempotency_key: Optional[str] = None
    started_at: Optional[int] = None
    completed_at: Optional[int] = None
    workspace_block_id: Optional[str] = None
    chat_room: Optional["RoomInfo"] = None
    # Survives room closure so finished conversations can still be archived
    last_chat_room_id: Optional[str] = None

    # Outcome, populated at finalization
    output: Optional[str] = None
    error: Optional[str] = None
    duration_ms: Optional[int] = None
    exit_code: Optional[int] = None

    @property
    def is_terminal(self) -> bool:
        return self.status.is_terminal

    def to_dict(self) -> Dict[str, Any]:
        return {
            "task_id": self.task_id,
            "agent_id": self.agent_id,
            "status": self.status.value,
            "created_at": self.created_at,
            "started_at": self.started_at,
            "completed_at": self.completed_at,
            "workspace_block_id": self.workspace_block_id,
            "chat_room_id": self.chat_room.room_id if self.chat_room else None,
            "output": self.output,
            "error": self.error,
            "duration_ms": self.duration_ms,
            "exit_code": self.exit_code,
        }
