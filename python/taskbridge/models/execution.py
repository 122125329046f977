"""Execution backend request/result types."""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional


class ExecutionStatus(str, Enum):
    SUCCESS = "success"
    ERROR = "error"
    TIMEOUT = "timeout"


@dataclass
class ExecutionRequest:
    task_id: str
    agent_id: str
    prompt: str
    workspace_block_id: str
    timeout_ms: Optional[int] = None


@dataclass
class ExecutionResult:
    task_id: str
    status: ExecutionStatus
    output: str = ""
    error: Optional[str] = None
    exit_code: Optional[int] = None
    started_at: int = 0
    completed_at: int = 0
    duration_ms: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "task_id": self.task_id,
            "status": self.status.value,
            "output": self.output,
            "error": self.error,
            "exit_code": self.exit_code,
            "duration_ms": self.duration_ms,
        }


@dataclass
class ActiveExecution:
    """Backend bookkeeping for a task that is currently executing."""

    task_id: str
    container_id: str
    started_at: int
    session_id: Optional[str] = None
    server_url: Optional[str] = None
