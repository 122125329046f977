"""Control signal request/result types."""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional

from taskbridge.models.task import TaskStatus


class ControlSignal(str, Enum):
    CANCEL = "cancel"
    PAUSE = "pause"
    RESUME = "resume"


@dataclass
class ControlSignalRequest:
    task_id: str
    signal: ControlSignal
    requested_by: str
    reason: Optional[str] = None


@dataclass
class ControlSignalResult:
    success: bool
    task_id: str
    signal: ControlSignal
    previous_status: Optional[TaskStatus] = None
    new_status: Optional[TaskStatus] = None
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "success": self.success,
            "task_id": self.task_id,
            "signal": self.signal.value,
        }
        if self.previous_status is not None:
            payload["previous_status"] = self.previous_status.value
        if self.new_status is not None:
            payload["new_status"] = self.new_status.value
        if self.error is not None:
            payload["error"] = self.error
        return payload
