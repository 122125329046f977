"""Workspace block documents mirrored into the agent's memory."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

from taskbridge.models.task import now_ms

WORKSPACE_VERSION = "1.0.0"


class WorkspaceEventType(str, Enum):
    TASK_STARTED = "task_started"
    TASK_PROGRESS = "task_progress"
    TASK_COMPLETED = "task_completed"
    TASK_FAILED = "task_failed"
    TASK_TIMEOUT = "task_timeout"
    TASK_PAUSED = "task_paused"
    TASK_RESUMED = "task_resumed"
    TASK_CANCELLED = "task_cancelled"
    TASK_CONTROL = "task_control"
    TASK_MESSAGE = "task_message"
    TASK_FEEDBACK = "task_feedback"
    TASK_RUNTIME_UPDATE = "task_runtime_update"


class ArtifactType(str, Enum):
    FILE = "file"
    OUTPUT = "output"
    ERROR = "error"
    LOG = "log"


@dataclass
class WorkspaceEvent:
    type: str
    message: str
    timestamp: int = field(default_factory=now_ms)
    data: Optional[Dict[str, Any]] = None

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "timestamp": self.timestamp,
            "type": _value(self.type),
            "message": self.message,
        }
        if self.data is not None:
            payload["data"] = self.data
        return payload

    @classmethod
    def from_dict(cls, raw: Dict[str, Any]) -> "WorkspaceEvent":
        return cls(
            type=raw.get("type", WorkspaceEventType.TASK_MESSAGE.value),
            message=raw.get("message", ""),
            timestamp=raw.get("timestamp", 0),
            data=raw.get("data"),
        )


@dataclass
class WorkspaceArtifact:
    type: str
    name: str
    content: str
    timestamp: int = field(default_factory=now_ms)
    metadata: Optional[Dict[str, Any]] = None

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "timestamp": self.timestamp,
            "type": _value(self.type),
            "name": self.name,
            "content": self.content,
        }
        if self.metadata is not None:
            payload["metadata"] = self.metadata
        return payload

    @classmethod
    def from_dict(cls, raw: Dict[str, Any]) -> "WorkspaceArtifact":
        return cls(
            type=raw.get("type", ArtifactType.LOG.value),
            name=raw.get("name", ""),
            content=raw.get("content", ""),
            timestamp=raw.get("timestamp", 0),
            metadata=raw.get("metadata"),
        )


@dataclass
class WorkspaceBlock:
    task_id: str
    agent_id: str
    status: str = "pending"
    version: str = WORKSPACE_VERSION
    created_at: int = field(default_factory=now_ms)
    updated_at: int = field(default_factory=now_ms)
    events: List[WorkspaceEvent] = field(default_factory=list)
    artifacts: List[WorkspaceArtifact] = field(default_factory=list)
    metadata: Optional[Dict[str, Any]] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "version": self.version,
            "task_id": self.task_id,
            "agent_id": self.agent_id,
            "status": _value(self.status),
            "created_at": self.created_at,
            "updated_at": self.updated_at,
            "events": [e.to_dict() for e in self.events],
            "artifacts": [a.to_dict() for a in self.artifacts],
            "metadata": self.metadata,
        }

    @classmethod
    def from_dict(cls, raw: Dict[str, Any]) -> "WorkspaceBlock":
        return cls(
            version=raw.get("version", WORKSPACE_VERSION),
            task_id=raw["task_id"],
            agent_id=raw["agent_id"],
            status=raw.get("status", "pending"),
            created_at=raw.get("created_at", 0),
            updated_at=raw.get("updated_at", 0),
            events=[WorkspaceEvent.from_dict(e) for e in raw.get("events", [])],
            artifacts=[WorkspaceArtifact.from_dict(a) for a in raw.get("artifacts", [])],
            metadata=raw.get("metadata"),
        )


@dataclass
class CreateWorkspaceRequest:
    task_id: str
    agent_id: str
    metadata: Optional[Dict[str, Any]] = None


@dataclass
class UpdateWorkspaceRequest:
    status: Optional[str] = None
    events: List[WorkspaceEvent] = field(default_factory=list)
    artifacts: List[WorkspaceArtifact] = field(default_factory=list)
    metadata: Optional[Dict[str, Any]] = None


def _value(v: Any) -> Any:
    return v.value if isinstance(v, Enum) else v


__all__ = [
    "WORKSPACE_VERSION",
    "WorkspaceEventType",
    "ArtifactType",
    "WorkspaceEvent",
    "WorkspaceArtifact",
    "WorkspaceBlock",
    "CreateWorkspaceRequest",
    "UpdateWorkspaceRequest",
]
