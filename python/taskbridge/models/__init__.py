"""Domain types shared by the registry, orchestrator and collaborators."""

from taskbridge.models.chat import (
    ArchiveInfo,
    ChatEventKind,
    CreateRoomRequest,
    Participant,
    ParticipantRole,
    ParticipantType,
    RoomInfo,
)
from taskbridge.models.control import ControlSignal, ControlSignalRequest, ControlSignalResult
from taskbridge.models.events import (
    AbortEvent,
    CompleteEvent,
    ErrorEvent,
    ExecutionEvent,
    OpaqueEvent,
    OutputEvent,
    SessionErrorEvent,
    SessionIdleEvent,
    is_significant,
    parse_execution_event,
)
from taskbridge.models.execution import ExecutionRequest, ExecutionResult, ExecutionStatus
from taskbridge.models.task import (
    TERMINAL_STATUSES,
    TaskQueueConfig,
    TaskRegistryEntry,
    TaskStatus,
    generate_task_id,
    now_ms,
)
from taskbridge.models.workspace import (
    ArtifactType,
    CreateWorkspaceRequest,
    UpdateWorkspaceRequest,
    WorkspaceArtifact,
    WorkspaceBlock,
    WorkspaceEvent,
    WorkspaceEventType,
)

__all__ = [
    "ArchiveInfo",
    "ChatEventKind",
    "CreateRoomRequest",
    "Participant",
    "ParticipantRole",
    "ParticipantType",
    "RoomInfo",
    "ControlSignal",
    "ControlSignalRequest",
    "ControlSignalResult",
    "AbortEvent",
    "CompleteEvent",
    "ErrorEvent",
    "ExecutionEvent",
    "OpaqueEvent",
    "OutputEvent",
    "SessionErrorEvent",
    "SessionIdleEvent",
    "is_significant",
    "parse_execution_event",
    "ExecutionRequest",
    "ExecutionResult",
    "ExecutionStatus",
    "TERMINAL_STATUSES",
    "TaskQueueConfig",
    "TaskRegistryEntry",
    "TaskStatus",
    "generate_task_id",
    "now_ms",
    "ArtifactType",
    "CreateWorkspaceRequest",
    "UpdateWorkspaceRequest",
    "WorkspaceArtifact",
    "WorkspaceBlock",
    "WorkspaceEvent",
    "WorkspaceEventType",
]
