"""Pydantic parameter models for every tool.

The MCP layer publishes ``model_json_schema()`` of these as tool input
schemas and validates incoming arguments with ``model_validate``.
"""

from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, Field, model_validator

MessageType = Literal[
    "update",
    "feedback",
    "context_change",
    "requirement_change",
    "priority_change",
    "clarification",
    "correction",
    "guidance",
    "approval",
]
FeedbackType = Literal["clarification", "correction", "guidance", "approval"]
RuntimeUpdateType = Literal["context_change", "requirement_change", "priority_change"]
ControlName = Literal["cancel", "pause", "resume"]
UpdateKind = Literal["progress", "error", "status_change"]


class ExecuteTaskParams(BaseModel):
    agent_id: str = Field(description="ID of the agent requesting the task")
    task_description: str = Field(description="Natural language description of the task to execute")
    idempotency_key: Optional[str] = Field(default=None, description="Key that deduplicates resubmissions")
    timeout_ms: Optional[int] = Field(default=None, gt=0, description="Execution timeout in milliseconds")
    sync: bool = Field(default=False, description="Wait for completion (bounded by the response timeout)")
    observers: Optional[List[str]] = Field(
        default=None, description="Matrix user IDs to invite as observers (e.g. @user:domain.com)"
    )


class TaskIdParams(BaseModel):
    task_id: str = Field(description="Task ID")


class GetTaskHistoryParams(TaskIdParams):
    include_artifacts: bool = Field(default=False, description="Include workspace artifacts")


class ArchiveTaskConversationParams(TaskIdParams):
    summary: Optional[str] = Field(default=None, description="Archive note recorded in the workspace")


class SendTaskMessageParams(TaskIdParams):
    message: str
    message_type: MessageType = "update"
    metadata: Optional[Dict[str, Any]] = None


class SendTaskFeedbackParams(TaskIdParams):
    feedback: str
    feedback_type: FeedbackType = "guidance"
    metadata: Optional[Dict[str, Any]] = None


class SendRuntimeUpdateParams(TaskIdParams):
    update: str
    update_type: RuntimeUpdateType = "context_change"
    metadata: Optional[Dict[str, Any]] = None


class ListTaskChannelsParams(BaseModel):
    agent_id: Optional[str] = Field(default=None, description="Only channels for this agent")
    include_completed: bool = Field(default=False, description="Include channels of finished tasks")


class GetTaskChannelParams(BaseModel):
    task_id: Optional[str] = None
    channel_id: Optional[str] = None

    @model_validator(mode="after")
    def _require_one(self) -> "GetTaskChannelParams":
        if not (self.task_id or self.channel_id):
            raise ValueError("task_id or channel_id is required")
        return self


class SendTaskUpdateParams(TaskIdParams):
    message: str
    event_type: UpdateKind = "progress"


class SendTaskControlParams(TaskIdParams):
    control: ControlName
    reason: Optional[str] = None


class TaskControlParams(TaskIdParams):
    control: ControlName
    reason: Optional[str] = None
    agent_id: Optional[str] = Field(default=None, description="Requesting agent, recorded as requester")


class AddTaskObserverParams(TaskIdParams):
    observer_id: str = Field(description="Matrix user ID starting with @")
    observer_type: Literal["human", "agent"] = "human"
    read_only: bool = True


class RemoveTaskObserverParams(TaskIdParams):
    observer_id: str


class GetTaskFilesParams(TaskIdParams):
    path: str = Field(default="/", description="Path prefix filter")


class ReadTaskFileParams(TaskIdParams):
    file_path: str = Field(description="Path of the file to read")


class EmptyParams(BaseModel):
    pass
