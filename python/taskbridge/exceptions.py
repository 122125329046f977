"""
Unified error hierarchy for the task bridge.

Every error raised by the bridge carries an ErrorContext so tool responses can
report the failure without needing server logs:
- admission errors (queue full) are returned synchronously, nothing mutated
- provisioning errors (workspace creation) fail the submission
- backend errors surface as failed control results or terminal task states
- side-channel errors never reach callers; they are logged by best_effort()
"""

import logging
import traceback
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

logger = logging.getLogger(__name__)


# ============================================================================
# Enums
# ============================================================================

class ErrorSeverity(Enum):
    """Error severity levels."""
    CRITICAL = "critical"
    ERROR = "error"
    WARNING = "warning"
    INFO = "info"


class ErrorCategory(Enum):
    """Error categories for classification and routing."""
    VALIDATION = "validation"      # Bad tool input or configuration
    ADMISSION = "admission"        # Capacity exceeded
    NOT_FOUND = "not_found"        # Unknown task / block / room
    STATE = "state"                # Operation illegal for the current task status
    PROVISIONING = "provisioning"  # Workspace record could not be created
    BACKEND = "backend"            # Execution backend rejected or failed
    WORKSPACE = "workspace"        # Workspace store failure
    CHAT = "chat"                  # Chat service failure or not configured
    EXTERNAL = "external"          # HTTP-level collaborator failure
    INTERNAL = "internal"


# ============================================================================
# Error context
# ============================================================================

@dataclass
class ErrorContext:
    """Rich error context with metadata."""
    error_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    severity: ErrorSeverity = ErrorSeverity.ERROR
    category: ErrorCategory = ErrorCategory.INTERNAL
    message: str = ""
    code: Optional[str] = None
    details: Dict[str, Any] = field(default_factory=dict)
    stack_trace: Optional[str] = None
    is_recoverable: bool = True
    http_status: int = 500

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary (stack trace excluded)."""
        data = {
            "error_id": self.error_id,
            "timestamp": self.timestamp.isoformat(),
            "severity": self.severity.value,
            "category": self.category.value,
            "message": self.message,
            "details": self.details,
            "is_recoverable": self.is_recoverable,
            "http_status": self.http_status,
        }
        if self.code:
            data["code"] = self.code
        return data


# ============================================================================
# Base exception
# ============================================================================

class TaskBridgeException(Exception):
    """Base exception for all task bridge errors with rich context."""

    def __init__(
        self,
        message: str,
        category: ErrorCategory = ErrorCategory.INTERNAL,
        severity: ErrorSeverity = ErrorSeverity.ERROR,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
        is_recoverable: bool = True,
        http_status: int = 500,
    ):
        self.message = message
        self.category = category
        self.severity = severity
        self.code = code
        self.details = details or {}
        self.is_recoverable = is_recoverable
        self.http_status = http_status
        self.context = ErrorContext(
            severity=severity,
            category=category,
            message=message,
            code=code,
            details=self.details,
            stack_trace=traceback.format_exc(),
            is_recoverable=is_recoverable,
            http_status=http_status,
        )
        super().__init__(self.message)

    def __str__(self) -> str:
        return self.message

    def to_dict(self) -> Dict[str, Any]:
        return self.context.to_dict()


# ============================================================================
# Validation & configuration
# ============================================================================

class ValidationError(TaskBridgeException):
    """Tool input failed validation."""
    def __init__(self, message: str, **kwargs):
        kwargs.setdefault("category", ErrorCategory.VALIDATION)
        kwargs.setdefault("severity", ErrorSeverity.WARNING)
        kwargs.setdefault("http_status", 400)
        super().__init__(message, **kwargs)


class ConfigurationError(ValidationError):
    """Required configuration is missing or invalid."""
    pass


# ============================================================================
# Admission & task state
# ============================================================================

class AdmissionError(TaskBridgeException):
    """A submission was refused before any state was mutated."""
    def __init__(self, message: str, **kwargs):
        kwargs.setdefault("category", ErrorCategory.ADMISSION)
        kwargs.setdefault("severity", ErrorSeverity.WARNING)
        kwargs.setdefault("http_status", 429)
        super().__init__(message, **kwargs)


class QueueFullError(AdmissionError):
    """Running task count reached the concurrency ceiling."""
    def __init__(self, message: str = "Task queue full", **kwargs):
        kwargs.setdefault("code", "QUEUE_FULL")
        kwargs.setdefault("details", {"status": 429})
        super().__init__(message, **kwargs)


class TaskNotFoundError(TaskBridgeException):
    """Task id is not tracked by the registry."""
    def __init__(self, task_id: str, **kwargs):
        kwargs.setdefault("category", ErrorCategory.NOT_FOUND)
        kwargs.setdefault("severity", ErrorSeverity.WARNING)
        kwargs.setdefault("http_status", 404)
        kwargs.setdefault("details", {"task_id": task_id})
        super().__init__(f"Task {task_id} not found", **kwargs)
        self.task_id = task_id


class InvalidTaskStateError(TaskBridgeException):
    """Operation is not allowed for the task's current status."""
    def __init__(self, message: str, **kwargs):
        kwargs.setdefault("category", ErrorCategory.STATE)
        kwargs.setdefault("severity", ErrorSeverity.WARNING)
        kwargs.setdefault("http_status", 409)
        super().__init__(message, **kwargs)


# ============================================================================
# Provisioning & backend
# ============================================================================

class ProvisioningError(TaskBridgeException):
    """Resources required before execution could not be provisioned."""
    def __init__(self, message: str, **kwargs):
        kwargs.setdefault("category", ErrorCategory.PROVISIONING)
        kwargs.setdefault("http_status", 502)
        super().__init__(message, **kwargs)


class WorkspaceProvisioningError(ProvisioningError):
    """Workspace block creation or attachment failed."""
    pass


class BackendError(TaskBridgeException):
    """Execution backend error."""
    def __init__(self, message: str, **kwargs):
        kwargs.setdefault("category", ErrorCategory.BACKEND)
        kwargs.setdefault("http_status", 502)
        super().__init__(message, **kwargs)


class ExecutionBackendError(BackendError):
    """Execution backend could not run or reach the task."""
    pass


# ============================================================================
# Workspace store
# ============================================================================

class WorkspaceError(TaskBridgeException):
    """Base workspace store error."""
    def __init__(self, message: str, **kwargs):
        kwargs.setdefault("category", ErrorCategory.WORKSPACE)
        kwargs.setdefault("http_status", 502)
        super().__init__(message, **kwargs)


class WorkspaceNotFoundError(WorkspaceError):
    """Workspace block is not attached to the agent."""
    def __init__(self, message: str, **kwargs):
        kwargs.setdefault("http_status", 404)
        super().__init__(message, **kwargs)


class WorkspaceConflictError(WorkspaceError):
    """Concurrent modification of a workspace block (HTTP 409)."""
    def __init__(self, message: str, **kwargs):
        kwargs.setdefault("http_status", 409)
        kwargs.setdefault("is_recoverable", True)
        super().__init__(message, **kwargs)


# ============================================================================
# Chat coordination
# ============================================================================

class ChatError(TaskBridgeException):
    """Base chat coordination error."""
    def __init__(self, message: str, **kwargs):
        kwargs.setdefault("category", ErrorCategory.CHAT)
        kwargs.setdefault("http_status", 502)
        super().__init__(message, **kwargs)


class CoordinationDisabledError(ChatError):
    """Chat coordination is not configured for this deployment."""
    def __init__(self, message: str = "Task coordination is not enabled for this deployment", **kwargs):
        kwargs.setdefault("http_status", 501)
        kwargs.setdefault("is_recoverable", False)
        super().__init__(message, **kwargs)


class ChannelNotFoundError(ChatError):
    """Task has no open chat room."""
    def __init__(self, message: str = "Task does not have an associated communication channel", **kwargs):
        kwargs.setdefault("http_status", 404)
        super().__init__(message, **kwargs)


# ============================================================================
# HTTP integrations
# ============================================================================

class IntegrationError(TaskBridgeException):
    """Base error for HTTP collaborators."""
    def __init__(self, message: str, status: Optional[int] = None, **kwargs):
        kwargs.setdefault("category", ErrorCategory.EXTERNAL)
        kwargs.setdefault("http_status", 502)
        details = kwargs.setdefault("details", {})
        if status is not None:
            details["status"] = status
        super().__init__(message, **kwargs)
        self.status = status


class LettaAPIError(IntegrationError):
    """Letta REST API returned an error."""
    pass


class MatrixAPIError(IntegrationError):
    """Matrix homeserver returned an error."""
    pass


class OpenCodeAPIError(IntegrationError):
    """OpenCode server returned an error."""
    pass


def error_payload(error: Exception) -> Dict[str, Any]:
    """Structured tool response for an exception."""
    if isinstance(error, TaskBridgeException):
        payload: Dict[str, Any] = {"error": error.message}
        if error.code:
            payload["code"] = error.code
        payload.update({k: v for k, v in error.details.items() if k not in payload})
        return payload
    return {"error": str(error)}


__all__: List[str] = [
    "ErrorSeverity",
    "ErrorCategory",
    "ErrorContext",
    "TaskBridgeException",
    "ValidationError",
    "ConfigurationError",
    "AdmissionError",
    "QueueFullError",
    "TaskNotFoundError",
    "InvalidTaskStateError",
    "ProvisioningError",
    "WorkspaceProvisioningError",
    "BackendError",
    "ExecutionBackendError",
    "WorkspaceError",
    "WorkspaceNotFoundError",
    "WorkspaceConflictError",
    "ChatError",
    "CoordinationDisabledError",
    "ChannelNotFoundError",
    "IntegrationError",
    "LettaAPIError",
    "MatrixAPIError",
    "OpenCodeAPIError",
    "error_payload",
]
