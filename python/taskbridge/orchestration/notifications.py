"""Human-readable completion notices sent to the requesting agent."""

import json
from datetime import datetime, timezone
from typing import Optional

from taskbridge.models.execution import ExecutionResult
from taskbridge.models.task import TaskStatus

_HEADLINES = {
    TaskStatus.COMPLETED: ("✅", "Completed Successfully"),
    TaskStatus.TIMEOUT: ("⏱️", "Timed Out"),
    TaskStatus.CANCELLED: ("🛑", "Cancelled"),
}


def format_completion_notification(
    task_id: str,
    status: TaskStatus,
    result: ExecutionResult,
    task_description: str,
    preview_chars: int = 1000,
) -> str:
    emoji, headline = _HEADLINES.get(status, ("❌", "Failed"))
    lines = [
        f"{emoji} Task {headline}",
        "",
        f"Task ID: {task_id}",
        f"Description: {task_description}",
        f"Duration: {result.duration_ms}ms",
        f"Status: {status.value}",
    ]
    if result.exit_code is not None:
        lines.append(f"Exit Code: {result.exit_code}")
    message = "\n".join(lines)

    if result.output:
        message += f"\n\nOutput:\n{result.output[:preview_chars]}"
        if len(result.output) > preview_chars:
            message += "\n\n... (truncated, use get_task_history for full output)"
    if result.error:
        message += f"\n\nError: {result.error}"
    return message


def format_failure_notification(task_id: str, task_description: str, error: str) -> str:
    return (
        "🚨 Task Failed\n\n"
        f"Task ID: {task_id}\n"
        f"Description: {task_description}\n"
        f"Error: {error}\n\n"
        "The task execution encountered an error and could not be completed."
    )


def system_alert(message: str, when: Optional[datetime] = None) -> str:
    """Wrap a notice in the JSON envelope agents receive as a user message."""
    when = when or datetime.now(timezone.utc)
    return json.dumps(
        {
            "type": "system_alert",
            "message": message,
            "time": when.strftime("%m/%d/%Y, %I:%M:%S %p %Z"),
        }
    )
