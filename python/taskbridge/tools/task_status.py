"""Status and health queries."""

import logging
from typing import Any, Dict, List

from taskbridge import __version__
from taskbridge.models.task import now_ms
from taskbridge.tools.deps import ToolDependencies
from taskbridge.tools.schemas import EmptyParams, TaskIdParams

logger = logging.getLogger(__name__)

RECENT_EVENT_COUNT = 5


async def get_task_status(params: TaskIdParams, deps: ToolDependencies) -> Dict[str, Any]:
    task = deps.require_task(params.task_id)

    recent_events: List[Dict[str, Any]] = []
    if task.workspace_block_id:
        try:
            workspace = await deps.workspace.get_workspace(task.agent_id, task.workspace_block_id)
            recent_events = [
                {"timestamp": e.timestamp, "type": e.type, "message": e.message}
                for e in workspace.events[-RECENT_EVENT_COUNT:]
            ]
        except Exception as e:
            # The block may be detached already; status still comes from the registry
            logger.debug(f"Workspace unavailable for task {task.task_id}: {e}")

    return {
        "task_id": task.task_id,
        "status": task.status.value,
        "created_at": task.created_at,
        "started_at": task.started_at,
        "completed_at": task.completed_at,
        "agent_id": task.agent_id,
        "workspace_block_id": task.workspace_block_id,
        "recent_events": recent_events,
        "output": task.output,
        "error": task.error,
        "duration_ms": task.duration_ms,
        "exit_code": task.exit_code,
    }


async def health(params: EmptyParams, deps: ToolDependencies) -> Dict[str, Any]:
    return {
        "status": "healthy",
        "timestamp": now_ms(),
        "version": __version__,
        "metrics": {
            "tracked_tasks": len(deps.registry),
            "running_tasks": deps.registry.running_count(),
            "active_runs": deps.orchestrator.active_runs,
            "can_accept_task": deps.registry.can_accept_task(),
        },
        "chat_enabled": deps.chat is not None,
    }
