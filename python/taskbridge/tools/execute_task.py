from typing import Any, Dict

from taskbridge.tools.deps import ToolDependencies
from taskbridge.tools.schemas import ExecuteTaskParams


async def execute_task(params: ExecuteTaskParams, deps: ToolDependencies) -> Dict[str, Any]:
    """Submit a task. QueueFullError propagates to the dispatcher."""
    return await deps.orchestrator.submit(
        params.agent_id,
        params.task_description,
        idempotency_key=params.idempotency_key,
        timeout_ms=params.timeout_ms,
        sync=params.sync,
        observers=params.observers,
    )
