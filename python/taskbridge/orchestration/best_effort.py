"""Best-effort side-channel operations.

Workspace mirroring, chat mirroring, agent notification and workspace
detachment are observability, not state. They run through ``best_effort``
so that a failure is logged once, here, and never reaches the caller.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Awaitable, Optional, Set

logger = logging.getLogger(__name__)

# Strong references for fire-and-forget tasks until they finish
_pending: Set[asyncio.Task] = set()


@dataclass(frozen=True)
class BestEffortResult:
    operation: str
    ok: bool
    error: Optional[str] = None


async def best_effort(
    operation: str,
    awaitable: Awaitable,
    *,
    task_id: Optional[str] = None,
) -> BestEffortResult:
    """Await a collaborator call, logging instead of raising on failure."""
    try:
        await awaitable
    except asyncio.CancelledError:
        raise
    except Exception as e:
        logger.warning(
            f"Best-effort {operation} failed for task {task_id}: {e}",
            extra={"operation": operation, "task_id": task_id},
        )
        return BestEffortResult(operation=operation, ok=False, error=str(e))
    return BestEffortResult(operation=operation, ok=True)


def spawn_best_effort(
    operation: str,
    awaitable: Awaitable,
    *,
    task_id: Optional[str] = None,
) -> asyncio.Task:
    """Schedule ``best_effort`` on the running loop without awaiting it."""
    task = asyncio.ensure_future(best_effort(operation, awaitable, task_id=task_id))
    _pending.add(task)
    task.add_done_callback(_pending.discard)
    return task


async def drain_pending(timeout: float = 5.0) -> None:
    """Wait for outstanding fire-and-forget operations (used at shutdown)."""
    if not _pending:
        return
    await asyncio.wait(set(_pending), timeout=timeout)
