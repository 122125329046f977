"""Interface for the execution backend that actually runs a task.

The orchestrator only consumes this contract; process supervision,
sandboxing and health checks live behind it.
"""

from typing import Callable, List, Optional, Protocol

from taskbridge.models.events import ExecutionEvent
from taskbridge.models.execution import ExecutionRequest, ExecutionResult

EventCallback = Callable[[ExecutionEvent], None]


class IExecutionBackend(Protocol):
    """Runs tasks and reports a stream of execution events."""

    async def execute(
        self,
        request: ExecutionRequest,
        on_event: Optional[EventCallback] = None,
    ) -> ExecutionResult:
        """Run a task to a terminal result.

        Args:
            request: What to run and for how long
            on_event: Called synchronously for every event the backend emits

        Returns:
            Terminal result (success, error or timeout)
        """
        ...

    async def cancel_task(self, task_id: str) -> bool:
        """Stop a running task. Returns False if the backend refused."""
        ...

    async def pause_task(self, task_id: str) -> bool:
        ...

    async def resume_task(self, task_id: str) -> bool:
        ...

    def is_task_active(self, task_id: str) -> bool:
        """True while the backend still tracks the task as executing."""
        ...

    async def get_task_files(self, task_id: str) -> List[str]:
        ...

    async def read_task_file(self, task_id: str, path: str) -> str:
        ...
