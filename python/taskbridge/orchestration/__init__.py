from taskbridge.orchestration.best_effort import BestEffortResult, best_effort, spawn_best_effort
from taskbridge.orchestration.task_executor import TaskExecutionOrchestrator

__all__ = [
    "BestEffortResult",
    "best_effort",
    "spawn_best_effort",
    "TaskExecutionOrchestrator",
]
