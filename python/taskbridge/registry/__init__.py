from taskbridge.registry.task_registry import TaskRegistry

__all__ = ["TaskRegistry"]
