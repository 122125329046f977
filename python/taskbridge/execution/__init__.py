from taskbridge.execution.execution_manager import ExecutionConfig, ExecutionManager

__all__ = ["ExecutionConfig", "ExecutionManager"]
