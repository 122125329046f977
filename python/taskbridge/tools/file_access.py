"""Read-only access to the files of a task that is still executing."""

from typing import Any, Dict

from taskbridge.exceptions import InvalidTaskStateError
from taskbridge.models.task import TaskRegistryEntry
from taskbridge.tools.deps import ToolDependencies
from taskbridge.tools.schemas import GetTaskFilesParams, ReadTaskFileParams


def _require_active(task: TaskRegistryEntry, deps: ToolDependencies, action: str) -> None:
    if not deps.execution.is_task_active(task.task_id):
        raise InvalidTaskStateError(
            f"Cannot {action} inactive task. Task status: {task.status.value}",
            details={"task_id": task.task_id, "status": task.status.value},
        )


async def get_task_files(params: GetTaskFilesParams, deps: ToolDependencies) -> Dict[str, Any]:
    task = deps.require_task(params.task_id)
    _require_active(task, deps, "list files for")

    files = await deps.execution.get_task_files(task.task_id)
    if params.path != "/":
        files = [f for f in files if f.startswith(params.path)]
    return {"task_id": task.task_id, "path": params.path, "files": files}


async def read_task_file(params: ReadTaskFileParams, deps: ToolDependencies) -> Dict[str, Any]:
    task = deps.require_task(params.task_id)
    _require_active(task, deps, "read files from")

    content = await deps.execution.read_task_file(task.task_id, params.file_path)
    return {
        "task_id": task.task_id,
        "file_path": params.file_path,
        "content": content,
        "size": len(content),
    }
