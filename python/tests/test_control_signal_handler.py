"""Tests for cancel / pause / resume (taskbridge/control/signal_handler.py)."""

import pytest

from taskbridge.models.chat import ChatEventKind, RoomInfo
from taskbridge.models.control import ControlSignal, ControlSignalRequest
from taskbridge.models.task import TaskStatus
from taskbridge.models.workspace import CreateWorkspaceRequest


async def _task(registry, workspace, status=TaskStatus.RUNNING, task_id="task-1"):
    registry.register(task_id, "agent-a")
    block_id, _ = await workspace.create_workspace_block(
        CreateWorkspaceRequest(task_id=task_id, agent_id="agent-a")
    )
    registry.update_status(task_id, status, workspace_block_id=block_id)
    return block_id


def _request(signal, task_id="task-1", reason=None):
    return ControlSignalRequest(
        task_id=task_id, signal=signal, requested_by="agent-a", reason=reason
    )


# --- Legality ---


@pytest.mark.parametrize(
    "signal,status,allowed",
    [
        (ControlSignal.CANCEL, TaskStatus.QUEUED, True),
        (ControlSignal.CANCEL, TaskStatus.RUNNING, True),
        (ControlSignal.CANCEL, TaskStatus.PAUSED, True),
        (ControlSignal.CANCEL, TaskStatus.TIMEOUT, True),
        (ControlSignal.CANCEL, TaskStatus.COMPLETED, False),
        (ControlSignal.CANCEL, TaskStatus.FAILED, False),
        (ControlSignal.CANCEL, TaskStatus.CANCELLED, False),
        (ControlSignal.PAUSE, TaskStatus.RUNNING, True),
        (ControlSignal.PAUSE, TaskStatus.QUEUED, False),
        (ControlSignal.PAUSE, TaskStatus.PAUSED, False),
        (ControlSignal.RESUME, TaskStatus.PAUSED, True),
        (ControlSignal.RESUME, TaskStatus.RUNNING, False),
    ],
)
async def test_transition_table(control, registry, workspace, signal, status, allowed):
    await _task(registry, workspace, status)
    result = await control.handle_control_signal(_request(signal))
    assert result.success is allowed
    assert result.previous_status == status
    if not allowed:
        assert registry.get_task("task-1").status == status


async def test_pause_queued_task_is_rejected(control, registry, workspace, execution):
    await _task(registry, workspace, TaskStatus.QUEUED)
    result = await control.handle_control_signal(_request(ControlSignal.PAUSE))

    assert result.success is False
    assert result.error == "Cannot pause task with status: queued"
    assert execution.control_calls == []


async def test_unknown_task(control):
    result = await control.handle_control_signal(_request(ControlSignal.CANCEL, task_id="nope"))
    assert result.success is False
    assert result.error == "Task not found in registry"
    assert result.to_dict() == {
        "success": False,
        "task_id": "nope",
        "signal": "cancel",
        "error": "Task not found in registry",
    }


# --- Backend interaction ---


async def test_backend_refusal_leaves_registry_unchanged(control, registry, workspace, execution):
    await _task(registry, workspace, TaskStatus.RUNNING)
    execution.pause_result = False

    result = await control.handle_control_signal(_request(ControlSignal.PAUSE))

    assert result.success is False
    assert result.error == "Failed to pause task execution"
    assert registry.get_task("task-1").status == TaskStatus.RUNNING


async def test_cancel_of_inactive_task_counts_as_applied(control, registry, workspace, execution):
    await _task(registry, workspace, TaskStatus.QUEUED)
    execution.cancel_result = False

    result = await control.handle_control_signal(_request(ControlSignal.CANCEL))

    assert result.success is True
    entry = registry.get_task("task-1")
    assert entry.status == TaskStatus.CANCELLED
    assert entry.completed_at is not None


async def test_cancel_refused_while_active_fails(control, registry, workspace, execution):
    await _task(registry, workspace, TaskStatus.RUNNING)
    execution.cancel_result = False
    execution.active.add("task-1")

    result = await control.handle_control_signal(_request(ControlSignal.CANCEL))

    assert result.success is False
    assert registry.get_task("task-1").status == TaskStatus.RUNNING


async def test_backend_exception_is_a_failed_result(control, registry, workspace, execution):
    await _task(registry, workspace, TaskStatus.PAUSED)

    async def _explode(task_id):
        raise RuntimeError("docker daemon gone")

    execution.resume_task = _explode
    result = await control.handle_control_signal(_request(ControlSignal.RESUME))

    assert result.success is False
    assert result.error == "Failed to resume task execution"


# --- Side channels ---


async def test_success_mirrors_workspace_and_chat(control, registry, workspace, chat):
    block_id = await _task(registry, workspace, TaskStatus.RUNNING)
    registry.set_chat_room("task-1", RoomInfo(room_id="!r:x", task_id="task-1"))

    result = await control.handle_control_signal(
        _request(ControlSignal.PAUSE, reason="waiting on review")
    )

    assert result.to_dict()["new_status"] == "paused"
    block = workspace.blocks[block_id]
    assert block.status == "paused"
    assert block.events[-1].type == "task_paused"
    assert block.events[-1].message == "waiting on review"
    assert block.events[-1].data == {"requested_by": "agent-a"}
    assert chat.updates == [("!r:x", "task-1", "Task paused", ChatEventKind.STATUS_CHANGE)]


async def test_workspace_failure_does_not_undo_transition(control, registry, workspace):
    await _task(registry, workspace, TaskStatus.RUNNING)
    workspace.fail_updates = RuntimeError("letta down")

    result = await control.handle_control_signal(_request(ControlSignal.CANCEL))

    assert result.success is True
    assert registry.get_task("task-1").status == TaskStatus.CANCELLED


async def test_default_reason_message(control, registry, workspace):
    block_id = await _task(registry, workspace, TaskStatus.PAUSED)
    await control.handle_control_signal(_request(ControlSignal.RESUME))
    assert workspace.blocks[block_id].events[-1].message == "Task resumed by control signal"
