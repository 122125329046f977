"""Tests for the MCP tool handlers (taskbridge/tools/)."""

import asyncio

import pytest

from taskbridge.exceptions import (
    ChannelNotFoundError,
    CoordinationDisabledError,
    InvalidTaskStateError,
    TaskNotFoundError,
    ValidationError,
)
from taskbridge.models.chat import ChatEventKind, RoomInfo
from taskbridge.models.control import ControlSignal
from taskbridge.models.task import TaskStatus
from taskbridge.models.workspace import CreateWorkspaceRequest, WorkspaceEvent
from taskbridge.tools import schemas
from taskbridge.tools.coordination import (
    get_task_channel,
    list_task_channels,
    send_task_control,
    send_task_update,
    task_control,
)
from taskbridge.tools.execute_task import execute_task
from taskbridge.tools.file_access import get_task_files, read_task_file
from taskbridge.tools.observers import add_task_observer, list_task_observers, remove_task_observer
from taskbridge.tools.task_archive import archive_task_conversation, get_task_history
from taskbridge.tools.task_messages import send_runtime_update, send_task_feedback, send_task_message
from taskbridge.tools.task_status import get_task_status, health

ROOM = "!room:example.org"


async def _seed(registry, workspace, status=TaskStatus.RUNNING, task_id="task-1", room=True):
    registry.register(task_id, "agent-a")
    block_id, _ = await workspace.create_workspace_block(
        CreateWorkspaceRequest(task_id=task_id, agent_id="agent-a")
    )
    registry.update_status(task_id, status, workspace_block_id=block_id)
    if room:
        registry.set_chat_room(task_id, RoomInfo(room_id=f"{ROOM}-{task_id}", task_id=task_id))
    return block_id


# --- execute_task / status ---


async def test_execute_task_delegates_to_orchestrator(deps, wait_for_run):
    response = await execute_task(
        schemas.ExecuteTaskParams(agent_id="agent-a", task_description="x"), deps
    )
    assert response["status"] == "queued"
    await wait_for_run(deps.orchestrator, response["task_id"])


async def test_get_task_status_lists_last_five_events(deps, registry, workspace):
    block_id = await _seed(registry, workspace)
    for i in range(7):
        await workspace.append_event("agent-a", block_id, WorkspaceEvent(type="task_progress", message=f"e{i}"))

    status = await get_task_status(schemas.TaskIdParams(task_id="task-1"), deps)

    assert status["status"] == "running"
    assert status["started_at"] is not None
    assert [e["message"] for e in status["recent_events"]] == ["e2", "e3", "e4", "e5", "e6"]


async def test_get_task_status_tolerates_workspace_failure(deps, registry, workspace):
    await _seed(registry, workspace)
    workspace.blocks.clear()
    status = await get_task_status(schemas.TaskIdParams(task_id="task-1"), deps)
    assert status["recent_events"] == []


async def test_get_task_status_unknown(deps):
    with pytest.raises(TaskNotFoundError):
        await get_task_status(schemas.TaskIdParams(task_id="nope"), deps)


async def test_health(deps, registry, workspace):
    await _seed(registry, workspace)
    report = await health(schemas.EmptyParams(), deps)
    assert report["status"] == "healthy"
    assert report["metrics"]["running_tasks"] == 1
    assert report["metrics"]["can_accept_task"] is True
    assert report["chat_enabled"] is True


# --- History & archive ---


async def test_history_with_artifacts(deps, registry, workspace):
    await _seed(registry, workspace, TaskStatus.COMPLETED)
    history = await get_task_history(
        schemas.GetTaskHistoryParams(task_id="task-1", include_artifacts=True), deps
    )
    assert history["status"] == "completed"
    assert history["artifacts"] == []


async def test_archive_requires_finished_task(deps, registry, workspace):
    await _seed(registry, workspace, TaskStatus.RUNNING)
    with pytest.raises(InvalidTaskStateError):
        await archive_task_conversation(schemas.ArchiveTaskConversationParams(task_id="task-1"), deps)


async def test_archive_after_room_closed(deps, registry, workspace, chat):
    block_id = await _seed(registry, workspace, TaskStatus.COMPLETED)
    registry.clear_chat_room("task-1")

    result = await archive_task_conversation(
        schemas.ArchiveTaskConversationParams(task_id="task-1", summary="shipped"), deps
    )

    assert result["channel_id"] == f"{ROOM}-task-1"
    assert result["archive_location"] == block_id
    assert chat.archived == [f"{ROOM}-task-1"]
    last = workspace.blocks[block_id].events[-1]
    assert (last.type, last.message) == ("task_message", "shipped")


async def test_archive_without_any_room(deps, registry, workspace):
    await _seed(registry, workspace, TaskStatus.COMPLETED, room=False)
    with pytest.raises(ChannelNotFoundError):
        await archive_task_conversation(schemas.ArchiveTaskConversationParams(task_id="task-1"), deps)


# --- Messages ---


@pytest.mark.parametrize(
    "message_type,event_type",
    [
        ("update", "task_progress"),
        ("feedback", "task_feedback"),
        ("approval", "task_feedback"),
        ("requirement_change", "task_runtime_update"),
    ],
)
async def test_send_task_message_maps_type(deps, registry, workspace, chat, message_type, event_type):
    block_id = await _seed(registry, workspace)
    result = await send_task_message(
        schemas.SendTaskMessageParams(task_id="task-1", message="hi", message_type=message_type), deps
    )

    event = workspace.blocks[block_id].events[-1]
    assert event.type == event_type
    assert event.data["message_id"] == result["message_id"]
    assert result["message_id"].startswith("msg-")
    assert chat.updates[-1] == (f"{ROOM}-task-1", "task-1", f"[{message_type}] hi", ChatEventKind.PROGRESS)


async def test_send_task_message_rejects_finished_task(deps, registry, workspace):
    await _seed(registry, workspace, TaskStatus.COMPLETED)
    with pytest.raises(InvalidTaskStateError) as exc:
        await send_task_message(schemas.SendTaskMessageParams(task_id="task-1", message="hi"), deps)
    assert str(exc.value) == "Cannot send message to task with status: completed"


async def test_feedback_and_runtime_shorthands(deps, registry, workspace):
    block_id = await _seed(registry, workspace, TaskStatus.PAUSED, room=False)
    await send_task_feedback(
        schemas.SendTaskFeedbackParams(task_id="task-1", feedback="tighter tests", feedback_type="correction"),
        deps,
    )
    await send_runtime_update(
        schemas.SendRuntimeUpdateParams(task_id="task-1", update="deadline moved"), deps
    )

    feedback, runtime = workspace.blocks[block_id].events[-2:]
    assert feedback.type == "task_feedback"
    assert feedback.data["feedback_type"] == "correction"
    assert runtime.type == "task_runtime_update"
    assert runtime.data["update_type"] == "context_change"


# --- Coordination ---


async def test_coordination_requires_chat(deps, registry, workspace):
    deps.chat = None
    with pytest.raises(CoordinationDisabledError):
        await list_task_channels(schemas.ListTaskChannelsParams(), deps)


async def test_list_channels_filters(deps, registry, workspace):
    await _seed(registry, workspace, TaskStatus.RUNNING, task_id="task-1")
    await _seed(registry, workspace, TaskStatus.COMPLETED, task_id="task-2")
    await _seed(registry, workspace, TaskStatus.RUNNING, task_id="task-3", room=False)

    open_only = await list_task_channels(schemas.ListTaskChannelsParams(), deps)
    everything = await list_task_channels(schemas.ListTaskChannelsParams(include_completed=True), deps)

    assert [c["task_id"] for c in open_only["channels"]] == ["task-1"]
    assert everything["total"] == 2


async def test_get_channel_by_channel_id(deps, registry, workspace):
    await _seed(registry, workspace)
    result = await get_task_channel(schemas.GetTaskChannelParams(channel_id=f"{ROOM}-task-1"), deps)
    assert result["channel"]["task_id"] == "task-1"


def test_get_channel_params_need_an_id():
    with pytest.raises(ValueError):
        schemas.GetTaskChannelParams()


async def test_send_update_without_room(deps, registry, workspace):
    await _seed(registry, workspace, room=False)
    with pytest.raises(ChannelNotFoundError):
        await send_task_update(schemas.SendTaskUpdateParams(task_id="task-1", message="x"), deps)


async def test_send_task_control_posts_to_room(deps, registry, workspace, chat):
    await _seed(registry, workspace)
    result = await send_task_control(
        schemas.SendTaskControlParams(task_id="task-1", control="pause", reason="lunch"), deps
    )
    assert result["control"] == "pause"
    assert chat.controls == [(f"{ROOM}-task-1", "task-1", ControlSignal.PAUSE, "lunch")]
    assert registry.get_task("task-1").status == TaskStatus.RUNNING


async def test_task_control_goes_through_handler(deps, registry, workspace):
    await _seed(registry, workspace, TaskStatus.QUEUED)
    result = await task_control(schemas.TaskControlParams(task_id="task-1", control="pause"), deps)
    assert result == {
        "success": False,
        "task_id": "task-1",
        "signal": "pause",
        "previous_status": "queued",
        "error": "Cannot pause task with status: queued",
    }


async def test_task_control_records_requester(deps, registry, workspace):
    block_id = await _seed(registry, workspace)
    result = await task_control(schemas.TaskControlParams(task_id="task-1", control="cancel"), deps)
    assert result["new_status"] == "cancelled"
    assert workspace.blocks[block_id].events[-1].data == {"requested_by": "mcp_client"}


# --- Observers ---


async def test_observer_lifecycle(deps, registry, workspace, chat):
    await _seed(registry, workspace)
    params = schemas.AddTaskObserverParams(task_id="task-1", observer_id="@dana:example.org")

    await add_task_observer(params, deps)
    listed = await list_task_observers(schemas.TaskIdParams(task_id="task-1"), deps)
    assert listed["observers"] == [{"id": "@dana:example.org", "type": "human", "role": "observer"}]
    assert chat.invited == [(f"{ROOM}-task-1", "@dana:example.org", True)]

    await remove_task_observer(
        schemas.RemoveTaskObserverParams(task_id="task-1", observer_id="@dana:example.org"), deps
    )
    listed = await list_task_observers(schemas.TaskIdParams(task_id="task-1"), deps)
    assert listed["observers"] == []


async def test_observer_id_must_be_matrix_id(deps, registry, workspace):
    await _seed(registry, workspace)
    with pytest.raises(ValidationError):
        await add_task_observer(schemas.AddTaskObserverParams(task_id="task-1", observer_id="dana"), deps)


async def test_observer_rejected_for_terminal_task(deps, registry, workspace):
    await _seed(registry, workspace, TaskStatus.TIMEOUT)
    with pytest.raises(InvalidTaskStateError):
        await add_task_observer(
            schemas.AddTaskObserverParams(task_id="task-1", observer_id="@dana:example.org"), deps
        )


# --- Files ---


async def test_file_access_requires_active_task(deps, registry, workspace):
    await _seed(registry, workspace, TaskStatus.COMPLETED)
    with pytest.raises(InvalidTaskStateError):
        await get_task_files(schemas.GetTaskFilesParams(task_id="task-1"), deps)


async def test_file_listing_and_reading(deps, registry, workspace, execution):
    await _seed(registry, workspace)
    execution.active.add("task-1")
    execution.files = ["src/a.py", "docs/readme.md"]
    execution.file_contents = {"src/a.py": "x = 1\n"}

    listing = await get_task_files(schemas.GetTaskFilesParams(task_id="task-1", path="src"), deps)
    content = await read_task_file(schemas.ReadTaskFileParams(task_id="task-1", file_path="src/a.py"), deps)

    assert listing["files"] == ["src/a.py"]
    assert content == {"task_id": "task-1", "file_path": "src/a.py", "content": "x = 1\n", "size": 6}
