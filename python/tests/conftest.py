"""Shared fixtures: in-memory fakes of the four collaborator protocols."""

import asyncio
from typing import Dict, List, Optional, Tuple

import pytest

from taskbridge.control import ControlSignalHandler
from taskbridge.exceptions import WorkspaceNotFoundError
from taskbridge.models.chat import (
    ArchiveInfo,
    ChatEventKind,
    CreateRoomRequest,
    Participant,
    ParticipantRole,
    ParticipantType,
    RoomInfo,
)
from taskbridge.models.control import ControlSignal
from taskbridge.models.execution import ExecutionRequest, ExecutionResult, ExecutionStatus
from taskbridge.models.task import TaskQueueConfig, now_ms
from taskbridge.models.workspace import (
    CreateWorkspaceRequest,
    UpdateWorkspaceRequest,
    WorkspaceArtifact,
    WorkspaceBlock,
    WorkspaceEvent,
)
from taskbridge.orchestration import TaskExecutionOrchestrator
from taskbridge.registry import TaskRegistry
from taskbridge.tools import ToolDependencies


# --- Fakes ---


class FakeWorkspaceStore:
    def __init__(self):
        self.blocks: Dict[str, WorkspaceBlock] = {}
        self.updates: List[Tuple[str, UpdateWorkspaceRequest]] = []
        self.detached: List[str] = []
        self.fail_create: Optional[Exception] = None
        self.fail_updates: Optional[Exception] = None
        self.create_gate: Optional[asyncio.Event] = None

    async def create_workspace_block(self, request: CreateWorkspaceRequest):
        if self.create_gate is not None:
            await self.create_gate.wait()
        if self.fail_create is not None:
            raise self.fail_create
        block_id = f"block-{request.task_id}"
        block = WorkspaceBlock(
            task_id=request.task_id, agent_id=request.agent_id, metadata=request.metadata
        )
        self.blocks[block_id] = block
        return block_id, block

    async def update_workspace(self, agent_id: str, block_id: str, update: UpdateWorkspaceRequest):
        if self.fail_updates is not None:
            raise self.fail_updates
        block = await self.get_workspace(agent_id, block_id)
        self.updates.append((block_id, update))
        if update.status is not None:
            block.status = update.status
        block.events.extend(update.events)
        block.artifacts.extend(update.artifacts)
        block.updated_at = now_ms()
        return block

    async def get_workspace(self, agent_id: str, block_id: str) -> WorkspaceBlock:
        block = self.blocks.get(block_id)
        if block is None:
            raise WorkspaceNotFoundError(f"Workspace block {block_id} not found")
        return block

    async def append_event(self, agent_id: str, block_id: str, event: WorkspaceEvent):
        return await self.update_workspace(agent_id, block_id, UpdateWorkspaceRequest(events=[event]))

    async def record_artifact(self, agent_id: str, block_id: str, artifact: WorkspaceArtifact):
        return await self.update_workspace(
            agent_id, block_id, UpdateWorkspaceRequest(artifacts=[artifact])
        )

    async def find_workspace_by_task_id(self, agent_id: str, task_id: str):
        for block_id, block in self.blocks.items():
            if block.task_id == task_id:
                return block_id, block
        return None

    async def detach_workspace_block(self, agent_id: str, block_id: str) -> None:
        self.detached.append(block_id)

    def event_types(self, block_id: str) -> List[str]:
        return [e.type for e in self.blocks[block_id].events]


class FakeExecutionBackend:
    """Returns ``result`` after ``gate`` is set (immediately when no gate)."""

    def __init__(self):
        self.result: Optional[ExecutionResult] = None
        self.error: Optional[Exception] = None
        self.emit: List = []
        self.gate: Optional[asyncio.Event] = None
        self.requests: List[ExecutionRequest] = []
        self.active: set = set()
        self.files: List[str] = []
        self.file_contents: Dict[str, str] = {}
        self.cancel_result = True
        self.pause_result = True
        self.resume_result = True
        self.control_calls: List[Tuple[str, str]] = []

    async def execute(self, request: ExecutionRequest, on_event=None) -> ExecutionResult:
        self.requests.append(request)
        self.active.add(request.task_id)
        try:
            for event in self.emit:
                if on_event is not None:
                    on_event(event)
            if self.gate is not None:
                await self.gate.wait()
            if self.error is not None:
                raise self.error
            return self.result or ExecutionResult(
                task_id=request.task_id,
                status=ExecutionStatus.SUCCESS,
                output="all done",
                exit_code=0,
                duration_ms=12,
            )
        finally:
            self.active.discard(request.task_id)

    async def cancel_task(self, task_id: str) -> bool:
        self.control_calls.append(("cancel", task_id))
        return self.cancel_result

    async def pause_task(self, task_id: str) -> bool:
        self.control_calls.append(("pause", task_id))
        return self.pause_result

    async def resume_task(self, task_id: str) -> bool:
        self.control_calls.append(("resume", task_id))
        return self.resume_result

    def is_task_active(self, task_id: str) -> bool:
        return task_id in self.active

    async def get_task_files(self, task_id: str) -> List[str]:
        return list(self.files)

    async def read_task_file(self, task_id: str, path: str) -> str:
        return self.file_contents[path]


class FakeChatSink:
    def __init__(self):
        self.rooms: Dict[str, RoomInfo] = {}
        self.updates: List[Tuple[str, str, str, ChatEventKind]] = []
        self.closed: List[Tuple[str, str, str]] = []
        self.archived: List[str] = []
        self.controls: List[Tuple[str, str, ControlSignal, Optional[str]]] = []
        self.invited: List[Tuple[str, str, bool]] = []
        self.removed: List[Tuple[str, str]] = []
        self.fail_create: Optional[Exception] = None
        self.fail_close: Optional[Exception] = None
        self.create_gate: Optional[asyncio.Event] = None
        self.fail_updates: Optional[Exception] = None

    async def create_task_room(self, request: CreateRoomRequest) -> RoomInfo:
        if self.create_gate is not None:
            await self.create_gate.wait()
        if self.fail_create is not None:
            raise self.fail_create
        participants = [
            Participant(request.calling_agent_id, ParticipantType.AGENT, ParticipantRole.CALLING_AGENT)
        ] + [
            Participant(o, ParticipantType.HUMAN, ParticipantRole.OBSERVER)
            for o in request.human_observers
        ]
        room = RoomInfo(room_id=f"!room-{request.task_id}:example.org", task_id=request.task_id,
                        participants=participants)
        self.rooms[room.room_id] = room
        return room

    async def close_task_room(self, room_id: str, task_id: str, summary: str) -> None:
        if self.fail_close is not None:
            raise self.fail_close
        self.closed.append((room_id, task_id, summary))

    async def archive_task_room(self, room_id: str, task_id: str) -> ArchiveInfo:
        self.archived.append(room_id)
        return ArchiveInfo(room_id=room_id, task_id=task_id)

    async def send_task_update(self, room_id: str, task_id: str, message: str, kind: ChatEventKind) -> None:
        if self.fail_updates is not None:
            raise self.fail_updates
        self.updates.append((room_id, task_id, message, kind))

    async def send_control_signal(self, room_id, task_id, signal, reason=None) -> None:
        self.controls.append((room_id, task_id, signal, reason))

    async def invite_to_room(self, room_id: str, user_id: str, read_only: bool = True) -> None:
        self.invited.append((room_id, user_id, read_only))

    async def remove_from_room(self, room_id: str, user_id: str) -> None:
        self.removed.append((room_id, user_id))


class FakeNotifier:
    def __init__(self):
        self.messages: List[Tuple[str, str, str]] = []
        self.fail: Optional[Exception] = None

    async def send_message(self, agent_id: str, role: str, content: str):
        if self.fail is not None:
            raise self.fail
        self.messages.append((agent_id, role, content))


# --- Fixtures ---


@pytest.fixture
def queue_config():
    return TaskQueueConfig(max_concurrent_tasks=2, idempotency_window_ms=60_000)


@pytest.fixture
def registry(queue_config):
    return TaskRegistry(queue_config)


@pytest.fixture
def workspace():
    return FakeWorkspaceStore()


@pytest.fixture
def execution():
    return FakeExecutionBackend()


@pytest.fixture
def chat():
    return FakeChatSink()


@pytest.fixture
def notifier():
    return FakeNotifier()


@pytest.fixture
async def orchestrator(registry, execution, workspace, notifier, chat):
    orch = TaskExecutionOrchestrator(
        registry,
        execution,
        workspace,
        notifier,
        chat,
        default_observers=["@ops:example.org"],
        response_timeout_seconds=0.2,
        release_delay_seconds=0,
    )
    yield orch
    await orch.shutdown(timeout=1.0)


@pytest.fixture
def control(registry, execution, workspace, chat):
    return ControlSignalHandler(registry, execution, workspace, chat)


@pytest.fixture
def deps(registry, workspace, execution, orchestrator, control, chat):
    return ToolDependencies(
        registry=registry,
        workspace=workspace,
        execution=execution,
        orchestrator=orchestrator,
        control=control,
        chat=chat,
    )


@pytest.fixture
def wait_for_run():
    """Wait until the background run of a task has finished."""

    async def _wait(orchestrator: TaskExecutionOrchestrator, task_id: str) -> None:
        run = orchestrator._runs.get(task_id)
        if run is not None:
            await asyncio.wait({run}, timeout=2.0)
        # let fire-and-forget mirrors and the release timer run
        for _ in range(5):
            await asyncio.sleep(0)

    return _wait
