"""Tests for the Letta-backed workspace store (taskbridge/workspace/workspace_manager.py)."""

import json
from typing import Any, Dict, List

import pytest

from taskbridge.exceptions import LettaAPIError, WorkspaceConflictError, WorkspaceNotFoundError
from taskbridge.models.workspace import (
    CreateWorkspaceRequest,
    UpdateWorkspaceRequest,
    WorkspaceArtifact,
    WorkspaceEvent,
)
from taskbridge.workspace import WorkspaceManager
from taskbridge.workspace.workspace_manager import WORKSPACE_DESCRIPTION, workspace_label


class FakeLetta:
    """Just enough of LettaClient for the workspace manager."""

    def __init__(self):
        self.blocks: Dict[str, Dict[str, Any]] = {}
        self.attached: Dict[str, List[str]] = {}
        self.conflicts = 0
        self.fail_attach = False
        self.fail_detach = False
        self.writes = 0

    async def create_memory_block(self, label, value, description="", limit=None):
        block_id = f"block-{len(self.blocks) + 1}"
        self.blocks[block_id] = {
            "id": block_id,
            "label": label,
            "value": value,
            "description": description,
            "limit": limit,
        }
        return self.blocks[block_id]

    async def attach_memory_block(self, agent_id, block_id):
        if self.fail_attach:
            raise LettaAPIError("attach failed", status=500)
        self.attached.setdefault(agent_id, []).append(block_id)

    async def detach_memory_block(self, agent_id, block_id):
        if self.fail_detach:
            raise LettaAPIError("detach failed", status=500)
        self.attached[agent_id].remove(block_id)

    async def list_memory_blocks(self, agent_id):
        return [self.blocks[b] for b in self.attached.get(agent_id, [])]

    async def update_memory_block(self, block_id, value):
        if self.conflicts:
            self.conflicts -= 1
            raise WorkspaceConflictError("conflict")
        self.writes += 1
        self.blocks[block_id]["value"] = value
        return self.blocks[block_id]


@pytest.fixture
def letta():
    return FakeLetta()


@pytest.fixture
def manager(letta):
    return WorkspaceManager(letta, max_events=3, block_limit=50000, update_retries=2, retry_base_seconds=0)


async def _create(manager, task_id="task-1"):
    block_id, _ = await manager.create_workspace_block(
        CreateWorkspaceRequest(task_id=task_id, agent_id="agent-a", metadata={"k": "v"})
    )
    return block_id


# --- Creation ---


async def test_create_attaches_labelled_block(manager, letta):
    block_id, workspace = await manager.create_workspace_block(
        CreateWorkspaceRequest(task_id="task-1", agent_id="agent-a")
    )

    stored = letta.blocks[block_id]
    assert stored["label"] == workspace_label("task-1") == "opencode_workspace_task-1"
    assert stored["description"] == WORKSPACE_DESCRIPTION
    assert stored["limit"] == 50000
    assert letta.attached["agent-a"] == [block_id]

    document = json.loads(stored["value"])
    assert document["version"] == "1.0.0"
    assert document["status"] == "pending"
    assert document["events"] == []
    assert workspace.task_id == "task-1"


async def test_attach_failure_propagates(manager, letta):
    letta.fail_attach = True
    with pytest.raises(LettaAPIError):
        await _create(manager)


# --- Updates ---


async def test_update_appends_and_merges(manager, letta):
    block_id = await _create(manager)
    await manager.update_workspace(
        "agent-a",
        block_id,
        UpdateWorkspaceRequest(
            status="running",
            events=[WorkspaceEvent(type="task_started", message="go")],
            metadata={"extra": 1},
        ),
    )
    await manager.record_artifact(
        "agent-a", block_id, WorkspaceArtifact(type="output", name="out", content="done")
    )

    workspace = await manager.get_workspace("agent-a", block_id)
    assert workspace.status == "running"
    assert [e.type for e in workspace.events] == ["task_started"]
    assert workspace.artifacts[0].name == "out"
    assert workspace.metadata == {"k": "v", "extra": 1}


async def test_conflict_is_retried(manager, letta):
    block_id = await _create(manager)
    letta.conflicts = 2

    await manager.append_event("agent-a", block_id, WorkspaceEvent(type="task_progress", message="p"))

    assert letta.writes == 1
    workspace = await manager.get_workspace("agent-a", block_id)
    assert len(workspace.events) == 1


async def test_conflict_gives_up_after_retries(manager, letta):
    block_id = await _create(manager)
    letta.conflicts = 10

    with pytest.raises(WorkspaceConflictError):
        await manager.append_event("agent-a", block_id, WorkspaceEvent(type="task_progress", message="p"))
    # one attempt plus two retries
    assert letta.conflicts == 7


async def test_events_are_pruned_with_notice(manager):
    block_id = await _create(manager)
    events = [WorkspaceEvent(type="task_progress", message=f"e{i}") for i in range(5)]
    await manager.update_workspace("agent-a", block_id, UpdateWorkspaceRequest(events=events))

    workspace = await manager.get_workspace("agent-a", block_id)
    assert [e.message for e in workspace.events[1:]] == ["e2", "e3", "e4"]
    assert workspace.events[0].message == "[System: Pruned 2 older events to stay within 3 event limit]"


# --- Reads & release ---


async def test_get_unknown_block_raises(manager):
    with pytest.raises(WorkspaceNotFoundError):
        await manager.get_workspace("agent-a", "nope")


async def test_find_by_task_id(manager):
    await _create(manager, "task-1")
    block_id = await _create(manager, "task-2")

    found = await manager.find_workspace_by_task_id("agent-a", "task-2")
    assert found is not None
    assert found[0] == block_id
    assert await manager.find_workspace_by_task_id("agent-a", "task-3") is None


async def test_detach_failure_is_swallowed(manager, letta):
    block_id = await _create(manager)
    letta.fail_detach = True
    await manager.detach_workspace_block("agent-a", block_id)
    assert letta.attached["agent-a"] == [block_id]
