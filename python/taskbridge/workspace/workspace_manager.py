"""
Workspace store backed by Letta memory blocks.

Each task gets one JSON document stored in a memory block labelled
``opencode_workspace_<task_id>`` and attached to the requesting agent, so the
agent sees task progress in its core memory. Updates are read-modify-write
and are retried on store conflicts.
"""

import json
import logging
from typing import Any, Dict, List, Optional, Tuple

from tenacity import (
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
    wait_random,
)

from taskbridge.clients.letta_client import LettaClient
from taskbridge.exceptions import WorkspaceConflictError, WorkspaceNotFoundError
from taskbridge.models.task import now_ms
from taskbridge.models.workspace import (
    CreateWorkspaceRequest,
    UpdateWorkspaceRequest,
    WorkspaceArtifact,
    WorkspaceBlock,
    WorkspaceEvent,
    WorkspaceEventType,
)

logger = logging.getLogger(__name__)

WORKSPACE_LABEL = "opencode_workspace"
WORKSPACE_DESCRIPTION = (
    "Task execution workspace. Monitor 'status' for the current state "
    "(pending/running/completed/failed/timeout). 'events' holds chronological "
    "task progress (most recent last). 'artifacts' holds task outputs. "
    "'updated_at' shows when it was last modified."
)


def workspace_label(task_id: str) -> str:
    return f"{WORKSPACE_LABEL}_{task_id}"


class WorkspaceManager:
    """IWorkspaceStore implementation over the Letta blocks API."""

    def __init__(
        self,
        letta: LettaClient,
        max_events: int = 50,
        block_limit: int = 50000,
        update_retries: int = 3,
        retry_base_seconds: float = 0.1,
    ):
        self.letta = letta
        self.max_events = max_events
        self.block_limit = block_limit
        self.update_retries = update_retries
        self.retry_base_seconds = retry_base_seconds

    # --- Creation ---

    async def create_workspace_block(
        self, request: CreateWorkspaceRequest
    ) -> Tuple[str, WorkspaceBlock]:
        workspace = WorkspaceBlock(
            task_id=request.task_id,
            agent_id=request.agent_id,
            metadata=request.metadata,
        )
        label = workspace_label(request.task_id)
        block = await self.letta.create_memory_block(
            label=label,
            value=json.dumps(workspace.to_dict()),
            description=WORKSPACE_DESCRIPTION,
            limit=self.block_limit,
        )
        block_id = block["id"]

        try:
            await self.letta.attach_memory_block(request.agent_id, block_id)
        except Exception as e:
            logger.error(
                f"Failed to attach memory block {block_id} to agent {request.agent_id}: {e}"
            )
            raise
        logger.info(f"Attached workspace {label} ({block_id}) to agent {request.agent_id}")
        return block_id, workspace

    # --- Updates ---

    async def update_workspace(
        self, agent_id: str, block_id: str, update: UpdateWorkspaceRequest
    ) -> WorkspaceBlock:
        """Apply an update, retrying with exponential backoff on conflicts."""

        @retry(
            stop=stop_after_attempt(self.update_retries + 1),
            wait=wait_exponential(multiplier=self.retry_base_seconds)
            + wait_random(0, self.retry_base_seconds / 2),
            retry=retry_if_exception_type(WorkspaceConflictError),
            reraise=True,
            before_sleep=lambda state: logger.warning(
                f"Conflict on workspace block {block_id}, "
                f"retry {state.attempt_number}/{self.update_retries}"
            ),
        )
        async def _apply() -> WorkspaceBlock:
            workspace = await self.get_workspace(agent_id, block_id)

            if update.status:
                workspace.status = update.status
            workspace.events.extend(update.events)
            workspace.artifacts.extend(update.artifacts)
            if update.metadata:
                workspace.metadata = {**(workspace.metadata or {}), **update.metadata}
            workspace.updated_at = now_ms()

            workspace = self._prune_events(workspace)
            serialized = json.dumps(workspace.to_dict())
            if len(serialized) > self.block_limit:
                logger.warning(
                    f"Workspace block {block_id} exceeds limit: "
                    f"{len(serialized)} > {self.block_limit} chars"
                )
            await self.letta.update_memory_block(block_id, serialized)
            return workspace

        return await _apply()

    def _prune_events(self, workspace: WorkspaceBlock) -> WorkspaceBlock:
        if len(workspace.events) <= self.max_events:
            return workspace
        pruned = len(workspace.events) - self.max_events
        notice = WorkspaceEvent(
            type=WorkspaceEventType.TASK_PROGRESS.value,
            message=(
                f"[System: Pruned {pruned} older events to stay within "
                f"{self.max_events} event limit]"
            ),
        )
        workspace.events = [notice] + workspace.events[-self.max_events:]
        return workspace

    async def append_event(self, agent_id: str, block_id: str, event: WorkspaceEvent) -> None:
        await self.update_workspace(agent_id, block_id, UpdateWorkspaceRequest(events=[event]))

    async def record_artifact(
        self, agent_id: str, block_id: str, artifact: WorkspaceArtifact
    ) -> None:
        await self.update_workspace(
            agent_id, block_id, UpdateWorkspaceRequest(artifacts=[artifact])
        )

    # --- Reads ---

    async def _list_blocks(self, agent_id: str) -> List[Dict[str, Any]]:
        return await self.letta.list_memory_blocks(agent_id) or []

    async def get_workspace(self, agent_id: str, block_id: str) -> WorkspaceBlock:
        for block in await self._list_blocks(agent_id):
            if block.get("id") == block_id:
                return WorkspaceBlock.from_dict(json.loads(block["value"]))
        raise WorkspaceNotFoundError(
            f"Workspace block {block_id} not found",
            details={"block_id": block_id, "agent_id": agent_id},
        )

    async def find_workspace_by_task_id(
        self, agent_id: str, task_id: str
    ) -> Optional[Tuple[str, WorkspaceBlock]]:
        for block in await self._list_blocks(agent_id):
            if block.get("label") not in (workspace_label(task_id), WORKSPACE_LABEL):
                continue
            try:
                workspace = WorkspaceBlock.from_dict(json.loads(block.get("value", "")))
            except (ValueError, KeyError):
                continue
            if workspace.task_id == task_id:
                return block["id"], workspace
        return None

    # --- Release ---

    async def detach_workspace_block(self, agent_id: str, block_id: str) -> None:
        try:
            await self.letta.detach_memory_block(agent_id, block_id)
        except Exception as e:
            logger.error(f"Failed to detach memory block {block_id} from agent {agent_id}: {e}")
