"""Interface for the durable per-task workspace store."""

from typing import Optional, Protocol, Tuple

from taskbridge.models.workspace import (
    CreateWorkspaceRequest,
    UpdateWorkspaceRequest,
    WorkspaceArtifact,
    WorkspaceBlock,
    WorkspaceEvent,
)


class IWorkspaceStore(Protocol):
    """Key/value document store with append-only events and artifacts."""

    async def create_workspace_block(
        self, request: CreateWorkspaceRequest
    ) -> Tuple[str, WorkspaceBlock]:
        """Create and attach a workspace block.

        Returns:
            (block_id, initial workspace document)
        """
        ...

    async def update_workspace(
        self, agent_id: str, block_id: str, update: UpdateWorkspaceRequest
    ) -> WorkspaceBlock:
        """Apply status / appended events / appended artifacts."""
        ...

    async def get_workspace(self, agent_id: str, block_id: str) -> WorkspaceBlock:
        ...

    async def append_event(self, agent_id: str, block_id: str, event: WorkspaceEvent) -> None:
        ...

    async def record_artifact(
        self, agent_id: str, block_id: str, artifact: WorkspaceArtifact
    ) -> None:
        ...

    async def find_workspace_by_task_id(
        self, agent_id: str, task_id: str
    ) -> Optional[Tuple[str, WorkspaceBlock]]:
        ...

    async def detach_workspace_block(self, agent_id: str, block_id: str) -> None:
        """Remove the block from the agent's working set."""
        ...
