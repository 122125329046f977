from taskbridge.workspace.workspace_manager import WorkspaceManager, workspace_label

__all__ = ["WorkspaceManager", "workspace_label"]
