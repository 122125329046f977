"""Dependency injection container for the task bridge.

Services are created lazily from Settings on first access. Chat and the
OpenCode server are only wired when enabled in the settings.
"""

import logging
from typing import Any, Dict, Optional

from taskbridge.config.settings import Settings, get_settings
from taskbridge.exceptions import ConfigurationError

logger = logging.getLogger(__name__)


class TaskBridgeContainer:
    """Central service container for the bridge."""

    def __init__(self, settings: Optional[Settings] = None) -> None:
        self.settings = settings or get_settings()
        self._letta = None
        self._workspace = None
        self._opencode = None
        self._execution = None
        self._registry = None
        self._matrix = None
        self._chat = None
        self._control = None
        self._orchestrator = None
        self._router = None
        self._tools = None
        self._started = False

    # ── Collaborators ────────────────────────────────────────────────

    @property
    def letta(self):
        if self._letta is None:
            from taskbridge.clients.letta_client import LettaClient
            self._letta = LettaClient(
                base_url=self.settings.letta_api_url,
                token=self.settings.letta_api_token or None,
                timeout_seconds=self.settings.letta_timeout_seconds,
            )
        return self._letta

    @property
    def workspace(self):
        if self._workspace is None:
            from taskbridge.workspace import WorkspaceManager
            self._workspace = WorkspaceManager(
                self.letta,
                max_events=self.settings.workspace_max_events,
                block_limit=self.settings.workspace_block_limit,
                update_retries=self.settings.workspace_update_retries,
            )
        return self._workspace

    @property
    def execution(self):
        if self._execution is None:
            from taskbridge.execution import ExecutionConfig, ExecutionManager
            s = self.settings
            if s.opencode_server_enabled and self._opencode is None:
                if not s.opencode_server_url:
                    raise ConfigurationError("OPENCODE_SERVER_URL is required when the OpenCode server is enabled")
                from taskbridge.clients.opencode_client import OpenCodeClient
                self._opencode = OpenCodeClient(s.opencode_server_url)
            self._execution = ExecutionManager(
                ExecutionConfig(
                    timeout_ms=s.runner_timeout_ms,
                    image=s.runner_image,
                    cpu_limit=s.runner_cpu_limit,
                    memory_limit=s.runner_memory_limit,
                    grace_period_ms=s.runner_grace_period_ms,
                    workspace_dir=s.workspace_dir,
                ),
                opencode=self._opencode,
            )
        return self._execution

    @property
    def matrix(self):
        if self._matrix is None and self.settings.matrix_enabled:
            s = self.settings
            missing = [
                name
                for name, value in (
                    ("MATRIX_HOMESERVER_URL", s.matrix_homeserver_url),
                    ("MATRIX_ACCESS_TOKEN", s.matrix_access_token),
                    ("MATRIX_USER_ID", s.matrix_user_id),
                )
                if not value
            ]
            if missing:
                raise ConfigurationError(
                    f"Matrix is enabled but {', '.join(missing)} not set",
                    details={"missing": missing},
                )
            from taskbridge.clients.matrix_client import MatrixClient
            self._matrix = MatrixClient(s.matrix_homeserver_url, s.matrix_access_token, s.matrix_user_id)
        return self._matrix

    @property
    def chat(self):
        if self._chat is None and self.matrix is not None:
            from taskbridge.chat import MatrixRoomManager
            self._chat = MatrixRoomManager(self.matrix)
            logger.info("Matrix task rooms enabled")
        return self._chat

    # ── Core ─────────────────────────────────────────────────────────

    @property
    def registry(self):
        if self._registry is None:
            from taskbridge.registry import TaskRegistry
            self._registry = TaskRegistry(self.settings.task_queue_config())
        return self._registry

    @property
    def control(self):
        if self._control is None:
            from taskbridge.control import ControlSignalHandler
            self._control = ControlSignalHandler(self.registry, self.execution, self.workspace, self.chat)
        return self._control

    @property
    def orchestrator(self):
        if self._orchestrator is None:
            from taskbridge.orchestration import TaskExecutionOrchestrator
            s = self.settings
            self._orchestrator = TaskExecutionOrchestrator(
                self.registry,
                self.execution,
                self.workspace,
                self.letta,
                self.chat,
                default_observers=s.default_observers(),
                response_timeout_seconds=s.response_timeout_seconds,
                release_delay_seconds=s.workspace_release_delay_seconds,
                output_preview_chars=s.output_preview_chars,
                notification_preview_chars=s.notification_preview_chars,
            )
        return self._orchestrator

    @property
    def router(self):
        if self._router is None and self.matrix is not None:
            from taskbridge.chat import MatrixMessageRouter
            self._router = MatrixMessageRouter(self.matrix, self.registry, self.workspace, self.control)
        return self._router

    @property
    def tools(self):
        if self._tools is None:
            from taskbridge.tools import ToolDependencies
            self._tools = ToolDependencies(
                registry=self.registry,
                workspace=self.workspace,
                execution=self.execution,
                orchestrator=self.orchestrator,
                control=self.control,
                chat=self.chat,
            )
        return self._tools

    # ── Lifecycle ────────────────────────────────────────────────────

    async def start(self) -> None:
        if self._started:
            return
        await self.registry.start()
        opencode = self.execution.opencode
        if opencode is not None and not await opencode.is_healthy():
            logger.warning(f"OpenCode server at {opencode.base_url} is not reachable")
        if self.router is not None:
            await self.router.start()
        self._started = True
        logger.info("Task bridge started")

    async def shutdown(self) -> None:
        if self._router is not None:
            await self._router.stop()
        if self._orchestrator is not None:
            await self._orchestrator.shutdown()
        if self._registry is not None:
            await self._registry.stop()
        if self._execution is not None:
            await self._execution.cleanup()
        elif self._opencode is not None:
            await self._opencode.close()
        if self._matrix is not None:
            await self._matrix.close()
        if self._letta is not None:
            await self._letta.close()
        self._started = False
        logger.info("Task bridge stopped")

    def status(self) -> Dict[str, Any]:
        """Report which services are initialized."""
        return {
            "letta": self._letta is not None,
            "workspace": self._workspace is not None,
            "execution": self._execution is not None,
            "opencode": self._opencode is not None,
            "registry": self._registry is not None,
            "chat": self._chat is not None,
            "control": self._control is not None,
            "orchestrator": self._orchestrator is not None,
            "router": self._router is not None,
            "started": self._started,
        }


# Global container
_container: Optional[TaskBridgeContainer] = None


def get_container() -> TaskBridgeContainer:
    global _container
    if _container is None:
        _container = TaskBridgeContainer()
    return _container


async def shutdown_container() -> None:
    global _container
    if _container is not None:
        await _container.shutdown()
    _container = None
