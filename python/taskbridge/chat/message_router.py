"""
Routes Matrix room traffic back into the bridge.

Messages posted in a task's room are recorded in that task's workspace so
the requesting agent sees human guidance. ``io.letta.control`` messages are
handed to the ControlSignalHandler with the sender as requester.
"""

import asyncio
import logging
from typing import Any, Dict, Optional

from taskbridge.clients.matrix_client import CONTROL_MSGTYPE, TASK_METADATA_KEY, MatrixClient
from taskbridge.control import ControlSignalHandler
from taskbridge.interfaces import IWorkspaceStore
from taskbridge.models.control import ControlSignal, ControlSignalRequest
from taskbridge.models.task import now_ms
from taskbridge.models.workspace import WorkspaceEvent, WorkspaceEventType
from taskbridge.registry import TaskRegistry

logger = logging.getLogger(__name__)

_VALID_SIGNALS = {s.value for s in ControlSignal}


class MatrixMessageRouter:
    """Consumes room timeline events from a sync loop it owns."""

    def __init__(
        self,
        client: MatrixClient,
        registry: TaskRegistry,
        workspace: IWorkspaceStore,
        control_handler: Optional[ControlSignalHandler] = None,
        sync_timeout_ms: int = 30000,
        error_backoff_seconds: float = 5.0,
    ):
        self.client = client
        self.registry = registry
        self.workspace = workspace
        self.control_handler = control_handler
        self.sync_timeout_ms = sync_timeout_ms
        self.error_backoff_seconds = error_backoff_seconds
        self._task: Optional[asyncio.Task] = None
        self._since: Optional[str] = None

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def start(self) -> None:
        if self.is_running:
            return
        self._task = asyncio.create_task(self._sync_loop())
        logger.info("Matrix message router started")

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
        logger.info("Matrix message router stopped")

    async def _sync_loop(self) -> None:
        # The first sync only establishes a position; earlier history is skipped.
        while self._since is None:
            try:
                initial = await self.client.sync(timeout_ms=0)
                self._since = initial.get("next_batch")
            except Exception as e:
                logger.error(f"Initial Matrix sync failed: {e}")
                await asyncio.sleep(self.error_backoff_seconds)

        while True:
            try:
                response = await self.client.sync(since=self._since, timeout_ms=self.sync_timeout_ms)
            except Exception as e:
                logger.error(f"Matrix sync failed: {e}")
                await asyncio.sleep(self.error_backoff_seconds)
                continue
            self._since = response.get("next_batch", self._since)
            await self.process_sync(response)

    async def process_sync(self, response: Dict[str, Any]) -> None:
        rooms = response.get("rooms", {})
        for room_id in rooms.get("invite", {}):
            try:
                await self.client.join_room(room_id)
            except Exception as e:
                logger.warning(f"Failed to join room {room_id}: {e}")

        for room_id, room in rooms.get("join", {}).items():
            for event in room.get("timeline", {}).get("events", []):
                if event.get("type") == "m.room.message":
                    await self.handle_event(room_id, event)

    async def handle_event(self, room_id: str, event: Dict[str, Any]) -> None:
        """Record or route a single room message. Failures are logged."""
        try:
            if event.get("sender") == self.client.user_id:
                return

            entry = self.registry.find_task_by_chat_room(room_id)
            if entry is None:
                return
            if not entry.workspace_block_id:
                logger.debug(f"Task {entry.task_id} has no workspace block; skipping event")
                return

            content = event.get("content", {})
            if content.get("msgtype") == CONTROL_MSGTYPE:
                await self._handle_control(entry.task_id, event)
                return

            metadata = content.get(TASK_METADATA_KEY)
            if not isinstance(metadata, dict):
                metadata = {}

            workspace_event = WorkspaceEvent(
                type=self._map_event_type(content, metadata),
                message=content.get("formatted_body") or content.get("body") or "",
                timestamp=event.get("origin_server_ts") or now_ms(),
                data={
                    "chat_event_id": event.get("event_id"),
                    "chat_room_id": room_id,
                    "sender": event.get("sender"),
                    "msgtype": content.get("msgtype"),
                    **metadata,
                },
            )
            await self.workspace.append_event(
                entry.agent_id, entry.workspace_block_id, workspace_event
            )
            logger.debug(f"Recorded chat event {event.get('event_id')} for task {entry.task_id}")
        except Exception as e:
            logger.error(f"Failed to process chat event in room {room_id}: {e}", exc_info=True)

    async def _handle_control(self, task_id: str, event: Dict[str, Any]) -> None:
        if self.control_handler is None:
            logger.debug(f"No control handler configured; ignoring signal for task {task_id}")
            return

        metadata = event.get("content", {}).get(TASK_METADATA_KEY) or {}
        signal = metadata.get("control") or metadata.get("control_signal")
        if signal not in _VALID_SIGNALS:
            logger.warning(f"Invalid control signal {signal!r} for task {task_id}")
            return

        result = await self.control_handler.handle_control_signal(
            ControlSignalRequest(
                task_id=task_id,
                signal=ControlSignal(signal),
                requested_by=event.get("sender", "unknown"),
                reason=metadata.get("reason"),
            )
        )
        if result.success:
            logger.info(
                f"Control signal {signal} applied to task {task_id}: "
                f"{result.previous_status.value} -> {result.new_status.value}"
            )
        else:
            logger.warning(f"Control signal {signal} failed for task {task_id}: {result.error}")

    @staticmethod
    def _map_event_type(content: Dict[str, Any], metadata: Dict[str, Any]) -> str:
        event_type = metadata.get("event_type")
        if content.get("msgtype") == "m.text" and isinstance(event_type, str):
            return event_type
        return WorkspaceEventType.TASK_MESSAGE.value
