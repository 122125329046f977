"""Interface for the human-observable chat service."""

from typing import Optional, Protocol

from taskbridge.models.chat import ArchiveInfo, ChatEventKind, CreateRoomRequest, RoomInfo
from taskbridge.models.control import ControlSignal


class IChatSink(Protocol):
    """Messaging sink with task-scoped room lifecycle operations."""

    async def create_task_room(self, request: CreateRoomRequest) -> RoomInfo:
        ...

    async def close_task_room(self, room_id: str, task_id: str, summary: str) -> None:
        ...

    async def archive_task_room(self, room_id: str, task_id: str) -> ArchiveInfo:
        ...

    async def send_task_update(
        self, room_id: str, task_id: str, message: str, kind: ChatEventKind
    ) -> None:
        ...

    async def send_control_signal(
        self,
        room_id: str,
        task_id: str,
        signal: ControlSignal,
        reason: Optional[str] = None,
    ) -> None:
        ...

    async def invite_to_room(self, room_id: str, user_id: str, read_only: bool = True) -> None:
        ...

    async def remove_from_room(self, room_id: str, user_id: str) -> None:
        ...
