"""Task-scoped Matrix rooms (the bridge's IChatSink)."""

import html
import logging
from typing import Any, Dict, List, Optional, Tuple

from taskbridge.clients.matrix_client import TASK_METADATA_KEY, MatrixClient
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
from taskbridge.models.task import now_ms

logger = logging.getLogger(__name__)

# Closing headline keyed by the "Status: <status>" line of the summary
_CLOSING_HEADLINES: List[Tuple[str, str, str]] = [
    ("completed", "✅", "Task Completed"),
    ("timeout", "⏱️", "Task Timed Out"),
    ("cancelled", "🛑", "Task Cancelled"),
]
_FAILED_HEADLINE = ("❌", "Task Failed")


def closing_headline(summary: str) -> Tuple[str, str]:
    for status, emoji, title in _CLOSING_HEADLINES:
        if f"Status: {status}" in summary:
            return emoji, title
    return _FAILED_HEADLINE


def _is_matrix_id(user_id: str) -> bool:
    return user_id.startswith("@")


class MatrixRoomManager:
    """Creates, updates and closes one Matrix room per task."""

    def __init__(self, client: MatrixClient):
        self.client = client

    def _power_levels(self, observers: List[str]) -> Dict[str, Any]:
        users = {self.client.user_id: 100}
        for observer in observers:
            if _is_matrix_id(observer):
                users[observer] = 0
        return {
            "users": users,
            "users_default": 0,
            "events": {
                "m.room.name": 50,
                "m.room.power_levels": 100,
            },
            "events_default": 0,
            "state_default": 50,
            "ban": 50,
            "kick": 50,
            "redact": 50,
            "invite": 50,
        }

    async def create_task_room(self, request: CreateRoomRequest) -> RoomInfo:
        participants = [
            Participant(
                id=request.calling_agent_id,
                type=ParticipantType.AGENT,
                role=ParticipantRole.CALLING_AGENT,
            )
        ]
        if request.dev_agent_id:
            participants.append(
                Participant(
                    id=request.dev_agent_id,
                    type=ParticipantType.AGENT,
                    role=ParticipantRole.DEV_AGENT,
                )
            )
        for observer in request.human_observers:
            participants.append(
                Participant(id=observer, type=ParticipantType.HUMAN, role=ParticipantRole.OBSERVER)
            )

        room_id = await self.client.create_room(
            name=f"Task: {request.task_id}",
            topic=f"Task: {request.task_description}",
            invite=[p.id for p in participants if _is_matrix_id(p.id)],
            visibility="private",
            power_level_override=self._power_levels(request.human_observers),
        )
        logger.info(f"Created room {room_id} for task {request.task_id}")

        description = html.escape(request.task_description)
        participant_items = "\n".join(
            f"<li>{p.role.value}: <code>{html.escape(p.id)}</code></li>" for p in participants
        )
        await self.client.send_html_message(
            room_id,
            f"🚀 Task Execution Started\n\nTask ID: {request.task_id}\n"
            f"Description: {request.task_description}",
            f"<h3>🚀 Task Execution Started</h3>\n"
            f"<p><strong>Task ID:</strong> <code>{request.task_id}</code></p>\n"
            f"<p><strong>Description:</strong> {description}</p>\n"
            f"<p><strong>Participants:</strong></p>\n<ul>\n{participant_items}\n</ul>",
            {TASK_METADATA_KEY: {"task_id": request.task_id, "event_type": "task_created"}},
        )

        return RoomInfo(
            room_id=room_id,
            task_id=request.task_id,
            participants=participants,
            metadata=request.metadata,
        )

    async def close_task_room(self, room_id: str, task_id: str, summary: str) -> None:
        emoji, title = closing_headline(summary)
        await self.client.send_html_message(
            room_id,
            f"{emoji} {title}\n\n{summary}",
            f"<h3>{emoji} {title}</h3>\n"
            f"<pre>{html.escape(summary)}</pre>\n"
            "<p><em>This room will remain available for review.</em></p>",
            {TASK_METADATA_KEY: {"task_id": task_id, "event_type": "task_closed"}},
        )
        await self.client.set_room_topic(room_id, f"[{title}] Task {task_id}")
        logger.info(f"Closed room {room_id} for task {task_id}")

    async def archive_task_room(self, room_id: str, task_id: str) -> ArchiveInfo:
        # Room history stays on the homeserver; the bot leaves so the room goes quiet
        await self.client.leave_room(room_id)
        return ArchiveInfo(room_id=room_id, task_id=task_id, archived_at=now_ms())

    async def send_task_update(
        self, room_id: str, task_id: str, message: str, kind: ChatEventKind
    ) -> None:
        await self.client.send_message(
            room_id,
            message,
            {TASK_METADATA_KEY: {"task_id": task_id, "event_type": ChatEventKind(kind).value}},
        )

    async def send_control_signal(
        self,
        room_id: str,
        task_id: str,
        signal: ControlSignal,
        reason: Optional[str] = None,
    ) -> None:
        await self.client.send_control_signal(room_id, task_id, ControlSignal(signal).value, reason)

    async def invite_to_room(self, room_id: str, user_id: str, read_only: bool = True) -> None:
        await self.client.invite_user(room_id, user_id)
        role = "observer" if read_only else "participant"
        await self.client.send_message(room_id, f"👤 User {user_id} has been invited as {role}.")

    async def remove_from_room(self, room_id: str, user_id: str) -> None:
        await self.client.kick_user(room_id, user_id, "Removed from task room")
        await self.client.send_message(room_id, f"👤 User {user_id} has been removed from the room.")
