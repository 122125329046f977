"""Task-scoped chat room types."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

from taskbridge.models.task import now_ms


class ParticipantType(str, Enum):
    AGENT = "agent"
    HUMAN = "human"


class ParticipantRole(str, Enum):
    CALLING_AGENT = "calling_agent"
    DEV_AGENT = "dev_agent"
    OBSERVER = "observer"


class ChatEventKind(str, Enum):
    PROGRESS = "progress"
    ERROR = "error"
    STATUS_CHANGE = "status_change"


@dataclass
class Participant:
    id: str
    type: ParticipantType
    role: ParticipantRole
    invited_at: int = field(default_factory=now_ms)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "type": self.type.value,
            "role": self.role.value,
            "invited_at": self.invited_at,
        }


@dataclass
class RoomInfo:
    room_id: str
    task_id: str
    participants: List[Participant] = field(default_factory=list)
    created_at: int = field(default_factory=now_ms)
    room_alias: Optional[str] = None
    metadata: Optional[Dict[str, Any]] = None


@dataclass
class CreateRoomRequest:
    task_id: str
    task_description: str
    calling_agent_id: str
    dev_agent_id: Optional[str] = None
    human_observers: List[str] = field(default_factory=list)
    metadata: Optional[Dict[str, Any]] = None


@dataclass
class ArchiveInfo:
    room_id: str
    task_id: str
    archived_at: int = field(default_factory=now_ms)
    message_count: int = 0
    participants: List[Participant] = field(default_factory=list)
    archive_path: Optional[str] = None
