from taskbridge.chat.message_router import MatrixMessageRouter
from taskbridge.chat.room_manager import MatrixRoomManager

__all__ = ["MatrixMessageRouter", "MatrixRoomManager"]
