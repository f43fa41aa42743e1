"""WebSocket module for real-time project chat."""

from .handlers import ChatService, NotInRoomError, create_chat_service
from .manager import (
    ConnectionManager,
    ConnectionState,
    MessageType,
    WebSocketConnection,
)
from .presence import TYPING_TIMEOUT, TypingPresenceTracker
from .rate_limiter import MAX_MESSAGES_PER_WINDOW, RATE_LIMIT_WINDOW, RateLimiter, RateWindow
from .room_auth import check_room_access, get_project_room, parse_project_room

__all__ = [
    # Manager
    "ConnectionManager",
    "ConnectionState",
    "MessageType",
    "WebSocketConnection",
    # Session protocol
    "ChatService",
    "NotInRoomError",
    "create_chat_service",
    # Presence
    "TypingPresenceTracker",
    "TYPING_TIMEOUT",
    # Rate limiting
    "RateLimiter",
    "RateWindow",
    "RATE_LIMIT_WINDOW",
    "MAX_MESSAGES_PER_WINDOW",
    # Room authorization
    "check_room_access",
    "get_project_room",
    "parse_project_room",
]
