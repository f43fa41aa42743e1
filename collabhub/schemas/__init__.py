"""Pydantic schemas package."""

from .chat import (
    ChatActionResponse,
    ChatHistoryResponse,
    ChatMessageDelete,
    ChatMessageEdit,
    ChatMessageEnvelope,
    ChatMessageResponse,
    DeleteMessagePayload,
    EditMessagePayload,
    JoinProjectChatPayload,
    MessageStatusUpdate,
    Pagination,
    SendMessagePayload,
    StopTypingPayload,
    TypingPayload,
    serialize_message,
)

__all__ = [
    "ChatActionResponse",
    "ChatHistoryResponse",
    "ChatMessageDelete",
    "ChatMessageEdit",
    "ChatMessageEnvelope",
    "ChatMessageResponse",
    "DeleteMessagePayload",
    "EditMessagePayload",
    "JoinProjectChatPayload",
    "MessageStatusUpdate",
    "Pagination",
    "SendMessagePayload",
    "StopTypingPayload",
    "TypingPayload",
    "serialize_message",
]
