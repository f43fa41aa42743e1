"""Pydantic schemas for project chat.

Wire payloads use camelCase keys (``projectId``, ``messageContent``...);
the Python side uses snake_case fields mapped through ``to_camel`` aliases.
"""

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class ChatSchema(BaseModel):
    """Base schema accepting both camelCase and snake_case keys."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )


# ============================================================================
# Inbound websocket payloads
# ============================================================================


class JoinProjectChatPayload(ChatSchema):
    """Payload for ``join-project-chat``."""

    project_id: int = Field(..., description="Project whose room to join")
    user_id: int = Field(..., description="Joining user")
    user_name: str = Field(..., min_length=1, max_length=100, description="Display name")


class SendMessagePayload(ChatSchema):
    """Payload for ``send-message`` (also the REST send body)."""

    project_id: int = Field(..., description="Target project room")
    sender_id: int = Field(..., description="Sending user")
    sender_name: str = Field(..., min_length=1, max_length=100, description="Display name snapshot")
    message_content: str = Field(..., max_length=10000, description="Message body")
    reply_to_message_id: Optional[int] = Field(None, description="Message being replied to")
    # Ignored: the author is taken from the resolved replied-to message
    reply_to_user_id: Optional[int] = Field(None, description="Accepted for compatibility, not stored")


class TypingPayload(ChatSchema):
    """Payload for ``typing``."""

    project_id: int
    user_id: int
    user_name: Optional[str] = None


class StopTypingPayload(ChatSchema):
    """Payload for ``stop-typing``."""

    project_id: int
    user_id: int


class EditMessagePayload(ChatSchema):
    """Payload for ``edit-message``."""

    message_id: int
    user_id: int
    message_content: str = Field(..., max_length=10000)


class DeleteMessagePayload(ChatSchema):
    """Payload for ``delete-message``."""

    message_id: int
    user_id: int


# ============================================================================
# REST request bodies
# ============================================================================


class ChatMessageEdit(ChatSchema):
    """Body for ``PUT /api/chat/edit/{message_id}``."""

    user_id: int
    message_content: str = Field(..., max_length=10000)


class ChatMessageDelete(ChatSchema):
    """Body for ``DELETE /api/chat/delete/{message_id}``."""

    user_id: int


class MessageStatusUpdate(ChatSchema):
    """Body for ``PUT /api/chat/status/{message_id}``."""

    status: str = Field(..., description="One of sent, delivered, read")


# ============================================================================
# Responses
# ============================================================================


class ChatMessageResponse(ChatSchema):
    """Full chat message row as broadcast and returned by the API."""

    id: int
    project_id: int
    sender_id: int
    sender_name: str
    message_content: str
    reply_to_message_id: Optional[int] = None
    reply_to_user_id: Optional[int] = None
    reply_to_user_name: Optional[str] = None
    reply_to_message_content: Optional[str] = None
    message_status: str = "sent"
    is_deleted: bool = False
    edited_at: Optional[datetime] = None
    created_at: datetime
    updated_at: Optional[datetime] = None


class Pagination(ChatSchema):
    """Page-based pagination metadata."""

    page: int
    limit: int
    total: int
    total_pages: int


class ChatHistoryResponse(ChatSchema):
    """Paginated chat history for a project."""

    success: bool = True
    messages: List[ChatMessageResponse]
    pagination: Pagination


class ChatMessageEnvelope(ChatSchema):
    """Single-message REST response."""

    success: bool = True
    message: str
    data: Optional[ChatMessageResponse] = None


class ChatActionResponse(ChatSchema):
    """REST response for operations that return no row."""

    success: bool = True
    message: str
    deleted_count: Optional[int] = None


def serialize_message(message) -> dict:
    """Dump an ORM ChatMessage to its JSON-ready camelCase row."""
    return ChatMessageResponse.model_validate(message).model_dump(mode="json", by_alias=True)
