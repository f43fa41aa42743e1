"""Project chat REST endpoints.

History paging plus HTTP counterparts of the websocket chat operations.
Mutations made here are broadcast to the project room exactly like their
websocket equivalents.
"""

from typing import Annotated, NoReturn, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status

from ..exceptions import ChatError
from ..schemas.chat import (
    ChatActionResponse,
    ChatHistoryResponse,
    ChatMessageDelete,
    ChatMessageEdit,
    ChatMessageEnvelope,
    ChatMessageResponse,
    MessageStatusUpdate,
    Pagination,
    SendMessagePayload,
)
from ..websocket.handlers import ChatService

router = APIRouter(prefix="/api/chat", tags=["Chat"])


# ============================================================================
# Helper Functions
# ============================================================================


def get_chat_service(request: Request) -> ChatService:
    """Dependency returning the process-wide chat service."""
    return request.app.state.chat_service


ChatServiceDep = Annotated[ChatService, Depends(get_chat_service)]


def raise_http_error(error: ChatError) -> NoReturn:
    """Translate a chat error into the matching HTTP error."""
    raise HTTPException(status_code=error.status_code, detail=error.message)


# ============================================================================
# Chat Endpoints
# ============================================================================


@router.get(
    "/project/{project_id}",
    response_model=ChatHistoryResponse,
    summary="Get chat history for a project",
    responses={
        200: {"description": "History retrieved successfully"},
        400: {"description": "Missing user id"},
        403: {"description": "Not a project member"},
    },
)
async def get_chat_history(
    project_id: int,
    chat: ChatServiceDep,
    user_id: Optional[int] = Query(None, alias="userId"),
    page: int = Query(1, ge=1),
    limit: Optional[int] = Query(None, ge=1),
) -> ChatHistoryResponse:
    """
    Get chat history for a project, oldest message first.

    Soft-deleted messages are never returned.
    """
    if user_id is None:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="User ID is required",
        )

    try:
        messages, pagination = await chat.get_history(project_id, user_id, page, limit)
    except ChatError as e:
        raise_http_error(e)

    return ChatHistoryResponse(
        messages=[ChatMessageResponse.model_validate(m) for m in messages],
        pagination=Pagination(**pagination),
    )


@router.post(
    "/send",
    response_model=ChatMessageEnvelope,
    status_code=status.HTTP_201_CREATED,
    summary="Send a message",
    responses={
        201: {"description": "Message sent"},
        400: {"description": "Empty message"},
        403: {"description": "Not a project member"},
        503: {"description": "Message could not be stored"},
    },
)
async def send_message(
    payload: SendMessagePayload,
    chat: ChatServiceDep,
) -> ChatMessageEnvelope:
    """Send a message to a project chat and broadcast it to the room."""
    try:
        message = await chat.send_message(payload, enforce_rate_limit=False)
    except ChatError as e:
        raise_http_error(e)

    return ChatMessageEnvelope(
        message="Message sent successfully",
        data=ChatMessageResponse.model_validate(message),
    )


@router.put(
    "/edit/{message_id}",
    response_model=ChatMessageEnvelope,
    summary="Edit a message",
    responses={
        200: {"description": "Message edited"},
        400: {"description": "Empty message"},
        403: {"description": "Not the sender"},
        404: {"description": "Message not found"},
    },
)
async def edit_message(
    message_id: int,
    body: ChatMessageEdit,
    chat: ChatServiceDep,
) -> ChatMessageEnvelope:
    """Edit a message. Only the sender may edit."""
    try:
        message = await chat.edit_message(message_id, body.user_id, body.message_content)
    except ChatError as e:
        raise_http_error(e)

    return ChatMessageEnvelope(
        message="Message edited successfully",
        data=ChatMessageResponse.model_validate(message),
    )


@router.delete(
    "/delete/{message_id}",
    response_model=ChatActionResponse,
    summary="Delete a message",
    responses={
        200: {"description": "Message deleted"},
        403: {"description": "Not the sender"},
        404: {"description": "Message not found"},
    },
)
async def delete_message(
    message_id: int,
    body: ChatMessageDelete,
    chat: ChatServiceDep,
) -> ChatActionResponse:
    """Soft-delete a message. Only the sender may delete."""
    try:
        await chat.delete_message(message_id, body.user_id)
    except ChatError as e:
        raise_http_error(e)

    return ChatActionResponse(message="Message deleted successfully")


@router.put(
    "/status/{message_id}",
    response_model=ChatActionResponse,
    summary="Update message status",
    responses={
        200: {"description": "Status updated"},
        400: {"description": "Invalid status"},
        404: {"description": "Message not found"},
    },
)
async def update_message_status(
    message_id: int,
    body: MessageStatusUpdate,
    chat: ChatServiceDep,
) -> ChatActionResponse:
    """Set a message's delivery status (sent, delivered, read)."""
    try:
        await chat.update_status(message_id, body.status)
    except ChatError as e:
        raise_http_error(e)

    return ChatActionResponse(message="Message status updated successfully")


@router.delete(
    "/project/{project_id}",
    response_model=ChatActionResponse,
    summary="Clear a project's chat history",
    responses={
        200: {"description": "History cleared"},
        400: {"description": "Missing user id"},
        403: {"description": "Not the project owner"},
        404: {"description": "Project not found"},
    },
)
async def clear_project_chat(
    project_id: int,
    chat: ChatServiceDep,
    user_id: Optional[int] = Query(None, alias="userId"),
) -> ChatActionResponse:
    """Permanently delete every message of a project. Project owner only."""
    if user_id is None:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="User ID is required",
        )

    try:
        deleted = await chat.clear_project_chat(project_id, user_id)
    except ChatError as e:
        raise_http_error(e)

    return ChatActionResponse(message="Chat history cleared", deleted_count=deleted)
