"""Project chat session protocol.

``ChatService`` owns the in-memory chat state (room registry, rate windows,
typing entries) and implements every chat operation. The websocket endpoint
feeds it raw frames through ``route_incoming_message``; the REST router calls
the same operations directly.

Each operation validates, then persists, then broadcasts. Any ``ChatError``
aborts the operation before its broadcast.
"""

import logging
import math
from datetime import datetime
from typing import Any, Awaitable, Callable, Optional

from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ..config import settings
from ..exceptions import (
    AuthorizationError,
    ChatError,
    NotFoundError,
    RateLimitError,
    ValidationError,
)
from ..models.chat_message import MESSAGE_STATUSES, ChatMessage
from ..schemas.chat import (
    DeleteMessagePayload,
    EditMessagePayload,
    JoinProjectChatPayload,
    SendMessagePayload,
    StopTypingPayload,
    TypingPayload,
    serialize_message,
)
from ..services.chat_store import MessageStore
from ..services.membership_service import MembershipService
from .manager import ConnectionManager, ConnectionState, MessageType, WebSocketConnection
from .presence import TypingPresenceTracker
from .rate_limiter import RateLimiter
from .room_auth import check_room_access, get_project_room

logger = logging.getLogger(__name__)


class NotInRoomError(AuthorizationError):
    """Chat event received before the connection joined a project room."""

    code = "NOT_IN_ROOM"


def _timestamp() -> str:
    return datetime.utcnow().isoformat()


class ChatService:
    """
    Chat session protocol for project rooms.

    Connection states: ``Connected`` (no room) -> ``InRoom`` (after a
    successful join) -> ``Disconnected``. Chat events other than joining
    are rejected until the connection is in a room.
    """

    def __init__(
        self,
        store: MessageStore,
        membership: MembershipService,
        connection_manager: Optional[ConnectionManager] = None,
        rate_limiter: Optional[RateLimiter] = None,
        typing_tracker: Optional[TypingPresenceTracker] = None,
        max_connections_per_user: Optional[int] = None,
    ) -> None:
        self.store = store
        self.membership = membership
        self.manager = connection_manager or ConnectionManager()
        self.rate_limiter = rate_limiter or RateLimiter(
            window_seconds=settings.chat_rate_limit_window_seconds,
            max_per_window=settings.chat_rate_limit_max_messages,
        )
        self.typing = typing_tracker or TypingPresenceTracker(
            self.manager,
            timeout=settings.chat_typing_timeout_seconds,
        )
        self.max_connections_per_user = (
            max_connections_per_user
            if max_connections_per_user is not None
            else settings.ws_max_connections_per_user
        )

        self._handlers: dict[str, tuple[type[BaseModel], Callable[..., Awaitable[Any]]]] = {
            MessageType.JOIN_PROJECT_CHAT.value: (JoinProjectChatPayload, self._on_join),
            MessageType.SEND_MESSAGE.value: (SendMessagePayload, self._on_send),
            MessageType.TYPING.value: (TypingPayload, self._on_typing),
            MessageType.STOP_TYPING.value: (StopTypingPayload, self._on_stop_typing),
            MessageType.EDIT_MESSAGE.value: (EditMessagePayload, self._on_edit),
            MessageType.DELETE_MESSAGE.value: (DeleteMessagePayload, self._on_delete),
        }

    # ------------------------------------------------------------------
    # Frame routing
    # ------------------------------------------------------------------

    async def route_incoming_message(
        self,
        connection: WebSocketConnection,
        data: Any,
    ) -> None:
        """
        Validate and dispatch one inbound frame.

        Errors are reported to ``connection`` only and never close it.

        Args:
            connection: The connection that sent the frame
            data: The decoded JSON frame ``{"type": ..., "data": {...}}``
        """
        try:
            await self._dispatch(connection, data)
        except ChatError as e:
            logger.info(f"Chat event rejected: user={connection.user_id}, {e.code}: {e.message}")
            await self.send_error(connection, e)
        except Exception:
            logger.exception(f"Unhandled error in chat handler for user {connection.user_id}")
            await self.send_error(connection, ChatError("Internal server error"))

    async def _dispatch(self, connection: WebSocketConnection, data: Any) -> None:
        if not isinstance(data, dict):
            raise ValidationError("Message must be a JSON object")

        message_type = data.get("type")
        logger.debug(f"Routing message: user={connection.user_id}, type={message_type}")

        if message_type == MessageType.PING.value:
            await self.manager.send_personal(
                connection, {"type": MessageType.PONG.value, "data": {}}
            )
            return
        if message_type == MessageType.PONG.value:
            return

        entry = self._handlers.get(message_type)
        if entry is None:
            raise ValidationError(f"Unknown message type: {message_type}")
        schema, handler = entry

        payload = self._parse_payload(schema, data.get("data"))

        if (
            message_type != MessageType.JOIN_PROJECT_CHAT.value
            and connection.state != ConnectionState.IN_ROOM
        ):
            raise NotInRoomError("Join a project chat first")

        await handler(connection, payload)

    @staticmethod
    def _parse_payload(schema: type[BaseModel], raw: Any) -> BaseModel:
        if raw is None:
            raw = {}
        if not isinstance(raw, dict):
            raise ValidationError("Message data must be a JSON object")
        try:
            return schema.model_validate(raw)
        except PydanticValidationError as e:
            fields = ", ".join(
                ".".join(str(part) for part in err["loc"]) for err in e.errors()
            )
            raise ValidationError(f"Invalid or missing fields: {fields}") from e

    async def send_error(self, connection: WebSocketConnection, error: ChatError) -> None:
        """Unicast an ``error`` event to one connection."""
        await self.manager.send_personal(
            connection,
            {"type": MessageType.ERROR.value, "data": error.to_event_data()},
        )

    # ------------------------------------------------------------------
    # Event handlers
    # ------------------------------------------------------------------

    async def _on_join(self, connection: WebSocketConnection, payload: JoinProjectChatPayload) -> None:
        await self.join(connection, payload.project_id, payload.user_id, payload.user_name)

    async def _on_send(self, connection: WebSocketConnection, payload: SendMessagePayload) -> None:
        await self.send_message(payload, enforce_rate_limit=True)

    async def _on_typing(self, connection: WebSocketConnection, payload: TypingPayload) -> None:
        user_name = payload.user_name or connection.user_name
        await self.typing.set_typing(
            payload.project_id, payload.user_id, user_name, exclude=connection
        )

    async def _on_stop_typing(self, connection: WebSocketConnection, payload: StopTypingPayload) -> None:
        await self.typing.clear_typing(payload.project_id, payload.user_id)

    async def _on_edit(self, connection: WebSocketConnection, payload: EditMessagePayload) -> None:
        await self.edit_message(payload.message_id, payload.user_id, payload.message_content)

    async def _on_delete(self, connection: WebSocketConnection, payload: DeleteMessagePayload) -> None:
        await self.delete_message(payload.message_id, payload.user_id)

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    async def join(
        self,
        connection: WebSocketConnection,
        project_id: int,
        user_id: int,
        user_name: str,
    ) -> str:
        """
        Admit a connection into a project room.

        Args:
            connection: The joining connection
            project_id: The project whose room to join
            user_id: The joining user
            user_name: Display name cached on the connection

        Returns:
            str: The joined room id

        Raises:
            AuthorizationError: If the user is not an approved member or
                has too many joined connections
        """
        room_id = get_project_room(project_id)

        if not await check_room_access(self.membership, user_id, room_id):
            raise AuthorizationError("You must be a project member to join chat")

        already_counted = connection.user_id == user_id
        if (
            not already_counted
            and self.manager.get_user_connections_count(user_id) >= self.max_connections_per_user
        ):
            logger.warning(
                f"Connection limit reached for user {user_id}: "
                f"{self.max_connections_per_user}"
            )
            raise AuthorizationError("Too many connections")

        if connection.state == ConnectionState.IN_ROOM:
            await self._announce_departure(connection)

        self.manager.join_room(connection, project_id, user_id, user_name)

        await self.manager.broadcast_to_room(
            room_id,
            {
                "type": MessageType.USER_JOINED.value,
                "data": {
                    "userId": user_id,
                    "userName": user_name,
                    "timestamp": _timestamp(),
                },
            },
            exclude=connection,
        )
        return room_id

    async def send_message(
        self,
        payload: SendMessagePayload,
        enforce_rate_limit: bool = True,
    ) -> ChatMessage:
        """
        Persist a new message and broadcast it to the whole room.

        Steps run in order and stop at the first failure: rate limit,
        content, membership, reply resolution, insert, broadcast, typing
        clear. The sender's own connection receives the broadcast too.

        Raises:
            RateLimitError, ValidationError, AuthorizationError, PersistenceError
        """
        if enforce_rate_limit and not self.rate_limiter.admit(payload.sender_id):
            raise RateLimitError("You are sending messages too quickly. Please wait a moment.")

        if not payload.message_content or not payload.message_content.strip():
            raise ValidationError("Message cannot be empty")

        if not await self.membership.is_approved_member(payload.project_id, payload.sender_id):
            raise AuthorizationError("You must be a project member to send messages")

        reply_to_message_id = None
        reply_to_user_id = None
        reply_to_user_name = None
        reply_to_message_content = None
        if payload.reply_to_message_id:
            # A target outside this project is treated as missing: no quote is stored
            replied = await self.store.get_by_id(payload.reply_to_message_id)
            if replied is not None and replied.project_id == payload.project_id:
                reply_to_message_id = replied.id
                reply_to_user_id = replied.sender_id
                reply_to_user_name = replied.sender_name
                reply_to_message_content = replied.message_content

        message = await self.store.insert(
            project_id=payload.project_id,
            sender_id=payload.sender_id,
            sender_name=payload.sender_name,
            message_content=payload.message_content,
            reply_to_message_id=reply_to_message_id,
            reply_to_user_id=reply_to_user_id,
            reply_to_user_name=reply_to_user_name,
            reply_to_message_content=reply_to_message_content,
        )

        await self.manager.broadcast_to_room(
            get_project_room(payload.project_id),
            {"type": MessageType.NEW_MESSAGE.value, "data": serialize_message(message)},
        )
        await self.typing.clear_typing(payload.project_id, payload.sender_id)

        logger.info(
            f"Message {message.id} sent to project {payload.project_id} "
            f"by user {payload.sender_id}"
        )
        return message

    async def _get_owned_message(self, message_id: int, user_id: int, action: str) -> ChatMessage:
        message = await self.store.get_by_id(message_id)
        if message is None:
            raise NotFoundError("Message not found")
        if message.sender_id != user_id:
            raise AuthorizationError(f"You can only {action} your own messages")
        return message

    async def edit_message(self, message_id: int, user_id: int, message_content: str) -> ChatMessage:
        """
        Replace the content of a message owned by ``user_id``.

        Raises:
            NotFoundError, AuthorizationError, ValidationError, PersistenceError
        """
        message = await self._get_owned_message(message_id, user_id, "edit")

        if not message_content or not message_content.strip():
            raise ValidationError("Message cannot be empty")

        updated = await self.store.update(
            message_id,
            {"message_content": message_content, "edited_at": datetime.utcnow()},
        )
        if updated is None:
            # Deleted between the ownership check and the write
            raise NotFoundError("Message not found")

        await self.manager.broadcast_to_room(
            get_project_room(updated.project_id),
            {"type": MessageType.MESSAGE_EDITED.value, "data": serialize_message(updated)},
        )
        return updated

    async def delete_message(self, message_id: int, user_id: int) -> int:
        """
        Soft-delete a message owned by ``user_id``.

        Returns:
            int: The project id of the deleted message

        Raises:
            NotFoundError, AuthorizationError, PersistenceError
        """
        message = await self._get_owned_message(message_id, user_id, "delete")

        if not await self.store.soft_delete(message_id):
            raise NotFoundError("Message not found")

        await self.manager.broadcast_to_room(
            get_project_room(message.project_id),
            {"type": MessageType.MESSAGE_DELETED.value, "data": {"messageId": message_id}},
        )
        return message.project_id

    async def update_status(self, message_id: int, status: str) -> ChatMessage:
        """
        Set the delivery status of a message (read receipts).

        Raises:
            ValidationError: If the status is not sent, delivered or read
            NotFoundError: If the message does not exist
        """
        if status not in MESSAGE_STATUSES:
            raise ValidationError("Valid status is required (sent, delivered, read)")

        updated = await self.store.update(message_id, {"message_status": status})
        if updated is None:
            raise NotFoundError("Message not found")
        return updated

    async def get_history(
        self,
        project_id: int,
        user_id: int,
        page: int = 1,
        limit: Optional[int] = None,
    ) -> tuple[list[ChatMessage], dict[str, int]]:
        """
        Page through a project's live messages, oldest first.

        Returns:
            Tuple of (messages, pagination dict with page, limit, total, total_pages)

        Raises:
            AuthorizationError: If the user is not an approved member
        """
        if not await self.membership.is_approved_member(project_id, user_id):
            raise AuthorizationError("You must be a project member to view chat")

        limit = limit or settings.chat_history_default_limit
        limit = max(1, min(limit, settings.chat_history_max_limit))
        page = max(1, page)

        total = await self.store.count(project_id)
        messages = await self.store.list_page(project_id, limit, (page - 1) * limit)

        return messages, {
            "page": page,
            "limit": limit,
            "total": total,
            "total_pages": math.ceil(total / limit),
        }

    async def clear_project_chat(self, project_id: int, user_id: int) -> int:
        """
        Hard-delete a project's whole chat history. Project owner only.

        Returns:
            int: Number of rows removed

        Raises:
            NotFoundError: If the project does not exist
            AuthorizationError: If the user is not the project owner
        """
        project = await self.membership.get_project(project_id)
        if project is None:
            raise NotFoundError("Project not found")
        if project.author_id != user_id:
            raise AuthorizationError("Only the project owner can clear the chat")

        deleted = await self.store.clear_project(project_id)
        logger.info(f"Chat cleared for project {project_id} by user {user_id}: {deleted} messages")
        return deleted

    # ------------------------------------------------------------------
    # Connection lifecycle
    # ------------------------------------------------------------------

    async def disconnect(self, websocket) -> Optional[WebSocketConnection]:
        """
        Tear down a connection: leave its room, clear its typing entry and
        tell the rest of the room.
        """
        connection = self.manager.disconnect(websocket)
        if connection is None:
            return None
        if connection.project_id is not None and connection.user_id is not None:
            await self._announce_departure(connection)
        return connection

    async def _announce_departure(self, connection: WebSocketConnection) -> None:
        project_id = connection.project_id
        user_id = connection.user_id
        user_name = connection.user_name

        if connection.state == ConnectionState.IN_ROOM:
            self.manager.leave_room(connection)

        await self.typing.clear_typing(project_id, user_id)
        await self.manager.broadcast_to_room(
            get_project_room(project_id),
            {
                "type": MessageType.USER_LEFT.value,
                "data": {
                    "userId": user_id,
                    "userName": user_name,
                    "timestamp": _timestamp(),
                },
            },
            exclude=connection,
        )

    async def shutdown(self) -> None:
        """Release timers held by the in-memory state."""
        await self.typing.shutdown()
        self.rate_limiter.reset()


def create_chat_service(
    session_maker: async_sessionmaker[AsyncSession],
) -> ChatService:
    """Build a ChatService wired to the given database session factory."""
    timeout = settings.chat_store_timeout_seconds
    return ChatService(
        store=MessageStore(session_maker, timeout=timeout),
        membership=MembershipService(session_maker, timeout=timeout),
    )
