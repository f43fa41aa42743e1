"""Durable storage for project chat messages.

All calls run inside their own session and are bounded by a timeout; any
database failure or timeout surfaces as ``PersistenceError`` so callers can
report it to the client without broadcasting anything.
"""

import asyncio
import logging
from datetime import datetime
from typing import Any, Awaitable, Optional, TypeVar

from sqlalchemy import delete, func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ..exceptions import PersistenceError
from ..models.chat_message import ChatMessage

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Columns a caller may change through MessageStore.update
_UPDATABLE_FIELDS = frozenset({"message_content", "edited_at", "message_status"})


async def bounded_call(operation: str, awaitable: Awaitable[T], timeout: float) -> T:
    """
    Await a store coroutine with a timeout, normalizing failures.

    Args:
        operation: Human readable operation name used in the error message
        awaitable: The coroutine performing the database work
        timeout: Maximum seconds to wait

    Returns:
        Whatever the coroutine returns

    Raises:
        PersistenceError: On timeout or any SQLAlchemy error
    """
    try:
        return await asyncio.wait_for(awaitable, timeout=timeout)
    except asyncio.TimeoutError as e:
        logger.error(f"Store call timed out after {timeout}s: {operation}")
        raise PersistenceError(f"Failed to {operation}") from e
    except SQLAlchemyError as e:
        logger.error(f"Store call failed: {operation}: {e}")
        raise PersistenceError(f"Failed to {operation}") from e


class MessageStore:
    """CRUD for ChatMessage rows with soft-delete semantics."""

    def __init__(
        self,
        session_maker: async_sessionmaker[AsyncSession],
        timeout: float = 5.0,
    ) -> None:
        self._session_maker = session_maker
        self._timeout = timeout

    async def insert(
        self,
        project_id: int,
        sender_id: int,
        sender_name: str,
        message_content: str,
        reply_to_message_id: Optional[int] = None,
        reply_to_user_id: Optional[int] = None,
        reply_to_user_name: Optional[str] = None,
        reply_to_message_content: Optional[str] = None,
    ) -> ChatMessage:
        """Persist a new message and return the stored row (id assigned)."""

        async def _insert() -> ChatMessage:
            now = datetime.utcnow()
            message = ChatMessage(
                project_id=project_id,
                sender_id=sender_id,
                sender_name=sender_name,
                message_content=message_content,
                reply_to_message_id=reply_to_message_id,
                reply_to_user_id=reply_to_user_id,
                reply_to_user_name=reply_to_user_name,
                reply_to_message_content=reply_to_message_content,
                message_status="sent",
                is_deleted=False,
                created_at=now,
                updated_at=now,
            )
            async with self._session_maker() as session:
                session.add(message)
                await session.commit()
            return message

        return await bounded_call("save message", _insert(), self._timeout)

    async def get_by_id(self, message_id: int) -> Optional[ChatMessage]:
        """Fetch a message by id; soft-deleted messages resolve to None."""

        async def _get() -> Optional[ChatMessage]:
            async with self._session_maker() as session:
                result = await session.execute(
                    select(ChatMessage).where(
                        ChatMessage.id == message_id,
                        ChatMessage.is_deleted == False,  # noqa: E712
                    )
                )
                return result.scalar_one_or_none()

        return await bounded_call("fetch message", _get(), self._timeout)

    async def update(self, message_id: int, fields: dict[str, Any]) -> Optional[ChatMessage]:
        """
        Apply field changes to a live message and bump updated_at.

        Args:
            message_id: Message to update
            fields: Column values keyed by attribute name

        Returns:
            The updated row, or None if the message is missing or deleted
        """
        unknown = set(fields) - _UPDATABLE_FIELDS
        if unknown:
            raise ValueError(f"Fields not updatable: {sorted(unknown)}")

        async def _update() -> Optional[ChatMessage]:
            async with self._session_maker() as session:
                message = await session.get(ChatMessage, message_id)
                if message is None or message.is_deleted:
                    return None
                for name, value in fields.items():
                    setattr(message, name, value)
                message.updated_at = datetime.utcnow()
                await session.commit()
                return message

        return await bounded_call("update message", _update(), self._timeout)

    async def soft_delete(self, message_id: int) -> bool:
        """Flag a message as deleted. Returns False if it was already gone."""

        async def _soft_delete() -> bool:
            async with self._session_maker() as session:
                message = await session.get(ChatMessage, message_id)
                if message is None or message.is_deleted:
                    return False
                message.is_deleted = True
                message.updated_at = datetime.utcnow()
                await session.commit()
                return True

        return await bounded_call("delete message", _soft_delete(), self._timeout)

    async def list_page(self, project_id: int, limit: int, offset: int = 0) -> list[ChatMessage]:
        """Live messages of a project, oldest first."""

        async def _list() -> list[ChatMessage]:
            async with self._session_maker() as session:
                result = await session.execute(
                    select(ChatMessage)
                    .where(
                        ChatMessage.project_id == project_id,
                        ChatMessage.is_deleted == False,  # noqa: E712
                    )
                    .order_by(ChatMessage.created_at.asc(), ChatMessage.id.asc())
                    .limit(limit)
                    .offset(offset)
                )
                return list(result.scalars().all())

        return await bounded_call("fetch messages", _list(), self._timeout)

    async def count(self, project_id: int) -> int:
        """Number of live messages in a project."""

        async def _count() -> int:
            async with self._session_maker() as session:
                result = await session.execute(
                    select(func.count(ChatMessage.id)).where(
                        ChatMessage.project_id == project_id,
                        ChatMessage.is_deleted == False,  # noqa: E712
                    )
                )
                return result.scalar_one()

        return await bounded_call("count messages", _count(), self._timeout)

    async def clear_project(self, project_id: int) -> int:
        """Hard-delete every message of a project, deleted ones included."""

        async def _clear() -> int:
            async with self._session_maker() as session:
                result = await session.execute(
                    delete(ChatMessage).where(ChatMessage.project_id == project_id)
                )
                await session.commit()
                return result.rowcount or 0

        return await bounded_call("clear chat history", _clear(), self._timeout)
