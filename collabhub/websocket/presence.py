"""Typing presence for project chat rooms.

Tracks which users are currently composing a message in each project.
Entries are ephemeral: each one owns a loop timer that removes it after a
quiet period unless refreshed. Removal, whatever triggers it, always tells
the room the user stopped typing.
"""

import asyncio
import logging
from typing import Optional

from .manager import ConnectionManager, MessageType, WebSocketConnection
from .room_auth import get_project_room

logger = logging.getLogger(__name__)

# Seconds without a new typing signal before the entry expires
TYPING_TIMEOUT = 3.0


class TypingPresenceTracker:
    """
    In-memory map of project_id -> {user_id: expiry timer}.

    A repeated typing signal from a user who is already typing only resets
    the timer; the room hears "user-typing" once per typing streak.
    """

    def __init__(
        self,
        connection_manager: ConnectionManager,
        timeout: float = TYPING_TIMEOUT,
    ) -> None:
        self._manager = connection_manager
        self._timeout = timeout
        self._typing: dict[int, dict[int, asyncio.TimerHandle]] = {}
        # Notifications scheduled from timer callbacks
        self._pending: set[asyncio.Task] = set()

    @property
    def timeout(self) -> float:
        return self._timeout

    def is_typing(self, project_id: int, user_id: int) -> bool:
        """Whether a live entry exists for (project, user)."""
        return user_id in self._typing.get(project_id, {})

    def get_typing_users(self, project_id: int) -> list[int]:
        """User ids currently typing in a project."""
        return list(self._typing.get(project_id, {}))

    @property
    def active_count(self) -> int:
        """Total number of live typing entries."""
        return sum(len(users) for users in self._typing.values())

    async def set_typing(
        self,
        project_id: int,
        user_id: int,
        user_name: Optional[str] = None,
        exclude: Optional[WebSocketConnection] = None,
    ) -> bool:
        """
        Start or refresh a typing entry.

        Args:
            project_id: The project room
            user_id: The typing user
            user_name: Display name included in the notification
            exclude: Connection that should not hear its own notification

        Returns:
            bool: True if this started a new entry, False if it refreshed one
        """
        project_typing = self._typing.setdefault(project_id, {})
        existing = project_typing.get(user_id)
        if existing is not None:
            existing.cancel()

        loop = asyncio.get_running_loop()
        project_typing[user_id] = loop.call_later(
            self._timeout, self._expire, project_id, user_id
        )

        if existing is not None:
            return False

        await self._manager.broadcast_to_room(
            get_project_room(project_id),
            {
                "type": MessageType.USER_TYPING.value,
                "data": {"userId": user_id, "userName": user_name},
            },
            exclude=exclude,
        )
        return True

    async def clear_typing(self, project_id: int, user_id: int) -> bool:
        """
        Remove a typing entry and notify the room.

        Returns:
            bool: True if an entry existed
        """
        handle = self._remove(project_id, user_id)
        if handle is None:
            return False
        handle.cancel()
        await self._notify_stopped(project_id, user_id)
        return True

    def _remove(self, project_id: int, user_id: int) -> Optional[asyncio.TimerHandle]:
        project_typing = self._typing.get(project_id)
        if not project_typing or user_id not in project_typing:
            return None
        handle = project_typing.pop(user_id)
        if not project_typing:
            del self._typing[project_id]
        return handle

    def _expire(self, project_id: int, user_id: int) -> None:
        """Timer callback: drop the entry now, notify asynchronously."""
        if self._remove(project_id, user_id) is None:
            return
        logger.debug(f"Typing expired: project={project_id}, user={user_id}")
        task = asyncio.get_running_loop().create_task(
            self._notify_stopped(project_id, user_id)
        )
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def _notify_stopped(self, project_id: int, user_id: int) -> None:
        await self._manager.broadcast_to_room(
            get_project_room(project_id),
            {
                "type": MessageType.USER_STOPPED_TYPING.value,
                "data": {"userId": user_id},
            },
        )

    async def shutdown(self) -> None:
        """Cancel every timer and pending notification."""
        for project_typing in self._typing.values():
            for handle in project_typing.values():
                handle.cancel()
        self._typing.clear()

        for task in list(self._pending):
            task.cancel()
        if self._pending:
            await asyncio.gather(*self._pending, return_exceptions=True)
        self._pending.clear()
