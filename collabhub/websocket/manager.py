"""WebSocket connection manager with project-room support.

This module provides WebSocket connection management with:
- One chat room per project ("project-<id>") for targeted broadcasts
- Per-connection identity stamped on join (project, user, display name)
- User tracking for connection caps
- Graceful disconnect handling

All state lives on the event loop thread and every mutation below is
synchronous (no await between read and write), so no lock is needed.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Optional

from fastapi import WebSocket

logger = logging.getLogger(__name__)


class MessageType(str, Enum):
    """WebSocket event types."""

    # Client -> server
    JOIN_PROJECT_CHAT = "join-project-chat"
    SEND_MESSAGE = "send-message"
    TYPING = "typing"
    STOP_TYPING = "stop-typing"
    EDIT_MESSAGE = "edit-message"
    DELETE_MESSAGE = "delete-message"

    # Server -> client
    USER_JOINED = "user-joined"
    USER_LEFT = "user-left"
    NEW_MESSAGE = "new-message"
    MESSAGE_EDITED = "message-edited"
    MESSAGE_DELETED = "message-deleted"
    USER_TYPING = "user-typing"
    USER_STOPPED_TYPING = "user-stopped-typing"
    ERROR = "error"

    # Ping/pong for keepalive
    PING = "ping"
    PONG = "pong"


class ConnectionState(str, Enum):
    """Lifecycle of a chat connection."""

    CONNECTED = "connected"
    IN_ROOM = "in_room"
    DISCONNECTED = "disconnected"


@dataclass
class WebSocketConnection:
    """Represents a WebSocket connection and, once joined, its room identity."""

    websocket: WebSocket
    connected_at: datetime = field(default_factory=datetime.utcnow)
    project_id: Optional[int] = None
    user_id: Optional[int] = None
    user_name: Optional[str] = None
    closed: bool = False

    @property
    def room_id(self) -> Optional[str]:
        """Room this connection belongs to, if any."""
        if self.project_id is None:
            return None
        return f"project-{self.project_id}"

    @property
    def state(self) -> ConnectionState:
        """Current lifecycle state."""
        if self.closed:
            return ConnectionState.DISCONNECTED
        if self.project_id is None:
            return ConnectionState.CONNECTED
        return ConnectionState.IN_ROOM

    def __hash__(self) -> int:
        """Hash by websocket id for set operations."""
        return id(self.websocket)

    def __eq__(self, other: object) -> bool:
        """Equality check by websocket id."""
        if not isinstance(other, WebSocketConnection):
            return False
        return id(self.websocket) == id(other.websocket)


class ConnectionManager:
    """
    WebSocket connection manager (the room registry).

    Features:
    - Room-based connection grouping for targeted broadcasts
    - User tracking per room
    - Graceful disconnect handling
    """

    def __init__(self) -> None:
        """Initialize the connection manager."""
        # Map of room_id -> set of connections
        self._rooms: dict[str, set[WebSocketConnection]] = {}
        # Map of websocket -> connection object
        self._connections: dict[WebSocket, WebSocketConnection] = {}
        # Map of user_id -> set of joined connections
        self._user_connections: dict[int, set[WebSocketConnection]] = {}

    @property
    def total_connections(self) -> int:
        """Get total number of active connections."""
        return len(self._connections)

    @property
    def total_rooms(self) -> int:
        """Get total number of active rooms."""
        return len(self._rooms)

    def get_room_count(self, room_id: str) -> int:
        """Get number of connections in a room."""
        return len(self._rooms.get(room_id, set()))

    def get_user_connections_count(self, user_id: int) -> int:
        """Get number of joined connections for a user."""
        return len(self._user_connections.get(user_id, set()))

    async def connect(self, websocket: WebSocket) -> WebSocketConnection:
        """
        Accept a WebSocket connection and register it.

        The connection starts without a room; it gains one on join.

        Args:
            websocket: The WebSocket instance

        Returns:
            WebSocketConnection: The connection wrapper object
        """
        await websocket.accept()

        connection = WebSocketConnection(websocket=websocket)
        self._connections[websocket] = connection

        logger.info(f"WebSocket connected: total_connections={self.total_connections}")
        return connection

    def disconnect(self, websocket: WebSocket) -> Optional[WebSocketConnection]:
        """
        Unregister a WebSocket and remove it from its room.

        The returned connection keeps its project/user stamp so the caller
        can announce the departure.

        Args:
            websocket: The WebSocket instance to disconnect

        Returns:
            The removed connection, or None if it was not registered
        """
        connection = self._connections.pop(websocket, None)
        if connection is None:
            return None

        self._remove_from_room(connection)
        connection.closed = True

        logger.info(
            f"WebSocket disconnected: user={connection.user_id}, "
            f"total_connections={self.total_connections}"
        )
        return connection

    def join_room(
        self,
        connection: WebSocketConnection,
        project_id: int,
        user_id: int,
        user_name: str,
    ) -> str:
        """
        Add a connection to a project room and stamp its identity.

        A connection belongs to at most one room; joining another project
        moves it.

        Args:
            connection: The connection to add
            project_id: The project whose room to join
            user_id: The user's id
            user_name: Display name cached for later events

        Returns:
            str: The room id joined
        """
        self._remove_from_room(connection)

        connection.project_id = project_id
        connection.user_id = user_id
        connection.user_name = user_name
        room_id = connection.room_id

        self._rooms.setdefault(room_id, set()).add(connection)
        self._user_connections.setdefault(user_id, set()).add(connection)

        logger.info(
            f"User {user_name} ({user_id}) joined room {room_id} "
            f"(room_size={self.get_room_count(room_id)})"
        )
        return room_id

    def leave_room(self, connection: WebSocketConnection) -> Optional[str]:
        """
        Remove a connection from its room, clearing its identity stamp.

        Returns:
            The room id left, or None if the connection was not in a room
        """
        room_id = self._remove_from_room(connection)
        connection.project_id = None
        connection.user_id = None
        connection.user_name = None
        return room_id

    def _remove_from_room(self, connection: WebSocketConnection) -> Optional[str]:
        """Drop a connection from room and user tracking, keeping its stamp."""
        room_id = connection.room_id
        if room_id is None:
            return None

        if room_id in self._rooms:
            self._rooms[room_id].discard(connection)
            if not self._rooms[room_id]:
                del self._rooms[room_id]

        if connection.user_id in self._user_connections:
            self._user_connections[connection.user_id].discard(connection)
            if not self._user_connections[connection.user_id]:
                del self._user_connections[connection.user_id]

        return room_id

    async def send_personal(
        self,
        connection: WebSocketConnection,
        message: dict[str, Any],
    ) -> bool:
        """
        Send a message to a specific connection.

        Args:
            connection: The target connection
            message: The message to send

        Returns:
            bool: True if sent successfully, False otherwise
        """
        try:
            await connection.websocket.send_json(message)
            return True
        except Exception as e:
            logger.debug(f"Send failed for user {connection.user_id}: {e}")
            return False

    async def broadcast_to_room(
        self,
        room_id: str,
        message: dict[str, Any],
        exclude: Optional[WebSocketConnection] = None,
    ) -> int:
        """
        Broadcast a message to all connections in a room.

        Args:
            room_id: The room to broadcast to
            message: The message to send
            exclude: Optional connection to exclude from broadcast

        Returns:
            int: Number of successful sends
        """
        connections = self._rooms.get(room_id, set()).copy()

        if exclude:
            connections.discard(exclude)

        if not connections:
            return 0

        # Send to all connections concurrently
        tasks = [
            self.send_personal(conn, message)
            for conn in connections
        ]
        results = await asyncio.gather(*tasks, return_exceptions=True)

        success_count = sum(1 for r in results if r is True)
        logger.debug(
            f"Broadcast {message.get('type')} to room {room_id}: "
            f"{success_count}/{len(connections)} successful"
        )
        return success_count

    def get_room_users(self, room_id: str) -> list[int]:
        """
        Get list of user IDs in a room.

        Args:
            room_id: The room identifier

        Returns:
            list[int]: List of unique user IDs in the room
        """
        connections = self._rooms.get(room_id, set())
        return list(set(conn.user_id for conn in connections))

    def get_connection(self, websocket: WebSocket) -> Optional[WebSocketConnection]:
        """
        Get the connection wrapper for a WebSocket.

        Args:
            websocket: The WebSocket instance

        Returns:
            Optional[WebSocketConnection]: The connection or None
        """
        return self._connections.get(websocket)
