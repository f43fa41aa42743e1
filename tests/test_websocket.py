"""Unit tests for the WebSocket connection manager and room naming."""

from datetime import datetime
from unittest.mock import MagicMock

import pytest

from collabhub.websocket.manager import (
    ConnectionManager,
    ConnectionState,
    MessageType,
    WebSocketConnection,
)
from collabhub.websocket.room_auth import (
    check_room_access,
    get_project_room,
    parse_project_room,
)

from conftest import ALICE_ID, BOB_ID, DAVE_ID, PROJECT_ID, make_websocket, sent_frames


class TestMessageType:
    """Tests for MessageType enum."""

    def test_message_type_values(self):
        """Test that event names are hyphenated wire strings."""
        assert MessageType.JOIN_PROJECT_CHAT == "join-project-chat"
        assert MessageType.SEND_MESSAGE == "send-message"
        assert MessageType.NEW_MESSAGE == "new-message"
        assert MessageType.USER_STOPPED_TYPING == "user-stopped-typing"
        assert MessageType.ERROR == "error"
        assert MessageType.PING == "ping"

    def test_message_type_is_string(self):
        """Test that MessageType values are strings."""
        for msg_type in MessageType:
            assert isinstance(msg_type.value, str)


class TestWebSocketConnection:
    """Tests for WebSocketConnection dataclass."""

    def test_connection_creation(self):
        """A fresh connection has no room and is in the Connected state."""
        mock_ws = MagicMock()

        conn = WebSocketConnection(websocket=mock_ws)

        assert conn.websocket is mock_ws
        assert conn.user_id is None
        assert conn.room_id is None
        assert isinstance(conn.connected_at, datetime)
        assert conn.state == ConnectionState.CONNECTED

    def test_room_id_follows_project(self):
        conn = WebSocketConnection(websocket=MagicMock(), project_id=7, user_id=1)

        assert conn.room_id == "project-7"
        assert conn.state == ConnectionState.IN_ROOM

    def test_closed_connection_is_disconnected(self):
        conn = WebSocketConnection(websocket=MagicMock(), project_id=7, closed=True)

        assert conn.state == ConnectionState.DISCONNECTED

    def test_connection_equality(self):
        """Test WebSocketConnection equality by websocket identity."""
        mock_ws = MagicMock()

        conn1 = WebSocketConnection(websocket=mock_ws, user_id=1)
        conn2 = WebSocketConnection(websocket=mock_ws, user_id=1)
        conn3 = WebSocketConnection(websocket=MagicMock(), user_id=1)

        assert conn1 == conn2  # Same websocket
        assert conn1 != conn3  # Different websocket
        assert hash(conn1) == hash(conn2)


class TestConnectionManager:
    """Tests for room membership bookkeeping."""

    @pytest.mark.asyncio
    async def test_connect_accepts_without_room(self):
        """Test that connect accepts the socket and registers it roomless."""
        mgr = ConnectionManager()
        ws = make_websocket()

        conn = await mgr.connect(ws)

        ws.accept.assert_awaited_once()
        assert mgr.total_connections == 1
        assert mgr.total_rooms == 0
        assert mgr.get_connection(ws) is conn
        assert sent_frames(ws) == []

    @pytest.mark.asyncio
    async def test_join_room_stamps_identity(self):
        mgr = ConnectionManager()
        conn = await mgr.connect(make_websocket())

        room_id = mgr.join_room(conn, PROJECT_ID, ALICE_ID, "Alice")

        assert room_id == "project-7"
        assert conn.user_name == "Alice"
        assert mgr.get_room_count(room_id) == 1
        assert mgr.get_room_users(room_id) == [ALICE_ID]
        assert mgr.get_user_connections_count(ALICE_ID) == 1

    @pytest.mark.asyncio
    async def test_join_second_room_moves_connection(self):
        """A connection belongs to at most one room."""
        mgr = ConnectionManager()
        conn = await mgr.connect(make_websocket())

        mgr.join_room(conn, 7, ALICE_ID, "Alice")
        mgr.join_room(conn, 8, ALICE_ID, "Alice")

        assert mgr.get_room_count("project-7") == 0
        assert mgr.get_room_count("project-8") == 1
        assert mgr.total_rooms == 1
        assert mgr.get_user_connections_count(ALICE_ID) == 1

    @pytest.mark.asyncio
    async def test_leave_room_clears_stamp(self):
        mgr = ConnectionManager()
        conn = await mgr.connect(make_websocket())
        mgr.join_room(conn, PROJECT_ID, ALICE_ID, "Alice")

        left = mgr.leave_room(conn)

        assert left == "project-7"
        assert conn.project_id is None
        assert conn.user_id is None
        assert conn.state == ConnectionState.CONNECTED
        assert mgr.total_rooms == 0

    @pytest.mark.asyncio
    async def test_disconnect_keeps_stamp_and_empties_room(self):
        """Disconnect returns the connection with its identity for announcements."""
        mgr = ConnectionManager()
        ws = make_websocket()
        conn = await mgr.connect(ws)
        mgr.join_room(conn, PROJECT_ID, ALICE_ID, "Alice")

        removed = mgr.disconnect(ws)

        assert removed is conn
        assert removed.project_id == PROJECT_ID
        assert removed.user_id == ALICE_ID
        assert removed.state == ConnectionState.DISCONNECTED
        assert mgr.total_connections == 0
        assert mgr.total_rooms == 0
        assert mgr.get_user_connections_count(ALICE_ID) == 0

    def test_disconnect_unknown_websocket(self):
        mgr = ConnectionManager()

        assert mgr.disconnect(make_websocket()) is None

    @pytest.mark.asyncio
    async def test_broadcast_to_room_with_exclude(self):
        """Test broadcast reaches the room except the excluded connection."""
        mgr = ConnectionManager()
        ws1, ws2, ws3 = make_websocket(), make_websocket(), make_websocket()
        conn1 = await mgr.connect(ws1)
        conn2 = await mgr.connect(ws2)
        conn3 = await mgr.connect(ws3)
        mgr.join_room(conn1, 7, 1, "Alice")
        mgr.join_room(conn2, 7, 3, "Carol")
        mgr.join_room(conn3, 8, 3, "Carol")

        message = {"type": "user-joined", "data": {"userId": 1}}
        count = await mgr.broadcast_to_room("project-7", message, exclude=conn1)

        assert count == 1
        ws1.send_json.assert_not_called()
        ws2.send_json.assert_awaited_once_with(message)
        ws3.send_json.assert_not_called()

    @pytest.mark.asyncio
    async def test_broadcast_survives_failed_send(self):
        """A failing socket does not stop delivery to the rest of the room."""
        mgr = ConnectionManager()
        ws_ok, ws_bad = make_websocket(), make_websocket()
        ws_bad.send_json.side_effect = RuntimeError("socket closed")
        mgr.join_room(await mgr.connect(ws_ok), 7, 1, "Alice")
        mgr.join_room(await mgr.connect(ws_bad), 7, 3, "Carol")

        count = await mgr.broadcast_to_room("project-7", {"type": "ping", "data": {}})

        assert count == 1
        ws_ok.send_json.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_broadcast_to_empty_room(self):
        mgr = ConnectionManager()

        assert await mgr.broadcast_to_room("project-99", {"type": "ping"}) == 0


class TestRoomAuth:
    """Tests for project room naming and access checks."""

    def test_room_name_round_trip(self):
        assert get_project_room(7) == "project-7"
        assert parse_project_room("project-7") == 7

    @pytest.mark.parametrize("room_id", ["", "task-7", "project-", "project-abc"])
    def test_parse_rejects_malformed(self, room_id):
        assert parse_project_room(room_id) is None

    @pytest.mark.asyncio
    async def test_check_room_access(self, membership):
        """Only approved members may enter the room."""
        assert await check_room_access(membership, ALICE_ID, "project-7") is True
        assert await check_room_access(membership, BOB_ID, "project-7") is False
        assert await check_room_access(membership, DAVE_ID, "project-7") is False
        assert await check_room_access(membership, ALICE_ID, "bogus") is False
