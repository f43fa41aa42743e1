"""Tests for the chat message store and membership oracle."""

import asyncio
from datetime import datetime
from unittest.mock import MagicMock

import pytest
from sqlalchemy.exc import OperationalError

from collabhub.exceptions import PersistenceError
from collabhub.models.project_member import INVITATION_REJECTED
from collabhub.services import MembershipService, MessageStore, bounded_call

from conftest import (
    ALICE_ID,
    BOB_ID,
    CAROL_ID,
    DAVE_ID,
    OTHER_PROJECT_ID,
    PROJECT_ID,
    set_membership_status,
)


async def _insert(store: MessageStore, content: str, project_id: int = PROJECT_ID, sender_id: int = ALICE_ID):
    return await store.insert(
        project_id=project_id,
        sender_id=sender_id,
        sender_name="Alice",
        message_content=content,
    )


class TestMessageStore:
    """Tests for MessageStore CRUD."""

    @pytest.mark.asyncio
    async def test_insert_assigns_increasing_ids(self, store):
        first = await _insert(store, "one")
        second = await _insert(store, "two")

        assert first.id is not None
        assert second.id > first.id
        assert first.message_status == "sent"
        assert first.is_deleted is False
        assert first.edited_at is None
        assert isinstance(first.created_at, datetime)

    @pytest.mark.asyncio
    async def test_get_by_id(self, store):
        message = await _insert(store, "hello")

        fetched = await store.get_by_id(message.id)

        assert fetched.message_content == "hello"
        assert await store.get_by_id(9999) is None

    @pytest.mark.asyncio
    async def test_soft_delete_hides_message(self, store):
        """Soft-deleted rows disappear from lookups, pages and counts."""
        keep = await _insert(store, "keep")
        gone = await _insert(store, "gone")

        assert await store.soft_delete(gone.id) is True

        assert await store.get_by_id(gone.id) is None
        page = await store.list_page(PROJECT_ID, limit=10)
        assert [m.id for m in page] == [keep.id]
        assert await store.count(PROJECT_ID) == 1

    @pytest.mark.asyncio
    async def test_soft_delete_twice(self, store):
        message = await _insert(store, "once")

        assert await store.soft_delete(message.id) is True
        assert await store.soft_delete(message.id) is False
        assert await store.soft_delete(9999) is False

    @pytest.mark.asyncio
    async def test_update_content_and_edited_at(self, store):
        message = await _insert(store, "draft")
        edited_at = datetime.utcnow()

        updated = await store.update(
            message.id, {"message_content": "final", "edited_at": edited_at}
        )

        assert updated.message_content == "final"
        assert updated.edited_at == edited_at
        assert updated.updated_at >= message.updated_at
        assert (await store.get_by_id(message.id)).message_content == "final"

    @pytest.mark.asyncio
    async def test_update_deleted_message_returns_none(self, store):
        message = await _insert(store, "bye")
        await store.soft_delete(message.id)

        assert await store.update(message.id, {"message_status": "read"}) is None

    @pytest.mark.asyncio
    async def test_update_rejects_unknown_fields(self, store):
        message = await _insert(store, "x")

        with pytest.raises(ValueError):
            await store.update(message.id, {"sender_id": BOB_ID})

    @pytest.mark.asyncio
    async def test_list_page_orders_oldest_first(self, store):
        ids = [(await _insert(store, f"m{i}")).id for i in range(5)]
        await _insert(store, "elsewhere", project_id=OTHER_PROJECT_ID)

        first_page = await store.list_page(PROJECT_ID, limit=2, offset=0)
        last_page = await store.list_page(PROJECT_ID, limit=2, offset=4)

        assert [m.id for m in first_page] == ids[:2]
        assert [m.id for m in last_page] == ids[4:]
        assert await store.count(PROJECT_ID) == 5

    @pytest.mark.asyncio
    async def test_clear_project_hard_deletes(self, store):
        """Bulk clear removes live and soft-deleted rows of one project only."""
        await _insert(store, "a")
        deleted = await _insert(store, "b")
        await store.soft_delete(deleted.id)
        other = await _insert(store, "c", project_id=OTHER_PROJECT_ID)

        removed = await store.clear_project(PROJECT_ID)

        assert removed == 2
        assert await store.count(PROJECT_ID) == 0
        assert await store.get_by_id(other.id) is not None

    @pytest.mark.asyncio
    async def test_database_error_becomes_persistence_error(self):
        session_maker = MagicMock(
            side_effect=OperationalError("SELECT 1", {}, Exception("database is down"))
        )
        store = MessageStore(session_maker, timeout=1.0)

        with pytest.raises(PersistenceError) as exc_info:
            await store.get_by_id(1)

        assert exc_info.value.message == "Failed to fetch message"
        assert exc_info.value.status_code == 503


class TestBoundedCall:
    """Tests for the store call timeout wrapper."""

    @pytest.mark.asyncio
    async def test_returns_result(self):
        async def work():
            return 42

        assert await bounded_call("compute", work(), timeout=1.0) == 42

    @pytest.mark.asyncio
    async def test_timeout_raises_persistence_error(self):
        async def slow():
            await asyncio.sleep(1.0)

        with pytest.raises(PersistenceError) as exc_info:
            await bounded_call("save message", slow(), timeout=0.01)

        assert exc_info.value.code == "PERSISTENCE_ERROR"
        assert exc_info.value.message == "Failed to save message"

    @pytest.mark.asyncio
    async def test_other_errors_propagate(self):
        async def broken():
            raise KeyError("bug")

        with pytest.raises(KeyError):
            await bounded_call("compute", broken(), timeout=1.0)


class TestMembershipService:
    """Tests for the membership oracle."""

    @pytest.mark.asyncio
    async def test_approved_members(self, membership):
        assert await membership.is_approved_member(PROJECT_ID, ALICE_ID) is True
        assert await membership.is_approved_member(PROJECT_ID, CAROL_ID) is True

    @pytest.mark.asyncio
    async def test_non_members_and_pending(self, membership):
        assert await membership.is_approved_member(PROJECT_ID, BOB_ID) is False
        assert await membership.is_approved_member(PROJECT_ID, DAVE_ID) is False
        assert await membership.is_approved_member(9999, ALICE_ID) is False

    @pytest.mark.asyncio
    async def test_revocation_is_seen_immediately(self, session_maker, membership):
        """No caching: a revoked membership is denied on the next check."""
        assert await membership.is_approved_member(PROJECT_ID, CAROL_ID) is True

        await set_membership_status(session_maker, PROJECT_ID, CAROL_ID, INVITATION_REJECTED)

        assert await membership.is_approved_member(PROJECT_ID, CAROL_ID) is False

    @pytest.mark.asyncio
    async def test_get_project(self, membership):
        project = await membership.get_project(PROJECT_ID)

        assert project.author_id == ALICE_ID
        assert await membership.get_project(9999) is None

    @pytest.mark.asyncio
    async def test_service_uses_store_timeout(self):
        session_maker = MagicMock(
            side_effect=OperationalError("SELECT 1", {}, Exception("database is down"))
        )
        service = MembershipService(session_maker, timeout=1.0)

        with pytest.raises(PersistenceError):
            await service.is_approved_member(PROJECT_ID, ALICE_ID)
