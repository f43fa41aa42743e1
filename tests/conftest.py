"""Shared pytest fixtures for backend tests."""

import os
import sys
from typing import AsyncGenerator
from unittest.mock import AsyncMock

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

# Add project root to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

# Point the module-level engine at SQLite BEFORE importing app modules
os.environ.setdefault("DATABASE_URL_OVERRIDE", "sqlite+aiosqlite://")

from collabhub.database import Base
from collabhub.main import app
from collabhub.models import Project, ProjectMember, User
from collabhub.models.project_member import INVITATION_APPROVED, INVITATION_PENDING
from collabhub.services import MembershipService, MessageStore
from collabhub.websocket import ChatService, ConnectionManager, RateLimiter, TypingPresenceTracker

# Use in-memory SQLite for testing
SQLALCHEMY_DATABASE_URL = "sqlite+aiosqlite://"

# Seeded ids
ALICE_ID = 1  # owner of project 7
BOB_ID = 2  # not a member of anything
CAROL_ID = 3  # approved member of project 7
DAVE_ID = 4  # pending invitation to project 7
PROJECT_ID = 7
OTHER_PROJECT_ID = 8  # owned by Carol, Alice approved


class FakeClock:
    """Manually advanced monotonic clock for rate limiter tests."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def make_websocket() -> AsyncMock:
    """Create a mock WebSocket that records outgoing frames."""
    ws = AsyncMock()
    ws.accept = AsyncMock()
    ws.send_json = AsyncMock()
    return ws


def sent_frames(ws: AsyncMock) -> list[dict]:
    """All frames sent to a mock WebSocket, in order."""
    return [call.args[0] for call in ws.send_json.call_args_list]


def frames_of_type(ws: AsyncMock, message_type: str) -> list[dict]:
    """Frames of one event type sent to a mock WebSocket."""
    return [frame for frame in sent_frames(ws) if frame["type"] == message_type]


async def set_membership_status(session_maker, project_id: int, user_id: int, status: str) -> None:
    """Change an existing membership row, e.g. to revoke access mid-session."""
    async with session_maker() as session:
        await session.execute(
            update(ProjectMember)
            .where(ProjectMember.project_id == project_id, ProjectMember.user_id == user_id)
            .values(invitation_status=status)
        )
        await session.commit()


@pytest_asyncio.fixture
async def engine() -> AsyncGenerator[AsyncEngine, None]:
    """Create a test database engine with in-memory SQLite."""
    engine = create_async_engine(
        SQLALCHEMY_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    # Clean up
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest_asyncio.fixture
async def session_maker(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Session factory bound to the test engine, seeded with users and projects."""
    maker = async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )

    async with maker() as session:
        session.add_all([
            User(id=ALICE_ID, email="alice@example.com", display_name="Alice"),
            User(id=BOB_ID, email="bob@example.com", display_name="Bob"),
            User(id=CAROL_ID, email="carol@example.com", display_name="Carol"),
            User(id=DAVE_ID, email="dave@example.com", display_name="Dave"),
        ])
        await session.flush()
        session.add_all([
            Project(id=PROJECT_ID, name="Apollo", author_id=ALICE_ID),
            Project(id=OTHER_PROJECT_ID, name="Gemini", author_id=CAROL_ID),
        ])
        await session.flush()
        session.add_all([
            ProjectMember(project_id=PROJECT_ID, user_id=ALICE_ID, invitation_status=INVITATION_APPROVED),
            ProjectMember(project_id=PROJECT_ID, user_id=CAROL_ID, invitation_status=INVITATION_APPROVED),
            ProjectMember(project_id=PROJECT_ID, user_id=DAVE_ID, invitation_status=INVITATION_PENDING),
            ProjectMember(project_id=OTHER_PROJECT_ID, user_id=CAROL_ID, invitation_status=INVITATION_APPROVED),
            ProjectMember(project_id=OTHER_PROJECT_ID, user_id=ALICE_ID, invitation_status=INVITATION_APPROVED),
        ])
        await session.commit()

    return maker


@pytest.fixture
def store(session_maker) -> MessageStore:
    """Message store on the test database."""
    return MessageStore(session_maker, timeout=5.0)


@pytest.fixture
def membership(session_maker) -> MembershipService:
    """Membership oracle on the test database."""
    return MembershipService(session_maker, timeout=5.0)


@pytest.fixture
def clock() -> FakeClock:
    """Controllable clock for the chat service's rate limiter."""
    return FakeClock()


@pytest_asyncio.fixture
async def chat_service(store, membership, clock) -> AsyncGenerator[ChatService, None]:
    """Chat service with a fake-clock rate limiter and a short typing timeout."""
    manager = ConnectionManager()
    service = ChatService(
        store=store,
        membership=membership,
        connection_manager=manager,
        rate_limiter=RateLimiter(window_seconds=10.0, max_per_window=5, clock=clock),
        typing_tracker=TypingPresenceTracker(manager, timeout=0.05),
        max_connections_per_user=3,
    )
    yield service
    await service.shutdown()


@pytest_asyncio.fixture
async def client(chat_service: ChatService) -> AsyncGenerator[AsyncClient, None]:
    """HTTP client against the app with the test chat service installed."""
    app.state.chat_service = chat_service
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as test_client:
        yield test_client
    del app.state.chat_service
