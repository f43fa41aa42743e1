"""Project membership lookups used to gate chat access."""

import logging
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ..models.project import Project
from ..models.project_member import INVITATION_APPROVED, ProjectMember
from .chat_store import bounded_call

logger = logging.getLogger(__name__)


class MembershipService:
    """
    Answers "is this user an approved member of this project".

    Results are never cached: approvals can be revoked at any time and the
    chat re-checks membership on every send.
    """

    def __init__(
        self,
        session_maker: async_sessionmaker[AsyncSession],
        timeout: float = 5.0,
    ) -> None:
        self._session_maker = session_maker
        self._timeout = timeout

    async def get_approved_membership(
        self,
        project_id: int,
        user_id: int,
    ) -> Optional[ProjectMember]:
        """
        Fetch the approved membership row for (project, user).

        Args:
            project_id: The project's id
            user_id: The user's id

        Returns:
            The ProjectMember row, or None if the user is not an approved member
        """

        async def _lookup() -> Optional[ProjectMember]:
            async with self._session_maker() as session:
                result = await session.execute(
                    select(ProjectMember)
                    .join(Project, Project.id == ProjectMember.project_id)
                    .where(
                        ProjectMember.project_id == project_id,
                        ProjectMember.user_id == user_id,
                        ProjectMember.invitation_status == INVITATION_APPROVED,
                    )
                )
                return result.scalar_one_or_none()

        return await bounded_call("check project membership", _lookup(), self._timeout)

    async def is_approved_member(self, project_id: int, user_id: int) -> bool:
        """True iff an approved membership row exists."""
        membership = await self.get_approved_membership(project_id, user_id)
        return membership is not None

    async def get_project(self, project_id: int) -> Optional[Project]:
        """Fetch a project by id."""

        async def _get() -> Optional[Project]:
            async with self._session_maker() as session:
                return await session.get(Project, project_id)

        return await bounded_call("fetch project", _get(), self._timeout)
