"""Room naming and authorization for project chat rooms.

Room ID format: ``project-{id}``. Access requires an approved membership
in the project; the check always goes to the membership oracle.
"""

import logging
from typing import Optional

from ..services.membership_service import MembershipService

logger = logging.getLogger(__name__)

_PROJECT_ROOM_PREFIX = "project-"


def get_project_room(project_id: int | str) -> str:
    """
    Get the room ID for a project.

    Args:
        project_id: The project's id

    Returns:
        str: Room ID in format 'project-{id}'
    """
    return f"{_PROJECT_ROOM_PREFIX}{project_id}"


def parse_project_room(room_id: str) -> Optional[int]:
    """Extract the project id from a room id, or None if malformed."""
    if not room_id or not room_id.startswith(_PROJECT_ROOM_PREFIX):
        return None
    try:
        return int(room_id[len(_PROJECT_ROOM_PREFIX):])
    except ValueError:
        return None


async def check_room_access(
    membership: MembershipService,
    user_id: int,
    room_id: str,
) -> bool:
    """
    Check if a user may join a chat room.

    Args:
        membership: The membership oracle
        user_id: The user's id
        room_id: The room identifier

    Returns:
        bool: True if the user is an approved member of the room's project

    Raises:
        PersistenceError: If the membership lookup fails
    """
    project_id = parse_project_room(room_id)
    if project_id is None:
        logger.warning(f"[Room Auth] DENIED - invalid room format: {room_id}")
        return False

    allowed = await membership.is_approved_member(project_id, user_id)
    if not allowed:
        logger.warning(f"[Room Auth] DENIED - user={user_id} not a member of {room_id}")
    return allowed
