"""SQLAlchemy ORM models package."""

from .chat_message import MESSAGE_STATUSES, ChatMessage
from .project import Project
from .project_member import ProjectMember
from .user import User

__all__ = [
    "MESSAGE_STATUSES",
    "ChatMessage",
    "Project",
    "ProjectMember",
    "User",
]
