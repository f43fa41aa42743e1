"""Service layer package."""

from .chat_store import MessageStore, bounded_call
from .membership_service import MembershipService

__all__ = [
    "MembershipService",
    "MessageStore",
    "bounded_call",
]
