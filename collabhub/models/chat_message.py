"""ChatMessage SQLAlchemy model for project chat."""

from datetime import datetime

from sqlalchemy import Boolean, CheckConstraint, Column, DateTime, ForeignKey, Index, Integer, String, Text

from ..database import Base

MESSAGE_STATUSES = ("sent", "delivered", "read")


class ChatMessage(Base):
    """
    A single message in a project's chat room.

    The reply snapshot columns (reply_to_user_name, reply_to_message_content)
    are copied from the replied-to message at send time and never re-synced,
    so they stay valid after the original is edited or deleted.

    Attributes:
        id: Monotonically increasing identifier
        project_id: FK to the project (room)
        sender_id: FK to the sending user
        sender_name: Display name at send time
        message_content: Message body, never empty
        reply_to_message_id: Optional FK to the replied-to message
        reply_to_user_id: Optional FK to the replied-to user
        reply_to_user_name: Snapshot of the replied-to sender name
        reply_to_message_content: Snapshot of the replied-to content
        message_status: sent, delivered or read
        is_deleted: Soft-delete flag
        edited_at: Set on every edit, null until the first one
        created_at: Creation timestamp, defines history order
        updated_at: Last mutation timestamp
    """

    __tablename__ = "ChatMessages"
    __allow_unmapped__ = True
    __table_args__ = (
        CheckConstraint(
            "message_status IN ('sent', 'delivered', 'read')",
            name="CK_ChatMessages_Status",
        ),
        Index("IX_ChatMessages_ProjectId_CreatedAt", "project_id", "created_at"),
    )

    id = Column(
        Integer,
        primary_key=True,
        autoincrement=True,
    )
    project_id = Column(
        Integer,
        ForeignKey("Projects.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    sender_id = Column(
        Integer,
        ForeignKey("Users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    sender_name = Column(
        String(100),
        nullable=False,
    )
    message_content = Column(
        Text,
        nullable=False,
    )

    # Reply reference and denormalized snapshot
    reply_to_message_id = Column(
        Integer,
        ForeignKey("ChatMessages.id", ondelete="SET NULL"),
        nullable=True,
    )
    reply_to_user_id = Column(
        Integer,
        ForeignKey("Users.id", ondelete="SET NULL"),
        nullable=True,
    )
    reply_to_user_name = Column(
        String(100),
        nullable=True,
    )
    reply_to_message_content = Column(
        Text,
        nullable=True,
    )

    message_status = Column(
        String(20),
        nullable=False,
        default="sent",
    )
    is_deleted = Column(
        Boolean,
        nullable=False,
        default=False,
    )

    # Timestamps
    edited_at = Column(
        DateTime,
        nullable=True,
    )
    created_at = Column(
        DateTime,
        default=datetime.utcnow,
        nullable=False,
    )
    updated_at = Column(
        DateTime,
        default=datetime.utcnow,
        nullable=False,
    )

    def __repr__(self) -> str:
        """String representation of ChatMessage."""
        return (
            f"<ChatMessage(id={self.id}, project_id={self.project_id}, "
            f"sender_id={self.sender_id})>"
        )
