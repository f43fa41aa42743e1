"""User SQLAlchemy model.

Account management lives outside the chat service; the table exists so
projects, memberships and chat messages have a user to reference.
"""

from datetime import datetime

from sqlalchemy import Column, DateTime, Integer, String
from sqlalchemy.orm import relationship

from ..database import Base


class User(Base):
    """
    User model representing application users.

    Attributes:
        id: Unique identifier
        email: User's email address (unique)
        display_name: User's display name
        created_at: Timestamp when user was created
        updated_at: Timestamp when user was last updated
    """

    __tablename__ = "Users"
    __allow_unmapped__ = True

    id = Column(
        Integer,
        primary_key=True,
        autoincrement=True,
    )
    email = Column(
        String(255),
        unique=True,
        nullable=False,
        index=True,
    )
    display_name = Column(
        String(100),
        nullable=True,
    )

    # Timestamps
    created_at = Column(
        DateTime,
        default=datetime.utcnow,
        nullable=False,
    )
    updated_at = Column(
        DateTime,
        default=datetime.utcnow,
        onupdate=datetime.utcnow,
        nullable=False,
    )

    # Relationships
    owned_projects = relationship(
        "Project",
        back_populates="author",
        lazy="noload",
    )
    project_memberships = relationship(
        "ProjectMember",
        back_populates="user",
        cascade="all, delete-orphan",
        lazy="noload",
    )

    def __repr__(self) -> str:
        """String representation of User."""
        return f"<User(id={self.id}, email={self.email})>"
