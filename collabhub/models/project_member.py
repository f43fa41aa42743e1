"""ProjectMember SQLAlchemy model (project <-> user junction)."""

from datetime import datetime

from sqlalchemy import Column, DateTime, ForeignKey, Integer, String, UniqueConstraint
from sqlalchemy.orm import relationship

from ..database import Base

INVITATION_APPROVED = "approved"
INVITATION_PENDING = "pending"
INVITATION_REJECTED = "rejected"


class ProjectMember(Base):
    """
    Membership of a user in a project.

    Only rows with ``invitation_status == "approved"`` grant chat access.

    Attributes:
        id: Unique identifier
        project_id: FK to the project
        user_id: FK to the member
        invitation_status: approved, pending or rejected
        joined_at: When the membership row was created
    """

    __tablename__ = "ProjectMembers"
    __allow_unmapped__ = True
    __table_args__ = (
        UniqueConstraint("project_id", "user_id", name="UX_ProjectMembers_Project_User"),
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
    user_id = Column(
        Integer,
        ForeignKey("Users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    invitation_status = Column(
        String(20),
        nullable=False,
        default=INVITATION_APPROVED,
    )
    joined_at = Column(
        DateTime,
        default=datetime.utcnow,
        nullable=False,
    )

    project = relationship(
        "Project",
        back_populates="members",
        lazy="noload",
    )
    user = relationship(
        "User",
        back_populates="project_memberships",
        lazy="noload",
    )

    def __repr__(self) -> str:
        """String representation of ProjectMember."""
        return (
            f"<ProjectMember(project_id={self.project_id}, user_id={self.user_id}, "
            f"status={self.invitation_status})>"
        )
