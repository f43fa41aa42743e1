"""create_chat_tables

Revision ID: 3f1c2a7b9d10
Revises:
Create Date: 2026-10-16 09:00:00.000000

Initial schema for project chat:
1. Creates Users and Projects tables
2. Creates ProjectMembers junction table with invitation status
3. Creates ChatMessages table with reply snapshot and soft-delete columns

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = '3f1c2a7b9d10'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Upgrade database schema."""
    # ==========================================================================
    # 1. Users and Projects
    # ==========================================================================
    op.create_table('Users',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('email', sa.String(length=255), nullable=False),
        sa.Column('display_name', sa.String(length=100), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_Users_email'), 'Users', ['email'], unique=True)

    op.create_table('Projects',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('author_id', sa.Integer(), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(['author_id'], ['Users.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_Projects_author_id'), 'Projects', ['author_id'], unique=False)

    # ==========================================================================
    # 2. ProjectMembers
    # ==========================================================================
    op.create_table('ProjectMembers',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('project_id', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=False),
        sa.Column('invitation_status', sa.String(length=20), nullable=False, server_default='approved'),
        sa.Column('joined_at', sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(['project_id'], ['Projects.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['user_id'], ['Users.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('project_id', 'user_id', name='UX_ProjectMembers_Project_User')
    )
    op.create_index(op.f('ix_ProjectMembers_project_id'), 'ProjectMembers', ['project_id'], unique=False)
    op.create_index(op.f('ix_ProjectMembers_user_id'), 'ProjectMembers', ['user_id'], unique=False)

    # ==========================================================================
    # 3. ChatMessages
    # ==========================================================================
    op.create_table('ChatMessages',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('project_id', sa.Integer(), nullable=False),
        sa.Column('sender_id', sa.Integer(), nullable=False),
        sa.Column('sender_name', sa.String(length=100), nullable=False),
        sa.Column('message_content', sa.Text(), nullable=False),
        sa.Column('reply_to_message_id', sa.Integer(), nullable=True),
        sa.Column('reply_to_user_id', sa.Integer(), nullable=True),
        sa.Column('reply_to_user_name', sa.String(length=100), nullable=True),
        sa.Column('reply_to_message_content', sa.Text(), nullable=True),
        sa.Column('message_status', sa.String(length=20), nullable=False, server_default='sent'),
        sa.Column('is_deleted', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('edited_at', sa.DateTime(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(['project_id'], ['Projects.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['sender_id'], ['Users.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['reply_to_message_id'], ['ChatMessages.id'], ondelete='SET NULL'),
        sa.ForeignKeyConstraint(['reply_to_user_id'], ['Users.id'], ondelete='SET NULL'),
        sa.CheckConstraint(
            "message_status IN ('sent', 'delivered', 'read')",
            name='CK_ChatMessages_Status',
        ),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_ChatMessages_project_id'), 'ChatMessages', ['project_id'], unique=False)
    op.create_index(op.f('ix_ChatMessages_sender_id'), 'ChatMessages', ['sender_id'], unique=False)
    # History paging: live messages of a project, oldest first
    op.create_index(
        'IX_ChatMessages_ProjectId_CreatedAt',
        'ChatMessages',
        ['project_id', 'created_at'],
    )


def downgrade() -> None:
    """Downgrade database schema."""
    op.drop_index('IX_ChatMessages_ProjectId_CreatedAt', table_name='ChatMessages')
    op.drop_index(op.f('ix_ChatMessages_sender_id'), table_name='ChatMessages')
    op.drop_index(op.f('ix_ChatMessages_project_id'), table_name='ChatMessages')
    op.drop_table('ChatMessages')

    op.drop_index(op.f('ix_ProjectMembers_user_id'), table_name='ProjectMembers')
    op.drop_index(op.f('ix_ProjectMembers_project_id'), table_name='ProjectMembers')
    op.drop_table('ProjectMembers')

    op.drop_index(op.f('ix_Projects_author_id'), table_name='Projects')
    op.drop_table('Projects')

    op.drop_index(op.f('ix_Users_email'), table_name='Users')
    op.drop_table('Users')
