"""initial research hub schema"""

from alembic import op
import sqlalchemy as sa
from typing import Sequence, Union

revision: str = '20261017_01'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _status(name, default):
    # enum columns are stored as their lowercase string values
    return sa.Column(name, sa.String(32), nullable=False, server_default=default)


def upgrade() -> None:
    op.create_table(
        'users',
        sa.Column('id', sa.UUID(as_uuid=True), primary_key=True),
        sa.Column('username', sa.String(), nullable=False),
        sa.Column('email', sa.String(), nullable=False),
        sa.Column('hashed_password', sa.String(), nullable=False),
        sa.Column('affiliation', sa.String()),
        _status('role', 'researcher'),
        sa.Column('is_email_verified', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('email_verification_token', sa.String()),
        sa.Column('email_verification_expires', sa.DateTime()),
        sa.Column('reset_password_token', sa.String()),
        sa.Column('reset_password_expires', sa.DateTime()),
        sa.Column('created_at', sa.DateTime()),
        sa.Column('updated_at', sa.DateTime()),
    )
    op.create_index('ix_users_username', 'users', ['username'], unique=True)
    op.create_index('ix_users_email', 'users', ['email'], unique=True)
    op.create_index('ix_users_email_verification_token', 'users', ['email_verification_token'])
    op.create_index('ix_users_reset_password_token', 'users', ['reset_password_token'])

    op.create_table(
        'projects',
        sa.Column('id', sa.UUID(as_uuid=True), primary_key=True),
        sa.Column('title', sa.String(), nullable=False),
        sa.Column('description', sa.Text(), nullable=False),
        sa.Column('goals', sa.JSON()),
        sa.Column('objectives', sa.JSON()),
        sa.Column('deliverables', sa.JSON()),
        sa.Column('start_date', sa.DateTime(), nullable=False),
        sa.Column('end_date', sa.DateTime(), nullable=False),
        sa.Column('created_by', sa.UUID(as_uuid=True), sa.ForeignKey('users.id'), nullable=False),
        _status('status', 'planning'),
        _status('category', 'research'),
        sa.Column('is_public', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('tags', sa.JSON()),
        sa.Column('created_at', sa.DateTime()),
        sa.Column('updated_at', sa.DateTime()),
    )
    op.create_index('ix_projects_created_by', 'projects', ['created_by'])
    op.create_index('ix_projects_status', 'projects', ['status'])

    op.create_table(
        'project_members',
        sa.Column('project_id', sa.UUID(as_uuid=True), sa.ForeignKey('projects.id'), primary_key=True),
        sa.Column('user_id', sa.UUID(as_uuid=True), sa.ForeignKey('users.id'), primary_key=True),
        _status('role', 'collaborator'),
        sa.Column('can_edit', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('can_manage_members', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('can_upload_documents', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('can_view_documents', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('joined_at', sa.DateTime()),
    )
    op.create_index('ix_project_members_user_id', 'project_members', ['user_id'])

    op.create_table(
        'project_tasks',
        sa.Column('id', sa.UUID(as_uuid=True), primary_key=True),
        sa.Column('project_id', sa.UUID(as_uuid=True), sa.ForeignKey('projects.id'), nullable=False),
        sa.Column('title', sa.String(), nullable=False),
        sa.Column('description', sa.Text()),
        sa.Column('assigned_to', sa.UUID(as_uuid=True), sa.ForeignKey('users.id')),
        _status('status', 'pending'),
        _status('priority', 'medium'),
        sa.Column('due_date', sa.DateTime()),
        sa.Column('created_by', sa.UUID(as_uuid=True), sa.ForeignKey('users.id')),
        sa.Column('created_at', sa.DateTime()),
        sa.Column('completed_at', sa.DateTime()),
    )
    op.create_index('ix_project_tasks_project_id', 'project_tasks', ['project_id'])

    op.create_table(
        'documents',
        sa.Column('id', sa.UUID(as_uuid=True), primary_key=True),
        sa.Column('project_id', sa.UUID(as_uuid=True), sa.ForeignKey('projects.id'), nullable=False),
        sa.Column('uploaded_by', sa.UUID(as_uuid=True), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('title', sa.String(), nullable=False),
        sa.Column('description', sa.Text()),
        sa.Column('file_name', sa.String(), nullable=False),
        sa.Column('original_name', sa.String(), nullable=False),
        sa.Column('file_path', sa.String(), nullable=False),
        sa.Column('file_size', sa.Integer(), nullable=False),
        sa.Column('mime_type', sa.String(), nullable=False),
        sa.Column('file_extension', sa.String()),
        _status('category', 'other'),
        sa.Column('tags', sa.JSON()),
        sa.Column('is_public', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('current_version', sa.Integer(), nullable=False, server_default='1'),
        _status('status', 'active'),
        sa.Column('view_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('last_viewed_at', sa.DateTime()),
        sa.Column('created_at', sa.DateTime()),
        sa.Column('updated_at', sa.DateTime()),
    )
    op.create_index('ix_documents_project_id', 'documents', ['project_id'])
    op.create_index('ix_documents_status', 'documents', ['status'])

    op.create_table(
        'document_permissions',
        sa.Column('document_id', sa.UUID(as_uuid=True), sa.ForeignKey('documents.id'), primary_key=True),
        sa.Column('user_id', sa.UUID(as_uuid=True), sa.ForeignKey('users.id'), primary_key=True),
        _status('permission', 'view'),
        sa.Column('granted_by', sa.UUID(as_uuid=True), sa.ForeignKey('users.id')),
        sa.Column('granted_at', sa.DateTime()),
    )
    op.create_index('ix_document_permissions_user_id', 'document_permissions', ['user_id'])

    op.create_table(
        'document_versions',
        sa.Column('document_id', sa.UUID(as_uuid=True), sa.ForeignKey('documents.id'), primary_key=True),
        sa.Column('version_number', sa.Integer(), primary_key=True),
        sa.Column('file_name', sa.String(), nullable=False),
        sa.Column('file_path', sa.String(), nullable=False),
        sa.Column('file_size', sa.Integer(), nullable=False),
        sa.Column('uploaded_by', sa.UUID(as_uuid=True), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('uploaded_at', sa.DateTime()),
        sa.Column('change_log', sa.String()),
    )

    op.create_table(
        'document_downloads',
        sa.Column('id', sa.UUID(as_uuid=True), primary_key=True),
        sa.Column('document_id', sa.UUID(as_uuid=True), sa.ForeignKey('documents.id'), nullable=False),
        sa.Column('user_id', sa.UUID(as_uuid=True), sa.ForeignKey('users.id')),
        sa.Column('downloaded_at', sa.DateTime()),
        sa.Column('ip_address', sa.String()),
    )
    op.create_index('ix_document_downloads_document_id', 'document_downloads', ['document_id'])

    op.create_table(
        'forums',
        sa.Column('id', sa.UUID(as_uuid=True), primary_key=True),
        sa.Column('project_id', sa.UUID(as_uuid=True), sa.ForeignKey('projects.id'), nullable=False),
        sa.Column('title', sa.String(), nullable=False),
        sa.Column('description', sa.Text(), nullable=False),
        sa.Column('created_by', sa.UUID(as_uuid=True), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('allow_file_attachments', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('require_moderation', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('allow_anonymous', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('created_at', sa.DateTime()),
        sa.Column('updated_at', sa.DateTime()),
    )
    op.create_index('ix_forums_project_id', 'forums', ['project_id'])

    op.create_table(
        'forum_moderators',
        sa.Column('forum_id', sa.UUID(as_uuid=True), sa.ForeignKey('forums.id'), primary_key=True),
        sa.Column('user_id', sa.UUID(as_uuid=True), sa.ForeignKey('users.id'), primary_key=True),
    )

    op.create_table(
        'discussions',
        sa.Column('id', sa.UUID(as_uuid=True), primary_key=True),
        sa.Column('forum_id', sa.UUID(as_uuid=True), sa.ForeignKey('forums.id'), nullable=False),
        sa.Column('project_id', sa.UUID(as_uuid=True), sa.ForeignKey('projects.id'), nullable=False),
        sa.Column('title', sa.String(), nullable=False),
        sa.Column('content', sa.Text(), nullable=False),
        sa.Column('tags', sa.JSON()),
        sa.Column('created_by', sa.UUID(as_uuid=True), sa.ForeignKey('users.id'), nullable=False),
        _status('status', 'active'),
        sa.Column('is_pinned', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('view_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('reply_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('last_activity', sa.DateTime()),
        sa.Column('created_at', sa.DateTime()),
        sa.Column('updated_at', sa.DateTime()),
    )
    op.create_index('ix_discussions_forum_id', 'discussions', ['forum_id'])
    op.create_index('ix_discussions_project_id', 'discussions', ['project_id'])

    op.create_table(
        'replies',
        sa.Column('id', sa.UUID(as_uuid=True), primary_key=True),
        sa.Column('discussion_id', sa.UUID(as_uuid=True), sa.ForeignKey('discussions.id'), nullable=False),
        sa.Column('author_id', sa.UUID(as_uuid=True), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('parent_reply_id', sa.UUID(as_uuid=True), sa.ForeignKey('replies.id')),
        sa.Column('content', sa.Text(), nullable=False),
        sa.Column('is_edited', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('edited_at', sa.DateTime()),
        _status('status', 'active'),
        sa.Column('created_at', sa.DateTime()),
        sa.Column('updated_at', sa.DateTime()),
    )
    op.create_index('ix_replies_discussion_id', 'replies', ['discussion_id'])
    op.create_index('ix_replies_created_at', 'replies', ['created_at'])


def downgrade() -> None:
    for table in (
        'replies',
        'discussions',
        'forum_moderators',
        'forums',
        'document_downloads',
        'document_versions',
        'document_permissions',
        'documents',
        'project_tasks',
        'project_members',
        'projects',
        'users',
    ):
        op.drop_table(table)
