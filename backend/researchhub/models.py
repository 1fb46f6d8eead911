import enum
import uuid
from datetime import datetime, timezone

import sqlalchemy as sa
from sqlalchemy import (
    Column,
    String,
    Boolean,
    DateTime,
    ForeignKey,
    JSON,
    Integer,
    Text,
    Table,
)
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship, attribute_keyed_dict

from .database import Base


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: datetime) -> datetime:
    """SQLite hands datetimes back naive; treat those as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class UserRole(str, enum.Enum):
    RESEARCHER = "researcher"
    ACADEMIC_MANAGER = "academic_manager"
    ADMINISTRATOR = "administrator"


class ProjectRole(str, enum.Enum):
    PROJECT_MANAGER = "project_manager"
    RESEARCHER = "researcher"
    COLLABORATOR = "collaborator"
    VIEWER = "viewer"


class ProjectStatus(str, enum.Enum):
    PLANNING = "planning"
    ACTIVE = "active"
    ON_HOLD = "on_hold"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class ProjectCategory(str, enum.Enum):
    RESEARCH = "research"
    DEVELOPMENT = "development"
    ANALYSIS = "analysis"
    COLLABORATION = "collaboration"
    OTHER = "other"


class TaskStatus(str, enum.Enum):
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    ON_HOLD = "on_hold"


class TaskPriority(str, enum.Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    URGENT = "urgent"


class DocumentStatus(str, enum.Enum):
    ACTIVE = "active"
    ARCHIVED = "archived"
    DELETED = "deleted"


class DocumentCategory(str, enum.Enum):
    RESEARCH_PAPER = "research_paper"
    DATASET = "dataset"
    PRESENTATION = "presentation"
    REPORT = "report"
    CODE = "code"
    OTHER = "other"


class PermissionLevel(str, enum.Enum):
    VIEW = "view"
    COMMENT = "comment"
    EDIT = "edit"
    DOWNLOAD = "download"

    @property
    def rank(self) -> int:
        return _PERMISSION_RANKS[self]


_PERMISSION_RANKS = {
    PermissionLevel.VIEW: 1,
    PermissionLevel.COMMENT: 2,
    PermissionLevel.EDIT: 3,
    PermissionLevel.DOWNLOAD: 4,
}


class DiscussionStatus(str, enum.Enum):
    ACTIVE = "active"
    CLOSED = "closed"
    ARCHIVED = "archived"
    DELETED = "deleted"


class ReplyStatus(str, enum.Enum):
    ACTIVE = "active"
    DELETED = "deleted"
    MODERATED = "moderated"


def _enum(enum_cls):
    # store the lowercase values, not the member names
    return sa.Enum(
        enum_cls,
        native_enum=False,
        length=32,
        values_callable=lambda members: [m.value for m in members],
        validate_strings=True,
    )


class User(Base):
    __tablename__ = "users"
    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    username = Column(String, unique=True, nullable=False, index=True)
    email = Column(String, unique=True, nullable=False, index=True)
    hashed_password = Column(String, nullable=False)
    affiliation = Column(String)
    role = Column(_enum(UserRole), default=UserRole.RESEARCHER, nullable=False)
    is_email_verified = Column(Boolean, default=False, nullable=False)
    email_verification_token = Column(String, index=True)
    email_verification_expires = Column(DateTime)
    reset_password_token = Column(String, index=True)
    reset_password_expires = Column(DateTime)
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)


class Project(Base):
    __tablename__ = "projects"
    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    title = Column(String, nullable=False)
    description = Column(Text, nullable=False)
    goals = Column(JSON, default=list)
    objectives = Column(JSON, default=list)
    deliverables = Column(JSON, default=list)
    start_date = Column(DateTime, nullable=False)
    end_date = Column(DateTime, nullable=False)
    created_by = Column(UUID(as_uuid=True), ForeignKey("users.id"), nullable=False, index=True)
    status = Column(_enum(ProjectStatus), default=ProjectStatus.PLANNING, nullable=False, index=True)
    category = Column(_enum(ProjectCategory), default=ProjectCategory.RESEARCH, nullable=False)
    is_public = Column(Boolean, default=False, nullable=False)
    tags = Column(JSON, default=list)
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    creator = relationship("User", foreign_keys=[created_by])
    # keyed by user id: membership lookup is a dict access
    members = relationship(
        "ProjectMember",
        collection_class=attribute_keyed_dict("user_id"),
        back_populates="project",
        cascade="all, delete-orphan",
    )
    tasks = relationship(
        "ProjectTask",
        back_populates="project",
        cascade="all, delete-orphan",
        order_by="ProjectTask.created_at",
    )


class ProjectMember(Base):
    __tablename__ = "project_members"
    project_id = Column(UUID(as_uuid=True), ForeignKey("projects.id"), primary_key=True)
    user_id = Column(UUID(as_uuid=True), ForeignKey("users.id"), primary_key=True, index=True)
    role = Column(_enum(ProjectRole), default=ProjectRole.COLLABORATOR, nullable=False)
    can_edit = Column(Boolean, default=False, nullable=False)
    can_manage_members = Column(Boolean, default=False, nullable=False)
    can_upload_documents = Column(Boolean, default=True, nullable=False)
    can_view_documents = Column(Boolean, default=True, nullable=False)
    joined_at = Column(DateTime, default=utcnow)

    project = relationship("Project", back_populates="members")
    user = relationship("User")


class ProjectTask(Base):
    __tablename__ = "project_tasks"
    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    project_id = Column(UUID(as_uuid=True), ForeignKey("projects.id"), nullable=False, index=True)
    title = Column(String, nullable=False)
    description = Column(Text)
    assigned_to = Column(UUID(as_uuid=True), ForeignKey("users.id"))
    status = Column(_enum(TaskStatus), default=TaskStatus.PENDING, nullable=False)
    priority = Column(_enum(TaskPriority), default=TaskPriority.MEDIUM, nullable=False)
    due_date = Column(DateTime)
    created_by = Column(UUID(as_uuid=True), ForeignKey("users.id"))
    created_at = Column(DateTime, default=utcnow)
    completed_at = Column(DateTime)

    project = relationship("Project", back_populates="tasks")


class Document(Base):
    __tablename__ = "documents"
    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    project_id = Column(UUID(as_uuid=True), ForeignKey("projects.id"), nullable=False, index=True)
    uploaded_by = Column(UUID(as_uuid=True), ForeignKey("users.id"), nullable=False)
    title = Column(String, nullable=False)
    description = Column(Text, default="")
    file_name = Column(String, nullable=False)
    original_name = Column(String, nullable=False)
    file_path = Column(String, nullable=False)
    file_size = Column(Integer, nullable=False)
    mime_type = Column(String, nullable=False)
    file_extension = Column(String, default="")
    category = Column(_enum(DocumentCategory), default=DocumentCategory.OTHER, nullable=False)
    tags = Column(JSON, default=list)
    is_public = Column(Boolean, default=False, nullable=False)
    current_version = Column(Integer, default=1, nullable=False)
    status = Column(_enum(DocumentStatus), default=DocumentStatus.ACTIVE, nullable=False, index=True)
    view_count = Column(Integer, default=0, nullable=False)
    last_viewed_at = Column(DateTime, default=utcnow)
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    uploader = relationship("User", foreign_keys=[uploaded_by])
    project = relationship("Project")
    allowed_users = relationship(
        "DocumentPermission",
        collection_class=attribute_keyed_dict("user_id"),
        cascade="all, delete-orphan",
    )
    versions = relationship(
        "DocumentVersion",
        cascade="all, delete-orphan",
        order_by="DocumentVersion.version_number",
    )
    downloads = relationship("DocumentDownload", cascade="all, delete-orphan")


class DocumentPermission(Base):
    __tablename__ = "document_permissions"
    document_id = Column(UUID(as_uuid=True), ForeignKey("documents.id"), primary_key=True)
    user_id = Column(UUID(as_uuid=True), ForeignKey("users.id"), primary_key=True, index=True)
    permission = Column(_enum(PermissionLevel), default=PermissionLevel.VIEW, nullable=False)
    granted_by = Column(UUID(as_uuid=True), ForeignKey("users.id"))
    granted_at = Column(DateTime, default=utcnow)


class DocumentVersion(Base):
    __tablename__ = "document_versions"
    document_id = Column(UUID(as_uuid=True), ForeignKey("documents.id"), primary_key=True)
    version_number = Column(Integer, primary_key=True)
    file_name = Column(String, nullable=False)
    file_path = Column(String, nullable=False)
    file_size = Column(Integer, nullable=False)
    uploaded_by = Column(UUID(as_uuid=True), ForeignKey("users.id"), nullable=False)
    uploaded_at = Column(DateTime, default=utcnow)
    change_log = Column(String, default="")


class DocumentDownload(Base):
    __tablename__ = "document_downloads"
    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    document_id = Column(UUID(as_uuid=True), ForeignKey("documents.id"), nullable=False, index=True)
    user_id = Column(UUID(as_uuid=True), ForeignKey("users.id"))
    downloaded_at = Column(DateTime, default=utcnow)
    ip_address = Column(String)


forum_moderators = Table(
    "forum_moderators",
    Base.metadata,
    Column("forum_id", UUID(as_uuid=True), ForeignKey("forums.id"), primary_key=True),
    Column("user_id", UUID(as_uuid=True), ForeignKey("users.id"), primary_key=True),
)


class Forum(Base):
    __tablename__ = "forums"
    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    project_id = Column(UUID(as_uuid=True), ForeignKey("projects.id"), nullable=False, index=True)
    title = Column(String, nullable=False)
    description = Column(Text, nullable=False)
    created_by = Column(UUID(as_uuid=True), ForeignKey("users.id"), nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)
    allow_file_attachments = Column(Boolean, default=True, nullable=False)
    require_moderation = Column(Boolean, default=False, nullable=False)
    allow_anonymous = Column(Boolean, default=False, nullable=False)
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    creator = relationship("User", foreign_keys=[created_by])
    moderators = relationship("User", secondary=forum_moderators)


class Discussion(Base):
    __tablename__ = "discussions"
    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    forum_id = Column(UUID(as_uuid=True), ForeignKey("forums.id"), nullable=False, index=True)
    project_id = Column(UUID(as_uuid=True), ForeignKey("projects.id"), nullable=False, index=True)
    title = Column(String, nullable=False)
    content = Column(Text, nullable=False)
    tags = Column(JSON, default=list)
    created_by = Column(UUID(as_uuid=True), ForeignKey("users.id"), nullable=False)
    status = Column(_enum(DiscussionStatus), default=DiscussionStatus.ACTIVE, nullable=False)
    is_pinned = Column(Boolean, default=False, nullable=False)
    view_count = Column(Integer, default=0, nullable=False)
    reply_count = Column(Integer, default=0, nullable=False)
    last_activity = Column(DateTime, default=utcnow)
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    author = relationship("User", foreign_keys=[created_by])
    forum = relationship("Forum")


class Reply(Base):
    __tablename__ = "replies"
    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    discussion_id = Column(UUID(as_uuid=True), ForeignKey("discussions.id"), nullable=False, index=True)
    author_id = Column(UUID(as_uuid=True), ForeignKey("users.id"), nullable=False)
    parent_reply_id = Column(UUID(as_uuid=True), ForeignKey("replies.id"), nullable=True)
    content = Column(Text, nullable=False)
    is_edited = Column(Boolean, default=False, nullable=False)
    edited_at = Column(DateTime)
    status = Column(_enum(ReplyStatus), default=ReplyStatus.ACTIVE, nullable=False)
    created_at = Column(DateTime, default=utcnow, index=True)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    author = relationship("User", foreign_keys=[author_id])
