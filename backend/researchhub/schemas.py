from __future__ import annotations

from datetime import datetime
from typing import Annotated, Generic, Literal, Optional, List, TypeVar
from uuid import UUID

from pydantic import BaseModel, EmailStr, ConfigDict, Field, field_validator, model_validator, computed_field
from pydantic import StringConstraints

from .models import (
    UserRole,
    ProjectRole,
    ProjectStatus,
    ProjectCategory,
    TaskStatus,
    TaskPriority,
    DocumentStatus,
    DocumentCategory,
    PermissionLevel,
    DiscussionStatus,
    ReplyStatus,
    as_utc,
)

T = TypeVar("T")

Username = Annotated[str, StringConstraints(strip_whitespace=True, min_length=3, max_length=50)]
Affiliation = Annotated[str, StringConstraints(strip_whitespace=True, min_length=2, max_length=200)]
Password = Annotated[str, StringConstraints(min_length=6)]
NonBlank = Annotated[str, StringConstraints(strip_whitespace=True, min_length=1)]


class Envelope(BaseModel, Generic[T]):
    success: bool = True
    message: Optional[str] = None
    data: Optional[T] = None


class Pagination(BaseModel):
    current_page: int
    total_pages: int
    total_items: int
    has_next: bool
    has_prev: bool


# --- users -----------------------------------------------------------------


class UserCreate(BaseModel):
    username: Username
    email: EmailStr
    password: Password
    affiliation: Affiliation
    role: UserRole = UserRole.RESEARCHER

    @field_validator("role")
    @classmethod
    def no_self_service_admin(cls, value: UserRole):
        # administrators are provisioned out of band
        if value is UserRole.ADMINISTRATOR:
            raise ValueError("Administrator accounts cannot be self-registered")
        return value


class UserSummary(BaseModel):
    id: UUID
    username: str
    email: EmailStr
    model_config = ConfigDict(from_attributes=True)


class UserOut(UserSummary):
    role: UserRole
    affiliation: Optional[str] = None
    is_email_verified: bool
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class UserUpdate(BaseModel):
    username: Optional[Username] = None
    affiliation: Optional[Affiliation] = None


class LoginRequest(BaseModel):
    email: EmailStr
    password: str = Field(min_length=1)


class LoginOut(BaseModel):
    access_token: str
    token_type: str = "bearer"
    user: UserOut


class EmailRequest(BaseModel):
    email: EmailStr


class PasswordResetConfirm(BaseModel):
    new_password: Password


class UserStatusOut(BaseModel):
    username: str
    email: EmailStr
    role: UserRole
    affiliation: Optional[str] = None
    is_email_verified: bool
    can_be_added_to_project: bool
    member_since: Optional[datetime] = None


class DashboardStats(BaseModel):
    total_projects: int
    owned_projects: int
    total_collaborations: int
    total_documents: int
    total_discussions: int


class DashboardOut(BaseModel):
    user: UserOut
    stats: DashboardStats


class UserPage(BaseModel):
    users: List[UserOut]
    pagination: Pagination


class AdminStatsOut(BaseModel):
    total_users: int
    verified_users: int
    unverified_users: int
    role_distribution: dict[str, int]


# --- projects --------------------------------------------------------------


class PermissionSetSchema(BaseModel):
    can_edit: bool = False
    can_manage_members: bool = False
    can_upload_documents: bool = False
    can_view_documents: bool = False
    model_config = ConfigDict(from_attributes=True)


class Deliverable(BaseModel):
    title: NonBlank
    description: Optional[str] = None
    due_date: Optional[datetime] = None
    status: Literal["pending", "in_progress", "completed"] = "pending"


def _clean_entries(values: list[str] | None) -> list[str] | None:
    if values is None:
        return None
    return [v.strip() for v in values if v and v.strip()]


class ProjectCreate(BaseModel):
    title: Annotated[str, StringConstraints(strip_whitespace=True, min_length=3)]
    description: Annotated[str, StringConstraints(strip_whitespace=True, min_length=10)]
    goals: List[str]
    objectives: List[str]
    deliverables: List[Deliverable] = []
    start_date: datetime
    end_date: datetime
    category: ProjectCategory = ProjectCategory.RESEARCH
    is_public: bool = False
    tags: List[str] = []

    @field_validator("goals", "objectives")
    @classmethod
    def require_entries(cls, values: list[str], info):
        cleaned = _clean_entries(values)
        if not cleaned:
            raise ValueError(f"At least one valid {info.field_name[:-1]} is required")
        return cleaned

    @field_validator("tags")
    @classmethod
    def strip_tags(cls, values: list[str]):
        return _clean_entries(values)

    @model_validator(mode="after")
    def check_timeline(self):
        if as_utc(self.start_date) >= as_utc(self.end_date):
            raise ValueError("End date must be after start date")
        return self


class ProjectUpdate(BaseModel):
    title: Optional[Annotated[str, StringConstraints(strip_whitespace=True, min_length=3)]] = None
    description: Optional[Annotated[str, StringConstraints(strip_whitespace=True, min_length=10)]] = None
    goals: Optional[List[str]] = None
    objectives: Optional[List[str]] = None
    deliverables: Optional[List[Deliverable]] = None
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    status: Optional[ProjectStatus] = None
    category: Optional[ProjectCategory] = None
    is_public: Optional[bool] = None
    tags: Optional[List[str]] = None

    @field_validator("goals", "objectives")
    @classmethod
    def require_entries(cls, values: list[str] | None, info):
        cleaned = _clean_entries(values)
        if cleaned is not None and not cleaned:
            raise ValueError(f"At least one valid {info.field_name[:-1]} is required")
        return cleaned

    @model_validator(mode="after")
    def check_timeline(self):
        if self.start_date and self.end_date and as_utc(self.start_date) >= as_utc(self.end_date):
            raise ValueError("End date must be after start date")
        return self


class MemberOut(PermissionSetSchema):
    user_id: UUID
    user: Optional[UserSummary] = None
    role: ProjectRole
    joined_at: Optional[datetime] = None


class ProjectOut(BaseModel):
    id: UUID
    title: str
    description: str
    goals: List[str] = []
    objectives: List[str] = []
    deliverables: List[Deliverable] = []
    start_date: datetime
    end_date: datetime
    created_by: UUID
    creator: Optional[UserSummary] = None
    status: ProjectStatus
    category: ProjectCategory
    is_public: bool
    tags: List[str] = []
    members: List[MemberOut] = []
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    model_config = ConfigDict(from_attributes=True)

    @field_validator("members", mode="before")
    @classmethod
    def members_as_list(cls, value):
        # the ORM collection is keyed by user id
        if hasattr(value, "values"):
            return list(value.values())
        return value


class ProjectAccessOut(ProjectOut):
    user_role: Optional[ProjectRole] = None
    user_permissions: Optional[PermissionSetSchema] = None


class ProjectPage(BaseModel):
    projects: List[ProjectAccessOut]
    pagination: Pagination


class AddMemberRequest(BaseModel):
    email: EmailStr
    role: ProjectRole = ProjectRole.COLLABORATOR
    permissions: Optional[PermissionSetSchema] = None


class TaskCreate(BaseModel):
    title: NonBlank
    description: Optional[str] = None
    assigned_to: Optional[UUID] = None
    status: TaskStatus = TaskStatus.PENDING
    priority: TaskPriority = TaskPriority.MEDIUM
    due_date: Optional[datetime] = None


class TaskUpdate(BaseModel):
    title: Optional[NonBlank] = None
    description: Optional[str] = None
    assigned_to: Optional[UUID] = None
    status: Optional[TaskStatus] = None
    priority: Optional[TaskPriority] = None
    due_date: Optional[datetime] = None


class TaskOut(BaseModel):
    id: UUID
    project_id: UUID
    title: str
    description: Optional[str] = None
    assigned_to: Optional[UUID] = None
    status: TaskStatus
    priority: TaskPriority
    due_date: Optional[datetime] = None
    created_by: Optional[UUID] = None
    created_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    model_config = ConfigDict(from_attributes=True)


# --- documents -------------------------------------------------------------


class DocumentVersionOut(BaseModel):
    version_number: int
    file_name: str
    file_size: int
    uploaded_by: UUID
    uploaded_at: Optional[datetime] = None
    change_log: str = ""
    model_config = ConfigDict(from_attributes=True)


class DocumentGrantIn(BaseModel):
    user_id: UUID
    permission: PermissionLevel = PermissionLevel.VIEW


class DocumentGrantOut(DocumentGrantIn):
    granted_by: Optional[UUID] = None
    granted_at: Optional[datetime] = None
    model_config = ConfigDict(from_attributes=True)


class DocumentOut(BaseModel):
    id: UUID
    project_id: UUID
    title: str
    description: Optional[str] = ""
    original_name: str
    file_size: int
    mime_type: str
    file_extension: Optional[str] = ""
    category: DocumentCategory
    tags: List[str] = []
    is_public: bool
    allowed_users: List[DocumentGrantOut] = []
    current_version: int
    versions: List[DocumentVersionOut] = []
    status: DocumentStatus
    view_count: int = 0
    uploaded_by: UUID
    uploader: Optional[UserSummary] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    model_config = ConfigDict(from_attributes=True)

    @field_validator("allowed_users", mode="before")
    @classmethod
    def grants_as_list(cls, value):
        if hasattr(value, "values"):
            return list(value.values())
        return value

    @computed_field
    @property
    def file_url(self) -> str:
        return f"/api/documents/{self.id}/download"


class DocumentPage(BaseModel):
    documents: List[DocumentOut]
    pagination: Pagination


class DocumentUpdate(BaseModel):
    title: Optional[NonBlank] = None
    description: Optional[str] = None
    category: Optional[DocumentCategory] = None
    tags: Optional[List[str]] = None
    is_public: Optional[bool] = None

    @field_validator("tags")
    @classmethod
    def strip_tags(cls, values):
        return _clean_entries(values)


class DocumentPermissionsUpdate(BaseModel):
    is_public: Optional[bool] = None
    allowed_users: Optional[List[DocumentGrantIn]] = None


# --- forums ----------------------------------------------------------------


class ForumSettings(BaseModel):
    allow_file_attachments: bool = True
    require_moderation: bool = False
    allow_anonymous: bool = False


class ForumCreate(BaseModel):
    title: NonBlank
    description: NonBlank
    settings: ForumSettings = ForumSettings()


class ForumOut(BaseModel):
    id: UUID
    project_id: UUID
    title: str
    description: str
    created_by: UUID
    creator: Optional[UserSummary] = None
    moderators: List[UserSummary] = []
    is_active: bool
    allow_file_attachments: bool
    require_moderation: bool
    allow_anonymous: bool
    created_at: Optional[datetime] = None
    model_config = ConfigDict(from_attributes=True)


class DiscussionCreate(BaseModel):
    title: NonBlank
    content: NonBlank
    tags: List[str] = []

    @field_validator("tags")
    @classmethod
    def strip_tags(cls, values):
        return _clean_entries(values)


class DiscussionOut(BaseModel):
    id: UUID
    forum_id: UUID
    project_id: UUID
    title: str
    content: str
    tags: List[str] = []
    created_by: UUID
    author: Optional[UserSummary] = None
    status: DiscussionStatus
    is_pinned: bool
    view_count: int
    reply_count: int
    last_activity: Optional[datetime] = None
    created_at: Optional[datetime] = None
    model_config = ConfigDict(from_attributes=True)


class DiscussionPage(BaseModel):
    discussions: List[DiscussionOut]
    pagination: Pagination


class ReplyCreate(BaseModel):
    content: NonBlank
    parent_reply_id: Optional[UUID] = None


class ReplyUpdate(BaseModel):
    content: NonBlank


class ReplyOut(BaseModel):
    id: UUID
    discussion_id: UUID
    author_id: UUID
    author: Optional[UserSummary] = None
    parent_reply_id: Optional[UUID] = None
    content: str
    is_edited: bool
    edited_at: Optional[datetime] = None
    status: ReplyStatus
    created_at: Optional[datetime] = None
    model_config = ConfigDict(from_attributes=True)


# Response shape only; thread routes render trees with services.forums.tree_to_dicts.
class ReplyThreadOut(ReplyOut):
    children: List["ReplyThreadOut"] = []


class ReplyPage(BaseModel):
    replies: List[ReplyThreadOut]
    total_replies: int
    has_more: bool


class DiscussionDetailOut(BaseModel):
    discussion: DiscussionOut
    replies: List[ReplyThreadOut]


ReplyThreadOut.model_rebuild()
