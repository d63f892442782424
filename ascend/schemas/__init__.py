"""Pydantic schemas package for request/response validation."""

from .activity import ActivityAction, ActivityPage, ActivityResponse
from .comment import CommentCreate, CommentResponse, CommentUpdate
from .common import Priority
from .document import DocumentCreate, DocumentResponse, DocumentType, DocumentUpdate
from .note import NoteCreate, NoteResponse, NoteTaskCreate, NoteUpdate, NoteWithTasks
from .notification import NotificationResponse, NotificationType
from .project import ProjectCreate, ProjectResponse, ProjectStatus, ProjectUpdate, ProjectWithCounts
from .project_member import (
    MemberRole,
    ProjectMemberInvite,
    ProjectMemberResponse,
    ProjectMemberUpdate,
)
from .search import SearchResults
from .task import (
    TaskCreate,
    TaskPositionUpdate,
    TaskReorder,
    TaskResponse,
    TaskSource,
    TaskStatus,
    TaskUpdate,
)
from .time_entry import (
    ProjectTimeReport,
    TimeEntityType,
    TimeEntryCreate,
    TimeEntryResponse,
    TimeEntryUpdate,
    TimerStart,
)
from .user import (
    AccountDeletion,
    EmailChange,
    PasswordChange,
    ProfileUpdate,
    UserCreate,
    UserResponse,
    UserSummary,
)

__all__ = [
    "AccountDeletion",
    "ActivityAction",
    "ActivityPage",
    "ActivityResponse",
    "CommentCreate",
    "CommentResponse",
    "CommentUpdate",
    "DocumentCreate",
    "DocumentResponse",
    "DocumentType",
    "DocumentUpdate",
    "EmailChange",
    "MemberRole",
    "NoteCreate",
    "NoteResponse",
    "NoteTaskCreate",
    "NoteUpdate",
    "NoteWithTasks",
    "NotificationResponse",
    "NotificationType",
    "PasswordChange",
    "Priority",
    "ProfileUpdate",
    "ProjectCreate",
    "ProjectMemberInvite",
    "ProjectMemberResponse",
    "ProjectMemberUpdate",
    "ProjectResponse",
    "ProjectStatus",
    "ProjectTimeReport",
    "ProjectUpdate",
    "ProjectWithCounts",
    "SearchResults",
    "TaskCreate",
    "TaskPositionUpdate",
    "TaskReorder",
    "TaskResponse",
    "TaskSource",
    "TaskStatus",
    "TaskUpdate",
    "TimeEntityType",
    "TimeEntryCreate",
    "TimeEntryResponse",
    "TimeEntryUpdate",
    "TimerStart",
    "UserCreate",
    "UserResponse",
    "UserSummary",
]
