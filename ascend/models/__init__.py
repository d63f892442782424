"""SQLAlchemy ORM models package."""

from .activity_log import ActivityLog
from .comment import Comment
from .document import ProjectDocument
from .note import Note, NoteTask
from .notification import Notification
from .project import Project
from .project_member import ProjectMember
from .task import Task
from .time_entry import TimeEntry
from .user import User

__all__ = [
    "ActivityLog",
    "Comment",
    "Note",
    "NoteTask",
    "Notification",
    "Project",
    "ProjectDocument",
    "ProjectMember",
    "Task",
    "TimeEntry",
    "User",
]
