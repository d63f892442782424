"""Utility functions and helpers."""

from .dates import format_due_date, is_overdue
from .descriptions import is_html_content, markdown_to_html, strip_formatting
from .sanitize import LIKE_ESCAPE, escape_like, sanitize_string, sanitize_url
from .security import get_password_hash, verify_password

__all__ = [
    "LIKE_ESCAPE",
    "escape_like",
    "format_due_date",
    "get_password_hash",
    "is_html_content",
    "is_overdue",
    "markdown_to_html",
    "sanitize_string",
    "sanitize_url",
    "strip_formatting",
    "verify_password",
]
