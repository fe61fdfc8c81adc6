"""Data models for pagesave.

Provides the Pydantic inbound event model, the assembled payload and task
progress dataclasses.
"""

from __future__ import annotations

from .base import BaseModel
from .event import MIMETYPE_HTML, SessionEvent
from .payload import PayloadDescriptor
from .progress import TaskInfo, TaskStatus, UploadProgress

__all__ = [
    "BaseModel",
    "MIMETYPE_HTML",
    "SessionEvent",
    "PayloadDescriptor",
    "TaskInfo",
    "TaskStatus",
    "UploadProgress",
]
