"""Task state and progress models.

Provides dataclasses for task bookkeeping and upload progress reporting.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Optional


class TaskStatus(Enum):
    """Lifecycle of a save task."""

    PENDING = "pending"
    PROCESSING = "processing"
    CANCELLED = "cancelled"


@dataclass
class TaskInfo:
    """Registry entry for one save operation."""

    task_id: str
    session_id: Any = None
    status: TaskStatus = TaskStatus.PENDING
    cancelled: bool = False
    cancel_callback: Optional[Callable[[], None]] = field(default=None, repr=False)
    created_at: datetime = field(default_factory=datetime.now)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for status queries."""
        return {
            "id": self.task_id,
            "session": self.session_id,
            "status": self.status.value,
            "cancelled": self.cancelled,
            "created_at": self.created_at.isoformat(),
        }


@dataclass
class UploadProgress:
    """Byte-level progress of one upload."""

    offset: int = 0
    size: int = 0

    @property
    def percent(self) -> float:
        """Calculate completion percentage."""
        if self.size == 0:
            return 0.0
        return (self.offset / self.size) * 100

    @property
    def is_complete(self) -> bool:
        return self.size > 0 and self.offset >= self.size
