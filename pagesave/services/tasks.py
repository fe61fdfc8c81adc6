"""Task registry: cancellation state for every save in flight."""

from __future__ import annotations

import logging
from collections.abc import Callable, Hashable
from typing import Any, Optional

from pagesave.core.exceptions import UploadCancelledError
from pagesave.models import TaskInfo, TaskStatus

logger = logging.getLogger(__name__)


class TaskRegistry:
    """Maps task ids to their cancelled flag and cancel callback.

    The cancelled flag only ever goes from False to True. A cancel callback is
    invoked at most once: by ``cancel`` if it is registered at that time,
    never afterwards.
    """

    def __init__(self) -> None:
        self._tasks: dict[str, TaskInfo] = {}

    def register(self, task_id: str, session_id: Optional[Hashable] = None) -> TaskInfo:
        """Return the task, creating it on first use.

        An existing entry is returned unchanged, so a cancel that arrived
        before the save started is kept.
        """
        task = self._tasks.get(task_id)
        if task is None:
            task = TaskInfo(task_id=task_id, session_id=session_id)
            self._tasks[task_id] = task
        elif task.session_id is None:
            task.session_id = session_id
        return task

    def set_cancel_callback(self, task_id: str, callback: Optional[Callable[[], None]]) -> None:
        """Install the function that interrupts the task's current upload."""
        task = self.register(task_id)
        task.cancel_callback = callback
        if callback is not None and not task.cancelled:
            task.status = TaskStatus.PROCESSING

    def cancel(self, task_id: str) -> None:
        task = self.register(task_id)
        if task.cancelled:
            return
        task.cancelled = True
        task.status = TaskStatus.CANCELLED
        callback, task.cancel_callback = task.cancel_callback, None
        logger.info("Task %s cancelled", task_id)
        if callback is not None:
            callback()

    def cancel_all(self) -> None:
        for task_id in list(self._tasks):
            self.cancel(task_id)

    def is_cancelled(self, task_id: Optional[str]) -> bool:
        task = self._tasks.get(task_id) if task_id is not None else None
        return task is not None and task.cancelled

    def ensure_active(self, task_id: Optional[str]) -> None:
        """Raise if the task has been cancelled.

        Raises:
            UploadCancelledError: If the task is cancelled.
        """
        if self.is_cancelled(task_id):
            raise UploadCancelledError()

    def get_info(self, task_id: str) -> Optional[dict[str, Any]]:
        task = self._tasks.get(task_id)
        return task.to_dict() if task else None

    def get_tasks_info(self) -> list[dict[str, Any]]:
        return [task.to_dict() for task in self._tasks.values()]

    def on_save_end(self, task_id: Optional[str]) -> None:
        """Forget a finished task."""
        if task_id is not None and self._tasks.pop(task_id, None) is not None:
            logger.debug("Task %s removed", task_id)

    def __contains__(self, task_id: object) -> bool:
        return task_id in self._tasks

    def __len__(self) -> int:
        return len(self._tasks)
