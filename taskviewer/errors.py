"""Typed rejections raised by the task viewer services."""
from __future__ import annotations


class TaskViewerError(Exception):
    """Base class for every rejection the services raise."""


class NotFoundError(TaskViewerError):
    def __init__(self, kind: str, identifier: str):
        self.kind = kind
        self.identifier = identifier
        super().__init__(f"{kind.capitalize()} not found: {identifier}")


class TaskValidationError(TaskViewerError, ValueError):
    """Raised when a mutation request breaks a field or status rule."""

    def __init__(self, message: str, field: str | None = None):
        self.field = field
        super().__init__(message)


class BlockedDeletionError(TaskValidationError):
    """Raised when other tasks still list the task in their blockedBy."""

    def __init__(self, task_id: str, blocked_tasks: list[str]):
        self.task_id = task_id
        self.blocked_tasks = list(blocked_tasks)
        super().__init__(
            f"Cannot delete task {task_id}: it blocks task(s) {', '.join(self.blocked_tasks)}",
            field="blockedBy",
        )


class WriteFailedError(TaskViewerError):
    """Raised when a write path hits an OS-level failure."""
