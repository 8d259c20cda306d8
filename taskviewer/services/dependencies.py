"""Blocking-relationship checks over one session's task set.

Only ``blockedBy`` is trusted; ``blocks`` is informational and may disagree
with it. No cycle detection is done: tasks that block each other in a cycle
simply never become startable.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterable

from taskviewer.models import Task


@dataclass(frozen=True)
class DeleteCheck:
    task_id: str
    blocked_tasks: list[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.blocked_tasks


def unresolved_blockers(task: Task, all_tasks: Iterable[Task]) -> list[str]:
    """Ids in ``task.blockedBy`` naming a task that exists and is not completed."""
    status_by_id = {other.id: other.status for other in all_tasks}
    return [
        blocker_id
        for blocker_id in task.blockedBy
        if blocker_id in status_by_id and status_by_id[blocker_id] != "completed"
    ]


def can_start(task: Task, all_tasks: Iterable[Task]) -> bool:
    """False iff some blocker exists and is not completed; missing ids count as done."""
    return not unresolved_blockers(task, all_tasks)


def can_delete(task_id: str, all_tasks: Iterable[Task]) -> DeleteCheck:
    """Collect every other task whose ``blockedBy`` names ``task_id``."""
    blocked = [
        other.id
        for other in all_tasks
        if other.id != task_id and task_id in other.blockedBy
    ]
    return DeleteCheck(task_id=task_id, blocked_tasks=blocked)
