import unittest

from taskviewer.models import Task
from taskviewer.services.dependencies import can_delete, can_start, unresolved_blockers


def _task(task_id: str, status: str = "pending", blocked_by: list[str] | None = None, blocks: list[str] | None = None) -> Task:
    return Task(id=task_id, subject=f"Task {task_id}", status=status, blockedBy=blocked_by or [], blocks=blocks or [])


class CanStartTests(unittest.TestCase):
    def test_completed_blocker_allows_start(self) -> None:
        tasks = [_task("1", "completed"), _task("2", blocked_by=["1"])]
        self.assertTrue(can_start(tasks[1], tasks))

    def test_pending_or_running_blocker_prevents_start(self) -> None:
        for status in ("pending", "in_progress"):
            tasks = [_task("1", status), _task("2", blocked_by=["1"])]
            self.assertFalse(can_start(tasks[1], tasks), status)

    def test_missing_blocker_counts_as_satisfied(self) -> None:
        tasks = [_task("2", blocked_by=["9"])]
        self.assertTrue(can_start(tasks[0], tasks))

    def test_only_blocked_by_is_consulted(self) -> None:
        # "blocks" on task 1 names task 2, but task 2 declares no blockedBy.
        tasks = [_task("1", blocks=["2"]), _task("2")]
        self.assertTrue(can_start(tasks[1], tasks))

    def test_cycles_leave_tasks_unstartable(self) -> None:
        tasks = [_task("1", blocked_by=["2"]), _task("2", blocked_by=["1"])]
        self.assertFalse(can_start(tasks[0], tasks))
        self.assertFalse(can_start(tasks[1], tasks))

    def test_unresolved_blockers_lists_each_open_blocker(self) -> None:
        tasks = [_task("1"), _task("2", "completed"), _task("3", "in_progress"), _task("4", blocked_by=["1", "2", "3", "8"])]
        self.assertEqual(unresolved_blockers(tasks[3], tasks), ["1", "3"])


class CanDeleteTests(unittest.TestCase):
    def test_unreferenced_task_can_be_deleted(self) -> None:
        tasks = [_task("1", blocks=["2"]), _task("2")]
        check = can_delete("1", tasks)
        self.assertTrue(check.ok)
        self.assertEqual(check.blocked_tasks, [])

    def test_every_dependent_task_is_reported(self) -> None:
        tasks = [_task("1"), _task("2", blocked_by=["1"]), _task("3", blocked_by=["4", "1"]), _task("4")]
        check = can_delete("1", tasks)
        self.assertFalse(check.ok)
        self.assertEqual(check.blocked_tasks, ["2", "3"])

    def test_self_reference_does_not_block(self) -> None:
        tasks = [_task("1", blocked_by=["1"])]
        self.assertTrue(can_delete("1", tasks).ok)


if __name__ == "__main__":
    unittest.main()
