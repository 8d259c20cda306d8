import json
import tempfile
import unittest
from pathlib import Path

from taskviewer.config import ClaudePaths
from taskviewer.errors import BlockedDeletionError, NotFoundError, TaskValidationError
from taskviewer.services.metadata_resolver import MetadataResolver
from taskviewer.services.mutations import NOTE_SEPARATOR, TaskMutationService


class MutationTestCase(unittest.TestCase):
    def setUp(self) -> None:
        tmpdir = tempfile.TemporaryDirectory()
        self.addCleanup(tmpdir.cleanup)
        self.paths = ClaudePaths.under(Path(tmpdir.name))
        self.resolver = MetadataResolver(self.paths)
        self.service = TaskMutationService(self.paths, self.resolver)

    def _write_task(self, session_id: str, task: dict) -> Path:
        path = self.paths.tasks_dir / session_id / f"{task['id']}.json"
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(json.dumps(task), encoding="utf-8")
        return path

    def _read_task(self, session_id: str, task_id: str) -> dict:
        return json.loads((self.paths.tasks_dir / session_id / f"{task_id}.json").read_text(encoding="utf-8"))


class CreateTaskTests(MutationTestCase):
    def test_ids_increment_from_one(self) -> None:
        first = self.service.create_task("s1", "First")
        second = self.service.create_task("s1", "Second")

        self.assertEqual((first.id, second.id), ("1", "2"))
        stored = self._read_task("s1", "2")
        self.assertEqual(stored["subject"], "Second")
        self.assertEqual(stored["status"], "pending")
        self.assertEqual(stored["blocks"], [])
        self.assertEqual(stored["blockedBy"], [])

    def test_file_is_pretty_printed_json(self) -> None:
        self.service.create_task("s1", "First")
        text = (self.paths.tasks_dir / "s1" / "1.json").read_text(encoding="utf-8")
        self.assertIn('\n  "subject": "First"', text)

    def test_subject_is_required(self) -> None:
        for subject in (None, "", "   "):
            with self.assertRaises(TaskValidationError):
                self.service.create_task("s1", subject)
        self.assertFalse((self.paths.tasks_dir / "s1").exists())

    def test_deleting_the_only_task_lets_its_id_be_reused(self) -> None:
        self.service.create_task("s1", "Only")
        self.service.delete_task("s1", "1")
        self.assertEqual(self.service.create_task("s1", "Again").id, "1")

    def test_foreign_digit_file_names_are_ignored(self) -> None:
        session_dir = self.paths.tasks_dir / "s1"
        session_dir.mkdir(parents=True)
        (session_dir / "\u00b2.json").write_text("{}", encoding="utf-8")

        self.assertEqual(self.service.create_task("s1", "First").id, "1")

    def test_gaps_below_the_maximum_are_not_filled(self) -> None:
        for subject in ("a", "b", "c"):
            self.service.create_task("s1", subject)
        self.service.delete_task("s1", "2")
        self.assertEqual(self.service.create_task("s1", "d").id, "4")

    def test_fields_are_passed_through(self) -> None:
        task = self.service.create_task(
            "s1", "  Spaced  ", description="Body", status="in_progress",
            blocks=["5"], blockedBy=["3"], activeForm="Working", metadata={"k": "v"}, order=2,
        )
        self.assertEqual(task.subject, "Spaced")
        stored = self._read_task("s1", task.id)
        self.assertEqual(stored["blockedBy"], ["3"])
        self.assertEqual(stored["order"], 2)
        self.assertEqual(stored["metadata"], {"k": "v"})

    def test_invalid_status_is_rejected(self) -> None:
        with self.assertRaises(TaskValidationError):
            self.service.create_task("s1", "x", status="done")

    def test_path_like_session_is_rejected(self) -> None:
        with self.assertRaises(TaskValidationError):
            self.service.create_task("../escape", "x")


class UpdateTaskTests(MutationTestCase):
    def test_start_allowed_when_blocker_completed(self) -> None:
        self._write_task("abc", {"id": "1", "subject": "one", "status": "completed"})
        self._write_task("abc", {"id": "2", "subject": "two", "blockedBy": ["1"]})

        task = self.service.update_task("abc", "2", {"status": "in_progress"})

        self.assertEqual(task.status, "in_progress")
        self.assertEqual(self._read_task("abc", "2")["status"], "in_progress")

    def test_start_rejected_when_blocker_pending(self) -> None:
        self._write_task("xyz", {"id": "1", "subject": "one", "status": "pending"})
        self._write_task("xyz", {"id": "2", "subject": "two", "blockedBy": ["1"]})

        with self.assertRaises(TaskValidationError) as ctx:
            self.service.update_task("xyz", "2", {"status": "in_progress"})

        self.assertEqual(ctx.exception.field, "status")
        self.assertEqual(self._read_task("xyz", "2").get("status"), None)

    def test_start_allowed_when_blocker_missing(self) -> None:
        self._write_task("s1", {"id": "2", "subject": "two", "blockedBy": ["7"]})
        self.assertEqual(self.service.update_task("s1", "2", {"status": "in_progress"}).status, "in_progress")

    def test_other_transitions_are_unrestricted(self) -> None:
        self._write_task("s1", {"id": "1", "subject": "one"})
        self._write_task("s1", {"id": "2", "subject": "two", "blockedBy": ["1"]})
        self.assertEqual(self.service.update_task("s1", "2", {"status": "completed"}).status, "completed")

    def test_only_allowed_fields_change_and_unknown_keys_survive(self) -> None:
        self._write_task("s1", {"id": "1", "subject": "one", "owner": "agent-7"})

        self.service.update_task("s1", "1", {"id": "99", "subject": "renamed", "owner": "me", "order": 3})

        stored = self._read_task("s1", "1")
        self.assertEqual(stored["id"], "1")
        self.assertEqual(stored["subject"], "renamed")
        self.assertEqual(stored["owner"], "agent-7")
        self.assertEqual(stored["order"], 3)

    def test_null_fields_are_written_back_normalized(self) -> None:
        self._write_task("s1", {"id": "1", "subject": "one", "metadata": {"k": "v"}, "description": "body"})

        task = self.service.update_task("s1", "1", {"metadata": None, "description": None, "blockedBy": [2]})

        stored = self._read_task("s1", "1")
        self.assertEqual(task.metadata, {})
        self.assertEqual(stored["metadata"], {})
        self.assertEqual(stored["description"], "")
        self.assertEqual(stored["blockedBy"], ["2"])

    def test_invalid_values_are_rejected(self) -> None:
        self._write_task("s1", {"id": "1", "subject": "one"})
        with self.assertRaises(TaskValidationError):
            self.service.update_task("s1", "1", {"status": "paused"})
        with self.assertRaises(TaskValidationError):
            self.service.update_task("s1", "1", {"subject": "  "})
        with self.assertRaises(TaskValidationError):
            self.service.update_task("s1", "1", {"blockedBy": "1"})

    def test_missing_task_is_not_found(self) -> None:
        with self.assertRaises(NotFoundError):
            self.service.update_task("s1", "1", {"subject": "x"})


class AppendNoteTests(MutationTestCase):
    def test_note_is_appended_after_separator(self) -> None:
        self._write_task("s1", {"id": "3", "subject": "three", "description": "Do X"})

        task = self.service.append_note("s1", "3", "  fix the typo ")

        self.assertTrue(task.description.startswith("Do X"))
        self.assertTrue(task.description.endswith(NOTE_SEPARATOR + "fix the typo"))
        self.assertEqual(self._read_task("s1", "3")["description"], "Do X" + NOTE_SEPARATOR + "fix the typo")

    def test_empty_note_is_rejected(self) -> None:
        self._write_task("s1", {"id": "3", "subject": "three", "description": "Do X"})
        with self.assertRaises(TaskValidationError):
            self.service.append_note("s1", "3", "   ")
        self.assertEqual(self._read_task("s1", "3")["description"], "Do X")

    def test_missing_task_is_not_found(self) -> None:
        with self.assertRaises(NotFoundError):
            self.service.append_note("s1", "3", "hello")


class DeleteTaskTests(MutationTestCase):
    def test_blocked_delete_reports_every_dependent(self) -> None:
        self._write_task("s1", {"id": "1", "subject": "one"})
        self._write_task("s1", {"id": "2", "subject": "two", "blockedBy": ["1"]})
        self._write_task("s1", {"id": "3", "subject": "three", "blockedBy": ["1"]})

        with self.assertRaises(BlockedDeletionError) as ctx:
            self.service.delete_task("s1", "1")

        self.assertEqual(ctx.exception.blocked_tasks, ["2", "3"])
        self.assertTrue((self.paths.tasks_dir / "s1" / "1.json").exists())

    def test_unreferenced_task_is_removed(self) -> None:
        self._write_task("s1", {"id": "1", "subject": "one", "blocks": ["2"]})
        self._write_task("s1", {"id": "2", "subject": "two"})

        self.assertEqual(self.service.delete_task("s1", "1"), "1")
        self.assertFalse((self.paths.tasks_dir / "s1" / "1.json").exists())

    def test_missing_task_is_not_found(self) -> None:
        with self.assertRaises(NotFoundError):
            self.service.delete_task("s1", "1")


class SessionMetadataTests(MutationTestCase):
    def setUp(self) -> None:
        super().setUp()
        project_dir = self.paths.projects_dir / "proj"
        project_dir.mkdir(parents=True)
        (project_dir / "s1.jsonl").write_text(json.dumps({"slug": "slug-one"}) + "\n", encoding="utf-8")
        self.index_path = project_dir / "sessions-index.json"

    def test_rename_is_written_to_sidecar_and_visible_immediately(self) -> None:
        self.assertEqual(self.resolver.resolve()["s1"].display_name, "slug-one")

        entry = self.service.update_session_metadata("s1", customName="  My session ", description="Notes")

        self.assertEqual(entry, {"sessionId": "s1", "customName": "My session", "description": "Notes"})
        stored = json.loads(self.index_path.read_text(encoding="utf-8"))
        self.assertEqual(stored["entries"], [entry])
        self.assertEqual(self.resolver.resolve()["s1"].display_name, "My session")

    def test_existing_entries_and_keys_are_preserved(self) -> None:
        self.index_path.write_text(
            json.dumps({"version": 1, "entries": [{"sessionId": "other", "customName": "Keep"}, {"sessionId": "s1", "gitBranch": "main"}]}),
            encoding="utf-8",
        )

        self.service.update_session_metadata("s1", description="")

        stored = json.loads(self.index_path.read_text(encoding="utf-8"))
        self.assertEqual(stored["version"], 1)
        self.assertEqual(stored["entries"][0], {"sessionId": "other", "customName": "Keep"})
        self.assertEqual(stored["entries"][1], {"sessionId": "s1", "gitBranch": "main", "description": None})

    def test_unknown_session_is_not_found(self) -> None:
        with self.assertRaises(NotFoundError):
            self.service.update_session_metadata("nope", customName="x")


if __name__ == "__main__":
    unittest.main()
