"""Create/update/delete operations on task files and the sessions index.

Every write reads the current file, merges, and replaces the whole file.
Writes go through the same paths the assistant uses, so the watcher sees
them like any external change.
"""
from __future__ import annotations

import json
import logging
import os
import uuid
from pathlib import Path
from typing import Any, Optional

from pydantic import ValidationError

from taskviewer import config
from taskviewer.config import ClaudePaths
from taskviewer.errors import (
    BlockedDeletionError,
    NotFoundError,
    TaskValidationError,
    WriteFailedError,
)
from taskviewer.models import TASK_STATUSES, Task
from taskviewer.observability import record_mutation, start_span
from taskviewer.parsers.scanner import (
    is_safe_segment,
    list_task_files,
    parse_task_id,
    scan_session_tasks,
)
from taskviewer.services.dependencies import can_delete, unresolved_blockers
from taskviewer.services.metadata_resolver import MetadataResolver

logger = logging.getLogger("taskviewer.mutations")

NOTE_SEPARATOR = "\n\n---\n\n#### [Note added by user]\n\n"

UPDATABLE_FIELDS = (
    "subject",
    "description",
    "status",
    "activeForm",
    "blocks",
    "blockedBy",
    "metadata",
    "order",
)

_UNSET: Any = object()


def write_json_file(path: Path, data: Any) -> None:
    """Replace ``path`` with pretty-printed JSON via a sibling temp file."""
    tmp_path = path.with_name(f".{path.name}.{uuid.uuid4().hex}.tmp")
    try:
        tmp_path.write_text(json.dumps(data, indent=2, ensure_ascii=False), encoding="utf-8")
        os.replace(tmp_path, path)
    except OSError as exc:
        tmp_path.unlink(missing_ok=True)
        raise WriteFailedError(f"Failed to write {path}: {exc}") from exc


def next_task_id(session_dir: Path) -> int:
    """One past the highest numeric task file name, or 1 for an empty session."""
    ids = [
        task_id
        for task_id in (parse_task_id(p.name) for p in list_task_files(session_dir))
        if task_id is not None
    ]
    return max(ids) + 1 if ids else 1


def _validate_status(value: Any) -> str:
    if value not in TASK_STATUSES:
        raise TaskValidationError(
            f"Invalid status {value!r}; expected one of {', '.join(TASK_STATUSES)}",
            field="status",
        )
    return value


def _to_task(raw: dict[str, Any]) -> Task:
    try:
        return Task.model_validate(raw)
    except ValidationError as exc:
        first = exc.errors()[0] if exc.errors() else {}
        field = ".".join(str(part) for part in first.get("loc", ())) or None
        raise TaskValidationError(first.get("msg", "Invalid task"), field=field) from exc


class TaskMutationService:
    def __init__(self, paths: ClaudePaths, resolver: MetadataResolver):
        self.paths = paths
        self.resolver = resolver

    # ── Paths ──────────────────────────────────────────────────────

    def _session_dir(self, session_id: str) -> Path:
        if not is_safe_segment(session_id):
            raise TaskValidationError(f"Invalid session id: {session_id!r}", field="sessionId")
        return self.paths.tasks_dir / session_id

    def _task_path(self, session_id: str, task_id: str) -> Path:
        session_dir = self._session_dir(session_id)
        if not is_safe_segment(task_id):
            raise NotFoundError("task", task_id)
        return session_dir / f"{task_id}{config.TASK_FILE_SUFFIX}"

    def _read_task_file(self, path: Path, task_id: str) -> dict[str, Any]:
        try:
            raw = json.loads(path.read_text(encoding="utf-8"))
        except FileNotFoundError as exc:
            raise NotFoundError("task", task_id) from exc
        except (UnicodeDecodeError, json.JSONDecodeError) as exc:
            raise TaskValidationError(f"Task {task_id} is not valid JSON and cannot be edited") from exc
        except OSError as exc:
            raise WriteFailedError(f"Failed to read {path}: {exc}") from exc
        if not isinstance(raw, dict):
            raise TaskValidationError(f"Task {task_id} is not a JSON object and cannot be edited")
        return raw

    # ── Tasks ──────────────────────────────────────────────────────

    def create_task(
        self,
        session_id: str,
        subject: Optional[str],
        description: Optional[str] = "",
        status: str = "pending",
        blocks: Optional[list[str]] = None,
        blockedBy: Optional[list[str]] = None,
        activeForm: Optional[str] = "",
        metadata: Optional[dict[str, Any]] = None,
        order: Optional[float] = None,
    ) -> Task:
        if not subject or not subject.strip():
            record_mutation("create", "rejected")
            raise TaskValidationError("Subject is required", field="subject")
        _validate_status(status)

        session_dir = self._session_dir(session_id)
        with start_span("task.create", {"session_id": session_id}):
            try:
                session_dir.mkdir(parents=True, exist_ok=True)
            except OSError as exc:
                raise WriteFailedError(f"Failed to create {session_dir}: {exc}") from exc

            task_id = next_task_id(session_dir)
            task_path = session_dir / f"{task_id}{config.TASK_FILE_SUFFIX}"
            # Another writer may have claimed the id since the listing.
            while task_path.exists():
                task_id += 1
                task_path = session_dir / f"{task_id}{config.TASK_FILE_SUFFIX}"

            raw: dict[str, Any] = {
                "id": str(task_id),
                "subject": subject.strip(),
                "description": description or "",
                "activeForm": activeForm or "",
                "status": status,
                "blocks": list(blocks or []),
                "blockedBy": list(blockedBy or []),
                "metadata": dict(metadata or {}),
            }
            if order is not None:
                raw["order"] = order
            task = _to_task(raw)
            write_json_file(task_path, raw)

        record_mutation("create", "ok")
        logger.info("Created task %s in session %s", task.id, session_id)
        return task

    def update_task(self, session_id: str, task_id: str, updates: dict[str, Any]) -> Task:
        task_path = self._task_path(session_id, task_id)
        raw = self._read_task_file(task_path, task_id)
        current = _to_task(raw)

        merged = dict(raw)
        for field in UPDATABLE_FIELDS:
            if field in updates:
                merged[field] = updates[field]

        if "status" in updates:
            _validate_status(updates["status"])
        if "subject" in updates and not str(updates["subject"] or "").strip():
            record_mutation("update", "rejected")
            raise TaskValidationError("Subject cannot be empty", field="subject")
        updated = _to_task(merged)
        # Write back what the model normalized (ids as strings, null bags as empty).
        for field in ("blocks", "blockedBy", "metadata", "description", "activeForm"):
            if field in updates:
                merged[field] = getattr(updated, field)

        if updated.status == "in_progress" and current.status != "in_progress":
            snapshot = scan_session_tasks(task_path.parent)
            blockers = unresolved_blockers(updated, snapshot)
            if blockers:
                record_mutation("update", "rejected")
                raise TaskValidationError(
                    f"Cannot start task {task_id}: blocked by unfinished task(s) {', '.join(blockers)}",
                    field="status",
                )

        with start_span("task.update", {"session_id": session_id, "task_id": task_id}):
            write_json_file(task_path, merged)
        record_mutation("update", "ok")
        logger.info("Updated task %s in session %s (%s)", task_id, session_id, ", ".join(sorted(updates)))
        return updated

    def append_note(self, session_id: str, task_id: str, note: Optional[str]) -> Task:
        if not note or not note.strip():
            record_mutation("note", "rejected")
            raise TaskValidationError("Note cannot be empty", field="note")

        task_path = self._task_path(session_id, task_id)
        raw = self._read_task_file(task_path, task_id)
        existing = raw.get("description")
        raw["description"] = (existing if isinstance(existing, str) else "") + NOTE_SEPARATOR + note.strip()
        task = _to_task(raw)

        with start_span("task.note", {"session_id": session_id, "task_id": task_id}):
            write_json_file(task_path, raw)
        record_mutation("note", "ok")
        return task

    def delete_task(self, session_id: str, task_id: str) -> str:
        task_path = self._task_path(session_id, task_id)
        if not task_path.is_file():
            raise NotFoundError("task", task_id)

        check = can_delete(task_id, scan_session_tasks(task_path.parent))
        if not check.ok:
            record_mutation("delete", "rejected")
            raise BlockedDeletionError(task_id, check.blocked_tasks)

        try:
            task_path.unlink()
        except FileNotFoundError as exc:
            raise NotFoundError("task", task_id) from exc
        except OSError as exc:
            raise WriteFailedError(f"Failed to delete {task_path}: {exc}") from exc
        record_mutation("delete", "ok")
        logger.info("Deleted task %s in session %s", task_id, session_id)
        return task_id

    # ── Sessions index ─────────────────────────────────────────────

    def update_session_metadata(
        self,
        session_id: str,
        customName: Optional[str] = _UNSET,
        description: Optional[str] = _UNSET,
    ) -> dict[str, Any]:
        """Write rename/description overrides to the session's sidecar index."""
        project_dir = self.resolver.project_dir_for(session_id)
        if project_dir is None:
            raise NotFoundError("session", session_id)

        index_path = project_dir / config.SESSIONS_INDEX_FILENAME
        index_data: dict[str, Any] = {"entries": []}
        if index_path.exists():
            try:
                loaded = json.loads(index_path.read_text(encoding="utf-8"))
            except (OSError, UnicodeDecodeError, json.JSONDecodeError) as exc:
                raise WriteFailedError(f"Refusing to overwrite unreadable {index_path}: {exc}") from exc
            if isinstance(loaded, dict):
                index_data = loaded
        entries = index_data.get("entries")
        if not isinstance(entries, list):
            entries = []
            index_data["entries"] = entries

        entry = next(
            (e for e in entries if isinstance(e, dict) and e.get("sessionId") == session_id),
            None,
        )
        if entry is None:
            entry = {"sessionId": session_id}
            entries.append(entry)

        if customName is not _UNSET:
            entry["customName"] = (customName or "").strip() or None
        if description is not _UNSET:
            entry["description"] = (description or "").strip() or None

        write_json_file(index_path, index_data)
        self.resolver.invalidate()
        record_mutation("session-metadata", "ok")
        logger.info("Updated session metadata for %s", session_id)
        return entry
