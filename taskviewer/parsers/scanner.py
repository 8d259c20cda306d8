"""Stateless readers for the task, session-log and team-config directories.

Every function here tolerates partial or malformed data: a file that cannot
be parsed is skipped (and logged at DEBUG) instead of failing the scan, and a
missing root yields an empty result.
"""
from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, NamedTuple, Optional

from pydantic import ValidationError

from taskviewer import config
from taskviewer.models import TeamConfig, Task
from taskviewer.observability import record_parser_skip

logger = logging.getLogger("taskviewer.scanner")


class SessionLogInfo(NamedTuple):
    customTitle: Optional[str] = None
    slug: Optional[str] = None
    project: Optional[str] = None
    gitBranch: Optional[str] = None


# ── Bounded reads ───────────────────────────────────────────────────


def read_head(path: Path, limit: int = config.LOG_HEAD_BYTES) -> tuple[bytes, int]:
    """Read at most ``limit`` bytes from the start of ``path``.

    Returns the buffer and the number of bytes actually read. Cost is bounded
    by ``limit`` regardless of file size.
    """
    if limit <= 0:
        return b"", 0
    with path.open("rb") as handle:
        buffer = handle.read(limit)
    return buffer, len(buffer)


def _str_field(data: dict[str, Any], key: str) -> Optional[str]:
    value = data.get(key)
    if isinstance(value, str) and value.strip():
        return value
    return None


def read_session_log_info(path: Path, limit: int = config.LOG_HEAD_BYTES) -> SessionLogInfo:
    """Extract custom title, slug and working directory from the head of a log.

    Only the first ``limit`` bytes are inspected; scanning stops as soon as
    all three fields have been seen. The first occurrence of each field wins.
    """
    custom_title: Optional[str] = None
    slug: Optional[str] = None
    project: Optional[str] = None
    git_branch: Optional[str] = None

    try:
        buffer, bytes_read = read_head(path, limit)
    except OSError:
        return SessionLogInfo()

    text = buffer[:bytes_read].decode("utf-8", errors="ignore")
    for line in text.split("\n"):
        if not line.strip():
            continue
        try:
            data = json.loads(line)
        except json.JSONDecodeError:
            # Covers the line cut off at the window edge.
            continue
        if not isinstance(data, dict):
            continue

        if custom_title is None and data.get("type") == "custom-title":
            custom_title = _str_field(data, "customTitle")
        if slug is None:
            slug = _str_field(data, "slug")
        if project is None:
            project = _str_field(data, "cwd")
        if git_branch is None:
            git_branch = _str_field(data, "gitBranch")

        if custom_title and slug and project:
            break

    return SessionLogInfo(custom_title, slug, project, git_branch)


# ── Tasks root ──────────────────────────────────────────────────────


def is_safe_segment(name: str) -> bool:
    """True when ``name`` can be used as a single directory component."""
    return bool(name) and name not in {".", ".."} and "/" not in name and "\\" not in name


def list_session_dirs(tasks_dir: Path) -> list[Path]:
    """Immediate child directories of the tasks root (one per session)."""
    try:
        return sorted(p for p in tasks_dir.iterdir() if p.is_dir())
    except OSError:
        return []


def list_task_files(session_dir: Path) -> list[Path]:
    try:
        return sorted(
            p for p in session_dir.iterdir()
            if p.is_file() and p.suffix == config.TASK_FILE_SUFFIX
        )
    except OSError:
        return []


def parse_task_id(file_name: str) -> Optional[int]:
    """Numeric id encoded in a task file name, or None for foreign files."""
    stem = Path(file_name).stem
    if not (stem.isascii() and stem.isdigit()):
        return None
    return int(stem)


def load_task(path: Path) -> Optional[Task]:
    try:
        raw = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, UnicodeDecodeError, json.JSONDecodeError) as exc:
        logger.debug("Skipping unreadable task file %s: %s", path, exc)
        record_parser_skip("task")
        return None
    if not isinstance(raw, dict):
        logger.debug("Skipping task file %s: not a JSON object", path)
        record_parser_skip("task")
        return None
    try:
        return Task.model_validate(raw)
    except ValidationError as exc:
        logger.debug("Skipping malformed task file %s: %s", path, exc.errors()[:1])
        record_parser_skip("task")
        return None


def scan_session_tasks(session_dir: Path) -> list[Task]:
    """Every parseable task in one session directory, in file order."""
    tasks: list[Task] = []
    for task_file in list_task_files(session_dir):
        task = load_task(task_file)
        if task is not None:
            tasks.append(task)
    return tasks


# ── Projects root ───────────────────────────────────────────────────


def list_project_dirs(projects_dir: Path) -> list[Path]:
    try:
        return sorted(p for p in projects_dir.iterdir() if p.is_dir())
    except OSError:
        return []


def list_session_logs(project_dir: Path) -> list[Path]:
    try:
        return sorted(
            p for p in project_dir.iterdir()
            if p.is_file() and p.suffix == config.SESSION_LOG_SUFFIX
        )
    except OSError:
        return []


def load_sessions_index(index_path: Path) -> list[dict[str, Any]]:
    """Entries of a sidecar ``sessions-index.json``; empty when absent or invalid."""
    if not index_path.exists():
        return []
    try:
        data = json.loads(index_path.read_text(encoding="utf-8"))
    except (OSError, UnicodeDecodeError, json.JSONDecodeError) as exc:
        logger.debug("Skipping invalid sessions index %s: %s", index_path, exc)
        record_parser_skip("sessions-index")
        return []
    entries = data.get("entries") if isinstance(data, dict) else None
    if not isinstance(entries, list):
        return []
    return [entry for entry in entries if isinstance(entry, dict)]


# ── Teams root ──────────────────────────────────────────────────────


def list_team_ids(teams_dir: Path) -> list[str]:
    try:
        return sorted(
            p.name for p in teams_dir.iterdir()
            if p.is_dir() and (p / config.TEAM_CONFIG_FILENAME).is_file()
        )
    except OSError:
        return []


def load_team_config(teams_dir: Path, team_id: str) -> Optional[TeamConfig]:
    """Parse ``<teams_dir>/<team_id>/config.json``; None when absent or malformed."""
    config_path = teams_dir / team_id / config.TEAM_CONFIG_FILENAME
    try:
        raw = json.loads(config_path.read_text(encoding="utf-8"))
    except FileNotFoundError:
        return None
    except (OSError, UnicodeDecodeError, json.JSONDecodeError) as exc:
        logger.debug("Skipping unreadable team config %s: %s", config_path, exc)
        record_parser_skip("team-config")
        return None
    if not isinstance(raw, dict):
        record_parser_skip("team-config")
        return None

    members = raw.get("members")
    payload = {
        "teamId": team_id,
        "name": raw.get("name") or team_id,
        "description": raw.get("description"),
        "cwd": raw.get("cwd"),
        "leadSessionId": raw.get("leadSessionId"),
        "members": [m for m in members if isinstance(m, dict)] if isinstance(members, list) else [],
    }
    try:
        return TeamConfig.model_validate(payload)
    except ValidationError as exc:
        logger.debug("Skipping malformed team config %s: %s", config_path, exc.errors()[:1])
        record_parser_skip("team-config")
        return None
