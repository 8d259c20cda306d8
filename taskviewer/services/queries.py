"""Read-side operations: session list, task lists and team lookups.

Task reads always rescan the task directory; only session metadata and team
configs come from the caches.
"""
from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional, Union

from taskviewer.config import ClaudePaths
from taskviewer.date_utils import format_mtime
from taskviewer.errors import NotFoundError
from taskviewer.models import (
    SessionMetadataEntry,
    SessionSummary,
    Task,
    TaskWithSession,
    TeamConfig,
)
from taskviewer.parsers.scanner import is_safe_segment, list_session_dirs, scan_session_tasks
from taskviewer.services.metadata_resolver import MetadataResolver
from taskviewer.services.team_cache import TeamConfigCache

logger = logging.getLogger("taskviewer.queries")

SessionLimit = Union[int, str, None]


def sort_tasks(tasks: list[Task]) -> list[Task]:
    return sorted(tasks, key=lambda task: (task.numeric_id, task.id))


def _mtime(path: Path) -> Optional[float]:
    try:
        return path.stat().st_mtime
    except OSError:
        return None


class SessionQueryService:
    def __init__(self, paths: ClaudePaths, resolver: MetadataResolver, team_cache: TeamConfigCache):
        self.paths = paths
        self.resolver = resolver
        self.team_cache = team_cache

    def _summary(
        self,
        session_id: str,
        meta: Optional[SessionMetadataEntry],
        tasks: list[Task],
        mtime: Optional[float],
    ) -> SessionSummary:
        team = self.team_cache.load(session_id)
        return SessionSummary(
            id=session_id,
            name=meta.display_name if meta else None,
            slug=meta.slug if meta else None,
            project=meta.project if meta else None,
            description=meta.description if meta else None,
            gitBranch=meta.gitBranch if meta else None,
            taskCount=len(tasks),
            completed=sum(1 for task in tasks if task.status == "completed"),
            inProgress=sum(1 for task in tasks if task.status == "in_progress"),
            pending=sum(1 for task in tasks if task.status == "pending"),
            createdAt=meta.created if meta else None,
            modifiedAt=format_mtime(mtime),
            isTeam=team is not None,
            memberCount=len(team.members) if team else 0,
        )

    def list_sessions(self, limit: SessionLimit = None) -> list[SessionSummary]:
        """Every known session, most recently modified first."""
        metadata = self.resolver.resolve()
        rows: dict[str, tuple[float, SessionSummary]] = {}

        for session_dir in list_session_dirs(self.paths.tasks_dir):
            mtime = _mtime(session_dir)
            if mtime is None:
                continue
            session_id = session_dir.name
            tasks = scan_session_tasks(session_dir)
            rows[session_id] = (mtime, self._summary(session_id, metadata.get(session_id), tasks, mtime))

        for session_id, meta in metadata.items():
            if session_id in rows:
                continue
            mtime = _mtime(Path(meta.jsonlPath)) if meta.jsonlPath else None
            rows[session_id] = (mtime or 0.0, self._summary(session_id, meta, [], mtime))

        ordered = sorted(rows.values(), key=lambda row: (-row[0], row[1].id))
        sessions = [summary for _, summary in ordered]

        if isinstance(limit, int) and not isinstance(limit, bool) and limit > 0:
            sessions = sessions[:limit]
        logger.debug("Listed %d of %d sessions", len(sessions), len(rows))
        return sessions

    def list_tasks(self, session_id: str) -> list[Task]:
        if not is_safe_segment(session_id):
            raise NotFoundError("session", session_id)
        session_dir = self.paths.tasks_dir / session_id
        if not session_dir.is_dir():
            raise NotFoundError("session", session_id)
        return sort_tasks(scan_session_tasks(session_dir))

    def list_all_tasks(self) -> list[TaskWithSession]:
        metadata = self.resolver.resolve()
        all_tasks: list[TaskWithSession] = []
        for session_dir in list_session_dirs(self.paths.tasks_dir):
            session_id = session_dir.name
            meta = metadata.get(session_id)
            for task in sort_tasks(scan_session_tasks(session_dir)):
                data = task.model_dump()
                data.update(
                    sessionId=session_id,
                    sessionName=meta.display_name if meta else None,
                    project=meta.project if meta else None,
                )
                all_tasks.append(TaskWithSession.model_validate(data))
        return all_tasks

    def get_team_config(self, team_id: str) -> TeamConfig:
        team = self.team_cache.load(team_id)
        if team is None:
            raise NotFoundError("team", team_id)
        return team
