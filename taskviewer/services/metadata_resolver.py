"""Session display metadata merged from logs, sidecar indexes and team configs."""
from __future__ import annotations

import logging
import threading
import time
from pathlib import Path
from types import MappingProxyType
from typing import Any, Callable, Mapping, Optional

from taskviewer import config
from taskviewer.config import ClaudePaths
from taskviewer.models import SessionMetadataEntry
from taskviewer.observability import record_metadata_rebuild, start_span
from taskviewer.parsers.scanner import (
    list_project_dirs,
    list_session_dirs,
    list_session_logs,
    load_sessions_index,
    load_team_config,
    read_session_log_info,
)

logger = logging.getLogger("taskviewer.metadata")

SessionMetadataMap = Mapping[str, SessionMetadataEntry]

_EMPTY: SessionMetadataMap = MappingProxyType({})


def _clean(value: Any) -> Optional[str]:
    if isinstance(value, str) and value.strip():
        return value
    return None


def apply_index_entry(entry: SessionMetadataEntry, raw: dict[str, Any]) -> SessionMetadataEntry:
    """Fold one sidecar index entry into a log-derived entry.

    The sidecar owns ``customName`` and ``description`` and may overwrite
    them. ``gitBranch`` and ``created`` only fill gaps the log left.
    """
    updates: dict[str, Any] = {}
    if "customName" in raw:
        updates["customName"] = _clean(raw.get("customName"))
    elif "name" in raw:
        updates["customName"] = _clean(raw.get("name"))
    if "description" in raw:
        updates["description"] = _clean(raw.get("description"))
    if entry.gitBranch is None and _clean(raw.get("gitBranch")):
        updates["gitBranch"] = raw["gitBranch"]
    if entry.created is None and _clean(raw.get("created")):
        updates["created"] = raw["created"]
    if not updates:
        return entry
    return entry.model_copy(update=updates)


class MetadataResolver:
    """Process-wide ``session id -> SessionMetadataEntry`` mapping with a TTL.

    ``resolve()`` inside the freshness window returns the very same mapping
    object without touching disk. After expiry, or after ``invalidate()``, the
    next call rescans every project directory and swaps in a new mapping.
    """

    def __init__(
        self,
        paths: ClaudePaths,
        ttl: float = config.METADATA_CACHE_TTL_SECONDS,
        clock: Callable[[], float] = time.monotonic,
        head_bytes: int = config.LOG_HEAD_BYTES,
        team_loader: Optional[Callable[[str], Any]] = None,
    ):
        self.paths = paths
        self.ttl = ttl
        self.head_bytes = head_bytes
        self._clock = clock
        self._team_loader = team_loader or (lambda team_id: load_team_config(paths.teams_dir, team_id))
        self._cache: SessionMetadataMap = _EMPTY
        self._refreshed_at: Optional[float] = None
        self._generation = 0
        self._lock = threading.Lock()

    @property
    def is_fresh(self) -> bool:
        with self._lock:
            refreshed_at = self._refreshed_at
        return refreshed_at is not None and self._clock() - refreshed_at < self.ttl

    def invalidate(self) -> None:
        """Force the next ``resolve()`` to rebuild from disk."""
        with self._lock:
            self._refreshed_at = None
            self._generation += 1
        logger.debug("Session metadata cache invalidated")

    def resolve(self) -> SessionMetadataMap:
        now = self._clock()
        with self._lock:
            if self._refreshed_at is not None and now - self._refreshed_at < self.ttl:
                return self._cache
            generation = self._generation

        started = time.perf_counter()
        with start_span("metadata.rebuild"):
            mapping = MappingProxyType(self._build())
        record_metadata_rebuild((time.perf_counter() - started) * 1000)

        with self._lock:
            self._cache = mapping
            # An invalidate() that landed mid-rebuild keeps the cache expired.
            self._refreshed_at = now if generation == self._generation else None
        logger.debug("Rebuilt session metadata for %d sessions", len(mapping))
        return mapping

    def get(self, session_id: str) -> Optional[SessionMetadataEntry]:
        return self.resolve().get(session_id)

    def project_dir_for(self, session_id: str) -> Optional[Path]:
        entry = self.get(session_id)
        if entry is None or not entry.jsonlPath:
            return None
        return Path(entry.jsonlPath).parent

    # ── Rebuild ────────────────────────────────────────────────────

    def _build(self) -> dict[str, SessionMetadataEntry]:
        metadata: dict[str, SessionMetadataEntry] = {}
        for project_dir in list_project_dirs(self.paths.projects_dir):
            self._scan_project(project_dir, metadata)
        self._apply_team_fallbacks(metadata)
        return metadata

    def _scan_project(self, project_dir: Path, metadata: dict[str, SessionMetadataEntry]) -> None:
        for log_path in list_session_logs(project_dir):
            info = read_session_log_info(log_path, self.head_bytes)
            session_id = log_path.stem
            metadata[session_id] = SessionMetadataEntry(
                sessionId=session_id,
                customTitle=info.customTitle,
                slug=info.slug,
                project=info.project,
                gitBranch=info.gitBranch,
                jsonlPath=str(log_path),
            )

        for raw in load_sessions_index(project_dir / config.SESSIONS_INDEX_FILENAME):
            session_id = raw.get("sessionId")
            if not isinstance(session_id, str) or session_id not in metadata:
                continue
            metadata[session_id] = apply_index_entry(metadata[session_id], raw)

    def _apply_team_fallbacks(self, metadata: dict[str, SessionMetadataEntry]) -> None:
        for session_dir in list_session_dirs(self.paths.tasks_dir):
            session_id = session_dir.name
            if session_id in metadata:
                continue
            team = self._team_loader(session_id)
            if team is None or not team.working_directory:
                continue
            metadata[session_id] = SessionMetadataEntry(
                sessionId=session_id,
                project=team.working_directory,
                description=team.description,
                source="team",
            )
