"""File watcher service using watchfiles.

Watches the tasks, projects and teams roots, turns raw change batches into
stream events, and invalidates the caches that depend on each root.
"""
from __future__ import annotations

import asyncio
import enum
import logging
from pathlib import Path
from typing import Any, Callable, Iterable, NamedTuple, Optional

from watchfiles import Change, awatch

from taskviewer import config
from taskviewer.config import ClaudePaths
from taskviewer.models import StreamEvent
from taskviewer.observability import record_watch_event
from taskviewer.services.broadcaster import EventBroadcaster
from taskviewer.services.metadata_resolver import MetadataResolver
from taskviewer.services.team_cache import TeamConfigCache

logger = logging.getLogger("taskviewer.watcher")

TASKS_ROOT = "tasks"
PROJECTS_ROOT = "projects"
TEAMS_ROOT = "teams"

# Path components below each root that are still observed.
_MAX_DEPTH = {TASKS_ROOT: 3, PROJECTS_ROOT: 2, TEAMS_ROOT: 3}


class WatchState(str, enum.Enum):
    IDLE = "idle"
    DETECTED = "detected"
    INVALIDATED = "invalidated"
    BROADCAST = "broadcast"


class ClassifiedChange(NamedTuple):
    root: str
    kind: str  # "added" | "modified" | "deleted"
    key: str  # session id, team id or project directory name
    path: Path


def _change_kind(change: Change) -> str:
    if change == Change.added:
        return "added"
    if change == Change.deleted:
        return "deleted"
    return "modified"


def classify_change(root_kind: str, root: Path, change: Change, path_str: str) -> Optional[ClassifiedChange]:
    """Map one raw change to a qualifying change, or None to ignore it."""
    path = Path(path_str)
    try:
        parts = path.relative_to(root).parts
    except ValueError:
        return None
    if len(parts) < 2 or len(parts) > _MAX_DEPTH[root_kind]:
        return None
    if path.name.startswith("."):
        return None

    if root_kind == TASKS_ROOT:
        qualifies = path.suffix == config.TASK_FILE_SUFFIX
    elif root_kind == PROJECTS_ROOT:
        qualifies = path.suffix == config.SESSION_LOG_SUFFIX or path.name == config.SESSIONS_INDEX_FILENAME
    elif root_kind == TEAMS_ROOT:
        qualifies = path.name == config.TEAM_CONFIG_FILENAME
    else:
        qualifies = False
    if not qualifies:
        return None
    return ClassifiedChange(root_kind, _change_kind(change), parts[0], path)


def coalesce(changes: Iterable[ClassifiedChange]) -> list[ClassifiedChange]:
    """Collapse several raw changes to the same file into one.

    Batches arrive unordered, so the final kind is taken from the file's
    current existence: gone means deleted, otherwise added wins over modified.
    """
    by_path: dict[Path, list[ClassifiedChange]] = {}
    for item in changes:
        by_path.setdefault(item.path, []).append(item)

    result: list[ClassifiedChange] = []
    for path, items in sorted(by_path.items(), key=lambda pair: str(pair[0])):
        kinds = {item.kind for item in items}
        if len(kinds) == 1:
            kind = items[0].kind
        elif not path.exists():
            kind = "deleted"
        elif "added" in kinds:
            kind = "added"
        else:
            kind = "modified"
        result.append(items[0]._replace(kind=kind))
    return result


class WatchCoordinator:
    """Background watchers for the three data roots.

    Each root gets its own ``awatch`` loop, started only if the root exists.
    Changes under the tasks root need no invalidation because task reads are
    never cached; projects changes expire the whole metadata mapping; team
    changes evict just that team's config.
    """

    def __init__(
        self,
        paths: ClaudePaths,
        resolver: MetadataResolver,
        team_cache: TeamConfigCache,
        broadcaster: EventBroadcaster,
        awatch_fn: Callable[..., Any] = awatch,
    ):
        self.paths = paths
        self.resolver = resolver
        self.team_cache = team_cache
        self.broadcaster = broadcaster
        self._awatch = awatch_fn
        self._tasks: dict[str, asyncio.Task] = {}
        self._stop_event: Optional[asyncio.Event] = None
        self.states: dict[str, WatchState] = {}

    @property
    def roots(self) -> dict[str, Path]:
        return {
            TASKS_ROOT: self.paths.tasks_dir,
            PROJECTS_ROOT: self.paths.projects_dir,
            TEAMS_ROOT: self.paths.teams_dir,
        }

    @property
    def is_running(self) -> bool:
        return any(not task.done() for task in self._tasks.values())

    @property
    def running_roots(self) -> list[str]:
        return sorted(kind for kind, task in self._tasks.items() if not task.done())

    async def start(self) -> None:
        """Start one watch loop per existing root in background tasks."""
        if self.is_running:
            logger.warning("File watcher already running")
            return

        self._stop_event = asyncio.Event()
        for kind, root in self.roots.items():
            if not root.is_dir():
                logger.info("Not watching %s root %s: directory does not exist", kind, root)
                continue
            self.states[kind] = WatchState.IDLE
            self._tasks[kind] = asyncio.create_task(self._watch_loop(kind, root, self._stop_event))
            logger.info("Watching %s root: %s", kind, root)

        if not self._tasks:
            logger.warning("No watch roots exist, watcher has nothing to monitor")

    async def stop(self) -> None:
        if self._stop_event is not None:
            self._stop_event.set()
        for task in self._tasks.values():
            task.cancel()
        for task in self._tasks.values():
            try:
                await task
            except asyncio.CancelledError:
                pass
        self._tasks.clear()
        self._stop_event = None
        logger.info("File watcher stopped")

    async def _watch_loop(self, kind: str, root: Path, stop_event: asyncio.Event) -> None:
        try:
            async for changes in self._awatch(root, stop_event=stop_event, recursive=True):
                try:
                    self.handle_changes(kind, root, changes)
                except Exception:
                    logger.exception("Error handling %s changes", kind)
        except asyncio.CancelledError:
            logger.info("File watcher task for %s cancelled", kind)
            raise
        except Exception as e:
            logger.error(f"File watcher error on {kind} root: {e}")

    def handle_changes(self, kind: str, root: Path, changes: Iterable[tuple[Change, str]]) -> list[StreamEvent]:
        """Classify one raw batch, invalidate caches, and broadcast the resulting events."""
        classified = coalesce(
            item
            for item in (classify_change(kind, root, change, path) for change, path in changes)
            if item is not None
        )
        if not classified:
            return []

        self.states[kind] = WatchState.DETECTED
        for item in classified:
            record_watch_event(kind, item.kind)

        events: list[StreamEvent] = []
        if kind == TASKS_ROOT:
            events = [
                StreamEvent(type="update", event=item.kind, sessionId=item.key, file=item.path.name)
                for item in classified
            ]
        elif kind == PROJECTS_ROOT:
            logger.info("Session metadata changed: %s", ", ".join(str(item.path) for item in classified))
            self.resolver.invalidate()
            events = [StreamEvent(type="metadata-update")]
        elif kind == TEAMS_ROOT:
            team_ids = sorted({item.key for item in classified})
            for team_id in team_ids:
                self.team_cache.evict(team_id)
            events = [StreamEvent(type="team-update", teamName=team_id) for team_id in team_ids]
        self.states[kind] = WatchState.INVALIDATED

        for event in events:
            self.broadcaster.broadcast(event)
        self.states[kind] = WatchState.BROADCAST
        self.states[kind] = WatchState.IDLE
        return events
