"""Per-team cache of parsed team config files."""
from __future__ import annotations

import logging
import threading
import time
from pathlib import Path
from typing import Callable, NamedTuple, Optional

from taskviewer import config
from taskviewer.models import TeamConfig
from taskviewer.parsers.scanner import is_safe_segment, load_team_config

logger = logging.getLogger("taskviewer.teams")


class _CachedTeam(NamedTuple):
    value: Optional[TeamConfig]
    loaded_at: float


class TeamConfigCache:
    """Caches ``load(team_id)`` per id for ``ttl`` seconds.

    A missing config file is cached as ``None`` like any other result; the
    watcher calls ``evict`` when something under the team's directory changes.
    """

    def __init__(
        self,
        teams_dir: Path,
        ttl: float = config.TEAM_CACHE_TTL_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.teams_dir = teams_dir
        self.ttl = ttl
        self._clock = clock
        self._entries: dict[str, _CachedTeam] = {}
        self._lock = threading.Lock()

    def load(self, team_id: str) -> Optional[TeamConfig]:
        if not is_safe_segment(team_id):
            return None
        now = self._clock()
        with self._lock:
            cached = self._entries.get(team_id)
        if cached is not None and now - cached.loaded_at < self.ttl:
            return cached.value

        value = load_team_config(self.teams_dir, team_id)
        with self._lock:
            self._entries[team_id] = _CachedTeam(value, now)
        return value

    def evict(self, team_id: str) -> None:
        with self._lock:
            removed = self._entries.pop(team_id, None)
        if removed is not None:
            logger.debug("Evicted team config cache entry %s", team_id)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __contains__(self, team_id: object) -> bool:
        with self._lock:
            return team_id in self._entries
