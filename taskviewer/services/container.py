"""Wiring of the process-wide service instances."""
from __future__ import annotations

from dataclasses import dataclass

from taskviewer.config import ClaudePaths
from taskviewer.file_watcher import WatchCoordinator
from taskviewer.services.broadcaster import EventBroadcaster
from taskviewer.services.metadata_resolver import MetadataResolver
from taskviewer.services.mutations import TaskMutationService
from taskviewer.services.queries import SessionQueryService
from taskviewer.services.team_cache import TeamConfigCache


@dataclass
class Services:
    paths: ClaudePaths
    team_cache: TeamConfigCache
    resolver: MetadataResolver
    broadcaster: EventBroadcaster
    queries: SessionQueryService
    mutations: TaskMutationService
    watcher: WatchCoordinator


def build_services(paths: ClaudePaths) -> Services:
    """Create one instance of every cache and service, sharing state explicitly."""
    team_cache = TeamConfigCache(paths.teams_dir)
    resolver = MetadataResolver(paths, team_loader=team_cache.load)
    broadcaster = EventBroadcaster()
    return Services(
        paths=paths,
        team_cache=team_cache,
        resolver=resolver,
        broadcaster=broadcaster,
        queries=SessionQueryService(paths, resolver, team_cache),
        mutations=TaskMutationService(paths, resolver),
        watcher=WatchCoordinator(paths, resolver, team_cache, broadcaster),
    )
