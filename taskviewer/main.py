"""Task viewer FastAPI application entry point."""
from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.staticfiles import StaticFiles

from taskviewer import config
from taskviewer.config import ClaudePaths
from taskviewer.observability import initialize as initialize_observability, shutdown as shutdown_observability
from taskviewer.routers.api import events_router, sessions_router, tasks_router, teams_router
from taskviewer.services.container import build_services

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger("taskviewer")


def create_app(paths: Optional[ClaudePaths] = None) -> FastAPI:
    claude_paths = paths or config.default_paths()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Startup / shutdown lifecycle."""
        logger.info("Task viewer starting up (data dir: %s)", claude_paths.tasks_dir.parent)
        initialize_observability(app)

        services = build_services(claude_paths)
        app.state.services = services
        await services.watcher.start()

        yield

        logger.info("Task viewer shutting down")
        services.broadcaster.close()
        await services.watcher.stop()
        shutdown_observability(app)

    app = FastAPI(
        title="Task Viewer API",
        description="Live view of coding-assistant sessions and their task lists",
        version="0.1.0",
        lifespan=lifespan,
    )

    app.include_router(sessions_router)
    app.include_router(tasks_router)
    app.include_router(teams_router)
    app.include_router(events_router)

    @app.get("/api/health")
    def health(request: Request):
        """Health check endpoint."""
        services = getattr(request.app.state, "services", None)
        if services is None:
            return {"status": "starting"}
        return {
            "status": "ok",
            "watcher": "running" if services.watcher.is_running else "stopped",
            "watchedRoots": services.watcher.running_roots,
            "clients": services.broadcaster.client_count,
            "metadataFresh": services.resolver.is_fresh,
        }

    if config.STATIC_DIR.is_dir():
        app.mount("/", StaticFiles(directory=config.STATIC_DIR, html=True), name="static")

    return app


app = create_app()
