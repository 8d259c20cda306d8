"""API routers for sessions, tasks, teams and the live event stream."""
from __future__ import annotations

import logging
from typing import Any, Optional, Union

from fastapi import APIRouter, HTTPException, Query, Request, Response
from fastapi.responses import StreamingResponse
from pydantic import BaseModel, Field

from taskviewer import config
from taskviewer.errors import (
    BlockedDeletionError,
    NotFoundError,
    TaskValidationError,
    TaskViewerError,
)
from taskviewer.models import SessionSummary, Task, TaskStatus, TaskWithSession, TeamConfig

logger = logging.getLogger("taskviewer.api")

_NO_STORE_HEADERS = {
    "Cache-Control": "no-store, no-cache, must-revalidate, private",
    "Pragma": "no-cache",
    "Expires": "0",
}


class TaskCreateRequest(BaseModel):
    subject: Optional[str] = None
    description: Optional[str] = ""
    activeForm: Optional[str] = ""
    status: TaskStatus = "pending"
    blocks: list[str] = Field(default_factory=list)
    blockedBy: list[str] = Field(default_factory=list)
    metadata: dict[str, Any] = Field(default_factory=dict)
    order: Optional[Union[int, float]] = None


class TaskUpdateRequest(BaseModel):
    subject: Optional[str] = None
    description: Optional[str] = None
    activeForm: Optional[str] = None
    status: Optional[TaskStatus] = None
    blocks: Optional[list[str]] = None
    blockedBy: Optional[list[str]] = None
    metadata: Optional[dict[str, Any]] = None
    order: Optional[Union[int, float]] = None


class NoteRequest(BaseModel):
    note: Optional[str] = None


class SessionMetadataRequest(BaseModel):
    customName: Optional[str] = None
    description: Optional[str] = None


class TaskMutationResponse(BaseModel):
    success: bool = True
    task: Task


def _services(request: Request) -> Any:
    services = getattr(request.app.state, "services", None)
    if services is None:
        raise HTTPException(status_code=503, detail="Task viewer services not initialized")
    return services


def _to_http_error(exc: TaskViewerError) -> HTTPException:
    if isinstance(exc, NotFoundError):
        return HTTPException(status_code=404, detail=str(exc))
    if isinstance(exc, BlockedDeletionError):
        return HTTPException(
            status_code=400,
            detail={"error": str(exc), "blockedTasks": exc.blocked_tasks},
        )
    if isinstance(exc, TaskValidationError):
        return HTTPException(status_code=400, detail={"error": str(exc), "field": exc.field})
    logger.error("Task viewer request failed: %s", exc)
    return HTTPException(status_code=500, detail=str(exc))


def parse_session_limit(raw: Optional[str]) -> Optional[int]:
    """``"all"`` means no limit; anything else must be an integer."""
    token = (raw or "").strip().lower()
    if not token:
        return config.DEFAULT_SESSION_LIMIT
    if token == "all":
        return None
    try:
        return int(token)
    except ValueError:
        raise HTTPException(status_code=400, detail=f"Invalid limit: {raw}")


# ── Sessions router ─────────────────────────────────────────────────

sessions_router = APIRouter(prefix="/api/sessions", tags=["sessions"])


@sessions_router.get("", response_model=list[SessionSummary])
async def list_sessions(
    request: Request,
    response: Response,
    limit: Optional[str] = Query(None, description='Maximum sessions to return, or "all"'),
):
    services = _services(request)
    for header, value in _NO_STORE_HEADERS.items():
        response.headers[header] = value
    return services.queries.list_sessions(parse_session_limit(limit))


@sessions_router.get("/{session_id}", response_model=list[Task])
async def get_session_tasks(request: Request, session_id: str):
    services = _services(request)
    try:
        return services.queries.list_tasks(session_id)
    except TaskViewerError as exc:
        raise _to_http_error(exc) from exc


@sessions_router.patch("/{session_id}/metadata")
async def update_session_metadata(request: Request, session_id: str, payload: SessionMetadataRequest):
    services = _services(request)
    try:
        entry = services.mutations.update_session_metadata(
            session_id, **payload.model_dump(exclude_unset=True)
        )
    except TaskViewerError as exc:
        raise _to_http_error(exc) from exc
    return {"success": True, "metadata": entry}


# ── Tasks router ────────────────────────────────────────────────────

tasks_router = APIRouter(prefix="/api/tasks", tags=["tasks"])


@tasks_router.get("/all", response_model=list[TaskWithSession])
async def list_all_tasks(request: Request):
    return _services(request).queries.list_all_tasks()


@tasks_router.post("/{session_id}", response_model=TaskMutationResponse)
async def create_task(request: Request, session_id: str, payload: TaskCreateRequest):
    services = _services(request)
    try:
        task = services.mutations.create_task(session_id, **payload.model_dump())
    except TaskViewerError as exc:
        raise _to_http_error(exc) from exc
    return TaskMutationResponse(task=task)


@tasks_router.patch("/{session_id}/{task_id}", response_model=TaskMutationResponse)
async def update_task(request: Request, session_id: str, task_id: str, payload: TaskUpdateRequest):
    services = _services(request)
    try:
        task = services.mutations.update_task(session_id, task_id, payload.model_dump(exclude_unset=True))
    except TaskViewerError as exc:
        raise _to_http_error(exc) from exc
    return TaskMutationResponse(task=task)


@tasks_router.post("/{session_id}/{task_id}/note", response_model=TaskMutationResponse)
async def add_note(request: Request, session_id: str, task_id: str, payload: NoteRequest):
    services = _services(request)
    try:
        task = services.mutations.append_note(session_id, task_id, payload.note)
    except TaskViewerError as exc:
        raise _to_http_error(exc) from exc
    return TaskMutationResponse(task=task)


@tasks_router.delete("/{session_id}/{task_id}")
async def delete_task(request: Request, session_id: str, task_id: str):
    services = _services(request)
    try:
        deleted = services.mutations.delete_task(session_id, task_id)
    except TaskViewerError as exc:
        raise _to_http_error(exc) from exc
    return {"success": True, "taskId": deleted}


# ── Teams router ────────────────────────────────────────────────────

teams_router = APIRouter(prefix="/api/teams", tags=["teams"])


@teams_router.get("/{team_id}", response_model=TeamConfig)
async def get_team(request: Request, team_id: str):
    try:
        return _services(request).queries.get_team_config(team_id)
    except TaskViewerError as exc:
        raise _to_http_error(exc) from exc


# ── Events router ───────────────────────────────────────────────────

events_router = APIRouter(prefix="/api/events", tags=["events"])


@events_router.get("")
async def stream_events(request: Request):
    """Server-Sent Events stream; every event is a cue to re-query."""
    broadcaster = _services(request).broadcaster
    return StreamingResponse(
        broadcaster.subscribe(),
        media_type="text/event-stream",
        headers={"Cache-Control": "no-cache", "Connection": "keep-alive", "X-Accel-Buffering": "no"},
    )
