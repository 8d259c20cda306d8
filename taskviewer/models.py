"""Pydantic models matching the viewer's JSON payloads."""
from __future__ import annotations

from typing import Any, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator

TaskStatus = Literal["pending", "in_progress", "completed"]
TASK_STATUSES: tuple[str, ...] = ("pending", "in_progress", "completed")

# ── Task models ─────────────────────────────────────────────────────


class Task(BaseModel):
    """One task file as written by the assistant.

    Unknown keys are kept so a read-modify-write never drops fields the
    writer added.
    """

    model_config = ConfigDict(extra="allow")

    id: str
    subject: str
    description: str = ""
    activeForm: str = ""
    status: TaskStatus = "pending"
    blocks: list[str] = Field(default_factory=list)
    blockedBy: list[str] = Field(default_factory=list)
    order: Optional[Union[int, float]] = None
    metadata: dict[str, Any] = Field(default_factory=dict)

    @field_validator("id", mode="before")
    @classmethod
    def _coerce_id(cls, value: Any) -> str:
        if isinstance(value, bool) or value is None:
            raise ValueError("task id must be a string or integer")
        return str(value).strip()

    @field_validator("blocks", "blockedBy", mode="before")
    @classmethod
    def _coerce_id_list(cls, value: Any) -> list[str]:
        if value is None:
            return []
        if not isinstance(value, list):
            raise ValueError("expected a list of task ids")
        return [str(item).strip() for item in value if str(item).strip()]

    @field_validator("description", "activeForm", mode="before")
    @classmethod
    def _none_to_empty(cls, value: Any) -> Any:
        return "" if value is None else value

    @field_validator("metadata", mode="before")
    @classmethod
    def _none_to_dict(cls, value: Any) -> Any:
        return {} if value is None else value

    @property
    def numeric_id(self) -> int:
        try:
            return int(self.id)
        except ValueError:
            return 0


class TaskWithSession(Task):
    sessionId: str
    sessionName: Optional[str] = None
    project: Optional[str] = None


# ── Session models ──────────────────────────────────────────────────


class SessionMetadataEntry(BaseModel):
    """Display metadata for one session, merged from log, sidecar and team config."""

    sessionId: str
    customTitle: Optional[str] = None
    slug: Optional[str] = None
    project: Optional[str] = None
    jsonlPath: Optional[str] = None
    customName: Optional[str] = None
    description: Optional[str] = None
    gitBranch: Optional[str] = None
    created: Optional[str] = None
    source: Literal["log", "team"] = "log"

    @property
    def display_name(self) -> Optional[str]:
        """customName > customTitle > slug; None means show the raw id."""
        return self.customName or self.customTitle or self.slug or None


class SessionSummary(BaseModel):
    id: str
    name: Optional[str] = None
    slug: Optional[str] = None
    project: Optional[str] = None
    description: Optional[str] = None
    gitBranch: Optional[str] = None
    taskCount: int = 0
    completed: int = 0
    inProgress: int = 0
    pending: int = 0
    createdAt: Optional[str] = None
    modifiedAt: str
    isTeam: bool = False
    memberCount: int = 0


# ── Team models ─────────────────────────────────────────────────────


class TeamMember(BaseModel):
    model_config = ConfigDict(extra="allow")

    name: str = ""
    color: Optional[str] = None
    agentId: Optional[str] = None
    agentType: Optional[str] = None
    cwd: Optional[str] = None


class TeamConfig(BaseModel):
    teamId: str
    name: str = ""
    description: Optional[str] = None
    cwd: Optional[str] = None
    leadSessionId: Optional[str] = None
    members: list[TeamMember] = Field(default_factory=list)

    @property
    def working_directory(self) -> Optional[str]:
        if self.cwd:
            return self.cwd
        for member in self.members:
            if member.cwd:
                return member.cwd
        return None


# ── Stream events ───────────────────────────────────────────────────

StreamEventType = Literal["connected", "update", "team-update", "metadata-update"]


class StreamEvent(BaseModel):
    """A change cue pushed to streaming clients. Never the authoritative payload."""

    type: StreamEventType
    event: Optional[str] = None
    sessionId: Optional[str] = None
    file: Optional[str] = None
    teamName: Optional[str] = None

    def to_payload(self) -> dict[str, Any]:
        return self.model_dump(exclude_none=True)
