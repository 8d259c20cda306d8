"""Task viewer configuration."""
import os
from pathlib import Path
from typing import NamedTuple


def _env_bool(name: str, default: bool = False) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _env_int(name: str, default: int) -> int:
    value = os.getenv(name)
    if value is None:
        return default
    try:
        return int(value)
    except ValueError:
        return default


def _env_float(name: str, default: float) -> float:
    value = os.getenv(name)
    if value is None:
        return default
    try:
        return float(value)
    except ValueError:
        return default


# Package root (one level up from taskviewer/)
PROJECT_ROOT = Path(__file__).resolve().parent.parent

# Data roots written by the coding assistant
CLAUDE_DIR = Path(os.getenv("CLAUDE_DIR", str(Path.home() / ".claude"))).expanduser()
TASKS_DIR = CLAUDE_DIR / "tasks"
PROJECTS_DIR = CLAUDE_DIR / "projects"
TEAMS_DIR = CLAUDE_DIR / "teams"

# File naming inside the roots
TASK_FILE_SUFFIX = ".json"
SESSION_LOG_SUFFIX = ".jsonl"
SESSIONS_INDEX_FILENAME = "sessions-index.json"
TEAM_CONFIG_FILENAME = "config.json"

# Cache tuning
METADATA_CACHE_TTL_SECONDS = _env_float("TASKVIEWER_METADATA_TTL_SECONDS", 10.0)
TEAM_CACHE_TTL_SECONDS = _env_float("TASKVIEWER_TEAM_TTL_SECONDS", 5.0)
LOG_HEAD_BYTES = _env_int("TASKVIEWER_LOG_HEAD_BYTES", 65536)
DEFAULT_SESSION_LIMIT = _env_int("TASKVIEWER_DEFAULT_SESSION_LIMIT", 20)

# Per-client event buffer; a client that falls this far behind is dropped
EVENT_QUEUE_SIZE = _env_int("TASKVIEWER_EVENT_QUEUE_SIZE", 256)

# Observability
OTEL_ENABLED = _env_bool("TASKVIEWER_OTEL_ENABLED", False)
OTEL_ENDPOINT = os.getenv("TASKVIEWER_OTEL_ENDPOINT", "http://localhost:4318")
OTEL_SERVICE_NAME = os.getenv("TASKVIEWER_OTEL_SERVICE_NAME", "taskviewer")
PROM_PORT = _env_int("TASKVIEWER_PROM_PORT", 9464)

# Server settings
HOST = os.getenv("TASKVIEWER_HOST", "127.0.0.1")
PORT = int(os.getenv("PORT", "3456"))
STATIC_DIR = Path(os.getenv("TASKVIEWER_STATIC_DIR", str(PROJECT_ROOT / "public")))


class ClaudePaths(NamedTuple):
    """The three roots the viewer reads from and writes to."""

    tasks_dir: Path
    projects_dir: Path
    teams_dir: Path

    @classmethod
    def under(cls, claude_dir: Path) -> "ClaudePaths":
        return cls(claude_dir / "tasks", claude_dir / "projects", claude_dir / "teams")


def default_paths() -> ClaudePaths:
    return ClaudePaths(TASKS_DIR, PROJECTS_DIR, TEAMS_DIR)
