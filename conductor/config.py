"""Project-level configuration and path helpers."""

import os
import shlex
from dataclasses import dataclass, field
from pathlib import Path
from typing import Union

PROJECT_ROOT = Path(__file__).resolve().parent.parent
DATA_DIR = PROJECT_ROOT / "data"
LOGS_DIR = PROJECT_ROOT / "logs"
DEFAULT_DB_PATH = DATA_DIR / "conductor.db"
DEFAULT_LOG_PATH = LOGS_DIR / "app.log"

DEFAULT_TOOL_TIMEOUT = 30.0
DEFAULT_APPROVAL_TIMEOUT = 300.0
DEFAULT_HEALTH_INTERVAL = 30.0
DEFAULT_PROCESS_COMMAND = (
    "claude --print --output-format stream-json --input-format stream-json --verbose"
)


PathLike = Union[str, Path]


def resolve_db_path(env_value: PathLike | None = None) -> PathLike:
    """Resolve DATABASE_URL to an absolute path."""
    if not env_value:
        return DEFAULT_DB_PATH

    if str(env_value) == ":memory:":
        return ":memory:"

    candidate = Path(env_value)
    return candidate if candidate.is_absolute() else PROJECT_ROOT / candidate


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


def _env_float(name: str, default: float) -> float:
    value = os.getenv(name)
    if not value:
        return default
    return float(value)


@dataclass(frozen=True)
class Settings:
    """Runtime settings read from the environment (.env is loaded by main)."""

    api_host: str = "localhost"
    api_port: int = 8000
    database_url: str | None = None
    tool_timeout: float = DEFAULT_TOOL_TIMEOUT
    approval_timeout: float = DEFAULT_APPROVAL_TIMEOUT
    yolo_mode: bool = False
    dangerous_only: bool = True
    health_interval: float = DEFAULT_HEALTH_INTERVAL
    process_command: list[str] = field(
        default_factory=lambda: shlex.split(DEFAULT_PROCESS_COMMAND)
    )

    @classmethod
    def from_env(cls) -> "Settings":
        """Build settings from CONDUCTOR_* environment variables."""
        return cls(
            api_host=os.getenv("CONDUCTOR_API_HOST", "localhost"),
            api_port=int(os.getenv("CONDUCTOR_API_PORT", "8000")),
            database_url=os.getenv("DATABASE_URL"),
            tool_timeout=_env_float("CONDUCTOR_TOOL_TIMEOUT", DEFAULT_TOOL_TIMEOUT),
            approval_timeout=_env_float(
                "CONDUCTOR_APPROVAL_TIMEOUT", DEFAULT_APPROVAL_TIMEOUT
            ),
            yolo_mode=_env_bool("CONDUCTOR_YOLO_MODE", False),
            dangerous_only=_env_bool("CONDUCTOR_DANGEROUS_ONLY", True),
            health_interval=_env_float(
                "CONDUCTOR_HEALTH_INTERVAL", DEFAULT_HEALTH_INTERVAL
            ),
            process_command=shlex.split(
                os.getenv("CONDUCTOR_PROCESS_COMMAND", DEFAULT_PROCESS_COMMAND)
            ),
        )
