"""Status artifact shared with external monitors.

The loop is the only writer. Every publish replaces the whole file through a
temporary sibling and an atomic rename, so a reader polling at any moment
sees either the previous snapshot or the new one, never a mix.
"""

import json
import os
from dataclasses import asdict, dataclass
from enum import Enum
from pathlib import Path
from typing import Any


class RunStatus(Enum):
    """Liveness reported to monitors."""

    RUNNING = "running"
    STOPPED = "stopped"


@dataclass(frozen=True)
class StatusSnapshot:
    """Point-in-time projection of session, progress, breaker and rate state."""

    timestamp: int
    iteration: int
    max_iterations: int
    mode: str
    branch: str
    project: str
    elapsed_seconds: int
    total_commits: int
    consecutive_no_progress: int
    consecutive_errors: int
    circuit_breaker_threshold: int
    circuit_breaker_error_threshold: int
    circuit_breaker_enabled: bool
    circuit_breaker_state: str
    iterations_this_hour: int
    last_commit: str
    status: str
    exit_reason: str | None = None

    @property
    def is_running(self) -> bool:
        return self.status == RunStatus.RUNNING.value

    def to_dict(self) -> dict[str, str | int | bool | None]:
        """Convert to JSON-serializable dict."""
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "StatusSnapshot":
        """Build from parsed JSON, tolerating missing optional fields."""
        return cls(
            timestamp=int(data.get("timestamp", 0)),
            iteration=int(data.get("iteration", 0)),
            max_iterations=int(data.get("max_iterations", 0)),
            mode=str(data.get("mode", "")),
            branch=str(data.get("branch", "")),
            project=str(data.get("project", "")),
            elapsed_seconds=int(data.get("elapsed_seconds", 0)),
            total_commits=int(data.get("total_commits", 0)),
            consecutive_no_progress=int(data.get("consecutive_no_progress", 0)),
            consecutive_errors=int(data.get("consecutive_errors", 0)),
            circuit_breaker_threshold=int(data.get("circuit_breaker_threshold", 0)),
            circuit_breaker_error_threshold=int(data.get("circuit_breaker_error_threshold", 0)),
            circuit_breaker_enabled=bool(data.get("circuit_breaker_enabled", False)),
            circuit_breaker_state=str(data.get("circuit_breaker_state", "")),
            iterations_this_hour=int(data.get("iterations_this_hour", 0)),
            last_commit=str(data.get("last_commit", "")),
            status=str(data.get("status", RunStatus.STOPPED.value)),
            exit_reason=data.get("exit_reason"),
        )


def publish(path: Path, snapshot: StatusSnapshot) -> None:
    """Atomically replace the status file with snapshot."""
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp_path = path.with_name(f"{path.name}.tmp")
    with open(tmp_path, "w", encoding="utf-8") as f:
        json.dump(snapshot.to_dict(), f, indent=4)
        f.write("\n")
        f.flush()
        os.fsync(f.fileno())
    os.replace(tmp_path, path)


def read_status(path: Path) -> StatusSnapshot | None:
    """Read-only accessor for monitors. None if missing or unreadable."""
    if not path.exists():
        return None
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError):
        return None
    if not isinstance(data, dict):
        return None
    try:
        return StatusSnapshot.from_dict(data)
    except (TypeError, ValueError):
        return None
