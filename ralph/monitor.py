"""Terminal monitor that follows the status file of a running loop.

Pull-only: it reads the artifact on its own schedule and never talks to the
loop, so it can attach and detach at any time.
"""

import threading
import time
from collections.abc import Callable
from pathlib import Path

from .status import StatusSnapshot, read_status
from .timestamps import format_duration

POLL_INTERVAL = 2.0


def render_status(snapshot: StatusSnapshot | None, now: float | None = None) -> str:
    """Render a snapshot as a small dashboard."""
    if snapshot is None:
        return "Waiting for status..."

    if now is None:
        now = time.time()
    max_display = str(snapshot.max_iterations) if snapshot.max_iterations else "unlimited"
    breaker = (
        f"{snapshot.circuit_breaker_state} "
        f"(stalled {snapshot.consecutive_no_progress}/{snapshot.circuit_breaker_threshold}, "
        f"errors {snapshot.consecutive_errors}/{snapshot.circuit_breaker_error_threshold})"
        if snapshot.circuit_breaker_enabled
        else "disabled"
    )
    age = max(0, int(now) - snapshot.timestamp)
    status = snapshot.status
    if snapshot.exit_reason:
        status = f"{status} ({snapshot.exit_reason})"

    rows = [
        ("Project", snapshot.project),
        ("Branch", snapshot.branch),
        ("Mode", snapshot.mode),
        ("Status", status),
        ("Iteration", f"{snapshot.iteration} / {max_display}"),
        ("Commits", str(snapshot.total_commits)),
        ("Last commit", snapshot.last_commit),
        ("Breaker", breaker),
        ("This hour", str(snapshot.iterations_this_hour)),
        ("Elapsed", format_duration(snapshot.elapsed_seconds)),
        ("Updated", f"{age}s ago"),
    ]
    lines = ["═══ RALPH STATUS ═══"]
    lines.extend(f"{name + ':':<13}{value}" for name, value in rows)
    return "\n".join(lines)


def watch(
    status_file: Path,
    output: Callable[[str], None] = print,
    stop_event: threading.Event | None = None,
    interval: float = POLL_INTERVAL,
) -> StatusSnapshot | None:
    """Poll status_file until the session stops or stop_event is set.

    Returns the last snapshot seen.
    """
    stop_event = stop_event or threading.Event()
    snapshot: StatusSnapshot | None = None
    while not stop_event.is_set():
        snapshot = read_status(status_file)
        output(render_status(snapshot))
        if snapshot is not None and not snapshot.is_running:
            break
        stop_event.wait(interval)
    return snapshot
