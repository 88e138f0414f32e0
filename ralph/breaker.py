"""Circuit breaker that halts the loop on sustained stagnation or failure.

Two independent streaks feed it:
- consecutive successful iterations without a new commit
- consecutive failed invocations

Either streak reaching its threshold trips the breaker. A trip is one-way:
nothing resets it for the rest of the session.
"""

from dataclasses import dataclass
from enum import Enum

DEFAULT_NO_PROGRESS_THRESHOLD = 3
DEFAULT_ERROR_THRESHOLD = 5


class BreakerState(Enum):
    """Breaker position."""

    CLOSED = "closed"
    TRIPPED = "tripped"


class TripReason(Enum):
    """Which streak tripped the breaker."""

    NO_PROGRESS = "no_progress"
    ERRORS = "errors"


@dataclass(frozen=True)
class BreakerConfig:
    """Thresholds and the global enable switch."""

    enabled: bool = True
    no_progress_threshold: int = DEFAULT_NO_PROGRESS_THRESHOLD
    error_threshold: int = DEFAULT_ERROR_THRESHOLD


@dataclass
class CircuitBreaker:
    """Streak counters plus the latched breaker state."""

    config: BreakerConfig
    consecutive_no_progress: int = 0
    consecutive_errors: int = 0
    state: BreakerState = BreakerState.CLOSED
    trip_reason: TripReason | None = None

    def is_enabled(self) -> bool:
        return self.config.enabled

    def record_outcome(self, progress_advanced: bool | None, invocation_error: bool) -> None:
        """Update both streaks for one iteration.

        progress_advanced is None when progress was not observed (failed
        invocation or unreadable revision); the no-progress streak is then
        left as is.
        """
        if invocation_error:
            self.consecutive_errors += 1
        else:
            self.consecutive_errors = 0

        if progress_advanced is None:
            return
        if progress_advanced:
            self.consecutive_no_progress = 0
        else:
            self.consecutive_no_progress += 1

    def evaluate(self) -> BreakerState:
        """Current position; latches TRIPPED once a threshold is reached."""
        if not self.config.enabled:
            return BreakerState.CLOSED

        if self.state == BreakerState.TRIPPED:
            return self.state

        if self.consecutive_no_progress >= self.config.no_progress_threshold:
            self.trip_reason = TripReason.NO_PROGRESS
        elif self.consecutive_errors >= self.config.error_threshold:
            self.trip_reason = TripReason.ERRORS
        else:
            return BreakerState.CLOSED

        self.state = BreakerState.TRIPPED
        return self.state

    def summary(self) -> str:
        """One-line description of what tripped the breaker."""
        if self.trip_reason == TripReason.NO_PROGRESS:
            return (
                f"No commits in {self.consecutive_no_progress} consecutive iterations "
                f"(threshold: {self.config.no_progress_threshold})."
            )
        if self.trip_reason == TripReason.ERRORS:
            return (
                f"{self.consecutive_errors} consecutive iteration errors detected "
                f"(threshold: {self.config.error_threshold})."
            )
        return ""

    def diagnostic(self, log_file: str) -> list[str]:
        """Operator-facing explanation of the trip with remediation steps."""
        if self.trip_reason == TripReason.NO_PROGRESS:
            title = "CIRCUIT BREAKER TRIGGERED"
            body = [
                self.summary(),
                "The worker may be stuck in a loop.",
                "",
                "Suggestions:",
                "  - Check IMPLEMENTATION_PLAN.md for issues",
                "  - Run 'ralph plan' to regenerate the plan",
                f"  - Review the log file: {log_file}",
                "",
                "To disable: --no-circuit-breaker or set",
                "CIRCUIT_BREAKER_ENABLED=false in config",
            ]
        elif self.trip_reason == TripReason.ERRORS:
            title = "CIRCUIT BREAKER TRIGGERED (ERRORS)"
            body = [
                self.summary(),
                "",
                "Suggestions:",
                "  - Check that the worker CLI runs and is authenticated",
                "  - Check network access and API quota",
                f"  - Review the log file: {log_file}",
            ]
        else:
            return []

        width = max(len(line) for line in [title, *body]) + 4
        lines = ["+" + "=" * width + "+", f"|  {title:<{width - 2}}|", "+" + "-" * width + "+"]
        lines.extend(f"|  {line:<{width - 2}}|" for line in body)
        lines.append("+" + "=" * width + "+")
        return lines
