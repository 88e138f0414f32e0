"""Progress detection by comparing head revisions across iterations.

A new revision after a successful invocation is the only proxy the loop has
for "the worker accomplished something". An unreadable revision is neither
progress nor stagnation.
"""

from dataclasses import dataclass


@dataclass
class ProgressState:
    """Revision tracking owned by the loop."""

    last_known_revision: str | None = None
    consecutive_no_progress: int = 0
    total_progress_events: int = 0


@dataclass(frozen=True)
class ProgressResult:
    """Outcome of comparing the current revision with the last known one."""

    advanced: bool
    delta_count: int
    skipped: bool = False
    revision: str | None = None

    @property
    def observed(self) -> bool:
        """True when a comparison actually happened."""
        return not self.skipped


def observe(
    state: ProgressState,
    current_revision: str | None,
    new_commits: int | None = None,
) -> ProgressResult:
    """Compare current_revision against the state and update it.

    new_commits is the number of commits between the two revisions when the
    caller could count them; a changed revision always counts as at least one.
    A missing revision skips the comparison and leaves the state untouched.
    """
    if not current_revision:
        return ProgressResult(advanced=False, delta_count=0, skipped=True)

    if current_revision == state.last_known_revision:
        state.consecutive_no_progress += 1
        return ProgressResult(advanced=False, delta_count=0, revision=current_revision)

    delta = new_commits if new_commits and new_commits > 0 else 1
    state.last_known_revision = current_revision
    state.consecutive_no_progress = 0
    state.total_progress_events += delta
    return ProgressResult(advanced=True, delta_count=delta, revision=current_revision)
