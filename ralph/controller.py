"""Loop controller: runs the worker iteration by iteration and decides when to stop.

State machine:
    INIT -> RUNNING -> STOPPED_MAX_ITERATIONS
                    -> STOPPED_CIRCUIT_BREAKER
                    -> STOPPED_INTERRUPTED
                    -> STOPPED_NORMAL

All mutable session state lives in LoopState, owned by the controller and
handed to the progress, breaker and rate functions explicitly.
"""

import logging
import threading
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path

from . import progress, rate
from .breaker import BreakerConfig, BreakerState, CircuitBreaker, TripReason
from .logging import log_banner
from .notifications import Event, NotificationContext, NotificationDispatcher
from .progress import ProgressResult, ProgressState
from .rate import RateWindow
from .status import RunStatus, StatusSnapshot, publish
from .timestamps import clock_timestamp, format_duration
from .vcs import GitError, GitProbe

logger = logging.getLogger("ralph")


class LoopPhase(Enum):
    """Controller lifecycle."""

    INIT = "init"
    RUNNING = "running"
    STOPPED_MAX_ITERATIONS = "stopped_max_iterations"
    STOPPED_CIRCUIT_BREAKER = "stopped_circuit_breaker"
    STOPPED_INTERRUPTED = "stopped_interrupted"
    STOPPED_NORMAL = "stopped_normal"

    @property
    def is_stopped(self) -> bool:
        return self not in (LoopPhase.INIT, LoopPhase.RUNNING)


STOP_EVENTS: dict[LoopPhase, Event] = {
    LoopPhase.STOPPED_MAX_ITERATIONS: Event.MAX_ITERATIONS_REACHED,
    LoopPhase.STOPPED_CIRCUIT_BREAKER: Event.CIRCUIT_BREAKER_TRIPPED,
    LoopPhase.STOPPED_INTERRUPTED: Event.INTERRUPTED,
    LoopPhase.STOPPED_NORMAL: Event.SESSION_COMPLETED,
}


@dataclass(frozen=True)
class Session:
    """Immutable facts about one run of the loop."""

    mode: str
    branch: str
    project: str
    max_iterations: int
    breaker: BreakerConfig
    started_at: float = field(default_factory=time.time)
    rate_warning_threshold: int = rate.DEFAULT_WARNING_THRESHOLD
    iteration_delay: float = 2.0
    push_enabled: bool = True
    log_file: str = "ralph.log"


@dataclass
class LoopState:
    """Everything the loop mutates during a session."""

    breaker: CircuitBreaker
    rate: RateWindow
    progress: ProgressState = field(default_factory=ProgressState)
    iteration: int = 0
    phase: LoopPhase = LoopPhase.INIT

    @property
    def last_commit(self) -> str:
        revision = self.progress.last_known_revision
        return revision[:7] if revision else "none"


# Returns True when the worker exited successfully
Invoker = Callable[[int], bool]


class LoopController:
    """Drives the worker and composes progress, breaker, rate, status and notifications."""

    def __init__(
        self,
        session: Session,
        invoke: Invoker,
        probe: GitProbe,
        dispatcher: NotificationDispatcher,
        status_file: Path,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.session = session
        self.invoke = invoke
        self.probe = probe
        self.dispatcher = dispatcher
        self.status_file = status_file
        self.clock = clock
        self.state = LoopState(
            breaker=CircuitBreaker(session.breaker),
            rate=RateWindow.starting_now(clock()),
        )
        self._stop_requested = threading.Event()
        self._stop_phase = LoopPhase.STOPPED_INTERRUPTED

    # =========================================================================
    # External control
    # =========================================================================

    def request_stop(self, interrupted: bool = True) -> None:
        """Ask the loop to stop at the next safe point.

        Safe from signal handlers. Cuts the inter-iteration delay short but
        lets an in-flight worker invocation finish.
        """
        if not self._stop_requested.is_set():
            self._stop_phase = (
                LoopPhase.STOPPED_INTERRUPTED if interrupted else LoopPhase.STOPPED_NORMAL
            )
        self._stop_requested.set()

    @property
    def stop_requested(self) -> bool:
        return self._stop_requested.is_set()

    # =========================================================================
    # Main loop
    # =========================================================================

    def run(self) -> LoopPhase:
        """Run until a stop condition. Returns the terminal phase."""
        self.state.phase = LoopPhase.RUNNING
        self._init_progress_tracking()
        self.publish_status()
        self.dispatcher.notify(Event.SESSION_STARTED, self.notification_context())

        while True:
            if self.stop_requested:
                return self._finish(self._stop_phase)

            next_iteration = self.state.iteration + 1
            max_iterations = self.session.max_iterations
            if max_iterations > 0 and next_iteration > max_iterations:
                logger.info(f"Reached maximum iterations ({max_iterations}). Stopping.")
                return self._finish(LoopPhase.STOPPED_MAX_ITERATIONS)

            self.state.iteration = next_iteration
            self._track_rate()
            self.dispatcher.notify(Event.ITERATION_STARTED, self.notification_context())
            self._log_iteration_banner()

            breaker = self.state.breaker
            if not self._invoke_worker():
                logger.error(f"Iteration {self.state.iteration} failed")
                breaker.record_outcome(None, invocation_error=True)
                logger.warning(
                    f"Iteration error recorded "
                    f"({breaker.consecutive_errors}/{self.session.breaker.error_threshold})"
                )
                self.publish_status()
                if breaker.evaluate() == BreakerState.TRIPPED:
                    return self._finish(LoopPhase.STOPPED_CIRCUIT_BREAKER)
                if self.stop_requested:
                    continue
                logger.warning("Continuing to next iteration...")
                self._pause()
                continue

            if breaker.consecutive_errors > 0:
                logger.info(f"Error streak cleared after {breaker.consecutive_errors} errors")
            result = self._check_progress()
            breaker.record_outcome(
                result.advanced if result.observed else None, invocation_error=False
            )
            self.publish_status()
            if breaker.evaluate() == BreakerState.TRIPPED:
                return self._finish(LoopPhase.STOPPED_CIRCUIT_BREAKER)

            self.dispatcher.notify(Event.ITERATION_COMPLETED, self.notification_context())
            logger.info(
                f"Iteration {self.state.iteration} completed (commit: {self.state.last_commit})"
            )

            if result.advanced:
                self._push_changes()

            if not self.stop_requested:
                self._pause()

    # =========================================================================
    # Status and notifications
    # =========================================================================

    def snapshot(self, status: RunStatus = RunStatus.RUNNING) -> StatusSnapshot:
        """Project the current session and loop state into a status snapshot."""
        now = self.clock()
        breaker = self.state.breaker
        return StatusSnapshot(
            timestamp=int(now),
            iteration=self.state.iteration,
            max_iterations=self.session.max_iterations,
            mode=self.session.mode,
            branch=self.session.branch,
            project=self.session.project,
            elapsed_seconds=max(0, int(now - self.session.started_at)),
            total_commits=self.state.progress.total_progress_events,
            consecutive_no_progress=breaker.consecutive_no_progress,
            consecutive_errors=breaker.consecutive_errors,
            circuit_breaker_threshold=self.session.breaker.no_progress_threshold,
            circuit_breaker_error_threshold=self.session.breaker.error_threshold,
            circuit_breaker_enabled=breaker.is_enabled(),
            circuit_breaker_state=breaker.state.value,
            iterations_this_hour=self.state.rate.count,
            last_commit=self.state.last_commit,
            status=status.value,
            exit_reason=self.exit_reason() if status == RunStatus.STOPPED else None,
        )

    def publish_status(self, status: RunStatus = RunStatus.RUNNING) -> None:
        """Write a fresh snapshot. Write failures are logged, not raised."""
        try:
            publish(self.status_file, self.snapshot(status))
        except OSError as e:
            logger.error(f"Could not write status file {self.status_file}: {e}")

    def notification_context(self, detail: str | None = None) -> NotificationContext:
        return NotificationContext(
            project=self.session.project,
            branch=self.session.branch,
            mode=self.session.mode,
            duration=format_duration(max(0.0, self.clock() - self.session.started_at)),
            iterations=self.state.iteration,
            commits=self.state.progress.total_progress_events,
            last_revision=self.state.last_commit,
            detail=detail,
        )

    def exit_reason(self) -> str:
        """Short machine-friendly reason for the terminal phase."""
        phase = self.state.phase
        if phase == LoopPhase.STOPPED_MAX_ITERATIONS:
            return "max_iterations"
        if phase == LoopPhase.STOPPED_CIRCUIT_BREAKER:
            if self.state.breaker.trip_reason == TripReason.ERRORS:
                return "circuit_breaker_errors"
            return "circuit_breaker_no_progress"
        if phase == LoopPhase.STOPPED_INTERRUPTED:
            return "interrupted"
        if phase == LoopPhase.STOPPED_NORMAL:
            return "complete"
        return phase.value

    # =========================================================================
    # Private helpers
    # =========================================================================

    def _init_progress_tracking(self) -> None:
        try:
            self.state.progress.last_known_revision = self.probe.head_revision()
        except GitError as e:
            logger.warning(f"Could not read starting revision: {e}")
        logger.info(f"Progress tracking initialized (last commit: {self.state.last_commit})")

    def _track_rate(self) -> None:
        tick = rate.tick(self.state.rate, self.session.rate_warning_threshold, now=self.clock())
        if tick.window_reset:
            logger.info(f"Hourly rate reset: {tick.previous_count} iterations in the last hour")
        if tick.warned:
            logger.warning(f"Rate warning: {tick.count} iterations this hour")
            logger.warning("Consider monitoring API usage if running with many parallel projects")
        self.publish_status()

    def _invoke_worker(self) -> bool:
        """Run the worker; a raised error counts as a failed invocation."""
        try:
            return bool(self.invoke(self.state.iteration))
        except Exception as e:
            logger.error(f"Worker invocation raised: {e}", exc_info=True)
            return False

    def _check_progress(self) -> ProgressResult:
        tracked = self.state.progress
        try:
            current = self.probe.head_revision()
        except GitError as e:
            logger.warning(f"Could not get current commit hash: {e}")
            return progress.observe(tracked, None)

        if current is None:
            logger.warning("Could not get current commit hash (no commits yet)")
            return progress.observe(tracked, None)

        new_commits = None
        if tracked.last_known_revision and current != tracked.last_known_revision:
            new_commits = self.probe.count_commits(tracked.last_known_revision, current)

        previous_stall = tracked.consecutive_no_progress
        result = progress.observe(tracked, current, new_commits)

        if result.advanced:
            if previous_stall > 0:
                logger.info(f"Progress resumed after {previous_stall} stalled iterations")
            logger.info(
                f"New commit detected: {current[:7]} "
                f"(total this session: {tracked.total_progress_events})"
            )
        else:
            logger.warning(
                f"No new commits this iteration "
                f"({tracked.consecutive_no_progress}/{self.session.breaker.no_progress_threshold})"
            )
        return result

    def _push_changes(self) -> None:
        if not self.session.push_enabled or not self.session.branch:
            return
        if not self.probe.push(self.session.branch):
            logger.warning("Push failed, continuing anyway...")

    def _pause(self) -> None:
        """Inter-iteration delay; returns early when a stop is requested."""
        self._stop_requested.wait(self.session.iteration_delay)

    def _log_iteration_banner(self) -> None:
        max_info = f" of {self.session.max_iterations}" if self.session.max_iterations else ""
        elapsed = format_duration(max(0.0, self.clock() - self.session.started_at))
        log_banner(
            logger,
            f"ITERATION {self.state.iteration}{max_info}",
            [
                ("Mode", self.session.mode),
                ("Branch", self.session.branch),
                ("Started", f"{clock_timestamp()}  Elapsed: {elapsed}"),
            ],
        )

    def _finish(self, phase: LoopPhase) -> LoopPhase:
        self.state.phase = phase
        detail = None

        if phase == LoopPhase.STOPPED_CIRCUIT_BREAKER:
            for line in self.state.breaker.diagnostic(self.session.log_file):
                logger.error(line)
            detail = self.state.breaker.summary() or None
        elif phase == LoopPhase.STOPPED_INTERRUPTED:
            logger.info("Loop interrupted by user")

        self.publish_status(RunStatus.STOPPED)
        self.dispatcher.notify(STOP_EVENTS[phase], self.notification_context(detail))
        self._log_summary()
        return phase

    def _log_summary(self) -> None:
        elapsed = max(0.0, self.clock() - self.session.started_at)
        log_banner(
            logger,
            "RALPH SESSION COMPLETE",
            [
                ("Project", self.session.project),
                ("Branch", self.session.branch),
                ("Mode", self.session.mode),
                ("Exit reason", self.exit_reason()),
                ("Iterations", str(self.state.iteration)),
                ("Commits", str(self.state.progress.total_progress_events)),
                ("Duration", format_duration(elapsed)),
                ("Rate", rate.rate_info(self.state.rate, now=self.clock())),
                ("Last commit", self.state.last_commit),
            ],
        )
