"""Hourly invocation counter.

A fixed one-hour window: once an hour has elapsed since the window opened,
the count starts over. The tracker only flags; it never halts the loop.
"""

import time
from dataclasses import dataclass

WINDOW_SECONDS = 3600
DEFAULT_WARNING_THRESHOLD = 50


@dataclass
class RateWindow:
    """Counting window state owned by the loop."""

    window_start: float
    count: int = 0

    @classmethod
    def starting_now(cls, now: float | None = None) -> "RateWindow":
        return cls(window_start=time.time() if now is None else now)


@dataclass(frozen=True)
class RateTick:
    """Outcome of one tick."""

    count: int
    warned: bool
    window_reset: bool
    previous_count: int = 0


def tick(
    window: RateWindow,
    warning_threshold: int = DEFAULT_WARNING_THRESHOLD,
    now: float | None = None,
) -> RateTick:
    """Count one invocation, resetting the window first if it has expired.

    warned is True only on the tick that makes the count equal the threshold,
    so the warning fires once per window.
    """
    if now is None:
        now = time.time()

    window_reset = False
    previous_count = 0
    if now - window.window_start >= WINDOW_SECONDS:
        previous_count = window.count
        window.count = 0
        window.window_start = now
        window_reset = True

    window.count += 1
    return RateTick(
        count=window.count,
        warned=window.count == warning_threshold,
        window_reset=window_reset,
        previous_count=previous_count,
    )


def minutes_remaining(window: RateWindow, now: float | None = None) -> int:
    """Whole minutes until the current window resets (never negative)."""
    if now is None:
        now = time.time()
    elapsed = now - window.window_start
    return max(0, int((WINDOW_SECONDS - elapsed) // 60))


def rate_info(window: RateWindow, now: float | None = None) -> str:
    """Human-readable summary for the session report."""
    return f"{window.count} this hour ({minutes_remaining(window, now)}m until reset)"
