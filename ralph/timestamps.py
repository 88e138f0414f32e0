"""Centralized timestamp and duration formatting for Ralph sessions.

Formats used across the loop:
- Clock timestamps: HH:MM:SS (e.g., 14:30:05)
- Archive timestamps: YYYYmmdd_HHMMSS (e.g., 20260115_143005)
- JSONL log timestamps: MM-DD-HHMM (e.g., 01-15-1430)
- Durations: Xh Ym or Ym (e.g., 1h 5m, 12m)
"""

from datetime import datetime


def clock_timestamp(dt: datetime | None = None) -> str:
    """Generate timestamp for banners: HH:MM:SS

    Example: 14:30:05
    """
    if dt is None:
        dt = datetime.now()
    return dt.strftime("%H:%M:%S")


def archive_timestamp(dt: datetime | None = None) -> str:
    """Generate timestamp for archive folders: YYYYmmdd_HHMMSS

    Example: 20260115_143005
    """
    if dt is None:
        dt = datetime.now()
    return dt.strftime("%Y%m%d_%H%M%S")


def full_timestamp(dt: datetime | None = None) -> str:
    """Generate full timestamp for headers: YYYY-MM-DD HH:MM:SS

    Example: 2026-01-15 14:30:05
    """
    if dt is None:
        dt = datetime.now()
    return dt.strftime("%Y-%m-%d %H:%M:%S")


def jsonl_timestamp(dt: datetime | None = None) -> str:
    """Generate timestamp for JSONL log files: MM-DD-HHMM

    Example: 01-15-1437
    """
    if dt is None:
        dt = datetime.now()
    return dt.strftime("%m-%d-%H%M")


def format_duration(seconds: float) -> str:
    """Format elapsed seconds as hours and minutes.

    Example: 3900 -> "1h 5m", 720 -> "12m"
    """
    if seconds < 0:
        raise ValueError(f"Duration must be >= 0, got {seconds}")
    total = int(seconds)
    hours = total // 3600
    minutes = (total % 3600) // 60
    if hours > 0:
        return f"{hours}h {minutes}m"
    return f"{minutes}m"
