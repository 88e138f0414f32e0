"""Ralph package - autonomous agent loop components."""

from .archive import ArchiveResult, archive_working_files
from .arguments import is_monitor_command, parse_arguments, parse_audit_flags
from .breaker import BreakerConfig, BreakerState, CircuitBreaker, TripReason
from .config import ConfigurationError, RalphConfig
from .controller import LoopController, LoopPhase, LoopState, Session
from .logging import log_banner, setup_logging
from .modes import (
    MODE_CONFIGS,
    AuditOptions,
    AuditScope,
    Mode,
    ModeConfig,
    RunOptions,
    get_mode_config,
)
from .monitor import render_status, watch
from .notifications import Event, NotificationContext, NotificationDispatcher
from .progress import ProgressResult, ProgressState, observe
from .rate import RateTick, RateWindow, rate_info, tick
from .runner import (
    ExecutionResult,
    ExecutionStatus,
    OutputCapture,
    WorkerSettings,
    build_prompt,
    run_worker,
)
from .status import RunStatus, StatusSnapshot, publish, read_status
from .timestamps import (
    archive_timestamp,
    clock_timestamp,
    format_duration,
    full_timestamp,
    jsonl_timestamp,
)
from .vcs import GitError, GitProbe

__all__ = [
    # Archive
    "ArchiveResult",
    "archive_working_files",
    # Arguments
    "is_monitor_command",
    "parse_arguments",
    "parse_audit_flags",
    # Breaker
    "BreakerConfig",
    "BreakerState",
    "CircuitBreaker",
    "TripReason",
    # Config
    "ConfigurationError",
    "RalphConfig",
    # Controller
    "LoopController",
    "LoopPhase",
    "LoopState",
    "Session",
    # Logging
    "log_banner",
    "setup_logging",
    # Modes
    "MODE_CONFIGS",
    "AuditOptions",
    "AuditScope",
    "Mode",
    "ModeConfig",
    "RunOptions",
    "get_mode_config",
    # Monitor
    "render_status",
    "watch",
    # Notifications
    "Event",
    "NotificationContext",
    "NotificationDispatcher",
    # Progress
    "ProgressResult",
    "ProgressState",
    "observe",
    # Rate
    "RateTick",
    "RateWindow",
    "rate_info",
    "tick",
    # Runner
    "ExecutionResult",
    "ExecutionStatus",
    "OutputCapture",
    "WorkerSettings",
    "build_prompt",
    "run_worker",
    # Status
    "RunStatus",
    "StatusSnapshot",
    "publish",
    "read_status",
    # Timestamps
    "archive_timestamp",
    "clock_timestamp",
    "format_duration",
    "full_timestamp",
    "jsonl_timestamp",
    # VCS
    "GitError",
    "GitProbe",
]
