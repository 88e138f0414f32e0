"""Operating modes and their invocation settings.

This module is the single source of truth for:
- Which prompt file each mode feeds to the worker
- Default iteration limits per mode
- Mode-specific startup requirements
"""

from dataclasses import dataclass, field
from enum import Enum


class Mode(Enum):
    """All valid operating modes."""

    BUILD = "build"
    PLAN = "plan"
    PLAN_WORK = "plan-work"
    AUDIT = "audit"
    DONE = "done"


class AuditScope(Enum):
    """What an audit run examines."""

    FULL = "full"
    DOCS_ONLY = "docs-only"
    PATTERNS = "patterns"
    BACKPRESSURE = "backpressure"


@dataclass(frozen=True)
class ModeConfig:
    """Configuration for a single mode."""

    mode: Mode
    prompt_file: str | None
    default_max_iterations: int
    requires_work_branch: bool = False
    runs_loop: bool = True


# Mode configuration registry - single source of truth
MODE_CONFIGS: dict[Mode, ModeConfig] = {
    Mode.BUILD: ModeConfig(
        mode=Mode.BUILD,
        prompt_file="PROMPT_build.md",
        default_max_iterations=0,
    ),
    Mode.PLAN: ModeConfig(
        mode=Mode.PLAN,
        prompt_file="PROMPT_plan.md",
        default_max_iterations=0,
    ),
    Mode.PLAN_WORK: ModeConfig(
        mode=Mode.PLAN_WORK,
        prompt_file="PROMPT_plan_work.md",
        default_max_iterations=5,
        requires_work_branch=True,
    ),
    Mode.AUDIT: ModeConfig(
        mode=Mode.AUDIT,
        prompt_file="PROMPT_audit.md",
        default_max_iterations=1,  # Audit runs once
    ),
    Mode.DONE: ModeConfig(
        mode=Mode.DONE,
        prompt_file=None,
        default_max_iterations=0,
        runs_loop=False,
    ),
}

BACKPRESSURE_PROMPT_FILE = "PROMPT_audit_backpressure.md"

# Branches a scoped plan must never run on
PROTECTED_BRANCHES = frozenset({"main", "master"})


@dataclass(frozen=True)
class AuditOptions:
    """Flags accepted by audit mode."""

    scope: AuditScope = AuditScope.FULL
    quick: bool = False
    apply: bool = False


@dataclass(frozen=True)
class RunOptions:
    """Resolved command-line options for one session."""

    mode: Mode = Mode.BUILD
    max_iterations: int = 0
    work_scope: str = ""
    audit: AuditOptions = field(default_factory=AuditOptions)
    monitor: bool = False
    circuit_breaker_enabled: bool | None = None
    circuit_breaker_threshold: int | None = None

    @property
    def prompt_file(self) -> str | None:
        """Prompt file name for this run, honoring the backpressure audit."""
        if self.mode == Mode.AUDIT and self.audit.scope == AuditScope.BACKPRESSURE:
            return BACKPRESSURE_PROMPT_FILE
        return get_mode_config(self.mode).prompt_file

    def prompt_variables(self) -> dict[str, str]:
        """Placeholder values substituted into the prompt for this mode."""
        if self.mode == Mode.PLAN_WORK:
            return {"WORK_SCOPE": self.work_scope}
        if self.mode == Mode.AUDIT:
            return {
                "AUDIT_SCOPE": self.audit.scope.value,
                "AUDIT_APPLY": str(self.audit.apply).lower(),
                "AUDIT_QUICK": str(self.audit.quick).lower(),
            }
        return {}


def get_mode_config(mode: Mode | str) -> ModeConfig:
    """Get configuration for a mode. Raises ValueError for unknown names."""
    if isinstance(mode, str):
        mode = Mode(mode.lower())
    return MODE_CONFIGS[mode]
