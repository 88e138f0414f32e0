"""Command-line parsing for the Ralph loop.

Usage forms:
    ralph                                 build mode, unlimited iterations
    ralph 20                              build mode, max 20 iterations
    ralph plan [N]                        planning mode
    ralph plan-work "description" [N]     scoped planning (default 5 iterations)
    ralph audit [--docs-only|--patterns|--full|--backpressure] [--quick] [--apply]
    ralph done                            archive working files
    ralph monitor                         follow the status file of a running loop

Global flags may appear anywhere: --monitor, --no-circuit-breaker,
--circuit-breaker-threshold N.
"""

import argparse
from dataclasses import replace as dataclass_replace

from .config import ConfigurationError
from .modes import AuditOptions, AuditScope, Mode, RunOptions, get_mode_config

MONITOR_COMMAND = "monitor"

AUDIT_SCOPE_FLAGS = {
    "--docs-only": AuditScope.DOCS_ONLY,
    "--patterns": AuditScope.PATTERNS,
    "--full": AuditScope.FULL,
    "--backpressure": AuditScope.BACKPRESSURE,
}
AUDIT_APPLY_FLAGS = frozenset({"--apply", "--apply-docs"})

USAGE_HINT = (
    'Usage: ralph [plan|plan-work "desc"|audit|done|monitor|N] '
    "[--monitor] [--no-circuit-breaker] [--circuit-breaker-threshold N]"
)


def build_parser() -> argparse.ArgumentParser:
    """Build the argument parser for global flags and positional words."""
    parser = argparse.ArgumentParser(
        prog="ralph",
        description="Ralph - Autonomous AI Coding Agent Loop",
        allow_abbrev=False,
    )
    parser.add_argument(
        "words",
        nargs="*",
        help="Mode and its arguments (build by default), or a max iteration count",
    )
    parser.add_argument(
        "--monitor",
        action="store_true",
        help="Announce the status file so a monitor can follow the session",
    )
    parser.add_argument(
        "--no-circuit-breaker",
        action="store_true",
        help="Disable the circuit breaker for this session",
    )
    parser.add_argument(
        "--circuit-breaker-threshold",
        type=int,
        metavar="N",
        help="Stop after N consecutive iterations without new commits",
    )
    return parser


def is_monitor_command(argv: list[str]) -> bool:
    """True when the first positional word asks for the standalone monitor."""
    words = [arg for arg in argv if not arg.startswith("-")]
    return bool(words) and words[0] == MONITOR_COMMAND


def parse_arguments(argv: list[str]) -> RunOptions:
    """Parse argv into RunOptions.

    Raises ConfigurationError for unknown modes, flags or malformed values.
    """
    parser = build_parser()
    args, extras = parser.parse_known_intermixed_args(argv)

    if args.circuit_breaker_threshold is not None and args.circuit_breaker_threshold < 1:
        raise ConfigurationError("--circuit-breaker-threshold requires a positive number")

    options = RunOptions(
        monitor=args.monitor,
        circuit_breaker_enabled=False if args.no_circuit_breaker else None,
        circuit_breaker_threshold=args.circuit_breaker_threshold,
    )

    words: list[str] = args.words
    if not words:
        _reject_extras(extras, options.mode)
        return options

    head, rest = words[0], words[1:]

    if head.isdigit():
        _reject_extras(extras + rest, Mode.BUILD)
        return dataclass_replace(options, max_iterations=int(head))

    try:
        mode = Mode(head)
    except ValueError:
        raise ConfigurationError(f"Unknown argument: {head}\n{USAGE_HINT}") from None

    if mode == Mode.AUDIT:
        _reject_extras(rest, mode)
        return dataclass_replace(
            options,
            mode=mode,
            max_iterations=get_mode_config(mode).default_max_iterations,
            audit=parse_audit_flags(extras),
        )

    _reject_extras(extras, mode)

    if mode == Mode.PLAN_WORK:
        if not rest:
            raise ConfigurationError(
                "plan-work requires a work description\n"
                'Usage: ralph plan-work "user auth with OAuth"'
            )
        work_scope, rest = rest[0], rest[1:]
        options = dataclass_replace(options, work_scope=work_scope)

    return dataclass_replace(
        options,
        mode=mode,
        max_iterations=_parse_max_iterations(rest, mode),
    )


def parse_audit_flags(flags: list[str]) -> AuditOptions:
    """Parse audit-specific flags. Later scope flags win."""
    audit = AuditOptions()
    for flag in flags:
        if flag in AUDIT_SCOPE_FLAGS:
            audit = dataclass_replace(audit, scope=AUDIT_SCOPE_FLAGS[flag])
        elif flag in AUDIT_APPLY_FLAGS:
            audit = dataclass_replace(audit, apply=True)
        elif flag == "--quick":
            audit = dataclass_replace(audit, quick=True)
        else:
            raise ConfigurationError(
                f"Unknown audit flag: {flag}\n"
                "Usage: ralph audit [--docs-only|--patterns|--full|--backpressure] "
                "[--quick] [--apply|--apply-docs]"
            )
    return audit


def _parse_max_iterations(rest: list[str], mode: Mode) -> int:
    """Optional trailing iteration count; falls back to the mode default."""
    default = get_mode_config(mode).default_max_iterations
    if not rest:
        return default
    if len(rest) > 1:
        raise ConfigurationError(f"Unexpected arguments for {mode.value}: {' '.join(rest[1:])}")
    if not rest[0].isdigit():
        raise ConfigurationError(f"Max iterations must be a number, got {rest[0]!r}")
    return int(rest[0])


def _reject_extras(extras: list[str], mode: Mode) -> None:
    if extras:
        raise ConfigurationError(
            f"Unexpected arguments for {mode.value}: {' '.join(extras)}\n{USAGE_HINT}"
        )
