#!/usr/bin/env python3
"""Ralph - Autonomous AI Coding Agent Loop.

Runs the worker CLI iteratively in the current git repository, watching
commits for progress and stopping on max iterations, a tripped circuit
breaker or an interrupt.
"""

import logging
import signal
import sys
import threading
from dataclasses import replace as dataclass_replace
from pathlib import Path

from ralph import (
    BreakerConfig,
    ConfigurationError,
    GitError,
    GitProbe,
    LoopController,
    Mode,
    NotificationDispatcher,
    RalphConfig,
    RunOptions,
    Session,
    WorkerSettings,
    archive_working_files,
    build_prompt,
    get_mode_config,
    is_monitor_command,
    log_banner,
    parse_arguments,
    run_worker,
    setup_logging,
    watch,
)
from ralph.modes import PROTECTED_BRANCHES


def apply_cli_overrides(config: RalphConfig, options: RunOptions) -> RalphConfig:
    """CLI flags win over environment and config file values."""
    if options.circuit_breaker_enabled is not None:
        config = dataclass_replace(config, circuit_breaker_enabled=options.circuit_breaker_enabled)
    if options.circuit_breaker_threshold is not None:
        config = dataclass_replace(config, no_progress_threshold=options.circuit_breaker_threshold)
    return config


def validate_environment(
    config: RalphConfig, options: RunOptions, probe: GitProbe
) -> tuple[Path, str]:
    """Check everything the loop needs before it starts.

    Returns the prompt file and the current branch.
    Raises ConfigurationError describing every problem found.
    """
    if not probe.is_work_tree():
        raise ConfigurationError("Not inside a git repository. Initialize with 'git init' first.")

    errors = config.validate()

    prompt_name = options.prompt_file
    prompt_file = config.ralph_dir / (prompt_name or "")
    if prompt_name is None or not prompt_file.is_file():
        errors.append(
            f"Prompt file not found: {prompt_file}\n"
            f"Ensure Ralph is properly installed at {config.ralph_dir}"
        )

    try:
        branch = probe.current_branch()
    except GitError as e:
        raise ConfigurationError(str(e)) from e

    if get_mode_config(options.mode).requires_work_branch and branch in PROTECTED_BRANCHES:
        errors.append(
            f"plan-work should run on a work branch, not '{branch}'\n"
            "Create a work branch first: git checkout -b ralph/feature-name"
        )

    if errors:
        raise ConfigurationError("\n".join(errors))
    return prompt_file, branch


def run_monitor(status_file: Path, logger: logging.Logger) -> int:
    """Follow the status file until the session stops or the user interrupts."""
    stop_event = threading.Event()
    previous = signal.signal(signal.SIGINT, lambda signum, frame: stop_event.set())
    logger.info(f"Following {status_file} (Ctrl-C to detach)")
    try:
        watch(status_file, stop_event=stop_event)
    finally:
        signal.signal(signal.SIGINT, previous)
    return 0


def run_archive(repo_path: Path, probe: GitProbe, logger: logging.Logger) -> int:
    """The done mode: archive working files, no loop."""
    if not probe.is_work_tree():
        logger.error("Not inside a git repository. Initialize with 'git init' first.")
        return 1
    try:
        branch = probe.current_branch()
    except GitError as e:
        logger.error(str(e))
        return 1
    result = archive_working_files(repo_path, branch)
    if result.archive_dir is not None:
        log_banner(
            logger,
            "WORKING FILES ARCHIVED",
            [
                ("Branch", branch),
                ("Files", f"{result.count} archived"),
                ("Location", str(result.archive_dir)),
            ],
        )
    return 0


def main(argv: list[str] | None = None) -> int:
    """Main loop entry point."""
    argv = sys.argv[1:] if argv is None else argv
    repo_path = Path.cwd()

    try:
        config = RalphConfig.from_env(working_dir=repo_path)
    except ConfigurationError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    logger = setup_logging(repo_path / config.log_file)
    status_file = repo_path / config.status_file

    if is_monitor_command(argv):
        return run_monitor(status_file, logger)

    try:
        options = parse_arguments(argv)
    except ConfigurationError as e:
        logger.error(str(e))
        return 1

    config = apply_cli_overrides(config, options)
    probe = GitProbe(repo_path)

    if options.mode == Mode.DONE:
        return run_archive(repo_path, probe, logger)

    try:
        prompt_file, branch = validate_environment(config, options, probe)
    except ConfigurationError as e:
        logger.error("Configuration validation failed:")
        for line in str(e).splitlines():
            logger.error(f"  - {line}")
        return 1

    project = probe.project_name()
    mode = options.mode.value
    max_display = str(options.max_iterations) if options.max_iterations else "unlimited"
    if config.circuit_breaker_enabled:
        breaker_display = f"enabled (threshold: {config.no_progress_threshold})"
    else:
        breaker_display = "disabled"

    rows = [
        ("Project", project),
        ("Branch", branch),
        ("Mode", mode),
        ("Max iterations", max_display),
    ]
    if options.work_scope:
        rows.append(("Work scope", options.work_scope[:44]))
    if options.mode == Mode.AUDIT:
        rows.append(("Audit scope", options.audit.scope.value))
        rows.append(("Quick mode", str(options.audit.quick).lower()))
        rows.append(("Auto-apply", str(options.audit.apply).lower()))
    rows.extend(
        [
            ("Circuit breaker", breaker_display),
            ("Live monitor", "enabled" if options.monitor else "disabled"),
            ("Log file", str(config.log_file)),
        ]
    )
    log_banner(logger, "RALPH - Autonomous AI Coding Agent Loop", rows)
    logger.info(f"Config: {config.to_log_string()}")

    if options.monitor:
        logger.info(f"Status file: {status_file}")
        logger.info("Attach a monitor from another terminal with: ralph monitor")

    if config.slack_webhook_url:
        logger.info("Slack notifications: enabled")
    else:
        logger.info("Slack notifications: disabled (set SLACK_WEBHOOK_URL in config)")

    if config.push_enabled and branch:
        probe.ensure_remote_branch(branch)

    settings = WorkerSettings(
        claude_path=config.claude_path,
        model=config.claude_model,
        working_dir=repo_path,
        log_dir=repo_path / ".ralph" / "logs",
        timeout=config.invocation_timeout,
    )
    prompt_variables = options.prompt_variables()
    if options.work_scope:
        logger.info(f"Work scope: {options.work_scope}")

    def invoke(iteration: int) -> bool:
        # Re-read each time so prompt edits take effect on the next iteration
        prompt = build_prompt(prompt_file, prompt_variables)
        return run_worker(settings, prompt, iteration, mode).succeeded

    session = Session(
        mode=mode,
        branch=branch,
        project=project,
        max_iterations=options.max_iterations,
        breaker=BreakerConfig(
            enabled=config.circuit_breaker_enabled,
            no_progress_threshold=config.no_progress_threshold,
            error_threshold=config.error_threshold,
        ),
        rate_warning_threshold=config.rate_warning_threshold,
        iteration_delay=config.iteration_delay,
        push_enabled=config.push_enabled,
        log_file=str(config.log_file),
    )
    dispatcher = NotificationDispatcher.from_settings(
        slack_webhook_url=config.slack_webhook_url,
        telegram_bot_token=config.telegram_bot_token,
        telegram_chat_id=config.telegram_chat_id,
        desktop=config.desktop_notification,
        notify_per_iteration=config.notify_per_iteration,
    )
    controller = LoopController(session, invoke, probe, dispatcher, status_file)

    def handle_interrupt(signum: int, frame: object) -> None:
        logger.info(f"\nReceived {signal.Signals(signum).name}, stopping after current step...")
        controller.request_stop()

    previous_int = signal.signal(signal.SIGINT, handle_interrupt)
    previous_term = signal.signal(signal.SIGTERM, handle_interrupt)
    try:
        phase = controller.run()
    except Exception as e:
        logger.error(f"Loop crashed: {e}", exc_info=True)
        return 1
    finally:
        signal.signal(signal.SIGINT, previous_int)
        signal.signal(signal.SIGTERM, previous_term)

    logger.info(f"Loop finished: {phase.value}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
