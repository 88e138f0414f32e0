"""Tests for ralph/runner.py - worker CLI execution.

This module tests:
- Prompt building with placeholders
- CLI argument and log filename construction
- Process execution outcomes against small Python stand-in workers
"""

import sys
import textwrap
import time
from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest

from ralph.runner import (
    ExecutionStatus,
    OutputCapture,
    WorkerSettings,
    build_cli_args,
    build_prompt,
    generate_log_filename,
    run_worker,
)

def make_settings(tmp_path: Path, timeout: int = 0) -> WorkerSettings:
    return WorkerSettings(
        claude_path="claude",
        model="opus",
        working_dir=tmp_path,
        log_dir=tmp_path / ".ralph" / "logs",
        timeout=timeout,
    )

def run_script(tmp_path: Path, source: str, timeout: int = 0):
    """Run a Python snippet as the worker CLI."""
    cli_args = [sys.executable, "-c", textwrap.dedent(source)]
    with patch("ralph.runner.build_cli_args", return_value=cli_args):
        return run_worker(make_settings(tmp_path, timeout), "do it", 1, "build")

class TestBuildPrompt:
    """Tests for build_prompt - reading and substituting prompt files."""

    def test_plain_prompt(self, tmp_path: Path) -> None:
        prompt_file = tmp_path / "PROMPT_build.md"
        prompt_file.write_text("Build the next task.\n")

        assert build_prompt(prompt_file) == "Build the next task.\n"

    def test_substitutes_placeholders(self, tmp_path: Path) -> None:
        prompt_file = tmp_path / "PROMPT_plan_work.md"
        prompt_file.write_text("Plan only: ${WORK_SCOPE}\n")

        result = build_prompt(prompt_file, {"WORK_SCOPE": "billing"})

        assert result == "Plan only: billing\n"

    def test_leaves_unknown_placeholders(self, tmp_path: Path) -> None:
        prompt_file = tmp_path / "PROMPT_audit.md"
        prompt_file.write_text("Scope ${AUDIT_SCOPE}, cost $5, ${OTHER}\n")

        result = build_prompt(prompt_file, {"AUDIT_SCOPE": "full"})

        assert result == "Scope full, cost $5, ${OTHER}\n"

class TestBuildCliArgs:
    """Tests for build_cli_args - worker command line."""

    def test_arguments(self, tmp_path: Path) -> None:
        args = build_cli_args(make_settings(tmp_path))

        assert args[0] == "claude"
        assert "-p" in args
        assert "--dangerously-skip-permissions" in args
        assert "--output-format=stream-json" in args
        assert args[args.index("--model") + 1] == "opus"

class TestGenerateLogFilename:
    """Tests for generate_log_filename - per-iteration JSONL paths."""

    def test_format(self, tmp_path: Path) -> None:
        filename = generate_log_filename(tmp_path, "plan-work", 7)

        assert filename.parent == tmp_path
        assert filename.suffix == ".jsonl"
        assert filename.name.endswith("-007-plan-work.jsonl")

class TestRunWorker:
    """Tests for run_worker - single CLI execution."""

    def test_success_streams_stdout_to_log(self, tmp_path: Path) -> None:
        result = run_script(
            tmp_path,
            """
            import json, sys
            prompt = sys.stdin.read()
            print(json.dumps({"type": "result", "prompt": prompt}))
            """,
        )

        assert result.status == ExecutionStatus.SUCCESS
        assert result.succeeded is True
        assert result.returncode == 0
        assert '"prompt": "do it"' in result.stdout
        assert result.log_file is not None
        assert result.log_file.parent == tmp_path / ".ralph" / "logs"
        assert result.log_file.read_text(encoding="utf-8") == result.stdout

    def test_nonzero_exit_is_failure(self, tmp_path: Path) -> None:
        result = run_script(
            tmp_path,
            """
            import sys
            sys.stderr.write("rate limited\\n")
            sys.exit(3)
            """,
        )

        assert result.status == ExecutionStatus.FAILURE
        assert result.returncode == 3
        assert result.stderr == "rate limited\n"
        assert result.succeeded is False

    def test_undecodable_output_does_not_fail_worker(self, tmp_path: Path) -> None:
        result = run_script(
            tmp_path,
            """
            import pathlib, sys, time
            sys.stdout.buffer.write(b'{"a": 1}\\n\\xff\\n')
            sys.stdout.flush()
            time.sleep(0.5)
            pathlib.Path("finished").touch()
            """,
        )

        assert result.status == ExecutionStatus.SUCCESS
        assert (tmp_path / "finished").exists()
        assert result.stdout.startswith('{"a": 1}\n')
        assert "\ufffd" in result.stdout

    def test_partial_line_does_not_delay_timeout(self, tmp_path: Path) -> None:
        started = time.monotonic()

        result = run_script(
            tmp_path,
            """
            import sys, time
            sys.stdout.write("working...")
            sys.stdout.flush()
            time.sleep(30)
            """,
            timeout=1,
        )

        assert result.status == ExecutionStatus.TIMEOUT
        assert result.returncode is None
        assert time.monotonic() - started < 10
        assert result.stdout == "working..."

    def test_partial_line_then_clean_exit(self, tmp_path: Path) -> None:
        result = run_script(
            tmp_path,
            """
            import sys, time
            sys.stdout.write("working...")
            sys.stdout.flush()
            time.sleep(0.5)
            """,
            timeout=20,
        )

        assert result.status == ExecutionStatus.SUCCESS
        assert result.stdout == "working..."

    def test_large_stderr_with_partial_stdout(self, tmp_path: Path) -> None:
        """Both pipes drain at once, so neither side can fill up and stall the worker."""
        result = run_script(
            tmp_path,
            """
            import sys
            sys.stdout.write("partial")
            sys.stdout.flush()
            sys.stderr.write("x" * 200000)
            """,
            timeout=20,
        )

        assert result.status == ExecutionStatus.SUCCESS
        assert result.stdout == "partial"
        assert len(result.stderr) == 200000

    def test_worker_ignoring_stdin(self, tmp_path: Path) -> None:
        result = run_script(tmp_path, "pass")

        assert result.status == ExecutionStatus.SUCCESS

    def test_missing_executable(self, tmp_path: Path) -> None:
        settings = WorkerSettings(
            claude_path=str(tmp_path / "no-such-worker"),
            model="opus",
            working_dir=tmp_path,
            log_dir=tmp_path / "logs",
        )

        result = run_worker(settings, "do it", 1, "build")

        assert result.status == ExecutionStatus.FAILURE
        assert result.returncode is None
        assert result.succeeded is False

class TestOutputCapture:
    """Tests for OutputCapture - pipe draining."""

    def test_requires_pipes(self, tmp_path: Path) -> None:
        process = MagicMock(stdout=None, stderr=None)

        with pytest.raises(RuntimeError):
            OutputCapture(process, tmp_path / "out.jsonl")
