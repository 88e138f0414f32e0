"""Worker CLI invocation: one blocking run per iteration.

The loop only looks at how the process ended. Output is streamed to a
per-iteration JSONL log for humans, never parsed.
"""

import logging
import subprocess
import threading
from contextlib import nullcontext, suppress
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from string import Template
from typing import IO

from .timestamps import jsonl_timestamp

logger = logging.getLogger("ralph")

# How long to wait for the pipes to close once the worker has exited
DRAIN_TIMEOUT = 5.0


class ExecutionStatus(Enum):
    """Result of a worker invocation."""

    SUCCESS = "success"
    TIMEOUT = "timeout"
    FAILURE = "failure"


@dataclass
class ExecutionResult:
    """Result of running the worker CLI."""

    status: ExecutionStatus
    stdout: str
    stderr: str
    returncode: int | None
    log_file: Path | None = field(default=None)

    @property
    def succeeded(self) -> bool:
        return self.status == ExecutionStatus.SUCCESS


@dataclass(frozen=True)
class WorkerSettings:
    """How to launch the worker and where it runs."""

    claude_path: str
    model: str
    working_dir: Path
    log_dir: Path
    timeout: int = 0  # seconds, 0 = wait indefinitely


class OutputCapture:
    """Drains the worker's stdout and stderr on background threads.

    Each pipe gets its own reader, so a partial line or a full pipe on one
    side never holds up the other or the caller's deadline. Stdout lines are
    appended to the JSONL log as they arrive. Undecodable bytes have already
    been replaced by the pipe's text wrapper.
    """

    def __init__(self, process: subprocess.Popen[str], log_file: Path) -> None:
        if process.stdout is None or process.stderr is None:
            raise RuntimeError("Process stdout/stderr pipes not available")
        self.stdout_lines: list[str] = []
        self.stderr_lines: list[str] = []
        self._threads = [
            threading.Thread(
                target=self._pump,
                args=(process.stdout, self.stdout_lines, log_file),
                name="ralph-worker-stdout",
                daemon=True,
            ),
            threading.Thread(
                target=self._pump,
                args=(process.stderr, self.stderr_lines, None),
                name="ralph-worker-stderr",
                daemon=True,
            ),
        ]

    @property
    def stdout(self) -> str:
        return "".join(self.stdout_lines)

    @property
    def stderr(self) -> str:
        return "".join(self.stderr_lines)

    def start(self) -> None:
        for thread in self._threads:
            thread.start()

    def join(self, timeout: float = DRAIN_TIMEOUT) -> None:
        """Wait for both pipes to reach EOF, giving up after timeout."""
        for thread in self._threads:
            thread.join(timeout)
            if thread.is_alive():
                # A grandchild process still holds the pipe open
                logger.warning(f"Worker output still open after exit ({thread.name})")

    @staticmethod
    def _pump(stream: IO[str], lines: list[str], log_file: Path | None) -> None:
        log_cm = open(log_file, "w", encoding="utf-8") if log_file else nullcontext()
        with log_cm as log, stream:
            for line in iter(stream.readline, ""):
                lines.append(line)
                if log is not None:
                    log.write(line)
                    log.flush()


# =============================================================================
# Public API
# =============================================================================


def build_prompt(prompt_file: Path, variables: dict[str, str] | None = None) -> str:
    """Read prompt_file and substitute ${NAME} placeholders.

    Unknown placeholders and stray dollar signs are left as they are.
    """
    text = prompt_file.read_text(encoding="utf-8")
    if not variables:
        return text
    return Template(text).safe_substitute(variables)


def run_worker(
    settings: WorkerSettings, prompt: str, iteration: int, mode: str
) -> ExecutionResult:
    """Run the worker once with the prompt on stdin and block until it exits.

    Only the exit code decides the outcome. A worker still running after
    settings.timeout seconds is killed and reported as TIMEOUT.
    """
    logger.info(f"Executing worker CLI (iteration {iteration}, mode: {mode})...")

    cli_args = build_cli_args(settings)
    log_file = generate_log_filename(settings.log_dir, mode, iteration)
    log_file.parent.mkdir(parents=True, exist_ok=True)
    logger.info(f"Streaming logs to: {log_file}")

    try:
        process = subprocess.Popen(
            cli_args,
            cwd=str(settings.working_dir),
            stdin=subprocess.PIPE,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            encoding="utf-8",
            errors="replace",
            bufsize=1,
        )
    except OSError as e:
        logger.error(f"Could not launch worker CLI: {e}")
        return ExecutionResult(
            status=ExecutionStatus.FAILURE, stdout="", stderr=str(e), returncode=None
        )

    capture = OutputCapture(process, log_file)
    capture.start()
    _send_prompt(process, prompt)

    timeout = settings.timeout if settings.timeout > 0 else None
    try:
        returncode = process.wait(timeout=timeout)
    except subprocess.TimeoutExpired:
        process.kill()
        process.wait()
        capture.join()
        logger.error(f"Worker CLI timed out after {timeout}s")
        return ExecutionResult(
            status=ExecutionStatus.TIMEOUT,
            stdout=capture.stdout,
            stderr=f"Timeout after {timeout}s",
            returncode=None,
            log_file=log_file,
        )

    capture.join()
    return _classify_exit(returncode, capture.stdout, capture.stderr, log_file)


def build_cli_args(settings: WorkerSettings) -> list[str]:
    """Build worker CLI arguments; the prompt itself goes to stdin."""
    return [
        settings.claude_path,
        "-p",
        "--dangerously-skip-permissions",
        "--output-format=stream-json",
        "--model",
        settings.model,
        "--verbose",
    ]


def generate_log_filename(log_dir: Path, mode: str, iteration: int) -> Path:
    """Generate timestamped JSONL filename for this invocation.

    Format: {MM-DD-HHMM}-{NNN}-{mode}.jsonl
    Example: 01-15-1437-001-build.jsonl
    """
    return log_dir / f"{jsonl_timestamp()}-{iteration:03d}-{mode.lower()}.jsonl"


# =============================================================================
# Private helpers
# =============================================================================


def _send_prompt(process: subprocess.Popen[str], prompt: str) -> None:
    """Write the prompt to stdin and close it.

    A worker that exits without reading its input is judged by its exit code.
    """
    if process.stdin is None:
        return
    try:
        process.stdin.write(prompt)
        process.stdin.close()
    except BrokenPipeError:
        logger.warning("Worker CLI closed stdin before reading the whole prompt")
        # close() still releases the fd when its final flush raises
        with suppress(BrokenPipeError):
            process.stdin.close()


def _classify_exit(
    returncode: int, stdout: str, stderr: str, log_file: Path
) -> ExecutionResult:
    if returncode == 0:
        logger.info("Worker CLI completed successfully")
        status = ExecutionStatus.SUCCESS
    else:
        logger.error(f"Worker CLI failed with code {returncode}")
        if stderr:
            logger.error(f"stderr: {stderr[:500]}")
        elif stdout:
            logger.error(f"stdout (last 500 chars): {stdout[-500:]}")
        status = ExecutionStatus.FAILURE
    return ExecutionResult(
        status=status,
        stdout=stdout,
        stderr=stderr,
        returncode=returncode,
        log_file=log_file,
    )
