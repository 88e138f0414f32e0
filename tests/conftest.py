"""Shared test fixtures for ralph package tests."""

import logging
import shutil
import subprocess
from collections.abc import Iterator
from pathlib import Path

import pytest

from ralph.status import RunStatus, StatusSnapshot


def run_git(repo: Path, *args: str) -> str:
    """Run git in repo and return stdout; fails the test on error."""
    result = subprocess.run(
        ["git", *args], cwd=str(repo), capture_output=True, text=True, check=True
    )
    return result.stdout.strip()


def commit_file(repo: Path, name: str, content: str = "x\n") -> str:
    """Write name, commit it and return the new HEAD hash."""
    (repo / name).write_text(content)
    run_git(repo, "add", name)
    run_git(repo, "commit", "-q", "-m", f"add {name}")
    return run_git(repo, "rev-parse", "HEAD")


@pytest.fixture
def empty_repo(tmp_path: Path) -> Path:
    """Git repository on branch main with no commits."""
    if shutil.which("git") is None:
        pytest.skip("git not installed")
    repo = tmp_path / "my-project"
    repo.mkdir()
    run_git(repo, "init", "-q")
    run_git(repo, "symbolic-ref", "HEAD", "refs/heads/main")
    run_git(repo, "config", "user.email", "ralph@example.com")
    run_git(repo, "config", "user.name", "Ralph Test")
    run_git(repo, "config", "commit.gpgsign", "false")
    return repo


@pytest.fixture
def git_repo(empty_repo: Path) -> Path:
    """Git repository on branch main with one commit."""
    commit_file(empty_repo, "README.md", "# project\n")
    return empty_repo


@pytest.fixture
def clean_ralph_logger() -> Iterator[logging.Logger]:
    """Give each test a ralph logger without handlers, restoring afterwards."""
    logger = logging.getLogger("ralph")
    saved = list(logger.handlers)
    logger.handlers.clear()
    yield logger
    for handler in logger.handlers:
        handler.close()
    logger.handlers[:] = saved


def make_snapshot(**overrides) -> StatusSnapshot:
    """Running snapshot with realistic values; overrides replace fields."""
    values = dict(
        timestamp=1700000000,
        iteration=3,
        max_iterations=10,
        mode="build",
        branch="feature/x",
        project="my-project",
        elapsed_seconds=125,
        total_commits=2,
        consecutive_no_progress=1,
        consecutive_errors=0,
        circuit_breaker_threshold=3,
        circuit_breaker_error_threshold=5,
        circuit_breaker_enabled=True,
        circuit_breaker_state="closed",
        iterations_this_hour=3,
        last_commit="abc1234",
        status=RunStatus.RUNNING.value,
    )
    values.update(overrides)
    return StatusSnapshot(**values)
