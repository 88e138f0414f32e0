"""Git operations: the loop's only window onto the worker's progress.

The loop never mutates the working tree. It reads revisions and branch
names, and pushes the branch after productive iterations.
"""

import logging
import subprocess
from pathlib import Path

logger = logging.getLogger("ralph.vcs")

GIT_TIMEOUT = 60
PUSH_TIMEOUT = 300


class GitError(Exception):
    """Raised when a git command cannot be run or fails unexpectedly."""

    pass


class GitProbe:
    """Read-mostly view of the repository the worker operates on."""

    def __init__(self, repo_path: Path, remote: str = "origin") -> None:
        self.repo_path = repo_path
        self.remote = remote

    def is_work_tree(self) -> bool:
        """True when repo_path is inside a git work tree."""
        try:
            result = self._git("rev-parse", "--is-inside-work-tree")
        except GitError:
            return False
        return result.returncode == 0 and result.stdout.strip() == "true"

    def head_revision(self) -> str | None:
        """Full hash of HEAD, or None when the branch has no commits yet.

        Raises GitError when git itself fails for any other reason.
        """
        result = self._git("rev-parse", "--verify", "--quiet", "HEAD")
        if result.returncode != 0:
            # --quiet exits 1 with no output when HEAD names an unborn branch
            if result.returncode == 1 and not result.stderr.strip():
                return None
            raise GitError(f"git rev-parse HEAD failed: {result.stderr.strip()}")
        revision = result.stdout.strip()
        return revision or None

    def current_branch(self) -> str:
        """Name of the checked-out branch (empty on detached HEAD)."""
        result = self._git("branch", "--show-current")
        if result.returncode != 0:
            raise GitError(f"git branch --show-current failed: {result.stderr.strip()}")
        return result.stdout.strip()

    def project_name(self) -> str:
        """Basename of the repository top level, falling back to repo_path."""
        try:
            result = self._git("rev-parse", "--show-toplevel")
        except GitError:
            return self.repo_path.resolve().name
        if result.returncode != 0 or not result.stdout.strip():
            return self.repo_path.resolve().name
        return Path(result.stdout.strip()).name

    def count_commits(self, old: str, new: str) -> int | None:
        """Number of commits reachable from new but not from old.

        Returns None when the range cannot be counted (e.g. history rewrite).
        """
        try:
            result = self._git("rev-list", "--count", f"{old}..{new}")
        except GitError:
            return None
        if result.returncode != 0:
            return None
        try:
            return int(result.stdout.strip())
        except ValueError:
            return None

    def remote_branch_exists(self, branch: str) -> bool:
        """True when the remote already has the branch."""
        result = self._git("ls-remote", "--heads", self.remote, branch, timeout=PUSH_TIMEOUT)
        return result.returncode == 0 and bool(result.stdout.strip())

    def ensure_remote_branch(self, branch: str) -> bool:
        """Create the remote branch if missing. Failure is tolerated."""
        try:
            if self.remote_branch_exists(branch):
                return True
            logger.info(f"Creating remote branch: {branch}")
            result = self._git("push", "-u", self.remote, branch, timeout=PUSH_TIMEOUT)
        except GitError as e:
            logger.warning(f"Could not check remote branch: {e}")
            return False
        if result.returncode != 0:
            logger.warning("Could not push to remote. Will retry after first commit.")
            return False
        return True

    def push(self, branch: str) -> bool:
        """Push the branch, retrying once with upstream tracking.

        Returns False on failure; never raises.
        """
        logger.info(f"Pushing changes to {self.remote}/{branch}...")
        try:
            result = self._git("push", self.remote, branch, timeout=PUSH_TIMEOUT)
            if result.returncode != 0:
                logger.warning("Push failed. Attempting to set upstream...")
                result = self._git("push", "-u", self.remote, branch, timeout=PUSH_TIMEOUT)
        except GitError as e:
            logger.error(f"Failed to push changes: {e}")
            return False

        if result.returncode != 0:
            logger.error(f"Failed to push changes: {result.stderr.strip()[:500]}")
            return False

        logger.info("Changes pushed successfully")
        return True

    def _git(self, *args: str, timeout: int = GIT_TIMEOUT) -> subprocess.CompletedProcess[str]:
        try:
            return subprocess.run(
                ["git", *args],
                cwd=str(self.repo_path),
                capture_output=True,
                text=True,
                timeout=timeout,
            )
        except subprocess.TimeoutExpired:
            raise GitError(f"git {args[0]} timed out after {timeout}s") from None
        except OSError as e:
            raise GitError(f"git {args[0]} could not run: {e}") from e
