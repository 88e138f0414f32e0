"""Tests for ralph/vcs.py - git probing against real repositories."""

import subprocess
from pathlib import Path
from unittest.mock import patch

import pytest

from conftest import commit_file, run_git
from ralph.vcs import GitError, GitProbe


class TestRevisions:
    """Tests for head_revision and count_commits."""

    def test_head_revision(self, git_repo: Path) -> None:
        probe = GitProbe(git_repo)

        assert probe.head_revision() == run_git(git_repo, "rev-parse", "HEAD")

    def test_head_revision_unborn_branch(self, empty_repo: Path) -> None:
        assert GitProbe(empty_repo).head_revision() is None

    def test_head_revision_outside_repo(self, tmp_path: Path) -> None:
        outside = tmp_path / "plain"
        outside.mkdir()

        with patch.dict("os.environ", {"GIT_CEILING_DIRECTORIES": str(tmp_path)}):
            with pytest.raises(GitError):
                GitProbe(outside).head_revision()

    def test_count_commits(self, git_repo: Path) -> None:
        probe = GitProbe(git_repo)
        start = probe.head_revision()
        commit_file(git_repo, "a.txt")
        end = commit_file(git_repo, "b.txt")

        assert probe.count_commits(start, end) == 2

    def test_count_commits_unknown_revision(self, git_repo: Path) -> None:
        probe = GitProbe(git_repo)

        assert probe.count_commits("0" * 40, probe.head_revision()) is None


class TestRepositoryInfo:
    """Tests for is_work_tree, current_branch and project_name."""

    def test_is_work_tree(self, git_repo: Path, tmp_path: Path) -> None:
        plain = tmp_path / "plain"
        plain.mkdir()

        assert GitProbe(git_repo).is_work_tree() is True
        with patch.dict("os.environ", {"GIT_CEILING_DIRECTORIES": str(tmp_path)}):
            assert GitProbe(plain).is_work_tree() is False

    def test_current_branch(self, git_repo: Path) -> None:
        run_git(git_repo, "checkout", "-q", "-b", "ralph/billing")

        assert GitProbe(git_repo).current_branch() == "ralph/billing"

    def test_project_name_from_subdirectory(self, git_repo: Path) -> None:
        sub = git_repo / "src"
        sub.mkdir()

        assert GitProbe(sub).project_name() == "my-project"

    def test_git_missing(self, tmp_path: Path) -> None:
        with patch("ralph.vcs.subprocess.run", side_effect=FileNotFoundError("git")):
            with pytest.raises(GitError, match="could not run"):
                GitProbe(tmp_path).current_branch()

    def test_git_timeout(self, tmp_path: Path) -> None:
        with patch(
            "ralph.vcs.subprocess.run",
            side_effect=subprocess.TimeoutExpired(cmd="git", timeout=60),
        ):
            with pytest.raises(GitError, match="timed out"):
                GitProbe(tmp_path).head_revision()


class TestPush:
    """Tests for push and ensure_remote_branch against a local bare remote."""

    @pytest.fixture
    def remote(self, git_repo: Path, tmp_path: Path) -> Path:
        bare = tmp_path / "remote.git"
        subprocess.run(["git", "init", "-q", "--bare", str(bare)], check=True)
        run_git(git_repo, "remote", "add", "origin", str(bare))
        return bare

    def test_push_to_remote(self, git_repo: Path, remote: Path) -> None:
        probe = GitProbe(git_repo)

        assert probe.push("main") is True
        assert run_git(remote, "rev-parse", "main") == probe.head_revision()

    def test_push_without_remote_fails_softly(self, git_repo: Path) -> None:
        assert GitProbe(git_repo).push("main") is False

    def test_ensure_remote_branch_creates_it(self, git_repo: Path, remote: Path) -> None:
        probe = GitProbe(git_repo)

        assert probe.remote_branch_exists("main") is False
        assert probe.ensure_remote_branch("main") is True
        assert probe.remote_branch_exists("main") is True

    def test_ensure_remote_branch_without_remote(self, git_repo: Path) -> None:
        assert GitProbe(git_repo).ensure_remote_branch("main") is False
