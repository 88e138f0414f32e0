"""Archive working files once a feature is finished (the ``done`` mode)."""

import logging
import shutil
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path

from .timestamps import archive_timestamp, full_timestamp

logger = logging.getLogger("ralph.archive")

WORKING_FILES = ("IMPLEMENTATION_PLAN.md", "AUDIT_REPORT.md")
ARCHIVE_ROOT = Path(".ralph-v2") / "archive"
ARCHIVE_INFO = "ARCHIVE_INFO.md"


@dataclass(frozen=True)
class ArchiveResult:
    """What was archived and where."""

    archive_dir: Path | None
    archived: tuple[str, ...]

    @property
    def count(self) -> int:
        return len(self.archived)


def archive_working_files(
    repo_path: Path,
    branch: str,
    now: datetime | None = None,
) -> ArchiveResult:
    """Move working files into .ralph-v2/archive/<branch>_<timestamp>/.

    Writes ARCHIVE_INFO.md next to them. When there is nothing to archive,
    no directory is left behind.
    """
    now = now or datetime.now()
    safe_branch = branch.replace("/", "-") or "detached"
    archive_root = repo_path / ARCHIVE_ROOT
    archive_dir = archive_root / f"{safe_branch}_{archive_timestamp(now)}"

    logger.info(f"Archiving working files for branch: {branch}")
    archive_dir.mkdir(parents=True, exist_ok=True)

    archived: list[str] = []
    for name in WORKING_FILES:
        source = repo_path / name
        if source.is_file():
            shutil.move(str(source), str(archive_dir / name))
            logger.info(f"Archived {name}")
            archived.append(name)

    if not archived:
        logger.warning("No working files to archive")
        archive_dir.rmdir()
        # Only removes the archive root if this run created it empty
        if not any(archive_root.iterdir()):
            archive_root.rmdir()
        return ArchiveResult(archive_dir=None, archived=())

    info_lines = [
        "# Archive Info",
        "",
        f"**Branch:** {branch}",
        f"**Archived:** {full_timestamp(now)}",
        "",
        "## Contents",
        *[f"- {name}" for name in archived],
        "",
    ]
    (archive_dir / ARCHIVE_INFO).write_text("\n".join(info_lines), encoding="utf-8")

    logger.info(f"Working files archived to: {archive_dir}")
    logger.info("Ready for next feature. Run 'ralph plan' or 'ralph plan-work' to start.")
    return ArchiveResult(archive_dir=archive_dir, archived=tuple(archived))
