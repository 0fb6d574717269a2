"""
Source Control Collaborators
============================

Provide the current branch and the set of changed files to the engine.

This module provides:
- SourceControl: interface the engine depends on
- GitSourceControl: reads git state through the git command line
- StaticSourceControl: fixed answers for non-git workspaces and tests

The engine never runs git itself; it only calls these methods.

Branch naming:
- Regular branch: its short name (e.g. "feature/x")
- Detached HEAD: "detached-<first 7 chars of the commit>"
- No repository or git unavailable: "default"
"""

from __future__ import annotations

import logging
import shutil
import subprocess
from pathlib import Path

logger = logging.getLogger(__name__)

DEFAULT_BRANCH = "default"


class SourceControl:
    """Interface for the source-control collaborator."""

    def current_branch(self) -> str:
        return DEFAULT_BRANCH

    def changed_files(self) -> list[str]:
        """Absolute paths of modified, staged and untracked files."""
        return []

    def is_file_changed(self, file_path: str | Path) -> bool:
        return str(Path(file_path)) in {str(Path(p)) for p in self.changed_files()}


class StaticSourceControl(SourceControl):
    """
    Source control with fixed answers.

    Attributes:
        branch: Branch name to report
        files: Changed files to report (None means "no VCS": every file counts as changed)
    """

    def __init__(self, branch: str = DEFAULT_BRANCH, files: list[str] | None = None):
        self.branch = branch
        self.files = files

    def current_branch(self) -> str:
        return self.branch

    def changed_files(self) -> list[str]:
        return list(self.files or [])

    def is_file_changed(self, file_path: str | Path) -> bool:
        if self.files is None:
            return True
        return super().is_file_changed(file_path)


class GitSourceControl(SourceControl):
    """
    Source control backed by the git CLI.

    Attributes:
        workspace_root: Directory inside the repository
        git: Path to the git executable (None if not installed)
    """

    def __init__(self, workspace_root: Path, timeout: float = 10.0):
        self.workspace_root = Path(workspace_root).resolve()
        self.timeout = timeout
        self.git = shutil.which("git")
        self._repo_root: Path | None = None

    def _run(self, *args: str) -> subprocess.CompletedProcess | None:
        if not self.git:
            return None
        try:
            return subprocess.run(
                [self.git, *args],
                cwd=str(self.workspace_root),
                capture_output=True,
                text=True,
                timeout=self.timeout,
            )
        except (OSError, subprocess.TimeoutExpired) as e:
            logger.warning(f"git {' '.join(args)} failed: {e}")
            return None

    def repo_root(self) -> Path | None:
        """Top-level directory of the repository, or None outside git."""
        if self._repo_root is None:
            proc = self._run("rev-parse", "--show-toplevel")
            if proc is not None and proc.returncode == 0 and proc.stdout.strip():
                self._repo_root = Path(proc.stdout.strip())
        return self._repo_root

    def is_git_repo(self) -> bool:
        return self.repo_root() is not None

    def current_branch(self) -> str:
        if not self.is_git_repo():
            return DEFAULT_BRANCH

        proc = self._run("symbolic-ref", "--quiet", "--short", "HEAD")
        if proc is not None and proc.returncode == 0 and proc.stdout.strip():
            return proc.stdout.strip()

        proc = self._run("rev-parse", "--short=7", "HEAD")
        if proc is not None and proc.returncode == 0 and proc.stdout.strip():
            return f"detached-{proc.stdout.strip()[:7]}"

        return DEFAULT_BRANCH

    def changed_files(self) -> list[str]:
        root = self.repo_root()
        if root is None:
            return []

        proc = self._run("status", "--porcelain=v1", "-z", "--untracked-files=all")
        if proc is None or proc.returncode != 0:
            if proc is not None:
                logger.warning(f"git status failed: {proc.stderr.strip()}")
            return []

        return [str(root / rel) for rel in parse_porcelain_z(proc.stdout)]

    def is_file_changed(self, file_path: str | Path) -> bool:
        if not self.is_git_repo():
            # Without git every file counts as changed
            return True
        target = Path(file_path).resolve()
        return any(Path(p).resolve() == target for p in self.changed_files())


def parse_porcelain_z(output: str) -> list[str]:
    """
    Parse `git status --porcelain=v1 -z` output into repo-relative paths.

    Files deleted in the index or the working tree are skipped. Renames
    report their new path.

    Example:
        >>> parse_porcelain_z(" M a.py\\0?? b.py\\0R  new.py\\0old.py\\0")
        ['a.py', 'b.py', 'new.py']
    """
    entries = output.split("\0")
    paths: list[str] = []
    i = 0
    while i < len(entries):
        entry = entries[i]
        i += 1
        if len(entry) < 4:
            continue
        status, path = entry[:2], entry[3:]
        if "R" in status or "C" in status:
            # Next entry is the original path
            i += 1
        if "D" in status:
            continue
        if path not in paths:
            paths.append(path)
    return paths
