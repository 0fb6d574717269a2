"""
Tests for Source Control and Content Collaborators
==================================================

Tests git status parsing, branch naming and the file content reader.
"""

import os
import shutil
import subprocess
from pathlib import Path

import pytest

# Add backend to path
import sys
backend_dir = Path(__file__).parent.parent / "apps" / "backend"
sys.path.insert(0, str(backend_dir))

from dev_todos.content import FileContentReader, is_binary_path
from dev_todos.errors import UnreadableFileError
from dev_todos.vcs import (
    DEFAULT_BRANCH,
    GitSourceControl,
    StaticSourceControl,
    parse_porcelain_z,
)


requires_git = pytest.mark.skipif(shutil.which("git") is None, reason="git not installed")


def git(cwd: Path, *args: str) -> None:
    subprocess.run(
        ["git", *args],
        cwd=cwd,
        check=True,
        capture_output=True,
        env={
            **os.environ,
            "GIT_AUTHOR_NAME": "Test",
            "GIT_AUTHOR_EMAIL": "test@example.com",
            "GIT_COMMITTER_NAME": "Test",
            "GIT_COMMITTER_EMAIL": "test@example.com",
            "GIT_CONFIG_NOSYSTEM": "1",
            "HOME": str(cwd),
        },
    )


# =============================================================================
# PORCELAIN PARSING
# =============================================================================

class TestParsePorcelain:
    """Tests for parse_porcelain_z()."""

    def test_modified_and_untracked(self):
        assert parse_porcelain_z(" M a.py\0?? b.py\0A  c.py\0") == ["a.py", "b.py", "c.py"]

    def test_deleted_files_are_skipped(self):
        assert parse_porcelain_z(" D gone.py\0D  staged.py\0 M kept.py\0") == ["kept.py"]

    def test_rename_reports_new_path(self):
        assert parse_porcelain_z("R  new.py\0old.py\0 M x.py\0") == ["new.py", "x.py"]

    def test_paths_with_spaces(self):
        assert parse_porcelain_z("?? dir/my file.txt\0") == ["dir/my file.txt"]

    def test_empty_output(self):
        assert parse_porcelain_z("") == []


# =============================================================================
# STATIC SOURCE CONTROL
# =============================================================================

def test_static_source_control():
    vcs = StaticSourceControl("feature/x", files=["/ws/a.py"])

    assert vcs.current_branch() == "feature/x"
    assert vcs.changed_files() == ["/ws/a.py"]
    assert vcs.is_file_changed("/ws/a.py")
    assert not vcs.is_file_changed("/ws/b.py")


def test_static_source_control_without_vcs():
    vcs = StaticSourceControl()

    assert vcs.current_branch() == DEFAULT_BRANCH
    assert vcs.changed_files() == []
    assert vcs.is_file_changed("/anything")


# =============================================================================
# GIT SOURCE CONTROL
# =============================================================================

def test_git_outside_repository(tmp_path):
    vcs = GitSourceControl(tmp_path)

    assert vcs.current_branch() == DEFAULT_BRANCH
    assert vcs.changed_files() == []
    assert vcs.is_file_changed(tmp_path / "a.py")


@requires_git
def test_git_branch_and_changes(tmp_path):
    repo = tmp_path.resolve()
    git(repo, "init", "-q")
    git(repo, "checkout", "-q", "-b", "feature/x")
    (repo / "tracked.txt").write_text("one", encoding="utf-8")
    (repo / "removed.txt").write_text("bye", encoding="utf-8")
    git(repo, "add", ".")
    git(repo, "commit", "-q", "-m", "initial")

    (repo / "tracked.txt").write_text("two", encoding="utf-8")
    (repo / "removed.txt").unlink()
    (repo / "sub").mkdir()
    (repo / "sub" / "new.txt").write_text("new", encoding="utf-8")

    vcs = GitSourceControl(repo)

    assert vcs.current_branch() == "feature/x"
    changed = sorted(Path(p).relative_to(vcs.repo_root().resolve()).as_posix()
                     for p in vcs.changed_files())
    assert changed == ["sub/new.txt", "tracked.txt"]
    assert vcs.is_file_changed(repo / "tracked.txt")


@requires_git
def test_git_detached_head(tmp_path):
    repo = tmp_path.resolve()
    git(repo, "init", "-q")
    (repo / "a.txt").write_text("a", encoding="utf-8")
    git(repo, "add", ".")
    git(repo, "commit", "-q", "-m", "initial")
    git(repo, "checkout", "-q", "--detach")

    branch = GitSourceControl(repo).current_branch()

    assert branch.startswith("detached-")
    assert len(branch) == len("detached-") + 7


# =============================================================================
# CONTENT READER
# =============================================================================

class TestFileContentReader:
    """Tests for FileContentReader."""

    def test_reads_text(self, tmp_path):
        path = tmp_path / "a.txt"
        path.write_text("héllo", encoding="utf-8")

        assert FileContentReader().read(path) == "héllo"

    def test_binary_extension(self, tmp_path):
        path = tmp_path / "logo.PNG"
        path.write_bytes(b"\x89PNG")

        assert is_binary_path(path)
        with pytest.raises(UnreadableFileError, match="binary"):
            FileContentReader().read(path)

    def test_missing_file(self, tmp_path):
        with pytest.raises(UnreadableFileError):
            FileContentReader().read(tmp_path / "missing.txt")

    def test_too_large(self, tmp_path):
        path = tmp_path / "big.txt"
        path.write_text("x" * 20, encoding="utf-8")

        with pytest.raises(UnreadableFileError, match="larger than"):
            FileContentReader(max_bytes=10).read(path)

    def test_invalid_utf8(self, tmp_path):
        path = tmp_path / "latin.txt"
        path.write_bytes(b"caf\xe9")

        with pytest.raises(UnreadableFileError, match="UTF-8"):
            FileContentReader().read(path)
