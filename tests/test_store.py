"""
Tests for Todo Instance Store
=============================

Tests upserts, status transitions and orphan pruning.
"""

from pathlib import Path

import pytest

# Add backend to path
import sys
backend_dir = Path(__file__).parent.parent / "apps" / "backend"
sys.path.insert(0, str(backend_dir))

from dev_todos.errors import NotFoundError
from dev_todos.models import (
    BranchTemplate,
    FileTemplate,
    Priority,
    TodoStatus,
    branch_instance_id,
    file_instance_id,
)
from dev_todos.store import InstanceStore


# =============================================================================
# FIXTURES
# =============================================================================

@pytest.fixture
def store() -> InstanceStore:
    return InstanceStore()


@pytest.fixture
def file_template() -> FileTemplate:
    return FileTemplate(
        template_id="t1",
        name="Add permission",
        description="Grant access",
        pattern="**/*.cls",
        priority=Priority.HIGH,
    )


@pytest.fixture
def go_template() -> BranchTemplate:
    return BranchTemplate(
        template_id="go",
        name="Run go vet",
        description="Go files changed",
        pattern="src/**/*.go",
    )


@pytest.fixture
def notes_template() -> BranchTemplate:
    return BranchTemplate(
        template_id="notes",
        name="Release notes",
        description="Describe the change",
    )


# =============================================================================
# UPSERTS
# =============================================================================

class TestUpserts:
    """Tests for the idempotent upsert operations."""

    def test_file_instance_created_once(self, store, file_template):
        assert store.upsert_file_instance("main", file_template, "cls/Foo.cls", "/ws/cls/Foo.cls")
        assert not store.upsert_file_instance("main", file_template, "cls/Foo.cls", "/ws/cls/Foo.cls")

        todos = store.list("main")
        assert len(todos) == 1
        todo = todos[0]
        assert todo.todo_id == "t1:cls/Foo.cls"
        assert todo.relative_path == "cls/Foo.cls"
        assert todo.file_path == "/ws/cls/Foo.cls"
        assert todo.priority == Priority.HIGH
        assert todo.status == TodoStatus.PENDING
        assert not todo.branch_level

    def test_upsert_does_not_reset_status(self, store, file_template):
        store.upsert_file_instance("main", file_template, "a.cls", "/ws/a.cls")
        store.set_status("main", "t1:a.cls", TodoStatus.COMPLETED)

        store.upsert_file_instance("main", file_template, "a.cls", "/ws/a.cls")

        assert store.get("main", "t1:a.cls").status == TodoStatus.COMPLETED

    def test_branch_instance_aggregates_files(self, store, go_template):
        assert store.upsert_branch_instance("feature/x", go_template, ["src/a.go"])
        assert store.upsert_branch_instance("feature/x", go_template, ["src/a.go", "src/b.go"])
        assert not store.upsert_branch_instance("feature/x", go_template, ["src/b.go"])

        todos = store.list("feature/x")
        assert len(todos) == 1
        assert todos[0].todo_id == "branch:go"
        assert todos[0].triggering_files == ["src/a.go", "src/b.go"]

    def test_branch_instance_without_pattern(self, store, notes_template):
        assert store.upsert_branch_instance("main", notes_template)
        assert not store.upsert_branch_instance("main", notes_template)

        todo = store.get("main", branch_instance_id("notes"))
        assert todo.branch_level
        assert todo.triggering_files is None

    def test_branches_are_isolated(self, store, file_template):
        store.upsert_file_instance("a", file_template, "x.cls", "/ws/x.cls")
        store.upsert_file_instance("b", file_template, "x.cls", "/ws/x.cls")

        store.set_status("a", "t1:x.cls", TodoStatus.COMPLETED)

        assert store.get("a", "t1:x.cls").is_completed
        assert store.get("b", "t1:x.cls").is_remaining
        assert store.count() == 2


# =============================================================================
# STATUS
# =============================================================================

class TestSetStatus:
    """Tests for status transitions and timestamps."""

    def test_complete_and_reopen(self, store, file_template):
        store.upsert_file_instance("main", file_template, "a.cls", "/ws/a.cls")

        todo = store.set_status("main", "t1:a.cls", TodoStatus.COMPLETED, "2024-01-01T00:00:00+00:00")
        assert todo.completed_at == "2024-01-01T00:00:00+00:00"
        assert todo.ignored_at is None

        todo = store.set_status("main", "t1:a.cls", TodoStatus.PENDING)
        assert todo.completed_at is None
        assert todo.is_remaining

    def test_completed_to_ignored_clears_completion(self, store, file_template):
        store.upsert_file_instance("main", file_template, "a.cls", "/ws/a.cls")
        store.set_status("main", "t1:a.cls", TodoStatus.COMPLETED)

        todo = store.set_status("main", "t1:a.cls", TodoStatus.IGNORED)

        assert todo.is_ignored
        assert todo.ignored_at is not None
        assert todo.completed_at is None

    def test_unknown_todo(self, store, file_template):
        store.upsert_file_instance("main", file_template, "a.cls", "/ws/a.cls")

        with pytest.raises(NotFoundError) as exc_info:
            store.set_status("main", "t1:missing.cls", TodoStatus.COMPLETED)
        assert exc_info.value.todo_id == "t1:missing.cls"

    def test_unknown_branch(self, store):
        with pytest.raises(NotFoundError):
            store.set_status("nope", "t1:a.cls", TodoStatus.COMPLETED)
        assert not store.has_branch("nope")


# =============================================================================
# MAINTENANCE
# =============================================================================

def test_clear_branch(store, file_template):
    store.upsert_file_instance("main", file_template, "a.cls", "/ws/a.cls")
    store.upsert_file_instance("dev", file_template, "a.cls", "/ws/a.cls")

    assert store.clear_branch("main")
    assert not store.clear_branch("main")
    assert store.list("main") == []
    assert store.branches() == ["dev"]


def test_prune_orphans(store, file_template, notes_template):
    store.upsert_file_instance("main", file_template, "a.cls", "/ws/a.cls")
    store.upsert_branch_instance("main", notes_template)
    store.upsert_branch_instance("dev", notes_template)

    removed = store.prune_orphans(["t1"])

    assert removed == 2
    assert [t.todo_id for t in store.list("main")] == [file_instance_id("t1", "a.cls")]
    assert store.list("dev") == []


def test_refresh_display(store, file_template):
    store.upsert_file_instance("main", file_template, "a.cls", "/ws/a.cls")
    renamed = FileTemplate(
        template_id="t1",
        name="Grant permission",
        description="Updated",
        pattern="**/*.cls",
        priority=Priority.LOW,
        ai_instruction="Edit the permission set",
    )

    store.refresh_display([renamed])

    todo = store.get("main", "t1:a.cls")
    assert todo.name == "Grant permission"
    assert todo.priority == Priority.LOW
    assert todo.ai_instruction == "Edit the permission set"
