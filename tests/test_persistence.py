"""
Tests for Todo State Persistence
================================

Tests snapshots, the JSON file slot and tolerant restoring.
"""

import json
from pathlib import Path

import pytest

# Add backend to path
import sys
backend_dir = Path(__file__).parent.parent / "apps" / "backend"
sys.path.insert(0, str(backend_dir))

from dev_todos.errors import PersistenceError
from dev_todos.models import BranchTemplate, FileTemplate, Priority, TodoStatus
from dev_todos.persistence import (
    SNAPSHOT_VERSION,
    InMemoryStateStorage,
    JsonFileStateStorage,
    restore_into_store,
    snapshot_from_store,
)
from dev_todos.store import InstanceStore


# =============================================================================
# FIXTURES
# =============================================================================

@pytest.fixture
def templates():
    return [
        FileTemplate(
            template_id="t1",
            name="Add permission",
            description="Grant access",
            pattern="**/*.cls",
            priority=Priority.HIGH,
        ),
        BranchTemplate(
            template_id="go",
            name="Run go vet",
            description="Go files changed",
            pattern="src/**/*.go",
        ),
        BranchTemplate(
            template_id="notes",
            name="Release notes",
            description="Describe the change",
        ),
    ]


@pytest.fixture
def populated_store(templates) -> InstanceStore:
    file_template, go_template, notes_template = templates
    store = InstanceStore()
    store.upsert_file_instance("main", file_template, "cls/Foo.cls", "/ws/cls/Foo.cls")
    store.upsert_file_instance("main", file_template, "cls/Bar.cls", "/ws/cls/Bar.cls")
    store.upsert_branch_instance("feature/x", go_template, ["src/a.go", "src/b.go"])
    store.upsert_branch_instance("feature/x", notes_template)
    store.set_status("main", "t1:cls/Foo.cls", TodoStatus.COMPLETED, "2024-05-01T10:00:00+00:00")
    store.set_status("feature/x", "branch:notes", TodoStatus.IGNORED, "2024-05-02T10:00:00+00:00")
    return store


def assert_same_state(a: InstanceStore, b: InstanceStore) -> None:
    assert a.branches() == b.branches()
    for branch in a.branches():
        assert [t.to_dict() for t in a.list(branch)] == [t.to_dict() for t in b.list(branch)]


# =============================================================================
# SNAPSHOT ROUND TRIP
# =============================================================================

class TestSnapshot:
    """Tests for snapshot_from_store() / restore_into_store()."""

    def test_snapshot_layout(self, populated_store):
        snapshot = snapshot_from_store(populated_store)

        assert snapshot["version"] == SNAPSHOT_VERSION
        record = snapshot["branches"]["main"]["todos"]["t1:cls/Foo.cls"]
        assert record == {
            "status": "completed",
            "completed_at": "2024-05-01T10:00:00+00:00",
            "ignored_at": None,
            "template_id": "t1",
            "file_path": "/ws/cls/Foo.cls",
            "branch_level": False,
        }
        go_record = snapshot["branches"]["feature/x"]["todos"]["branch:go"]
        assert go_record["triggering_files"] == ["src/a.go", "src/b.go"]
        assert go_record["branch_level"] is True

    def test_round_trip_preserves_state(self, populated_store, templates):
        snapshot = json.loads(json.dumps(snapshot_from_store(populated_store)))

        restored = InstanceStore()
        dropped = restore_into_store(restored, snapshot, templates)

        assert dropped == 0
        assert_same_state(populated_store, restored)

    def test_restore_drops_orphans(self, populated_store, templates):
        snapshot = snapshot_from_store(populated_store)

        restored = InstanceStore()
        dropped = restore_into_store(restored, snapshot, templates[1:])

        assert dropped == 2
        assert restored.list("main") == []
        assert len(restored.list("feature/x")) == 2

    def test_restore_rederives_display_fields(self, populated_store, templates):
        snapshot = snapshot_from_store(populated_store)
        renamed = FileTemplate(
            template_id="t1",
            name="Grant permission",
            description="New text",
            pattern="**/*.cls",
            priority=Priority.LOW,
        )

        restored = InstanceStore()
        restore_into_store(restored, snapshot, [renamed])

        todo = restored.get("main", "t1:cls/Foo.cls")
        assert todo.name == "Grant permission"
        assert todo.priority == Priority.LOW
        assert todo.is_completed

    def test_restore_clears_previous_contents(self, populated_store, templates):
        restore_into_store(populated_store, {}, templates)
        assert populated_store.count() == 0

    def test_restore_legacy_layout(self, templates):
        legacy = {
            "main": {
                "todos": {
                    "t1:cls/Foo.cls": {
                        "templateId": "t1",
                        "filePath": "/ws/cls/Foo.cls",
                        "completed": True,
                        "completedAt": "2023-01-01T00:00:00Z",
                    },
                    "branch:notes": {
                        "templateId": "notes",
                        "branchLevel": True,
                        "ignored": True,
                        "ignoredAt": "2023-01-02T00:00:00Z",
                    },
                }
            }
        }

        store = InstanceStore()
        restore_into_store(store, legacy, templates)

        todo = store.get("main", "t1:cls/Foo.cls")
        assert todo.is_completed
        assert todo.completed_at == "2023-01-01T00:00:00Z"
        assert todo.relative_path == "cls/Foo.cls"
        notes = store.get("main", "branch:notes")
        assert notes.is_ignored
        assert notes.branch_level
        assert notes.file_path is None

    def test_unknown_status_becomes_pending(self, templates):
        snapshot = {
            "version": 1,
            "branches": {
                "main": {"todos": {"t1:a.cls": {
                    "template_id": "t1", "file_path": "/ws/a.cls", "status": "archived",
                }}}
            },
        }

        store = InstanceStore()
        restore_into_store(store, snapshot, templates)

        assert store.get("main", "t1:a.cls").status == TodoStatus.PENDING

    def test_malformed_entries_are_skipped(self, templates):
        snapshot = {"version": 1, "branches": {"main": "oops", "dev": {"todos": {"x": 3}}}}

        store = InstanceStore()
        assert restore_into_store(store, snapshot, templates) == 0
        assert store.count() == 0

    def test_records_with_wrong_field_types_are_skipped(self, templates):
        snapshot = {
            "version": 1,
            "branches": {
                "main": {"todos": {
                    "t1:a.cls": {"template_id": ["t1"], "file_path": "/ws/a.cls"},
                    "branch:go": {"template_id": "go", "triggering_files": 5},
                    "t1:b.cls": {"template_id": "t1", "file_path": 7},
                    "t1:c.cls": {"template_id": "t1", "completed_at": 1700000000},
                    "t1:d.cls": {"template_id": "t1", "file_path": "/ws/d.cls"},
                }}
            },
        }

        store = InstanceStore()
        assert restore_into_store(store, snapshot, templates) == 0

        assert [t.todo_id for t in store.list("main")] == ["t1:d.cls"]


# =============================================================================
# STORAGE SLOTS
# =============================================================================

class TestJsonFileStateStorage:
    """Tests for JsonFileStateStorage."""

    def test_missing_file_loads_empty(self, tmp_path):
        assert JsonFileStateStorage(tmp_path).load() == {}

    def test_save_and_load(self, tmp_path, populated_store):
        storage = JsonFileStateStorage(tmp_path)
        snapshot = snapshot_from_store(populated_store)

        storage.save(snapshot)

        assert storage.state_file == tmp_path.resolve() / ".dev-todos" / "todo-state.json"
        assert storage.load() == snapshot
        assert not storage.state_file.with_suffix(".tmp").exists()

    def test_corrupt_file(self, tmp_path):
        storage = JsonFileStateStorage(tmp_path)
        storage.state_file.parent.mkdir(parents=True)
        storage.state_file.write_text("{truncated", encoding="utf-8")

        with pytest.raises(PersistenceError) as exc_info:
            storage.load()
        assert exc_info.value.path == storage.state_file

    def test_non_object_file(self, tmp_path):
        storage = JsonFileStateStorage(tmp_path)
        storage.state_file.parent.mkdir(parents=True)
        storage.state_file.write_text("[]", encoding="utf-8")

        with pytest.raises(PersistenceError):
            storage.load()

    def test_unwritable_location(self, tmp_path):
        blocker = tmp_path / "blocker"
        blocker.write_text("not a directory", encoding="utf-8")
        storage = JsonFileStateStorage(tmp_path, state_file=blocker / "state.json")

        with pytest.raises(PersistenceError):
            storage.save({"version": 1, "branches": {}})


def test_in_memory_storage_copies():
    storage = InMemoryStateStorage()
    snapshot = {"version": 1, "branches": {"main": {"todos": {}}}}

    storage.save(snapshot)
    snapshot["branches"]["dev"] = {}

    assert "dev" not in storage.load()["branches"]
    assert storage.save_count == 1
