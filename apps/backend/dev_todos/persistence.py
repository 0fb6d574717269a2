"""
Todo State Persistence
======================

Snapshots of the instance store and the storage slots that hold them.

Snapshot layout (JSON-serializable):
    {
      "version": 1,
      "branches": {
        "<branch>": {
          "todos": {
            "<todo id>": {
              "status": "pending" | "completed" | "ignored",
              "completed_at": "...",
              "ignored_at": "...",
              "template_id": "...",
              "file_path": "...",
              "branch_level": false,
              "triggering_files": [...]
            }
          }
        }
      }
    }

Display fields (name, description, priority) are not stored; they are
re-derived from the current templates when a snapshot is restored, and
todos whose template no longer exists are dropped.

Restoring is tolerant: missing optional fields get defaults, and the older
unversioned layout with camelCase keys and completed/ignored booleans is
still understood.

This module provides:
- StateStorage: base class for snapshot slots
- JsonFileStateStorage: .dev-todos/todo-state.json with atomic writes
- InMemoryStateStorage: host-provided slot / test double
- snapshot_from_store() and restore_into_store()
"""

from __future__ import annotations

import copy
import json
import logging
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Iterable

from .errors import PersistenceError
from .models import TodoInstance, TodoStatus, TodoTemplate, relative_path_from_id
from .path_patterns import relative_to_workspace
from .store import InstanceStore

# =============================================================================
# LOGGER
# =============================================================================

logger = logging.getLogger(__name__)


# =============================================================================
# CONSTANTS
# =============================================================================

SNAPSHOT_VERSION = 1
STATE_DIR = ".dev-todos"
STATE_FILENAME = "todo-state.json"


# =============================================================================
# STORAGE SLOTS
# =============================================================================

class StateStorage(ABC):
    """A durable slot holding one snapshot."""

    @abstractmethod
    def load(self) -> dict[str, Any]:
        """
        Read the stored snapshot.

        Returns:
            The snapshot, or an empty dict if nothing was stored

        Raises:
            PersistenceError: If the slot cannot be read
        """

    @abstractmethod
    def save(self, snapshot: dict[str, Any]) -> None:
        """
        Replace the stored snapshot.

        Raises:
            PersistenceError: If the slot cannot be written
        """


class InMemoryStateStorage(StateStorage):
    """
    Snapshot slot kept in memory.

    Stores deep copies so callers cannot mutate the saved state.
    """

    def __init__(self, initial: dict[str, Any] | None = None):
        self._data: dict[str, Any] = copy.deepcopy(initial) if initial else {}
        self.save_count = 0

    def load(self) -> dict[str, Any]:
        return copy.deepcopy(self._data)

    def save(self, snapshot: dict[str, Any]) -> None:
        self._data = copy.deepcopy(snapshot)
        self.save_count += 1


class JsonFileStateStorage(StateStorage):
    """
    Snapshot slot backed by a JSON file in the workspace.

    Writes go to a temporary file that is renamed over the real one, so a
    crash mid-write never leaves a truncated snapshot.

    Attributes:
        state_file: Path to the JSON snapshot
    """

    def __init__(self, workspace_root: Path, state_file: Path | None = None):
        """
        Initialize file storage.

        Args:
            workspace_root: Root directory of the workspace
            state_file: Explicit snapshot path (defaults to .dev-todos/todo-state.json)
        """
        self.workspace_root = Path(workspace_root).resolve()
        self.state_file = Path(state_file) if state_file else (
            self.workspace_root / STATE_DIR / STATE_FILENAME
        )

    def load(self) -> dict[str, Any]:
        if not self.state_file.exists():
            logger.debug(f"State file does not exist: {self.state_file}")
            return {}

        try:
            with open(self.state_file, "r", encoding="utf-8") as f:
                data = json.load(f)
        except json.JSONDecodeError as e:
            raise PersistenceError(
                f"Failed to parse state file {self.state_file}: {e}",
                path=self.state_file,
                original_error=e,
            ) from e
        except OSError as e:
            raise PersistenceError(
                f"Failed to read state file {self.state_file}: {e}",
                path=self.state_file,
                original_error=e,
            ) from e

        if not isinstance(data, dict):
            raise PersistenceError(
                f"State file {self.state_file} does not contain an object",
                path=self.state_file,
            )
        return data

    def save(self, snapshot: dict[str, Any]) -> None:
        temp_file = self.state_file.with_suffix(".tmp")
        try:
            self.state_file.parent.mkdir(parents=True, exist_ok=True)
            with open(temp_file, "w", encoding="utf-8") as f:
                json.dump(snapshot, f, indent=2, sort_keys=True)

            # Atomic rename
            temp_file.replace(self.state_file)
        except (OSError, TypeError) as e:
            raise PersistenceError(
                f"Failed to save state file {self.state_file}: {e}",
                path=self.state_file,
                original_error=e,
            ) from e

        logger.debug(f"Saved todo state to {self.state_file}")


# =============================================================================
# SNAPSHOT CONVERSION
# =============================================================================

def _todo_to_record(todo: TodoInstance) -> dict[str, Any]:
    record: dict[str, Any] = {
        "status": todo.status.value,
        "completed_at": todo.completed_at,
        "ignored_at": todo.ignored_at,
        "template_id": todo.template_id,
        "file_path": todo.file_path,
        "branch_level": todo.branch_level,
    }
    if todo.triggering_files is not None:
        record["triggering_files"] = list(todo.triggering_files)
    return record


def snapshot_from_store(store: InstanceStore) -> dict[str, Any]:
    """Build a JSON-serializable snapshot of every branch."""
    branches = {}
    for branch, todos in store.list_all().items():
        branches[branch] = {
            "todos": {todo.todo_id: _todo_to_record(todo) for todo in todos}
        }
    return {"version": SNAPSHOT_VERSION, "branches": branches}


def _pick(record: dict, *keys: str, default: Any = None) -> Any:
    for key in keys:
        if key in record:
            return record[key]
    return default


def _record_status(record: dict) -> TodoStatus:
    """Status of a stored record, understanding the boolean layout too."""
    raw = record.get("status")
    if raw is not None:
        try:
            return TodoStatus(raw)
        except ValueError:
            logger.warning(f"Unknown todo status '{raw}' in snapshot; using pending")
            return TodoStatus.PENDING
    if record.get("completed"):
        return TodoStatus.COMPLETED
    if record.get("ignored"):
        return TodoStatus.IGNORED
    return TodoStatus.PENDING


def _record_problem(record: dict) -> str | None:
    """Describe why a stored record cannot be restored (None if it can)."""
    if not isinstance(_pick(record, "template_id", "templateId"), str):
        return "template_id is not a string"
    file_path = _pick(record, "file_path", "filePath")
    if file_path is not None and not isinstance(file_path, str):
        return "file_path is not a string"
    triggering = _pick(record, "triggering_files", "triggeringFiles")
    if triggering is not None and not isinstance(triggering, list):
        return "triggering_files is not a list"
    for key in ("completed_at", "completedAt", "ignored_at", "ignoredAt"):
        value = record.get(key)
        if value is not None and not isinstance(value, str):
            return f"{key} is not a string"
    return None


def _record_to_todo(
    branch: str,
    todo_id: str,
    record: dict,
    template: TodoTemplate,
    workspace_root: Path | None,
) -> TodoInstance:
    file_path = _pick(record, "file_path", "filePath")
    branch_level = bool(
        _pick(record, "branch_level", "branchLevel", default=False)
    ) or not file_path

    relative_path = None
    if not branch_level:
        relative_path = relative_path_from_id(todo_id, template.template_id)
        if relative_path is None and workspace_root is not None:
            relative_path = relative_to_workspace(file_path, workspace_root)

    triggering = _pick(record, "triggering_files", "triggeringFiles")
    if triggering is not None:
        triggering = list(dict.fromkeys(str(p) for p in triggering))
    elif branch_level and template.path_pattern:
        triggering = []

    status = _record_status(record)
    completed_at = _pick(record, "completed_at", "completedAt")
    ignored_at = _pick(record, "ignored_at", "ignoredAt")

    todo = TodoInstance(
        todo_id=todo_id,
        template_id=template.template_id,
        name=template.name,
        description=template.description,
        branch=branch,
        priority=template.priority,
        status=status,
        completed_at=completed_at if status == TodoStatus.COMPLETED else None,
        ignored_at=ignored_at if status == TodoStatus.IGNORED else None,
        file_path=None if branch_level else file_path,
        relative_path=relative_path,
        branch_level=branch_level,
        triggering_files=triggering if branch_level else None,
        ai_instruction=template.ai_instruction,
    )
    return todo


def _iter_branches(snapshot: dict[str, Any]) -> Iterable[tuple[str, dict]]:
    """Yield (branch, todos) pairs from either snapshot layout."""
    if "branches" in snapshot and isinstance(snapshot["branches"], dict):
        branches = snapshot["branches"]
    else:
        branches = {k: v for k, v in snapshot.items() if k != "version"}

    for branch, branch_data in branches.items():
        if not isinstance(branch_data, dict):
            logger.warning(f"Skipping malformed snapshot entry for branch '{branch}'")
            continue
        todos = branch_data.get("todos", {})
        if not isinstance(todos, dict):
            logger.warning(f"Skipping malformed todo list for branch '{branch}'")
            continue
        yield branch, todos


def restore_into_store(
    store: InstanceStore,
    snapshot: dict[str, Any],
    templates: Iterable[TodoTemplate],
    workspace_root: Path | None = None,
) -> int:
    """
    Replace the store contents with a snapshot.

    Todos referencing unknown templates are dropped.

    Args:
        store: Store to fill (cleared first)
        snapshot: Snapshot as produced by snapshot_from_store()
        templates: Current templates, used for display fields
        workspace_root: Used to derive relative paths the id cannot provide

    Returns:
        Number of orphaned todos dropped
    """
    by_id = {t.template_id: t for t in templates}
    store.clear()
    dropped = 0

    for branch, todos in _iter_branches(snapshot or {}):
        store.branches_map.setdefault(branch, {})
        for todo_id, record in todos.items():
            if not isinstance(record, dict):
                logger.warning(f"Skipping malformed snapshot record {todo_id}")
                continue
            problem = _record_problem(record)
            if problem:
                logger.warning(f"Skipping malformed snapshot record {todo_id}: {problem}")
                continue
            template = by_id.get(_pick(record, "template_id", "templateId"))
            if template is None:
                dropped += 1
                continue
            store.put(_record_to_todo(branch, todo_id, record, template, workspace_root))

    if dropped:
        logger.info(f"Dropped {dropped} todos whose templates no longer exist")
    return dropped
