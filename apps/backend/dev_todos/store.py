"""
Todo Instance Store
===================

In-memory, per-branch collection of todo instances.

State is a mapping branch -> todo id -> TodoInstance. Instances keep their
insertion order within a branch so listings stay stable.

This module provides:
- InstanceStore: upsert, status transitions, listing, clearing and
  orphan pruning

The store does no I/O; see persistence.py for snapshots.

Usage:
    store = InstanceStore()
    changed = store.upsert_file_instance("main", template, "src/a.go", "/ws/src/a.go")
    store.set_status("main", "t1:src/a.go", TodoStatus.COMPLETED)
    todos = store.list("main")
"""

from __future__ import annotations

import logging
from typing import Iterable

from .errors import NotFoundError
from .models import (
    TodoInstance,
    TodoStatus,
    TodoTemplate,
    branch_instance_id,
    file_instance_id,
)

# =============================================================================
# LOGGER
# =============================================================================

logger = logging.getLogger(__name__)


# =============================================================================
# INSTANCE STORE
# =============================================================================

class InstanceStore:
    """
    Owns the todo instances of every branch.

    All upserts are idempotent: evaluating the same template/scope pair
    again never creates a duplicate. The only state an upsert can add to an
    existing instance is new triggering files of a branch-level todo.

    Attributes:
        branches_map: branch name -> (todo id -> TodoInstance)
    """

    def __init__(self) -> None:
        self.branches_map: dict[str, dict[str, TodoInstance]] = {}

    def _branch(self, branch: str) -> dict[str, TodoInstance]:
        return self.branches_map.setdefault(branch, {})

    # -------------------------------------------------------------------------
    # Upserts
    # -------------------------------------------------------------------------

    def upsert_file_instance(
        self,
        branch: str,
        template: TodoTemplate,
        relative_path: str,
        file_path: str,
    ) -> bool:
        """
        Ensure a file-scoped todo exists.

        Returns:
            True if a new instance was created
        """
        todo_id = file_instance_id(template.template_id, relative_path)
        branch_todos = self._branch(branch)
        if todo_id in branch_todos:
            return False

        branch_todos[todo_id] = TodoInstance.for_file(
            template, branch, relative_path, file_path
        )
        logger.debug(f"Created todo {todo_id} on {branch}")
        return True

    def upsert_branch_instance(
        self,
        branch: str,
        template: TodoTemplate,
        triggering_files: Iterable[str] | None = None,
    ) -> bool:
        """
        Ensure a branch-level todo exists, merging triggering files.

        Returns:
            True if the instance was created or its triggering files grew
        """
        todo_id = branch_instance_id(template.template_id)
        files = list(triggering_files or [])
        branch_todos = self._branch(branch)

        existing = branch_todos.get(todo_id)
        if existing is None:
            branch_todos[todo_id] = TodoInstance.for_branch(template, branch, files)
            logger.debug(f"Created branch todo {todo_id} on {branch}")
            return True

        if not files:
            return False

        grew = existing.add_triggering_files(files)
        if grew:
            logger.debug(f"Branch todo {todo_id} on {branch} now has {len(existing.triggering_files)} files")
        return grew

    # -------------------------------------------------------------------------
    # Status
    # -------------------------------------------------------------------------

    def set_status(
        self,
        branch: str,
        todo_id: str,
        status: TodoStatus,
        timestamp: str | None = None,
    ) -> TodoInstance:
        """
        Change the status of a todo.

        Raises:
            NotFoundError: If the branch or todo does not exist
        """
        todo = self.get(branch, todo_id)
        if todo is None:
            raise NotFoundError(todo_id, branch)
        todo.set_status(status, timestamp)
        return todo

    # -------------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------------

    def get(self, branch: str, todo_id: str) -> TodoInstance | None:
        branch_todos = self.branches_map.get(branch)
        if branch_todos is None:
            return None
        return branch_todos.get(todo_id)

    def list(self, branch: str) -> list[TodoInstance]:
        """Todos of a branch in insertion order (empty for unknown branches)."""
        return list(self.branches_map.get(branch, {}).values())

    def list_all(self) -> dict[str, list[TodoInstance]]:
        return {branch: list(todos.values()) for branch, todos in self.branches_map.items()}

    def branches(self) -> list[str]:
        return list(self.branches_map)

    def has_branch(self, branch: str) -> bool:
        return branch in self.branches_map

    def count(self) -> int:
        return sum(len(todos) for todos in self.branches_map.values())

    # -------------------------------------------------------------------------
    # Removal and maintenance
    # -------------------------------------------------------------------------

    def clear_branch(self, branch: str) -> bool:
        """
        Remove every todo of a branch.

        Returns:
            True if the branch existed
        """
        return self.branches_map.pop(branch, None) is not None

    def clear(self) -> None:
        self.branches_map.clear()

    def put(self, todo: TodoInstance) -> None:
        """Insert or replace an instance as-is (used when restoring)."""
        self._branch(todo.branch)[todo.todo_id] = todo

    def prune_orphans(self, valid_template_ids: Iterable[str]) -> int:
        """
        Remove todos whose template no longer exists.

        Returns:
            Number of todos removed
        """
        valid = set(valid_template_ids)
        removed = 0
        for branch, branch_todos in self.branches_map.items():
            orphans = [
                todo_id
                for todo_id, todo in branch_todos.items()
                if todo.template_id not in valid
            ]
            for todo_id in orphans:
                del branch_todos[todo_id]
                logger.debug(f"Pruned orphaned todo {todo_id} on {branch}")
            removed += len(orphans)
        return removed

    def refresh_display(self, templates: Iterable[TodoTemplate]) -> None:
        """Re-derive display fields of every todo from current templates."""
        by_id = {t.template_id: t for t in templates}
        for branch_todos in self.branches_map.values():
            for todo in branch_todos.values():
                template = by_id.get(todo.template_id)
                if template is not None:
                    todo.apply_template(template)
