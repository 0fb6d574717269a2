"""
Data Models for Developer Todos
===============================

Defines the core data structures for the branch-scoped todo engine.

This module provides:
- Enums for priority, status and view filters
- TodoTemplate variants: FileTemplate (one todo per matching file) and
  BranchTemplate (at most one todo per branch)
- TodoInstance: a stateful todo derived from a template and a scope
- Identity helpers that build and parse todo ids
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum


# =============================================================================
# ENUMS
# =============================================================================

class Priority(str, Enum):
    """
    Display priority of a todo.

    Attributes:
        HIGH: Must be handled before merging
        MEDIUM: Default priority
        LOW: Nice to have
    """

    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class TodoStatus(str, Enum):
    """
    Lifecycle state of a todo instance.

    PENDING is the only state that can move to COMPLETED or IGNORED and
    back; every transition sets or clears the matching timestamp.
    """

    PENDING = "pending"
    COMPLETED = "completed"
    IGNORED = "ignored"


class ViewFilter(str, Enum):
    """Which todos a listing should show."""

    ALL = "all"
    REMAINING = "remaining"
    COMPLETED = "completed"
    IGNORED = "ignored"


def utc_now_iso() -> str:
    """Current UTC time as an ISO-8601 string."""
    return datetime.now(timezone.utc).isoformat()


# =============================================================================
# IDENTITY
# =============================================================================

BRANCH_ID_PREFIX = "branch:"
ID_SEPARATOR = ":"


def file_instance_id(template_id: str, relative_path: str) -> str:
    """
    Build the id of a file-scoped todo.

    Example:
        >>> file_instance_id("t1", "cls/Foo.cls")
        't1:cls/Foo.cls'
    """
    return f"{template_id}{ID_SEPARATOR}{relative_path}"


def branch_instance_id(template_id: str) -> str:
    """
    Build the id of a branch-level todo.

    Example:
        >>> branch_instance_id("release-notes")
        'branch:release-notes'
    """
    return f"{BRANCH_ID_PREFIX}{template_id}"


def relative_path_from_id(todo_id: str, template_id: str) -> str | None:
    """
    Recover the relative path part of a file-scoped todo id.

    Returns None for branch-level ids or ids that do not belong to the
    given template.
    """
    if todo_id == branch_instance_id(template_id):
        return None
    prefix = f"{template_id}{ID_SEPARATOR}"
    if not todo_id.startswith(prefix):
        return None
    return todo_id[len(prefix):] or None


# =============================================================================
# TEMPLATES
# =============================================================================

@dataclass(frozen=True)
class TodoTemplate:
    """
    Declarative rule describing when a todo should be raised.

    Use FileTemplate or BranchTemplate; this base only carries the fields
    both kinds share.

    Attributes:
        template_id: Unique key (the "id" in the config file)
        name: Short display name
        description: What the developer has to do
        priority: Display priority
        content_must_include: Literal substring the file must contain
        content_must_exclude: Literal substring the file must not contain
        ai_instruction: Opaque guidance passed through to assistants
    """

    template_id: str
    name: str
    description: str
    priority: Priority = Priority.MEDIUM
    content_must_include: str | None = None
    content_must_exclude: str | None = None
    ai_instruction: str | None = None

    @property
    def branch_level(self) -> bool:
        return False

    @property
    def path_pattern(self) -> str | None:
        return None

    @property
    def has_content_checks(self) -> bool:
        return bool(self.content_must_include or self.content_must_exclude)

    def to_dict(self) -> dict:
        """Convert to the config-file representation."""
        data = {
            "id": self.template_id,
            "name": self.name,
            "description": self.description,
            "priority": self.priority.value,
            "branchLevel": self.branch_level,
        }
        if self.path_pattern:
            data["pathPattern"] = self.path_pattern
        if self.content_must_include:
            data["contentMustInclude"] = self.content_must_include
        if self.content_must_exclude:
            data["contentMustExclude"] = self.content_must_exclude
        if self.ai_instruction:
            data["aiInstruction"] = self.ai_instruction
        return data


@dataclass(frozen=True)
class FileTemplate(TodoTemplate):
    """Template yielding one todo per matching file."""

    pattern: str = ""

    @property
    def path_pattern(self) -> str:
        return self.pattern


@dataclass(frozen=True)
class BranchTemplate(TodoTemplate):
    """
    Template yielding at most one todo per branch.

    Without a pattern the todo exists on every branch. With a pattern the
    todo only appears once some file matched, and it records every file
    that did.
    """

    pattern: str | None = None

    @property
    def branch_level(self) -> bool:
        return True

    @property
    def path_pattern(self) -> str | None:
        return self.pattern

    @property
    def aggregates_files(self) -> bool:
        return bool(self.pattern)


# =============================================================================
# TODO INSTANCES
# =============================================================================

@dataclass
class TodoInstance:
    """
    A materialized todo for one template on one branch.

    Display fields (name, description, priority, ai_instruction) are copied
    from the template when the instance is created or restored.

    Attributes:
        todo_id: Deterministic id (see file_instance_id / branch_instance_id)
        template_id: Template the todo came from
        branch: Owning branch name
        status: Current lifecycle state
        completed_at: ISO timestamp of completion (cleared on reopen)
        ignored_at: ISO timestamp of ignore (cleared on unignore)
        file_path: Absolute path (file-scoped todos only)
        relative_path: Workspace-relative POSIX path (file-scoped todos only)
        branch_level: Whether this is a branch-level todo
        triggering_files: Relative paths that triggered a branch-level todo
    """

    todo_id: str
    template_id: str
    name: str
    description: str
    branch: str
    priority: Priority = Priority.MEDIUM
    status: TodoStatus = TodoStatus.PENDING
    completed_at: str | None = None
    ignored_at: str | None = None
    file_path: str | None = None
    relative_path: str | None = None
    branch_level: bool = False
    triggering_files: list[str] | None = None
    ai_instruction: str | None = None

    @classmethod
    def for_file(
        cls,
        template: TodoTemplate,
        branch: str,
        relative_path: str,
        file_path: str,
    ) -> "TodoInstance":
        """Create a pending file-scoped todo from a template."""
        return cls(
            todo_id=file_instance_id(template.template_id, relative_path),
            template_id=template.template_id,
            name=template.name,
            description=template.description,
            branch=branch,
            priority=template.priority,
            file_path=file_path,
            relative_path=relative_path,
            ai_instruction=template.ai_instruction,
        )

    @classmethod
    def for_branch(
        cls,
        template: TodoTemplate,
        branch: str,
        triggering_files: list[str] | None = None,
    ) -> "TodoInstance":
        """Create a pending branch-level todo from a template."""
        files = None
        if template.path_pattern:
            files = list(dict.fromkeys(triggering_files or []))
        return cls(
            todo_id=branch_instance_id(template.template_id),
            template_id=template.template_id,
            name=template.name,
            description=template.description,
            branch=branch,
            priority=template.priority,
            branch_level=True,
            triggering_files=files,
            ai_instruction=template.ai_instruction,
        )

    @property
    def is_completed(self) -> bool:
        return self.status == TodoStatus.COMPLETED

    @property
    def is_ignored(self) -> bool:
        return self.status == TodoStatus.IGNORED

    @property
    def is_remaining(self) -> bool:
        return self.status == TodoStatus.PENDING

    def apply_template(self, template: TodoTemplate) -> None:
        """Refresh display fields from the current template."""
        self.name = template.name
        self.description = template.description
        self.priority = template.priority
        self.ai_instruction = template.ai_instruction

    def add_triggering_files(self, files: list[str]) -> bool:
        """
        Union files into triggering_files.

        Returns:
            True if at least one new file was added
        """
        if self.triggering_files is None:
            self.triggering_files = []
        added = False
        for path in files:
            if path not in self.triggering_files:
                self.triggering_files.append(path)
                added = True
        return added

    def set_status(self, status: TodoStatus, timestamp: str | None = None) -> None:
        """Move to a new status, setting and clearing timestamps."""
        timestamp = timestamp or utc_now_iso()
        self.status = status
        if status == TodoStatus.COMPLETED:
            self.completed_at = timestamp
            self.ignored_at = None
        elif status == TodoStatus.IGNORED:
            self.ignored_at = timestamp
            self.completed_at = None
        else:
            self.completed_at = None
            self.ignored_at = None

    def to_dict(self) -> dict:
        """Convert to JSON-serializable dict."""
        return {
            "id": self.todo_id,
            "template_id": self.template_id,
            "name": self.name,
            "description": self.description,
            "branch": self.branch,
            "priority": self.priority.value,
            "status": self.status.value,
            "completed_at": self.completed_at,
            "ignored_at": self.ignored_at,
            "file_path": self.file_path,
            "relative_path": self.relative_path,
            "branch_level": self.branch_level,
            "triggering_files": (
                list(self.triggering_files) if self.triggering_files is not None else None
            ),
            "ai_instruction": self.ai_instruction,
        }


@dataclass
class PriorityGroup:
    """Todos of one priority, as shown in grouped listings."""

    priority: Priority
    label: str
    todos: list[TodoInstance] = field(default_factory=list)

    @property
    def remaining_count(self) -> int:
        return sum(1 for todo in self.todos if todo.is_remaining)
