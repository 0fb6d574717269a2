"""
Todo Reports
============

Read-only views of engine state for UIs, assistants and the CLI.

This module provides:
- filter_todos(): apply a ViewFilter (all / remaining / completed / ignored)
- group_by_priority(): todos grouped high -> medium -> low
- remaining_tasks(): JSON-ready summary of open todos
- task_instructions(): JSON-ready details of one todo, with AI guidance
- render_text(): plain-text grouped listing

Usage:
    from dev_todos.report import remaining_tasks, render_text

    summary = remaining_tasks(engine, priority="high")
    print(render_text(engine.list(), branch=engine.current_branch()))
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Iterable

from .errors import NotFoundError
from .models import Priority, PriorityGroup, TodoInstance, ViewFilter

if TYPE_CHECKING:
    from .engine import TodoEngine


PRIORITY_LABELS = {
    Priority.HIGH: "High Priority",
    Priority.MEDIUM: "Medium Priority",
    Priority.LOW: "Low Priority",
}

STATUS_MARKERS = {
    "pending": "[ ]",
    "completed": "[x]",
    "ignored": "[-]",
}

NO_INSTRUCTION_HINT = (
    "No specific AI instructions defined for this task. "
    "Use the description as guidance."
)


def filter_todos(
    todos: Iterable[TodoInstance],
    view_filter: ViewFilter | str = ViewFilter.ALL,
) -> list[TodoInstance]:
    """Keep the todos a view filter selects."""
    view_filter = ViewFilter(view_filter)
    if view_filter == ViewFilter.REMAINING:
        return [t for t in todos if t.is_remaining]
    if view_filter == ViewFilter.COMPLETED:
        return [t for t in todos if t.is_completed]
    if view_filter == ViewFilter.IGNORED:
        return [t for t in todos if t.is_ignored]
    return list(todos)


def group_by_priority(todos: Iterable[TodoInstance]) -> list[PriorityGroup]:
    """
    Group todos by priority, skipping empty groups.

    Within a group, remaining todos come first; otherwise the input order
    is kept.
    """
    todos = list(todos)
    groups = []
    for priority in Priority:
        members = [t for t in todos if t.priority == priority]
        if not members:
            continue
        members.sort(key=lambda t: not t.is_remaining)
        groups.append(PriorityGroup(priority, PRIORITY_LABELS[priority], members))
    return groups


def _task_summary(todo: TodoInstance) -> dict[str, Any]:
    return {
        "id": todo.todo_id,
        "name": todo.name,
        "description": todo.description,
        "priority": todo.priority.value,
        "file_path": todo.relative_path,
        "branch_level": todo.branch_level,
        "triggering_files": todo.triggering_files,
        "has_ai_instruction": bool(todo.ai_instruction),
    }


def remaining_tasks(
    engine: "TodoEngine",
    branch: str | None = None,
    priority: Priority | str | None = None,
) -> dict[str, Any]:
    """
    Summarize todos that are neither completed nor ignored.

    Args:
        engine: Engine to query
        branch: Branch (defaults to the current one)
        priority: Only include this priority ("all" or None for every one)

    Returns:
        Dict with branch, total_remaining and tasks
    """
    branch = branch or engine.current_branch()
    todos = filter_todos(engine.list(branch), ViewFilter.REMAINING)
    if priority and priority != "all":
        wanted = Priority(priority)
        todos = [t for t in todos if t.priority == wanted]

    return {
        "branch": branch,
        "total_remaining": len(todos),
        "tasks": [_task_summary(t) for t in todos],
    }


def task_instructions(
    engine: "TodoEngine",
    todo_id: str,
    branch: str | None = None,
) -> dict[str, Any]:
    """
    Details of one todo, including its AI instruction.

    Raises:
        NotFoundError: If the todo does not exist on the branch
    """
    branch = branch or engine.current_branch()
    todo = engine.get(todo_id, branch)
    if todo is None:
        raise NotFoundError(todo_id, branch)

    details = _task_summary(todo)
    details.pop("has_ai_instruction")
    details.update({
        "status": todo.status.value,
        "completed": todo.is_completed,
        "ignored": todo.is_ignored,
        "ai_instruction": todo.ai_instruction or NO_INSTRUCTION_HINT,
    })
    return details


def render_text(
    todos: Iterable[TodoInstance],
    branch: str,
    view_filter: ViewFilter | str = ViewFilter.ALL,
) -> str:
    """Render todos as a grouped plain-text listing."""
    todos = list(todos)
    selected = filter_todos(todos, view_filter)
    remaining = sum(1 for t in todos if t.is_remaining)

    lines = [f"Branch: {branch} ({remaining} remaining of {len(todos)})"]
    if not selected:
        lines.append("")
        lines.append("No todos.")
        return "\n".join(lines)

    for group in group_by_priority(selected):
        lines.append("")
        lines.append(f"{group.label} ({group.remaining_count}/{len(group.todos)})")
        for todo in group.todos:
            marker = STATUS_MARKERS[todo.status.value]
            lines.append(f"  {marker} {todo.name}  [{todo.todo_id}]")
            if todo.relative_path:
                lines.append(f"        {todo.relative_path}")
            for path in todo.triggering_files or []:
                lines.append(f"        <- {path}")

    return "\n".join(lines)
