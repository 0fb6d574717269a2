"""
Developer Todos CLI
===================

Command-line front end for the todo engine.

Commands:
    init                 Write an example .todo.json
    templates            Show loaded templates
    list                 List todos for a branch
    branches             List branches with stored todos
    refresh              Re-evaluate the branch and all changed files
    evaluate FILE...     Evaluate specific files
    complete ID          Mark a todo completed
    reopen ID            Move a completed todo back to pending
    ignore ID            Mark a todo ignored
    unignore ID          Move an ignored todo back to pending
    clear                Remove every todo of a branch
    remaining            JSON summary of open todos
    instructions ID      JSON details of one todo, with AI guidance

Usage:
    dev-todos --workspace /path/to/repo refresh
    dev-todos list --filter remaining
    dev-todos complete "apex-permission:force-app/main/default/classes/Foo.cls"
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path

from .config import write_example_config
from .engine import TodoEngine
from .errors import ConfigError, NotFoundError
from .models import Priority, ViewFilter
from .report import remaining_tasks, render_text, task_instructions

logger = logging.getLogger(__name__)


def output_json(data) -> None:
    print(json.dumps(data, indent=2, default=str))


def output_error(message: str) -> int:
    print(f"Error: {message}", file=sys.stderr)
    return 1


def _report_engine_errors(engine: TodoEngine) -> int:
    """Print recorded config/persistence errors; 1 if there were any."""
    errors = engine.get_errors()
    for message in errors:
        print(f"Warning: {message}", file=sys.stderr)
    return 1 if errors else 0


# =============================================================================
# COMMAND HANDLERS
# =============================================================================

def cmd_init(engine: TodoEngine, args) -> int:
    try:
        path = write_example_config(engine.workspace_root, overwrite=args.force)
    except ConfigError as e:
        return output_error(f"{e} (use --force to overwrite)")
    except OSError as e:
        return output_error(f"Failed to write example config: {e}")
    print(f"Created {path}")
    return 0


def cmd_templates(engine: TodoEngine, args) -> int:
    templates = engine.templates
    if args.json:
        output_json([t.to_dict() for t in templates])
    elif not templates:
        print("No templates loaded.")
    else:
        for template in templates:
            kind = "branch" if template.branch_level else "file"
            pattern = template.path_pattern or "-"
            print(f"{template.template_id:<24} {kind:<6} {template.priority.value:<6} {pattern}")
    return _report_engine_errors(engine)


def cmd_list(engine: TodoEngine, args) -> int:
    branch = args.branch or engine.current_branch()
    todos = engine.list(branch)
    if args.json:
        output_json([t.to_dict() for t in todos])
    else:
        print(render_text(todos, branch, args.filter))
    return _report_engine_errors(engine)


def cmd_branches(engine: TodoEngine, args) -> int:
    current = engine.current_branch()
    for branch, todos in engine.list_all().items():
        remaining = sum(1 for t in todos if t.is_remaining)
        marker = "*" if branch == current else " "
        print(f"{marker} {branch} ({remaining}/{len(todos)} remaining)")
    return 0


def cmd_refresh(engine: TodoEngine, args) -> int:
    changed = engine.refresh(args.branch)
    print("Todos refreshed" + (" (new todos found)" if changed else ""))
    return _report_engine_errors(engine)


def cmd_evaluate(engine: TodoEngine, args) -> int:
    created = 0
    for file_path in args.files:
        if engine.evaluate_file(file_path, branch=args.branch):
            created += 1
    print(f"{created} of {len(args.files)} files raised new todos")
    return _report_engine_errors(engine)


def _status_command(verb: str):
    def handler(engine: TodoEngine, args) -> int:
        try:
            todo = getattr(engine, verb)(args.todo_id, args.branch)
        except NotFoundError as e:
            return output_error(str(e))
        print(f"{todo.status.value.capitalize()}: {todo.name}")
        return _report_engine_errors(engine)

    handler.__name__ = f"cmd_{verb}"
    return handler


def cmd_clear(engine: TodoEngine, args) -> int:
    branch = args.branch or engine.current_branch()
    engine.clear_branch(branch)
    print(f"Cleared todos for {branch}")
    return _report_engine_errors(engine)


def cmd_remaining(engine: TodoEngine, args) -> int:
    output_json(remaining_tasks(engine, args.branch, args.priority))
    return 0


def cmd_instructions(engine: TodoEngine, args) -> int:
    try:
        output_json(task_instructions(engine, args.todo_id, args.branch))
    except NotFoundError as e:
        return output_error(f"{e}. Use 'remaining' to get valid task IDs.")
    return 0


COMMANDS = {
    "init": cmd_init,
    "templates": cmd_templates,
    "list": cmd_list,
    "branches": cmd_branches,
    "refresh": cmd_refresh,
    "evaluate": cmd_evaluate,
    "complete": _status_command("complete"),
    "reopen": _status_command("reopen"),
    "ignore": _status_command("ignore"),
    "unignore": _status_command("unignore"),
    "clear": cmd_clear,
    "remaining": cmd_remaining,
    "instructions": cmd_instructions,
}


# =============================================================================
# ARGUMENT PARSING
# =============================================================================

def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="dev-todos",
        description="Branch-scoped developer todos raised by file templates",
    )
    parser.add_argument(
        "--workspace", "-w", default=".", help="Workspace root (default: current directory)"
    )
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable debug logging")
    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    init_parser = subparsers.add_parser("init", help="Write an example .todo.json")
    init_parser.add_argument("--force", action="store_true", help="Overwrite an existing file")

    templates_parser = subparsers.add_parser("templates", help="Show loaded templates")
    templates_parser.add_argument("--json", action="store_true", help="Output JSON")

    list_parser = subparsers.add_parser("list", help="List todos")
    list_parser.add_argument("--branch", "-b", help="Branch (default: current)")
    list_parser.add_argument(
        "--filter",
        "-f",
        default=ViewFilter.ALL.value,
        choices=[v.value for v in ViewFilter],
        help="Which todos to show",
    )
    list_parser.add_argument("--json", action="store_true", help="Output JSON")

    subparsers.add_parser("branches", help="List branches with stored todos")

    refresh_parser = subparsers.add_parser("refresh", help="Re-evaluate changed files")
    refresh_parser.add_argument("--branch", "-b", help="Branch (default: current)")

    evaluate_parser = subparsers.add_parser("evaluate", help="Evaluate specific files")
    evaluate_parser.add_argument("files", nargs="+", help="Files to evaluate")
    evaluate_parser.add_argument("--branch", "-b", help="Branch (default: current)")

    for verb, help_text in (
        ("complete", "Mark a todo completed"),
        ("reopen", "Move a completed todo back to pending"),
        ("ignore", "Mark a todo ignored"),
        ("unignore", "Move an ignored todo back to pending"),
        ("instructions", "Show details and AI guidance for a todo"),
    ):
        verb_parser = subparsers.add_parser(verb, help=help_text)
        verb_parser.add_argument("todo_id", help="Todo ID")
        verb_parser.add_argument("--branch", "-b", help="Branch (default: current)")

    clear_parser = subparsers.add_parser("clear", help="Remove every todo of a branch")
    clear_parser.add_argument("--branch", "-b", help="Branch (default: current)")

    remaining_parser = subparsers.add_parser("remaining", help="JSON summary of open todos")
    remaining_parser.add_argument("--branch", "-b", help="Branch (default: current)")
    remaining_parser.add_argument(
        "--priority",
        "-p",
        default="all",
        choices=["all"] + [p.value for p in Priority],
        help="Only this priority",
    )

    return parser


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )

    if not args.command:
        parser.print_help()
        return output_error("No command specified")

    engine = TodoEngine(Path(args.workspace))
    if args.command != "init":
        engine.initialize()

    return COMMANDS[args.command](engine, args)


if __name__ == "__main__":
    sys.exit(main())
