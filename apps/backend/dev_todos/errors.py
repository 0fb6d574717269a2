"""
Developer Todos Errors
======================

Exception taxonomy shared by the todo engine and its collaborators.

- ConfigError: template configuration is missing required data or malformed
- NotFoundError: an operation referenced an unknown branch or todo id
- PersistenceError: the state snapshot could not be read or written
- UnreadableFileError: file content could not be obtained for matching

None of these are meant to terminate the host. The engine logs config and
persistence failures and keeps running with its in-memory state.
"""

from __future__ import annotations

from pathlib import Path


class DevTodosError(Exception):
    """Base class for all developer todo errors."""


class ConfigError(DevTodosError):
    """Raised when the template configuration cannot be loaded."""

    def __init__(
        self,
        message: str,
        errors: list[str] | None = None,
        source: str | Path | None = None,
    ):
        """
        Initialize config error.

        Args:
            message: Summary message
            errors: Individual validation errors (if any)
            source: Config file or other origin of the data
        """
        self.errors = list(errors or [])
        self.source = str(source) if source is not None else None
        super().__init__(message)

    def __str__(self) -> str:
        base = super().__str__()
        if not self.errors:
            return base
        details = "\n".join(f"  - {err}" for err in self.errors)
        return f"{base}\n{details}"


class NotFoundError(DevTodosError):
    """Raised when a branch or todo id does not exist."""

    def __init__(self, todo_id: str, branch: str):
        self.todo_id = todo_id
        self.branch = branch
        super().__init__(f"Todo '{todo_id}' not found on branch '{branch}'")


class PersistenceError(DevTodosError):
    """Raised when the state snapshot cannot be loaded or saved."""

    def __init__(
        self,
        message: str,
        path: Path | str | None = None,
        original_error: Exception | None = None,
    ):
        self.path = Path(path) if path else None
        self.original_error = original_error
        super().__init__(message)


class UnreadableFileError(DevTodosError):
    """Raised by content readers when a file cannot be read as text."""

    def __init__(self, path: Path | str, reason: str = ""):
        self.path = Path(path)
        self.reason = reason
        message = f"Cannot read {self.path}"
        if reason:
            message += f": {reason}"
        super().__init__(message)
