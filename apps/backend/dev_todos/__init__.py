"""
Developer Todos
===============

Raises developer todos when files in a workspace match declarative
templates, and keeps those todos scoped to the current git branch.

This package provides:
- Data models for templates and todo instances
- Template configuration loading (.todo.json / .todo.yaml)
- Glob and content matching of files against templates
- Per-branch instance store with completed/ignored status
- Snapshot persistence across restarts
- TodoEngine facade with change notification
- Source-control and file-content collaborators
- Reports and a command-line interface

Main exports:
- TodoEngine: Engine facade for one workspace
- TodoTemplate, FileTemplate, BranchTemplate: Template variants
- TodoInstance: A materialized todo
- TodoStatus, Priority, ViewFilter: Enums
- ConfigError, NotFoundError, PersistenceError, UnreadableFileError: Errors
"""

# Data models
from .models import (
    BranchTemplate,
    FileTemplate,
    Priority,
    PriorityGroup,
    TodoInstance,
    TodoStatus,
    TodoTemplate,
    ViewFilter,
    branch_instance_id,
    file_instance_id,
)

# Errors
from .errors import (
    ConfigError,
    DevTodosError,
    NotFoundError,
    PersistenceError,
    UnreadableFileError,
)

# Configuration loading
from .config import (
    CONFIG_FILENAMES,
    TemplateConfigLoader,
    load_templates,
    parse_templates,
    write_example_config,
)

# Matching
from .matcher import TemplateMatcher
from .path_patterns import glob_match

# State
from .store import InstanceStore
from .persistence import (
    InMemoryStateStorage,
    JsonFileStateStorage,
    StateStorage,
    restore_into_store,
    snapshot_from_store,
)

# Collaborators
from .content import FileContentReader
from .vcs import GitSourceControl, SourceControl, StaticSourceControl

# Engine
from .engine import TodoEngine

__all__ = [
    # Enums
    "Priority",
    "TodoStatus",
    "ViewFilter",
    # Core models
    "TodoTemplate",
    "FileTemplate",
    "BranchTemplate",
    "TodoInstance",
    "PriorityGroup",
    "file_instance_id",
    "branch_instance_id",
    # Errors
    "DevTodosError",
    "ConfigError",
    "NotFoundError",
    "PersistenceError",
    "UnreadableFileError",
    # Configuration loading
    "CONFIG_FILENAMES",
    "TemplateConfigLoader",
    "load_templates",
    "parse_templates",
    "write_example_config",
    # Matching
    "TemplateMatcher",
    "glob_match",
    # State
    "InstanceStore",
    "StateStorage",
    "JsonFileStateStorage",
    "InMemoryStateStorage",
    "snapshot_from_store",
    "restore_into_store",
    # Collaborators
    "FileContentReader",
    "SourceControl",
    "GitSourceControl",
    "StaticSourceControl",
    # Engine
    "TodoEngine",
]
