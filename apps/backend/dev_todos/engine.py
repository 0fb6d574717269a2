"""
Todo Engine
===========

Facade that ties templates, matching, instance state and persistence
together for one workspace.

Control flow:
    host -> TodoEngine.evaluate_file(path) -> TemplateMatcher
         -> InstanceStore upserts -> StateStorage.save() -> listeners

    host -> TodoEngine.evaluate_branch(branch) -> branch-level todos

Error policy:
- Config and persistence failures are logged and recorded (see errors),
  never raised to the host; in-memory state stays authoritative.
- Unreadable files simply do not match.
- Status verbs on unknown todo ids raise NotFoundError without changing
  anything.

Usage:
    from dev_todos.engine import TodoEngine

    engine = TodoEngine(Path("/path/to/workspace"))
    engine.initialize()
    engine.subscribe(lambda: print("todos changed"))

    engine.evaluate_file("/path/to/workspace/src/Foo.cls")
    for todo in engine.list():
        print(todo.todo_id, todo.status.value)

    engine.complete("apex-permission:src/Foo.cls")
"""

from __future__ import annotations

import logging
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Callable, Iterable, Iterator

from .config import CONFIG_FILENAMES, TemplateConfigLoader
from .content import FileContentReader, is_binary_path
from .errors import ConfigError, NotFoundError, PersistenceError, UnreadableFileError
from .matcher import TemplateMatcher
from .models import TodoInstance, TodoStatus, TodoTemplate
from .path_patterns import is_outside_workspace, relative_to_workspace
from .persistence import (
    STATE_DIR,
    JsonFileStateStorage,
    StateStorage,
    restore_into_store,
    snapshot_from_store,
)
from .store import InstanceStore
from .vcs import GitSourceControl, SourceControl

# =============================================================================
# LOGGER
# =============================================================================

logger = logging.getLogger(__name__)

Listener = Callable[[], None]


# =============================================================================
# TODO ENGINE
# =============================================================================

class TodoEngine:
    """
    Rule-matching and todo lifecycle engine for one workspace.

    All public operations run to completion under a single re-entrant lock,
    so hosts may call in from watcher threads.

    Attributes:
        workspace_root: Root directory of the workspace
        storage: Snapshot slot for todo state
        source_control: Supplies current branch and changed files
        content_reader: Supplies file text (object with read(path) -> str)
        config_loader: Loads templates from the workspace
        matcher: Template predicate evaluator
        store: Per-branch todo instances
    """

    def __init__(
        self,
        workspace_root: Path,
        storage: StateStorage | None = None,
        source_control: SourceControl | None = None,
        content_reader: FileContentReader | None = None,
        config_loader: TemplateConfigLoader | None = None,
        matcher: TemplateMatcher | None = None,
    ):
        self.workspace_root = Path(workspace_root).resolve()
        self.storage = storage if storage is not None else JsonFileStateStorage(self.workspace_root)
        self.source_control = source_control or GitSourceControl(self.workspace_root)
        self.content_reader = content_reader or FileContentReader()
        self.config_loader = config_loader or TemplateConfigLoader(self.workspace_root)
        self.matcher = matcher or TemplateMatcher()
        self.store = InstanceStore()

        self._templates: list[TodoTemplate] = []
        self._templates_loaded = False
        self._pending_snapshot: dict | None = None
        self._listeners: list[Listener] = []
        self._errors: list[str] = []
        self._lock = threading.RLock()
        self._batch_depth = 0
        self._dirty = False

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    def initialize(self) -> None:
        """Load templates and saved state, then create branch-level todos."""
        with self._lock:
            self.load_templates()
            self.load_state()
            self.evaluate_branch()
            self._notify()

    def load_templates(self) -> bool:
        """
        (Re)load templates from the workspace configuration.

        A missing config file yields an empty template set. An invalid one is
        reported; the first load then leaves the set empty and a later reload
        keeps the previous set. Saved state read while no template set was
        ever loaded is held back and restored by the first successful load.

        Returns:
            True if a new template set was applied
        """
        if not self.config_loader.has_config_file():
            logger.warning(f"No todo configuration found in {self.workspace_root}")
            self.set_templates([])
            return False

        try:
            templates = self.config_loader.load()
        except ConfigError as e:
            self._record_error(str(e))
            logger.error(f"Failed to load todo templates: {e}")
            if not self._templates_loaded:
                with self._lock:
                    self._templates = []
            return False

        self.set_templates(templates)
        return True

    def set_templates(self, templates: Iterable[TodoTemplate]) -> int:
        """
        Replace the template set and drop todos of removed templates.

        Returns:
            Number of todos pruned
        """
        with self._lock:
            self._templates = list(templates)
            self._templates_loaded = True
            pruned = 0
            if self._pending_snapshot is not None:
                snapshot, self._pending_snapshot = self._pending_snapshot, None
                pruned += restore_into_store(
                    self.store, snapshot, self._templates, self.workspace_root
                )
            pruned += self.store.prune_orphans(t.template_id for t in self._templates)
            self.store.refresh_display(self._templates)
            if pruned:
                logger.info(f"Removed {pruned} todos whose templates no longer exist")
                self._persist()
            self._notify()
            return pruned

    def load_state(self) -> bool:
        """
        Restore todo state from storage.

        Returns:
            True if the snapshot was read
        """
        try:
            snapshot = self.storage.load()
        except PersistenceError as e:
            self._record_error(str(e))
            logger.error(f"Failed to load todo state: {e}")
            return False

        with self._lock:
            if not self._templates_loaded:
                # Without a valid template set every todo would look orphaned
                self._pending_snapshot = snapshot
                logger.info("Todo state restore deferred until templates load")
                return True

            dropped = restore_into_store(
                self.store, snapshot, self._templates, self.workspace_root
            )
            logger.info(
                f"Restored {self.store.count()} todos across {len(self.store.branches())} branches"
            )
            if dropped:
                self._persist()
        return True

    # -------------------------------------------------------------------------
    # Evaluation
    # -------------------------------------------------------------------------

    def evaluate_file(
        self,
        file_path: str | Path,
        content: str | None = None,
        branch: str | None = None,
    ) -> bool:
        """
        Create todos for a file based on matching templates.

        Content is read through content_reader only when some template's path
        matched and a content condition needs it.

        Args:
            file_path: Absolute path, or path relative to the workspace root
            content: File text if the caller already has it
            branch: Branch to record todos on (defaults to the current one)

        Returns:
            True if any todo was created or grew
        """
        path = Path(file_path)
        if not path.is_absolute():
            path = self.workspace_root / path
        relative_path = relative_to_workspace(path, self.workspace_root)
        skip_reason = self._skip_reason(path, relative_path)
        if skip_reason:
            logger.debug(f"Skipping {relative_path}: {skip_reason}")
            return False

        with self._lock:
            candidates = [t for t in self._templates if t.path_pattern]
            if not self.matcher.path_might_match(relative_path, candidates):
                return False

            branch = branch or self.current_branch()
            source = content if content is not None else (lambda: self.content_reader.read(path))
            try:
                matching = self.matcher.get_matching_templates(relative_path, source, candidates)
            except UnreadableFileError as e:
                logger.debug(f"Skipping {relative_path}: {e}")
                return False

            changed = False
            for template in matching:
                if template.branch_level:
                    changed |= self.store.upsert_branch_instance(
                        branch, template, [relative_path]
                    )
                else:
                    changed |= self.store.upsert_file_instance(
                        branch, template, relative_path, str(path)
                    )

            if changed:
                self._commit()
            return changed

    def evaluate_branch(
        self,
        branch: str | None = None,
        candidate_files: Iterable[str | Path] | None = None,
    ) -> bool:
        """
        Ensure branch-level todos exist for a branch.

        Templates without a pattern always get a todo. Templates with a
        pattern only get one when at least one candidate file matches.

        Args:
            branch: Branch name (defaults to the current one)
            candidate_files: Files to scan (defaults to changed files)

        Returns:
            True if any todo was created or grew
        """
        with self._lock:
            branch = branch or self.current_branch()
            if candidate_files is None:
                candidate_files = self.source_control.changed_files()
            files = [self._absolute(f) for f in candidate_files]

            changed = False
            contents: dict[Path, str] = {}
            for template in self._templates:
                if not template.branch_level:
                    continue
                if not template.path_pattern:
                    changed |= self.store.upsert_branch_instance(branch, template)
                    continue

                triggering = self._find_triggering_files(template, files, contents)
                if triggering:
                    changed |= self.store.upsert_branch_instance(branch, template, triggering)

            if changed:
                self._commit()
            return changed

    def _find_triggering_files(
        self,
        template: TodoTemplate,
        files: list[Path],
        contents: dict[Path, str],
    ) -> list[str]:
        """Relative paths among files that satisfy a template."""
        triggering = []
        for path in files:
            relative_path = relative_to_workspace(path, self.workspace_root)
            if self._skip_reason(path, relative_path):
                continue

            def read(path: Path = path) -> str:
                if path not in contents:
                    contents[path] = self.content_reader.read(path)
                return contents[path]

            try:
                if self.matcher.matches(template, relative_path, read):
                    triggering.append(relative_path)
            except UnreadableFileError as e:
                logger.debug(f"Skipping {relative_path}: {e}")
        return triggering

    def refresh(self, branch: str | None = None) -> bool:
        """
        Re-evaluate the branch and every changed file.

        Listeners are always notified afterwards.

        Returns:
            True if any todo was created or grew
        """
        with self._lock:
            branch = branch or self.current_branch()
            changed_files = self.source_control.changed_files()
            with self.batch():
                changed = self.evaluate_branch(branch, changed_files)
                for file_path in changed_files:
                    changed |= self.evaluate_file(file_path, branch=branch)
            # A batch that changed anything has already notified
            if not changed:
                self._notify()
            return changed

    def on_file_changed(self, file_path: str | Path) -> bool:
        """Evaluate a file reported by a watcher if source control lists it as changed."""
        if self._is_config_file(file_path):
            return self.load_templates()
        if not self.source_control.is_file_changed(self._absolute(file_path)):
            return False
        return self.evaluate_file(file_path)

    def on_branch_changed(self, branch: str | None = None) -> bool:
        """Create branch-level todos for a newly checked-out branch."""
        changed = self.evaluate_branch(branch)
        self._notify()
        return changed

    # -------------------------------------------------------------------------
    # Status verbs
    # -------------------------------------------------------------------------

    def complete(self, todo_id: str, branch: str | None = None) -> TodoInstance:
        """Mark a todo completed. Raises NotFoundError for unknown ids."""
        return self._set_status(todo_id, TodoStatus.COMPLETED, branch)

    def reopen(self, todo_id: str, branch: str | None = None) -> TodoInstance:
        """Move a completed todo back to pending; other states are left as-is."""
        return self._set_status(todo_id, TodoStatus.PENDING, branch, TodoStatus.COMPLETED)

    def ignore(self, todo_id: str, branch: str | None = None) -> TodoInstance:
        """Mark a todo ignored. Raises NotFoundError for unknown ids."""
        return self._set_status(todo_id, TodoStatus.IGNORED, branch)

    def unignore(self, todo_id: str, branch: str | None = None) -> TodoInstance:
        """Move an ignored todo back to pending; other states are left as-is."""
        return self._set_status(todo_id, TodoStatus.PENDING, branch, TodoStatus.IGNORED)

    def _set_status(
        self,
        todo_id: str,
        status: TodoStatus,
        branch: str | None,
        from_status: TodoStatus | None = None,
    ) -> TodoInstance:
        with self._lock:
            branch = branch or self.current_branch()
            todo = self.store.get(branch, todo_id)
            if todo is None:
                raise NotFoundError(todo_id, branch)
            if from_status is not None and todo.status != from_status:
                logger.debug(
                    f"Todo {todo_id} on {branch} is {todo.status.value}, not {from_status.value}; unchanged"
                )
            else:
                self.store.set_status(branch, todo_id, status)
                logger.info(f"Todo {todo_id} on {branch} is now {status.value}")
            self._commit()
            return todo

    def clear_branch(self, branch: str | None = None) -> bool:
        """
        Remove every todo of a branch.

        Returns:
            True if the branch had any state
        """
        with self._lock:
            branch = branch or self.current_branch()
            existed = self.store.clear_branch(branch)
            logger.info(f"Cleared todos for branch {branch}")
            self._commit()
            return existed

    # -------------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------------

    def current_branch(self) -> str:
        return self.source_control.current_branch()

    def list(self, branch: str | None = None) -> list[TodoInstance]:
        with self._lock:
            return self.store.list(branch or self.current_branch())

    def list_all(self) -> dict[str, list[TodoInstance]]:
        with self._lock:
            return self.store.list_all()

    def get(self, todo_id: str, branch: str | None = None) -> TodoInstance | None:
        with self._lock:
            return self.store.get(branch or self.current_branch(), todo_id)

    @property
    def templates(self) -> list[TodoTemplate]:
        return list(self._templates)

    def get_template(self, template_id: str) -> TodoTemplate | None:
        for template in self._templates:
            if template.template_id == template_id:
                return template
        return None

    def has_config(self) -> bool:
        return self.config_loader.has_config_file()

    # -------------------------------------------------------------------------
    # Notification
    # -------------------------------------------------------------------------

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """
        Register a no-argument callback fired after state changes.

        Returns:
            A function that unsubscribes the listener
        """
        self._listeners.append(listener)
        return lambda: self.unsubscribe(listener)

    def unsubscribe(self, listener: Listener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def _notify(self) -> None:
        if self._batch_depth:
            self._dirty = True
            return
        for listener in list(self._listeners):
            try:
                listener()
            except Exception:
                logger.exception("Todo change listener failed")

    # -------------------------------------------------------------------------
    # Persistence and errors
    # -------------------------------------------------------------------------

    @contextmanager
    def batch(self) -> Iterator[None]:
        """Defer saving and notification until the outermost batch exits."""
        with self._lock:
            self._batch_depth += 1
            try:
                yield
            finally:
                self._batch_depth -= 1
                if self._batch_depth == 0 and self._dirty:
                    self._dirty = False
                    self._persist()
                    self._notify()

    def _commit(self) -> None:
        """Persist and notify after a mutation (deferred inside a batch)."""
        if self._batch_depth:
            self._dirty = True
            return
        self._persist()
        self._notify()

    def _persist(self) -> bool:
        if self._batch_depth:
            self._dirty = True
            return True
        if self._pending_snapshot is not None:
            logger.debug("Not saving todo state while its restore is deferred")
            return False
        try:
            self.storage.save(snapshot_from_store(self.store))
        except PersistenceError as e:
            self._record_error(str(e))
            logger.error(f"Failed to save todo state: {e}")
            return False
        return True

    def save(self) -> bool:
        """Write the current state to storage now."""
        with self._lock:
            return self._persist()

    def _record_error(self, message: str) -> None:
        self._errors.append(message)

    @property
    def errors(self) -> list[str]:
        return list(self._errors)

    def get_errors(self) -> list[str]:
        """Errors recorded while loading config or persisting state."""
        return list(self._errors)

    def clear_errors(self) -> None:
        self._errors.clear()

    # -------------------------------------------------------------------------
    # Helpers
    # -------------------------------------------------------------------------

    def _absolute(self, file_path: str | Path) -> Path:
        path = Path(file_path)
        return path if path.is_absolute() else self.workspace_root / path

    def _is_config_file(self, file_path: str | Path) -> bool:
        path = self._absolute(file_path)
        return path.parent == self.workspace_root and path.name in CONFIG_FILENAMES

    def _skip_reason(self, path: Path, relative_path: str) -> str | None:
        """Why a file is never evaluated against templates (None if it is)."""
        if is_outside_workspace(relative_path):
            return "outside the workspace"
        if relative_path == STATE_DIR or relative_path.startswith(STATE_DIR + "/"):
            return "engine state"
        if isinstance(self.storage, JsonFileStateStorage):
            state_file = self.storage.state_file
            if path in (state_file, state_file.with_suffix(".tmp")):
                return "engine state"
        if is_binary_path(path):
            return "binary file"
        return None
