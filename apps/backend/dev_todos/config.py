"""
Todo Template Configuration Loader
==================================

Loads and validates todo templates from the workspace root.

Configuration files searched in order:
1. .todo.json
2. .todo.yaml
3. .todo.yml

Example .todo.json:
    {
      "templates": [
        {
          "id": "apex-permission",
          "name": "Add Permission for the controller",
          "description": "User needs permission to use the apex controller",
          "pathPattern": "force-app/main/default/classes/**/*.cls",
          "contentMustInclude": "@AuraEnabled",
          "priority": "high"
        },
        {
          "id": "release-notes",
          "name": "Write release notes",
          "description": "Every branch needs a release-notes entry",
          "branchLevel": true
        }
      ]
    }

The older key names applyTo, fileContains and excludeFileContains are
accepted as aliases. Unknown keys are ignored.

Loading is all-or-nothing: either every template is valid and the full list
is returned, or a ConfigError listing every problem is raised.

Usage:
    from dev_todos.config import TemplateConfigLoader, load_templates

    templates = load_templates(Path("/path/to/workspace"))

    loader = TemplateConfigLoader(Path("/path/to/workspace"))
    if loader.find_config_file():
        templates = loader.load()
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any

import yaml

from .errors import ConfigError
from .models import BranchTemplate, FileTemplate, Priority, TodoTemplate
from .path_patterns import validate_glob

# =============================================================================
# LOGGER
# =============================================================================

logger = logging.getLogger(__name__)


# =============================================================================
# CONFIG FILE NAMES
# =============================================================================

CONFIG_FILENAMES = [
    ".todo.json",
    ".todo.yaml",
    ".todo.yml",
]

# Config key -> accepted aliases
KEY_ALIASES = {
    "pathPattern": ("pathPattern", "applyTo"),
    "contentMustInclude": ("contentMustInclude", "fileContains"),
    "contentMustExclude": ("contentMustExclude", "excludeFileContains"),
    "branchLevel": ("branchLevel",),
    "aiInstruction": ("aiInstruction",),
    "priority": ("priority",),
}

REQUIRED_FIELDS = ["id", "name", "description"]

VALID_PRIORITIES = {p.value for p in Priority}


EXAMPLE_CONFIG = {
    "templates": [
        {
            "id": "apex-permission",
            "name": "Add Permission for the controller",
            "description": "User needs permission to use the apex controller",
            "pathPattern": "force-app/main/default/classes/**/*.cls",
            "contentMustInclude": "@AuraEnabled",
            "priority": "high",
            "aiInstruction": (
                "Create or update a permission set to grant access to this Apex "
                "class. Add the class to the \"Apex Class Access\" section of the "
                "permission set."
            ),
        },
        {
            "id": "apex-test-class",
            "name": "Create test class",
            "description": "Add test coverage for the new Apex class",
            "pathPattern": "force-app/main/default/classes/**/*.cls",
            "contentMustInclude": "public class",
            "contentMustExclude": "@isTest",
            "priority": "high",
            "aiInstruction": (
                "Create a test class with the @isTest annotation covering every "
                "public method."
            ),
        },
        {
            "id": "lwc-add-to-page",
            "name": "Add LWC on a page",
            "description": "The LWC needs to be added to a flexipage to show up for the user",
            "pathPattern": "force-app/main/default/lwc/**",
            "priority": "medium",
        },
        {
            "id": "release-notes",
            "name": "Update release notes",
            "description": "Describe the changes of this branch in the release notes",
            "branchLevel": True,
            "priority": "low",
        },
    ],
}


def _get_field(entry: dict, key: str) -> Any:
    """Read a template field, honoring its aliases."""
    for alias in KEY_ALIASES.get(key, (key,)):
        if alias in entry:
            return entry[alias]
    return None


# =============================================================================
# VALIDATION AND PARSING
# =============================================================================

def _validate_template(entry: Any, index: int) -> list[str]:
    """
    Validate a single template entry.

    Args:
        entry: Raw template data
        index: Index in the templates list (for error messages)

    Returns:
        List of validation error messages
    """
    prefix = f"'templates[{index}]'"

    if not isinstance(entry, dict):
        return [f"{prefix}: must be an object"]

    errors = []

    for field in REQUIRED_FIELDS:
        value = entry.get(field)
        if value is None:
            errors.append(f"{prefix}: Missing required field '{field}'")
        elif not isinstance(value, str):
            errors.append(f"{prefix}: Field '{field}' must be a string")
        elif not value.strip():
            errors.append(f"{prefix}: Field '{field}' must not be empty")

    branch_level = _get_field(entry, "branchLevel")
    if branch_level is not None and not isinstance(branch_level, bool):
        errors.append(f"{prefix}: 'branchLevel' must be a boolean")
        branch_level = None

    priority = _get_field(entry, "priority")
    if priority is not None and (
        not isinstance(priority, str) or priority not in VALID_PRIORITIES
    ):
        errors.append(
            f"{prefix}: 'priority' must be one of: {', '.join(sorted(VALID_PRIORITIES))}"
        )

    for key in ("pathPattern", "contentMustInclude", "contentMustExclude", "aiInstruction"):
        value = _get_field(entry, key)
        if value is not None and not isinstance(value, str):
            errors.append(f"{prefix}: '{key}' must be a string")

    pattern = _get_field(entry, "pathPattern")
    if isinstance(pattern, str):
        pattern_error = validate_glob(pattern)
        if pattern_error:
            errors.append(f"{prefix}: 'pathPattern' {pattern_error}")
    elif pattern is None and branch_level is not True:
        errors.append(
            f"{prefix}: 'pathPattern' is required unless 'branchLevel' is true"
        )

    return errors


def _build_template(entry: dict) -> TodoTemplate:
    """Create the template variant for a validated entry."""
    common = dict(
        template_id=entry["id"],
        name=entry["name"],
        description=entry["description"],
        priority=Priority(_get_field(entry, "priority") or Priority.MEDIUM.value),
        content_must_include=_get_field(entry, "contentMustInclude") or None,
        content_must_exclude=_get_field(entry, "contentMustExclude") or None,
        ai_instruction=_get_field(entry, "aiInstruction") or None,
    )

    pattern = _get_field(entry, "pathPattern")
    if _get_field(entry, "branchLevel") is True:
        if not pattern and (common["content_must_include"] or common["content_must_exclude"]):
            logger.warning(
                f"Template '{entry['id']}' has content conditions but no pathPattern; "
                "they are ignored for branch-level todos"
            )
        return BranchTemplate(pattern=pattern or None, **common)

    return FileTemplate(pattern=pattern, **common)


def parse_templates(data: Any, source: str | Path = "<memory>") -> list[TodoTemplate]:
    """
    Validate raw configuration data and build templates.

    Args:
        data: Parsed configuration document
        source: Where the data came from (for error messages)

    Returns:
        All templates, in definition order

    Raises:
        ConfigError: If anything is invalid; no partial result is returned
    """
    if not isinstance(data, dict):
        raise ConfigError(f"Invalid configuration in {source}: expected an object", source=source)

    raw_templates = data.get("templates")
    if not isinstance(raw_templates, list):
        raise ConfigError(
            f"Invalid configuration in {source}: templates array is required",
            source=source,
        )

    errors = []
    seen_ids: dict[str, int] = {}
    for index, entry in enumerate(raw_templates):
        errors.extend(_validate_template(entry, index))
        if isinstance(entry, dict) and isinstance(entry.get("id"), str):
            template_id = entry["id"]
            if template_id in seen_ids:
                errors.append(
                    f"'templates[{index}]': Duplicate id '{template_id}' "
                    f"(first defined at templates[{seen_ids[template_id]}])"
                )
            else:
                seen_ids[template_id] = index

    if errors:
        raise ConfigError(
            f"Config validation errors in {source}:",
            errors=errors,
            source=source,
        )

    return [_build_template(entry) for entry in raw_templates]


# =============================================================================
# CONFIG LOADER
# =============================================================================

class TemplateConfigLoader:
    """
    Finds, reads and validates the todo template configuration.

    The loader is stateless with respect to templates: every load() call
    returns a complete new list or raises.

    Attributes:
        workspace_root: Root directory of the workspace
        config_file: Path of the config file used by the last load (if any)
    """

    def __init__(self, workspace_root: Path):
        """
        Initialize config loader.

        Args:
            workspace_root: Root directory of the workspace
        """
        self.workspace_root = Path(workspace_root).resolve()
        self.config_file: Path | None = None

    def find_config_file(self) -> Path | None:
        """Find the first existing config file."""
        for filename in CONFIG_FILENAMES:
            config_path = self.workspace_root / filename
            if config_path.is_file():
                return config_path
        return None

    def has_config_file(self) -> bool:
        """Check if a config file exists."""
        return self.find_config_file() is not None

    def load(self) -> list[TodoTemplate]:
        """
        Load templates from the workspace config file.

        Returns:
            Parsed templates

        Raises:
            ConfigError: If no config file exists or it is invalid
        """
        self.config_file = self.find_config_file()
        if self.config_file is None:
            raise ConfigError(
                f"No todo configuration found in {self.workspace_root} "
                f"(looked for {', '.join(CONFIG_FILENAMES)})",
                source=self.workspace_root,
            )

        data = self._read_config_file(self.config_file)
        templates = parse_templates(data, source=self.config_file.name)
        logger.info(f"Loaded {len(templates)} todo templates from {self.config_file.name}")
        return templates

    def _read_config_file(self, config_path: Path) -> Any:
        """
        Read and parse config file based on extension.

        Raises:
            ConfigError: If the file cannot be read or parsed
        """
        suffix = config_path.suffix.lower()

        try:
            with open(config_path, "r", encoding="utf-8") as f:
                if suffix == ".json":
                    return json.load(f)
                return yaml.safe_load(f) or {}
        except (json.JSONDecodeError, yaml.YAMLError) as e:
            raise ConfigError(
                f"Invalid {suffix.lstrip('.').upper()} in {config_path.name}: {e}",
                source=config_path,
            ) from e
        except (OSError, UnicodeDecodeError) as e:
            raise ConfigError(
                f"Failed to read {config_path.name}: {e}",
                source=config_path,
            ) from e


# =============================================================================
# CONVENIENCE FUNCTIONS
# =============================================================================

def load_templates(workspace_root: Path) -> list[TodoTemplate]:
    """
    Load templates for a workspace.

    Raises:
        ConfigError: If the configuration is missing or invalid
    """
    return TemplateConfigLoader(workspace_root).load()


def write_example_config(workspace_root: Path, overwrite: bool = False) -> Path:
    """
    Write an example .todo.json to the workspace root.

    Args:
        workspace_root: Root directory of the workspace
        overwrite: Replace an existing file

    Returns:
        Path of the written file

    Raises:
        ConfigError: If a config file already exists and overwrite is False
    """
    config_path = Path(workspace_root) / CONFIG_FILENAMES[0]
    if config_path.exists() and not overwrite:
        raise ConfigError(f"{config_path.name} already exists", source=config_path)

    with open(config_path, "w", encoding="utf-8") as f:
        json.dump(EXAMPLE_CONFIG, f, indent=2)
        f.write("\n")

    logger.info(f"Wrote example configuration to {config_path}")
    return config_path
