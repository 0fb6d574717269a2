"""
Template Matcher
================

Decides whether a template applies to a file.

Checks run in a fixed order and stop at the first failure:
1. Branch templates without a path pattern never match a single file
2. The relative path must match the template's glob pattern
3. contentMustInclude must appear in the content (literal substring)
4. contentMustExclude must not appear in the content (literal substring)

Path checks are cheap; content may be passed as a zero-argument callable
so that it is only read once a path matched and a content check needs it.

Usage:
    from dev_todos.matcher import TemplateMatcher

    matcher = TemplateMatcher()
    if matcher.path_might_match("src/Foo.cls", templates):
        content = Path("src/Foo.cls").read_text()
        matching = matcher.get_matching_templates("src/Foo.cls", content, templates)
"""

from __future__ import annotations

import logging
from typing import Callable, Iterable, Union

from .models import TodoTemplate
from .path_patterns import glob_match

# =============================================================================
# LOGGER
# =============================================================================

logger = logging.getLogger(__name__)

ContentSource = Union[str, Callable[[], str], None]


class _LazyContent:
    """Resolves a content source at most once."""

    def __init__(self, source: ContentSource):
        self._source = source
        self._resolved = not callable(source)
        self._value = source if self._resolved else None

    def get(self) -> str:
        if not self._resolved:
            self._value = self._source()
            self._resolved = True
        return self._value or ""


# =============================================================================
# TEMPLATE MATCHER
# =============================================================================

class TemplateMatcher:
    """
    Pure predicate evaluator for todo templates.

    The matcher holds no state; templates are passed in on every call.

    Example:
        >>> matcher = TemplateMatcher()
        >>> template = FileTemplate(
        ...     template_id="t1", name="Perm", description="Add permission",
        ...     pattern="**/*.cls", content_must_include="@AuraEnabled",
        ... )
        >>> matcher.matches(template, "cls/Foo.cls", "@AuraEnabled")
        True
        >>> matcher.matches(template, "cls/Foo.cls", "public class Foo")
        False
    """

    def path_matches(self, template: TodoTemplate, relative_path: str) -> bool:
        """Check only the path predicate of a template."""
        pattern = template.path_pattern
        if not pattern:
            return False
        return glob_match(relative_path, pattern)

    def matches(
        self,
        template: TodoTemplate,
        relative_path: str,
        content: ContentSource = None,
    ) -> bool:
        """
        Check whether a template applies to a file.

        Args:
            template: Template to evaluate
            relative_path: Workspace-relative POSIX path
            content: File text, or a callable returning it

        Returns:
            True if every predicate of the template holds
        """
        lazy = content if isinstance(content, _LazyContent) else _LazyContent(content)
        return self._matches(template, relative_path, lazy)

    def _matches(
        self,
        template: TodoTemplate,
        relative_path: str,
        content: _LazyContent,
    ) -> bool:
        if not template.path_pattern:
            return False

        if not glob_match(relative_path, template.path_pattern):
            return False

        if template.content_must_include:
            if template.content_must_include not in content.get():
                logger.debug(
                    f"{relative_path}: missing required content for '{template.template_id}'"
                )
                return False

        if template.content_must_exclude:
            if template.content_must_exclude in content.get():
                logger.debug(
                    f"{relative_path}: excluded content present for '{template.template_id}'"
                )
                return False

        return True

    def get_matching_templates(
        self,
        relative_path: str,
        content: ContentSource,
        templates: Iterable[TodoTemplate],
    ) -> list[TodoTemplate]:
        """
        Get every template that applies to a file, in input order.

        A callable content source is invoked at most once.
        """
        lazy = _LazyContent(content)
        return [
            template
            for template in templates
            if self._matches(template, relative_path, lazy)
        ]

    def path_might_match(
        self,
        relative_path: str,
        templates: Iterable[TodoTemplate],
    ) -> bool:
        """
        Quick path-only check, ignoring content predicates.

        Considers file templates and branch templates that carry a pattern.
        Callers use this to skip reading file content entirely.
        """
        return any(self.path_matches(t, relative_path) for t in templates)
