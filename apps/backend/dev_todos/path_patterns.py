"""
Glob Path Patterns
==================

Glob matching for template path patterns.

Patterns follow the usual editor/minimatch conventions:
- * and ? match within a single path segment (never across "/")
- ** as a whole segment matches zero or more directories
- [abc], [a-z] and [!abc] character classes
- {a,b} brace alternatives (may be nested)
- Hidden files and directories are matched like any other name
- Matching is case-sensitive and always against POSIX-style paths

Usage:
    from dev_todos.path_patterns import glob_match

    glob_match("src/app/main.go", "src/**/*.go")    # True
    glob_match(".github/ci.yml", "**/*.yml")        # True
    glob_match("src/main.go", "*.go")               # False
"""

from __future__ import annotations

import os
import re
from pathlib import Path

# Compiled regex cache keyed by glob pattern
_compiled_globs: dict[str, re.Pattern[str]] = {}


# =============================================================================
# PATH NORMALIZATION
# =============================================================================

def normalize_path(path: str) -> str:
    """
    Normalize a path for glob matching.

    Converts backslashes to forward slashes, removes duplicate separators
    and a leading "./".

    Examples:
        >>> normalize_path("src\\\\app\\\\main.go")
        'src/app/main.go'
        >>> normalize_path("./build//output")
        'build/output'
    """
    normalized = path.replace("\\", "/")

    while "//" in normalized:
        normalized = normalized.replace("//", "/")

    while normalized.startswith("./"):
        normalized = normalized[2:]

    return normalized


def relative_to_workspace(file_path: str | Path, workspace_root: str | Path) -> str:
    """
    Workspace-relative POSIX path for a file.

    Relative inputs are taken as already relative to the workspace.
    """
    path = Path(file_path)
    if not path.is_absolute():
        return normalize_path(str(file_path))
    rel = os.path.relpath(path, Path(workspace_root))
    return normalize_path(rel)


def is_outside_workspace(relative_path: str) -> bool:
    """True for a relative path that climbs out of the workspace root."""
    return relative_path == ".." or relative_path.startswith("../")


# =============================================================================
# BRACE EXPANSION
# =============================================================================

def _split_top_level(body: str) -> list[str]:
    """Split brace contents on commas that are not nested in other braces."""
    parts = []
    depth = 0
    current = []
    i = 0
    while i < len(body):
        char = body[i]
        if char == "\\" and i + 1 < len(body):
            current.append(body[i:i + 2])
            i += 2
            continue
        if char == "{":
            depth += 1
        elif char == "}":
            depth -= 1
        elif char == "," and depth == 0:
            parts.append("".join(current))
            current = []
            i += 1
            continue
        current.append(char)
        i += 1
    parts.append("".join(current))
    return parts


def expand_braces(pattern: str) -> list[str]:
    """
    Expand {a,b} alternatives into separate patterns.

    Braces without a top-level comma are kept literally.

    Examples:
        >>> expand_braces("src/*.{ts,tsx}")
        ['src/*.ts', 'src/*.tsx']
        >>> expand_braces("{a,b{c,d}}")
        ['a', 'bc', 'bd']
    """
    depth = 0
    start = -1
    i = 0
    while i < len(pattern):
        char = pattern[i]
        if char == "\\":
            i += 2
            continue
        if char == "{":
            if depth == 0:
                start = i
            depth += 1
        elif char == "}" and depth > 0:
            depth -= 1
            if depth == 0:
                options = _split_top_level(pattern[start + 1:i])
                if len(options) > 1:
                    prefix, suffix = pattern[:start], pattern[i + 1:]
                    expanded = []
                    for option in options:
                        expanded.extend(expand_braces(prefix + option + suffix))
                    return list(dict.fromkeys(expanded))
        i += 1
    return [pattern]


# =============================================================================
# GLOB TO REGEX
# =============================================================================

def _translate_class(segment: str, start: int) -> tuple[str, int] | None:
    """
    Translate a [...] character class starting at segment[start].

    Returns:
        (regex, index after the class) or None if the class is unterminated
    """
    i = start + 1
    negate = False
    if i < len(segment) and segment[i] in "!^":
        negate = True
        i += 1
    # A "]" right after the opening bracket is a literal member
    body_start = i
    if i < len(segment) and segment[i] == "]":
        i += 1
    while i < len(segment) and segment[i] != "]":
        i += 1
    if i >= len(segment):
        return None

    body = segment[body_start:i].replace("\\", "\\\\").replace("[", "\\[")
    if negate:
        return f"(?!/)[^{body}]", i + 1
    return f"(?!/)[{body}]", i + 1


def _translate_segment(segment: str) -> str:
    """Translate one path segment (no "/") into a regex fragment."""
    parts = []
    i = 0
    while i < len(segment):
        char = segment[i]
        if char == "\\" and i + 1 < len(segment):
            parts.append(re.escape(segment[i + 1]))
            i += 2
        elif char == "*":
            while i < len(segment) and segment[i] == "*":
                i += 1
            parts.append("[^/]*")
        elif char == "?":
            parts.append("[^/]")
            i += 1
        elif char == "[":
            translated = _translate_class(segment, i)
            if translated is None:
                parts.append(re.escape(char))
                i += 1
            else:
                fragment, i = translated
                parts.append(fragment)
        else:
            parts.append(re.escape(char))
            i += 1
    return "".join(parts)


def pattern_to_regex(pattern: str) -> str:
    """
    Convert a single glob pattern (no braces) to a regex string.

    Examples:
        >>> pattern_to_regex("**/*.py")
        '(?:.*/)?[^/]*\\\\.py'
        >>> pattern_to_regex("build/*.js")
        'build/[^/]*\\\\.js'
    """
    segments = normalize_path(pattern).split("/") if pattern else [""]

    # Consecutive ** segments behave like a single one
    collapsed: list[str] = []
    for segment in segments:
        if segment == "**" and collapsed and collapsed[-1] == "**":
            continue
        collapsed.append(segment)

    count = len(collapsed)
    regex = []
    for index, segment in enumerate(collapsed):
        first = index == 0
        last = index == count - 1
        if segment == "**":
            if first and last:
                regex.append(".*")
            elif first:
                regex.append("(?:.*/)?")
            elif last:
                regex.append("(?:/.*)?")
            else:
                regex.append("/(?:.*/)?")
            continue
        if not first and collapsed[index - 1] != "**":
            regex.append("/")
        regex.append(_translate_segment(segment))

    return "".join(regex)


def compile_glob(pattern: str) -> re.Pattern[str]:
    """
    Compile a glob pattern (braces included) into a full-match regex.

    Results are cached per pattern string.
    """
    compiled = _compiled_globs.get(pattern)
    if compiled is None:
        alternatives = [pattern_to_regex(p) for p in expand_braces(pattern)]
        compiled = re.compile(
            "(?:" + "|".join(alternatives) + ")",
            re.DOTALL,
        )
        _compiled_globs[pattern] = compiled
    return compiled


def glob_match(path: str, pattern: str) -> bool:
    """
    Check whether a relative path matches a glob pattern.

    Args:
        path: Workspace-relative path (any separator style)
        pattern: Glob pattern

    Returns:
        True if the whole path matches the pattern
    """
    return compile_glob(pattern).fullmatch(normalize_path(path)) is not None


def validate_glob(pattern: str) -> str | None:
    """
    Check that a pattern compiles.

    Returns:
        None if the pattern is usable, otherwise an error message
    """
    if not pattern or pattern.isspace():
        return "pattern is empty"
    try:
        compile_glob(pattern)
    except re.error as e:
        return f"invalid glob '{pattern}': {e}"
    return None


def clear_glob_cache() -> None:
    """Drop all cached compiled patterns."""
    _compiled_globs.clear()
