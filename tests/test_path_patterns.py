"""
Tests for Glob Path Patterns
============================

Tests glob matching used by template path patterns.
"""

from pathlib import Path

import pytest

# Add backend to path
import sys
backend_dir = Path(__file__).parent.parent / "apps" / "backend"
sys.path.insert(0, str(backend_dir))

from dev_todos.path_patterns import (
    expand_braces,
    glob_match,
    is_outside_workspace,
    normalize_path,
    pattern_to_regex,
    relative_to_workspace,
    validate_glob,
)


# =============================================================================
# NORMALIZATION
# =============================================================================

def test_normalize_path_backslashes():
    assert normalize_path("src\\app\\main.go") == "src/app/main.go"


def test_normalize_path_duplicate_and_leading_dot():
    assert normalize_path("./build//output") == "build/output"


def test_relative_to_workspace(tmp_path: Path):
    file_path = tmp_path / "src" / "a.go"
    assert relative_to_workspace(file_path, tmp_path) == "src/a.go"
    assert relative_to_workspace("src/a.go", tmp_path) == "src/a.go"


def test_is_outside_workspace(tmp_path: Path):
    outside = relative_to_workspace(tmp_path.parent / "other.go", tmp_path)

    assert is_outside_workspace(outside)
    assert is_outside_workspace("..")
    assert not is_outside_workspace("src/a.go")
    assert not is_outside_workspace("..hidden/a.go")


# =============================================================================
# GLOB MATCHING
# =============================================================================

class TestGlobMatch:
    """Tests for glob_match()."""

    @pytest.mark.parametrize(
        "path",
        ["Foo.cls", "cls/Foo.cls", "force-app/main/default/classes/deep/Foo.cls"],
    )
    def test_globstar_prefix_matches_any_depth(self, path):
        assert glob_match(path, "**/*.cls")

    def test_single_star_does_not_cross_directories(self):
        assert glob_match("main.go", "*.go")
        assert not glob_match("src/main.go", "*.go")

    def test_globstar_in_middle(self):
        assert glob_match("src/a.go", "src/**/*.go")
        assert glob_match("src/x/y/b.go", "src/**/*.go")
        assert not glob_match("lib/a.go", "src/**/*.go")

    def test_trailing_globstar(self):
        assert glob_match("force-app/lwc/cmp/cmp.js", "force-app/lwc/**")
        assert not glob_match("force-app/aura/cmp.js", "force-app/lwc/**")

    def test_dotfiles_are_matched(self):
        assert glob_match(".github/workflows/ci.yml", "**/*.yml")
        assert glob_match("src/.env", "src/*")

    def test_case_sensitive(self):
        assert not glob_match("Foo.CLS", "**/*.cls")

    def test_question_mark(self):
        assert glob_match("a1.txt", "a?.txt")
        assert not glob_match("a/.txt", "a?.txt")

    def test_character_classes(self):
        assert glob_match("v1.txt", "v[0-9].txt")
        assert not glob_match("vx.txt", "v[0-9].txt")
        assert glob_match("vx.txt", "v[!0-9].txt")

    def test_braces(self):
        assert glob_match("src/app.ts", "src/*.{ts,tsx}")
        assert glob_match("src/app.tsx", "src/*.{ts,tsx}")
        assert not glob_match("src/app.js", "src/*.{ts,tsx}")

    def test_literal_characters_are_escaped(self):
        assert glob_match("a+b.txt", "a+b.txt")
        assert not glob_match("aab.txt", "a+b.txt")

    def test_windows_style_path_is_normalized(self):
        assert glob_match("src\\a.go", "src/*.go")


def test_expand_braces_nested():
    assert expand_braces("{a,b{c,d}}") == ["a", "bc", "bd"]


def test_expand_braces_without_comma_is_literal():
    assert expand_braces("{a}") == ["{a}"]


def test_pattern_to_regex_examples():
    assert pattern_to_regex("build/*.js") == r"build/[^/]*\.js"
    assert pattern_to_regex("**/*.py") == r"(?:.*/)?[^/]*\.py"


def test_validate_glob():
    assert validate_glob("src/**") is None
    assert validate_glob("") is not None
