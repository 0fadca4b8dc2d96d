# Copyright 2025 Ilya Makarov
#
# Licensed under the Business Source License 1.1
# Change Date: 2028-11-05
# Change License: Apache License 2.0

"""
Tests for condition evaluation

Tests:
- Normalization and operator fallback
- Folder name selector
- File search / file count selectors and scopes
- Wildcard translation
"""

import pytest

from commandeur.core.conditions import (
    collect_matches,
    depth_hint,
    evaluate_condition,
    normalize_condition,
    wildcard_to_regex,
)
from commandeur.core.exceptions import ConditionError
from commandeur.core.models import (
    ConditionOperator,
    ConditionScope,
    ConditionSelector,
    ConditionTest,
)


@pytest.fixture
def project(tmp_path):
    """Folder with files at several depths"""
    base = tmp_path / "alice"
    (base / "src" / "pkg").mkdir(parents=True)
    (base / "readme.txt").write_text("top", encoding="utf-8")
    (base / "src" / "notes.txt").write_text("mid", encoding="utf-8")
    (base / "src" / "pkg" / "Main.java").write_text("class Main {}", encoding="utf-8")
    (base / "src" / "pkg" / "Util.java").write_text("class Util {}", encoding="utf-8")
    return base


# ============================================================================
# Normalization
# ============================================================================


def test_normalize_defaults_to_file_search():
    """Test an empty test becomes file-search / exists in the current folder"""
    normalized = normalize_condition(ConditionTest())
    assert normalized.selector == ConditionSelector.FILE_SEARCH
    assert normalized.operator == ConditionOperator.EXISTS
    assert normalized.scope == ConditionScope.CURRENT_FOLDER


def test_normalize_replaces_disallowed_operator():
    """Test an operator the selector does not allow falls back to its default"""
    normalized = normalize_condition(
        ConditionTest(
            selector=ConditionSelector.CURRENT_FOLDER_NAME,
            operator=ConditionOperator.GREATER_THAN,
            value="x",
        )
    )
    assert normalized.operator == ConditionOperator.EQUALS
    assert normalized.scope is None


def test_normalize_legacy_exists_field():
    """Test the legacy exists field is used as the search pattern"""
    normalized = normalize_condition(ConditionTest(exists=" build/out.txt "))
    assert normalized.pattern == "build/out.txt"


def test_normalize_file_count_default_threshold():
    """Test file-count thresholds default to zero"""
    normalized = normalize_condition(
        ConditionTest(selector=ConditionSelector.FILE_COUNT, value="  ")
    )
    assert normalized.value == "0"
    assert normalized.operator == ConditionOperator.EQUALS


# ============================================================================
# Folder name
# ============================================================================


def test_folder_name_equals(tmp_path):
    """Test equality on the folder name with its summary"""
    evaluation = evaluate_condition(
        tmp_path,
        "alice",
        ConditionTest(selector=ConditionSelector.CURRENT_FOLDER_NAME, value="alice"),
    )
    assert evaluation.result is True
    assert evaluation.summary == 'Folder name (alice) must equal "alice" => true'


def test_folder_name_contains_negated(tmp_path):
    """Test negation inverts the raw comparison"""
    evaluation = evaluate_condition(
        tmp_path,
        "group-a",
        ConditionTest(
            selector=ConditionSelector.CURRENT_FOLDER_NAME,
            operator=ConditionOperator.CONTAINS,
            value="-a",
            negate=True,
        ),
    )
    assert evaluation.result is False
    assert evaluation.summary.endswith("=> false (negated)")


def test_folder_name_regex(tmp_path):
    """Test regex matching anywhere in the name"""
    cond = ConditionTest(
        selector=ConditionSelector.CURRENT_FOLDER_NAME,
        operator=ConditionOperator.REGEX,
        value=r"\d{3}$",
    )
    assert evaluate_condition(tmp_path, "student-042", cond).result is True
    assert evaluate_condition(tmp_path, "student", cond).result is False


def test_folder_name_blank_regex_is_false(tmp_path):
    """Test a blank regex never matches"""
    cond = ConditionTest(
        selector=ConditionSelector.CURRENT_FOLDER_NAME,
        operator=ConditionOperator.REGEX,
        value="  ",
    )
    assert evaluate_condition(tmp_path, "anything", cond).result is False


def test_folder_name_invalid_regex(tmp_path):
    """Test a malformed regex raises ConditionError"""
    cond = ConditionTest(
        selector=ConditionSelector.CURRENT_FOLDER_NAME,
        operator=ConditionOperator.REGEX,
        value="(",
    )
    with pytest.raises(ConditionError):
        evaluate_condition(tmp_path, "alice", cond)


# ============================================================================
# File search / count
# ============================================================================


def test_file_search_literal_path(project):
    """Test a literal path is checked directly"""
    evaluation = evaluate_condition(
        project, "alice", ConditionTest(pattern="src/notes.txt")
    )
    assert evaluation.result is True
    assert evaluation.summary == (
        'File search "src/notes.txt" (scope: current folder) -> 1 match(es), result true'
    )


def test_file_search_not_exists(project):
    """Test not-exists on a missing file"""
    evaluation = evaluate_condition(
        project,
        "alice",
        ConditionTest(pattern="missing.txt", operator=ConditionOperator.NOT_EXISTS),
    )
    assert evaluation.result is True


def test_file_search_missing_pattern(project):
    """Test a search without any pattern is rejected"""
    with pytest.raises(ConditionError):
        evaluate_condition(project, "alice", ConditionTest(pattern="   "))


def test_file_search_rejects_escaping_path(project):
    """Test literal paths go through the path trust boundary"""
    with pytest.raises(ConditionError):
        evaluate_condition(project, "alice", ConditionTest(pattern="../bob/x.txt"))


def test_single_star_stays_in_current_folder(project):
    """Test *.txt only matches top-level files in current-folder scope"""
    matches = collect_matches(project, "*.txt", ConditionScope.CURRENT_FOLDER)
    assert [p.name for p in matches] == ["readme.txt"]


def test_double_star_matches_any_depth(project):
    """Test **/*.txt also matches zero intermediate directories"""
    matches = collect_matches(project, "**/*.txt", ConditionScope.RECURSIVE)
    assert sorted(p.name for p in matches) == ["notes.txt", "readme.txt"]


def test_file_count_greater_than(project):
    """Test counting java files recursively"""
    cond = ConditionTest(
        selector=ConditionSelector.FILE_COUNT,
        pattern="**/*.java",
        scope=ConditionScope.RECURSIVE,
        operator=ConditionOperator.GREATER_THAN,
        value="0",
    )
    evaluation = evaluate_condition(project, "alice", cond)
    assert evaluation.result is True
    assert evaluation.summary == (
        'File count "**/*.java" (scope: including sub-folders) -> 2, '
        "compared > 0, result true"
    )

    negated = cond.model_copy(update={"negate": True})
    assert evaluate_condition(project, "alice", negated).result is False


def test_file_count_ignores_directories(project):
    """Test only regular files are counted"""
    cond = ConditionTest(
        selector=ConditionSelector.FILE_COUNT,
        pattern="*",
        operator=ConditionOperator.EQUALS,
        value="1",
    )
    # top level holds readme.txt and the src directory
    assert evaluate_condition(project, "alice", cond).result is True


def test_file_count_invalid_threshold(project):
    """Test a non-numeric threshold raises ConditionError"""
    cond = ConditionTest(
        selector=ConditionSelector.FILE_COUNT, pattern="*", value="many"
    )
    with pytest.raises(ConditionError):
        evaluate_condition(project, "alice", cond)


# ============================================================================
# Wildcards
# ============================================================================


def test_wildcard_translation():
    """Test *, ** and ? translation"""
    assert wildcard_to_regex("*.txt").match("a.txt")
    assert not wildcard_to_regex("*.txt").match("dir/a.txt")
    assert wildcard_to_regex("**/*.txt").match("a.txt")
    assert wildcard_to_regex("**/*.txt").match("x/y/a.txt")
    assert wildcard_to_regex("src/**").match("src/a/b")
    assert wildcard_to_regex("file?.md").match("file1.md")
    assert not wildcard_to_regex("file?.md").match("file12.md")
    assert wildcard_to_regex("a+b.txt").match("a+b.txt")


def test_depth_hint():
    """Test depth is the number of pattern segments"""
    assert depth_hint("*.txt") == 1
    assert depth_hint("src/*.txt") == 2
    assert depth_hint("/") == 1
