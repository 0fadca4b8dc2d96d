# Copyright 2025 Ilya Makarov
#
# Licensed under the Business Source License 1.1
# Change Date: 2028-11-05
# Change License: Apache License 2.0

"""
Condition evaluation for ``if`` operations

Selectors:
- current-folder-name: equals / contains / regex on the folder's own name
- file-search: exists / not-exists for a path or wildcard pattern
- file-count: equals / greater-than / less-than on the number of matching files

Evaluation never touches the filesystem beyond reading it. Every result
comes with a human-readable summary that ends up in the run log.
"""

import logging
import os
import re
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional

from .exceptions import ConditionError, PathValidationError
from .models import ConditionOperator, ConditionScope, ConditionSelector, ConditionTest
from .workspace import resolve_in_folder

logger = logging.getLogger("commandeur.conditions")

DEFAULT_OPERATORS = {
    ConditionSelector.CURRENT_FOLDER_NAME: ConditionOperator.EQUALS,
    ConditionSelector.FILE_SEARCH: ConditionOperator.EXISTS,
    ConditionSelector.FILE_COUNT: ConditionOperator.EQUALS,
}

ALLOWED_OPERATORS = {
    ConditionSelector.CURRENT_FOLDER_NAME: {
        ConditionOperator.EQUALS,
        ConditionOperator.CONTAINS,
        ConditionOperator.REGEX,
    },
    ConditionSelector.FILE_SEARCH: {
        ConditionOperator.EXISTS,
        ConditionOperator.NOT_EXISTS,
    },
    ConditionSelector.FILE_COUNT: {
        ConditionOperator.EQUALS,
        ConditionOperator.GREATER_THAN,
        ConditionOperator.LESS_THAN,
    },
}

_FOLDER_PHRASES = {
    ConditionOperator.EQUALS: "must equal",
    ConditionOperator.CONTAINS: "must contain",
    ConditionOperator.REGEX: "must match regex",
}

_COUNT_SYMBOLS = {
    ConditionOperator.EQUALS: "=",
    ConditionOperator.GREATER_THAN: ">",
    ConditionOperator.LESS_THAN: "<",
}

_SCOPE_LABELS = {
    ConditionScope.CURRENT_FOLDER: "current folder",
    ConditionScope.RECURSIVE: "including sub-folders",
}


@dataclass
class NormalizedCondition:
    selector: ConditionSelector
    operator: ConditionOperator
    scope: Optional[ConditionScope]
    pattern: Optional[str]
    value: Optional[str]
    negate: bool


@dataclass
class ConditionEvaluation:
    result: bool
    summary: str


def _clean(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    value = value.strip()
    return value or None


def normalize_condition(test: ConditionTest) -> NormalizedCondition:
    """Fill defaults and silently replace operators the selector does not allow."""
    selector = test.selector or ConditionSelector.FILE_SEARCH

    operator = test.operator
    if operator is None or operator not in ALLOWED_OPERATORS[selector]:
        operator = DEFAULT_OPERATORS[selector]

    pattern = _clean(test.pattern)
    if selector != ConditionSelector.CURRENT_FOLDER_NAME and pattern is None:
        pattern = _clean(test.exists)

    if selector == ConditionSelector.CURRENT_FOLDER_NAME:
        value: Optional[str] = test.value or ""
    elif selector == ConditionSelector.FILE_COUNT:
        value = _clean(test.value) or "0"
    else:
        value = _clean(test.value)

    scope = None
    if selector != ConditionSelector.CURRENT_FOLDER_NAME:
        scope = test.scope or ConditionScope.CURRENT_FOLDER

    return NormalizedCondition(
        selector=selector,
        operator=operator,
        scope=scope,
        pattern=pattern,
        value=value,
        negate=test.negate,
    )


def evaluate_condition(
    base_path: Path, folder_name: str, test: ConditionTest
) -> ConditionEvaluation:
    """
    Evaluate ``test`` for one folder.

    Raises:
        ConditionError: malformed regex, missing search pattern, non-numeric
            count threshold or an invalid path pattern
    """
    normalized = normalize_condition(test)
    if normalized.selector == ConditionSelector.CURRENT_FOLDER_NAME:
        return _evaluate_folder_name(folder_name, normalized)
    if normalized.selector == ConditionSelector.FILE_SEARCH:
        return _evaluate_file_search(Path(base_path), normalized)
    return _evaluate_file_count(Path(base_path), normalized)


# ============================================================================
# Selectors
# ============================================================================


def _negate_suffix(negate: bool) -> str:
    return " (negated)" if negate else ""


def _truth(value: bool) -> str:
    return "true" if value else "false"


def _evaluate_folder_name(folder: str, cond: NormalizedCondition) -> ConditionEvaluation:
    value = cond.value or ""

    if cond.operator == ConditionOperator.EQUALS:
        raw = folder == value
    elif cond.operator == ConditionOperator.CONTAINS:
        raw = value in folder
    elif cond.operator == ConditionOperator.REGEX:
        if not value.strip():
            raw = False
        else:
            try:
                raw = re.search(value, folder) is not None
            except re.error as e:
                raise ConditionError(f"Invalid regex {value!r}: {e}", cause=e)
    else:
        raw = False

    result = raw != cond.negate
    summary = (
        f'Folder name ({folder}) {_FOLDER_PHRASES.get(cond.operator, "unsupported operator")} '
        f'"{value}" => {_truth(result)}{_negate_suffix(cond.negate)}'
    )
    return ConditionEvaluation(result=result, summary=summary)


def _evaluate_file_search(base_path: Path, cond: NormalizedCondition) -> ConditionEvaluation:
    if cond.pattern is None:
        raise ConditionError("Missing search pattern")
    scope = cond.scope or ConditionScope.CURRENT_FOLDER
    matches = collect_matches(base_path, cond.pattern, scope)

    if cond.operator == ConditionOperator.EXISTS:
        raw = bool(matches)
    elif cond.operator == ConditionOperator.NOT_EXISTS:
        raw = not matches
    else:
        raw = False

    result = raw != cond.negate
    summary = (
        f'File search "{cond.pattern}" (scope: {_SCOPE_LABELS[scope]}) -> '
        f"{len(matches)} match(es), result {_truth(result)}{_negate_suffix(cond.negate)}"
    )
    return ConditionEvaluation(result=result, summary=summary)


def _evaluate_file_count(base_path: Path, cond: NormalizedCondition) -> ConditionEvaluation:
    pattern = cond.pattern or "*"
    scope = cond.scope or ConditionScope.CURRENT_FOLDER
    matches = collect_matches(base_path, pattern, scope)
    file_count = sum(1 for path in matches if path.is_file())

    threshold_str = cond.value or "0"
    try:
        threshold = int(threshold_str)
    except ValueError:
        raise ConditionError(f"Invalid comparison value: {threshold_str}")

    if cond.operator == ConditionOperator.EQUALS:
        raw = file_count == threshold
    elif cond.operator == ConditionOperator.GREATER_THAN:
        raw = file_count > threshold
    elif cond.operator == ConditionOperator.LESS_THAN:
        raw = file_count < threshold
    else:
        raw = False

    result = raw != cond.negate
    summary = (
        f'File count "{pattern}" (scope: {_SCOPE_LABELS[scope]}) -> {file_count}, '
        f"compared {_COUNT_SYMBOLS.get(cond.operator, '?')} {threshold}, "
        f"result {_truth(result)}{_negate_suffix(cond.negate)}"
    )
    return ConditionEvaluation(result=result, summary=summary)


# ============================================================================
# Matching
# ============================================================================


def wildcard_to_regex(pattern: str) -> "re.Pattern[str]":
    """
    Translate a forward-slash wildcard pattern into an anchored regex.

    ``*`` stays within a segment, ``**`` crosses segments (``**/`` may also
    match no directory at all), ``?`` is a single non-separator character.
    """
    out = ["^"]
    i = 0
    n = len(pattern)
    while i < n:
        ch = pattern[i]
        if ch == "*":
            j = i
            while j < n and pattern[j] == "*":
                j += 1
            if j - i >= 2:
                if j < n and pattern[j] == "/":
                    out.append("(?:.*/)?")
                    j += 1
                else:
                    out.append(".*")
            else:
                out.append("[^/]*")
            i = j
            continue
        if ch == "?":
            out.append("[^/]")
        elif ch == "/":
            out.append("/")
        else:
            out.append(re.escape(ch))
        i += 1
    out.append("$")
    return re.compile("".join(out))


def depth_hint(pattern: str) -> int:
    segments = [s for s in pattern.strip("/").split("/") if s]
    return max(len(segments), 1)


def _raise_walk_error(error: OSError):
    raise error


def collect_matches(base_path: Path, pattern: str, scope: ConditionScope) -> List[Path]:
    """Paths under ``base_path`` matching ``pattern``; symlinked dirs are not followed."""
    normalized = pattern.replace("\\", "/")

    if "*" not in normalized and "?" not in normalized:
        try:
            target = resolve_in_folder(base_path, normalized)
        except PathValidationError as e:
            raise ConditionError(f"Invalid condition path: {e}", cause=e)
        return [target] if target.exists() else []

    regex = wildcard_to_regex(normalized)
    max_depth = depth_hint(normalized) if scope == ConditionScope.CURRENT_FOLDER else None
    matches: List[Path] = []

    try:
        for dirpath, dirnames, filenames in os.walk(
            base_path, followlinks=False, onerror=_raise_walk_error
        ):
            dirnames.sort()
            rel_dir = Path(dirpath).relative_to(base_path)
            depth = len(rel_dir.parts) + 1
            if max_depth is not None and depth > max_depth:
                dirnames[:] = []
                continue
            for name in list(dirnames) + sorted(filenames):
                rel = (rel_dir / name).as_posix()
                if regex.match(rel):
                    matches.append(Path(dirpath) / name)
            if max_depth is not None and depth >= max_depth:
                dirnames[:] = []
    except OSError as e:
        raise ConditionError(f"Cannot scan {base_path}: {e}", cause=e)

    return matches
