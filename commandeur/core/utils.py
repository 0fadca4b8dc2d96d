# Copyright 2025 Ilya Makarov
#
# Licensed under the Business Source License 1.1
# Change Date: 2028-11-05
# Change License: Apache License 2.0

"""Small helpers shared by the dispatcher and pre-flight validation."""

import re
from pathlib import Path
from typing import Callable, Optional, Tuple

from .models import RenameMode

_REGEX_FLAGS = {
    "i": re.IGNORECASE,
    "m": re.MULTILINE,
    "s": re.DOTALL,
    "x": re.VERBOSE,
    "u": 0,  # str patterns are unicode already
}

# C0/C1 control characters except tab and newline
_CONTROL_CHARS = re.compile(r"[\x00-\x08\x0b-\x1f\x7f-\x9f]")


def build_regex(pattern: str, flags: Optional[str] = None) -> "re.Pattern[str]":
    """
    Compile ``pattern`` with single-letter flags (``i m s x u``).

    Unknown flag letters are ignored. Raises ``re.error`` on a malformed
    pattern.
    """
    value = 0
    for ch in (flags or "").lower():
        value |= _REGEX_FLAGS.get(ch, 0)
    return re.compile(pattern, value)


_GROUP_REF = re.compile(r"\$(?:\$|\{([A-Za-z0-9_]+)\}|([A-Za-z0-9_]+))")


def expand_replacement(template: str) -> Callable[["re.Match[str]"], str]:
    """
    Build a ``re.sub`` callback for a ``$``-style replacement template.

    ``$1``, ``${1}``, ``$name`` and ``${name}`` insert a group (empty when
    the group is unknown or did not participate), ``$$`` is a literal
    dollar. Everything else, backslashes included, is copied verbatim.
    """

    def _replace(match: "re.Match[str]") -> str:
        def _group(ref: "re.Match[str]") -> str:
            name = ref.group(1) or ref.group(2)
            if name is None:
                return "$"
            key = int(name) if name.isdigit() else name
            try:
                return match.group(key) or ""
            except IndexError:
                return ""

        return _GROUP_REF.sub(_group, template)

    return _replace


def split_name_ext(name: str) -> Optional[Tuple[str, str]]:
    """Split ``report.v1.txt`` into ``("report.v1", ".txt")``; dotfiles have no extension."""
    idx = name.rfind(".")
    if idx <= 0:
        return None
    return name[:idx], name[idx:]


def compute_rename_destination(
    source_path: Path,
    mode: RenameMode,
    value: str,
    search: Optional[str] = None,
    replace: Optional[str] = None,
) -> Path:
    """
    Compute the sibling path a Rename operation moves ``source_path`` to.

    Raises:
        ValueError: empty value (except in replace mode), empty extension,
            empty search string, or an empty resulting name
    """
    mode = RenameMode(mode)
    file_name = source_path.name
    if not file_name:
        raise ValueError(f"Invalid file name: {source_path}")

    trimmed = (value or "").strip()
    if not trimmed and mode != RenameMode.REPLACE:
        raise ValueError("Rename value is empty")

    parts = split_name_ext(file_name)

    if mode == RenameMode.SUFFIX:
        if parts:
            new_name = f"{parts[0]}{trimmed}{parts[1]}"
        else:
            new_name = f"{file_name}{trimmed}"
    elif mode == RenameMode.PREFIX:
        new_name = f"{trimmed}{file_name}"
    elif mode == RenameMode.CHANGE_EXTENSION:
        new_ext = trimmed.lstrip(".").strip()
        if not new_ext:
            raise ValueError("Target extension is empty")
        stem = parts[0] if parts else file_name
        new_name = f"{stem}.{new_ext}"
    else:
        if not search:
            raise ValueError("Search string for replace is empty")
        replacement = replace if replace is not None else trimmed
        new_name = file_name.replace(search, replacement)

    if not new_name.strip():
        raise ValueError("New file name is empty")

    return source_path.parent / new_name


def sanitize_output(text: str) -> str:
    """
    Make process output safe for the text log.

    CRLF/CR become LF, replacement characters and control characters
    (other than tab and newline) are dropped.
    """
    if not text:
        return ""
    text = text.replace("\r\n", "\n").replace("\r", "\n")
    text = text.replace("\ufffd", "")
    return _CONTROL_CHARS.sub("", text)


def decode_output(data: Optional[bytes]) -> str:
    if not data:
        return ""
    return sanitize_output(data.decode("utf-8", errors="replace"))
