# Copyright 2025 Ilya Makarov
#
# Licensed under the Business Source License 1.1
# Change Date: 2028-11-05
# Change License: Apache License 2.0

"""
Shell command construction

- default: spawn ``command`` directly with ``args``
- bash / zsh: ``<shell> -lc "<command> <quoted args>"``
- powershell: ``pwsh`` (``powershell`` on Windows) ``-NoProfile -Command``
"""

import logging
import os
import shutil
import sys
from pathlib import Path
from typing import Dict, List, Sequence

from .models import ShellKind

logger = logging.getLogger("commandeur.shells")

_SAFE_CHARS = frozenset("-_./")


def _is_plain(arg: str) -> bool:
    return bool(arg) and all(c.isascii() and (c.isalnum() or c in _SAFE_CHARS) for c in arg)


def quote_posix(arg: str) -> str:
    if _is_plain(arg):
        return arg
    return "'" + arg.replace("'", "'\\''") + "'"


def quote_powershell(arg: str) -> str:
    if _is_plain(arg):
        return arg
    return "'" + arg.replace("'", "''") + "'"


def join_posix(command: str, args: Sequence[str]) -> str:
    if not args:
        return command
    return f"{command} " + " ".join(quote_posix(a) for a in args)


def join_powershell(command: str, args: Sequence[str]) -> str:
    return " ".join([command] + [quote_powershell(a) for a in args])


def powershell_executable() -> str:
    return "powershell" if sys.platform == "win32" else "pwsh"


def build_command(shell: ShellKind, command: str, args: Sequence[str]) -> List[str]:
    """Return the argv that runs ``command`` under the requested shell."""
    shell = ShellKind(shell)
    if shell == ShellKind.DEFAULT:
        return [command] + list(args)
    if shell == ShellKind.POWERSHELL:
        return [
            powershell_executable(),
            "-NoProfile",
            "-Command",
            join_powershell(command, args),
        ]
    return [shell.value, "-lc", join_posix(command, args)]


def list_available_shells() -> List[Dict[str, str]]:
    """
    Shells installed on this machine, as ``{"name", "path"}`` dicts.

    POSIX reads /etc/shells (falling back to /bin/sh and /bin/bash);
    Windows offers cmd (ComSpec), Windows PowerShell and pwsh when found.
    """
    shells: List[Dict[str, str]] = []
    seen = set()

    def add(path: str):
        if path and path not in seen:
            seen.add(path)
            shells.append({"name": Path(path).stem, "path": path})

    if sys.platform == "win32":
        add(os.environ.get("ComSpec", r"C:\Windows\System32\cmd.exe"))
        for exe in ("powershell", "pwsh"):
            found = shutil.which(exe)
            if found:
                add(found)
        return shells

    etc_shells = Path("/etc/shells")
    try:
        lines = etc_shells.read_text(encoding="utf-8").splitlines()
    except OSError as e:
        logger.debug(f"Could not read {etc_shells}: {e}")
        lines = []

    for line in lines:
        line = line.strip()
        if not line or line.startswith("#"):
            continue
        if Path(line).exists():
            add(line)

    if not shells:
        for fallback in ("/bin/sh", "/bin/bash"):
            if Path(fallback).exists():
                add(fallback)
    return shells
