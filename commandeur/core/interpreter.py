# Copyright 2025 Ilya Makarov
#
# Licensed under the Business Source License 1.1
# Change Date: 2028-11-05
# Change License: Apache License 2.0

"""
Script interpreter resolution

ExecutionEnv belongs to exactly one run: the interpreter is looked up the
first time a script operation needs it and reused for the rest of that run.
"""

import logging
import re
import subprocess
from typing import List, Optional, Sequence

from .exceptions import InterpreterNotFoundError

logger = logging.getLogger("commandeur.interpreter")

STDLIB_ALLOWLIST = frozenset(
    [
        "argparse",
        "collections",
        "contextlib",
        "csv",
        "datetime",
        "functools",
        "glob",
        "hashlib",
        "heapq",
        "io",
        "itertools",
        "json",
        "logging",
        "math",
        "os",
        "pathlib",
        "random",
        "re",
        "shutil",
        "statistics",
        "string",
        "subprocess",
        "sys",
        "tempfile",
        "textwrap",
        "time",
        "typing",
        "uuid",
    ]
)

_IMPORT_RE = re.compile(r"^(?:import|from)\s+(.+)$")


def detect_interpreter(candidates: Sequence[str]) -> str:
    """Return the first candidate that answers ``--version`` successfully."""
    for candidate in candidates:
        try:
            completed = subprocess.run(
                [candidate, "--version"],
                capture_output=True,
                timeout=10,
            )
        except (OSError, subprocess.SubprocessError) as e:
            logger.debug(f"Interpreter candidate {candidate} unusable: {e}")
            continue
        if completed.returncode == 0:
            logger.debug(f"Using script interpreter: {candidate}")
            return candidate
    raise InterpreterNotFoundError(
        f"Script interpreter not found (tried: {', '.join(candidates)})",
        details={"candidates": list(candidates)},
    )


class ExecutionEnv:
    """Run-scoped state handed to every dispatch of one run."""

    def __init__(self, candidates: Optional[Sequence[str]] = None):
        if candidates is None:
            from .config import get_config

            candidates = get_config().runtime.interpreter_candidates
        self.candidates = list(candidates)
        self._interpreter: Optional[str] = None

    def ensure_interpreter(self) -> str:
        if self._interpreter is None:
            self._interpreter = detect_interpreter(self.candidates)
        return self._interpreter


def detect_external_modules(script: str) -> List[str]:
    """
    Top-level modules a script imports that are outside STDLIB_ALLOWLIST.

    Only plain ``import x`` / ``from x import y`` lines are inspected;
    relative imports are ignored.
    """
    modules: List[str] = []
    for line in script.splitlines():
        content = line.split("#", 1)[0].strip()
        match = _IMPORT_RE.match(content)
        if not match:
            continue
        rest = match.group(1)
        if content.startswith("from "):
            names = [rest.split()[0]]
        else:
            names = [part.strip().split()[0] for part in rest.split(",") if part.strip()]
        for name in names:
            top = name.split(".")[0].strip()
            if not top or name.startswith("."):
                continue
            if top not in STDLIB_ALLOWLIST and top not in modules:
                modules.append(top)
    return modules
