# Copyright 2025 Ilya Makarov
#
# Licensed under the Business Source License 1.1
# Change Date: 2028-11-05
# Change License: Apache License 2.0

"""
Operation dispatcher

Applies one operation to one workspace folder.

Operations:
    - create-file: write a file (existing files kept unless overwrite)
    - delete-file: remove a file or directory
    - copy / move: copy or move a single file
    - rename: rename in place (suffix, prefix, change-extension, replace)
    - replace-in-file: plain or regex text replacement
    - mkdir: create a directory
    - exec: run an external command, optionally through a shell
    - run-script: run an inline or on-disk script with the run's interpreter
    - if: evaluate a condition and apply the chosen branch

Every path in an operation is relative to the folder and goes through
``resolve_in_folder``. Failures are raised as OperationFailedError tagged
with the failing operation's own id, label and continue-on-error flag.
"""

import logging
import os
import shutil
import subprocess
import tempfile
from pathlib import Path
from typing import Callable, Dict, Optional, Sequence

from .conditions import evaluate_condition
from .exceptions import ExecutionInterrupted, OperationFailedError, ProcessFailedError
from .execution_control import ExecutionControl
from .interpreter import ExecutionEnv
from .models import (
    CopyOperation,
    CreateFileOperation,
    DeleteFileOperation,
    ExecOperation,
    IfOperation,
    MkdirOperation,
    MoveOperation,
    OperationBase,
    RenameOperation,
    ReplaceInFileOperation,
    ReplaceMode,
    RunScriptOperation,
    ScriptEntry,
    ValidationLevel,
)
from .reporting import Reporter
from .shells import build_command
from .utils import (
    build_regex,
    compute_rename_destination,
    decode_output,
    expand_replacement,
)
from .workspace import ensure_parent_dir, remove_path, resolve_in_folder

logger = logging.getLogger("commandeur.dispatcher")

INFO = ValidationLevel.INFO
WARNING = ValidationLevel.WARNING
ERROR = ValidationLevel.ERROR


class OperationDispatcher:
    """Interprets operations for one run; shares the run's control, env and reporter."""

    def __init__(
        self,
        control: ExecutionControl,
        env: ExecutionEnv,
        reporter: Reporter,
    ):
        self.control = control
        self.env = env
        self.reporter = reporter

        self._handlers: Dict[type, Callable[[str, Path, OperationBase], None]] = {
            CreateFileOperation: self._create_file,
            DeleteFileOperation: self._delete_file,
            CopyOperation: self._copy,
            MoveOperation: self._move,
            RenameOperation: self._rename,
            ReplaceInFileOperation: self._replace_in_file,
            MkdirOperation: self._mkdir,
            ExecOperation: self._exec,
            RunScriptOperation: self._run_script,
            IfOperation: self._if,
        }

    def apply(self, folder: str, base_path: Path, operation: OperationBase):
        """
        Apply ``operation`` to ``folder`` located at ``base_path``.

        Raises:
            ExecutionInterrupted: a stop was requested before this operation
            OperationFailedError: the operation (or a nested one) failed
        """
        self.control.checkpoint()

        if operation.note:
            self.reporter.log(operation, INFO, f"[{folder}] Note: {operation.note}")

        handler = self._handlers.get(type(operation))
        if handler is None:
            raise OperationFailedError(
                operation.id,
                operation.label,
                operation.continue_on_error,
                TypeError(f"Unknown operation type: {type(operation).__name__}"),
            )

        logger.debug(f"[{folder}] {getattr(operation, 'kind', '?')} {operation.id}")
        try:
            handler(folder, Path(base_path), operation)
        except (ExecutionInterrupted, OperationFailedError):
            raise
        except Exception as e:
            logger.debug(f"[{folder}] Operation {operation.id} failed: {e}")
            raise OperationFailedError(
                operation.id, operation.label, operation.continue_on_error, e
            ) from e

    # ==========================================================================
    # File operations
    # ==========================================================================

    def _create_file(self, folder: str, base_path: Path, op: CreateFileOperation):
        target_path = resolve_in_folder(base_path, op.target)
        ensure_parent_dir(target_path)
        if target_path.exists() and not op.overwrite:
            self.reporter.folder_validation(
                op,
                folder,
                WARNING,
                f"[{folder}] File already exists, creation skipped",
                details=str(target_path),
            )
            self.reporter.log(op, INFO, f"[{folder}] Existing file kept: {op.target}")
            return

        with open(target_path, "w", encoding="utf-8", newline="") as f:
            f.write(op.content)
        self.reporter.log(op, INFO, f"[{folder}] File created: {op.target}")

    def _delete_file(self, folder: str, base_path: Path, op: DeleteFileOperation):
        target_path = resolve_in_folder(base_path, op.target)
        if not target_path.exists():
            message = f"[{folder}] File to delete not found: {op.target}"
            if op.required:
                self.reporter.folder_validation(op, folder, ERROR, message)
                raise FileNotFoundError(
                    f"Required deletion impossible: file not found: {op.target}"
                )
            self.reporter.folder_validation(op, folder, WARNING, message)
            return

        remove_path(target_path)
        self.reporter.log(op, INFO, f"[{folder}] File deleted: {op.target}")

    def _prepare_destination(self, source_path: Path, dest_path: Path, overwrite: bool):
        ensure_parent_dir(dest_path)
        if dest_path.exists():
            if not overwrite:
                raise FileExistsError(f"Destination already exists: {dest_path}")
            if source_path.samefile(dest_path):
                raise ValueError(f"Source and destination are the same file: {dest_path}")
            remove_path(dest_path)

    def _copy(self, folder: str, base_path: Path, op: CopyOperation):
        source_path = resolve_in_folder(base_path, op.source)
        if not source_path.exists():
            raise FileNotFoundError(f"Source not found: {source_path}")
        if source_path.is_dir():
            raise IsADirectoryError("Copying directories is not supported")

        dest_path = resolve_in_folder(base_path, op.destination)
        self._prepare_destination(source_path, dest_path, op.overwrite)
        shutil.copy(source_path, dest_path)
        self.reporter.log(
            op, INFO, f"[{folder}] File copied from {op.source} to {op.destination}"
        )

    def _move(self, folder: str, base_path: Path, op: MoveOperation):
        source_path = resolve_in_folder(base_path, op.source)
        if not source_path.exists():
            raise FileNotFoundError(f"Source not found: {op.source}")

        dest_path = resolve_in_folder(base_path, op.destination)
        self._prepare_destination(source_path, dest_path, op.overwrite)
        shutil.move(str(source_path), str(dest_path))
        self.reporter.log(
            op, INFO, f"[{folder}] Moved {op.source} -> {op.destination}"
        )

    def _rename(self, folder: str, base_path: Path, op: RenameOperation):
        source_path = resolve_in_folder(base_path, op.target)
        if not source_path.exists():
            raise FileNotFoundError(f"File or directory not found: {op.target}")

        dest_path = compute_rename_destination(
            source_path, op.mode, op.value, op.search, op.replace
        )
        if dest_path.exists():
            raise FileExistsError(f"Destination already exists: {dest_path}")
        ensure_parent_dir(dest_path)
        os.rename(source_path, dest_path)
        self.reporter.log(
            op, INFO, f"[{folder}] Renamed {op.target} -> {dest_path.name}"
        )

    def _replace_in_file(self, folder: str, base_path: Path, op: ReplaceInFileOperation):
        target_path = resolve_in_folder(base_path, op.target)
        if not target_path.exists():
            raise FileNotFoundError(f"File not found: {op.target}")

        with open(target_path, "r", encoding="utf-8", newline="") as f:
            original = f.read()

        if op.mode == ReplaceMode.REGEX:
            regex = build_regex(op.search, op.flags)
            updated, count = regex.subn(expand_replacement(op.replace), original)
        else:
            count = original.count(op.search)
            updated = original.replace(op.search, op.replace)

        if count == 0:
            self.reporter.folder_validation(
                op, folder, INFO, f"[{folder}] No replacement in {op.target}"
            )
            return

        with open(target_path, "w", encoding="utf-8", newline="") as f:
            f.write(updated)
        self.reporter.log(
            op, INFO, f"[{folder}] {count} occurrence(s) replaced in {op.target}"
        )

    def _mkdir(self, folder: str, base_path: Path, op: MkdirOperation):
        target_path = resolve_in_folder(base_path, op.target)
        if target_path.exists() and op.skip_if_exists:
            self.reporter.folder_validation(
                op, folder, INFO, f"[{folder}] Directory already present: {op.target}"
            )
            return

        if op.recursive:
            target_path.mkdir(parents=True, exist_ok=True)
        else:
            target_path.mkdir()
        self.reporter.log(op, INFO, f"[{folder}] Directory created: {op.target}")

    # ==========================================================================
    # Processes
    # ==========================================================================

    def _run_process(
        self,
        argv: Sequence[str],
        cwd: Path,
        extra_env: Optional[Dict[str, str]],
        failure_message: str,
    ):
        env = None
        if extra_env:
            env = dict(os.environ)
            env.update(extra_env)

        # Blocks until the process exits; a stop request waits for it.
        completed = subprocess.run(
            list(argv),
            cwd=str(cwd),
            env=env,
            stdin=subprocess.DEVNULL,
            capture_output=True,
        )
        if completed.returncode != 0:
            raise ProcessFailedError(
                failure_message,
                exit_code=completed.returncode,
                stdout=decode_output(completed.stdout),
                stderr=decode_output(completed.stderr),
            )

    def _exec(self, folder: str, base_path: Path, op: ExecOperation):
        argv = build_command(op.shell, op.command, op.args)
        cwd = resolve_in_folder(base_path, op.cwd) if op.cwd else base_path
        self._run_process(argv, cwd, op.env, "Command failed")
        self.reporter.log(op, INFO, f"[{folder}] Command executed: {op.command}")

    def _run_script(self, folder: str, base_path: Path, op: RunScriptOperation):
        if op.entry == ScriptEntry.INLINE:
            if not op.inline_script or not op.inline_script.strip():
                raise ValueError("Inline script is missing")
            interpreter = self.env.ensure_interpreter()
            with tempfile.TemporaryDirectory(prefix="commandeur-script-") as tmp:
                script_path = Path(tmp) / "script.py"
                script_path.write_text(op.inline_script, encoding="utf-8")
                self._run_process(
                    [interpreter, str(script_path)], base_path, None, "Script failed"
                )
        else:
            if not op.script_path or not op.script_path.strip():
                raise ValueError("Script path is required")
            script_path = resolve_in_folder(base_path, op.script_path)
            if not script_path.exists():
                raise FileNotFoundError(f"Script not found: {script_path}")
            interpreter = self.env.ensure_interpreter()
            self._run_process(
                [interpreter, str(script_path)], base_path, None, "Script failed"
            )

        self.reporter.log(op, INFO, f"[{folder}] Script executed")

    # ==========================================================================
    # Branching
    # ==========================================================================

    def _if(self, folder: str, base_path: Path, op: IfOperation):
        evaluation = evaluate_condition(base_path, folder, op.test)
        branch_name = "then" if evaluation.result else "else"
        self.reporter.log(
            op, INFO, f"[{folder}] Condition: {evaluation.summary} -> {branch_name}"
        )

        branch = op.then if evaluation.result else (op.else_branch or [])
        for child in branch:
            if not child.enabled:
                continue
            self.apply(folder, base_path, child)
