# Copyright 2025 Ilya Makarov
#
# Licensed under the Business Source License 1.1
# Change Date: 2028-11-05
# Change License: Apache License 2.0

"""
Pre-flight workflow validation

Inspects a workspace against a workflow without changing anything and
reports what a run would trip over (missing sources, conflicts, invalid
paths or patterns, empty commands or scripts). Both branches of ``if``
operations are inspected. Disabled operations are skipped.
"""

import logging
import re
from pathlib import Path
from typing import Callable, Dict, List, Optional

from .conditions import evaluate_condition
from .config import get_config
from .exceptions import CommandeurError, PathValidationError
from .interpreter import detect_external_modules
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
    ValidationMessage,
    Workflow,
)
from .utils import build_regex, compute_rename_destination
from .workspace import WorkspaceHandle, resolve_in_folder

logger = logging.getLogger("commandeur.validation")

INFO = ValidationLevel.INFO
WARNING = ValidationLevel.WARNING
ERROR = ValidationLevel.ERROR


class _Abort(Exception):
    """Stops analysing the current operation after an invalid path."""


class WorkflowValidator:
    def __init__(self, workspace: WorkspaceHandle):
        self.workspace = workspace
        self.messages: List[ValidationMessage] = []
        self._checks: Dict[type, Callable[[OperationBase], None]] = {
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

    def push(
        self,
        op: OperationBase,
        level: ValidationLevel,
        message: str,
        details: Optional[str] = None,
        folders: Optional[List[str]] = None,
    ):
        self.messages.append(
            ValidationMessage(
                operation_id=op.id,
                operation_label=op.label,
                level=level,
                message=message,
                details=details,
                folders=folders or None,
            )
        )

    def _resolve(self, op: OperationBase, folder: str, fragment: str, what: str) -> Path:
        try:
            return resolve_in_folder(self.workspace.folder_path(folder), fragment)
        except PathValidationError as e:
            self.push(op, ERROR, f"Invalid {what} path", details=str(e))
            raise _Abort()

    def validate(self, operations) -> List[ValidationMessage]:
        for op in operations:
            self.validate_operation(op)
        return self.messages

    def validate_operation(self, op: OperationBase):
        if not op.enabled:
            return
        check = self._checks.get(type(op))
        if check is None:
            return
        try:
            check(op)
        except _Abort:
            pass

    @property
    def folders(self) -> List[str]:
        return self.workspace.sub_folders

    # ==========================================================================
    # Checks
    # ==========================================================================

    def _create_file(self, op: CreateFileOperation):
        missing = []
        for folder in self.folders:
            target = self._resolve(op, folder, op.target, "destination")
            if not target.parent.exists():
                missing.append(folder)
        if missing:
            self.push(op, ERROR, "Destination directory does not exist", folders=missing)

    def _delete_file(self, op: DeleteFileOperation):
        missing = [
            folder
            for folder in self.folders
            if not self._resolve(op, folder, op.target, "file").exists()
        ]
        if not missing:
            return
        if op.required:
            details = f'Operation "{op.label}" (#{op.id}) requires file "{op.target}".'
        else:
            details = f'Operation "{op.label}" (#{op.id}) expects file: {op.target}.'
        self.push(
            op,
            ERROR if op.required else WARNING,
            f'File "{op.target}" not found in {len(missing)} sub-folder(s)',
            details=details,
            folders=missing,
        )

    def _copy(self, op: CopyOperation):
        missing = []
        for folder in self.folders:
            source = self._resolve(op, folder, op.source, "source")
            dest = self._resolve(op, folder, op.destination, "destination")
            if not source.exists():
                missing.append(folder)
            elif not dest.parent.exists():
                self.push(
                    op,
                    WARNING,
                    "Destination directory will be created automatically",
                    details=str(dest),
                    folders=[folder],
                )
        if missing:
            self.push(op, ERROR, "Source file not found", folders=missing)

    def _move(self, op: MoveOperation):
        missing, conflicts = [], []
        for folder in self.folders:
            source = self._resolve(op, folder, op.source, "source")
            dest = self._resolve(op, folder, op.destination, "destination")
            if not source.exists():
                missing.append(folder)
            elif dest.exists() and not op.overwrite:
                conflicts.append(folder)
        if missing:
            self.push(op, ERROR, "Source not found", folders=missing)
        if conflicts:
            self.push(op, ERROR, "Destination already exists", folders=conflicts)

    def _rename(self, op: RenameOperation):
        missing, conflicts = [], []
        for folder in self.folders:
            source = self._resolve(op, folder, op.target, "file")
            if not source.exists():
                missing.append(folder)
                continue
            try:
                dest = compute_rename_destination(
                    source, op.mode, op.value, op.search, op.replace
                )
            except ValueError as e:
                self.push(op, ERROR, "Invalid name transformation", details=str(e))
                return
            if dest.exists():
                conflicts.append(folder)
        if missing:
            self.push(op, ERROR, "File to rename not found", folders=missing)
        if conflicts:
            self.push(op, ERROR, "Destination name already exists", folders=conflicts)

    def _replace_in_file(self, op: ReplaceInFileOperation):
        if not op.search.strip():
            self.push(op, ERROR, "Search string is empty")
        if op.mode == ReplaceMode.REGEX:
            try:
                build_regex(op.search, op.flags)
            except re.error as e:
                self.push(op, ERROR, "Invalid regular expression", details=str(e))
        missing = [
            folder
            for folder in self.folders
            if not self._resolve(op, folder, op.target, "file").exists()
        ]
        if missing:
            self.push(op, ERROR, "Target file not found", folders=missing)

    def _mkdir(self, op: MkdirOperation):
        existing = [
            folder
            for folder in self.folders
            if self._resolve(op, folder, op.target, "directory").exists()
            and not op.skip_if_exists
        ]
        if existing:
            self.push(op, INFO, "Directory already exists", folders=existing)

    def _exec(self, op: ExecOperation):
        if not op.command.strip():
            self.push(op, ERROR, "Command to execute is empty")
        if op.cwd is None:
            return
        missing = [
            folder
            for folder in self.folders
            if not self._resolve(op, folder, op.cwd, "working directory").exists()
        ]
        if missing:
            self.push(op, ERROR, "Working directory not found", folders=missing)

    def _run_script(self, op: RunScriptOperation):
        if op.entry == ScriptEntry.INLINE:
            if not op.inline_script or not op.inline_script.strip():
                self.push(op, ERROR, "Inline script is empty")
                return
            externals = detect_external_modules(op.inline_script)
            if externals:
                self.push(
                    op,
                    WARNING,
                    "Script seems to use unsupported external modules",
                    details=", ".join(externals),
                )
            return

        if not op.script_path or not op.script_path.strip():
            self.push(op, ERROR, "Script path is empty")
            return

        missing = []
        for folder in self.folders:
            path = self._resolve(op, folder, op.script_path, "script")
            if not path.exists():
                missing.append(folder)
                continue
            try:
                content = path.read_text(encoding="utf-8")
            except (OSError, UnicodeDecodeError) as e:
                logger.debug(f"Cannot inspect script {path}: {e}")
                continue
            externals = detect_external_modules(content)
            if externals:
                self.push(
                    op,
                    WARNING,
                    "Script seems to use unsupported external modules",
                    details=", ".join(externals),
                    folders=[folder],
                )
        if missing:
            self.push(op, ERROR, "Script not found", folders=missing)

    def _if(self, op: IfOperation):
        unmet = []
        for folder in self.folders:
            try:
                evaluation = evaluate_condition(
                    self.workspace.folder_path(folder), folder, op.test
                )
            except CommandeurError as e:
                self.push(op, ERROR, "Invalid condition", details=str(e))
                return
            if not evaluation.result:
                unmet.append(folder)
        if unmet:
            self.push(
                op,
                INFO,
                "Condition not met, else branch applies",
                folders=unmet,
            )
        for child in op.branches():
            self.validate_operation(child)


def validate_workflow(
    workspace: WorkspaceHandle,
    workflow: Workflow,
    lock_timeout: Optional[float] = None,
) -> List[ValidationMessage]:
    """
    Validate ``workflow`` against every folder of ``workspace``.

    Raises:
        WorkspaceUnavailableError: the workspace is locked by a run
    """
    if lock_timeout is None:
        lock_timeout = get_config().runtime.workspace_lock_timeout_seconds
    with workspace.locked(lock_timeout):
        messages = WorkflowValidator(workspace).validate(workflow.operations)
    logger.info(
        f"Validated workflow '{workflow.name}': {len(messages)} message(s)"
    )
    return messages
