# Copyright 2025 Ilya Makarov
#
# Licensed under the Business Source License 1.1
# Change Date: 2028-11-05
# Change License: Apache License 2.0

"""
Commandeur Workspace System

A workspace is a root directory plus its first-level sub-folders (one per
submission). It can be prepared from:
- a directory (used in place)
- a .zip archive (extracted to a temporary directory, repacked after a run)

This module also owns the path trust boundary (``resolve_in_folder``), the
persisted text log of a run and the process-wide registry that enforces a
single active execution.
"""

import logging
import shutil
import tempfile
import threading
import uuid
import zipfile
from contextlib import contextmanager
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path, PurePosixPath, PureWindowsPath
from typing import Dict, Iterator, List, Optional, Sequence

from pydantic import Field

from .exceptions import (
    ExecutionAlreadyRunningError,
    PathValidationError,
    WorkspaceError,
    WorkspaceNotFoundError,
    WorkspaceUnavailableError,
)
from .execution_control import ExecutionControl
from .models import ExecutionLogEntry, ValidationMessage, Workflow, CamelModel

logger = logging.getLogger("commandeur.workspace")

LOGS_DIRNAME = "commandeur-logs"


class WorkspaceMode(str, Enum):
    ZIP = "zip"
    DIRECTORY = "directory"


class WorkspaceSummary(CamelModel):
    """What a caller learns about a freshly prepared workspace"""

    workspace_id: str
    mode: WorkspaceMode
    source_path: str
    root_path: str
    extracted_path: Optional[str] = None
    sub_folders: List[str] = Field(default_factory=list)


def new_id() -> str:
    return str(uuid.uuid4())


# ============================================================================
# Path Helpers
# ============================================================================


def sanitize_relative_path(fragment: str) -> Path:
    """
    Validate a workspace-relative fragment.

    Backslashes are treated as separators. Empty fragments, absolute paths
    (POSIX or Windows style) and ``..`` components raise PathValidationError.
    """
    trimmed = (fragment or "").strip()
    if not trimmed:
        raise PathValidationError("Empty path", fragment=fragment or "")

    normalized = trimmed.replace("\\", "/")
    posix = PurePosixPath(normalized)
    if posix.is_absolute() or PureWindowsPath(trimmed).anchor:
        raise PathValidationError(
            f"Path must be relative: {fragment}", fragment=fragment
        )
    if ".." in posix.parts:
        raise PathValidationError(
            f"Path cannot contain '..': {fragment}", fragment=fragment
        )
    return Path(*posix.parts)


def resolve_in_folder(folder_path: Path, fragment: str) -> Path:
    return Path(folder_path) / sanitize_relative_path(fragment)


def ensure_parent_dir(path: Path):
    parent = path.parent
    if not parent.exists():
        parent.mkdir(parents=True, exist_ok=True)


def remove_path(path: Path):
    """Delete a file or a whole directory tree; missing paths are ignored."""
    if path.is_dir() and not path.is_symlink():
        shutil.rmtree(path)
    elif path.exists() or path.is_symlink():
        path.unlink()


def auto_descend_single_directory(base: Path) -> Path:
    """Skip wrapper directories that contain exactly one directory and no files."""
    current = Path(base)
    while True:
        entries = list(current.iterdir())
        dirs = [e for e in entries if e.is_dir()]
        if len(dirs) == 1 and len(entries) == 1:
            current = dirs[0]
            continue
        return current


def collect_first_level_directories(root: Path) -> List[str]:
    return sorted(e.name for e in Path(root).iterdir() if e.is_dir())


# ============================================================================
# Workspace Handle
# ============================================================================


class WorkspaceHandle:
    """
    A prepared workspace.

    The handle's lock is held for the whole duration of a run so two runs
    never touch the same folders concurrently.
    """

    def __init__(
        self,
        source_path: Path,
        root_path: Path,
        sub_folders: Sequence[str],
        mode: WorkspaceMode = WorkspaceMode.DIRECTORY,
        extracted: Optional[tempfile.TemporaryDirectory] = None,
        workspace_id: Optional[str] = None,
    ):
        self.id = workspace_id or new_id()
        self.mode = mode
        self.source_path = Path(source_path)
        self.root_path = Path(root_path)
        self.sub_folders = list(sub_folders)
        self.extracted = extracted
        self.created_at = datetime.now(timezone.utc)
        self._lock = threading.Lock()

    @property
    def extracted_path(self) -> Optional[Path]:
        return Path(self.extracted.name) if self.extracted else None

    def folder_path(self, folder: str) -> Path:
        return self.root_path / folder

    @contextmanager
    def locked(self, timeout: float = 5.0) -> Iterator["WorkspaceHandle"]:
        if not self._lock.acquire(timeout=timeout):
            raise WorkspaceUnavailableError(
                f"Workspace {self.id} is busy",
                details={"workspace_id": self.id, "timeout": timeout},
            )
        try:
            yield self
        finally:
            self._lock.release()

    def summary(self) -> WorkspaceSummary:
        extracted = self.extracted_path
        return WorkspaceSummary(
            workspace_id=self.id,
            mode=self.mode,
            source_path=str(self.source_path),
            root_path=str(self.root_path),
            extracted_path=str(extracted) if extracted else None,
            sub_folders=list(self.sub_folders),
        )

    def close(self):
        """Remove the extraction directory of an archive workspace."""
        if self.extracted is not None:
            self.extracted.cleanup()
            self.extracted = None


def prepare_workspace(
    path, registry: Optional["WorkspaceRegistry"] = None, temp_dir: Optional[Path] = None
) -> WorkspaceHandle:
    """
    Turn a directory or .zip archive into a registered WorkspaceHandle.

    Raises:
        WorkspaceError: path missing, unsupported file type, unreadable
            archive, or no first-level sub-folder found
    """
    source = Path(path).expanduser()
    if not source.exists():
        raise WorkspaceError(f"Path does not exist: {source}")

    extracted: Optional[tempfile.TemporaryDirectory] = None
    mode = WorkspaceMode.DIRECTORY

    if source.is_file():
        if source.suffix.lower() != ".zip":
            raise WorkspaceError(
                f"Only directories and .zip archives are supported: {source}"
            )
        if temp_dir is not None:
            Path(temp_dir).mkdir(parents=True, exist_ok=True)
        extracted = tempfile.TemporaryDirectory(
            prefix="commandeur-", dir=str(temp_dir) if temp_dir else None
        )
        try:
            with zipfile.ZipFile(source) as archive:
                archive.extractall(extracted.name)
        except (zipfile.BadZipFile, OSError) as e:
            extracted.cleanup()
            raise WorkspaceError(f"Cannot extract archive {source}: {e}", cause=e)
        mode = WorkspaceMode.ZIP
        base = Path(extracted.name)
    else:
        base = source

    root = auto_descend_single_directory(base)
    sub_folders = collect_first_level_directories(root)
    if not sub_folders:
        if extracted is not None:
            extracted.cleanup()
        raise WorkspaceError(
            f"No first-level sub-folder found in {root}. Check the layout of the batch."
        )

    handle = WorkspaceHandle(
        source_path=source,
        root_path=root,
        sub_folders=sub_folders,
        mode=mode,
        extracted=extracted,
    )
    logger.info(
        f"Prepared workspace {handle.id} ({mode.value}) with {len(sub_folders)} folder(s)"
    )

    if registry is not None:
        registry.register_workspace(handle)
    return handle


# ============================================================================
# Registry
# ============================================================================


class WorkspaceRegistry:
    """Process-wide workspaces plus the single active execution slot."""

    def __init__(self):
        self._lock = threading.Lock()
        self._workspaces: Dict[str, WorkspaceHandle] = {}
        self._execution: Optional[ExecutionControl] = None

    def register_workspace(self, handle: WorkspaceHandle):
        with self._lock:
            self._workspaces[handle.id] = handle

    def get_workspace(self, workspace_id: str) -> WorkspaceHandle:
        with self._lock:
            handle = self._workspaces.get(workspace_id)
        if handle is None:
            raise WorkspaceNotFoundError(workspace_id)
        return handle

    def drop_workspace(self, workspace_id: str):
        with self._lock:
            handle = self._workspaces.pop(workspace_id, None)
        if handle is not None:
            handle.close()

    def list_workspaces(self) -> List[WorkspaceHandle]:
        with self._lock:
            return list(self._workspaces.values())

    def register_execution(self) -> ExecutionControl:
        with self._lock:
            if self._execution is not None:
                raise ExecutionAlreadyRunningError()
            self._execution = ExecutionControl()
            return self._execution

    def clear_execution(self, control: Optional[ExecutionControl] = None):
        with self._lock:
            if control is None or self._execution is control:
                self._execution = None

    def active_execution(self) -> Optional[ExecutionControl]:
        with self._lock:
            return self._execution


_registry: Optional[WorkspaceRegistry] = None


def get_registry() -> WorkspaceRegistry:
    global _registry
    if _registry is None:
        _registry = WorkspaceRegistry()
    return _registry


# ============================================================================
# Persisted Log / Repacking
# ============================================================================


def _format_folders(folders: Optional[List[str]]) -> str:
    return f" ({', '.join(folders)})" if folders else ""


def write_execution_log(
    workspace: WorkspaceHandle,
    entries: Sequence[ExecutionLogEntry],
    warnings: Sequence[ValidationMessage],
    errors: Sequence[ValidationMessage],
    workflow: Optional[Workflow] = None,
    logs_dir: Optional[Path] = None,
) -> Path:
    """
    Write the plain-text log of one run.

    Defaults to a ``commandeur-logs`` directory next to the workspace source.
    """
    if logs_dir is None:
        logs_dir = workspace.source_path.parent / LOGS_DIRNAME
    logs_dir = Path(logs_dir)
    logs_dir.mkdir(parents=True, exist_ok=True)

    now = datetime.now(timezone.utc)
    file_path = logs_dir / f"commandeur-log-{now.strftime('%Y%m%d-%H%M%S')}.txt"
    suffix = 1
    while file_path.exists():
        file_path = logs_dir / f"commandeur-log-{now.strftime('%Y%m%d-%H%M%S')}-{suffix}.txt"
        suffix += 1

    lines = ["Commandeur - Execution log", f"Date: {now.isoformat()}"]
    if workflow is not None:
        version = f" (version {workflow.version})" if workflow.version else ""
        lines.append(f"Workflow: {workflow.name}{version}")
    lines.append(f"Source: {workspace.source_path}")
    lines.append(f"Workspace created: {workspace.created_at.isoformat()}")
    if workspace.extracted_path is not None:
        lines.append(f"Temporary directory: {workspace.extracted_path}")
    lines.append(
        f"Mode: {'ZIP' if workspace.mode == WorkspaceMode.ZIP else 'Directory'}"
    )
    lines.append(f"Sub-folders: {', '.join(workspace.sub_folders)}")
    lines.append("")
    lines.append("== Timeline ==")
    for entry in entries:
        lines.append(
            f"[{entry.timestamp}][{entry.level.log_label}][{entry.operation_label}] {entry.message}"
        )

    for title, messages in (("Warnings", warnings), ("Errors", errors)):
        if not messages:
            continue
        lines.append("")
        lines.append(f"== {title} ==")
        for msg in messages:
            lines.append(
                f"- [{msg.operation_id}] {msg.message}{_format_folders(msg.folders)}"
            )
            if msg.details:
                for detail_line in msg.details.splitlines() or [""]:
                    lines.append(f"    > {detail_line}")

    file_path.write_text("\n".join(lines) + "\n", encoding="utf-8")
    logger.info(f"Execution log written: {file_path}")
    return file_path


def repack_zip(workspace: WorkspaceHandle) -> Path:
    """Zip the workspace root next to the source archive as ``<stem>-commandeur.zip``."""
    source = workspace.source_path
    parent = source.parent
    stem = source.stem or "archive"
    candidate = parent / f"{stem}-commandeur.zip"
    idx = 1
    while candidate.exists():
        candidate = parent / f"{stem}-commandeur-{idx}.zip"
        idx += 1

    root = workspace.root_path
    with zipfile.ZipFile(candidate, "w", compression=zipfile.ZIP_DEFLATED) as archive:
        for path in sorted(root.rglob("*")):
            name = path.relative_to(root).as_posix()
            if path.is_dir():
                archive.writestr(f"{name}/", "")
            else:
                archive.write(path, name)

    logger.info(f"Workspace repacked: {candidate}")
    return candidate
