# Copyright 2025 Ilya Makarov
#
# Licensed under the Business Source License 1.1
# Change Date: 2028-11-05
# Change License: Apache License 2.0

"""
Workflow executor

Runs a workflow over every folder of a workspace:
- folders in workspace order, enabled top-level operations in declaration order
- checkpoint before each folder and each operation (pause / stop)
- continue-on-error decided by the flag of the operation that failed
- progress reported once per attempted top-level operation
- persisted text log and archive repacking once the run is over
"""

import logging
from pathlib import Path
from typing import Optional

from .config import get_config
from .dispatcher import OperationDispatcher
from .events import EventBus, EventType
from .exceptions import ExecutionInterrupted, OperationFailedError
from .execution_control import ExecutionControl
from .interpreter import ExecutionEnv
from .models import (
    WORKSPACE_OPERATION_ID,
    WORKSPACE_OPERATION_LABEL,
    ExecutionResult,
    ValidationLevel,
    Workflow,
)
from .reporting import Reporter
from .workspace import WorkspaceHandle, WorkspaceMode, repack_zip, write_execution_log

logger = logging.getLogger("commandeur.executor")


class WorkflowExecutor:
    """One run of one workflow over one workspace."""

    def __init__(
        self,
        workspace: WorkspaceHandle,
        workflow: Workflow,
        control: Optional[ExecutionControl] = None,
        event_bus: Optional[EventBus] = None,
        env: Optional[ExecutionEnv] = None,
        logs_dir: Optional[Path] = None,
        lock_timeout: Optional[float] = None,
        repack: Optional[bool] = None,
    ):
        config = get_config()
        self.workspace = workspace
        self.workflow = workflow
        self.control = control or ExecutionControl()
        self.reporter = Reporter(event_bus)
        self.env = env or ExecutionEnv(config.runtime.interpreter_candidates)
        self.logs_dir = logs_dir
        self.lock_timeout = (
            lock_timeout
            if lock_timeout is not None
            else config.runtime.workspace_lock_timeout_seconds
        )
        self.repack = config.runtime.repack_archives if repack is None else repack
        self.dispatcher = OperationDispatcher(self.control, self.env, self.reporter)
        self.operations_run = 0
        self.processed = 0

    def run(self) -> ExecutionResult:
        """
        Execute the workflow.

        Raises:
            WorkspaceUnavailableError: the workspace lock could not be acquired
        """
        with self.workspace.locked(self.lock_timeout):
            return self._run_locked()

    def _run_locked(self) -> ExecutionResult:
        reporter = self.reporter
        workflow = self.workflow
        folders = list(self.workspace.sub_folders)
        operations = workflow.enabled_operations()
        total = len(operations) * len(folders)

        logger.info(
            f"Running workflow '{workflow.name}' over {len(folders)} folder(s), "
            f"{len(operations)} operation(s) each"
        )
        reporter.lifecycle(
            EventType.WORKFLOW_START,
            workflow=workflow.name,
            workspace_id=self.workspace.id,
            total=total,
        )
        reporter.workspace_log(ValidationLevel.INFO, workflow.banner)

        self.operations_run = 0
        self.processed = 0
        stop_reason: Optional[str] = None

        try:
            for folder in folders:
                self.control.checkpoint()
                base_path = self.workspace.folder_path(folder)
                if not base_path.exists():
                    message = f"Folder {folder} not found"
                    reporter.workspace_log(ValidationLevel.ERROR, message)
                    reporter.error(
                        WORKSPACE_OPERATION_ID,
                        message,
                        operation_label=WORKSPACE_OPERATION_LABEL,
                        folders=[folder],
                    )
                    break

                if not self._run_folder(folder, base_path, operations, total):
                    break
        except ExecutionInterrupted as interrupt:
            stop_reason = interrupt.reason
            logger.info(f"Workflow '{workflow.name}' interrupted: {stop_reason}")
            reporter.workspace_log(
                ValidationLevel.WARNING, f"Execution stopped: {stop_reason}"
            )

        operations_run = self.operations_run
        if stop_reason is None:
            reporter.workspace_log(
                ValidationLevel.INFO,
                f"Workflow finished: {operations_run} operation(s) run, "
                f"{len(reporter.errors)} error(s)",
            )

        log_file_path = self._write_log()
        archive_path = self._repack()

        result = ExecutionResult(
            success=not reporter.errors and stop_reason is None,
            operations_run=operations_run,
            log_entries=list(reporter.log_entries),
            warnings=list(reporter.warnings),
            errors=list(reporter.errors),
            log_file_path=str(log_file_path) if log_file_path else None,
            output_archive_path=str(archive_path) if archive_path else None,
            stop_reason=stop_reason,
        )
        reporter.lifecycle(
            EventType.WORKFLOW_END,
            workflow=workflow.name,
            success=result.success,
            operations_run=operations_run,
            stop_reason=stop_reason,
        )
        logger.info(
            f"Workflow '{workflow.name}' done: success={result.success}, "
            f"operations_run={operations_run}"
        )
        return result

    def _advance(self, total: int):
        self.processed += 1
        self.reporter.progress(self.processed, total)

    def _run_folder(self, folder: str, base_path: Path, operations, total: int) -> bool:
        """Run every operation for one folder; False means the run must stop."""
        for op in operations:
            self.control.checkpoint()
            try:
                self.dispatcher.apply(folder, base_path, op)
            except OperationFailedError as failure:
                detail = str(failure)
                self.reporter.log_meta(
                    failure.operation_id,
                    failure.operation_label,
                    ValidationLevel.ERROR,
                    f"[{folder}] Failed: {detail}",
                )
                self.reporter.error(
                    failure.operation_id,
                    f"Error during operation for {folder}",
                    operation_label=failure.operation_label,
                    details=detail,
                    folders=[folder],
                )
                self._advance(total)
                if not failure.continue_on_error:
                    logger.warning(
                        f"[{folder}] Operation {failure.operation_id} failed, aborting run"
                    )
                    return False
                continue

            self.operations_run += 1
            self._advance(total)
        return True

    def _write_log(self) -> Optional[Path]:
        try:
            return write_execution_log(
                self.workspace,
                self.reporter.log_entries,
                self.reporter.warnings,
                self.reporter.errors,
                workflow=self.workflow,
                logs_dir=self.logs_dir,
            )
        except OSError as e:
            logger.error(f"Failed to write execution log: {e}")
            return None

    def _repack(self) -> Optional[Path]:
        if self.workspace.mode != WorkspaceMode.ZIP or not self.repack:
            return None
        try:
            return repack_zip(self.workspace)
        except OSError as e:
            logger.error(f"Failed to repack workspace archive: {e}")
            return None


def execute_workflow(
    workspace: WorkspaceHandle,
    workflow: Workflow,
    control: Optional[ExecutionControl] = None,
    event_bus: Optional[EventBus] = None,
    logs_dir: Optional[Path] = None,
    **kwargs,
) -> ExecutionResult:
    """Convenience wrapper: build a WorkflowExecutor and run it."""
    executor = WorkflowExecutor(
        workspace,
        workflow,
        control=control,
        event_bus=event_bus,
        logs_dir=logs_dir,
        **kwargs,
    )
    return executor.run()
