# Copyright 2025 Ilya Makarov
#
# Licensed under the Business Source License 1.1
# Change Date: 2028-11-05
# Change License: Apache License 2.0

"""
Commandeur Execution Manager

Manages the workflow execution lifecycle:
- Run a workflow on a background worker thread
- Pause / resume / stop the active run
- Report status
- Wait for completion and collect the ExecutionResult

Only one execution may be active per process; a second start fails fast
with ExecutionAlreadyRunningError.

Usage:
    manager = get_execution_manager()
    execution_id = manager.start(workspace, workflow)
    manager.pause()
    manager.resume()
    result = manager.wait()
"""

import logging
import threading
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, List, Optional

from .events import Event, EventBus, EventType
from .exceptions import CommandeurError, NoActiveExecutionError
from .execution_control import ExecutionControl
from .executor import execute_workflow
from .models import ExecutionResult, ExecutionStatus, Workflow
from .workspace import WorkspaceHandle, WorkspaceRegistry, get_registry

logger = logging.getLogger("commandeur.execution_manager")

MANUAL_STOP_REASON = "Manual stop requested"

# Finished runs kept for history() and wait(execution_id)
MAX_HISTORY = 50


@dataclass
class RunRecord:
    """Bookkeeping for one started execution"""

    execution_id: str
    workflow_name: str
    workspace_id: str
    control: ExecutionControl
    started_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    finished_at: Optional[datetime] = None
    result: Optional[ExecutionResult] = None
    error: Optional[BaseException] = None
    thread: Optional[threading.Thread] = None
    done: threading.Event = field(default_factory=threading.Event)
    event_bus: Optional[EventBus] = None

    def to_dict(self) -> Dict:
        return {
            "execution_id": self.execution_id,
            "workflow": self.workflow_name,
            "workspace_id": self.workspace_id,
            "started_at": self.started_at.isoformat(),
            "finished_at": self.finished_at.isoformat() if self.finished_at else None,
            "success": self.result.success if self.result else None,
            "error": str(self.error) if self.error else None,
        }


class ExecutionManager:
    """Owns background runs and exposes the control surface for callers."""

    def __init__(
        self,
        registry: Optional[WorkspaceRegistry] = None,
        max_history: int = MAX_HISTORY,
    ):
        self.registry = registry or get_registry()
        self.max_history = max_history
        self._runs: Dict[str, RunRecord] = {}
        self._current: Optional[RunRecord] = None
        self._lock = threading.Lock()

    # ==========================================================================
    # Background Execution
    # ==========================================================================

    def start(
        self,
        workspace: WorkspaceHandle,
        workflow: Workflow,
        event_bus: Optional[EventBus] = None,
        logs_dir: Optional[Path] = None,
        **executor_options,
    ) -> str:
        """
        Start ``workflow`` on a worker thread.

        Returns:
            execution_id

        Raises:
            ExecutionAlreadyRunningError: another execution is active
        """
        control = self.registry.register_execution()
        try:
            record = RunRecord(
                execution_id=str(uuid.uuid4()),
                workflow_name=workflow.name,
                workspace_id=workspace.id,
                control=control,
                event_bus=event_bus,
            )
            thread = threading.Thread(
                target=self._worker,
                args=(record, workspace, workflow, logs_dir, executor_options),
                name=f"commandeur-run-{record.execution_id[:8]}",
                daemon=True,
            )
            record.thread = thread
            with self._lock:
                self._prune_history()
                self._runs[record.execution_id] = record
                self._current = record
            thread.start()
        except Exception:
            control.mark_finished()
            self.registry.clear_execution(control)
            with self._lock:
                if self._current is not None and self._current.control is control:
                    self._runs.pop(self._current.execution_id, None)
                    self._current = None
            raise

        logger.info(f"Started execution {record.execution_id} ({workflow.name})")
        return record.execution_id

    def _worker(
        self,
        record: RunRecord,
        workspace: WorkspaceHandle,
        workflow: Workflow,
        logs_dir: Optional[Path],
        executor_options: dict,
    ):
        try:
            record.result = execute_workflow(
                workspace,
                workflow,
                control=record.control,
                event_bus=record.event_bus,
                logs_dir=logs_dir,
                **executor_options,
            )
        except CommandeurError as e:
            record.error = e
            logger.error(f"Execution {record.execution_id} failed: {e}")
        except Exception as e:
            record.error = e
            logger.error(f"Execution {record.execution_id} crashed: {e}", exc_info=True)
        finally:
            record.finished_at = datetime.now(timezone.utc)
            record.control.mark_finished()
            self.registry.clear_execution(record.control)
            self._notify_status(record, ExecutionStatus.IDLE)
            record.done.set()

    def run(
        self,
        workspace: WorkspaceHandle,
        workflow: Workflow,
        event_bus: Optional[EventBus] = None,
        logs_dir: Optional[Path] = None,
        **executor_options,
    ) -> ExecutionResult:
        """Blocking variant of start() + wait()."""
        execution_id = self.start(
            workspace, workflow, event_bus=event_bus, logs_dir=logs_dir, **executor_options
        )
        return self.wait(execution_id)

    # ==========================================================================
    # Control Surface
    # ==========================================================================

    def _active_control(self) -> ExecutionControl:
        control = self.registry.active_execution()
        if control is None:
            raise NoActiveExecutionError()
        return control

    def pause(self) -> ExecutionStatus:
        status = self._active_control().request_pause()
        self._notify_status(self._current, status)
        return status

    def resume(self) -> ExecutionStatus:
        status = self._active_control().request_resume()
        self._notify_status(self._current, status)
        return status

    def stop(self, reason: Optional[str] = None) -> ExecutionStatus:
        status = self._active_control().request_stop(reason or MANUAL_STOP_REASON)
        self._notify_status(self._current, status)
        return status

    def status(self) -> ExecutionStatus:
        control = self.registry.active_execution()
        if control is None:
            return ExecutionStatus.IDLE
        return control.status()

    def _notify_status(self, record: Optional[RunRecord], status: ExecutionStatus):
        if record is None or record.event_bus is None:
            return
        record.event_bus.emit(
            Event(
                EventType.STATUS_CHANGED,
                {"execution_id": record.execution_id, "status": status.value},
            )
        )

    # ==========================================================================
    # Completion
    # ==========================================================================

    def wait(
        self, execution_id: Optional[str] = None, timeout: Optional[float] = None
    ) -> ExecutionResult:
        """
        Wait for an execution (the most recent one by default) to finish.

        Raises:
            TimeoutError: still running after ``timeout`` seconds
            CommandeurError: the run failed before producing a result
        """
        record = self._record(execution_id)
        if not record.done.wait(timeout):
            raise TimeoutError(
                f"Execution {record.execution_id} still running after {timeout}s"
            )
        if record.error is not None:
            raise record.error
        return record.result

    def get(self, execution_id: str) -> RunRecord:
        return self._record(execution_id)

    def history(self) -> List[RunRecord]:
        with self._lock:
            return sorted(self._runs.values(), key=lambda r: r.started_at, reverse=True)

    def _prune_history(self):
        finished = [r for r in self._runs.values() if r.done.is_set()]
        excess = len(finished) - self.max_history + 1
        if excess <= 0:
            return
        finished.sort(key=lambda r: r.started_at)
        for record in finished[:excess]:
            del self._runs[record.execution_id]

    def _record(self, execution_id: Optional[str]) -> RunRecord:
        with self._lock:
            if execution_id is None:
                record = self._current
            else:
                record = self._runs.get(execution_id)
        if record is None:
            raise NoActiveExecutionError(f"Unknown execution: {execution_id}")
        return record


# Global execution manager instance
_manager: Optional[ExecutionManager] = None


def get_execution_manager() -> ExecutionManager:
    """Get global execution manager"""
    global _manager
    if _manager is None:
        _manager = ExecutionManager()
    return _manager
