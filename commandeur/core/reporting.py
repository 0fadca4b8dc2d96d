# Copyright 2025 Ilya Makarov
#
# Licensed under the Business Source License 1.1
# Change Date: 2028-11-05
# Change License: Apache License 2.0

"""
Run reporting

The Reporter accumulates everything a run produces (ordered log entries,
folder-level validation messages, errors) and forwards each item to an
optional EventBus as it happens. Without a bus the reporter works headless.
"""

import logging
from typing import List, Optional

from .events import Event, EventBus, EventType
from .models import (
    WORKSPACE_OPERATION_ID,
    WORKSPACE_OPERATION_LABEL,
    ExecutionLogEntry,
    OperationBase,
    ValidationLevel,
    ValidationMessage,
)

logger = logging.getLogger("commandeur.reporting")


class Reporter:
    def __init__(self, event_bus: Optional[EventBus] = None):
        self.event_bus = event_bus
        self.log_entries: List[ExecutionLogEntry] = []
        self.warnings: List[ValidationMessage] = []
        self.errors: List[ValidationMessage] = []

    # ==========================================================================
    # Log entries
    # ==========================================================================

    def log(
        self, operation: OperationBase, level: ValidationLevel, message: str
    ) -> ExecutionLogEntry:
        return self.log_meta(operation.id, operation.label, level, message)

    def log_meta(
        self,
        operation_id: str,
        operation_label: str,
        level: ValidationLevel,
        message: str,
    ) -> ExecutionLogEntry:
        entry = ExecutionLogEntry(
            operation_id=operation_id,
            operation_label=operation_label,
            level=level,
            message=message,
        )
        self.log_entries.append(entry)
        self._emit(EventType.LOG_ENTRY, entry.to_dict())
        return entry

    def workspace_log(self, level: ValidationLevel, message: str) -> ExecutionLogEntry:
        return self.log_meta(
            WORKSPACE_OPERATION_ID, WORKSPACE_OPERATION_LABEL, level, message
        )

    # ==========================================================================
    # Validation messages
    # ==========================================================================

    def folder_validation(
        self,
        operation: OperationBase,
        folder: str,
        level: ValidationLevel,
        message: str,
        details: Optional[str] = None,
    ) -> ValidationMessage:
        """Non-fatal per-folder outcome; lands in the warnings collection."""
        msg = ValidationMessage(
            operation_id=operation.id,
            operation_label=operation.label,
            level=level,
            message=message,
            details=details,
            folders=[folder],
        )
        self.warnings.append(msg)
        self._emit(EventType.VALIDATION, msg.to_dict())
        return msg

    def error(
        self,
        operation_id: str,
        message: str,
        operation_label: Optional[str] = None,
        details: Optional[str] = None,
        folders: Optional[List[str]] = None,
    ) -> ValidationMessage:
        msg = ValidationMessage(
            operation_id=operation_id,
            operation_label=operation_label,
            level=ValidationLevel.ERROR,
            message=message,
            details=details,
            folders=folders,
        )
        self.errors.append(msg)
        self._emit(EventType.VALIDATION, msg.to_dict())
        return msg

    # ==========================================================================
    # Progress / lifecycle
    # ==========================================================================

    def progress(self, processed: int, total: int):
        self._emit(EventType.PROGRESS, {"processed": processed, "total": total})

    def lifecycle(self, event_type: EventType, **data):
        self._emit(event_type, data)

    def _emit(self, event_type: EventType, data: dict):
        if self.event_bus is None:
            return
        self.event_bus.emit(Event(event_type, data))
