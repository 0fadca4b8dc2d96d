# Copyright 2025 Ilya Makarov
#
# Licensed under the Business Source License 1.1
# Change Date: 2028-11-05
# Change License: Apache License 2.0

"""
Commandeur Exception Hierarchy

Exception Hierarchy:
    CommandeurError (base)
    ├── ConfigError
    ├── WorkflowParseError
    ├── WorkflowStorageError
    ├── PathValidationError
    ├── ConditionError
    ├── InterpreterNotFoundError
    ├── ProcessFailedError
    ├── WorkspaceError
    │   ├── WorkspaceNotFoundError
    │   └── WorkspaceUnavailableError
    ├── ExecutionAlreadyRunningError
    ├── NoActiveExecutionError
    ├── OperationFailedError
    └── ExecutionInterrupted

Only the executor decides whether a run continues. The dispatcher wraps
every per-operation failure in OperationFailedError carrying the policy
flag of the operation that failed.
"""

from typing import Any, Dict, Optional

# ============================================================================
# Base Exception
# ============================================================================


class CommandeurError(Exception):
    """Base exception for all Commandeur errors"""

    def __init__(
        self,
        message: str,
        details: Optional[Dict[str, Any]] = None,
        cause: Optional[BaseException] = None,
    ):
        super().__init__(message)
        self.message = message
        self.details = details or {}
        self.cause = cause

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for logging/serialization"""
        result = {
            "type": self.__class__.__name__,
            "message": self.message,
            "details": self.details,
        }

        if self.cause:
            result["cause"] = {
                "type": self.cause.__class__.__name__,
                "message": str(self.cause),
            }

        return result

    def __str__(self):
        return self.message


# ============================================================================
# Configuration / Workflow Definition Errors
# ============================================================================


class ConfigError(CommandeurError):
    """Configuration-related errors"""


class WorkflowParseError(CommandeurError):
    """A workflow document could not be parsed or validated"""

    def __init__(self, message: str, source: Optional[str] = None, **kwargs):
        details = kwargs.pop("details", None) or {}
        if source:
            details["source"] = source
        super().__init__(message, details=details, **kwargs)
        self.source = source


class WorkflowStorageError(CommandeurError):
    """Saved workflow could not be read, written or found"""


# ============================================================================
# Filesystem / Evaluation Errors
# ============================================================================


class PathValidationError(CommandeurError):
    """A workspace-relative path fragment was rejected"""

    def __init__(self, message: str, fragment: str = "", **kwargs):
        super().__init__(message, details={"fragment": fragment}, **kwargs)
        self.fragment = fragment


class ConditionError(CommandeurError):
    """A condition test could not be evaluated"""


class InterpreterNotFoundError(CommandeurError):
    """No usable script interpreter was found on this machine"""


class ProcessFailedError(CommandeurError):
    """External process exited with a non-zero status"""

    def __init__(
        self,
        message: str,
        exit_code: Optional[int] = None,
        stdout: str = "",
        stderr: str = "",
        **kwargs,
    ):
        super().__init__(
            message,
            details={"exit_code": exit_code},
            **kwargs,
        )
        self.exit_code = exit_code
        self.stdout = stdout
        self.stderr = stderr

    def __str__(self):
        return (
            f"{self.message} (code: {self.exit_code})\n"
            f"STDOUT:\n{self.stdout}\nSTDERR:\n{self.stderr}"
        )


# ============================================================================
# Workspace Errors
# ============================================================================


class WorkspaceError(CommandeurError):
    """Workspace preparation or access failed"""


class WorkspaceNotFoundError(WorkspaceError):
    """No workspace is registered under the requested id"""

    def __init__(self, workspace_id: str, **kwargs):
        super().__init__(
            f"Workspace not found: {workspace_id}",
            details={"workspace_id": workspace_id},
            **kwargs,
        )
        self.workspace_id = workspace_id


class WorkspaceUnavailableError(WorkspaceError):
    """Workspace handle could not be locked for a run"""


# ============================================================================
# Execution Errors
# ============================================================================


class ExecutionAlreadyRunningError(CommandeurError):
    """A second run was requested while one is active"""

    def __init__(self, message: str = "An execution is already in progress", **kwargs):
        super().__init__(message, **kwargs)


class NoActiveExecutionError(CommandeurError):
    """Control request issued while nothing is running"""

    def __init__(self, message: str = "No active execution", **kwargs):
        super().__init__(message, **kwargs)


class OperationFailedError(CommandeurError):
    """
    A single operation failed for one folder.

    Carries the id, label and continue-on-error flag of the operation that
    actually failed (nested operations keep their own values).
    """

    def __init__(
        self,
        operation_id: str,
        operation_label: str,
        continue_on_error: bool,
        cause: BaseException,
    ):
        super().__init__(
            str(cause),
            details={
                "operation_id": operation_id,
                "operation_label": operation_label,
                "continue_on_error": continue_on_error,
            },
            cause=cause,
        )
        self.operation_id = operation_id
        self.operation_label = operation_label
        self.continue_on_error = continue_on_error


class ExecutionInterrupted(CommandeurError):
    """Raised by a checkpoint once a stop was requested"""

    def __init__(self, reason: str = "Execution interrupted"):
        super().__init__(reason, details={"reason": reason})
        self.reason = reason
