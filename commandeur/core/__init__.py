# Copyright 2025 Ilya Makarov
#
# Licensed under the Business Source License 1.1
# Change Date: 2028-11-05
# Change License: Apache License 2.0

"""
Commandeur Core - Init file

Exports the workflow model, the execution engine and its collaborators.
"""

from .conditions import ConditionEvaluation, evaluate_condition, normalize_condition
from .config import CommandeurConfig, get_config, load_config, reload_config
from .dispatcher import OperationDispatcher
from .events import Event, EventBus, EventType
from .exceptions import (
    CommandeurError,
    ConditionError,
    ExecutionAlreadyRunningError,
    ExecutionInterrupted,
    OperationFailedError,
    PathValidationError,
    WorkflowParseError,
    WorkflowStorageError,
    WorkspaceError,
    WorkspaceUnavailableError,
)
from .execution_control import ExecutionControl
from .execution_manager import ExecutionManager, get_execution_manager
from .executor import WorkflowExecutor, execute_workflow
from .interpreter import ExecutionEnv
from .models import (
    ConditionTest,
    ExecutionLogEntry,
    ExecutionResult,
    ExecutionStatus,
    ValidationLevel,
    ValidationMessage,
    Workflow,
)
from .reporting import Reporter
from .saved_workflows import (
    WorkflowStore,
    delete_workflow,
    duplicate_workflow,
    list_workflows,
    load_workflow,
    load_workflow_file,
    save_workflow,
)
from .validation import validate_workflow
from .workspace import (
    WorkspaceHandle,
    WorkspaceRegistry,
    get_registry,
    prepare_workspace,
    resolve_in_folder,
)

__all__ = [
    # Model
    "Workflow",
    "ConditionTest",
    "ExecutionLogEntry",
    "ExecutionResult",
    "ExecutionStatus",
    "ValidationLevel",
    "ValidationMessage",
    # Engine
    "ExecutionControl",
    "OperationDispatcher",
    "WorkflowExecutor",
    "execute_workflow",
    "ExecutionEnv",
    "Reporter",
    "ConditionEvaluation",
    "evaluate_condition",
    "normalize_condition",
    # Collaborators
    "ExecutionManager",
    "get_execution_manager",
    "WorkspaceHandle",
    "WorkspaceRegistry",
    "get_registry",
    "prepare_workspace",
    "resolve_in_folder",
    "WorkflowStore",
    "save_workflow",
    "list_workflows",
    "load_workflow",
    "delete_workflow",
    "duplicate_workflow",
    "load_workflow_file",
    "validate_workflow",
    # Events / config
    "Event",
    "EventBus",
    "EventType",
    "CommandeurConfig",
    "get_config",
    "load_config",
    "reload_config",
    # Errors
    "CommandeurError",
    "ConditionError",
    "ExecutionAlreadyRunningError",
    "ExecutionInterrupted",
    "OperationFailedError",
    "PathValidationError",
    "WorkflowParseError",
    "WorkflowStorageError",
    "WorkspaceError",
    "WorkspaceUnavailableError",
]
