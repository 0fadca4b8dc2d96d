# Copyright 2025 Ilya Makarov
#
# Licensed under the Business Source License 1.1
# Change Date: 2028-11-05
# Change License: Apache License 2.0

"""
Commandeur data model

Pydantic models for workflows and everything a run reports back:
- Workflow / Operation tree (tagged union on ``kind``)
- ConditionTest used by ``if`` operations
- ExecutionLogEntry / ValidationMessage / ExecutionResult

Serialized documents use camelCase keys; both camelCase and snake_case are
accepted on input.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Annotated, Dict, Iterator, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

WORKSPACE_OPERATION_ID = "__workspace__"
WORKSPACE_OPERATION_LABEL = "Workspace"


class CamelModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        use_enum_values=False,
    )

    def to_dict(self) -> dict:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


# ============================================================================
# Enumerations
# ============================================================================


class ValidationLevel(str, Enum):
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"

    @property
    def log_label(self) -> str:
        """Upper-case tag used in the persisted text log"""
        return {"info": "INFO", "warning": "WARN", "error": "ERROR"}[self.value]


class ExecutionStatus(str, Enum):
    IDLE = "idle"
    RUNNING = "running"
    PAUSED = "paused"
    STOPPING = "stopping"


class ShellKind(str, Enum):
    DEFAULT = "default"
    POWERSHELL = "powershell"
    BASH = "bash"
    ZSH = "zsh"


class ReplaceMode(str, Enum):
    PLAIN = "plain"
    REGEX = "regex"


class RenameMode(str, Enum):
    SUFFIX = "suffix"
    PREFIX = "prefix"
    CHANGE_EXTENSION = "change-extension"
    REPLACE = "replace"


class ScriptEntry(str, Enum):
    INLINE = "inline"
    FILE = "file"


class ConditionSelector(str, Enum):
    CURRENT_FOLDER_NAME = "current-folder-name"
    FILE_SEARCH = "file-search"
    FILE_COUNT = "file-count"


class ConditionOperator(str, Enum):
    EQUALS = "equals"
    CONTAINS = "contains"
    REGEX = "regex"
    EXISTS = "exists"
    NOT_EXISTS = "not-exists"
    GREATER_THAN = "greater-than"
    LESS_THAN = "less-than"


class ConditionScope(str, Enum):
    CURRENT_FOLDER = "current-folder"
    RECURSIVE = "recursive"


# ============================================================================
# Conditions
# ============================================================================


class ConditionTest(CamelModel):
    """Declarative predicate evaluated per folder by ``if`` operations"""

    selector: Optional[ConditionSelector] = None
    operator: Optional[ConditionOperator] = None
    value: Optional[str] = None
    pattern: Optional[str] = None
    scope: Optional[ConditionScope] = None
    exists: Optional[str] = Field(
        default=None, description="Legacy single path; fallback pattern"
    )
    negate: bool = False


# ============================================================================
# Operations
# ============================================================================


class OperationBase(CamelModel):
    """Metadata shared by every operation kind"""

    id: str
    label: str
    comment: Optional[str] = None
    enabled: bool = True
    continue_on_error: bool = False

    @property
    def note(self) -> Optional[str]:
        """Comment text if it carries anything besides whitespace"""
        if self.comment and self.comment.strip():
            return self.comment.strip()
        return None


class CreateFileOperation(OperationBase):
    kind: Literal["create-file"] = "create-file"
    target: str
    content: str = ""
    overwrite: bool = False


class DeleteFileOperation(OperationBase):
    kind: Literal["delete-file"] = "delete-file"
    target: str
    required: bool = False


class CopyOperation(OperationBase):
    kind: Literal["copy"] = "copy"
    source: str
    destination: str
    overwrite: bool = False


class MoveOperation(OperationBase):
    kind: Literal["move"] = "move"
    source: str
    destination: str
    overwrite: bool = False


class RenameOperation(OperationBase):
    kind: Literal["rename"] = "rename"
    target: str
    mode: RenameMode
    value: str = ""
    search: Optional[str] = None
    replace: Optional[str] = None


class ReplaceInFileOperation(OperationBase):
    kind: Literal["replace-in-file"] = "replace-in-file"
    target: str
    search: str
    replace: str = ""
    mode: ReplaceMode = ReplaceMode.PLAIN
    flags: Optional[str] = None


class MkdirOperation(OperationBase):
    kind: Literal["mkdir"] = "mkdir"
    target: str
    recursive: bool = True
    skip_if_exists: bool = True


class ExecOperation(OperationBase):
    kind: Literal["exec"] = "exec"
    command: str
    args: List[str] = Field(default_factory=list)
    shell: ShellKind = ShellKind.DEFAULT
    cwd: Optional[str] = None
    env: Optional[Dict[str, str]] = None


class RunScriptOperation(OperationBase):
    # "python" is the kind name used by older saved workflows
    kind: Literal["run-script", "python"] = "run-script"
    entry: ScriptEntry = ScriptEntry.INLINE
    inline_script: Optional[str] = None
    script_path: Optional[str] = None


class IfOperation(OperationBase):
    kind: Literal["if"] = "if"
    test: ConditionTest
    then: List["Operation"] = Field(default_factory=list)
    else_branch: Optional[List["Operation"]] = Field(default=None, alias="else")

    def branches(self) -> Iterator["Operation"]:
        yield from self.then
        yield from self.else_branch or []


Operation = Annotated[
    Union[
        CreateFileOperation,
        DeleteFileOperation,
        CopyOperation,
        MoveOperation,
        RenameOperation,
        ReplaceInFileOperation,
        MkdirOperation,
        ExecOperation,
        RunScriptOperation,
        IfOperation,
    ],
    Field(discriminator="kind"),
]

IfOperation.model_rebuild()


class Workflow(CamelModel):
    """Ordered operation tree applied to every workspace folder"""

    name: str
    version: Optional[str] = None
    operations: List[Operation] = Field(default_factory=list)

    def enabled_operations(self) -> List[Operation]:
        return [op for op in self.operations if op.enabled]

    def walk(self) -> Iterator[Operation]:
        """Depth-first iteration over every operation, nested ones included"""
        stack = list(reversed(self.operations))
        while stack:
            op = stack.pop()
            yield op
            if isinstance(op, IfOperation):
                stack.extend(reversed(list(op.branches())))

    @property
    def banner(self) -> str:
        if self.version:
            return f'Starting workflow "{self.name}" (version {self.version})'
        return f'Starting workflow "{self.name}"'


# ============================================================================
# Run Reporting
# ============================================================================


def utc_timestamp() -> str:
    return datetime.now(timezone.utc).isoformat()


class ExecutionLogEntry(CamelModel):
    timestamp: str = Field(default_factory=utc_timestamp)
    operation_id: str
    operation_label: str
    level: ValidationLevel
    message: str


class ValidationMessage(CamelModel):
    operation_id: str
    operation_label: Optional[str] = None
    level: ValidationLevel
    message: str
    details: Optional[str] = None
    folders: Optional[List[str]] = None


class ExecutionResult(CamelModel):
    success: bool
    operations_run: int = 0
    log_entries: List[ExecutionLogEntry] = Field(default_factory=list)
    warnings: List[ValidationMessage] = Field(default_factory=list)
    errors: List[ValidationMessage] = Field(default_factory=list)
    log_file_path: Optional[str] = None
    output_archive_path: Optional[str] = None
    stop_reason: Optional[str] = None

    @property
    def interrupted(self) -> bool:
        return self.stop_reason is not None
