# Copyright 2025 Ilya Makarov
#
# Licensed under the Business Source License 1.1
# Change Date: 2028-11-05
# Change License: Apache License 2.0

"""
Saved workflows

Workflows are stored as one JSON document per workflow in the configured
workflows directory:

    {"version": 1, "id": "...", "name": "...", "savedAt": "...", "workflow": {...}}

Workflow definitions can also be read from standalone .json / .yaml files.
"""

import json
import logging
import re
import uuid
from pathlib import Path
from typing import List, Optional

import yaml
from pydantic import ValidationError

from .exceptions import WorkflowParseError, WorkflowStorageError
from .models import CamelModel, Workflow, utc_timestamp

logger = logging.getLogger("commandeur.saved_workflows")

STORE_FORMAT_VERSION = 1

_ID_RE = re.compile(r"^[A-Za-z0-9_-]+$")


class SavedWorkflowSummary(CamelModel):
    id: str
    name: str
    saved_at: str


class StoredWorkflow(CamelModel):
    version: int = STORE_FORMAT_VERSION
    id: str
    name: str
    saved_at: str
    workflow: Workflow

    def summary(self) -> SavedWorkflowSummary:
        return SavedWorkflowSummary(id=self.id, name=self.name, saved_at=self.saved_at)


class WorkflowStore:
    """JSON-file backed workflow persistence"""

    def __init__(self, directory: Optional[Path] = None):
        if directory is None:
            from .config import get_config

            directory = get_config().paths.workflows_dir
        self.directory = Path(directory)

    def _path(self, workflow_id: str) -> Path:
        if not _ID_RE.match(workflow_id or ""):
            raise WorkflowStorageError(
                f"Invalid workflow id: {workflow_id!r}",
                details={"id": workflow_id},
            )
        return self.directory / f"{workflow_id}.json"

    def _read(self, workflow_id: str) -> StoredWorkflow:
        return self._read_path(self._path(workflow_id), workflow_id)

    def _read_path(self, path: Path, workflow_id: str) -> StoredWorkflow:
        try:
            content = path.read_text(encoding="utf-8")
        except OSError as e:
            raise WorkflowStorageError(
                f"Cannot open saved workflow {workflow_id}", cause=e
            )
        try:
            return StoredWorkflow.model_validate_json(content)
        except ValidationError as e:
            raise WorkflowStorageError(
                f"Cannot parse saved workflow {workflow_id}", cause=e
            )

    def save(
        self, workflow: Workflow, existing_id: Optional[str] = None
    ) -> SavedWorkflowSummary:
        """Save ``workflow``; ``existing_id`` is reused only if that file exists."""
        workflow_id = None
        if existing_id and _ID_RE.match(existing_id) and self._path(existing_id).exists():
            workflow_id = existing_id
        if workflow_id is None:
            workflow_id = str(uuid.uuid4())

        stored = StoredWorkflow(
            id=workflow_id,
            name=workflow.name,
            saved_at=utc_timestamp(),
            workflow=workflow,
        )
        path = self._path(workflow_id)
        try:
            self.directory.mkdir(parents=True, exist_ok=True)
            path.write_text(
                json.dumps(stored.to_dict(), indent=2, ensure_ascii=False),
                encoding="utf-8",
            )
        except OSError as e:
            raise WorkflowStorageError(f"Cannot save workflow {workflow_id}", cause=e)

        logger.info(f"Saved workflow '{workflow.name}' as {workflow_id}")
        return stored.summary()

    def list(self) -> List[SavedWorkflowSummary]:
        """Summaries of every saved workflow, most recently saved first."""
        if not self.directory.exists():
            return []
        summaries = []
        for path in self.directory.glob("*.json"):
            if not path.is_file():
                continue
            summaries.append(self._read_path(path, path.stem).summary())
        summaries.sort(key=lambda s: s.saved_at, reverse=True)
        return summaries

    def load(self, workflow_id: str) -> Workflow:
        return self._read(workflow_id).workflow

    def delete(self, workflow_id: str):
        path = self._path(workflow_id)
        if path.exists():
            path.unlink()
            logger.info(f"Deleted workflow {workflow_id}")

    def duplicate(self, workflow_id: str) -> SavedWorkflowSummary:
        workflow = self.load(workflow_id).model_copy(deep=True)
        name = workflow.name.strip()
        if name:
            workflow.name = f"{name} (copy)"
        return self.save(workflow)


def load_workflow_file(path) -> Workflow:
    """
    Parse a workflow definition from a .json, .yaml or .yml file.

    Raises:
        WorkflowParseError: unreadable file, invalid syntax or invalid workflow
    """
    path = Path(path)
    try:
        content = path.read_text(encoding="utf-8")
    except OSError as e:
        raise WorkflowParseError(f"Cannot read workflow file: {e}", source=str(path), cause=e)

    try:
        if path.suffix.lower() == ".json":
            data = json.loads(content)
        else:
            data = yaml.safe_load(content)
    except (json.JSONDecodeError, yaml.YAMLError) as e:
        raise WorkflowParseError(f"Invalid workflow syntax: {e}", source=str(path), cause=e)

    if isinstance(data, dict) and "workflow" in data and "operations" not in data:
        # saved-workflow document
        data = data["workflow"]
    if not isinstance(data, dict):
        raise WorkflowParseError("Workflow file must contain a mapping", source=str(path))

    try:
        return Workflow.model_validate(data)
    except ValidationError as e:
        raise WorkflowParseError(f"Invalid workflow: {e}", source=str(path), cause=e)


# ============================================================================
# Convenience Functions
# ============================================================================


def save_workflow(
    workflow: Workflow, existing_id: Optional[str] = None, directory: Optional[Path] = None
) -> SavedWorkflowSummary:
    return WorkflowStore(directory).save(workflow, existing_id=existing_id)


def list_workflows(directory: Optional[Path] = None) -> List[SavedWorkflowSummary]:
    return WorkflowStore(directory).list()


def load_workflow(workflow_id: str, directory: Optional[Path] = None) -> Workflow:
    return WorkflowStore(directory).load(workflow_id)


def delete_workflow(workflow_id: str, directory: Optional[Path] = None):
    WorkflowStore(directory).delete(workflow_id)


def duplicate_workflow(
    workflow_id: str, directory: Optional[Path] = None
) -> SavedWorkflowSummary:
    return WorkflowStore(directory).duplicate(workflow_id)
