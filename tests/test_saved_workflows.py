# Copyright 2025 Ilya Makarov
#
# Licensed under the Business Source License 1.1
# Change Date: 2028-11-05
# Change License: Apache License 2.0

"""Tests for saved workflow persistence and workflow files"""

import json
import time

import pytest

from commandeur.core.exceptions import WorkflowParseError, WorkflowStorageError
from commandeur.core.saved_workflows import (
    WorkflowStore,
    delete_workflow,
    duplicate_workflow,
    list_workflows,
    load_workflow,
    load_workflow_file,
    save_workflow,
)


@pytest.fixture
def store(tmp_path):
    return WorkflowStore(tmp_path / "workflows")


@pytest.fixture
def workflow(make_workflow):
    return make_workflow(
        {"id": "m", "kind": "mkdir", "label": "M", "target": "out"}, name="Grading"
    )


def test_save_and_load(store, workflow):
    """Test a saved workflow loads back identically"""
    summary = store.save(workflow)
    assert summary.name == "Grading"

    document = json.loads((store.directory / f"{summary.id}.json").read_text(encoding="utf-8"))
    assert document["version"] == 1
    assert document["savedAt"] == summary.saved_at
    assert document["workflow"]["operations"][0]["kind"] == "mkdir"

    assert store.load(summary.id) == workflow


def test_save_reuses_existing_id(store, workflow):
    """Test saving with a known id overwrites in place"""
    first = store.save(workflow)
    workflow.name = "Renamed"
    second = store.save(workflow, existing_id=first.id)

    assert second.id == first.id
    assert [s.name for s in store.list()] == ["Renamed"]


def test_save_unknown_id_creates_new(store, workflow):
    """Test an unknown existing id gets a fresh id"""
    summary = store.save(workflow, existing_id="not-there")
    assert summary.id != "not-there"


def test_list_newest_first(store, workflow):
    """Test summaries are ordered by save time"""
    older = store.save(workflow)
    time.sleep(0.01)
    newer = store.save(workflow)
    assert [s.id for s in store.list()] == [newer.id, older.id]


def test_list_empty_directory(tmp_path):
    """Test a missing directory lists nothing"""
    assert WorkflowStore(tmp_path / "absent").list() == []


def test_delete(store, workflow):
    """Test delete removes the document and ignores unknown ids"""
    summary = store.save(workflow)
    store.delete(summary.id)
    store.delete(summary.id)
    assert store.list() == []
    with pytest.raises(WorkflowStorageError):
        store.load(summary.id)


def test_duplicate(store, workflow):
    """Test duplicates get a new id and a copy suffix"""
    original = store.save(workflow)
    copy = store.duplicate(original.id)
    assert copy.id != original.id
    assert copy.name == "Grading (copy)"
    assert store.load(original.id).name == "Grading"


@pytest.mark.parametrize("bad_id", ["../escape", "a/b", "", "name.json"])
def test_invalid_ids_rejected(store, bad_id):
    """Test ids that could leave the directory are refused"""
    with pytest.raises(WorkflowStorageError):
        store.load(bad_id)


def test_list_reads_documents_by_path(store, workflow):
    """Test a document whose file name is not a valid id is still listed"""
    summary = store.save(workflow)
    source = store.directory / f"{summary.id}.json"
    source.rename(store.directory / "my flow.json")

    assert [s.name for s in store.list()] == ["Grading"]


def test_corrupt_document(store):
    """Test an unparsable document raises WorkflowStorageError"""
    store.directory.mkdir(parents=True)
    (store.directory / "broken.json").write_text("{", encoding="utf-8")
    with pytest.raises(WorkflowStorageError):
        store.load("broken")


def test_default_directory_from_config(isolated_home):
    """Test the store defaults to the configured workflows directory"""
    assert WorkflowStore().directory == isolated_home / "workflows"


# ============================================================================
# Workflow files
# ============================================================================


def test_load_yaml_file(tmp_path):
    """Test YAML workflow files with camelCase keys"""
    path = tmp_path / "wf.yaml"
    path.write_text(
        "name: Demo\n"
        "operations:\n"
        "  - id: s\n"
        "    kind: run-script\n"
        "    label: Script\n"
        "    continueOnError: true\n"
        "    inlineScript: |\n"
        "      print('hi')\n",
        encoding="utf-8",
    )
    workflow = load_workflow_file(path)
    assert workflow.name == "Demo"
    assert workflow.operations[0].continue_on_error is True
    assert workflow.operations[0].inline_script == "print('hi')\n"


def test_load_saved_document_file(store, workflow):
    """Test a saved document can be used as a workflow file"""
    summary = store.save(workflow)
    loaded = load_workflow_file(store.directory / f"{summary.id}.json")
    assert loaded == workflow


@pytest.mark.parametrize(
    "name,content",
    [
        ("bad.json", "{not json"),
        ("bad.yaml", "name: [unclosed"),
        ("list.yaml", "- just\n- a list\n"),
        ("invalid.yaml", "name: X\noperations:\n  - kind: mkdir\n"),
    ],
)
def test_load_invalid_files(tmp_path, name, content):
    """Test syntax, shape and schema errors raise WorkflowParseError"""
    path = tmp_path / name
    path.write_text(content, encoding="utf-8")
    with pytest.raises(WorkflowParseError) as exc_info:
        load_workflow_file(path)
    assert exc_info.value.source == str(path)


def test_load_missing_file(tmp_path):
    """Test an unreadable file raises WorkflowParseError"""
    with pytest.raises(WorkflowParseError):
        load_workflow_file(tmp_path / "nope.yaml")


def test_module_functions_use_configured_directory(isolated_home, workflow):
    """Test the convenience functions operate on the configured store"""
    summary = save_workflow(workflow)
    assert (isolated_home / "workflows" / f"{summary.id}.json").exists()
    assert [s.id for s in list_workflows()] == [summary.id]
    assert load_workflow(summary.id).name == "Grading"

    copy = duplicate_workflow(summary.id)
    delete_workflow(summary.id)
    assert [s.id for s in list_workflows()] == [copy.id]
