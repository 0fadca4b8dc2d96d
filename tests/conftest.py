# Copyright 2025 Ilya Makarov
#
# Licensed under the Business Source License 1.1
# Change Date: 2028-11-05
# Change License: Apache License 2.0

"""Shared fixtures for the Commandeur test-suite"""

import logging
import sys
from pathlib import Path

import pytest

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from commandeur.core import config as config_module
from commandeur.core import execution_manager as manager_module
from commandeur.core import workspace as workspace_module
from commandeur.core.models import Workflow


@pytest.fixture(autouse=True)
def isolated_home(tmp_path, monkeypatch):
    """Point COMMANDEUR_HOME at a temp dir and reset process-wide singletons"""
    home = tmp_path / "commandeur-home"
    monkeypatch.setenv("COMMANDEUR_HOME", str(home))
    monkeypatch.setenv("COMMANDEUR_NO_FILE_LOGS", "true")
    for var in (
        "COMMANDEUR_LOG_DIR",
        "COMMANDEUR_WORKFLOWS_DIR",
        "COMMANDEUR_TEMP_DIR",
        "COMMANDEUR_LOCK_TIMEOUT",
        "COMMANDEUR_PYTHON",
        "COMMANDEUR_LOG_LEVEL",
    ):
        monkeypatch.delenv(var, raising=False)
    monkeypatch.setenv("COMMANDEUR_PYTHON", sys.executable)

    config_module.set_config(None)
    workspace_module._registry = None
    manager_module._manager = None

    yield home

    config_module.set_config(None)
    workspace_module._registry = None
    manager_module._manager = None
    logging.getLogger("commandeur").handlers.clear()


@pytest.fixture
def batch(tmp_path):
    """A directory workspace with two submission folders"""
    root = tmp_path / "batch"
    for name in ("alice", "bob"):
        folder = root / name
        folder.mkdir(parents=True)
        (folder / "notes.txt").write_text("hello world\n", encoding="utf-8")
    return root


@pytest.fixture
def make_workflow():
    """Build a Workflow from plain operation dicts"""

    def _make(*operations, name="Test workflow", version=None) -> Workflow:
        return Workflow.model_validate(
            {"name": name, "version": version, "operations": list(operations)}
        )

    return _make
