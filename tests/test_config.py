# Copyright 2025 Ilya Makarov
#
# Licensed under the Business Source License 1.1
# Change Date: 2028-11-05
# Change License: Apache License 2.0

"""
Tests for configuration and application logging

Tests:
- Environment overrides
- Config file merging
- Validation fallbacks
- Logger setup
"""

import logging
import os

import pytest

from commandeur.core.config import (
    CommandeurConfig,
    ConfigLoader,
    ensure_directories,
    get_config,
    load_config,
    reload_config,
    set_config,
)
from commandeur.core.exceptions import ConfigError
from commandeur.core.logger import CommandeurLogger, configure_logging


def test_home_env_sets_all_paths(isolated_home):
    """Test COMMANDEUR_HOME relocates every directory"""
    config = get_config()
    assert config.paths.home == isolated_home
    assert config.paths.logs_dir == isolated_home / "logs"
    assert config.paths.workflows_dir == isolated_home / "workflows"
    assert config.paths.temp_dir == isolated_home / "tmp"


def test_specific_env_overrides(monkeypatch, tmp_path):
    """Test individual variables win over the home directory"""
    monkeypatch.setenv("COMMANDEUR_WORKFLOWS_DIR", str(tmp_path / "wf"))
    monkeypatch.setenv("COMMANDEUR_LOCK_TIMEOUT", "1.5")
    monkeypatch.setenv("COMMANDEUR_PYTHON", os.pathsep.join(["py-a", "py-b"]))
    monkeypatch.setenv("COMMANDEUR_LOG_LEVEL", "debug")

    config = load_config()
    assert config.paths.workflows_dir == tmp_path / "wf"
    assert config.runtime.workspace_lock_timeout_seconds == 1.5
    assert config.runtime.interpreter_candidates == ["py-a", "py-b"]
    assert config.observability.log_level == "DEBUG"
    assert config.observability.file_logging is False


def test_invalid_env_value_ignored(monkeypatch):
    """Test a non-numeric timeout drops the environment layer"""
    monkeypatch.setenv("COMMANDEUR_LOCK_TIMEOUT", "soon")
    config = load_config()
    assert config.runtime.workspace_lock_timeout_seconds == 5.0


def test_invalid_values_fall_back_to_defaults(tmp_path):
    """Test a config file failing validation yields defaults"""
    path = tmp_path / "config.yaml"
    path.write_text("observability:\n  log_level: LOUD\n", encoding="utf-8")
    config = load_config(config_file=path, env_override=False)
    assert config.observability.log_level == "INFO"


def test_config_file_loaded(tmp_path):
    """Test values from an explicit config file"""
    path = tmp_path / "config.yaml"
    path.write_text(
        "runtime:\n  repack_archives: false\n  interpreter_candidates: [pypy3]\n",
        encoding="utf-8",
    )
    config = load_config(config_file=path, env_override=False)
    assert config.runtime.repack_archives is False
    assert config.runtime.interpreter_candidates == ["pypy3"]


def test_load_from_file_rejects_non_mapping(tmp_path):
    """Test unreadable or non-mapping files contribute nothing"""
    path = tmp_path / "list.yaml"
    path.write_text("- a\n- b\n", encoding="utf-8")
    assert ConfigLoader.load_from_file(path) == {}
    assert ConfigLoader.load_from_file(tmp_path / "missing.yaml") == {}


@pytest.mark.parametrize(
    "name,content",
    [
        ("list.yaml", "- a\n- b\n"),
        ("broken.yaml", "runtime: [unclosed"),
        ("missing.yaml", None),
    ],
)
def test_explicit_config_file_errors(tmp_path, name, content):
    """Test an explicit config file that cannot be used raises ConfigError"""
    path = tmp_path / name
    if content is not None:
        path.write_text(content, encoding="utf-8")
    with pytest.raises(ConfigError) as exc_info:
        load_config(config_file=path, env_override=False)
    assert exc_info.value.details["path"] == str(path)


def test_merge_configs_is_deep():
    """Test nested sections merge key by key"""
    merged = ConfigLoader.merge_configs(
        {"runtime": {"repack_archives": False, "workspace_lock_timeout_seconds": 2}},
        {"runtime": {"workspace_lock_timeout_seconds": 9}},
    )
    assert merged == {
        "runtime": {"repack_archives": False, "workspace_lock_timeout_seconds": 9}
    }


def test_empty_interpreter_list_rejected():
    """Test at least one interpreter candidate is required"""
    with pytest.raises(ValueError):
        CommandeurConfig(runtime={"interpreter_candidates": ["  "]})


def test_set_and_reload_config(tmp_path):
    """Test the global instance can be replaced and reloaded"""
    custom = CommandeurConfig(paths={"home": str(tmp_path / "custom")})
    set_config(custom)
    assert get_config() is custom
    assert get_config().paths.home == tmp_path / "custom"

    reloaded = reload_config()
    assert reloaded is get_config()
    assert reloaded is not custom


def test_ensure_directories(isolated_home):
    """Test every configured directory is created"""
    ensure_directories()
    for name in ("logs", "workflows", "tmp"):
        assert (isolated_home / name).is_dir()


# ============================================================================
# Logging
# ============================================================================


def test_logger_file_output(tmp_path):
    """Test file logging writes to <name>.log in the log directory"""
    app_logger = CommandeurLogger(
        name="commandeur.test-file",
        level="DEBUG",
        log_dir=tmp_path / "logs",
        console_output=False,
    )
    app_logger.logger.debug("written to file")
    for handler in app_logger.logger.handlers:
        handler.flush()

    assert app_logger.log_file == tmp_path / "logs" / "commandeur.test-file.log"
    assert "written to file" in app_logger.log_file.read_text(encoding="utf-8")
    for handler in list(app_logger.logger.handlers):
        handler.close()
        app_logger.logger.removeHandler(handler)


def test_logger_level_parsing():
    """Test unknown level names fall back to INFO"""
    assert CommandeurLogger._parse_level("warning") == logging.WARNING
    assert CommandeurLogger._parse_level("chatty") == logging.INFO


def test_configure_logging_respects_no_file_logs():
    """Test COMMANDEUR_NO_FILE_LOGS disables the rotating file"""
    configured = configure_logging(level="ERROR")
    assert configured.log_file is None
    assert configured.logger.level == logging.ERROR
    assert len(configured.logger.handlers) == 1
