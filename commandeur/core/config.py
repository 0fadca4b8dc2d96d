# Copyright 2025 Ilya Makarov
#
# Licensed under the Business Source License 1.1
# Change Date: 2028-11-05
# Change License: Apache License 2.0

"""
Commandeur Configuration System

Centralized configuration management supporting:
- Environment variables (COMMANDEUR_*)
- Config files (~/.commandeur/config.yaml, ./.commandeur.yaml)
- Programmatic defaults
- Pydantic validation
"""

import logging
import os
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from .exceptions import ConfigError

logger = logging.getLogger("commandeur.config")


def _default_home() -> Path:
    return Path.home() / ".commandeur"


def _default_interpreters() -> List[str]:
    if sys.platform == "win32":
        return ["python", "python3"]
    return ["python3", "python"]


# ============================================================================
# Configuration Models
# ============================================================================


class PathsConfig(BaseModel):
    """Path configuration"""
    model_config = ConfigDict(arbitrary_types_allowed=True)

    home: Path = Field(
        default_factory=_default_home,
        description="Commandeur home directory",
    )
    logs_dir: Path = Field(
        default_factory=lambda: _default_home() / "logs",
        description="Execution log directory",
    )
    workflows_dir: Path = Field(
        default_factory=lambda: _default_home() / "workflows",
        description="Saved workflows directory",
    )
    temp_dir: Path = Field(
        default_factory=lambda: _default_home() / "tmp",
        description="Extraction directory for archive workspaces",
    )

    @field_validator("*", mode="before")
    @classmethod
    def ensure_path(cls, v):
        """Convert strings to Path objects"""
        if isinstance(v, str):
            return Path(v).expanduser()
        return v


class RuntimeConfig(BaseModel):
    """Runtime execution configuration"""

    workspace_lock_timeout_seconds: float = Field(
        default=5.0,
        description="How long a run waits for the workspace lock",
        ge=0,
    )
    interpreter_candidates: List[str] = Field(
        default_factory=_default_interpreters,
        description="Script interpreters tried in order",
    )
    repack_archives: bool = Field(
        default=True,
        description="Repack .zip workspaces after a run",
    )

    @field_validator("interpreter_candidates")
    @classmethod
    def validate_candidates(cls, v):
        """Reject an empty candidate list"""
        cleaned = [c.strip() for c in v if c and c.strip()]
        if not cleaned:
            raise ValueError("At least one interpreter candidate is required")
        return cleaned


class ObservabilityConfig(BaseModel):
    """Logging configuration"""

    log_level: str = Field(default="INFO", description="Logging level")
    file_logging: bool = Field(
        default=True, description="Write application logs to the logs directory"
    )

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v):
        """Validate log level"""
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        v_upper = v.upper()
        if v_upper not in valid_levels:
            raise ValueError(f"Invalid log level. Must be one of: {valid_levels}")
        return v_upper


class CommandeurConfig(BaseModel):
    """Complete Commandeur configuration"""
    model_config = ConfigDict(arbitrary_types_allowed=True)

    paths: PathsConfig = Field(
        default_factory=PathsConfig, description="Path configuration"
    )
    runtime: RuntimeConfig = Field(
        default_factory=RuntimeConfig, description="Runtime configuration"
    )
    observability: ObservabilityConfig = Field(
        default_factory=ObservabilityConfig,
        description="Logging configuration",
    )


# ============================================================================
# Configuration Loader
# ============================================================================


class ConfigLoader:
    """Load configuration from multiple sources"""

    @staticmethod
    def load_from_env() -> Dict[str, Any]:
        """Load configuration from environment variables"""
        config: Dict[str, Any] = {}

        home = os.getenv("COMMANDEUR_HOME")
        if home:
            home_path = Path(home).expanduser()
            paths = config.setdefault("paths", {})
            paths["home"] = home_path
            paths["logs_dir"] = home_path / "logs"
            paths["workflows_dir"] = home_path / "workflows"
            paths["temp_dir"] = home_path / "tmp"

        log_dir = os.getenv("COMMANDEUR_LOG_DIR")
        if log_dir:
            config.setdefault("paths", {})["logs_dir"] = log_dir

        workflows_dir = os.getenv("COMMANDEUR_WORKFLOWS_DIR")
        if workflows_dir:
            config.setdefault("paths", {})["workflows_dir"] = workflows_dir

        temp_dir = os.getenv("COMMANDEUR_TEMP_DIR")
        if temp_dir:
            config.setdefault("paths", {})["temp_dir"] = temp_dir

        lock_timeout = os.getenv("COMMANDEUR_LOCK_TIMEOUT")
        if lock_timeout:
            config.setdefault("runtime", {})["workspace_lock_timeout_seconds"] = float(
                lock_timeout
            )

        python = os.getenv("COMMANDEUR_PYTHON")
        if python:
            config.setdefault("runtime", {})["interpreter_candidates"] = [
                p for p in python.split(os.pathsep) if p
            ]

        log_level = os.getenv("COMMANDEUR_LOG_LEVEL")
        if log_level:
            config.setdefault("observability", {})["log_level"] = log_level

        no_file_logs = os.getenv("COMMANDEUR_NO_FILE_LOGS")
        if no_file_logs:
            config.setdefault("observability", {})["file_logging"] = (
                no_file_logs.lower() != "true"
            )

        return config

    @staticmethod
    def read_file(file_path: Path) -> Dict[str, Any]:
        """
        Read a YAML config file.

        Raises:
            ConfigError: missing, unreadable or malformed file
        """
        try:
            with open(file_path, "r", encoding="utf-8") as f:
                data = yaml.safe_load(f) or {}
        except (OSError, yaml.YAMLError) as e:
            raise ConfigError(
                f"Failed to load config file {file_path}: {e}",
                details={"path": str(file_path)},
                cause=e,
            )

        if not isinstance(data, dict):
            raise ConfigError(
                f"Config file {file_path} must contain a mapping",
                details={"path": str(file_path)},
            )
        return data

    @staticmethod
    def load_from_file(file_path: Path) -> Dict[str, Any]:
        """Load configuration from a YAML file; problems are logged and ignored"""
        if not file_path.exists():
            return {}

        try:
            return ConfigLoader.read_file(file_path)
        except ConfigError as e:
            logger.error(e.message)
            return {}

    @staticmethod
    def merge_configs(*configs: Dict[str, Any]) -> Dict[str, Any]:
        """Deep merge multiple configuration dictionaries"""
        result: Dict[str, Any] = {}
        for config in configs:
            for key, value in config.items():
                if (
                    key in result
                    and isinstance(result[key], dict)
                    and isinstance(value, dict)
                ):
                    result[key] = ConfigLoader.merge_configs(result[key], value)
                else:
                    result[key] = value
        return result


# ============================================================================
# Global Configuration Instance
# ============================================================================

_config: Optional[CommandeurConfig] = None


def get_config() -> CommandeurConfig:
    """
    Get global Commandeur configuration

    Configuration is loaded from (in order of precedence):
    1. Environment variables (COMMANDEUR_*)
    2. .commandeur.yaml in current directory
    3. ~/.commandeur/config.yaml
    4. Default values
    """
    global _config

    if _config is None:
        _config = load_config()

    return _config


def load_config(
    config_file: Optional[Path] = None, env_override: bool = True
) -> CommandeurConfig:
    """
    Load configuration from all sources

    Args:
        config_file: Optional specific config file to load
        env_override: Whether environment variables override file config

    Returns:
        CommandeurConfig instance

    Raises:
        ConfigError: ``config_file`` cannot be read
    """
    configs = []

    default_locations = [
        _default_home() / "config.yaml",
        Path.cwd() / ".commandeur.yaml",
    ]

    for location in default_locations:
        if location.exists():
            file_config = ConfigLoader.load_from_file(location)
            if file_config:
                configs.append(file_config)
                logger.debug(f"Loaded config from {location}")

    if config_file:
        file_config = ConfigLoader.read_file(Path(config_file))
        if file_config:
            configs.append(file_config)
            logger.debug(f"Loaded config from {config_file}")

    if env_override:
        try:
            env_config = ConfigLoader.load_from_env()
        except ValueError as e:
            logger.error(f"Invalid environment configuration: {e}")
            env_config = {}
        if env_config:
            configs.append(env_config)
            logger.debug("Loaded config from environment")

    merged = ConfigLoader.merge_configs(*configs) if configs else {}

    try:
        return CommandeurConfig(**merged)
    except ValidationError as e:
        logger.error(f"Config validation failed: {e}")
        logger.warning("Using default configuration")
        return CommandeurConfig()


def set_config(config: Optional[CommandeurConfig]):
    """Replace the global configuration (None resets to lazy loading)"""
    global _config
    _config = config


def reload_config() -> CommandeurConfig:
    """Reload global configuration"""
    global _config
    _config = load_config()
    logger.info("Configuration reloaded")
    return _config


def ensure_directories(config: Optional[CommandeurConfig] = None):
    """Ensure all configured directories exist"""
    if config is None:
        config = get_config()

    directories = [
        config.paths.home,
        config.paths.logs_dir,
        config.paths.workflows_dir,
        config.paths.temp_dir,
    ]

    for directory in directories:
        try:
            directory.mkdir(parents=True, exist_ok=True)
            logger.debug(f"Ensured directory: {directory}")
        except OSError as e:
            logger.error(f"Failed to create directory {directory}: {e}")
