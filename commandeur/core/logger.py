# Copyright 2025 Ilya Makarov
#
# Licensed under the Business Source License 1.1
# Change Date: 2028-11-05
# Change License: Apache License 2.0

"""
Application logging for Commandeur.

Console and rotating file output for the ``commandeur`` logger tree.
This is the developer-facing log; the per-run audit trail lives in
ExecutionResult.log_entries and the persisted run log.
"""

import logging
import os
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional


class CommandeurLogger:
    """
    Configures one logger of the ``commandeur`` hierarchy.

    Features:
    - Console and file logging
    - Automatic log rotation
    - Structured log format with timestamps
    """

    def __init__(
        self,
        name: str = "commandeur",
        level: str = "INFO",
        log_dir: Optional[Path] = None,
        console_output: bool = True,
        file_output: bool = True,
        stream=None,
    ):
        self.name = name
        self.logger = logging.getLogger(name)

        # Clear any existing handlers
        self.logger.handlers.clear()
        self.logger.setLevel(self._parse_level(level))

        console_formatter = logging.Formatter(
            fmt="[%(asctime)s] [%(name)s:%(levelname)s] %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )

        file_formatter = logging.Formatter(
            fmt="%(asctime)s | %(name)s | %(levelname)s | %(filename)s:%(lineno)d | %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )

        if console_output:
            console_handler = logging.StreamHandler(stream or sys.stderr)
            console_handler.setFormatter(console_formatter)
            console_handler.setLevel(self._parse_level(level))
            self.logger.addHandler(console_handler)

        self.log_file: Optional[Path] = None
        if file_output:
            if log_dir is None:
                log_dir = Path.home() / ".commandeur" / "logs"

            log_dir.mkdir(parents=True, exist_ok=True)
            self.log_file = log_dir / f"{name}.log"

            # Rotate after 10MB, keep 5 backup files
            file_handler = RotatingFileHandler(
                self.log_file,
                maxBytes=10 * 1024 * 1024,
                backupCount=5,
                encoding="utf-8",
            )
            file_handler.setFormatter(file_formatter)
            file_handler.setLevel(logging.DEBUG)
            self.logger.addHandler(file_handler)

    @staticmethod
    def _parse_level(level: str) -> int:
        """Convert string level to logging constant"""
        levels = {
            "DEBUG": logging.DEBUG,
            "INFO": logging.INFO,
            "WARNING": logging.WARNING,
            "ERROR": logging.ERROR,
            "CRITICAL": logging.CRITICAL,
        }
        return levels.get(level.upper(), logging.INFO)


def configure_logging(
    level: Optional[str] = None,
    log_dir: Optional[Path] = None,
    file_output: Optional[bool] = None,
) -> CommandeurLogger:
    """
    (Re)configure the root ``commandeur`` logger from the active config.

    Explicit arguments win over configuration values.
    """
    from .config import get_config

    config = get_config()
    if file_output is None:
        file_output = config.observability.file_logging and (
            os.getenv("COMMANDEUR_NO_FILE_LOGS", "false").lower() != "true"
        )

    return CommandeurLogger(
        name="commandeur",
        level=level or config.observability.log_level,
        log_dir=log_dir or config.paths.logs_dir,
        file_output=file_output,
    )
