# Copyright 2025 Ilya Makarov
#
# Licensed under the Business Source License 1.1
# Change Date: 2028-11-05
# Change License: Apache License 2.0

"""
Cooperative run control shared between the worker and its caller.

States: IDLE -> RUNNING <-> PAUSED, RUNNING/PAUSED -> STOPPING.
The worker calls ``checkpoint()`` at every scheduling boundary; it blocks
while paused and raises ExecutionInterrupted once a stop was requested.
"""

import logging
import threading
from typing import Optional

from .exceptions import ExecutionInterrupted
from .models import ExecutionStatus

logger = logging.getLogger("commandeur.execution_control")

DEFAULT_STOP_REASON = "Execution interrupted"
NO_ACTIVE_EXECUTION = "No active execution"


class ExecutionControl:
    def __init__(self):
        self._cond = threading.Condition(threading.Lock())
        self._status = ExecutionStatus.RUNNING
        self._reason: Optional[str] = None

    def request_pause(self) -> ExecutionStatus:
        with self._cond:
            if self._status == ExecutionStatus.RUNNING:
                self._status = ExecutionStatus.PAUSED
                logger.info("Execution paused")
            return self._status

    def request_resume(self) -> ExecutionStatus:
        with self._cond:
            if self._status == ExecutionStatus.PAUSED:
                self._status = ExecutionStatus.RUNNING
                self._cond.notify_all()
                logger.info("Execution resumed")
            return self._status

    def request_stop(self, reason: Optional[str] = None) -> ExecutionStatus:
        with self._cond:
            self._status = ExecutionStatus.STOPPING
            self._reason = reason
            self._cond.notify_all()
            logger.info(f"Execution stop requested: {reason or DEFAULT_STOP_REASON}")
            return self._status

    def status(self) -> ExecutionStatus:
        with self._cond:
            return self._status

    @property
    def stop_reason(self) -> Optional[str]:
        with self._cond:
            return self._reason

    def checkpoint(self):
        """
        Block while paused; raise ExecutionInterrupted when stopping or idle.

        The condition releases its lock while waiting, so resume/stop from
        another thread are never blocked by a paused worker.
        """
        with self._cond:
            while True:
                if self._status == ExecutionStatus.RUNNING:
                    return
                if self._status == ExecutionStatus.PAUSED:
                    self._cond.wait()
                    continue
                if self._status == ExecutionStatus.STOPPING:
                    raise ExecutionInterrupted(self._reason or DEFAULT_STOP_REASON)
                raise ExecutionInterrupted(NO_ACTIVE_EXECUTION)

    def mark_finished(self):
        with self._cond:
            self._status = ExecutionStatus.IDLE
            self._reason = None
            self._cond.notify_all()
