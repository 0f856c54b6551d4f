"""Runtime module for fork-per-invocation process execution.

This module provides the process runner, its timeout watchdog and the
stream helpers that connect caller streams to a child process.
"""

from __future__ import annotations

from .errors import (
    ExecutionFailure,
    ExecutionTimeout,
    OutputFailure,
    RunnerError,
    StartFailure,
)
from .process_runner import ForkFunctionRunner
from .request import FunctionRequest, FunctionRunner
from .streams import GuardedReader
from .watchdog import Watchdog

__all__ = [
    "ExecutionFailure",
    "ExecutionTimeout",
    "ForkFunctionRunner",
    "FunctionRequest",
    "FunctionRunner",
    "GuardedReader",
    "OutputFailure",
    "RunnerError",
    "StartFailure",
    "Watchdog",
]
