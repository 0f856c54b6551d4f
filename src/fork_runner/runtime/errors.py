"""Exceptions raised by the process runner.

Only these leave ``ForkFunctionRunner.run``. Watchdog kill failures and
stderr read errors are logged and absorbed.
"""

from __future__ import annotations

import signal as _signal

__all__ = [
    "RunnerError",
    "StartFailure",
    "ExecutionFailure",
    "ExecutionTimeout",
    "OutputFailure",
]


class RunnerError(Exception):
    """Base class for invocation errors.

    Attributes:
        process: Executable path of the invocation
    """

    def __init__(self, process: str, message: str) -> None:
        self.process = process
        super().__init__(message)


class StartFailure(RunnerError):
    """The process could not be spawned (bad path, permission, resources).

    Attributes:
        cause: The OSError (or ValueError for a NUL byte in argv or env)
            raised by process creation
    """

    def __init__(self, process: str, cause: Exception) -> None:
        self.cause = cause
        super().__init__(process, f"failed to start {process}: {cause}")


class ExecutionFailure(RunnerError):
    """The process exited with a non-zero status or was killed by a signal.

    Attributes:
        returncode: Raw return code (negative when killed by a signal)
    """

    def __init__(self, process: str, returncode: int, message: str | None = None) -> None:
        self.returncode = returncode
        if message is None:
            sig = self.signal
            if sig is not None:
                message = f"{process} was terminated by signal {sig.name}"
            else:
                message = f"{process} exited with status {returncode}"
        super().__init__(process, message)

    @property
    def signal(self) -> _signal.Signals | None:
        """Signal that terminated the process, if any."""
        if self.returncode >= 0:
            return None
        try:
            return _signal.Signals(-self.returncode)
        except ValueError:
            return None

    @property
    def exit_code(self) -> int:
        """Return code in shell convention (128 + signum for signals)."""
        if self.returncode < 0:
            return 128 - self.returncode
        return self.returncode


class ExecutionTimeout(ExecutionFailure):
    """The watchdog killed the process after its execution timeout.

    Attributes:
        timeout: Configured timeout in seconds
    """

    def __init__(self, process: str, returncode: int, timeout: float) -> None:
        self.timeout = timeout
        super().__init__(
            process,
            returncode,
            f"{process} was killed after exceeding exec timeout of {timeout}s",
        )


class OutputFailure(RunnerError):
    """The output sink rejected a write while the process was running.

    Attributes:
        cause: The exception raised by the sink
    """

    def __init__(self, process: str, cause: BaseException) -> None:
        self.cause = cause
        super().__init__(process, f"failed to write output of {process}: {cause}")
