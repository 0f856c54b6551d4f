"""Fork-per-invocation process runner.

fork-runner runtime module v0.1.0

Every call to ``ForkFunctionRunner.run`` spawns one child process, streams
the request input into its stdin, connects its stdout to the caller's sink,
forwards its stderr to the logging sink and enforces the execution timeout.

Key design points:
- POSIX: start_new_session=True so the watchdog kills the whole process group
- Windows: CREATE_NEW_PROCESS_GROUP for signal isolation
- The stderr drainer, watchdog and stream pumps are scoped tasks in an anyio
  task group owned by the invocation, never detached
- The input stream is released exactly once on every exit path
- Cleanup after caller cancellation runs in a shielded cancel scope
"""

from __future__ import annotations

import asyncio
import codecs
import logging
import os
import signal
import subprocess
import sys
import time
from dataclasses import dataclass
from typing import Any

import anyio

from .errors import ExecutionFailure, ExecutionTimeout, OutputFailure, StartFailure
from .request import FunctionRequest
from .streams import GuardedReader, attachable_fd, read_chunk, write_chunk
from .watchdog import Watchdog

__all__ = [
    "ForkFunctionRunner",
    "Invocation",
]

logger = logging.getLogger(__name__)

# Platform detection
IS_WINDOWS = sys.platform == "win32"

STDERR_CHUNK_SIZE = 256  # bytes per stderr read
PUMP_CHUNK_SIZE = 64 * 1024  # bytes per stdin/stdout copy
DEFAULT_DRAIN_GRACE = 1.0  # seconds to wait for stderr EOF after exit
DEFAULT_KILL_TIMEOUT = 1.0  # seconds to wait for reaping after a cleanup kill


@dataclass
class ForkFunctionRunner:
    """Runs each function request in a freshly forked process.

    The runner holds configuration only; all per-call state lives in an
    ``Invocation``, so concurrent ``run`` calls are independent.

    Example:
        runner = ForkFunctionRunner(exec_timeout=10.0)
        request = FunctionRequest(
            process="/usr/bin/env",
            process_args=["python3", "handler.py"],
            environment=["PATH=/usr/bin:/bin"],
            input_reader=body,
            output_writer=response,
        )
        await runner.run(request)

    Attributes:
        exec_timeout: Seconds before the watchdog kills the process (<= 0 disables)
        log: Logging sink for lifecycle events and stderr (default: module logger)
        chunk_size: Bytes per stderr read
        pump_chunk_size: Bytes per stdin/stdout copy for non-file streams
        drain_grace: Seconds to wait for stderr EOF once the process exited
        kill_timeout: Seconds to wait for the child to be reaped after cleanup kill
    """

    exec_timeout: float = 0.0
    log: logging.Logger | None = None
    chunk_size: int = STDERR_CHUNK_SIZE
    pump_chunk_size: int = PUMP_CHUNK_SIZE
    drain_grace: float = DEFAULT_DRAIN_GRACE
    kill_timeout: float = DEFAULT_KILL_TIMEOUT

    @property
    def sink(self) -> logging.Logger:
        return self.log or logger

    async def run(self, request: FunctionRequest) -> None:
        """Run the request to completion.

        Raises:
            StartFailure: The process could not be spawned
            ExecutionTimeout: The watchdog killed the process
            ExecutionFailure: The process exited non-zero or was signaled
            OutputFailure: The output sink rejected a write
        """
        await Invocation(self, request).execute()


class Invocation:
    """State of one process lifecycle. Created per call, never reused."""

    def __init__(self, runner: ForkFunctionRunner, request: FunctionRequest) -> None:
        self.runner = runner
        self.request = request
        self.log = runner.sink
        self.process: asyncio.subprocess.Process | None = None
        self.started_at = 0.0
        self.input = (
            GuardedReader(request.input_reader)
            if request.input_reader is not None
            else None
        )
        self.watchdog = Watchdog(runner.exec_timeout, self._kill, self.log)
        self._output_error: BaseException | None = None
        self._stdout_done = anyio.Event()
        self._stderr_done = anyio.Event()

    async def execute(self) -> None:
        req = self.request
        self.log.info(f"Running {req.process}")
        if req.content_length is not None:
            self.log.debug(f"Request content length: {req.content_length}")
        self.started_at = time.monotonic()

        try:
            self.process = await self._spawn()
            await self._supervise()
        finally:
            self.watchdog.stop()
            if self.input is not None:
                with anyio.CancelScope(shield=True):
                    await self.input.aclose()

        self._check_result()

    async def _spawn(self) -> asyncio.subprocess.Process:
        req = self.request

        if self.input is None:
            stdin: Any = asyncio.subprocess.DEVNULL
        else:
            fd = attachable_fd(self.input.stream)
            stdin = fd if fd is not None else asyncio.subprocess.PIPE

        if req.output_writer is None:
            stdout: Any = asyncio.subprocess.DEVNULL
        else:
            fd = attachable_fd(req.output_writer)
            stdout = fd if fd is not None else asyncio.subprocess.PIPE

        try:
            process = await asyncio.create_subprocess_exec(
                *req.argv,
                stdin=stdin,
                stdout=stdout,
                stderr=asyncio.subprocess.PIPE,
                env=req.env,
                **_build_subprocess_kwargs(),
            )
        except (OSError, ValueError) as e:
            # ValueError: NUL byte in argv or env
            self.log.error(f"Failed to start {req.process}: {e}")
            raise StartFailure(req.process, e) from e

        self.log.debug(f"Started subprocess pid={process.pid} argv={req.argv}")
        return process

    async def _supervise(self) -> None:
        """Wait for exit while the drainer, watchdog and pumps run."""
        process = self.process
        assert process is not None

        try:
            async with anyio.create_task_group() as tg:
                # Drainer first so a chatty child never blocks on a full pipe
                tg.start_soon(self._drain_stderr)

                if self.watchdog.armed:
                    elapsed = time.monotonic() - self.started_at
                    tg.start_soon(self.watchdog.run, self.runner.exec_timeout - elapsed)

                stdin_scope = anyio.CancelScope()
                if process.stdin is not None:
                    tg.start_soon(self._pump_input, stdin_scope)

                if process.stdout is not None:
                    tg.start_soon(self._pump_output)
                else:
                    self._stdout_done.set()

                await process.wait()
                await self._stdout_done.wait()

                elapsed = time.monotonic() - self.started_at
                self.log.info(f"Took {elapsed:f} secs")

                self.watchdog.stop()
                stdin_scope.cancel()

                with anyio.move_on_after(self.runner.drain_grace):
                    await self._stderr_done.wait()
                if not self._stderr_done.is_set():
                    self.log.debug(
                        f"stderr still open {self.runner.drain_grace}s after exit, "
                        f"abandoning drain pid={process.pid}"
                    )
                tg.cancel_scope.cancel()
        except BaseException:
            with anyio.CancelScope(shield=True):
                await self._reap()
            raise

    async def _drain_stderr(self) -> None:
        """Forward stderr chunks to the logging sink until EOF or read error."""
        process = self.process
        assert process is not None and process.stderr is not None

        # Multibyte characters may straddle fixed-size reads
        decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")

        self.log.debug("Started logging stderr from function.")
        try:
            while True:
                chunk = await process.stderr.read(self.runner.chunk_size)
                if not chunk:
                    tail = decoder.decode(b"", final=True)
                    if tail:
                        self.log.info(f"stderr: {tail}")
                    break
                text = decoder.decode(chunk)
                if text:
                    self.log.info(f"stderr: {text}")
        except Exception as e:
            self.log.error(f"Error reading stderr: {e}")
        finally:
            self._stderr_done.set()

    async def _pump_input(self, scope: anyio.CancelScope) -> None:
        process = self.process
        assert process is not None and process.stdin is not None
        assert self.input is not None

        with scope:
            try:
                while True:
                    chunk = await read_chunk(self.input, self.runner.pump_chunk_size)
                    if not chunk:
                        break
                    process.stdin.write(chunk)
                    await process.stdin.drain()
            except (BrokenPipeError, ConnectionResetError):
                self.log.debug("Function closed stdin before consuming all input")
            except Exception as e:
                self.log.warning(f"Error copying input to function: {e}")
            finally:
                process.stdin.close()

    async def _pump_output(self) -> None:
        process = self.process
        assert process is not None and process.stdout is not None
        sink = self.request.output_writer
        assert sink is not None

        try:
            while True:
                chunk = await process.stdout.read(self.runner.pump_chunk_size)
                if not chunk:
                    break
                if self._output_error is not None:
                    # Keep reading so the child never blocks on a full pipe
                    continue
                try:
                    await write_chunk(sink, chunk)
                except Exception as e:
                    self._output_error = e
                    self.log.error(f"Error writing function output: {e}")
        except Exception as e:
            self.log.error(f"Error reading stdout: {e}")
            if self._output_error is None:
                self._output_error = e
        finally:
            self._stdout_done.set()

    def _kill(self) -> None:
        """Forcefully kill the process (its whole group on POSIX)."""
        process = self.process
        if process is None or process.returncode is not None:
            raise ProcessLookupError("process already exited")

        if IS_WINDOWS:
            process.kill()
            return

        try:
            pgid = os.getpgid(process.pid)
            os.killpg(pgid, signal.SIGKILL)
            self.log.debug(f"Sent SIGKILL to process group pgid={pgid}")
        except PermissionError as e:
            self.log.debug(f"killpg failed, falling back to kill: {e}")
            process.kill()

    async def _reap(self) -> None:
        """Kill and reap the process after cancellation or an internal error."""
        process = self.process
        if process is None or process.returncode is not None:
            return

        pid = process.pid
        try:
            self._kill()
        except (ProcessLookupError, OSError) as e:
            self.log.debug(f"Cleanup kill failed pid={pid}: {e}")

        with anyio.move_on_after(self.runner.kill_timeout):
            await process.wait()
        if process.returncode is None:
            self.log.warning(f"Subprocess did not exit after kill pid={pid}")
        else:
            self.log.debug(f"Subprocess reaped pid={pid} returncode={process.returncode}")

    def _check_result(self) -> None:
        process = self.process
        assert process is not None
        returncode = process.returncode
        assert returncode is not None

        if returncode != 0:
            if self.watchdog.fired:
                raise ExecutionTimeout(self.request.process, returncode, self.runner.exec_timeout)
            raise ExecutionFailure(self.request.process, returncode)

        if self._output_error is not None:
            raise OutputFailure(self.request.process, self._output_error)


def _build_subprocess_kwargs() -> dict[str, Any]:
    """Build platform-specific process isolation kwargs."""
    if IS_WINDOWS:
        return {"creationflags": subprocess.CREATE_NEW_PROCESS_GROUP}
    return {"start_new_session": True}
