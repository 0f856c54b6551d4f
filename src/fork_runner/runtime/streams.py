"""Stream helpers for wiring caller streams to a child process.

Input and output streams may be plain binary files, in-memory buffers or
asyncio-style objects whose methods return awaitables. Streams backed by a
real file descriptor are handed to the child directly; everything else is
pumped by the runner in fixed-size chunks.
"""

from __future__ import annotations

import functools
import inspect
import io
import logging
from typing import Any, Awaitable, Callable, Protocol, Union, runtime_checkable

import anyio

__all__ = [
    "InputStream",
    "OutputStream",
    "GuardedReader",
    "attachable_fd",
    "read_chunk",
    "write_chunk",
]

logger = logging.getLogger(__name__)


@runtime_checkable
class InputStream(Protocol):
    """Readable, closable byte stream."""

    def read(self, n: int = -1) -> Union[bytes, Awaitable[bytes]]: ...

    def close(self) -> Any: ...


@runtime_checkable
class OutputStream(Protocol):
    """Writable byte stream."""

    def write(self, data: bytes) -> Any: ...


async def _resolve(result: Any) -> Any:
    if inspect.isawaitable(result):
        return await result
    return result


async def _call(method: Callable[..., Any], *args: Any, abandon_on_cancel: bool = False) -> Any:
    """Call a stream method without blocking the event loop.

    Coroutine methods are awaited directly; plain methods run in a worker
    thread so a blocking call never stalls the event loop.
    """
    if inspect.iscoroutinefunction(method):
        return await method(*args)
    result = await anyio.to_thread.run_sync(
        functools.partial(method, *args),
        abandon_on_cancel=abandon_on_cancel,
    )
    return await _resolve(result)


async def read_chunk(stream: InputStream, size: int) -> bytes:
    """Read up to ``size`` bytes.

    Cancelling the caller abandons a pending blocking read.
    """
    data = await _call(stream.read, size, abandon_on_cancel=True)
    return data or b""


async def write_chunk(stream: OutputStream, data: bytes) -> None:
    """Write ``data`` and flush."""
    await _call(stream.write, data)
    flush = getattr(stream, "flush", None)
    if flush is not None:
        await _call(flush)


def attachable_fd(stream: Any) -> int | None:
    """Return the OS file descriptor behind ``stream``, or None.

    Output streams are flushed first so bytes written by the caller land
    before the child's.
    """
    fileno = getattr(stream, "fileno", None)
    if fileno is None:
        return None
    try:
        fd = fileno()
    except (OSError, ValueError, io.UnsupportedOperation):
        return None
    if not isinstance(fd, int) or fd < 0:
        return None
    flush = getattr(stream, "flush", None)
    if flush is not None and not inspect.iscoroutinefunction(flush):
        try:
            flush()
        except (OSError, ValueError):
            pass
    return fd


class GuardedReader:
    """Input stream wrapper whose release happens exactly once.

    ``aclose`` may be called from any exit path, any number of times; only
    the first call closes the wrapped stream.
    """

    def __init__(self, stream: InputStream) -> None:
        self._stream = stream
        self._closed = False

    @property
    def stream(self) -> InputStream:
        return self._stream

    @property
    def closed(self) -> bool:
        return self._closed

    async def read(self, n: int = -1) -> bytes:
        return await _call(self._stream.read, n, abandon_on_cancel=True)

    def fileno(self) -> int:
        return self._stream.fileno()  # type: ignore[attr-defined]

    async def aclose(self) -> None:
        if self._closed:
            return
        self._closed = True
        try:
            await _resolve(self._stream.close())
        except Exception as e:
            logger.warning(f"Error closing input stream: {e}")
