"""Invocation request and runner interface."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Protocol, Sequence

from .streams import InputStream, OutputStream

__all__ = [
    "FunctionRequest",
    "FunctionRunner",
]

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class FunctionRequest:
    """Immutable description of one function invocation.

    Attributes:
        process: Executable path, passed to process creation unmodified
        process_args: Arguments after the executable
        environment: ``KEY=VALUE`` entries; the child's environment is exactly
            this list, nothing is inherited
        input_reader: Stream copied to the child's stdin (None = /dev/null)
        output_writer: Sink for the child's stdout (None = discarded)
        content_length: Size hint for the input, informational only
    """

    process: str
    process_args: Sequence[str] = ()
    environment: Sequence[str] = ()
    input_reader: InputStream | None = None
    output_writer: OutputStream | None = None
    content_length: int | None = None

    @property
    def argv(self) -> list[str]:
        return [self.process, *self.process_args]

    @property
    def env(self) -> dict[str, str]:
        """Environment as a mapping. Later duplicates win."""
        env: dict[str, str] = {}
        for entry in self.environment:
            key, sep, value = entry.partition("=")
            if not sep or not key:
                logger.warning(f"Ignoring malformed environment entry: {entry!r}")
                continue
            env[key] = value
        return env


class FunctionRunner(Protocol):
    """Runs a function request to completion."""

    async def run(self, request: FunctionRequest) -> None: ...
