"""One-shot execution timeout watchdog.

The watchdog sleeps inside its own cancel scope and, on expiry, requests a
forced kill of the process. A failed kill is logged, not raised: the runner's
own wait on the process reports the outcome.
"""

from __future__ import annotations

import logging
from typing import Callable

import anyio

__all__ = ["Watchdog"]

logger = logging.getLogger(__name__)


class Watchdog:
    """Single-shot delayed kill.

    Armed only when ``timeout > 0``. ``stop`` is safe before the watchdog
    starts, while it sleeps, after it fired, and any number of times.

    Example:
        watchdog = Watchdog(5.0, process.kill)
        async with anyio.create_task_group() as tg:
            tg.start_soon(watchdog.run)
            await process.wait()
            watchdog.stop()
    """

    def __init__(
        self,
        timeout: float,
        kill: Callable[[], None],
        log: logging.Logger | None = None,
    ) -> None:
        self.timeout = timeout
        self._kill = kill
        self._log = log or logger
        self._scope = anyio.CancelScope()
        self._fired = False
        self._stopped = False

    @property
    def armed(self) -> bool:
        return self.timeout > 0

    @property
    def fired(self) -> bool:
        """Whether the kill was requested."""
        return self._fired

    @property
    def stopped(self) -> bool:
        return self._stopped

    async def run(self, delay: float | None = None) -> None:
        """Sleep for ``delay`` (default: the timeout), then kill.

        Args:
            delay: Remaining time to wait, for callers that measure the
                deadline from an earlier start time
        """
        if not self.armed or self._stopped:
            return
        wait = self.timeout if delay is None else max(0.0, delay)
        with self._scope:
            await anyio.sleep(wait)
            if not self._stopped:
                self._fire()

    def stop(self) -> None:
        self._stopped = True
        self._scope.cancel()

    def _fire(self) -> None:
        self._fired = True
        self._log.info(f"Function was killed by ExecTimeout: {self.timeout}s")
        try:
            self._kill()
        except (ProcessLookupError, OSError) as e:
            self._log.error(f"Error killing function due to ExecTimeout: {e}")
