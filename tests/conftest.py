"""Pytest configuration and fixtures."""

from __future__ import annotations

import logging
import sys
from pathlib import Path
from typing import Iterator

import pytest

# 项目根目录
PROJECT_ROOT = Path(__file__).parent.parent

# 添加 src 目录到 Python 路径
SRC_DIR = PROJECT_ROOT / "src"
if str(SRC_DIR) not in sys.path:
    sys.path.insert(0, str(SRC_DIR))

FIXTURES_DIR = PROJECT_ROOT / "tests" / "fixtures"
FAKE_FUNCTION = FIXTURES_DIR / "fake_function.py"


class RecordingHandler(logging.Handler):
    """Collects formatted log messages in memory."""

    def __init__(self) -> None:
        super().__init__(level=logging.DEBUG)
        self.records: list[logging.LogRecord] = []

    def emit(self, record: logging.LogRecord) -> None:
        self.records.append(record)

    @property
    def messages(self) -> list[str]:
        return [r.getMessage() for r in self.records]

    def stderr_text(self) -> str:
        """Concatenate every forwarded stderr chunk."""
        prefix = "stderr: "
        return "".join(m[len(prefix):] for m in self.messages if m.startswith(prefix))


@pytest.fixture
def sink_handler() -> RecordingHandler:
    return RecordingHandler()


@pytest.fixture
def sink(request: pytest.FixtureRequest, sink_handler: RecordingHandler) -> Iterator[logging.Logger]:
    """Isolated logging sink injected into the runner."""
    log = logging.getLogger(f"fork_runner.tests.{request.node.name}")
    log.setLevel(logging.DEBUG)
    log.propagate = False
    log.addHandler(sink_handler)
    yield log
    log.removeHandler(sink_handler)


@pytest.fixture
def fake_function() -> list[str]:
    """argv prefix running the fake function script."""
    return [sys.executable, str(FAKE_FUNCTION)]
