"""fork-runner 应用入口。

包含日志配置、单次调用执行和命令行主入口点。
"""

from __future__ import annotations

import argparse
import asyncio
import dataclasses
import logging
import sys
from typing import BinaryIO, Sequence

from .config import Config, get_config, parse_duration
from .runtime import (
    ExecutionFailure,
    ExecutionTimeout,
    ForkFunctionRunner,
    FunctionRequest,
    OutputFailure,
    StartFailure,
)

__all__ = ["run_once", "main"]

logger = logging.getLogger(__name__)

# 退出码
EXIT_OK = 0
EXIT_OUTPUT_FAILURE = 1
EXIT_USAGE = 2
EXIT_TIMEOUT = 124
EXIT_START_FAILURE = 127

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"


async def run_once(
    config: Config,
    stdin: BinaryIO | None,
    stdout: BinaryIO | None,
    command: Sequence[str] | None = None,
) -> int:
    """执行一次函数调用。

    Args:
        config: 运行配置
        stdin: 函数进程的输入流（None = 无输入）
        stdout: 函数进程的输出流（None = 丢弃输出）
        command: 覆盖配置中的命令行

    Returns:
        进程退出码（shell 约定）
    """
    argv = list(command) if command else list(config.command)
    if not argv:
        logger.error("No function process configured (set FR_PROCESS or pass a command)")
        return EXIT_USAGE

    runner = ForkFunctionRunner(
        exec_timeout=config.exec_timeout,
        drain_grace=config.drain_grace,
    )
    request = FunctionRequest(
        process=argv[0],
        process_args=argv[1:],
        environment=config.environment(),
        input_reader=stdin,
        output_writer=stdout,
    )

    try:
        await runner.run(request)
    except StartFailure as e:
        logger.error(str(e))
        return EXIT_START_FAILURE
    except ExecutionTimeout as e:
        logger.error(str(e))
        return EXIT_TIMEOUT
    except ExecutionFailure as e:
        logger.error(str(e))
        return e.exit_code
    except OutputFailure as e:
        logger.error(str(e))
        return EXIT_OUTPUT_FAILURE
    return EXIT_OK


def _parse_args(argv: Sequence[str] | None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="fork-runner",
        description="Run one function process with stdin/stdout attached",
    )
    parser.add_argument(
        "--timeout",
        type=str,
        default=None,
        help="Execution timeout, e.g. 500ms, 10s, 2.5 (overrides FR_EXEC_TIMEOUT)",
    )
    parser.add_argument(
        "command",
        nargs=argparse.REMAINDER,
        help="Function command line (overrides FR_PROCESS)",
    )
    args = parser.parse_args(argv)
    if args.command and args.command[0] == "--":
        args.command = args.command[1:]
    return args


def configure_logging(config: Config) -> None:
    """配置日志输出。"""
    log_handlers: list[logging.Handler] = []

    if config.log_debug and config.log_file:
        # LOG_DEBUG 模式：输出到临时文件
        file_handler = logging.FileHandler(config.log_file, encoding="utf-8")
        file_handler.setFormatter(logging.Formatter(LOG_FORMAT))
        log_handlers.append(file_handler)
        log_level = logging.DEBUG
    else:
        # 默认模式：输出到 stderr（stdout 留给函数输出）
        stderr_handler = logging.StreamHandler(sys.stderr)
        stderr_handler.setFormatter(logging.Formatter(LOG_FORMAT))
        log_handlers.append(stderr_handler)
        log_level = logging.INFO

    # 配置 root logger（第三方库）为 WARNING，减少噪音
    logging.basicConfig(
        level=logging.WARNING,
        handlers=log_handlers,
    )
    # 只对 fork_runner 命名空间启用详细日志
    logging.getLogger("fork_runner").setLevel(log_level)


def main(argv: Sequence[str] | None = None) -> None:
    """主入口点。"""
    args = _parse_args(argv)
    config = get_config()
    if args.timeout is not None:
        config = dataclasses.replace(config, exec_timeout=parse_duration(args.timeout))

    configure_logging(config)
    logger.debug(f"Starting fork-runner: {config}")

    exit_code = asyncio.run(
        run_once(config, sys.stdin.buffer, sys.stdout.buffer, command=args.command)
    )
    sys.exit(exit_code)


if __name__ == "__main__":
    main()
