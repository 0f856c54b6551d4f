"""FR 环境变量配置管理。

环境变量:
    FR_PROCESS: 函数进程的命令行
        - 使用 shlex 拆分（不经过 shell）
        - 例: "python3 handler.py --verbose"

    FR_EXEC_TIMEOUT: 执行超时
        - 纯数字 = 秒，例: "2.5"
        - 支持单位后缀 ms/s/m/h，例: "100ms", "10s", "1m"
        - 0/负数/无效值 = 禁用超时 (默认)

    FR_INHERIT_ENV: 是否把当前进程的环境变量传给函数进程
        - true/1/yes = 传递 (默认)
        - false/0/no = 不传递（函数进程环境为空）

    FR_DRAIN_GRACE: 进程退出后等待 stderr 读完的时间（秒）
        - 默认 1.0 秒，限制在 0-10 秒范围

    FR_LOG_DEBUG: 日志调试模式
        - true/1/yes = 开启 (日志输出到临时文件)
        - false/0/no = 关闭 (默认，日志输出到 stderr)
"""

from __future__ import annotations

import logging
import os
import re
import shlex
import tempfile
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path

from .runtime.process_runner import DEFAULT_DRAIN_GRACE

__all__ = ["Config", "load_config", "get_config", "reload_config", "parse_duration"]

logger = logging.getLogger(__name__)

# 时间单位 -> 秒
_DURATION_UNITS = {
    "ms": 0.001,
    "s": 1.0,
    "m": 60.0,
    "h": 3600.0,
}

_DURATION_RE = re.compile(r"^\s*(\d+(?:\.\d*)?|\.\d+)\s*(ms|s|m|h)?\s*$", re.IGNORECASE)


def _parse_bool(value: str | None, default: bool = False) -> bool:
    """解析布尔值环境变量。"""
    if value is None:
        return default
    return value.lower() in ("true", "1", "yes", "on")


def parse_duration(value: str | None) -> float:
    """解析时长字符串。

    Args:
        value: "2.5" / "100ms" / "10s" / "1m" / "1h"

    Returns:
        秒数；空值或无效值返回 0.0（禁用超时）
    """
    if not value or not value.strip():
        return 0.0
    match = _DURATION_RE.match(value)
    if match is None:
        logger.warning(f"Invalid duration {value!r}, timeout disabled")
        return 0.0
    number, unit = match.groups()
    return float(number) * _DURATION_UNITS[(unit or "s").lower()]


def _parse_process(value: str | None) -> list[str]:
    """解析函数进程命令行。

    Returns:
        argv 列表，未设置或无法解析时为空列表
    """
    if not value or not value.strip():
        return []
    try:
        return shlex.split(value)
    except ValueError as e:
        logger.warning(f"Invalid FR_PROCESS {value!r}: {e}")
        return []


def _parse_drain_grace(value: str | None) -> float:
    """解析 stderr 等待时间环境变量。"""
    if not value:
        return DEFAULT_DRAIN_GRACE
    try:
        grace = float(value)
        return max(0.0, min(grace, 10.0))  # 限制在 0-10 秒范围
    except ValueError:
        return DEFAULT_DRAIN_GRACE


@dataclass
class Config:
    """FR 配置。

    Attributes:
        command: 函数进程 argv（第一个元素为可执行文件）
        exec_timeout: 执行超时（秒），<= 0 表示禁用
        inherit_env: 是否传递当前进程的环境变量
        drain_grace: 进程退出后等待 stderr 读完的时间（秒）
        log_debug: 日志调试模式（输出到临时文件）
        log_file: 日志文件路径（当 log_debug=True 时自动设置）
    """

    command: list[str] = field(default_factory=list)
    exec_timeout: float = 0.0
    inherit_env: bool = True
    drain_grace: float = DEFAULT_DRAIN_GRACE
    log_debug: bool = False
    log_file: str | None = None

    @property
    def process(self) -> str | None:
        """可执行文件路径，未配置时为 None。"""
        return self.command[0] if self.command else None

    @property
    def process_args(self) -> list[str]:
        return self.command[1:]

    def environment(self) -> list[str]:
        """函数进程的环境变量列表（KEY=VALUE）。"""
        if not self.inherit_env:
            return []
        return [f"{key}={value}" for key, value in os.environ.items()]

    def __repr__(self) -> str:
        command_str = shlex.join(self.command) if self.command else "unset"
        return (
            f"Config(command={command_str}, "
            f"exec_timeout={self.exec_timeout}, "
            f"inherit_env={self.inherit_env}, "
            f"drain_grace={self.drain_grace}, "
            f"log_debug={self.log_debug}, "
            f"log_file={self.log_file})"
        )


def _generate_log_file_path() -> str:
    """生成日志文件路径。

    Returns:
        临时目录下的日志文件绝对路径
    """
    log_dir = Path(tempfile.gettempdir()) / "fork-runner"
    log_dir.mkdir(parents=True, exist_ok=True)

    timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
    log_file = log_dir / f"fr_debug_{timestamp}.log"

    return str(log_file.resolve())


def load_config() -> Config:
    """从环境变量加载配置。"""
    log_debug = _parse_bool(os.environ.get("FR_LOG_DEBUG"), default=False)
    log_file = _generate_log_file_path() if log_debug else None

    return Config(
        command=_parse_process(os.environ.get("FR_PROCESS")),
        exec_timeout=max(0.0, parse_duration(os.environ.get("FR_EXEC_TIMEOUT"))),
        inherit_env=_parse_bool(os.environ.get("FR_INHERIT_ENV"), default=True),
        drain_grace=_parse_drain_grace(os.environ.get("FR_DRAIN_GRACE")),
        log_debug=log_debug,
        log_file=log_file,
    )


# 全局配置实例（延迟加载）
_config: Config | None = None


def get_config() -> Config:
    """获取全局配置实例。"""
    global _config
    if _config is None:
        _config = load_config()
    return _config


def reload_config() -> Config:
    """重新加载配置（用于测试）。"""
    global _config
    _config = load_config()
    return _config
