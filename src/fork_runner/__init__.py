"""fork-runner - 每次调用 fork 一个函数进程的执行原语。

环境变量:
    FR_PROCESS: 函数进程命令行
    FR_EXEC_TIMEOUT: 执行超时 (默认禁用)
    FR_LOG_DEBUG: 日志调试模式 (默认 false)

用法:
    FR_PROCESS="python3 handler.py" fork-runner < request.json
"""

__version__ = "0.1.0"

from .app import main
from .runtime import ForkFunctionRunner, FunctionRequest

__all__ = ["__version__", "main", "ForkFunctionRunner", "FunctionRequest"]
