"""logpopup - 在弹出窗口中显示命令输出。

执行一个命令，把它的 stdout/stderr 同时 tee 到终端和弹出窗口。

环境变量:
    LOGPOPUP_GUI: 是否显示弹出窗口 (默认 true)
    LOGPOPUP_LOG_DEBUG: 调试日志输出到临时文件 (默认 false)

用法:
    logpopup [--keep-on-fail] [--on-top] <command> [args...]
"""

__version__ = "0.1.0"

from .app import main

__all__ = ["__version__", "main"]
