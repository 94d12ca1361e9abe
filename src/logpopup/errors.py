"""logpopup 异常类。

只有 SpawnError 会以状态行的形式对用户可见，其余异常都在检测到它们的
组件内部消化。
"""

from __future__ import annotations

__all__ = [
    "LogPopupError",
    "UsageError",
    "SpawnError",
    "DecodeError",
    "TeeWriteError",
    "CancellationRace",
]


class LogPopupError(Exception):
    """logpopup 基础异常。"""
    pass


class UsageError(LogPopupError):
    """命令行参数错误（如未指定命令）。"""
    pass


class SpawnError(LogPopupError):
    """子进程启动失败（可执行文件不存在或无法启动）。

    Attributes:
        command: 请求启动的命令名
        reason: 失败原因
    """

    def __init__(self, command: str, reason: str) -> None:
        self.command = command
        self.reason = reason
        super().__init__(f"{command}: {reason}")


class DecodeError(LogPopupError):
    """输出块不是合法文本，整块丢弃。"""

    def __init__(self, stream: str, size: int) -> None:
        self.stream = stream
        self.size = size
        super().__init__(f"undecodable {size}-byte chunk on {stream}")


class TeeWriteError(LogPopupError):
    """本地终端写入失败（如下游管道已关闭）。"""
    pass


class CancellationRace(LogPopupError):
    """取消信号在清理进行中到达。"""
    pass
