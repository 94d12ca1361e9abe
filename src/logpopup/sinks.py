"""显示端接口。

核心只依赖这里的协议，不关心输出最终显示在哪里：
- DisplaySink: 核心 -> 显示端（刷新、裁剪、状态行、会话结束）
- SessionControls: 显示端 -> 核心（滚动位置、关闭、取消）

HeadlessSink 在 GUI 被禁用或 pywebview 不可用时使用。
"""

from __future__ import annotations

import logging
import sys
from typing import Protocol, TextIO, runtime_checkable

__all__ = [
    "DisplaySink",
    "SessionControls",
    "HeadlessSink",
]

logger = logging.getLogger(__name__)


@runtime_checkable
class DisplaySink(Protocol):
    """显示端协议。

    所有方法都在事件循环线程中调用，实现不应阻塞。
    """

    def on_flush(self, text: str, should_auto_follow: bool) -> None:
        """追加一批新输出。"""
        ...

    def on_trim(self, new_full_text: str) -> None:
        """用裁剪后的完整内容替换显示。"""
        ...

    def on_status(self, line: str) -> None:
        """显示一条状态行（退出码、用户终止、启动失败）。"""
        ...

    def on_session_end(self) -> None:
        """会话结束，显示端应关闭。"""
        ...


@runtime_checkable
class SessionControls(Protocol):
    """显示端回传给核心的控制接口（线程安全）。"""

    def scroll_position_changed(self, is_at_bottom: bool) -> None:
        ...

    def user_requested_close(self) -> None:
        ...

    def user_requested_cancel(self) -> None:
        ...


class HeadlessSink:
    """无界面显示端。

    子进程输出已经 tee 到终端，这里只把状态行写到 stderr。
    """

    def __init__(self, stream: TextIO | None = None) -> None:
        self._stream = stream
        self.ended = False

    @property
    def stream(self) -> TextIO:
        return self._stream if self._stream is not None else sys.stderr

    def on_flush(self, text: str, should_auto_follow: bool) -> None:
        logger.debug(f"Flushed {len(text)} chars (auto_follow={should_auto_follow})")

    def on_trim(self, new_full_text: str) -> None:
        logger.debug(f"Trimmed to {len(new_full_text)} chars")

    def on_status(self, line: str) -> None:
        try:
            self.stream.write(line + "\n")
            self.stream.flush()
        except (OSError, ValueError) as e:
            logger.debug(f"Status write failed: {e}")

    def on_session_end(self) -> None:
        self.ended = True
        logger.debug("Session ended")
