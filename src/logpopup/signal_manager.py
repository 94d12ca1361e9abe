"""信号管理模块。

将 SIGINT 转换为会话级别的取消操作：
- 子进程运行中：请求终止子进程，输出 "[Process terminated by user]"，然后退出
- 其他阶段（失败等待期、keep-on-fail）：直接结束会话

使用 loop.add_signal_handler 注册后，默认的 KeyboardInterrupt 行为被抑制，
由会话控制器负责有序清理。
"""

from __future__ import annotations

import asyncio
import logging
import signal
import sys
from typing import Callable, Optional

__all__ = ["SignalManager"]

logger = logging.getLogger(__name__)


class SignalManager:
    """SIGINT 管理器。

    每个会话只注册一次处理器，清理时恢复原始处理器。

    Example:
        ```python
        signal_manager = SignalManager(controller.request_cancel)

        async def main():
            await signal_manager.start()
            try:
                await run_session()
            finally:
                await signal_manager.stop()
        ```

    Attributes:
        on_interrupt: 收到 SIGINT 时调用的回调（在事件循环线程中）
    """

    def __init__(self, on_interrupt: Callable[[], None]) -> None:
        """初始化信号管理器。

        Args:
            on_interrupt: 收到 SIGINT 时调用的回调
        """
        self.on_interrupt = on_interrupt

        # 内部状态
        self._original_sigint_handler: Optional[signal.Handlers] = None
        self._running: bool = False
        self._trigger_count: int = 0
        self._loop: Optional[asyncio.AbstractEventLoop] = None

    @property
    def is_running(self) -> bool:
        """处理器是否已安装。"""
        return self._running

    @property
    def trigger_count(self) -> int:
        """收到 SIGINT 的次数。"""
        return self._trigger_count

    async def start(self) -> None:
        """安装 SIGINT 处理器。

        必须在 asyncio 事件循环中调用。
        """
        if self._running:
            logger.warning("SignalManager already running")
            return

        self._loop = asyncio.get_running_loop()
        self._original_sigint_handler = signal.getsignal(signal.SIGINT)

        if sys.platform != "win32":
            self._loop.add_signal_handler(signal.SIGINT, self._handle_sigint)
            logger.debug("SIGINT handler installed")
        else:
            # Windows: 信号在主线程中到达，转交给事件循环
            loop = self._loop
            signal.signal(
                signal.SIGINT,
                lambda sig, frame: loop.call_soon_threadsafe(self._handle_sigint),
            )
            logger.debug("SIGINT handler installed on Windows")

        self._running = True

    async def stop(self) -> None:
        """移除 SIGINT 处理器，恢复原始处理器。"""
        if not self._running:
            return

        self._running = False

        if sys.platform != "win32" and self._loop:
            try:
                self._loop.remove_signal_handler(signal.SIGINT)
            except Exception as e:
                logger.debug(f"Error removing signal handler: {e}")
        elif sys.platform == "win32" and self._original_sigint_handler is not None:
            try:
                signal.signal(signal.SIGINT, self._original_sigint_handler)
            except Exception as e:
                logger.debug(f"Error restoring SIGINT handler: {e}")

        logger.debug("Signal handler removed")

    def _handle_sigint(self) -> None:
        """处理 SIGINT 信号。"""
        self._trigger_count += 1
        logger.debug(f"SIGINT received (count={self._trigger_count})")

        try:
            self.on_interrupt()
        except Exception as e:
            logger.warning(f"Error in interrupt callback: {e}")
