"""会话控制器。

会话的顶层所有者，负责：
- 创建输出缓冲区并连接到显示端
- 启动子进程并等待其退出
- 应用终止策略（成功立即结束 / 失败等待宽限期 / keep-on-fail 保持打开）
- 处理取消请求（SIGINT、窗口关闭）
- 按固定顺序执行幂等清理

状态流转：STARTING -> RUNNING -> DRAINING -> TERMINATED（TERMINATED 为终态）。
所有状态变更都发生在事件循环线程中；显示端回传的控制事件通过
call_soon_threadsafe 转交。
"""

from __future__ import annotations

import asyncio
import logging
from enum import Enum
from typing import Any, Callable, Optional

import anyio

from .config import Config, RunConfig, get_config
from .errors import CancellationRace, SpawnError
from .runtime import OutputBuffer, ProcessSupervisor, TerminationOutcome
from .signal_manager import SignalManager
from .sinks import DisplaySink, HeadlessSink

__all__ = [
    "SessionController",
    "SessionState",
    "EXIT_SUCCESS",
    "EXIT_FAILURE",
]

logger = logging.getLogger(__name__)

EXIT_SUCCESS = 0
EXIT_FAILURE = 1


class SessionState(Enum):
    """会话状态。"""

    STARTING = "starting"
    RUNNING = "running"
    DRAINING = "draining"
    TERMINATED = "terminated"


class SessionController:
    """运行一个子进程并驱动显示端的会话控制器。

    Example:
        ```python
        controller = SessionController(RunConfig(command="make", args=("test",)))
        exit_code = await controller.run()
        ```

    Attributes:
        run_config: 本次运行的命令与选项
        sink: 显示端
        config: 全局配置
        supervisor: 子进程管理器
    """

    def __init__(
        self,
        run_config: RunConfig,
        sink: Optional[DisplaySink] = None,
        *,
        config: Optional[Config] = None,
        supervisor: Optional[ProcessSupervisor] = None,
    ) -> None:
        """初始化会话控制器。

        Args:
            run_config: 本次运行的命令与选项
            sink: 显示端（默认 HeadlessSink）
            config: 全局配置（默认从环境变量读取）
            supervisor: 子进程管理器（默认按配置创建）
        """
        self.run_config = run_config
        self.sink: DisplaySink = sink if sink is not None else HeadlessSink()
        self.config = config or get_config()
        self.supervisor = supervisor or ProcessSupervisor(
            term_timeout=self.config.term_timeout,
            drain_timeout=self.config.drain_timeout,
        )

        self._state = SessionState.STARTING
        self._buffer: Optional[OutputBuffer] = None
        self._outcome: Optional[TerminationOutcome] = None
        self._cancel_event = asyncio.Event()
        self._cancel_requested = False
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._signal_manager = SignalManager(self.request_cancel)
        self._started = False
        self._teardown_started = False

    # ------------------------------------------------------------------
    # 属性
    # ------------------------------------------------------------------

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def outcome(self) -> Optional[TerminationOutcome]:
        """子进程的终止结果（未退出或启动失败时为 None）。"""
        return self._outcome

    @property
    def buffer(self) -> Optional[OutputBuffer]:
        return self._buffer

    @property
    def cancel_requested(self) -> bool:
        return self._cancel_requested

    # ------------------------------------------------------------------
    # 主流程
    # ------------------------------------------------------------------

    async def run(self) -> int:
        """运行会话直到结束。

        Returns:
            进程退出码（0 = 子进程成功，1 = 子进程失败/启动失败/用户取消）
        """
        if self._started:
            raise RuntimeError("SessionController.run() may only be called once")
        self._started = True

        self._loop = asyncio.get_running_loop()
        self._buffer = OutputBuffer(
            self.sink,
            loop=self._loop,
            flush_interval=self.config.flush_interval,
            max_lines=self.config.max_lines,
            trim_margin=self.config.trim_margin,
        )

        await self._signal_manager.start()
        try:
            return await self._run_child()
        finally:
            await self._teardown()

    async def _run_child(self) -> int:
        """启动子进程，等待退出或取消。"""
        assert self._buffer is not None

        try:
            await self.supervisor.start(self.run_config, self._buffer.push)
        except SpawnError as e:
            logger.debug(f"Spawn failed: {e}")
            self._buffer.push(f"Failed to run command: {e.reason}\n")
            self._buffer.flush()
            self._notify_status(f"Failed to run command: {e.reason}")
            return EXIT_FAILURE

        self._state = SessionState.RUNNING
        logger.debug(f"Session running: {self.run_config.argv}")

        wait_task = asyncio.create_task(self.supervisor.wait(), name="child-exit")
        cancel_task = asyncio.create_task(self._cancel_event.wait(), name="cancel")
        try:
            done, _ = await asyncio.wait(
                {wait_task, cancel_task},
                return_when=asyncio.FIRST_COMPLETED,
            )
        finally:
            for task in (wait_task, cancel_task):
                if not task.done():
                    task.cancel()
            await asyncio.gather(wait_task, cancel_task, return_exceptions=True)

        if wait_task in done and not wait_task.cancelled():
            self._outcome = wait_task.result()
            return await self._apply_policy(self._outcome)

        if not self.supervisor.is_running:
            # 子进程已退出，仍在排空管道：报告退出码而非用户终止
            await self.supervisor.stop_readers()
            self._outcome = await self.supervisor.wait()
            return await self._apply_policy(self._outcome)

        await self._cancel_running_child()
        return EXIT_FAILURE

    async def _cancel_running_child(self) -> None:
        """终止运行中的子进程（不强制杀死），停止读取后输出状态行。"""
        self.supervisor.terminate()
        await self.supervisor.stop_readers()
        self._emit_status("[Process terminated by user]")

    async def _apply_policy(self, outcome: TerminationOutcome) -> int:
        """根据退出码决定会话何时结束。"""
        self._emit_status(f"[Process exited with code: {outcome.exit_code}]")

        if outcome.success:
            return EXIT_SUCCESS

        if self.run_config.keep_on_fail:
            logger.debug("Command failed, keeping session open until cancelled")
            await self._cancel_event.wait()
            return EXIT_FAILURE

        grace = self.config.grace_period
        logger.debug(f"Command failed, ending session in {grace}s")
        with anyio.move_on_after(grace):
            await self._cancel_event.wait()
        return EXIT_FAILURE

    def _emit_status(self, line: str) -> None:
        """通过正常输出路径追加状态行，并强制刷新。"""
        if self._buffer is not None and not self._buffer.closed:
            self._buffer.push(f"\n{line}\n")
            self._buffer.flush()
        self._notify_status(line)

    def _notify_status(self, line: str) -> None:
        try:
            self.sink.on_status(line)
        except Exception as e:
            logger.warning(f"Sink status error: {e}")

    # ------------------------------------------------------------------
    # 取消
    # ------------------------------------------------------------------

    def request_cancel(self) -> None:
        """请求取消会话（必须在事件循环线程中调用）。

        清理开始后到达的请求会被忽略。
        """
        if self._teardown_started:
            logger.debug(f"Ignored: {CancellationRace('cancel requested during teardown')}")
            return
        if self._cancel_requested:
            logger.debug("Cancel already requested")
            return

        self._cancel_requested = True
        logger.debug(f"Cancel requested (state={self._state.value})")
        self._cancel_event.set()

    def scroll_position_changed(self, is_at_bottom: bool) -> None:
        """显示端报告滚动位置（线程安全）。"""
        self._call_in_loop(self._set_auto_follow, is_at_bottom)

    def user_requested_close(self) -> None:
        """用户关闭窗口（线程安全），与 SIGINT 走同一取消路径。"""
        self._call_in_loop(self.request_cancel)

    def user_requested_cancel(self) -> None:
        """用户请求取消（线程安全）。"""
        self._call_in_loop(self.request_cancel)

    def _set_auto_follow(self, is_at_bottom: bool) -> None:
        if self._buffer is not None:
            self._buffer.set_auto_follow(is_at_bottom)

    def _call_in_loop(self, callback: Callable[..., Any], *args: Any) -> None:
        loop = self._loop
        if loop is None or loop.is_closed():
            logger.debug("Control event received outside of a running session")
            return
        try:
            loop.call_soon_threadsafe(callback, *args)
        except RuntimeError as e:
            logger.debug(f"Control event dropped: {e}")

    # ------------------------------------------------------------------
    # 清理
    # ------------------------------------------------------------------

    async def _teardown(self) -> None:
        """按固定顺序释放资源（幂等）。

        停止读取 -> 等待读取结束 -> 最后一次刷新 -> 释放管道和进程 ->
        移除信号处理器 -> 通知显示端
        """
        if self._teardown_started:
            return
        self._teardown_started = True
        self._state = SessionState.DRAINING

        try:
            await self.supervisor.stop_readers()
            if self._buffer is not None:
                self._buffer.close()
            await self.supervisor.release()
        finally:
            await self._signal_manager.stop()
            self._state = SessionState.TERMINATED
            try:
                self.sink.on_session_end()
            except Exception as e:
                logger.warning(f"Sink session end error: {e}")
            logger.debug("Session terminated")
