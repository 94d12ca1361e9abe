"""GUI 进程管理器。

pywebview 要求窗口运行在进程主线程，而主线程的事件循环负责 SIGINT 处理，
因此弹出窗口运行在独立的子进程中：

- event_queue: 主进程 -> GUI（flush / trim / status，None 表示关闭）
- control_queue: GUI -> 主进程（ready / scroll / cancel / closed）
- GUI 进程忽略 SIGINT，由主进程统一处理取消
- GUI 进程检测到主进程退出时自行关闭

GUIManager 本身实现 DisplaySink 协议，可直接交给 SessionController。
"""

from __future__ import annotations

import logging
import multiprocessing as mp
import queue
import signal
import threading
import time
from dataclasses import dataclass
from typing import Any

from .sinks import SessionControls

__all__ = ["GUIManager", "GUIConfig"]

logger = logging.getLogger(__name__)


@dataclass
class GUIConfig:
    """GUI 配置。"""

    title: str = "logpopup"
    on_top: bool = False
    width: int = 800
    height: int = 600

    event_queue_size: int = 5000
    shutdown_timeout: float = 2.0  # 等待 GUI 进程退出的时间（秒）
    parent_check_interval: float = 0.5


def _is_success_status(line: str) -> bool:
    return line == "[Process exited with code: 0]"


def _gui_process_entry(
    event_queue: mp.Queue,
    control_queue: mp.Queue,
    config_dict: dict,
) -> None:
    """GUI 子进程入口。

    职责：
    1. 创建并运行弹出窗口
    2. 把 event_queue 中的渲染请求转交给窗口
    3. 主进程消失时关闭窗口
    """
    # 取消由主进程负责
    signal.signal(signal.SIGINT, signal.SIG_IGN)

    from .gui import LogWindow, WindowConfig

    def send_control(message: dict[str, Any]) -> None:
        try:
            control_queue.put_nowait(message)
        except Exception as e:
            logger.debug(f"Control send error: {e}")

    window = LogWindow(
        WindowConfig(
            title=config_dict.get("title", "logpopup"),
            on_top=config_dict.get("on_top", False),
            width=config_dict.get("width", 800),
            height=config_dict.get("height", 600),
        ),
        on_control=send_control,
    )

    should_exit = threading.Event()
    check_interval = config_dict.get("parent_check_interval", 0.5)

    # 渲染请求转发线程
    def forward_events():
        while not should_exit.is_set():
            try:
                event = event_queue.get(timeout=0.1)
            except queue.Empty:
                continue
            except (EOFError, OSError):
                should_exit.set()
                window.close()
                return

            if event is None:  # 停止信号
                should_exit.set()
                window.close()
                return

            kind = event.get("type")
            if kind == "flush":
                window.push_flush(event["text"], event["follow"])
            elif kind == "trim":
                window.push_trim(event["text"], event["follow"])
            elif kind == "status":
                window.push_status(event["line"], event["ok"])

    # 监控线程：主进程退出时关闭窗口
    def monitor_parent():
        parent = mp.parent_process()
        while not should_exit.is_set():
            if parent is not None and not parent.is_alive():
                logger.warning("Parent process exited, closing window")
                should_exit.set()
                window.close()
                return
            time.sleep(check_interval)

    threading.Thread(target=forward_events, daemon=True, name="gui_forward").start()
    threading.Thread(target=monitor_parent, daemon=True, name="gui_parent_monitor").start()

    # 运行 GUI（阻塞）
    window.start()

    should_exit.set()
    logger.debug("GUI process exiting")


class GUIManager:
    """GUI 进程管理器（DisplaySink 实现）。

    Example:
        manager = GUIManager(GUIConfig(title="make test"))
        if manager.start():
            controller = SessionController(run_config, manager)
            manager.bind(controller)
            await controller.run()  # on_session_end 会关闭窗口
    """

    def __init__(self, config: GUIConfig | None = None) -> None:
        self.config = config or GUIConfig()

        # 进程和队列
        self._process: mp.Process | None = None
        self._event_queue: mp.Queue | None = None
        self._control_queue: mp.Queue | None = None

        # 状态
        self._controls: SessionControls | None = None
        self._running = False
        self._ready = threading.Event()
        self._last_follow = True

        self._listener_thread: threading.Thread | None = None
        self._lock = threading.Lock()

    def bind(self, controls: SessionControls) -> None:
        """绑定接收窗口控制事件的会话。"""
        self._controls = controls

    # ------------------------------------------------------------------
    # 生命周期
    # ------------------------------------------------------------------

    def start(self) -> bool:
        """启动 GUI 进程。

        Returns:
            是否成功启动（pywebview 不可用时返回 False）
        """
        with self._lock:
            if self._running:
                return True

            try:
                import webview  # noqa: F401
            except ImportError:
                logger.warning("pywebview is not available, running without GUI")
                return False

            self._event_queue = mp.Queue(maxsize=self.config.event_queue_size)
            self._control_queue = mp.Queue()

            config_dict = {
                "title": self.config.title,
                "on_top": self.config.on_top,
                "width": self.config.width,
                "height": self.config.height,
                "parent_check_interval": self.config.parent_check_interval,
            }

            try:
                self._process = mp.Process(
                    target=_gui_process_entry,
                    args=(self._event_queue, self._control_queue, config_dict),
                    daemon=True,
                    name="logpopup_gui",
                )
                self._process.start()
            except Exception as e:
                logger.warning(f"Failed to spawn GUI: {e}")
                self._process = None
                return False

            self._running = True
            self._listener_thread = threading.Thread(
                target=self._control_loop, daemon=True, name="gui_control"
            )
            self._listener_thread.start()

            logger.debug(f"GUI process started (PID: {self._process.pid})")
            return True

    def stop(self) -> None:
        """关闭窗口并回收 GUI 进程。"""
        with self._lock:
            if not self._running:
                return
            self._running = False

            if self._event_queue is not None:
                try:
                    self._event_queue.put_nowait(None)
                except Exception:
                    pass

            self._terminate_process()

            for q in (self._event_queue, self._control_queue):
                if q is not None:
                    q.cancel_join_thread()
                    q.close()

            logger.debug("GUI Manager stopped")

    def _terminate_process(self) -> None:
        """等待 GUI 进程退出，超时则强制终止。"""
        if self._process is None:
            return

        try:
            self._process.join(timeout=self.config.shutdown_timeout)

            if self._process.is_alive():
                logger.debug("Force terminating GUI process")
                self._process.terminate()
                self._process.join(timeout=1)

                if self._process.is_alive():
                    self._process.kill()
                    self._process.join(timeout=1)
        except Exception as e:
            logger.debug(f"Terminate error: {e}")
        finally:
            self._process = None

    # ------------------------------------------------------------------
    # 控制事件（GUI -> 会话）
    # ------------------------------------------------------------------

    def _control_loop(self) -> None:
        """监听 GUI 回传的控制事件。"""
        while self._running:
            control_queue = self._control_queue
            if control_queue is None:
                return
            try:
                message = control_queue.get(timeout=0.2)
            except queue.Empty:
                process = self._process
                if process is not None and not process.is_alive() and self._running:
                    self._handle_gui_exit()
                    return
                continue
            except (EOFError, OSError, ValueError):
                return

            self._dispatch(message)

    def _dispatch(self, message: dict[str, Any]) -> None:
        kind = message.get("type")
        controls = self._controls

        if kind == "ready":
            self._ready.set()
            logger.debug("GUI window ready")
            return
        if controls is None or not self._running:
            return

        if kind == "scroll":
            controls.scroll_position_changed(bool(message.get("at_bottom", True)))
        elif kind == "cancel":
            controls.user_requested_cancel()
        elif kind == "closed":
            logger.debug("GUI window closed by user")
            controls.user_requested_close()

    def _handle_gui_exit(self) -> None:
        """GUI 进程意外退出。"""
        exit_code = self._process.exitcode if self._process is not None else None
        if not self._ready.is_set():
            # 窗口从未打开，继续以终端模式运行
            logger.warning(f"GUI process exited before window opened (code: {exit_code})")
            return
        logger.debug(f"GUI process exited (code: {exit_code})")
        if self._controls is not None:
            self._controls.user_requested_close()

    # ------------------------------------------------------------------
    # DisplaySink
    # ------------------------------------------------------------------

    def on_flush(self, text: str, should_auto_follow: bool) -> None:
        self._last_follow = should_auto_follow
        self._push({"type": "flush", "text": text, "follow": should_auto_follow})

    def on_trim(self, new_full_text: str) -> None:
        self._push({"type": "trim", "text": new_full_text, "follow": self._last_follow})

    def on_status(self, line: str) -> None:
        self._push({"type": "status", "line": line, "ok": _is_success_status(line)})

    def on_session_end(self) -> None:
        self.stop()

    def _push(self, event: dict[str, Any]) -> bool:
        """推送渲染请求到 GUI。"""
        if not self._running or self._event_queue is None:
            return False
        try:
            self._event_queue.put_nowait(event)
            return True
        except queue.Full:
            logger.debug("GUI event queue full, dropping event")
            return False
        except (OSError, ValueError) as e:
            logger.debug(f"GUI push error: {e}")
            return False

    @property
    def is_running(self) -> bool:
        """GUI 是否正在运行。"""
        return (
            self._running
            and self._process is not None
            and self._process.is_alive()
        )

    @property
    def is_ready(self) -> bool:
        """窗口是否已加载完成。"""
        return self._ready.is_set()
