"""pywebview 窗口管理。

提供日志弹出窗口和 Queue 通信机制。窗口必须运行在所在进程的主线程，
渲染请求由单一轮询线程批量通过 evaluate_js 推送到页面。

Example:
    window = LogWindow(WindowConfig(title="make test"), on_control=print)
    window.push_flush("hello\\n", True)
    window.start()  # 阻塞直到窗口关闭
"""

from __future__ import annotations

import json
import logging
import queue
import threading
import time
from dataclasses import dataclass
from typing import Any, Callable

from .template import generate_html

logger = logging.getLogger(__name__)

__all__ = [
    "LogWindow",
    "WindowConfig",
]


@dataclass
class WindowConfig:
    """窗口配置。

    Attributes:
        title: 窗口标题
        width: 窗口宽度
        height: 窗口高度
        on_top: 初始是否置顶
        queue_max_size: 渲染队列最大大小
        poll_interval_ms: 队列轮询间隔（毫秒）
    """
    title: str = "logpopup"
    width: int = 800
    height: int = 600
    on_top: bool = False
    queue_max_size: int = 5000
    poll_interval_ms: int = 20


class _WindowApi:
    """暴露给页面 JS 的接口（window.pywebview.api）。"""

    def __init__(self, owner: LogWindow) -> None:
        self._owner = owner

    def scroll_changed(self, at_bottom: bool) -> None:
        self._owner.emit_control({"type": "scroll", "at_bottom": bool(at_bottom)})

    def toggle_pin(self) -> bool:
        return self._owner.set_on_top(not self._owner.on_top)

    def lower(self) -> None:
        self._owner.set_on_top(False)
        self._owner.minimize()

    def request_close(self) -> None:
        self._owner.emit_control({"type": "cancel"})


class LogWindow:
    """日志弹出窗口。

    Args:
        config: 窗口配置
        on_control: 控制事件回调（ready / scroll / cancel / closed），
            在 pywebview 或轮询线程中调用
    """

    def __init__(
        self,
        config: WindowConfig | None = None,
        on_control: Callable[[dict[str, Any]], None] | None = None,
    ) -> None:
        self.config = config or WindowConfig()
        self._on_control = on_control

        # 渲染队列：(js 函数名, 参数...) 或 None（停止）
        self._queue: queue.Queue[tuple[Any, ...] | None] = queue.Queue(
            maxsize=self.config.queue_max_size
        )

        self._window = None
        self._on_top = self.config.on_top
        self._started = threading.Event()
        self._closed = threading.Event()
        self._poll_thread: threading.Thread | None = None

    # ------------------------------------------------------------------
    # 生命周期
    # ------------------------------------------------------------------

    def start(self) -> None:
        """创建窗口并运行 pywebview 主循环（阻塞）。"""
        try:
            import webview
        except ImportError as e:
            raise ImportError(
                "pywebview is required for GUI. Install with: pip install pywebview"
            ) from e

        html = generate_html(title=self.config.title, on_top=self.config.on_top)

        self._window = webview.create_window(
            self.config.title,
            html=html,
            width=self.config.width,
            height=self.config.height,
            min_size=(400, 200),
            on_top=self.config.on_top,
            js_api=_WindowApi(self),
        )

        def on_loaded():
            self._started.set()
            self._poll_thread = threading.Thread(
                target=self._poll_queue_loop, daemon=True, name="log_window_poll"
            )
            self._poll_thread.start()
            self.emit_control({"type": "ready"})

        def on_closed():
            self._closed.set()
            try:
                self._queue.put_nowait(None)
            except queue.Full:
                pass
            self.emit_control({"type": "closed"})

        self._window.events.loaded += on_loaded
        self._window.events.closed += on_closed

        webview.start()

    def close(self) -> None:
        """关闭窗口。"""
        if self._window is not None and not self._closed.is_set():
            try:
                self._window.destroy()
            except Exception as e:
                logger.debug(f"Window destroy error: {e}")

    @property
    def is_running(self) -> bool:
        return self._started.is_set() and not self._closed.is_set()

    # ------------------------------------------------------------------
    # 渲染请求（任意线程）
    # ------------------------------------------------------------------

    def push_flush(self, text: str, follow: bool) -> bool:
        return self._enqueue(("appendText", text, follow))

    def push_trim(self, text: str, follow: bool) -> bool:
        return self._enqueue(("replaceText", text, follow))

    def push_status(self, line: str, ok: bool) -> bool:
        return self._enqueue(("setStatus", line, ok))

    def _enqueue(self, item: tuple[Any, ...]) -> bool:
        try:
            self._queue.put_nowait(item)
            return True
        except queue.Full:
            logger.debug("Window render queue full, dropping update")
            return False

    def _poll_queue_loop(self) -> None:
        """后台轮询线程主循环。"""
        poll_interval = self.config.poll_interval_ms / 1000

        while not self._closed.is_set() and self._window is not None:
            processed = 0
            while processed < 100:  # 每次最多处理 100 个请求
                try:
                    item = self._queue.get_nowait()
                except queue.Empty:
                    break
                if item is None:
                    return
                self._render(item)
                processed += 1

            time.sleep(poll_interval)

    def _render(self, item: tuple[Any, ...]) -> None:
        if self._window is None:
            return
        func, *args = item
        call = f"{func}({', '.join(json.dumps(arg) for arg in args)})"
        try:
            self._window.evaluate_js(call)
        except Exception as e:
            logger.warning(f"Render error: {e}")

    # ------------------------------------------------------------------
    # 窗口控制（供 _WindowApi 使用）
    # ------------------------------------------------------------------

    @property
    def on_top(self) -> bool:
        return self._on_top

    def set_on_top(self, enabled: bool) -> bool:
        self._on_top = enabled
        if self._window is not None:
            try:
                self._window.on_top = enabled
            except Exception as e:
                logger.debug(f"Failed to set on_top: {e}")
        return self._on_top

    def minimize(self) -> None:
        if self._window is not None:
            try:
                self._window.minimize()
            except Exception as e:
                logger.debug(f"Failed to minimize window: {e}")

    def emit_control(self, message: dict[str, Any]) -> None:
        if self._on_control is None:
            return
        try:
            self._on_control(message)
        except Exception as e:
            logger.debug(f"Control callback error: {e}")
