"""GUIManager 与弹出窗口测试（不启动真实窗口）。"""

from __future__ import annotations

import logging
import queue
import sys
from unittest import mock

import pytest

from logpopup.gui import LogWindow, WindowConfig, generate_html
from logpopup.gui.window import _WindowApi
from logpopup.gui_manager import GUIConfig, GUIManager, _is_success_status
from logpopup.sinks import DisplaySink, HeadlessSink


@pytest.fixture
def running_manager() -> GUIManager:
    """模拟已启动的 GUIManager（使用本地队列代替进程间队列）。"""
    manager = GUIManager(GUIConfig(title="make test"))
    manager._running = True
    manager._event_queue = queue.Queue()
    return manager


def drain(q: queue.Queue) -> list:
    items = []
    while True:
        try:
            items.append(q.get_nowait())
        except queue.Empty:
            return items


class TestSinkProtocol:
    """DisplaySink 协议测试。"""

    def test_gui_manager_is_display_sink(self):
        assert isinstance(GUIManager(), DisplaySink)

    def test_headless_sink_is_display_sink(self):
        assert isinstance(HeadlessSink(), DisplaySink)

    def test_headless_sink_writes_status(self):
        import io

        stream = io.StringIO()
        sink = HeadlessSink(stream)
        sink.on_flush("ignored\n", True)
        sink.on_status("[Process exited with code: 0]")
        sink.on_session_end()

        assert stream.getvalue() == "[Process exited with code: 0]\n"
        assert sink.ended


class TestGUIManagerEvents:
    """渲染事件推送测试。"""

    def test_flush_trim_status(self, running_manager):
        running_manager.on_flush("a\n", False)
        running_manager.on_trim("a\n")
        running_manager.on_status("[Process exited with code: 0]")

        events = drain(running_manager._event_queue)
        assert events == [
            {"type": "flush", "text": "a\n", "follow": False},
            {"type": "trim", "text": "a\n", "follow": False},
            {"type": "status", "line": "[Process exited with code: 0]", "ok": True},
        ]

    def test_push_when_stopped(self):
        manager = GUIManager()
        assert manager._push({"type": "flush"}) is False

    def test_queue_full(self, running_manager):
        running_manager._event_queue = queue.Queue(maxsize=1)
        assert running_manager._push({"type": "flush"}) is True
        assert running_manager._push({"type": "flush"}) is False

    def test_queue_full_stays_off_stderr(self, running_manager, caplog):
        """队列满时丢弃事件不产生 WARNING 日志（避免混入子进程 stderr）。"""
        running_manager._event_queue = queue.Queue(maxsize=1)
        running_manager.on_flush("a\n", True)

        with caplog.at_level(logging.DEBUG, logger="logpopup.gui_manager"):
            for _ in range(50):
                running_manager.on_flush("b\n", True)

        assert not [r for r in caplog.records if r.levelno >= logging.WARNING]
        assert "GUI event queue full" in caplog.text

    def test_success_status(self):
        assert _is_success_status("[Process exited with code: 0]")
        assert not _is_success_status("[Process exited with code: 10]")
        assert not _is_success_status("[Process terminated by user]")


class TestGUIManagerControls:
    """控制事件分发测试。"""

    def test_dispatch(self, running_manager):
        controls = mock.Mock()
        running_manager.bind(controls)

        running_manager._dispatch({"type": "ready"})
        running_manager._dispatch({"type": "scroll", "at_bottom": False})
        running_manager._dispatch({"type": "cancel"})
        running_manager._dispatch({"type": "closed"})

        assert running_manager.is_ready
        controls.scroll_position_changed.assert_called_once_with(False)
        controls.user_requested_cancel.assert_called_once_with()
        controls.user_requested_close.assert_called_once_with()

    def test_dispatch_ignored_after_stop(self):
        manager = GUIManager()
        controls = mock.Mock()
        manager.bind(controls)

        manager._dispatch({"type": "closed"})

        controls.user_requested_close.assert_not_called()

    def test_gui_exit_before_ready_keeps_session(self, running_manager):
        """窗口从未打开时 GUI 退出不取消会话。"""
        controls = mock.Mock()
        running_manager.bind(controls)
        running_manager._process = mock.Mock(exitcode=1)

        running_manager._handle_gui_exit()

        controls.user_requested_close.assert_not_called()

    def test_gui_exit_after_ready_closes_session(self, running_manager):
        controls = mock.Mock()
        running_manager.bind(controls)
        running_manager._process = mock.Mock(exitcode=0)
        running_manager._dispatch({"type": "ready"})

        running_manager._handle_gui_exit()

        controls.user_requested_close.assert_called_once_with()


class TestGUIManagerLifecycle:
    """启动与停止测试。"""

    def test_start_without_pywebview(self):
        manager = GUIManager()
        with mock.patch.dict(sys.modules, {"webview": None}):
            assert manager.start() is False
        assert not manager.is_running

    def test_stop_when_not_running(self):
        GUIManager().stop()

    def test_stop_sends_shutdown_and_joins(self):
        manager = GUIManager(GUIConfig(shutdown_timeout=0.1))
        event_queue = mock.Mock()
        control_queue = mock.Mock()
        process = mock.Mock()
        process.is_alive.return_value = False

        manager._running = True
        manager._event_queue = event_queue
        manager._control_queue = control_queue
        manager._process = process

        manager.on_session_end()

        event_queue.put_nowait.assert_called_once_with(None)
        process.join.assert_called_once_with(timeout=0.1)
        process.terminate.assert_not_called()
        control_queue.cancel_join_thread.assert_called_once_with()
        assert not manager._running

    def test_stop_terminates_hung_process(self):
        manager = GUIManager(GUIConfig(shutdown_timeout=0.1))
        process = mock.Mock()
        process.is_alive.side_effect = [True, False]

        manager._running = True
        manager._event_queue = mock.Mock()
        manager._control_queue = mock.Mock()
        manager._process = process

        manager.stop()

        process.terminate.assert_called_once_with()
        process.kill.assert_not_called()


class TestLogWindow:
    """窗口渲染测试（模拟 pywebview 窗口）。"""

    def test_render_calls_js(self):
        window = LogWindow(WindowConfig(title="t"))
        window._window = mock.Mock()

        window._render(("appendText", 'say "hi"\n', True))

        window._window.evaluate_js.assert_called_once_with('appendText("say \\"hi\\"\\n", true)')

    def test_render_error_contained(self):
        window = LogWindow()
        window._window = mock.Mock()
        window._window.evaluate_js.side_effect = RuntimeError("gone")

        window._render(("setStatus", "x", False))

    def test_push_enqueues(self):
        window = LogWindow()
        assert window.push_flush("a", True)
        assert window.push_trim("b", False)
        assert window.push_status("c", True)
        assert drain(window._queue) == [
            ("appendText", "a", True),
            ("replaceText", "b", False),
            ("setStatus", "c", True),
        ]

    def test_render_queue_full_logged_at_debug(self, caplog):
        window = LogWindow(WindowConfig(queue_max_size=1))
        assert window.push_flush("a", True)

        with caplog.at_level(logging.DEBUG, logger="logpopup.gui.window"):
            assert not window.push_flush("b", True)

        assert not [r for r in caplog.records if r.levelno >= logging.WARNING]
        assert "Window render queue full" in caplog.text

    def test_api_controls(self):
        messages = []
        window = LogWindow(WindowConfig(on_top=False), on_control=messages.append)
        window._window = mock.Mock()
        api = _WindowApi(window)

        assert api.toggle_pin() is True
        assert window._window.on_top is True
        api.lower()
        api.scroll_changed(False)
        api.request_close()

        assert window.on_top is False
        window._window.minimize.assert_called_once_with()
        assert messages == [
            {"type": "scroll", "at_bottom": False},
            {"type": "cancel"},
        ]


class TestTemplate:
    """HTML 模板测试。"""

    def test_title_escaped(self):
        html = generate_html(title="echo <b>")
        assert "echo &lt;b&gt;" in html
        assert "<b>" not in html

    def test_functions_present(self):
        html = generate_html()
        for name in ("appendText", "replaceText", "setStatus", "scroll_changed", "toggle_pin"):
            assert name in html

    def test_on_top_flag(self):
        assert "let pinned = true;" in generate_html(on_top=True)
        assert "let pinned = false;" in generate_html(on_top=False)
