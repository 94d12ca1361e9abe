"""logpopup 弹出窗口（pywebview）。

此包只在 GUI 子进程中导入 pywebview。
"""

from __future__ import annotations

from .template import generate_html
from .window import LogWindow, WindowConfig

__all__ = [
    "LogWindow",
    "WindowConfig",
    "generate_html",
]
