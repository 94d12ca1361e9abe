"""Pytest 配置和 fixtures。"""

from __future__ import annotations

import sys
from pathlib import Path

import pytest

# 项目根目录
PROJECT_ROOT = Path(__file__).parent.parent

# 添加 src 目录到 Python 路径
SRC_DIR = PROJECT_ROOT / "src"
if str(SRC_DIR) not in sys.path:
    sys.path.insert(0, str(SRC_DIR))

# 测试用子进程脚本
FAKE_CLI = Path(__file__).parent / "fixtures" / "fake_cli.py"


class RecordingSink:
    """记录所有调用的显示端。"""

    def __init__(self) -> None:
        self.flushes: list[tuple[str, bool]] = []
        self.trims: list[str] = []
        self.statuses: list[str] = []
        self.session_ended = 0

    def on_flush(self, text: str, should_auto_follow: bool) -> None:
        self.flushes.append((text, should_auto_follow))

    def on_trim(self, new_full_text: str) -> None:
        self.trims.append(new_full_text)

    def on_status(self, line: str) -> None:
        self.statuses.append(line)

    def on_session_end(self) -> None:
        self.session_ended += 1

    @property
    def text(self) -> str:
        """所有刷新文本（不考虑裁剪）。"""
        return "".join(text for text, _ in self.flushes)


@pytest.fixture
def project_root() -> Path:
    """项目根目录。"""
    return PROJECT_ROOT


@pytest.fixture
def recording_sink() -> RecordingSink:
    """记录调用的显示端。"""
    return RecordingSink()


@pytest.fixture
def fake_cli_argv() -> list[str]:
    """运行 fake_cli.py 的命令行前缀。"""
    return [sys.executable, str(FAKE_CLI)]
