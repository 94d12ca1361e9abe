"""logpopup 环境变量配置管理。

环境变量:
    LOGPOPUP_GUI: 是否显示弹出窗口
        - true/1/yes = 显示 (默认)
        - false/0/no = 无界面模式（仅 tee 到终端）

    LOGPOPUP_LOG_DEBUG: 日志调试模式
        - true/1/yes = 开启 (日志输出到临时文件)
        - false/0/no = 关闭 (默认，仅 WARNING 以上输出到 stderr)

    LOGPOPUP_FLUSH_INTERVAL_MS: 输出合并刷新间隔（毫秒）
        - 默认 16
        - 限制在 1-1000 范围

    LOGPOPUP_GRACE_PERIOD: 命令失败后自动关闭前的等待时间（秒）
        - 默认 5.0
        - 限制在 0-3600 范围

    LOGPOPUP_MAX_LINES: 窗口保留的最大行数
        - 默认 5000
        - 最小 200

    LOGPOPUP_DRAIN_TIMEOUT: 子进程退出后等待管道读完的最长时间（秒）
        - 默认 1.0

    LOGPOPUP_TERM_TIMEOUT: 发送终止请求后等待子进程回收的最长时间（秒）
        - 默认 2.0
"""

from __future__ import annotations

import os
import tempfile
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Mapping

__all__ = [
    "Config",
    "RunConfig",
    "load_config",
    "get_config",
    "reload_config",
    "DEFAULT_FLUSH_INTERVAL",
    "DEFAULT_GRACE_PERIOD",
    "DEFAULT_MAX_LINES",
    "DEFAULT_DRAIN_TIMEOUT",
    "DEFAULT_TERM_TIMEOUT",
    "TRIM_MARGIN",
]

DEFAULT_FLUSH_INTERVAL = 0.016  # 秒
DEFAULT_GRACE_PERIOD = 5.0
DEFAULT_MAX_LINES = 5000
DEFAULT_DRAIN_TIMEOUT = 1.0
DEFAULT_TERM_TIMEOUT = 2.0
TRIM_MARGIN = 100  # 裁剪到 max_lines - TRIM_MARGIN 行


@dataclass(frozen=True)
class RunConfig:
    """单次运行的输入（由命令行解析得到，创建后不再修改）。

    Attributes:
        command: 命令名（按 PATH 查找）
        args: 传给命令的参数
        keep_on_fail: 命令失败时保持窗口打开
        on_top: 窗口置顶
        env: 子进程环境变量（None = 继承当前进程）
    """

    command: str
    args: tuple[str, ...] = ()
    keep_on_fail: bool = False
    on_top: bool = False
    env: Mapping[str, str] | None = None

    @property
    def argv(self) -> list[str]:
        return [self.command, *self.args]


@dataclass
class Config:
    """logpopup 配置。

    Attributes:
        gui_enabled: 是否显示弹出窗口
        log_debug: 日志调试模式（输出到临时文件）
        log_file: 日志文件路径（当 log_debug=True 时自动设置）
        flush_interval: 输出合并刷新间隔（秒）
        grace_period: 失败后自动关闭的等待时间（秒）
        max_lines: 保留的最大行数
        trim_margin: 裁剪时低于上限的行数
        drain_timeout: 退出后等待管道读完的时间（秒）
        term_timeout: 终止请求后等待回收的时间（秒）
    """

    gui_enabled: bool = True
    log_debug: bool = False
    log_file: str | None = None
    flush_interval: float = DEFAULT_FLUSH_INTERVAL
    grace_period: float = DEFAULT_GRACE_PERIOD
    max_lines: int = DEFAULT_MAX_LINES
    trim_margin: int = TRIM_MARGIN
    drain_timeout: float = DEFAULT_DRAIN_TIMEOUT
    term_timeout: float = DEFAULT_TERM_TIMEOUT

    def __repr__(self) -> str:
        return (
            f"Config(gui_enabled={self.gui_enabled}, "
            f"log_debug={self.log_debug}, "
            f"log_file={self.log_file}, "
            f"flush_interval={self.flush_interval}, "
            f"grace_period={self.grace_period}, "
            f"max_lines={self.max_lines}, "
            f"drain_timeout={self.drain_timeout}, "
            f"term_timeout={self.term_timeout})"
        )


def _parse_bool(value: str | None, default: bool = False) -> bool:
    """解析布尔值环境变量。"""
    if value is None:
        return default
    return value.lower() in ("true", "1", "yes", "on")


def _parse_float(value: str | None, default: float, low: float, high: float) -> float:
    """解析浮点数环境变量，超出范围时截断，无效值返回默认值。"""
    if not value:
        return default
    try:
        number = float(value)
    except ValueError:
        return default
    return max(low, min(number, high))


def _parse_flush_interval(value: str | None) -> float:
    """解析刷新间隔（毫秒 -> 秒）。"""
    if not value:
        return DEFAULT_FLUSH_INTERVAL
    try:
        ms = int(value)
    except ValueError:
        return DEFAULT_FLUSH_INTERVAL
    return max(1, min(ms, 1000)) / 1000


def _parse_max_lines(value: str | None) -> int:
    """解析最大行数，必须大于裁剪余量。"""
    if not value:
        return DEFAULT_MAX_LINES
    try:
        lines = int(value)
    except ValueError:
        return DEFAULT_MAX_LINES
    return max(lines, 2 * TRIM_MARGIN)


def _generate_log_file_path() -> str:
    """生成日志文件路径。

    Returns:
        临时目录下的日志文件绝对路径
    """
    log_dir = Path(tempfile.gettempdir()) / "logpopup"
    log_dir.mkdir(parents=True, exist_ok=True)

    timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
    log_file = log_dir / f"logpopup_debug_{timestamp}.log"

    return str(log_file.resolve())


def load_config() -> Config:
    """从环境变量加载配置。"""
    log_debug = _parse_bool(os.environ.get("LOGPOPUP_LOG_DEBUG"), default=False)
    log_file = _generate_log_file_path() if log_debug else None

    return Config(
        gui_enabled=_parse_bool(os.environ.get("LOGPOPUP_GUI"), default=True),
        log_debug=log_debug,
        log_file=log_file,
        flush_interval=_parse_flush_interval(os.environ.get("LOGPOPUP_FLUSH_INTERVAL_MS")),
        grace_period=_parse_float(
            os.environ.get("LOGPOPUP_GRACE_PERIOD"), DEFAULT_GRACE_PERIOD, 0.0, 3600.0
        ),
        max_lines=_parse_max_lines(os.environ.get("LOGPOPUP_MAX_LINES")),
        drain_timeout=_parse_float(
            os.environ.get("LOGPOPUP_DRAIN_TIMEOUT"), DEFAULT_DRAIN_TIMEOUT, 0.0, 60.0
        ),
        term_timeout=_parse_float(
            os.environ.get("LOGPOPUP_TERM_TIMEOUT"), DEFAULT_TERM_TIMEOUT, 0.0, 60.0
        ),
    )


# 全局配置实例（延迟加载）
_config: Config | None = None


def get_config() -> Config:
    """获取全局配置实例。"""
    global _config
    if _config is None:
        _config = load_config()
    return _config


def reload_config() -> Config:
    """重新加载配置（用于测试）。"""
    global _config
    _config = load_config()
    return _config
