"""logpopup 应用入口。

负责：
1. 解析命令行参数（--help / --version 在启动子进程前直接返回）
2. 配置日志（默认只输出 WARNING 以上到 stderr，LOG_DEBUG 模式输出到临时文件）
3. 选择显示端（GUI 进程或无界面模式）
4. 运行会话并返回退出码
"""

from __future__ import annotations

import asyncio
import logging
import shlex
import sys
from typing import Sequence

from . import __version__
from .cli import USAGE, parse_args
from .config import Config, RunConfig, get_config
from .errors import LogPopupError, UsageError
from .gui_manager import GUIConfig, GUIManager
from .session import EXIT_FAILURE, SessionController
from .sinks import DisplaySink, HeadlessSink

__all__ = ["main", "run", "run_session"]

logger = logging.getLogger(__name__)

EXIT_USAGE = 2


def _configure_logging(config: Config) -> None:
    """配置日志输出。

    stderr 同时承载子进程的 tee 输出，默认模式下保持安静。
    """
    log_handlers: list[logging.Handler] = []

    if config.log_debug and config.log_file:
        # LOG_DEBUG 模式：输出到临时文件
        file_handler = logging.FileHandler(config.log_file, encoding="utf-8")
        file_handler.setFormatter(
            logging.Formatter("%(asctime)s [%(levelname)s] %(name)s: %(message)s")
        )
        log_handlers.append(file_handler)
        log_level = logging.DEBUG
    else:
        # 默认模式：输出到 stderr
        stderr_handler = logging.StreamHandler(sys.stderr)
        stderr_handler.setFormatter(
            logging.Formatter("logpopup [%(levelname)s] %(name)s: %(message)s")
        )
        log_handlers.append(stderr_handler)
        log_level = logging.WARNING

    # 配置 root logger（第三方库）为 WARNING，减少噪音
    logging.basicConfig(
        level=logging.WARNING,
        handlers=log_handlers,
    )
    # 只对 logpopup 命名空间启用详细日志
    logging.getLogger("logpopup").setLevel(log_level)


async def run_session(run_config: RunConfig, config: Config) -> int:
    """创建显示端并运行一次会话。"""
    sink: DisplaySink = HeadlessSink()
    gui: GUIManager | None = None

    if config.gui_enabled:
        gui = GUIManager(
            GUIConfig(title=shlex.join(run_config.argv), on_top=run_config.on_top)
        )
        if gui.start():
            sink = gui
        else:
            gui = None

    controller = SessionController(run_config, sink, config=config)
    if gui is not None:
        gui.bind(controller)

    try:
        return await controller.run()
    finally:
        if gui is not None:
            gui.stop()


def run(argv: Sequence[str] | None = None) -> int:
    """解析参数并运行，返回进程退出码。"""
    args = parse_args(sys.argv[1:] if argv is None else argv)

    if args.show_help:
        print(USAGE)
        return 0
    if args.show_version:
        print(f"logpopup version: {__version__}")
        return 0

    try:
        run_config = args.to_run_config()
    except UsageError as e:
        print(f"Error: {e}", file=sys.stderr)
        print(USAGE, file=sys.stderr)
        return EXIT_USAGE

    config = get_config()
    _configure_logging(config)
    if config.log_file:
        logger.debug(f"Debug log: {config.log_file}")
    logger.debug(f"Config: {config}")

    try:
        return asyncio.run(run_session(run_config, config))
    except LogPopupError as e:
        logger.error(f"logpopup failed: {e}")
        return EXIT_FAILURE


def main() -> None:
    """主入口点。"""
    sys.exit(run())


if __name__ == "__main__":
    main()
