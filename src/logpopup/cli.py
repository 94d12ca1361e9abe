"""命令行参数解析。

用法:
    logpopup [--keep-on-fail] [--on-top] [--help] [--version] <command> [args...]

规则:
    - 选项只在命令之前识别
    - 未知的 --选项 被忽略
    - 命令之后的所有参数原样传给子进程
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Sequence

from .config import RunConfig
from .errors import UsageError

__all__ = [
    "CLIArgs",
    "USAGE",
    "parse_args",
]

USAGE = """\
logpopup executes a command and shows its output in a popup window.
It combines stdout and stderr and tees the output to both the popup and the terminal.

Usage: logpopup [options] <command> [args...]

Options:
  --keep-on-fail   Keep window open if command fails
  --on-top         Keep window on top of other windows
  --help           Show this help message and exit
  --version        Show version and exit
"""


@dataclass
class CLIArgs:
    """解析后的命令行参数。"""

    keep_on_fail: bool = False
    on_top: bool = False
    show_help: bool = False
    show_version: bool = False
    command: str | None = None
    command_args: list[str] = field(default_factory=list)

    def to_run_config(self) -> RunConfig:
        """转换为 RunConfig。

        Raises:
            UsageError: 未指定命令
        """
        if not self.command:
            raise UsageError("No command specified")
        return RunConfig(
            command=self.command,
            args=tuple(self.command_args),
            keep_on_fail=self.keep_on_fail,
            on_top=self.on_top,
        )


def parse_args(argv: Sequence[str]) -> CLIArgs:
    """解析命令行参数（不含程序名）。"""
    args = CLIArgs()
    for i, arg in enumerate(argv):
        if arg == "--keep-on-fail":
            args.keep_on_fail = True
        elif arg == "--on-top":
            args.on_top = True
        elif arg == "--help":
            args.show_help = True
        elif arg == "--version":
            args.show_version = True
        elif arg.startswith("--"):
            # 未知选项，跳过
            continue
        else:
            args.command = arg
            args.command_args = list(argv[i + 1:])
            break
    return args
