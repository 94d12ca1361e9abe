"""Runtime module for child process supervision and output streaming.

This module provides the process supervisor, the per-pipe stream readers
and the coalescing output buffer that feeds the display sink.
"""

from __future__ import annotations

from .output_buffer import OutputBuffer, split_lines
from .process_runner import ProcessSession, ProcessSupervisor, TerminationOutcome
from .stream_reader import StreamReader

__all__ = [
    "OutputBuffer",
    "ProcessSession",
    "ProcessSupervisor",
    "StreamReader",
    "TerminationOutcome",
    "split_lines",
]
