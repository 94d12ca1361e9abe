"""Coalescing output buffer with bounded line retention.

logpopup runtime module

This module provides:
- Debounced flushing: bursts of push() calls become one sink update
- Bounded scrollback: retained content is trimmed to a floor below the cap
- Auto-follow tracking for the display sink

Key design points:
- At most one pending flush handle exists at a time
- All mutation happens on the owning event loop (no locks)
- Trimming keeps max_lines - trim_margin lines so the next trim is
  at least trim_margin lines away
"""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING

from ..config import DEFAULT_FLUSH_INTERVAL, DEFAULT_MAX_LINES, TRIM_MARGIN

if TYPE_CHECKING:
    from ..sinks import DisplaySink

__all__ = [
    "OutputBuffer",
    "split_lines",
]

logger = logging.getLogger(__name__)


def split_lines(text: str) -> list[str]:
    """Split text into lines, keeping the trailing newline on each line.

    A trailing fragment without a newline counts as its own line.

    Example:
        split_lines("a\\nb\\nc") == ["a\\n", "b\\n", "c"]
    """
    parts = text.split("\n")
    lines = [part + "\n" for part in parts[:-1]]
    if parts[-1]:
        lines.append(parts[-1])
    return lines


class OutputBuffer:
    """Accumulates text fragments and flushes them to a display sink in batches.

    Example:
        buffer = OutputBuffer(sink, loop=asyncio.get_running_loop())
        buffer.push("hello\\n")   # schedules one flush ~16ms from now
        buffer.push("world\\n")   # joins the same flush
        ...
        buffer.close()           # final flush, timer stopped
    """

    def __init__(
        self,
        sink: DisplaySink,
        *,
        loop: asyncio.AbstractEventLoop | None = None,
        flush_interval: float = DEFAULT_FLUSH_INTERVAL,
        max_lines: int = DEFAULT_MAX_LINES,
        trim_margin: int = TRIM_MARGIN,
    ) -> None:
        if max_lines <= trim_margin:
            raise ValueError(
                f"max_lines ({max_lines}) must be greater than trim_margin ({trim_margin})"
            )
        self.sink = sink
        self.flush_interval = flush_interval
        self.max_lines = max_lines
        self.trim_margin = trim_margin

        self._loop = loop
        self._pending: list[str] = []
        self._retained: list[str] = []
        self._line_count = 0
        # Retained content ends in a line without its newline yet
        self._open_line = False
        self._flush_handle: asyncio.TimerHandle | None = None
        self._auto_follow = True
        self._closed = False

    # ------------------------------------------------------------------
    # Producer side
    # ------------------------------------------------------------------

    def push(self, text: str) -> None:
        """Queue text for the next flush, scheduling one if none is pending."""
        if self._closed:
            logger.debug(f"Dropping {len(text)} chars pushed after close")
            return
        if not text:
            return

        self._pending.append(text)

        if self._flush_handle is None:
            loop = self._loop or asyncio.get_running_loop()
            self._loop = loop
            self._flush_handle = loop.call_later(self.flush_interval, self._on_timer)

    def _on_timer(self) -> None:
        self._flush_handle = None
        self.flush()

    # ------------------------------------------------------------------
    # Flush and retention
    # ------------------------------------------------------------------

    def flush(self) -> None:
        """Move pending text into retained content and notify the sink.

        No-op when nothing is pending.
        """
        if self._flush_handle is not None:
            self._flush_handle.cancel()
            self._flush_handle = None

        if not self._pending:
            return

        text = "".join(self._pending)
        self._pending.clear()

        self._retained.append(text)
        added = len(split_lines(text))
        if self._open_line:
            added -= 1
        self._line_count += added
        self._open_line = not text.endswith("\n")

        try:
            self.sink.on_flush(text, self._auto_follow)
        except Exception as e:
            logger.warning(f"Sink flush error: {e}")

        if self._line_count > self.max_lines:
            self._trim()

    def _trim(self) -> None:
        """Keep only the most recent max_lines - trim_margin lines."""
        lines = split_lines("".join(self._retained))

        if len(lines) > self.max_lines:
            keep = self.max_lines - self.trim_margin
            lines = lines[-keep:]
            trimmed = "".join(lines)
            self._retained = [trimmed]
            logger.debug(f"Trimmed retained output to {len(lines)} lines")
            try:
                self.sink.on_trim(trimmed)
            except Exception as e:
                logger.warning(f"Sink trim error: {e}")

        self._line_count = len(lines)

    def close(self) -> None:
        """Force a final flush and stop the coalescing timer.

        Safe to call more than once.
        """
        if self._closed:
            return
        self.flush()
        self._closed = True

    # ------------------------------------------------------------------
    # Auto-follow
    # ------------------------------------------------------------------

    def set_auto_follow(self, enabled: bool) -> None:
        """Update whether flushes should ask the sink to scroll to the end."""
        self._auto_follow = enabled

    @property
    def auto_follow(self) -> bool:
        return self._auto_follow

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------

    @property
    def pending(self) -> str:
        """Text pushed but not yet flushed."""
        return "".join(self._pending)

    @property
    def content(self) -> str:
        """All retained (flushed) text."""
        return "".join(self._retained)

    @property
    def line_count(self) -> int:
        """Count of retained lines, a trailing fragment included."""
        return self._line_count

    @property
    def flush_scheduled(self) -> bool:
        return self._flush_handle is not None

    @property
    def closed(self) -> bool:
        return self._closed
