"""Pipe reader that tees child output to the terminal and the output buffer.

logpopup runtime module

One StreamReader drains one pipe (stdout or stderr). Each chunk is:
1. Decoded with an incremental UTF-8 decoder (split characters are carried
   over to the next chunk, undecodable chunks are dropped)
2. Written byte-for-byte to the local tee destination (best-effort)
3. Pushed as text to the output callback

Chunk order within one stream is preserved. Nothing is guaranteed across
the two streams.
"""

from __future__ import annotations

import asyncio
import codecs
import logging
from collections.abc import Callable
from typing import BinaryIO

import anyio

from ..errors import DecodeError, TeeWriteError

__all__ = [
    "StreamReader",
    "DEFAULT_CHUNK_SIZE",
]

logger = logging.getLogger(__name__)

DEFAULT_CHUNK_SIZE = 4096


class StreamReader:
    """Drain one child pipe into a tee destination and a text callback.

    Example:
        reader = StreamReader(
            "stdout",
            process_stdout,
            on_text=buffer.push,
            tee=sys.stdout.buffer,
        )
        task = asyncio.create_task(reader.run())
    """

    def __init__(
        self,
        name: str,
        stream: asyncio.StreamReader,
        *,
        on_text: Callable[[str], None],
        tee: BinaryIO | None = None,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
        cancel_scope: anyio.CancelScope | None = None,
    ) -> None:
        self.name = name
        self.stream = stream
        self.on_text = on_text
        self.tee = tee
        self.chunk_size = chunk_size
        self.cancel_scope = cancel_scope or anyio.CancelScope()

        self._decoder = codecs.getincrementaldecoder("utf-8")(errors="strict")
        self.bytes_read = 0
        self.chunks_dropped = 0

    async def run(self) -> int:
        """Read until EOF or until the cancel scope is cancelled.

        Returns:
            Total number of bytes read from the pipe
        """
        while not self.cancel_scope.cancel_called:
            chunk = await self.stream.read(self.chunk_size)
            if not chunk:
                break
            if self.cancel_scope.cancel_called:
                # Read completed after stop was requested; discard it
                break
            self.bytes_read += len(chunk)
            self._handle_chunk(chunk)

        self._decoder.reset()
        logger.debug(f"{self.name} reader finished after {self.bytes_read} bytes")
        return self.bytes_read

    def stop(self) -> None:
        """Stop accepting further reads."""
        self.cancel_scope.cancel()

    def _handle_chunk(self, chunk: bytes) -> None:
        text = self._decode(chunk)
        if text is None:
            return

        self._tee(chunk)
        if text:
            self.on_text(text)

    def _decode(self, chunk: bytes) -> str | None:
        """Decode one chunk, or return None if it is not valid UTF-8."""
        try:
            return self._decoder.decode(chunk)
        except UnicodeDecodeError:
            self._decoder.reset()
            self.chunks_dropped += 1
            logger.debug(f"Dropped chunk: {DecodeError(self.name, len(chunk))}")
            return None

    def _tee(self, chunk: bytes) -> None:
        if self.tee is None:
            return
        try:
            self.tee.write(chunk)
            self.tee.flush()
        except (OSError, ValueError) as e:
            logger.debug(f"Tee write failed: {TeeWriteError(f'{self.name}: {e}')}")
