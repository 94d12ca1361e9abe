"""StreamReader unit tests.

Test coverage:
- Tee and text callback receive every chunk in order
- Multi-byte characters split across reads
- Undecodable chunks are dropped
- Tee failures are swallowed
- Stopping the reader
"""

from __future__ import annotations

import asyncio
import io

import pytest

from logpopup.runtime.stream_reader import StreamReader


def make_stream(*chunks: bytes, eof: bool = True) -> asyncio.StreamReader:
    stream = asyncio.StreamReader()
    for chunk in chunks:
        stream.feed_data(chunk)
    if eof:
        stream.feed_eof()
    return stream


class BrokenTee(io.RawIOBase):
    def write(self, data):
        raise BrokenPipeError("downstream closed")


# =============================================================================
# Basic reading
# =============================================================================


class TestReading:
    """Test basic chunk handling."""

    @pytest.mark.asyncio
    async def test_text_and_tee_receive_output(self):
        received: list[str] = []
        tee = io.BytesIO()
        reader = StreamReader(
            "stdout", make_stream(b"a\nb\n"), on_text=received.append, tee=tee
        )

        total = await reader.run()

        assert total == 4
        assert "".join(received) == "a\nb\n"
        assert tee.getvalue() == b"a\nb\n"

    @pytest.mark.asyncio
    async def test_zero_length_read_ends_loop(self):
        received: list[str] = []
        reader = StreamReader("stdout", make_stream(), on_text=received.append)

        total = await reader.run()

        assert total == 0
        assert received == []

    @pytest.mark.asyncio
    async def test_chunk_size_respected(self):
        received: list[str] = []
        reader = StreamReader(
            "stdout", make_stream(b"abcdefgh"), on_text=received.append, chunk_size=3
        )

        await reader.run()

        assert received == ["abc", "def", "gh"]


# =============================================================================
# Decoding
# =============================================================================


class TestDecoding:
    """Test incremental UTF-8 decoding."""

    @pytest.mark.asyncio
    async def test_split_multibyte_character(self):
        encoded = "é\n".encode("utf-8")
        received: list[str] = []
        tee = io.BytesIO()
        reader = StreamReader(
            "stdout",
            make_stream(encoded),
            on_text=received.append,
            tee=tee,
            chunk_size=1,
        )

        await reader.run()

        assert "".join(received) == "é\n"
        assert tee.getvalue() == encoded

    @pytest.mark.asyncio
    async def test_undecodable_chunk_dropped(self):
        received: list[str] = []
        tee = io.BytesIO()
        stream = asyncio.StreamReader()
        reader = StreamReader(
            "stderr", stream, on_text=received.append, tee=tee, chunk_size=4
        )
        stream.feed_data(b"\xff\xfe\xfd\n")
        stream.feed_data(b"ok\n")
        stream.feed_eof()

        await reader.run()

        assert "".join(received) == "ok\n"
        assert tee.getvalue() == b"ok\n"
        assert reader.chunks_dropped == 1


# =============================================================================
# Tee failures and stopping
# =============================================================================


class TestTeeAndStop:
    """Test best-effort tee and cancellation."""

    @pytest.mark.asyncio
    async def test_tee_failure_swallowed(self):
        received: list[str] = []
        reader = StreamReader(
            "stdout", make_stream(b"still here\n"), on_text=received.append, tee=BrokenTee()
        )

        await reader.run()

        assert received == ["still here\n"]

    @pytest.mark.asyncio
    @pytest.mark.timeout(5)
    async def test_stop_ends_reader(self):
        received: list[str] = []
        stream = asyncio.StreamReader()
        reader = StreamReader("stdout", stream, on_text=received.append)

        task = asyncio.create_task(reader.run())
        stream.feed_data(b"first\n")
        await asyncio.sleep(0.05)

        reader.stop()
        stream.feed_data(b"second\n")
        await asyncio.wait_for(task, timeout=1)

        assert received == ["first\n"]

    @pytest.mark.asyncio
    @pytest.mark.timeout(5)
    async def test_task_cancel_interrupts_pending_read(self):
        stream = asyncio.StreamReader()
        reader = StreamReader("stdout", stream, on_text=lambda text: None)

        task = asyncio.create_task(reader.run())
        await asyncio.sleep(0.05)
        task.cancel()

        with pytest.raises(asyncio.CancelledError):
            await task
