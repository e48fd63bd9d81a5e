"""Unit tests for pipe line reading."""

import asyncio

import pytest

from toolsmith.utils.streams import read_lines


def _reader(data: bytes, limit: int) -> asyncio.StreamReader:
    reader = asyncio.StreamReader(limit=limit)
    reader.feed_data(data)
    reader.feed_eof()
    return reader


async def _collect(reader: asyncio.StreamReader, limit: int):
    return [line async for line in read_lines(reader, limit)]


class TestReadLines:
    @pytest.mark.asyncio
    async def test_lines_and_unterminated_tail(self):
        lines = await _collect(_reader(b"one\ntwo\nthree", 64), 64)
        assert lines == [b"one\n", b"two\n", b"three"]

    @pytest.mark.asyncio
    async def test_long_line_is_truncated(self):
        data = b"short\n" + b"x" * 50 + b"\nafter\n"
        lines = await _collect(_reader(data, 8), 8)
        assert lines == [b"short\n", b"x" * 8, b"after\n"]

    @pytest.mark.asyncio
    async def test_long_line_at_eof(self):
        lines = await _collect(_reader(b"y" * 50, 8), 8)
        assert lines == [b"y" * 8]

    @pytest.mark.asyncio
    async def test_long_line_fed_in_pieces(self):
        """The pipe keeps draining while a long line arrives."""
        reader = asyncio.StreamReader(limit=8)

        async def feed():
            for _ in range(10):
                reader.feed_data(b"z" * 10)
                await asyncio.sleep(0)
            reader.feed_data(b"\nend\n")
            reader.feed_eof()

        feeder = asyncio.create_task(feed())
        lines = await asyncio.wait_for(_collect(reader, 8), timeout=5)
        await feeder

        assert lines == [b"z" * 8, b"end\n"]

    @pytest.mark.asyncio
    async def test_empty_stream(self):
        assert await _collect(_reader(b"", 8), 8) == []
