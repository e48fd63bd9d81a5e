"""Line reading for child-process pipes."""

from __future__ import annotations

import asyncio
from typing import AsyncIterator

# Child processes can print very long lines (progress bars, JSON dumps)
STREAM_LIMIT = 1024 * 1024


async def read_lines(
    reader: asyncio.StreamReader, limit: int = STREAM_LIMIT
) -> AsyncIterator[bytes]:
    """Yield lines from ``reader`` until EOF.

    A line longer than ``limit`` is truncated to its first ``limit`` bytes
    and the rest of it is discarded, so the pipe keeps draining. ``limit``
    must not exceed the reader's own buffer limit.
    """
    while True:
        try:
            yield await reader.readuntil(b"\n")
        except asyncio.IncompleteReadError as e:
            # EOF; the final line may lack a newline
            if e.partial:
                yield e.partial
            return
        except asyncio.LimitOverrunError:
            head = await reader.read(limit)
            if not await _skip_line(reader):
                yield head
                return
            yield head


async def _skip_line(reader: asyncio.StreamReader) -> bool:
    """Discard input through the next newline. False if EOF came first."""
    while True:
        try:
            await reader.readuntil(b"\n")
            return True
        except asyncio.IncompleteReadError:
            return False
        except asyncio.LimitOverrunError as e:
            await reader.read(max(e.consumed, 1))


__all__ = ["STREAM_LIMIT", "read_lines"]
