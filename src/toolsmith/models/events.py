"""Discrete progress/status/output events and an async event stream.

Operations accept plain callbacks. ``EventStream`` turns those callbacks
into an async-iterable sequence that the caller consumes on whatever
loop or thread it owns.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import AsyncIterator, Optional, Union

__all__ = ["EventKind", "EventStream", "OutputLine", "ToolchainEvent"]

_SENTINEL = object()


class EventKind(Enum):
    PROGRESS = "progress"
    STATUS = "status"
    OUTPUT = "output"


@dataclass(frozen=True)
class OutputLine:
    """A single line produced by a child process."""

    stream: str  # "stdout" or "stderr"
    text: str


@dataclass(frozen=True)
class ToolchainEvent:
    kind: EventKind
    value: Union[float, str]
    stream: Optional[str] = None
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


class EventStream:
    """Queue-backed stream of ToolchainEvents.

    ``progress``, ``status`` and ``output`` are sinks with the callback
    signatures the engine expects. They may be called from a worker
    thread; events are handed to the consuming loop thread-safely.
    """

    def __init__(self) -> None:
        self._queue: asyncio.Queue = asyncio.Queue()
        self._closed = False
        try:
            self._loop: Optional[asyncio.AbstractEventLoop] = asyncio.get_running_loop()
        except RuntimeError:
            self._loop = None

    @property
    def closed(self) -> bool:
        return self._closed

    def emit(self, event: ToolchainEvent) -> None:
        if self._closed:
            return
        self._put(event)

    def progress(self, percent: float) -> None:
        self.emit(ToolchainEvent(kind=EventKind.PROGRESS, value=float(percent)))

    def status(self, message: str) -> None:
        self.emit(ToolchainEvent(kind=EventKind.STATUS, value=message))

    def output(self, line: Union[OutputLine, str]) -> None:
        if isinstance(line, OutputLine):
            event = ToolchainEvent(kind=EventKind.OUTPUT, value=line.text, stream=line.stream)
        else:
            event = ToolchainEvent(kind=EventKind.OUTPUT, value=line)
        self.emit(event)

    def close(self) -> None:
        """Signal end of stream; iteration stops after queued events."""
        if self._closed:
            return
        self._closed = True
        self._put(_SENTINEL)

    def __aiter__(self) -> AsyncIterator[ToolchainEvent]:
        return self._iterate()

    async def _iterate(self) -> AsyncIterator[ToolchainEvent]:
        if self._loop is None:
            self._loop = asyncio.get_running_loop()
        while True:
            item = await self._queue.get()
            if item is _SENTINEL:
                break
            yield item

    def _put(self, item: object) -> None:
        loop = self._loop
        try:
            running = asyncio.get_running_loop()
        except RuntimeError:
            running = None
        if loop is None or running is loop:
            self._queue.put_nowait(item)
        else:
            loop.call_soon_threadsafe(self._queue.put_nowait, item)
