"""Handle for one supervised program run."""

from __future__ import annotations

import asyncio
import uuid
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Callable, Deque, List, Optional

from ..models.events import OutputLine
from ..runtime.types import RuntimeKind

LineObserver = Callable[[OutputLine], None]


class SessionState(Enum):
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


TERMINAL_STATES = frozenset(
    {SessionState.COMPLETED, SessionState.FAILED, SessionState.CANCELLED}
)


@dataclass
class ProcessSession:
    """State of a running (or finished) program.

    A session moves PENDING -> RUNNING -> one of COMPLETED, FAILED or
    CANCELLED, and never leaves a terminal state.
    """

    kind: RuntimeKind
    working_dir: str
    argv: List[str]
    id: str = field(default_factory=lambda: uuid.uuid4().hex)
    state: SessionState = SessionState.PENDING
    pid: Optional[int] = None
    exit_code: Optional[int] = None
    error: Optional[str] = None
    started_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None
    observer: Optional[LineObserver] = field(default=None, repr=False)
    history_limit: int = 1000
    history: Deque[OutputLine] = field(init=False, repr=False)
    _done: asyncio.Event = field(init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        self.history = deque(maxlen=self.history_limit or None)
        self._done = asyncio.Event()

    @property
    def is_terminal(self) -> bool:
        return self.state in TERMINAL_STATES

    @property
    def is_running(self) -> bool:
        return self.state == SessionState.RUNNING

    def mark_running(self, pid: int) -> None:
        self.pid = pid
        self.state = SessionState.RUNNING
        self.started_at = datetime.now(timezone.utc)

    def finish(
        self,
        state: SessionState,
        exit_code: Optional[int] = None,
        error: Optional[str] = None,
    ) -> None:
        """Move to a terminal state. The first terminal state wins."""
        if not self.is_terminal:
            self.state = state
            self.error = error
            self.finished_at = datetime.now(timezone.utc)
        if exit_code is not None and self.exit_code is None:
            self.exit_code = exit_code

    def release(self) -> None:
        """Wake everyone waiting on this session."""
        self._done.set()

    def record(self, line: OutputLine) -> None:
        self.history.append(line)
        if self.observer:
            self.observer(line)

    async def wait(self) -> "ProcessSession":
        """Wait until the session is terminal and its output is drained."""
        await self._done.wait()
        return self

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "kind": self.kind.value,
            "state": self.state.value,
            "pid": self.pid,
            "exit_code": self.exit_code,
            "error": self.error,
            "argv": list(self.argv),
            "working_dir": self.working_dir,
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "finished_at": self.finished_at.isoformat() if self.finished_at else None,
            "output": [{"stream": line.stream, "text": line.text} for line in self.history],
        }
