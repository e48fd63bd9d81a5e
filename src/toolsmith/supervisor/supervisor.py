"""Launch user programs and supervise them until they finish or are cancelled."""

from __future__ import annotations

import asyncio
import logging
import os
from pathlib import Path
from typing import Dict, Mapping, Optional, Set, Union

from ..errors import ProcessSpawnFailure
from ..models.events import OutputLine
from ..runtime.specs import expand_template, get_runtime_spec
from ..runtime.types import RuntimeKind
from ..utils.streams import STREAM_LIMIT, read_lines
from .process_tree import group_spawn_options, kill_process_tree
from .session import LineObserver, ProcessSession, SessionState

logger = logging.getLogger(__name__)


class ProcessSupervisor:
    """Runs a project's entry file with the ecosystem's interpreter.

    Every run is represented by a ProcessSession. Output lines from stdout
    and stderr are forwarded to the session's observer as they arrive.
    ``cancel`` kills the entire process tree.
    """

    def __init__(
        self,
        output_history: int = 1000,
        drain_timeout: float = 5.0,
        base_env: Optional[Mapping[str, str]] = None,
    ):
        """Initialize supervisor.

        Args:
            output_history: Output lines kept per session (0 = unbounded)
            drain_timeout: Seconds to keep reading pipes after the process
                exits, in case an orphaned descendant still holds them
            base_env: Environment for children (defaults to os.environ)
        """
        self.output_history = output_history
        self.drain_timeout = drain_timeout
        self.base_env = dict(base_env if base_env is not None else os.environ)
        self._processes: Dict[str, asyncio.subprocess.Process] = {}
        self._sessions: Dict[str, ProcessSession] = {}
        self._watchers: Set[asyncio.Task] = set()

    async def run(
        self,
        kind: RuntimeKind,
        interpreter_path: str,
        working_dir: Union[str, Path],
        entry_file: Optional[str] = None,
        observer: Optional[LineObserver] = None,
    ) -> ProcessSession:
        """Start the project's entry file.

        Args:
            kind: Runtime kind
            interpreter_path: Verified interpreter path
            working_dir: Project directory; the process runs here
            entry_file: Entry file relative to working_dir
                (defaults to main.py / index.js / main.go)
            observer: Receives each OutputLine as it is produced

        Returns:
            The session. It is FAILED (nothing spawned) if the entry file or
            interpreter is missing or the OS refused to start the process.
        """
        spec = get_runtime_spec(kind)
        entry_file = entry_file or spec.entry_file
        workdir = Path(working_dir)
        argv = expand_template(
            spec.run_template, interpreter=interpreter_path, entry_file=entry_file
        )
        session = ProcessSession(
            kind=kind,
            working_dir=str(workdir),
            argv=argv,
            observer=observer,
            history_limit=self.output_history,
        )

        try:
            process = await self._spawn(session, interpreter_path, workdir / entry_file)
        except ProcessSpawnFailure as e:
            logger.error("Error running project: %s", e.message)
            session.finish(SessionState.FAILED, error=e.message)
            session.release()
            return session

        session.mark_running(process.pid)
        self._processes[session.id] = process
        self._sessions[session.id] = session
        logger.info("Started %s (pid %s) in %s", " ".join(argv), process.pid, workdir)

        watcher = asyncio.create_task(self._watch(session, process))
        self._watchers.add(watcher)
        watcher.add_done_callback(self._watchers.discard)
        return session

    async def cancel(self, session: ProcessSession) -> bool:
        """Kill the session's process tree.

        Returns:
            False if the session was already terminal (nothing was done)
        """
        if session.is_terminal:
            return False

        session.finish(SessionState.CANCELLED)
        process = self._processes.get(session.id)
        if process is not None and process.returncode is None:
            logger.info("Stopping process tree of pid %s", process.pid)
            await asyncio.to_thread(kill_process_tree, process.pid)
        return True

    async def shutdown(self) -> None:
        """Cancel every running session and wait for them to settle."""
        for session in list(self._sessions.values()):
            await self.cancel(session)
        if self._watchers:
            await asyncio.gather(*self._watchers, return_exceptions=True)

    def kill_all(self) -> None:
        """Synchronously kill every live process tree (for interpreter exit)."""
        for session_id, process in list(self._processes.items()):
            if process.returncode is None:
                self._sessions[session_id].finish(SessionState.CANCELLED)
                kill_process_tree(process.pid)

    async def _spawn(
        self, session: ProcessSession, interpreter_path: str, entry_path: Path
    ) -> asyncio.subprocess.Process:
        if not entry_path.is_file():
            raise ProcessSpawnFailure(f"Entry file not found: {entry_path}")
        if not interpreter_path or not Path(interpreter_path).is_file():
            raise ProcessSpawnFailure(f"Interpreter not found: {interpreter_path}")

        env = dict(self.base_env)
        env["PYTHONUNBUFFERED"] = "1"
        try:
            return await asyncio.create_subprocess_exec(
                *session.argv,
                cwd=session.working_dir,
                env=env,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                limit=STREAM_LIMIT,
                **group_spawn_options(),
            )
        except OSError as e:
            raise ProcessSpawnFailure(f"Failed to start {session.argv[0]}: {e}") from e

    async def _watch(
        self, session: ProcessSession, process: asyncio.subprocess.Process
    ) -> None:
        pumps = [
            asyncio.create_task(self._pump(session, process.stdout, "stdout")),
            asyncio.create_task(self._pump(session, process.stderr, "stderr")),
        ]
        try:
            returncode = await process.wait()
            done, pending = await asyncio.wait(pumps, timeout=self.drain_timeout)
            for task in pending:
                task.cancel()
            if pending:
                logger.warning("Output pipes of session %s still open after exit", session.id)
                await asyncio.gather(*pending, return_exceptions=True)
            for task in done:
                if task.exception() is not None:
                    logger.error(
                        "Output reader of session %s failed: %r", session.id, task.exception()
                    )

            session.finish(SessionState.COMPLETED, exit_code=returncode)
            logger.info(
                "Session %s finished: %s (exit code %s)",
                session.id,
                session.state.value,
                returncode,
            )
        finally:
            self._processes.pop(session.id, None)
            self._sessions.pop(session.id, None)
            session.release()

    @staticmethod
    async def _pump(
        session: ProcessSession,
        reader: Optional[asyncio.StreamReader],
        stream: str,
    ) -> None:
        if reader is None:
            return
        async for raw in read_lines(reader):
            if session.state == SessionState.CANCELLED:
                # Keep draining so the child never blocks on a full pipe
                continue
            text = raw.decode("utf-8", errors="replace").rstrip("\r\n")
            if not text:
                continue
            try:
                session.record(OutputLine(stream=stream, text=text))
            except Exception:
                # The pipe keeps draining even if the observer raises
                logger.exception("Output observer of session %s failed", session.id)


__all__ = ["ProcessSupervisor"]
