"""Integration tests for ProcessSupervisor.

The interpreter running the tests is used as the dynamic runtime, so
these spawn real processes.
"""

import asyncio
import os
import sys
import time
from pathlib import Path
from typing import List

import pytest

from toolsmith.models import OutputLine
from toolsmith.runtime import RuntimeKind
from toolsmith.supervisor import ProcessSupervisor, SessionState
from toolsmith.utils.streams import STREAM_LIMIT

pytestmark = pytest.mark.slow


def _write(project: Path, name: str, source: str) -> None:
    (project / name).write_text(source)


def _is_alive(pid: int) -> bool:
    """True if pid exists and is not a zombie."""
    try:
        os.kill(pid, 0)
    except ProcessLookupError:
        return False
    except PermissionError:
        return True
    stat = Path(f"/proc/{pid}/stat")
    if stat.exists():
        try:
            state = stat.read_text().rsplit(")", 1)[1].split()[0]
        except (OSError, IndexError):
            return False
        return state != "Z"
    return True


async def _wait_for(predicate, timeout: float = 10.0) -> bool:
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        await asyncio.sleep(0.05)
    return predicate()


class TestRun:
    @pytest.mark.asyncio
    async def test_missing_entry_file_fails_without_spawning(self, temp_project_dir, python_interpreter):
        lines: List[OutputLine] = []
        supervisor = ProcessSupervisor()

        session = await supervisor.run(
            RuntimeKind.DYNAMIC, python_interpreter, temp_project_dir, observer=lines.append
        )

        assert session.state == SessionState.FAILED
        assert session.pid is None
        assert "Entry file not found" in session.error
        assert lines == []
        # Already terminal, so wait returns at once
        await asyncio.wait_for(session.wait(), timeout=1)

    @pytest.mark.asyncio
    async def test_missing_interpreter_fails(self, temp_project_dir):
        _write(temp_project_dir, "main.py", "print('hi')\n")
        session = await ProcessSupervisor().run(
            RuntimeKind.DYNAMIC, str(temp_project_dir / "no-python"), temp_project_dir
        )
        assert session.state == SessionState.FAILED
        assert "Interpreter not found" in session.error

    @pytest.mark.asyncio
    async def test_completes_with_exit_code(self, temp_project_dir, python_interpreter):
        _write(
            temp_project_dir,
            "main.py",
            "import sys\nprint('hello')\nprint('warn', file=sys.stderr)\nsys.exit(7)\n",
        )
        lines: List[OutputLine] = []
        supervisor = ProcessSupervisor()

        session = await supervisor.run(
            RuntimeKind.DYNAMIC, python_interpreter, temp_project_dir, observer=lines.append
        )
        assert session.state == SessionState.RUNNING
        assert session.pid is not None

        await asyncio.wait_for(session.wait(), timeout=30)

        assert session.state == SessionState.COMPLETED
        assert session.exit_code == 7
        assert OutputLine(stream="stdout", text="hello") in lines
        assert OutputLine(stream="stderr", text="warn") in lines
        assert list(session.history) == lines

    @pytest.mark.asyncio
    async def test_default_entry_file_and_working_dir(self, temp_project_dir, python_interpreter):
        _write(temp_project_dir, "main.py", "import os\nprint(os.getcwd())\n")

        session = await ProcessSupervisor().run(
            RuntimeKind.DYNAMIC, python_interpreter, temp_project_dir
        )
        await asyncio.wait_for(session.wait(), timeout=30)

        assert session.argv == [python_interpreter, "main.py"]
        assert Path(session.history[0].text).resolve() == temp_project_dir.resolve()

    @pytest.mark.asyncio
    async def test_custom_entry_file(self, temp_project_dir, python_interpreter):
        (temp_project_dir / "app").mkdir()
        _write(temp_project_dir / "app", "run.py", "print('custom')\n")

        session = await ProcessSupervisor().run(
            RuntimeKind.DYNAMIC, python_interpreter, temp_project_dir, entry_file="app/run.py"
        )
        await asyncio.wait_for(session.wait(), timeout=30)

        assert [line.text for line in session.history] == ["custom"]

    @pytest.mark.asyncio
    async def test_output_is_unbuffered_and_ordered(self, temp_project_dir, python_interpreter):
        _write(
            temp_project_dir,
            "main.py",
            "import os\nprint(os.environ.get('PYTHONUNBUFFERED'))\nfor i in range(50):\n    print(i)\n",
        )

        session = await ProcessSupervisor().run(
            RuntimeKind.DYNAMIC, python_interpreter, temp_project_dir
        )
        await asyncio.wait_for(session.wait(), timeout=30)

        texts = [line.text for line in session.history if line.stream == "stdout"]
        assert texts[0] == "1"
        assert texts[1:] == [str(i) for i in range(50)]

    @pytest.mark.asyncio
    async def test_lines_arrive_while_running(self, temp_project_dir, python_interpreter):
        """Output is forwarded before the process exits."""
        _write(
            temp_project_dir,
            "main.py",
            "import time\nprint('first')\ntime.sleep(30)\n",
        )
        lines: List[OutputLine] = []
        supervisor = ProcessSupervisor()

        session = await supervisor.run(
            RuntimeKind.DYNAMIC, python_interpreter, temp_project_dir, observer=lines.append
        )
        try:
            assert await _wait_for(lambda: bool(lines))
            assert session.state == SessionState.RUNNING
            assert lines[0].text == "first"
        finally:
            await supervisor.cancel(session)
            await asyncio.wait_for(session.wait(), timeout=10)

    @pytest.mark.asyncio
    async def test_history_is_bounded(self, temp_project_dir, python_interpreter):
        _write(temp_project_dir, "main.py", "for i in range(20):\n    print(i)\n")

        session = await ProcessSupervisor(output_history=5).run(
            RuntimeKind.DYNAMIC, python_interpreter, temp_project_dir
        )
        await asyncio.wait_for(session.wait(), timeout=30)

        assert [line.text for line in session.history] == ["15", "16", "17", "18", "19"]

    @pytest.mark.asyncio
    async def test_oversized_line_does_not_stall(self, temp_project_dir, python_interpreter):
        """A line longer than the stream limit is truncated and the run completes."""
        _write(
            temp_project_dir,
            "main.py",
            "import sys\n"
            "sys.stdout.write('x' * (3 * 1024 * 1024) + '\\n')\n"
            "for i in range(20000):\n"
            "    print(i)\n"
            "print('done')\n",
        )
        lines: List[OutputLine] = []

        session = await ProcessSupervisor().run(
            RuntimeKind.DYNAMIC, python_interpreter, temp_project_dir, observer=lines.append
        )
        await asyncio.wait_for(session.wait(), timeout=30)

        assert session.state == SessionState.COMPLETED
        assert session.exit_code == 0
        assert len(lines[0].text) == STREAM_LIMIT
        assert lines[-1].text == "done"
        assert len(lines) == 20002

    @pytest.mark.asyncio
    async def test_empty_lines_are_skipped(self, temp_project_dir, python_interpreter):
        _write(temp_project_dir, "main.py", "print('a')\nprint()\nprint('')\nprint('b')\n")

        session = await ProcessSupervisor().run(
            RuntimeKind.DYNAMIC, python_interpreter, temp_project_dir
        )
        await asyncio.wait_for(session.wait(), timeout=30)

        assert [line.text for line in session.history] == ["a", "b"]

    @pytest.mark.asyncio
    async def test_failing_observer_keeps_draining(self, temp_project_dir, python_interpreter):
        _write(temp_project_dir, "main.py", "for i in range(500):\n    print(i)\n")

        def observer(line: OutputLine) -> None:
            raise RuntimeError("observer broke")

        session = await ProcessSupervisor().run(
            RuntimeKind.DYNAMIC, python_interpreter, temp_project_dir, observer=observer
        )
        await asyncio.wait_for(session.wait(), timeout=30)

        assert session.state == SessionState.COMPLETED
        assert session.history[-1].text == "499"


class TestCancel:
    @pytest.mark.asyncio
    async def test_cancel_before_output(self, temp_project_dir, python_interpreter):
        """A program cancelled before it prints produces no lines."""
        _write(temp_project_dir, "main.py", "import time\ntime.sleep(5)\nprint('late')\n")
        lines: List[OutputLine] = []
        supervisor = ProcessSupervisor()

        started = time.monotonic()
        session = await supervisor.run(
            RuntimeKind.DYNAMIC, python_interpreter, temp_project_dir, observer=lines.append
        )
        await asyncio.sleep(1)

        assert await supervisor.cancel(session) is True
        await asyncio.wait_for(session.wait(), timeout=10)

        assert session.state == SessionState.CANCELLED
        assert lines == []
        assert time.monotonic() - started < 5

    @pytest.mark.asyncio
    @pytest.mark.skipif(sys.platform == "win32", reason="uses /proc and POSIX signals")
    async def test_cancel_kills_whole_tree(self, temp_project_dir, python_interpreter):
        pid_file = temp_project_dir / "child.pid"
        _write(
            temp_project_dir,
            "main.py",
            "import subprocess, sys, time\n"
            "child = subprocess.Popen([sys.executable, '-c', 'import time; time.sleep(60)'])\n"
            "with open('child.pid.tmp', 'w') as f:\n"
            "    f.write(str(child.pid))\n"
            "import os\n"
            "os.replace('child.pid.tmp', 'child.pid')\n"
            "print('spawned')\n"
            "time.sleep(60)\n",
        )
        supervisor = ProcessSupervisor()

        session = await supervisor.run(RuntimeKind.DYNAMIC, python_interpreter, temp_project_dir)
        assert await _wait_for(pid_file.exists)
        child_pid = int(pid_file.read_text())
        assert _is_alive(child_pid)

        assert await supervisor.cancel(session) is True
        await asyncio.wait_for(session.wait(), timeout=10)

        assert session.state == SessionState.CANCELLED
        assert await _wait_for(lambda: not _is_alive(session.pid))
        assert await _wait_for(lambda: not _is_alive(child_pid))

    @pytest.mark.asyncio
    async def test_cancel_is_idempotent(self, temp_project_dir, python_interpreter):
        _write(temp_project_dir, "main.py", "import time\ntime.sleep(30)\n")
        supervisor = ProcessSupervisor()

        session = await supervisor.run(RuntimeKind.DYNAMIC, python_interpreter, temp_project_dir)
        assert await supervisor.cancel(session) is True
        assert await supervisor.cancel(session) is False
        await asyncio.wait_for(session.wait(), timeout=10)
        assert await supervisor.cancel(session) is False
        assert session.state == SessionState.CANCELLED

    @pytest.mark.asyncio
    async def test_cancel_after_completion_is_noop(self, temp_project_dir, python_interpreter):
        _write(temp_project_dir, "main.py", "print('done')\n")
        supervisor = ProcessSupervisor()

        session = await supervisor.run(RuntimeKind.DYNAMIC, python_interpreter, temp_project_dir)
        await asyncio.wait_for(session.wait(), timeout=30)

        assert await supervisor.cancel(session) is False
        assert session.state == SessionState.COMPLETED
        assert session.exit_code == 0

    @pytest.mark.asyncio
    async def test_shutdown_cancels_running_sessions(self, temp_project_dir, python_interpreter):
        _write(temp_project_dir, "main.py", "import time\ntime.sleep(30)\n")
        supervisor = ProcessSupervisor()

        session = await supervisor.run(RuntimeKind.DYNAMIC, python_interpreter, temp_project_dir)
        await asyncio.wait_for(supervisor.shutdown(), timeout=10)

        assert session.state == SessionState.CANCELLED
        assert session.is_terminal


class TestSessionDict:
    @pytest.mark.asyncio
    async def test_to_dict(self, temp_project_dir, python_interpreter):
        _write(temp_project_dir, "main.py", "print('x')\n")
        session = await ProcessSupervisor().run(
            RuntimeKind.DYNAMIC, python_interpreter, temp_project_dir
        )
        await asyncio.wait_for(session.wait(), timeout=30)

        data = session.to_dict()
        assert data["kind"] == "python"
        assert data["state"] == "completed"
        assert data["exit_code"] == 0
        assert data["output"] == [{"stream": "stdout", "text": "x"}]
        assert data["started_at"] and data["finished_at"]
