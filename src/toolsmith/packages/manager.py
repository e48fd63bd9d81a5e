"""Package management through each ecosystem's native tool (pip, npm, go)."""

from __future__ import annotations

import asyncio
import logging
import shutil
from pathlib import Path
from typing import Callable, List, Optional, Union

from ..errors import CommandFailure, DiscoveryFailure, ProcessSpawnFailure
from ..models.records import PackageCommandResult, PackageRecord
from ..runtime.specs import INTERPRETER, expand_template, get_runtime_spec
from ..runtime.types import RuntimeKind
from ..utils.streams import STREAM_LIMIT, read_lines
from .parsers import parse_package_list

logger = logging.getLogger(__name__)

OutputSink = Callable[[str], None]

_PHASES = {
    "install": ("Installing", "installed", "install"),
    "uninstall": ("Uninstalling", "uninstalled", "uninstall"),
    "update": ("Updating", "updated", "update"),
}


class PackageManager:
    """Lists and mutates packages for a project directory.

    Each operation maps the runtime kind to a fixed command template from
    RUNTIME_SPECS. Failures come back as empty lists or failed
    PackageCommandResults; nothing is raised except for unknown kinds.
    """

    def __init__(self, command_timeout: Optional[float] = None):
        """Initialize package manager.

        Args:
            command_timeout: Seconds before a package command is killed.
                None lets commands run to completion.
        """
        self.command_timeout = command_timeout

    async def list_packages(
        self,
        kind: RuntimeKind,
        project_dir: Union[str, Path],
        interpreter_path: str,
    ) -> List[PackageRecord]:
        """List installed packages.

        Args:
            kind: Runtime kind
            project_dir: Working directory for the listing command
            interpreter_path: Verified interpreter path

        Returns:
            Records parsed from the tool's structured output, or [] on failure
        """
        spec = get_runtime_spec(kind)
        commands = spec.packages

        try:
            self._verify_interpreter(interpreter_path)
            argv = self._build_argv(commands.list, interpreter_path)
            returncode, stdout, stderr = await self._capture(argv, project_dir)
        except (DiscoveryFailure, ProcessSpawnFailure) as e:
            logger.warning("Cannot list %s packages: %s", spec.display_name, e.message)
            return []

        if returncode != 0 and not commands.list_accepts_nonzero:
            logger.warning(
                "Package list command exited with %s: %s",
                returncode,
                _last_line(stderr) or "no output",
            )
            return []

        packages = parse_package_list(stdout, commands.list_format)
        logger.info("Found %d installed %s packages", len(packages), spec.display_name)
        return packages

    async def install_package(
        self,
        kind: RuntimeKind,
        name: str,
        project_dir: Union[str, Path],
        interpreter_path: str,
        on_output_line: Optional[OutputSink] = None,
    ) -> PackageCommandResult:
        """Install a package, streaming command output to ``on_output_line``."""
        return await self._mutate("install", kind, name, project_dir, interpreter_path, on_output_line)

    async def uninstall_package(
        self,
        kind: RuntimeKind,
        name: str,
        project_dir: Union[str, Path],
        interpreter_path: str,
        on_output_line: Optional[OutputSink] = None,
    ) -> PackageCommandResult:
        """Remove a package, streaming command output to ``on_output_line``."""
        return await self._mutate("uninstall", kind, name, project_dir, interpreter_path, on_output_line)

    async def update_package(
        self,
        kind: RuntimeKind,
        name: str,
        project_dir: Union[str, Path],
        interpreter_path: str,
        on_output_line: Optional[OutputSink] = None,
    ) -> PackageCommandResult:
        """Upgrade a package, streaming command output to ``on_output_line``."""
        return await self._mutate("update", kind, name, project_dir, interpreter_path, on_output_line)

    async def search(self, kind: RuntimeKind, query: str) -> List[PackageRecord]:
        """Registry search is not implemented; always returns []."""
        spec = get_runtime_spec(kind)
        logger.info("Package search not implemented for %s (query=%r)", spec.display_name, query)
        return []

    async def _mutate(
        self,
        operation: str,
        kind: RuntimeKind,
        name: str,
        project_dir: Union[str, Path],
        interpreter_path: str,
        on_output_line: Optional[OutputSink],
    ) -> PackageCommandResult:
        spec = get_runtime_spec(kind)
        template = getattr(spec.packages, operation)
        progressive, past, verb = _PHASES[operation]

        def emit(line: str) -> None:
            if on_output_line:
                on_output_line(line)

        name = (name or "").strip()
        if not name or name.startswith("-"):
            message = f"Invalid package name: {name!r}"
            emit(f"✗ {message}")
            return PackageCommandResult(ok=False, last_line=message)

        emit(f"{progressive} {name}...")
        try:
            self._verify_interpreter(interpreter_path)
            argv = self._build_argv(template, interpreter_path, package=name)
            returncode, last_line = await self._stream(argv, project_dir, emit)
        except (DiscoveryFailure, ProcessSpawnFailure) as e:
            logger.error("Error running %s for %s: %s", operation, name, e.message)
            emit(f"Error: {e.message}")
            emit(f"✗ Failed to {verb} {name}")
            return PackageCommandResult(ok=False, last_line=e.message)
        except CommandFailure as e:
            logger.error("Package %s %s aborted: %s", name, operation, e.message)
            emit(f"Error: {e.message}")
            emit(f"✗ Failed to {verb} {name}")
            return PackageCommandResult(
                ok=False, exit_code=e.exit_code, last_line=e.last_line or e.message
            )

        if returncode != 0:
            logger.warning(
                "Package %s %s exited with %s: %s", name, operation, returncode, last_line
            )
            emit(f"✗ Failed to {verb} {name}")
            return PackageCommandResult(ok=False, exit_code=returncode, last_line=last_line)

        emit(f"✓ {name} {past} successfully")
        logger.info("Package %s %s result: success", name, operation)
        return PackageCommandResult(ok=True, exit_code=0, last_line=last_line)

    def _verify_interpreter(self, interpreter_path: str) -> None:
        if not interpreter_path or not Path(interpreter_path).is_file():
            raise DiscoveryFailure(f"Interpreter not found: {interpreter_path}")

    def _build_argv(
        self, template: List[str], interpreter_path: str, package: str = ""
    ) -> List[str]:
        argv = expand_template(template, interpreter=interpreter_path, package=package)
        if template[0] != INTERPRETER:
            argv[0] = self._resolve_tool(argv[0], interpreter_path)
        return argv

    @staticmethod
    def _resolve_tool(tool: str, interpreter_path: str) -> str:
        """Find a package tool next to the interpreter, then on PATH."""
        runtime_dir = Path(interpreter_path).parent
        for candidate in (tool, f"{tool}.cmd", f"{tool}.exe"):
            sibling = runtime_dir / candidate
            if sibling.is_file():
                return str(sibling)
        return shutil.which(tool) or tool

    async def _capture(
        self, argv: List[str], cwd: Union[str, Path]
    ) -> tuple[int, str, str]:
        process = await self._spawn(argv, cwd, asyncio.subprocess.PIPE)
        try:
            stdout, stderr = await asyncio.wait_for(
                process.communicate(), timeout=self.command_timeout
            )
        except asyncio.TimeoutError:
            await _kill(process)
            return -1, "", f"timed out after {self.command_timeout}s"
        return (
            process.returncode if process.returncode is not None else -1,
            stdout.decode("utf-8", errors="replace"),
            stderr.decode("utf-8", errors="replace"),
        )

    async def _stream(
        self, argv: List[str], cwd: Union[str, Path], emit: OutputSink
    ) -> tuple[int, Optional[str]]:
        """Run with stderr merged into stdout, forwarding lines as produced.

        Raises:
            CommandFailure: If the command timed out or its output could
                not be forwarded; the process is killed first
        """
        process = await self._spawn(argv, cwd, asyncio.subprocess.STDOUT)
        last_line: Optional[str] = None

        async def pump() -> None:
            nonlocal last_line
            assert process.stdout is not None
            async for raw in read_lines(process.stdout):
                line = raw.decode("utf-8", errors="replace").rstrip("\r\n")
                if not line:
                    continue
                last_line = line
                emit(line)

        try:
            await asyncio.wait_for(
                asyncio.gather(pump(), process.wait()), timeout=self.command_timeout
            )
        except asyncio.TimeoutError as e:
            await _kill(process)
            raise CommandFailure(
                f"{Path(argv[0]).name} timed out",
                last_line=f"timed out after {self.command_timeout}s",
            ) from e
        except Exception as e:
            await _kill(process)
            raise CommandFailure(
                f"Lost output of {Path(argv[0]).name}: {e}", last_line=last_line
            ) from e

        return (process.returncode if process.returncode is not None else -1), last_line

    @staticmethod
    async def _spawn(
        argv: List[str], cwd: Union[str, Path], stderr: int
    ) -> asyncio.subprocess.Process:
        try:
            return await asyncio.create_subprocess_exec(
                *argv,
                cwd=str(cwd),
                stdout=asyncio.subprocess.PIPE,
                stderr=stderr,
                limit=STREAM_LIMIT,
            )
        except OSError as e:
            raise ProcessSpawnFailure(f"Failed to start {argv[0]}: {e}") from e


async def _kill(process: asyncio.subprocess.Process) -> None:
    """Kill a package command and reap it."""
    if process.returncode is None:
        try:
            process.kill()
        except ProcessLookupError:
            logger.debug("Process %s already exited", process.pid)
    await process.wait()


def _last_line(text: str) -> Optional[str]:
    lines = [line for line in text.splitlines() if line.strip()]
    return lines[-1] if lines else None


__all__ = ["PackageManager"]
