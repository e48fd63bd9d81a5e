from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import List, Optional, Union

from .bootstrap import ToolchainInstaller
from .bootstrap.installer import ProgressSink, StatusSink
from .config import ToolsmithConfig, load_config
from .models.records import PackageCommandResult, PackageRecord, ProjectInfo
from .packages import PackageManager
from .packages.manager import OutputSink
from .projects import ProjectManager
from .runtime import RuntimeHandle, RuntimeKind, ToolchainLocator
from .supervisor import ProcessSession, ProcessSupervisor
from .supervisor.session import LineObserver
from .utils.path import is_within, resolve_project_path

logger = logging.getLogger(__name__)

KindLike = Union[RuntimeKind, str]


class ToolchainServer:
    """Per-project facade over discovery, installation, packages and runs.

    Only one program run is active at a time; the guard is released as
    soon as the current session reaches a terminal state.
    """

    def __init__(
        self,
        project_path: Optional[str] = None,
        config: Optional[ToolsmithConfig] = None,
        locator: Optional[ToolchainLocator] = None,
        installer: Optional[ToolchainInstaller] = None,
        packages: Optional[PackageManager] = None,
        supervisor: Optional[ProcessSupervisor] = None,
        projects: Optional[ProjectManager] = None,
    ) -> None:
        self.project_path = str(Path(project_path or os.getcwd()).resolve())
        self.config = config or load_config(Path(self.project_path))

        self.locator = locator or ToolchainLocator(config=self.config)
        self.installer = installer or ToolchainInstaller(
            chunk_size=self.config.downloads.chunk_size,
            timeout=self.config.downloads.timeout_seconds,
        )
        self.packages = packages or PackageManager(
            command_timeout=self.config.packages.command_timeout
        )
        self.supervisor = supervisor or ProcessSupervisor(
            output_history=self.config.run.output_history
        )
        self.projects = projects or ProjectManager()
        self.project: Optional[ProjectInfo] = self.projects.load_project(self.project_path)
        self._session: Optional[ProcessSession] = None
        self._starting = False

    async def stop(self) -> None:
        """Cancel any active run."""
        await self.supervisor.shutdown()

    # ------------------------------------------------------------------
    # Projects
    # ------------------------------------------------------------------

    def create_project(
        self,
        kind: KindLike,
        project_dir: Optional[str] = None,
        name: Optional[str] = None,
        interpreter_path: Optional[str] = None,
    ) -> Optional[ProjectInfo]:
        """Scaffold a project (default: in this server's project directory).

        Relative directories are resolved against the project path.
        """
        runtime_kind = RuntimeKind.parse(kind)
        target = resolve_project_path(Path(project_dir or ".").expanduser(), self.project_path)
        project = self.projects.create_project(runtime_kind, target, name, interpreter_path)
        if project is not None and project.path == self.project_path:
            self.project = project
        return project

    def load_project(self) -> Optional[ProjectInfo]:
        """Re-read this project's metadata."""
        self.project = self.projects.load_project(self.project_path)
        return self.project

    def save_project(
        self,
        kind: Optional[KindLike] = None,
        interpreter_path: Optional[str] = None,
    ) -> Optional[ProjectInfo]:
        """Record the project's runtime kind and interpreter.

        Creates metadata for a directory that has none (``kind`` is then
        required); no starter files are written.

        Returns:
            The saved project, or None if there is no kind or writing failed
        """
        runtime_kind = RuntimeKind.parse(kind) if kind is not None else None
        project = self.project
        if project is None:
            if runtime_kind is None:
                logger.error("Cannot save project metadata without a runtime kind")
                return None
            project = ProjectInfo(
                name=Path(self.project_path).name,
                path=self.project_path,
                kind=runtime_kind,
            )
        elif runtime_kind is not None and runtime_kind is not project.kind:
            project.kind = runtime_kind
            project.interpreter_path = None
        if interpreter_path is not None:
            project.interpreter_path = interpreter_path or None

        if not self.projects.save_project(project):
            return None
        self.project = project
        return project

    # ------------------------------------------------------------------
    # Runtimes
    # ------------------------------------------------------------------

    async def find_interpreter(self, kind: KindLike) -> Optional[RuntimeHandle]:
        return await self.locator.resolve(RuntimeKind.parse(kind))

    async def install_runtime(
        self,
        kind: KindLike,
        on_progress: Optional[ProgressSink] = None,
        on_status: Optional[StatusSink] = None,
    ) -> Optional[RuntimeHandle]:
        """Install the pinned portable runtime into ``<install_root>/<kind>``.

        Returns:
            Handle for the installed executable, or None if installation failed
        """
        runtime_kind = RuntimeKind.parse(kind)
        target = self.config.install_dir(runtime_kind)

        ok = await self.installer.install(runtime_kind, target, on_progress, on_status)
        if not ok:
            return None

        executable = self.installer.executable_path(runtime_kind, target)
        if executable is None or not executable.is_file():
            logger.error("Installed %s but no executable at %s", runtime_kind.value, executable)
            return None

        version = await self.locator.get_version(runtime_kind, str(executable))
        return RuntimeHandle(
            kind=runtime_kind,
            executable_path=str(executable),
            source="install_root",
            version=version,
        )

    async def _interpreter_for(
        self, kind: RuntimeKind, interpreter_path: Optional[str]
    ) -> Optional[str]:
        """Explicit path, then the project's saved interpreter, then discovery."""
        if interpreter_path:
            return interpreter_path
        project = self.project
        if (
            project is not None
            and project.kind is kind
            and project.interpreter_path
            and Path(project.interpreter_path).is_file()
        ):
            return project.interpreter_path
        return await self.locator.find_interpreter(kind)

    # ------------------------------------------------------------------
    # Packages
    # ------------------------------------------------------------------

    async def list_packages(
        self, kind: KindLike, interpreter_path: Optional[str] = None
    ) -> List[PackageRecord]:
        runtime_kind = RuntimeKind.parse(kind)
        interpreter = await self._interpreter_for(runtime_kind, interpreter_path)
        if not interpreter:
            return []
        return await self.packages.list_packages(runtime_kind, self.project_path, interpreter)

    async def install_package(
        self,
        kind: KindLike,
        name: str,
        interpreter_path: Optional[str] = None,
        on_output_line: Optional[OutputSink] = None,
    ) -> PackageCommandResult:
        return await self._package_command(
            "install_package", kind, name, interpreter_path, on_output_line
        )

    async def uninstall_package(
        self,
        kind: KindLike,
        name: str,
        interpreter_path: Optional[str] = None,
        on_output_line: Optional[OutputSink] = None,
    ) -> PackageCommandResult:
        return await self._package_command(
            "uninstall_package", kind, name, interpreter_path, on_output_line
        )

    async def update_package(
        self,
        kind: KindLike,
        name: str,
        interpreter_path: Optional[str] = None,
        on_output_line: Optional[OutputSink] = None,
    ) -> PackageCommandResult:
        return await self._package_command(
            "update_package", kind, name, interpreter_path, on_output_line
        )

    async def search_packages(self, kind: KindLike, query: str) -> List[PackageRecord]:
        return await self.packages.search(RuntimeKind.parse(kind), query)

    async def _package_command(
        self,
        method: str,
        kind: KindLike,
        name: str,
        interpreter_path: Optional[str],
        on_output_line: Optional[OutputSink],
    ) -> PackageCommandResult:
        runtime_kind = RuntimeKind.parse(kind)
        interpreter = await self._interpreter_for(runtime_kind, interpreter_path)
        if not interpreter:
            message = f"{runtime_kind.value} runtime not found"
            if on_output_line:
                on_output_line(f"✗ {message}")
            return PackageCommandResult(ok=False, last_line=message)

        operation = getattr(self.packages, method)
        return await operation(
            runtime_kind, name, self.project_path, interpreter, on_output_line
        )

    # ------------------------------------------------------------------
    # Program runs
    # ------------------------------------------------------------------

    @property
    def current_session(self) -> Optional[ProcessSession]:
        """The most recent run, finished or not."""
        return self._session

    @property
    def is_running(self) -> bool:
        if self._starting:
            return True
        return self._session is not None and not self._session.is_terminal

    async def run_project(
        self,
        kind: KindLike,
        entry_file: Optional[str] = None,
        interpreter_path: Optional[str] = None,
        observer: Optional[LineObserver] = None,
    ) -> Optional[ProcessSession]:
        """Start the project's entry file.

        Returns:
            The new session (possibly already FAILED), or None if another
            run is active, no interpreter was found, or the entry file lies
            outside the project
        """
        runtime_kind = RuntimeKind.parse(kind)
        if self.is_running:
            logger.warning("A process is already running")
            return None

        if entry_file and not is_within(
            resolve_project_path(entry_file, self.project_path), self.project_path
        ):
            logger.error("Entry file %s is outside the project", entry_file)
            return None

        self._starting = True
        try:
            interpreter = await self._interpreter_for(runtime_kind, interpreter_path)
            if not interpreter:
                logger.error("Cannot run project: %s runtime not found", runtime_kind.value)
                return None

            self._session = await self.supervisor.run(
                runtime_kind,
                interpreter,
                self.project_path,
                entry_file=entry_file,
                observer=observer,
            )
        finally:
            self._starting = False
        return self._session

    async def stop_run(self) -> bool:
        """Kill the active run's process tree.

        Returns:
            False if nothing was running
        """
        if self._session is None:
            return False
        return await self.supervisor.cancel(self._session)
