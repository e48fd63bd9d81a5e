"""Locate installed runtime binaries for each ecosystem."""

from __future__ import annotations

import asyncio
import logging
import os
import re
import shutil
from pathlib import Path
from typing import TYPE_CHECKING, List, Optional, Tuple

from ..errors import DiscoveryFailure
from .specs import RuntimeSpec, current_platform, get_download_source, get_runtime_spec
from .types import RuntimeHandle, RuntimeKind

if TYPE_CHECKING:
    from ..config.parser import ToolsmithConfig

logger = logging.getLogger(__name__)


class ToolchainLocator:
    """Discovers an installed runtime binary for a RuntimeKind.

    Works for any kind defined in RUNTIME_SPECS. Resolution order:

    1. Probe the kind's commands through the OS program search and
       resolve the winner with the search path.
    2. Check well-known locations (configured path, install root,
       fixed per-OS installation directories).

    Lookups never raise; a missing runtime is reported as ``None``.
    """

    def __init__(
        self,
        config: Optional["ToolsmithConfig"] = None,
        probe_timeout: float = 5.0,
        platform: Optional[str] = None,
    ):
        """Initialize locator.

        Args:
            config: Optional ToolsmithConfig with explicit paths and install root
            probe_timeout: Seconds to wait for a version probe
            platform: Platform key override ("windows", "linux", "darwin")
        """
        self.config = config
        self.probe_timeout = probe_timeout
        self.platform = platform or current_platform()

    async def find_interpreter(self, kind: RuntimeKind) -> Optional[str]:
        """Find the executable path for a runtime kind.

        Returns:
            Absolute executable path, or None if not found

        Raises:
            UnsupportedRuntimeError: If kind is not a RuntimeKind
        """
        handle = await self.resolve(kind)
        return handle.executable_path if handle else None

    async def resolve(self, kind: RuntimeKind) -> Optional[RuntimeHandle]:
        """Resolve a runtime kind to a verified handle."""
        spec = get_runtime_spec(kind)

        # 1. Search-path probe
        handle = await self._probe_search_path(kind, spec)
        if handle:
            logger.info("Interpreter found: %r", handle)
            return handle

        # 2. Well-known locations
        handle = self._check_well_known(kind, spec)
        if handle:
            logger.info("Interpreter found at well-known path: %r", handle)
            return handle

        failure = DiscoveryFailure(f"{spec.display_name} runtime not found")
        logger.warning("%s (tried %s and %d well-known paths)",
                       failure.message,
                       ", ".join(spec.probe_commands),
                       len(self._well_known_candidates(kind, spec)))
        return None

    async def get_version(self, kind: RuntimeKind, executable: str) -> Optional[str]:
        """Run the version command on an executable and return its output.

        Returns stdout, or stderr when stdout is empty, trimmed.
        None if the executable is missing or cannot be run.
        """
        spec = get_runtime_spec(kind)
        if not Path(executable).is_file():
            return None

        result = await self._run_probe([executable, *spec.version_check.args])
        if result is None:
            return None
        stdout, stderr = result
        return (stdout if stdout.strip() else stderr).strip() or None

    async def validate_interpreter(
        self, executable: str, kind: Optional[RuntimeKind] = None
    ) -> bool:
        """Check an executable exists and answers its version command."""
        if not executable or not Path(executable).is_file():
            return False
        args = get_runtime_spec(kind).version_check.args if kind else ["--version"]
        return await self._run_probe([executable, *args]) is not None

    async def _probe_search_path(
        self, kind: RuntimeKind, spec: RuntimeSpec
    ) -> Optional[RuntimeHandle]:
        """Try each probe command as a plain program invocation."""
        for command in spec.probe_commands:
            result = await self._run_probe([command, *spec.version_check.args])
            if result is None:
                continue

            path = shutil.which(command)
            if not path:
                logger.debug("%s answered but could not be located on PATH", command)
                continue

            return RuntimeHandle(
                kind=kind,
                executable_path=os.path.abspath(path),
                source="search_path",
                version=self._parse_version(spec, "".join(result)),
            )

        return None

    def _check_well_known(
        self, kind: RuntimeKind, spec: RuntimeSpec
    ) -> Optional[RuntimeHandle]:
        for source, candidate in self._well_known_candidates(kind, spec):
            if Path(candidate).is_file():
                return RuntimeHandle(
                    kind=kind,
                    executable_path=str(Path(candidate).absolute()),
                    source=source,
                )
        return None

    def _well_known_candidates(
        self, kind: RuntimeKind, spec: RuntimeSpec
    ) -> List[Tuple[str, str]]:
        """Ordered (source, path) pairs to check on disk."""
        candidates: List[Tuple[str, str]] = []

        if self.config:
            runtime_config = self.config.runtime(kind)
            if runtime_config.interpreter_path:
                candidates.append(("configured", runtime_config.interpreter_path))
            for extra in runtime_config.extra_paths:
                candidates.append(("configured", extra))

            download = get_download_source(kind, self.platform)
            if download:
                installed = self.config.install_dir(kind) / download.executable
                candidates.append(("install_root", str(installed)))

        for path in spec.well_known_paths.get(self.platform, []):
            candidates.append(("well_known", os.path.expandvars(os.path.expanduser(path))))

        return candidates

    async def _run_probe(self, argv: List[str]) -> Optional[Tuple[str, str]]:
        """Run a command without a shell.

        Returns:
            (stdout, stderr) if it exited with code 0, otherwise None
        """
        try:
            process = await asyncio.create_subprocess_exec(
                *argv,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as e:
            logger.debug("Probe %s failed to start: %s", argv[0], e)
            return None

        try:
            stdout, stderr = await asyncio.wait_for(
                process.communicate(), timeout=self.probe_timeout
            )
        except asyncio.TimeoutError:
            logger.debug("Probe %s timed out after %ss", argv[0], self.probe_timeout)
            process.kill()
            await process.wait()
            return None

        if process.returncode != 0:
            logger.debug("Probe %s exited with %s", argv[0], process.returncode)
            return None

        return (
            stdout.decode("utf-8", errors="replace"),
            stderr.decode("utf-8", errors="replace"),
        )

    @staticmethod
    def _parse_version(spec: RuntimeSpec, output: str) -> Optional[str]:
        match = re.search(spec.version_check.parse, output)
        return match.group(1) if match else None
