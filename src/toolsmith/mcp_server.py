"""MCP Server for Toolsmith.

Exposes runtime discovery, installation, package management and program
runs as MCP tools using FastMCP.
"""

from __future__ import annotations

import atexit
import logging
import os
import sys
from dataclasses import asdict
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional

from mcp.server import FastMCP

from .config import CONFIG_FILENAME, load_config
from .models import EventKind, EventStream
from .runtime import RuntimeKind
from .server import ToolchainServer

# Global server instance and project path
_server: Optional[ToolchainServer] = None
_project_path: Optional[str] = None

mcp = FastMCP("Toolsmith")


def set_project_path(path: str) -> None:
    """Set the project path for the toolchain server."""
    global _project_path
    _project_path = str(Path(path).resolve())


def get_project_path() -> str:
    """Get the current project path."""
    return _project_path or os.getenv("TOOLSMITH_PROJECT_PATH") or os.getcwd()


def get_server() -> ToolchainServer:
    """Get or create the toolchain server instance."""
    global _server
    if _server is None:
        _server = ToolchainServer(project_path=get_project_path())
    return _server


def _cleanup_server() -> None:
    """Kill any program still running when the server exits."""
    global _server
    if _server is None:
        return
    try:
        # The event loop is gone by now, so kill synchronously
        _server.supervisor.kill_all()
    except OSError as e:
        print(f"Failed to stop running program: {e}", file=sys.stderr)
    finally:
        _server = None


def _to_dict(obj: Any) -> Any:
    """Convert dataclass objects to dictionaries for JSON serialization."""
    if hasattr(obj, "to_dict"):
        return obj.to_dict()
    if hasattr(obj, "__dataclass_fields__"):
        return _to_dict(asdict(obj))
    if isinstance(obj, Enum):
        return obj.value
    if isinstance(obj, list):
        return [_to_dict(item) for item in obj]
    if isinstance(obj, dict):
        return {k: _to_dict(v) for k, v in obj.items()}
    return obj


# ============================================================================
# Runtimes
# ============================================================================


@mcp.tool()
async def find_interpreter(runtime: str) -> Dict[str, Any]:
    """Locate an installed interpreter or compiler.

    Probes the system search path first, then well-known install
    locations (configured paths, the project's install root, standard
    per-OS directories).

    Args:
        runtime: "python", "javascript" or "go"

    Returns:
        - available: Whether a runtime was found
        - path, version, source: Details of the runtime when available
    """
    handle = await get_server().find_interpreter(runtime)
    if handle is None:
        return {"runtime": runtime, "available": False}
    return {
        "runtime": handle.kind.value,
        "available": True,
        "path": handle.executable_path,
        "version": handle.version,
        "source": handle.source,
    }


@mcp.tool()
async def install_runtime(runtime: str) -> Dict[str, Any]:
    """Download and install a portable runtime into the project's install root.

    Args:
        runtime: "python", "javascript" or "go"

    Returns:
        - success: Whether installation finished
        - path, version: Installed executable when successful
        - status: Status messages in the order they were reported
        - progress: Last reported download progress (0-100)
    """
    server = get_server()
    kind = RuntimeKind.parse(runtime)
    events = EventStream()
    handle = await server.install_runtime(kind, on_progress=events.progress, on_status=events.status)
    events.close()

    status: List[str] = []
    progress = 0.0
    async for event in events:
        if event.kind is EventKind.STATUS:
            status.append(str(event.value))
        elif event.kind is EventKind.PROGRESS:
            progress = float(event.value)

    result: Dict[str, Any] = {
        "runtime": kind.value,
        "success": handle is not None,
        "install_dir": str(server.config.install_dir(kind)),
        "status": status,
        "progress": progress,
    }
    if handle is not None:
        result["path"] = handle.executable_path
        result["version"] = handle.version
    return result


# ============================================================================
# Packages
# ============================================================================


@mcp.tool()
async def list_packages(runtime: str, interpreter_path: Optional[str] = None) -> Dict[str, Any]:
    """List packages installed for the project.

    Args:
        runtime: "python", "javascript" or "go"
        interpreter_path: Interpreter to use (discovered when omitted)

    Returns:
        packages: name, version, latest_version and needs_update per package
    """
    packages = await get_server().list_packages(runtime, interpreter_path)
    return {
        "packages": [
            {**asdict(package), "needs_update": package.needs_update} for package in packages
        ],
        "total_count": len(packages),
    }


async def _run_package_command(
    method: str, runtime: str, name: str, interpreter_path: Optional[str]
) -> Dict[str, Any]:
    output: List[str] = []
    operation = getattr(get_server(), method)
    result = await operation(runtime, name, interpreter_path, on_output_line=output.append)
    return {**asdict(result), "package": name, "output": output}


@mcp.tool()
async def install_package(
    runtime: str, name: str, interpreter_path: Optional[str] = None
) -> Dict[str, Any]:
    """Install a package with the ecosystem's tool (pip, npm or go get).

    Args:
        runtime: "python", "javascript" or "go"
        name: Package name (e.g. "requests", "lodash", "github.com/pkg/errors")
        interpreter_path: Interpreter to use (discovered when omitted)

    Returns:
        - ok: True when the command exited with code 0
        - exit_code, last_line: Details of the command
        - output: Combined command output, line by line
    """
    return await _run_package_command("install_package", runtime, name, interpreter_path)


@mcp.tool()
async def uninstall_package(
    runtime: str, name: str, interpreter_path: Optional[str] = None
) -> Dict[str, Any]:
    """Remove a package. Same result shape as install_package."""
    return await _run_package_command("uninstall_package", runtime, name, interpreter_path)


@mcp.tool()
async def update_package(
    runtime: str, name: str, interpreter_path: Optional[str] = None
) -> Dict[str, Any]:
    """Upgrade a package to its latest version. Same result shape as install_package."""
    return await _run_package_command("update_package", runtime, name, interpreter_path)


@mcp.tool()
async def search_packages(runtime: str, query: str) -> Dict[str, Any]:
    """Search the package registry.

    Note:
        Registry search is not implemented yet; results are always empty.
    """
    packages = await get_server().search_packages(runtime, query)
    return {"query": query, "packages": _to_dict(packages)}


# ============================================================================
# Projects
# ============================================================================


@mcp.tool()
async def create_project(
    runtime: str,
    path: Optional[str] = None,
    name: Optional[str] = None,
    interpreter_path: Optional[str] = None,
) -> Dict[str, Any]:
    """Create a project with starter files for a runtime.

    Python projects get main.py, requirements.txt and README.md;
    JavaScript projects index.js, package.json and README.md; Go projects
    main.go, go.mod and README.md. Existing files are kept. A project
    created in another directory becomes the current project unless a
    program is running.

    Args:
        runtime: "python", "javascript" or "go"
        path: Project directory (defaults to the current project)
        name: Project name (defaults to the directory name)
        interpreter_path: Interpreter to remember for the project

    Returns:
        - created: Whether the project was written
        - project: name, path, kind and interpreter_path
        - current: Whether it is now the current project
    """
    global _server
    server = get_server()
    project = server.create_project(runtime, path, name, interpreter_path)
    if project is None:
        return {"created": False, "project": None, "current": False}

    current = project.path == server.project_path
    if not current and not server.is_running:
        set_project_path(project.path)
        _server = None
        current = True
    return {"created": True, "project": project.to_dict(), "current": current}


@mcp.tool()
async def open_project() -> Dict[str, Any]:
    """Load the current project's metadata (runtime kind and interpreter)."""
    project = get_server().load_project()
    return {"found": project is not None, "project": _to_dict(project)}


@mcp.tool()
async def save_project(
    runtime: Optional[str] = None, interpreter_path: Optional[str] = None
) -> Dict[str, Any]:
    """Remember the runtime kind and interpreter for the current project.

    The saved interpreter is used whenever a tool is called without an
    explicit interpreter_path. Pass an empty interpreter_path to clear it.
    """
    project = get_server().save_project(runtime, interpreter_path)
    return {"saved": project is not None, "project": _to_dict(project)}


# ============================================================================
# Program runs
# ============================================================================


@mcp.tool()
async def run_project(
    runtime: str,
    entry_file: Optional[str] = None,
    interpreter_path: Optional[str] = None,
) -> Dict[str, Any]:
    """Start the project's program in the background.

    Only one program runs at a time. Poll get_run_status for output and
    the exit code; call stop_run to kill it and everything it spawned.

    Args:
        runtime: "python", "javascript" or "go"
        entry_file: Entry file relative to the project
            (defaults to main.py, index.js or main.go)
        interpreter_path: Interpreter to use (discovered when omitted)

    Returns:
        The session (id, state, pid, ...) or started=False with a reason
    """
    server = get_server()
    if server.is_running:
        return {"started": False, "reason": "A process is already running"}

    session = await server.run_project(runtime, entry_file, interpreter_path)
    if session is None:
        return {"started": False, "reason": "No interpreter found or invalid entry file"}
    return {"started": session.is_running, **session.to_dict()}


@mcp.tool()
async def stop_run() -> Dict[str, Any]:
    """Kill the running program and its whole process tree."""
    server = get_server()
    stopped = await server.stop_run()
    session = server.current_session
    return {
        "stopped": stopped,
        "session": session.to_dict() if session else None,
    }


@mcp.tool()
async def get_run_status() -> Dict[str, Any]:
    """Get the state, exit code and recent output of the latest run."""
    server = get_server()
    session = server.current_session
    return {
        "is_running": server.is_running,
        "session": session.to_dict() if session else None,
    }


# ============================================================================
# Configuration
# ============================================================================


@mcp.tool()
async def get_toolsmith_config() -> Dict[str, Any]:
    """Get the project Toolsmith is configured for and its detected runtimes.

    Returns:
        - project_path, project_name: Current project
        - config_file: Path to .toolsmith.toml (if it exists)
        - install_root: Where portable runtimes are installed
        - project: Saved project metadata (kind, interpreter_path), if any
        - runtimes: Detected runtime per kind (path, version, source)
    """
    project_path = get_project_path()
    config = load_config(Path(project_path))
    config_file = Path(project_path) / CONFIG_FILENAME

    server = get_server()
    runtimes: Dict[str, Any] = {}
    for kind in RuntimeKind:
        handle = await server.locator.resolve(kind)
        if handle is None:
            runtimes[kind.value] = {"available": False}
            continue
        runtimes[kind.value] = {
            "available": True,
            "path": handle.executable_path,
            "version": handle.version,
            "source": handle.source,
        }

    return {
        "project_path": project_path,
        "project_name": Path(project_path).name,
        "config_file": str(config_file) if config_file.exists() else None,
        "install_root": str(config.install_root),
        "command_timeout": config.packages.command_timeout,
        "project": _to_dict(server.project),
        "runtimes": runtimes,
    }


def main():
    """Run the MCP server.

    The project path can be set via:
    1. First command line argument
    2. TOOLSMITH_PROJECT_PATH environment variable
    3. Current working directory (default)

    Example:
        TOOLSMITH_PROJECT_PATH=/path/to/project toolsmith
    """
    atexit.register(_cleanup_server)

    # Allow setting project path from command line argument
    if len(sys.argv) > 1 and not sys.argv[1].startswith("-"):
        set_project_path(sys.argv[1])
        # Remove the argument so FastMCP doesn't see it
        sys.argv = [sys.argv[0]] + sys.argv[2:]

    project_path = get_project_path()
    if not _project_path:
        set_project_path(project_path)

    config = load_config(Path(project_path))
    logging.basicConfig(
        stream=sys.stderr,
        level=getattr(logging, config.logging.level, logging.WARNING),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    # Print server info to stderr (stdout is used for MCP protocol)
    print("🚀 Starting Toolsmith MCP Server", file=sys.stderr)
    print(f"📁 Project: {Path(project_path).name}", file=sys.stderr)
    print(f"📂 Path: {project_path}", file=sys.stderr)
    print("", file=sys.stderr)

    mcp.run()


if __name__ == "__main__":
    main()
