"""Declarative runtime specifications for all supported ecosystems.

This is DATA, not code. To add a new ecosystem, add a RuntimeKind member
and its RuntimeSpec here.
"""

from __future__ import annotations

import sys
from dataclasses import dataclass, field
from typing import Dict, List, Literal, Optional

from ..errors import UnsupportedRuntimeError
from .types import RuntimeKind

Platform = Literal["windows", "linux", "darwin"]
ListFormat = Literal["json_array", "json_dependencies", "json_lines"]

INTERPRETER = "{interpreter}"
PACKAGE = "{package}"
ENTRY_FILE = "{entry_file}"


@dataclass(frozen=True)
class VersionCheck:
    """Configuration for checking runtime version."""
    args: List[str]
    parse: str  # Regex pattern to extract version


@dataclass(frozen=True)
class PackageCommands:
    """Native package tool templates for one ecosystem.

    Each template is an argv list. ``{interpreter}`` expands to the
    verified interpreter path and ``{package}`` to the package name.
    """
    list: List[str]
    install: List[str]
    uninstall: List[str]
    update: List[str]
    list_format: ListFormat
    # npm exits non-zero on extraneous/missing deps but still prints the tree
    list_accepts_nonzero: bool = False


@dataclass(frozen=True)
class DownloadSource:
    """Pinned portable build for one platform."""
    url: str
    executable: str  # Executable path relative to the extraction directory


@dataclass(frozen=True)
class ProjectFile:
    """A file written when a new project is scaffolded.

    ``template`` is a string.Template with ``$project_name``,
    ``$project_name_json``, ``$package_name``, ``$module_name`` and
    ``$created`` placeholders.
    """
    path: str
    template: str


@dataclass(frozen=True)
class RuntimeSpec:
    """Complete runtime specification for an ecosystem."""
    display_name: str
    probe_commands: List[str]
    version_check: VersionCheck
    well_known_paths: Dict[str, List[str]]
    packages: PackageCommands
    run_template: List[str]
    entry_file: str
    downloads: Dict[str, DownloadSource] = field(default_factory=dict)
    project_files: List[ProjectFile] = field(default_factory=list)


def current_platform() -> Platform:
    """Return the platform key used by the lookup tables."""
    if sys.platform.startswith("win"):
        return "windows"
    if sys.platform == "darwin":
        return "darwin"
    return "linux"


# Project scaffolding templates

_PYTHON_MAIN = '''# $project_name
# Created: $created


def main():
    print("Hello, World!")


if __name__ == "__main__":
    main()
'''

_JAVASCRIPT_MAIN = """// $project_name
// Created: $created

function main() {
    console.log("Hello, World!");
}

main();
"""

_PACKAGE_JSON = """{
  "name": "$package_name",
  "version": "1.0.0",
  "description": $project_name_json,
  "main": "index.js",
  "type": "module",
  "scripts": {
    "start": "node index.js"
  },
  "license": "ISC"
}
"""

_GO_MAIN = """// $project_name
// Created: $created

package main

import "fmt"

func main() {
\tfmt.Println("Hello, World!")
}
"""


def _readme(description: str) -> ProjectFile:
    return ProjectFile("README.md", f"# $project_name\n\n{description} project created with Toolsmith.\n")


# Declarative runtime specifications
# To add a new ecosystem, just add its RuntimeSpec here
RUNTIME_SPECS: Dict[RuntimeKind, RuntimeSpec] = {
    RuntimeKind.DYNAMIC: RuntimeSpec(
        display_name="Python",
        probe_commands=["python", "python3"],  # Try in order
        version_check=VersionCheck(
            args=["--version"],
            parse=r"Python (\d+\.\d+\.\d+)",
        ),
        well_known_paths={
            "windows": [
                r"C:\Python312\python.exe",
                r"C:\Python311\python.exe",
                r"C:\Python310\python.exe",
                r"%LOCALAPPDATA%\Programs\Python\Python312\python.exe",
            ],
            "linux": [
                "/usr/bin/python3",
                "/usr/local/bin/python3",
            ],
            "darwin": [
                "/opt/homebrew/bin/python3",
                "/usr/local/bin/python3",
                "/Library/Frameworks/Python.framework/Versions/3.12/bin/python3",
            ],
        },
        packages=PackageCommands(
            list=[INTERPRETER, "-m", "pip", "list", "--format=json"],
            install=[INTERPRETER, "-m", "pip", "install", PACKAGE],
            uninstall=[INTERPRETER, "-m", "pip", "uninstall", "-y", PACKAGE],
            update=[INTERPRETER, "-m", "pip", "install", "--upgrade", PACKAGE],
            list_format="json_array",
        ),
        run_template=[INTERPRETER, ENTRY_FILE],
        entry_file="main.py",
        project_files=[
            ProjectFile("main.py", _PYTHON_MAIN),
            ProjectFile("requirements.txt", "# Python dependencies\n# Example: requests==2.31.0\n"),
            _readme("Python"),
        ],
        downloads={
            "windows": DownloadSource(
                url="https://www.python.org/ftp/python/3.12.0/python-3.12.0-embed-amd64.zip",
                executable="python.exe",
            ),
            "linux": DownloadSource(
                url=(
                    "https://github.com/indygreg/python-build-standalone/releases/download/"
                    "20231002/cpython-3.12.0+20231002-x86_64-unknown-linux-gnu-install_only.tar.gz"
                ),
                executable="python/bin/python3",
            ),
            "darwin": DownloadSource(
                url=(
                    "https://github.com/indygreg/python-build-standalone/releases/download/"
                    "20231002/cpython-3.12.0+20231002-x86_64-apple-darwin-install_only.tar.gz"
                ),
                executable="python/bin/python3",
            ),
        },
    ),

    RuntimeKind.SCRIPTED: RuntimeSpec(
        display_name="Node.js",
        probe_commands=["node"],
        version_check=VersionCheck(
            args=["--version"],
            parse=r"v(\d+\.\d+\.\d+)",
        ),
        well_known_paths={
            "windows": [
                r"C:\Program Files\nodejs\node.exe",
                r"C:\Program Files (x86)\nodejs\node.exe",
            ],
            "linux": [
                "/usr/bin/node",
                "/usr/local/bin/node",
            ],
            "darwin": [
                "/opt/homebrew/bin/node",
                "/usr/local/bin/node",
            ],
        },
        packages=PackageCommands(
            list=["npm", "list", "--json", "--depth=0"],
            install=["npm", "install", PACKAGE],
            uninstall=["npm", "uninstall", PACKAGE],
            update=["npm", "update", PACKAGE],
            list_format="json_dependencies",
            list_accepts_nonzero=True,
        ),
        run_template=[INTERPRETER, ENTRY_FILE],
        entry_file="index.js",
        project_files=[
            ProjectFile("index.js", _JAVASCRIPT_MAIN),
            ProjectFile("package.json", _PACKAGE_JSON),
            _readme("JavaScript (Node.js)"),
        ],
        downloads={
            "windows": DownloadSource(
                url="https://nodejs.org/dist/v20.10.0/node-v20.10.0-win-x64.zip",
                executable="node-v20.10.0-win-x64/node.exe",
            ),
            "linux": DownloadSource(
                url="https://nodejs.org/dist/v20.10.0/node-v20.10.0-linux-x64.tar.gz",
                executable="node-v20.10.0-linux-x64/bin/node",
            ),
            "darwin": DownloadSource(
                url="https://nodejs.org/dist/v20.10.0/node-v20.10.0-darwin-x64.tar.gz",
                executable="node-v20.10.0-darwin-x64/bin/node",
            ),
        },
    ),

    RuntimeKind.COMPILED: RuntimeSpec(
        display_name="Go",
        probe_commands=["go"],
        version_check=VersionCheck(
            args=["version"],
            parse=r"go(\d+\.\d+(?:\.\d+)?)",
        ),
        well_known_paths={
            "windows": [
                r"C:\Go\bin\go.exe",
                r"C:\Program Files\Go\bin\go.exe",
            ],
            "linux": [
                "/usr/local/go/bin/go",
                "/usr/lib/go/bin/go",
            ],
            "darwin": [
                "/usr/local/go/bin/go",
                "/opt/homebrew/bin/go",
            ],
        },
        packages=PackageCommands(
            list=[INTERPRETER, "list", "-m", "-json", "all"],
            install=[INTERPRETER, "get", PACKAGE],
            uninstall=[INTERPRETER, "mod", "edit", "-droprequire", PACKAGE],
            update=[INTERPRETER, "get", "-u", PACKAGE],
            list_format="json_lines",
        ),
        run_template=[INTERPRETER, "run", ENTRY_FILE],
        entry_file="main.go",
        project_files=[
            ProjectFile("main.go", _GO_MAIN),
            ProjectFile("go.mod", "module $module_name\n\ngo 1.21\n"),
            _readme("Go"),
        ],
        downloads={
            "windows": DownloadSource(
                url="https://go.dev/dl/go1.21.5.windows-amd64.zip",
                executable="go/bin/go.exe",
            ),
            "linux": DownloadSource(
                url="https://go.dev/dl/go1.21.5.linux-amd64.tar.gz",
                executable="go/bin/go",
            ),
            "darwin": DownloadSource(
                url="https://go.dev/dl/go1.21.5.darwin-amd64.tar.gz",
                executable="go/bin/go",
            ),
        },
    ),
}


def get_runtime_spec(kind: RuntimeKind) -> RuntimeSpec:
    """Get runtime spec for an ecosystem.

    Args:
        kind: Runtime kind

    Returns:
        Runtime specification (typed dataclass)

    Raises:
        UnsupportedRuntimeError: If kind is not a supported RuntimeKind
    """
    if not isinstance(kind, RuntimeKind) or kind not in RUNTIME_SPECS:
        supported = ", ".join(k.value for k in RUNTIME_SPECS)
        raise UnsupportedRuntimeError(
            f"Runtime '{kind}' not supported. "
            f"Supported runtimes: {supported}"
        )

    return RUNTIME_SPECS[kind]


def get_download_source(
    kind: RuntimeKind, platform: Optional[str] = None
) -> Optional[DownloadSource]:
    """Pinned download for a kind on the given (default: current) platform."""
    spec = get_runtime_spec(kind)
    return spec.downloads.get(platform or current_platform())


def expand_template(template: List[str], **values: str) -> List[str]:
    """Substitute ``{name}`` placeholders in an argv template."""
    argv = []
    for part in template:
        for name, value in values.items():
            part = part.replace("{" + name + "}", value)
        argv.append(part)
    return argv
