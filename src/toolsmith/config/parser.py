"""Configuration file parser for Toolsmith."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional

try:
    import tomllib  # Python 3.11+
except ImportError:
    import tomli as tomllib  # Fallback for Python 3.10

from ..runtime.types import RuntimeKind

logger = logging.getLogger(__name__)

CONFIG_FILENAME = ".toolsmith.toml"
DEFAULT_INSTALL_ROOT = "${PROJECT_ROOT}/.toolsmith/runtimes"


@dataclass
class RuntimeConfig:
    """Configuration for a specific runtime kind."""

    interpreter_path: Optional[str] = None
    extra_paths: List[str] = field(default_factory=list)


@dataclass
class ToolchainConfig:
    """Where portable runtimes are installed."""

    install_root: str = DEFAULT_INSTALL_ROOT


@dataclass
class DownloadConfig:
    """Runtime download settings."""

    chunk_size: int = 8192
    timeout_seconds: float = 1800.0  # Large archives


@dataclass
class PackagesConfig:
    """Package command settings."""

    command_timeout: Optional[float] = None  # None = run to completion


@dataclass
class RunConfig:
    """Program run settings."""

    output_history: int = 1000


@dataclass
class LoggingConfig:
    """Logging settings."""

    level: str = "WARNING"


@dataclass
class ToolsmithConfig:
    """Complete Toolsmith configuration."""

    toolchain: ToolchainConfig = field(default_factory=ToolchainConfig)
    runtimes: Dict[RuntimeKind, RuntimeConfig] = field(default_factory=dict)
    downloads: DownloadConfig = field(default_factory=DownloadConfig)
    packages: PackagesConfig = field(default_factory=PackagesConfig)
    run: RunConfig = field(default_factory=RunConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    # Project root for resolving paths
    project_root: Path = field(default_factory=Path.cwd)

    def resolve_path(self, path_template: str) -> str:
        """Resolve template variables in paths.

        Supports:
            ${PROJECT_ROOT} - absolute path to project root
            ~ and environment variables
        """
        result = path_template.replace("${PROJECT_ROOT}", str(self.project_root))
        return os.path.expandvars(os.path.expanduser(result))

    @property
    def install_root(self) -> Path:
        return Path(self.resolve_path(self.toolchain.install_root))

    def install_dir(self, kind: RuntimeKind) -> Path:
        """Directory a portable runtime of this kind is installed into."""
        return self.install_root / kind.value

    def runtime(self, kind: RuntimeKind) -> RuntimeConfig:
        return self.runtimes.get(kind) or RuntimeConfig()


def find_config_file(project_path: Path) -> Optional[Path]:
    """Find .toolsmith.toml in project root.

    Args:
        project_path: Root path of the project

    Returns:
        Path to .toolsmith.toml if found, None otherwise
    """
    config_file = Path(project_path) / CONFIG_FILENAME
    if config_file.exists():
        return config_file
    return None


def load_config(project_path: Path) -> ToolsmithConfig:
    """Load configuration from .toolsmith.toml or use defaults.

    Args:
        project_path: Root path of the project

    Returns:
        ToolsmithConfig with loaded or default configuration
    """
    config = ToolsmithConfig(project_root=Path(project_path))

    config_file = find_config_file(Path(project_path))
    if not config_file:
        return config

    try:
        with open(config_file, "rb") as f:
            data = tomllib.load(f)
    except (OSError, tomllib.TOMLDecodeError) as e:
        # If TOML parsing fails, return defaults
        logger.warning("Ignoring unreadable config %s: %s", config_file, e)
        return config

    if "toolchain" in data:
        toolchain_data = data["toolchain"]
        config.toolchain.install_root = toolchain_data.get(
            "install_root", DEFAULT_INSTALL_ROOT
        )

    # [runtimes.python], [runtimes.javascript], [runtimes.go]
    runtimes_section = data.get("runtimes", {})
    for kind in RuntimeKind:
        kind_data = runtimes_section.get(kind.value)
        if isinstance(kind_data, dict):
            interpreter_path = kind_data.get("interpreter_path")
            config.runtimes[kind] = RuntimeConfig(
                interpreter_path=(
                    config.resolve_path(interpreter_path) if interpreter_path else None
                ),
                extra_paths=[
                    config.resolve_path(p) for p in kind_data.get("extra_paths", [])
                ],
            )

    if "downloads" in data:
        downloads_data = data["downloads"]
        config.downloads.chunk_size = int(downloads_data.get("chunk_size", 8192))
        config.downloads.timeout_seconds = float(
            downloads_data.get("timeout_seconds", 1800.0)
        )

    if "packages" in data:
        timeout = data["packages"].get("command_timeout", 0)
        config.packages.command_timeout = float(timeout) if timeout else None

    if "run" in data:
        config.run.output_history = int(data["run"].get("output_history", 1000))

    if "logging" in data:
        config.logging.level = str(data["logging"].get("level", "WARNING")).upper()

    return config
