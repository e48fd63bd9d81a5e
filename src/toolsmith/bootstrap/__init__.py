"""Bootstrap utilities for installing portable runtimes."""

from .installer import MARKER_FILENAME, ToolchainInstaller

__all__ = [
    "MARKER_FILENAME",
    "ToolchainInstaller",
]
