"""Toolsmith: find, install and drive language toolchains for a project."""

from .runtime import RuntimeHandle, RuntimeKind
from .server import ToolchainServer

__version__ = "0.1.0"

__all__ = ["RuntimeHandle", "RuntimeKind", "ToolchainServer", "__version__"]
