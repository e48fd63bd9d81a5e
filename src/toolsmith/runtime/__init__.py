"""Runtime kinds, declarative specs and interpreter discovery."""

from .locator import ToolchainLocator
from .specs import RUNTIME_SPECS, RuntimeSpec, get_runtime_spec
from .types import RuntimeHandle, RuntimeKind

__all__ = [
    "ToolchainLocator",
    "RuntimeHandle",
    "RuntimeKind",
    "RuntimeSpec",
    "RUNTIME_SPECS",
    "get_runtime_spec",
]
