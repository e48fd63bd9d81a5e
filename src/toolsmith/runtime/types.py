"""Data types for runtime resolution."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Optional, Union

from ..errors import UnsupportedRuntimeError


class RuntimeKind(Enum):
    """Supported program ecosystems.

    Values double as the ecosystem's short name in config files and
    MCP tool arguments.
    """

    DYNAMIC = "python"  # dynamic-interpreted
    SCRIPTED = "javascript"  # scripted-JIT
    COMPILED = "go"  # compiled

    @classmethod
    def parse(cls, value: Union[str, "RuntimeKind"]) -> "RuntimeKind":
        """Parse a kind from its value ("python") or name ("DYNAMIC").

        Raises:
            UnsupportedRuntimeError: If the value names no supported kind
        """
        if isinstance(value, cls):
            return value

        text = str(value).strip()
        for kind in cls:
            if text.lower() == kind.value or text.upper() == kind.name:
                return kind

        supported = ", ".join(kind.value for kind in cls)
        raise UnsupportedRuntimeError(
            f"Runtime '{value}' not supported. Supported runtimes: {supported}"
        )


@dataclass(frozen=True)
class RuntimeHandle:
    """A resolved runtime executable.

    Attributes:
        kind: Ecosystem the executable belongs to
        executable_path: Absolute path to the interpreter/compiler
        source: How it was found ("search_path", "well_known",
            "configured", "install_root")
        version: Version string reported by the executable (if probed)
    """

    kind: RuntimeKind
    executable_path: str
    source: str
    version: Optional[str] = None

    def is_valid(self) -> bool:
        """Check the executable still exists on disk."""
        return Path(self.executable_path).is_file()

    def __repr__(self) -> str:
        version_str = f" {self.version}" if self.version else ""
        return (
            f"<RuntimeHandle {self.kind.value}{version_str} "
            f"@ {self.executable_path} ({self.source})>"
        )
