from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Optional

from ..runtime.types import RuntimeKind


@dataclass
class PackageRecord:
    """One package reported by an ecosystem's listing command."""

    name: str
    version: str
    latest_version: Optional[str] = None
    installed: bool = True
    description: Optional[str] = None
    author: Optional[str] = None
    license: Optional[str] = None

    @property
    def needs_update(self) -> bool:
        return (
            self.installed
            and bool(self.latest_version)
            and self.version != self.latest_version
        )


@dataclass
class PackageCommandResult:
    """Outcome of an install/uninstall/update command.

    Truthiness follows ``ok`` so callers can treat it as a boolean.
    """

    ok: bool
    exit_code: Optional[int] = None
    last_line: Optional[str] = None  # Last output line, useful on failure

    def __bool__(self) -> bool:
        return self.ok


@dataclass
class DownloadTask:
    """State of one runtime download; lives for a single install call."""

    kind: str
    url: str
    target_dir: str
    percent_complete: float = 0.0
    last_status_message: str = ""


@dataclass
class ProjectInfo:
    """Project metadata stored in ``.toolsmith/project.json``."""

    name: str
    path: str
    kind: RuntimeKind
    interpreter_path: Optional[str] = None
    created_at: Optional[str] = None
    last_opened: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "path": self.path,
            "kind": self.kind.value,
            "interpreter_path": self.interpreter_path,
            "created_at": self.created_at,
            "last_opened": self.last_opened,
        }
