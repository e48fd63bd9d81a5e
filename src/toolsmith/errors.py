"""Failure taxonomy for the toolchain engine.

Public operations report failures through their return values. These
exceptions are raised inside a component and converted at its boundary;
only ``UnsupportedRuntimeError`` reaches callers.
"""

from __future__ import annotations

from enum import Enum
from typing import Optional


class FailureKind(Enum):
    """Category of a toolchain failure."""

    DISCOVERY = "discovery"
    DOWNLOAD = "download"
    COMMAND = "command"
    PROCESS_SPAWN = "process_spawn"
    PARSE = "parse"


class ToolsmithError(Exception):
    """Base class for recoverable toolchain failures."""

    kind: FailureKind

    def __init__(self, message: str, detail: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.detail = detail


class DiscoveryFailure(ToolsmithError):
    """Interpreter could not be found."""

    kind = FailureKind.DISCOVERY


class DownloadFailure(ToolsmithError):
    """Network or extraction error while installing a runtime."""

    kind = FailureKind.DOWNLOAD


class CommandFailure(ToolsmithError):
    """A package command exited with a non-zero code."""

    kind = FailureKind.COMMAND

    def __init__(
        self,
        message: str,
        exit_code: Optional[int] = None,
        last_line: Optional[str] = None,
    ):
        super().__init__(message, detail=last_line)
        self.exit_code = exit_code
        self.last_line = last_line


class ProcessSpawnFailure(ToolsmithError):
    """Entry file missing or the OS refused to create the process."""

    kind = FailureKind.PROCESS_SPAWN


class ParseFailure(ToolsmithError):
    """Malformed package listing payload."""

    kind = FailureKind.PARSE


class UnsupportedRuntimeError(ValueError):
    """Raised for a runtime kind outside the supported set.

    This is a programmer error and is never converted into a return value.
    """


__all__ = [
    "CommandFailure",
    "DiscoveryFailure",
    "DownloadFailure",
    "FailureKind",
    "ParseFailure",
    "ProcessSpawnFailure",
    "ToolsmithError",
    "UnsupportedRuntimeError",
]
