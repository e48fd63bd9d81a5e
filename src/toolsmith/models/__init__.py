"""Shared models for records and events."""

from .events import EventKind, EventStream, OutputLine, ToolchainEvent
from .records import DownloadTask, PackageCommandResult, PackageRecord, ProjectInfo

__all__ = [
    "DownloadTask",
    "EventKind",
    "EventStream",
    "OutputLine",
    "PackageCommandResult",
    "PackageRecord",
    "ProjectInfo",
    "ToolchainEvent",
]
