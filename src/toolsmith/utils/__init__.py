"""Utility modules (file system, path)."""

from .fs import FileSystem, LocalFileSystem
from .path import is_within, resolve_project_path

__all__ = [
    "FileSystem",
    "LocalFileSystem",
    "resolve_project_path",
    "is_within",
]
