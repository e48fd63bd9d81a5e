"""File-system collaborator used by the installer.

Thin synchronous wrappers; callers run them off the event loop when the
work is large (recursive deletes of runtime directories).
"""

from __future__ import annotations

import shutil
from pathlib import Path
from typing import Protocol, Union, runtime_checkable

PathLike = Union[str, Path]


@runtime_checkable
class FileSystem(Protocol):
    """Operations the toolchain engine expects from its host."""

    def read_all_text(self, path: PathLike) -> str: ...

    def write_all_text(self, path: PathLike, content: str) -> None: ...

    def exists(self, path: PathLike) -> bool: ...

    def make_dirs(self, path: PathLike) -> None: ...

    def delete_file(self, path: PathLike) -> None: ...

    def delete_recursive(self, path: PathLike) -> None: ...


class LocalFileSystem:
    """FileSystem backed by the local disk."""

    def read_all_text(self, path: PathLike) -> str:
        return Path(path).read_text(encoding="utf-8")

    def write_all_text(self, path: PathLike, content: str) -> None:
        target = Path(path)
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_text(content, encoding="utf-8")

    def exists(self, path: PathLike) -> bool:
        return Path(path).exists()

    def make_dirs(self, path: PathLike) -> None:
        Path(path).mkdir(parents=True, exist_ok=True)

    def delete_file(self, path: PathLike) -> None:
        Path(path).unlink(missing_ok=True)

    def delete_recursive(self, path: PathLike) -> None:
        target = Path(path)
        if target.is_dir() and not target.is_symlink():
            shutil.rmtree(target)
        else:
            target.unlink(missing_ok=True)


__all__ = ["FileSystem", "LocalFileSystem"]
