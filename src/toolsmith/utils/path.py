"""Path resolution utilities for project-relative paths."""

from __future__ import annotations

from pathlib import Path
from typing import Union


def resolve_project_path(
    path: Union[str, Path],
    project_root: Union[str, Path],
) -> Path:
    """Resolve a path relative to the project directory.

    Handles both absolute and relative paths:
    - Absolute paths: returned as-is (resolved to canonical form)
    - Relative paths: resolved relative to project_root

    Args:
        path: Path to resolve (can be absolute or relative)
        project_root: Root directory of the project

    Returns:
        Resolved absolute Path object

    Examples:
        >>> resolve_project_path("main.py", "/project")
        Path("/project/main.py")

        >>> resolve_project_path("/abs/path/main.go", "/project")
        Path("/abs/path/main.go")
    """
    path_obj = Path(path)
    project_root_obj = Path(project_root).resolve()

    if path_obj.is_absolute():
        return path_obj.resolve()

    return (project_root_obj / path_obj).resolve()


def is_within(path: Union[str, Path], root: Union[str, Path]) -> bool:
    """Check whether ``path`` lies inside ``root`` after resolution.

    Handles macOS symlinks (/var vs /private/var) by resolving both sides.
    """
    try:
        Path(path).resolve().relative_to(Path(root).resolve())
        return True
    except ValueError:
        return False
