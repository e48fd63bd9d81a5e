"""Project scaffolding and metadata."""

from .manager import PROJECT_DIR, PROJECT_FILE, ProjectManager, module_name, package_name

__all__ = ["PROJECT_DIR", "PROJECT_FILE", "ProjectManager", "module_name", "package_name"]
