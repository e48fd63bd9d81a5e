"""Project scaffolding and per-project metadata."""

from __future__ import annotations

import json
import logging
import re
from datetime import datetime, timezone
from pathlib import Path
from string import Template
from typing import Optional, Union

from ..models.records import ProjectInfo
from ..runtime.specs import get_runtime_spec
from ..runtime.types import RuntimeKind
from ..utils.fs import FileSystem, LocalFileSystem

logger = logging.getLogger(__name__)

PROJECT_DIR = ".toolsmith"
PROJECT_FILE = "project.json"


class ProjectManager:
    """Creates projects from the runtime table's templates and keeps
    their metadata (runtime kind and chosen interpreter).

    Failures are logged and reported as None / False.
    """

    def __init__(self, fs: Optional[FileSystem] = None):
        self.fs = fs or LocalFileSystem()

    @staticmethod
    def metadata_path(project_dir: Union[str, Path]) -> Path:
        return Path(project_dir) / PROJECT_DIR / PROJECT_FILE

    def create_project(
        self,
        kind: RuntimeKind,
        project_dir: Union[str, Path],
        name: Optional[str] = None,
        interpreter_path: Optional[str] = None,
    ) -> Optional[ProjectInfo]:
        """Scaffold a new project.

        Writes the kind's starter files (entry file, manifest, README) and
        the project metadata. Files that already exist are left untouched.

        Args:
            kind: Runtime kind of the project
            project_dir: Directory to create the project in
            name: Project name (defaults to the directory name)
            interpreter_path: Interpreter to remember for this project

        Returns:
            The new project, or None if the directory could not be written
        """
        spec = get_runtime_spec(kind)
        root = Path(project_dir).expanduser().resolve()
        project_name = (name or "").strip() or root.name
        now = datetime.now(timezone.utc)
        values = {
            "project_name": project_name,
            "project_name_json": json.dumps(project_name),
            "package_name": package_name(project_name),
            "module_name": module_name(project_name),
            "created": now.strftime("%Y-%m-%d"),
        }
        project = ProjectInfo(
            name=project_name,
            path=str(root),
            kind=kind,
            interpreter_path=interpreter_path,
            created_at=now.isoformat(),
            last_opened=now.isoformat(),
        )

        try:
            self.fs.make_dirs(root)
            for project_file in spec.project_files:
                target = root / project_file.path
                if self.fs.exists(target):
                    logger.info("Keeping existing %s", target)
                    continue
                content = Template(project_file.template).substitute(values)
                self.fs.write_all_text(target, content)
            self._write_metadata(project)
        except OSError as e:
            logger.error("Error creating project %s: %s", project_name, e)
            return None

        logger.info("Project created: %s at %s", project_name, root)
        return project

    def load_project(self, project_dir: Union[str, Path]) -> Optional[ProjectInfo]:
        """Read a project's metadata and record that it was opened.

        Returns:
            The project, or None if it has no (valid) metadata
        """
        root = Path(project_dir).expanduser().resolve()
        metadata = self.metadata_path(root)
        if not self.fs.exists(metadata):
            logger.debug("No project metadata at %s", metadata)
            return None

        try:
            data = json.loads(self.fs.read_all_text(metadata))
            project = ProjectInfo(
                name=data.get("name") or root.name,
                path=str(root),
                kind=RuntimeKind.parse(data["kind"]),
                interpreter_path=data.get("interpreter_path") or None,
                created_at=data.get("created_at"),
            )
        except (OSError, ValueError, KeyError, TypeError, AttributeError) as e:
            logger.warning("Invalid project metadata %s: %s", metadata, e)
            return None

        project.last_opened = datetime.now(timezone.utc).isoformat()
        self.save_project(project)
        logger.info("Project loaded: %s from %s", project.name, root)
        return project

    def save_project(self, project: ProjectInfo) -> bool:
        """Write project metadata. False if it could not be written."""
        try:
            self._write_metadata(project)
        except OSError as e:
            logger.error("Error saving project %s: %s", project.name, e)
            return False
        return True

    def _write_metadata(self, project: ProjectInfo) -> None:
        self.fs.write_all_text(
            self.metadata_path(project.path),
            json.dumps(project.to_dict(), indent=2) + "\n",
        )


def package_name(name: str) -> str:
    """npm package name for a project name ("My App" -> "my-app")."""
    slug = re.sub(r"[^a-z0-9._-]", "", name.lower().replace(" ", "-"))
    return slug.lstrip("._") or "app"


def module_name(name: str) -> str:
    """Go module path for a project name ("My App" -> "myapp")."""
    slug = re.sub(r"[^a-z0-9._/-]", "", name.lower().replace(" ", ""))
    return slug.strip("/") or "app"


__all__ = ["PROJECT_DIR", "PROJECT_FILE", "ProjectManager", "module_name", "package_name"]
