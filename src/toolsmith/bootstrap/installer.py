"""Portable runtime download and installation.

Fetches a pinned runtime archive, streams it to disk with progress
reporting and extracts it into the target directory.
"""

from __future__ import annotations

import asyncio
import json
import logging
import tarfile
import zipfile
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Dict, Optional, Union
from urllib.parse import unquote, urlparse

import httpx

from ..errors import DownloadFailure
from ..models.records import DownloadTask
from ..runtime.specs import current_platform, get_download_source, get_runtime_spec
from ..runtime.types import RuntimeKind
from ..utils.fs import FileSystem, LocalFileSystem

logger = logging.getLogger(__name__)

DEFAULT_CHUNK_SIZE = 8192
MARKER_FILENAME = ".toolsmith-install.json"

ProgressSink = Callable[[float], None]
StatusSink = Callable[[str], None]


class _Reporter:
    """Feeds a DownloadTask and the caller's sinks.

    Progress is clamped to [0, 100] and never moves backwards.
    """

    def __init__(
        self,
        task: DownloadTask,
        on_progress: Optional[ProgressSink],
        on_status: Optional[StatusSink],
    ):
        self.task = task
        self._on_progress = on_progress
        self._on_status = on_status

    def progress(self, percent: float) -> None:
        percent = min(max(percent, 0.0), 100.0)
        if percent < self.task.percent_complete:
            return
        self.task.percent_complete = percent
        if self._on_progress:
            self._on_progress(percent)

    def status(self, message: str) -> None:
        self.task.last_status_message = message
        if self._on_status:
            self._on_status(message)


class ToolchainInstaller:
    """Downloads and extracts portable runtime builds."""

    def __init__(
        self,
        client: Optional[httpx.AsyncClient] = None,
        fs: Optional[FileSystem] = None,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
        timeout: float = 1800.0,
        platform: Optional[str] = None,
    ):
        """Initialize installer.

        Args:
            client: HTTP client to use; one is created per download if omitted
            fs: File-system collaborator
            chunk_size: Bytes read per chunk while streaming the archive
            timeout: Per-request timeout in seconds for created clients
            platform: Platform key override ("windows", "linux", "darwin")
        """
        self._client = client
        self.fs = fs or LocalFileSystem()
        self.chunk_size = chunk_size
        self.timeout = timeout
        self.platform = platform or current_platform()

    def download_url(self, kind: RuntimeKind) -> Optional[str]:
        source = get_download_source(kind, self.platform)
        return source.url if source else None

    def executable_path(self, kind: RuntimeKind, target_dir: Union[str, Path]) -> Optional[Path]:
        """Where the runtime executable lands inside ``target_dir``."""
        source = get_download_source(kind, self.platform)
        return Path(target_dir) / source.executable if source else None

    def installed_from(self, target_dir: Union[str, Path]) -> Optional[Dict[str, Any]]:
        """Read the install marker left by a successful install."""
        marker = Path(target_dir) / MARKER_FILENAME
        if not self.fs.exists(marker):
            return None
        try:
            return json.loads(self.fs.read_all_text(marker))
        except (OSError, ValueError) as e:
            logger.warning("Unreadable install marker %s: %s", marker, e)
            return None

    async def install(
        self,
        kind: RuntimeKind,
        target_dir: Union[str, Path],
        on_progress: Optional[ProgressSink] = None,
        on_status: Optional[StatusSink] = None,
    ) -> bool:
        """Download and extract the pinned runtime for ``kind``.

        Args:
            kind: Runtime kind to install
            target_dir: Directory to extract into (created if missing)
            on_progress: Receives percentages 0-100
            on_status: Receives human-readable phase messages

        Returns:
            True on success. Failures are reported through ``on_status``.

        Raises:
            UnsupportedRuntimeError: If kind is not a RuntimeKind
        """
        spec = get_runtime_spec(kind)
        source = get_download_source(kind, self.platform)
        target = Path(target_dir)
        task = DownloadTask(
            kind=kind.value,
            url=source.url if source else "",
            target_dir=str(target),
        )
        reporter = _Reporter(task, on_progress, on_status)

        reporter.status(f"Preparing to download {spec.display_name}...")
        if source is None:
            message = f"No portable {spec.display_name} build for {self.platform}"
            logger.error(message)
            reporter.status(f"Error: {message}")
            return False

        archive = target / _archive_name(source.url)
        try:
            self.fs.make_dirs(target)

            reporter.status("Downloading...")
            await self._download(source.url, archive, reporter)

            reporter.status("Extracting...")
            await asyncio.to_thread(_extract_archive, archive, target)

            self._write_marker(target, kind, source.url)
        except DownloadFailure as e:
            logger.error("Error downloading/installing %s: %s", spec.display_name, e.message)
            reporter.status(f"Error: {e.message}")
            return False
        except OSError as e:
            logger.error("Error installing %s: %s", spec.display_name, e)
            reporter.status(f"Error: {e}")
            return False
        finally:
            self._remove_archive(archive)

        executable = target / source.executable
        if not self.fs.exists(executable):
            logger.warning("Archive extracted but %s is missing", executable)

        reporter.progress(100.0)
        reporter.status("Installation complete!")
        logger.info("Successfully installed %s to %s", spec.display_name, target)
        return True

    async def _download(self, url: str, archive: Path, reporter: _Reporter) -> None:
        owns_client = self._client is None
        client = self._client or httpx.AsyncClient(
            timeout=httpx.Timeout(self.timeout, connect=30.0),
            follow_redirects=True,
        )
        try:
            async with client.stream("GET", url) as response:
                response.raise_for_status()
                total = _content_length(response)

                bytes_read = 0
                with open(archive, "wb") as handle:
                    async for chunk in response.aiter_bytes(self.chunk_size):
                        handle.write(chunk)
                        bytes_read += len(chunk)
                        if total:
                            reporter.progress(bytes_read / total * 100)
        except httpx.HTTPStatusError as e:
            raise DownloadFailure(
                f"HTTP {e.response.status_code} while downloading {url}"
            ) from e
        except httpx.HTTPError as e:
            raise DownloadFailure(f"Download failed: {e}") from e
        except OSError as e:
            raise DownloadFailure(f"Could not write {archive.name}: {e}") from e
        finally:
            if owns_client:
                await client.aclose()

    def _write_marker(self, target: Path, kind: RuntimeKind, url: str) -> None:
        marker = {
            "kind": kind.value,
            "url": url,
            "installed_at": datetime.now(timezone.utc).isoformat(),
        }
        self.fs.write_all_text(target / MARKER_FILENAME, json.dumps(marker, indent=2))

    def _remove_archive(self, archive: Path) -> None:
        try:
            self.fs.delete_file(archive)
        except OSError as e:
            logger.warning("Could not remove archive %s: %s", archive, e)


def _archive_name(url: str) -> str:
    name = unquote(Path(urlparse(url).path).name)
    return name or "download.zip"


def _content_length(response: httpx.Response) -> int:
    try:
        return int(response.headers.get("Content-Length", 0))
    except ValueError:
        return 0


def _extract_archive(archive: Path, target: Path) -> None:
    """Extract a zip or tar archive into ``target``, overwriting files."""
    name = archive.name.lower()
    try:
        if name.endswith(".zip"):
            with zipfile.ZipFile(archive) as zf:
                zf.extractall(target)
        elif name.endswith((".tar.gz", ".tgz", ".tar.xz", ".tar.bz2", ".tar")):
            with tarfile.open(archive, "r:*") as tf:
                if hasattr(tarfile, "data_filter"):
                    tf.extractall(target, filter="data")
                else:
                    tf.extractall(target)
        else:
            raise DownloadFailure(f"Unsupported archive format: {archive.name}")
    except (zipfile.BadZipFile, tarfile.TarError) as e:
        raise DownloadFailure(f"Extraction failed: {e}") from e
    except OSError as e:
        raise DownloadFailure(f"Extraction failed: {e}") from e


__all__ = ["ToolchainInstaller", "MARKER_FILENAME"]
